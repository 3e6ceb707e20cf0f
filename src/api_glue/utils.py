"""Common utility functions."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def model_to_dict(model: Any) -> dict:
    """Convert a Pydantic model to a JSON-compatible dict."""
    if hasattr(model, "model_dump"):
        return model.model_dump(mode="json")
    raise TypeError(f"Cannot convert {type(model)} to dict")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent


def get_data_dir() -> Path:
    """Get the data directory."""
    data_dir = get_project_root() / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def truncate_json(obj: Any, max_depth: int = 3, current_depth: int = 0) -> Any:
    """Truncate a JSON value to a maximum depth for LLM prompts."""
    if current_depth >= max_depth:
        if isinstance(obj, dict):
            return f"{{...{len(obj)} keys...}}"
        elif isinstance(obj, list):
            return f"[...{len(obj)} items...]"
        elif isinstance(obj, str) and len(obj) > 100:
            return obj[:100] + "..."
        return obj

    if isinstance(obj, dict):
        return {k: truncate_json(v, max_depth, current_depth + 1) for k, v in list(obj.items())[:20]}
    elif isinstance(obj, list):
        return [truncate_json(item, max_depth, current_depth + 1) for item in obj[:5]]
    elif isinstance(obj, str) and len(obj) > 200:
        return obj[:200] + "..."
    return obj


def sample_for_prompt(data: Any, max_chars: int = 4000) -> str:
    """Render a compact JSON sample of `data` for inclusion in a prompt."""
    if data is None:
        return "null (no data available)"
    text = json.dumps(truncate_json(data), indent=2, default=str)
    if len(text) > max_chars:
        text = text[:max_chars] + "\n... (truncated)"
    return text
