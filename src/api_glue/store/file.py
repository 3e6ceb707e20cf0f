"""JSON file store.

Layout under the root directory:

    configs/<config_id>/<revision>.json
    runs/<run_id>.json
"""

import asyncio
import json
import re
from collections import defaultdict
from pathlib import Path

import structlog
from pydantic import ValidationError

from ..errors import StoreFailure
from ..models import BaseConfig, Run, parse_config
from .base import Store

logger = structlog.get_logger()

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_id(value: str) -> str:
    if not _SAFE_ID.match(value) or value in (".", ".."):
        raise ValueError(f"Id '{value}' cannot be used as a file name")
    return value


class FileStore(Store):
    """Store persisting configs and runs as JSON files."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()
        self._configs_dir = self.root / "configs"
        self._runs_dir = self.root / "runs"
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        try:
            self._configs_dir.mkdir(parents=True, exist_ok=True)
            self._runs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreFailure(f"Cannot create store directories under {self.root}: {e}") from e

    # Synchronous helpers, run in a worker thread

    def _revision_paths(self, config_id: str) -> list[Path]:
        config_dir = self._configs_dir / _check_id(config_id)
        if not config_dir.exists():
            return []
        return sorted(config_dir.glob("*.json"), key=lambda p: int(p.stem))

    def _read_config(self, path: Path) -> BaseConfig:
        try:
            return parse_config(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreFailure(f"Cannot read config file {path}: {e}") from e

    def _read_run(self, path: Path) -> Run:
        try:
            return Run.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StoreFailure(f"Cannot read run file {path}: {e}") from e

    def _write(self, path: Path, text: str) -> None:
        tmp = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StoreFailure(f"Cannot write {path}: {e}") from e

    def _latest_config(self, config_id: str) -> BaseConfig | None:
        paths = self._revision_paths(config_id)
        return self._read_config(paths[-1]) if paths else None

    def _put_config(self, config: BaseConfig) -> int:
        paths = self._revision_paths(config.id)
        revision = (int(paths[-1].stem) if paths else 0) + 1
        stored = config.model_copy(update={"revision": revision})
        self._write(
            self._configs_dir / config.id / f"{revision}.json",
            stored.model_dump_json(indent=2),
        )
        return revision

    def _delete_config(self, config_id: str) -> bool:
        paths = self._revision_paths(config_id)
        if not paths:
            return False
        try:
            for path in paths:
                path.unlink()
            (self._configs_dir / config_id).rmdir()
        except OSError as e:
            raise StoreFailure(f"Cannot delete config {config_id}: {e}") from e
        return True

    def _list_configs(self) -> list[BaseConfig]:
        configs = []
        for config_dir in self._configs_dir.iterdir():
            if config_dir.is_dir():
                latest = self._latest_config(config_dir.name)
                if latest is not None:
                    configs.append(latest)
        return configs

    # Store API

    async def get_config(self, config_id: str) -> BaseConfig | None:
        return await asyncio.to_thread(self._latest_config, config_id)

    async def get_config_revision(self, config_id: str, revision: int) -> BaseConfig | None:
        path = self._configs_dir / _check_id(config_id) / f"{revision}.json"
        if not path.exists():
            return None
        return await asyncio.to_thread(self._read_config, path)

    async def put_config(self, config: BaseConfig) -> int:
        _check_id(config.id)
        async with self._locks[f"config:{config.id}"]:
            revision = await asyncio.to_thread(self._put_config, config)
        logger.debug("config_stored", component="file_store", config_id=config.id, revision=revision)
        return revision

    async def delete_config(self, config_id: str) -> bool:
        async with self._locks[f"config:{config_id}"]:
            return await asyncio.to_thread(self._delete_config, config_id)

    async def list_configs(self, kind: str | None = None) -> list[BaseConfig]:
        configs = await asyncio.to_thread(self._list_configs)
        if kind is not None:
            configs = [c for c in configs if c.kind == kind]
        return sorted(configs, key=lambda c: c.updated_at, reverse=True)

    async def put_run(self, run: Run) -> None:
        path = self._runs_dir / f"{_check_id(run.id)}.json"
        text = run.model_dump_json(indent=2)
        async with self._locks[f"run:{run.id}"]:
            await asyncio.to_thread(self._write, path, text)

    async def get_run(self, run_id: str) -> Run | None:
        path = self._runs_dir / f"{_check_id(run_id)}.json"
        if not path.exists():
            return None
        return await asyncio.to_thread(self._read_run, path)

    async def list_runs(self, limit: int | None = None) -> list[Run]:
        paths = list(self._runs_dir.glob("*.json"))
        runs = [await asyncio.to_thread(self._read_run, p) for p in paths]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[:limit] if limit is not None else runs
