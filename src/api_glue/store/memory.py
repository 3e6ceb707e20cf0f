"""In-process store."""

import asyncio
from collections import defaultdict

from ..models import BaseConfig, Run
from .base import Store


class MemoryStore(Store):
    """Store keeping every config revision and run in memory."""

    def __init__(self) -> None:
        self._configs: dict[str, list[BaseConfig]] = {}
        self._runs: dict[str, Run] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_config(self, config_id: str) -> BaseConfig | None:
        revisions = self._configs.get(config_id)
        if not revisions:
            return None
        return revisions[-1].model_copy(deep=True)

    async def get_config_revision(self, config_id: str, revision: int) -> BaseConfig | None:
        for config in self._configs.get(config_id, []):
            if config.revision == revision:
                return config.model_copy(deep=True)
        return None

    async def put_config(self, config: BaseConfig) -> int:
        async with self._locks[f"config:{config.id}"]:
            revisions = self._configs.setdefault(config.id, [])
            revision = (revisions[-1].revision if revisions else 0) + 1
            revisions.append(config.model_copy(update={"revision": revision}, deep=True))
            return revision

    async def delete_config(self, config_id: str) -> bool:
        async with self._locks[f"config:{config_id}"]:
            return self._configs.pop(config_id, None) is not None

    async def list_configs(self, kind: str | None = None) -> list[BaseConfig]:
        latest = [revisions[-1] for revisions in self._configs.values() if revisions]
        if kind is not None:
            latest = [c for c in latest if c.kind == kind]
        return [c.model_copy(deep=True) for c in sorted(latest, key=lambda c: c.updated_at, reverse=True)]

    async def put_run(self, run: Run) -> None:
        async with self._locks[f"run:{run.id}"]:
            self._runs[run.id] = run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> Run | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self, limit: int | None = None) -> list[Run]:
        runs = sorted(self._runs.values(), key=lambda r: r.started_at, reverse=True)
        if limit is not None:
            runs = runs[:limit]
        return [r.model_copy(deep=True) for r in runs]
