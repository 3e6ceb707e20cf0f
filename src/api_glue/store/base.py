"""Store accessor contract for configs and runs."""

from abc import ABC, abstractmethod

from ..models import BaseConfig, Run


class Store(ABC):
    """Durable storage for config revisions and run records.

    Implementations must support concurrent reads, serialize writes per id and
    create config revisions atomically (last writer wins per config id). Stored
    values are copies: mutating a returned object never changes the store.
    Infrastructure errors are raised as `StoreFailure`.
    """

    @abstractmethod
    async def get_config(self, config_id: str) -> BaseConfig | None:
        """Latest revision of a config, or None."""

    @abstractmethod
    async def get_config_revision(self, config_id: str, revision: int) -> BaseConfig | None:
        """A specific revision of a config, or None."""

    @abstractmethod
    async def put_config(self, config: BaseConfig) -> int:
        """Store `config` as a new revision and return the revision number."""

    @abstractmethod
    async def delete_config(self, config_id: str) -> bool:
        """Delete every revision of a config. Returns False if it did not exist."""

    @abstractmethod
    async def list_configs(self, kind: str | None = None) -> list[BaseConfig]:
        """Latest revision of every config, optionally filtered by kind."""

    @abstractmethod
    async def put_run(self, run: Run) -> None:
        """Insert or replace a run record."""

    @abstractmethod
    async def get_run(self, run_id: str) -> Run | None:
        """A run by id, or None."""

    @abstractmethod
    async def list_runs(self, limit: int | None = None) -> list[Run]:
        """Runs ordered newest first."""
