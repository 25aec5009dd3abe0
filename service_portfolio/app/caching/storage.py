"""
Durable key-value storage backends for the portfolio cache.

Backends follow a small synchronous get/set/remove contract over string
values, modelled on browser-style key-value storage. Every backend reports
its native failures as StorageError so callers can degrade to memory-only
caching.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union, TYPE_CHECKING

import redis

from shared.errors import StorageError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig


class DurableStorage(ABC):
    """Abstract durable storage."""

    @abstractmethod
    def get_item(self, name: str) -> Optional[str]:
        """Return the stored value or None when absent."""

    @abstractmethod
    def set_item(self, name: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove_item(self, name: str) -> None:
        """Remove a value; removing an absent name is not an error."""


class MemoryStorage(DurableStorage):
    """Process-local storage. Survives TTLCache instances, not the process."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, name: str) -> Optional[str]:
        return self._items.get(name)

    def set_item(self, name: str, value: str) -> None:
        self._items[name] = value

    def remove_item(self, name: str) -> None:
        self._items.pop(name, None)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: object) -> bool:
        return name in self._items


class FileStorage(DurableStorage):
    """One file per item under a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.logger = get_logger("portfolio.cache.storage.file")

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def get_item(self, name: str) -> Optional[str]:
        path = self._path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {path}", {"name": name, "error": str(exc)}) from exc

    def set_item(self, name: str, value: str) -> None:
        path = self._path(name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StorageError(f"Failed to write {path}", {"name": name, "error": str(exc)}) from exc

    def remove_item(self, name: str) -> None:
        path = self._path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Failed to remove {path}", {"name": name, "error": str(exc)}) from exc


class RedisStorage(DurableStorage):
    """Redis-backed storage shared by every process pointed at the same server."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[redis.Redis] = None,
        prefix: str = "portfolio:",
    ):
        if client is None and redis_url is None:
            raise ValueError("RedisStorage needs a redis_url or a client")
        self.redis_url = redis_url
        self.prefix = prefix
        self.logger = get_logger("portfolio.cache.storage.redis")
        self._client = client

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._client

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def get_item(self, name: str) -> Optional[str]:
        try:
            value = self._get_client().get(self._key(name))
        except redis.RedisError as exc:
            raise StorageError("Redis read failed", {"name": name, "error": str(exc)}) from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set_item(self, name: str, value: str) -> None:
        try:
            self._get_client().set(self._key(name), value)
        except redis.RedisError as exc:
            raise StorageError("Redis write failed", {"name": name, "error": str(exc)}) from exc

    def remove_item(self, name: str) -> None:
        try:
            self._get_client().delete(self._key(name))
        except redis.RedisError as exc:
            raise StorageError("Redis delete failed", {"name": name, "error": str(exc)}) from exc

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def create_storage(config: "BaseConfig") -> DurableStorage:
    """Build the storage backend named by configuration."""
    backend = config.cache_storage.lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "file":
        return FileStorage(config.cache_dir)
    if backend == "redis":
        return RedisStorage(config.redis_url, prefix=config.redis_prefix)
    raise ValueError(f"Unknown cache storage backend: {config.cache_storage}")
