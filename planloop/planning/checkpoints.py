"""
Checkpoint Stores

Keyed persistence of suspended run state.

Design decisions:
- Stores see opaque bytes only; the orchestrator owns the format
- A Load after a Save returns the same bytes, never a partial write
- Operations on one ID are serialized, different IDs proceed independently
- Conflict and retention behaviour is policy, not store logic
- Multiple storage backends behind one ABC
"""

import asyncio
import hashlib
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from planloop.config.settings import CheckpointSettings
from planloop.core.exceptions import CheckpointConflictError, CheckpointError
from planloop.observability.logging import get_logger

logger = get_logger("planloop.checkpoints")


class ConflictPolicy(str, Enum):
    """What Save does when the ID already holds an active checkpoint."""

    OVERWRITE = "overwrite"
    ERROR = "error"


@dataclass(frozen=True)
class CheckpointPolicy:
    """Conflict and retention policy applied by the orchestrator."""

    on_conflict: ConflictPolicy = ConflictPolicy.OVERWRITE
    delete_on_finish: bool = True

    @property
    def overwrite(self) -> bool:
        return self.on_conflict == ConflictPolicy.OVERWRITE

    @classmethod
    def from_settings(cls, settings: CheckpointSettings) -> "CheckpointPolicy":
        return cls(
            on_conflict=ConflictPolicy(settings.on_conflict),
            delete_on_finish=settings.delete_on_finish,
        )


class CheckpointStore(ABC):
    """Abstract storage backend for checkpoints."""

    @abstractmethod
    async def save(self, checkpoint_id: str, state: bytes, *, overwrite: bool = True) -> None:
        """
        Persist state under an ID.

        Raises CheckpointConflictError when overwrite is False and the ID
        is taken.
        """
        pass

    @abstractmethod
    async def load(self, checkpoint_id: str) -> bytes | None:
        """Load a checkpoint by ID, None when absent."""
        pass

    @abstractmethod
    async def delete(self, checkpoint_id: str) -> bool:
        """Delete a checkpoint. True if it existed."""
        pass

    async def exists(self, checkpoint_id: str) -> bool:
        return await self.load(checkpoint_id) is not None


class InMemoryCheckpointStore(CheckpointStore):
    """Volatile store guarded by a single lock."""

    def __init__(self):
        self._data: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._data)

    async def save(self, checkpoint_id: str, state: bytes, *, overwrite: bool = True) -> None:
        async with self._lock:
            if not overwrite and checkpoint_id in self._data:
                raise CheckpointConflictError(checkpoint_id)
            self._data[checkpoint_id] = bytes(state)

    async def load(self, checkpoint_id: str) -> bytes | None:
        async with self._lock:
            return self._data.get(checkpoint_id)

    async def delete(self, checkpoint_id: str) -> bool:
        async with self._lock:
            return self._data.pop(checkpoint_id, None) is not None


class FileCheckpointStore(CheckpointStore):
    """
    One file per checkpoint under a directory.

    Writes go to a temporary file that is atomically renamed into place.
    File names are hashes of the ID so any ID string is safe. Per-ID
    operations are serialised through a fixed pool of locks picked by hash.
    """

    suffix = ".ckpt"
    lock_stripes = 64

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)
        self._locks = [asyncio.Lock() for _ in range(self.lock_stripes)]

    @property
    def directory(self) -> Path:
        return self._directory

    @staticmethod
    def _digest(checkpoint_id: str) -> str:
        return hashlib.sha256(checkpoint_id.encode("utf-8")).hexdigest()

    def _path(self, checkpoint_id: str) -> Path:
        return self._directory / f"{self._digest(checkpoint_id)}{self.suffix}"

    def _lock(self, checkpoint_id: str) -> asyncio.Lock:
        return self._locks[int(self._digest(checkpoint_id)[:8], 16) % self.lock_stripes]

    async def save(self, checkpoint_id: str, state: bytes, *, overwrite: bool = True) -> None:
        path = self._path(checkpoint_id)
        async with self._lock(checkpoint_id):
            if not overwrite and await asyncio.to_thread(path.exists):
                raise CheckpointConflictError(checkpoint_id)
            try:
                await asyncio.to_thread(self._write, path, bytes(state))
            except OSError as e:
                raise CheckpointError(
                    f"Failed to save checkpoint {checkpoint_id}",
                    context={"checkpoint_id": checkpoint_id, "path": str(path)},
                    cause=e,
                )

    async def load(self, checkpoint_id: str) -> bytes | None:
        path = self._path(checkpoint_id)
        async with self._lock(checkpoint_id):
            try:
                return await asyncio.to_thread(path.read_bytes)
            except FileNotFoundError:
                return None
            except OSError as e:
                raise CheckpointError(
                    f"Failed to load checkpoint {checkpoint_id}",
                    context={"checkpoint_id": checkpoint_id, "path": str(path)},
                    cause=e,
                )

    async def delete(self, checkpoint_id: str) -> bool:
        path = self._path(checkpoint_id)
        async with self._lock(checkpoint_id):
            try:
                await asyncio.to_thread(path.unlink)
                return True
            except FileNotFoundError:
                return False
            except OSError as e:
                raise CheckpointError(
                    f"Failed to delete checkpoint {checkpoint_id}",
                    context={"checkpoint_id": checkpoint_id, "path": str(path)},
                    cause=e,
                )

    def _write(self, path: Path, state: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
        try:
            tmp.write_bytes(state)
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()


class RedisCheckpointStore(CheckpointStore):
    """Redis-based checkpoint storage."""

    def __init__(self, redis_client: Any, prefix: str = "planloop:checkpoint:", ttl_seconds: int | None = None):
        self._redis = redis_client
        self._prefix = prefix
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, prefix: str = "planloop:checkpoint:") -> "RedisCheckpointStore":
        import redis.asyncio as redis

        return cls(redis.from_url(url), prefix=prefix)

    def _key(self, checkpoint_id: str) -> str:
        return f"{self._prefix}{checkpoint_id}"

    async def save(self, checkpoint_id: str, state: bytes, *, overwrite: bool = True) -> None:
        try:
            stored = await self._redis.set(
                self._key(checkpoint_id),
                bytes(state),
                nx=not overwrite,
                ex=self._ttl,
            )
        except Exception as e:
            raise CheckpointError(
                f"Failed to save checkpoint {checkpoint_id}",
                context={"checkpoint_id": checkpoint_id},
                cause=e,
            )

        if not overwrite and not stored:
            raise CheckpointConflictError(checkpoint_id)

    async def load(self, checkpoint_id: str) -> bytes | None:
        try:
            data = await self._redis.get(self._key(checkpoint_id))
        except Exception as e:
            raise CheckpointError(
                f"Failed to load checkpoint {checkpoint_id}",
                context={"checkpoint_id": checkpoint_id},
                cause=e,
            )

        if data is None:
            return None
        if isinstance(data, str):
            return data.encode("utf-8")
        return bytes(data)

    async def delete(self, checkpoint_id: str) -> bool:
        try:
            removed = await self._redis.delete(self._key(checkpoint_id))
        except Exception as e:
            raise CheckpointError(
                f"Failed to delete checkpoint {checkpoint_id}",
                context={"checkpoint_id": checkpoint_id},
                cause=e,
            )
        return bool(removed)


def build_checkpoint_store(settings: CheckpointSettings) -> CheckpointStore:
    """Create the store selected by settings."""
    if settings.backend == "file":
        store: CheckpointStore = FileCheckpointStore(settings.directory)
    elif settings.backend == "redis":
        store = RedisCheckpointStore.from_url(settings.redis_url, prefix=settings.redis_prefix)
    else:
        store = InMemoryCheckpointStore()

    logger.info("Checkpoint store ready", backend=settings.backend)
    return store
