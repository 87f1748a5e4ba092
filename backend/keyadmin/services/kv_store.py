"""
Dual-backend value store.

The remote side is any Redis-protocol service (Upstash in production). The
local side is a directory of JSON files that mirrors the four legacy stores.
Remote failures never propagate: each call is guarded on its own and degrades
to the file mirror (legacy blobs) or to a logged no-op (indexed keys).
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import tempfile
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from keyadmin.config import Settings
from keyadmin.keyspace import Keyspace, LegacyBlob

logger = structlog.get_logger()

# Transport errors, plus JSON decode errors for values written by other tools
REMOTE_ERRORS = (RedisError, OSError, ValueError)


class KeyValueConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class KeyValueConfig:
    url: str
    namespace: str
    socket_timeout: float

    @staticmethod
    def from_settings(settings: Settings) -> "KeyValueConfig":
        if not settings.kv_url:
            raise KeyValueConfigError("KV_URL is required when the remote store is enabled")
        if not settings.kv_url.startswith(("redis://", "rediss://", "unix://")):
            raise KeyValueConfigError("KV_URL must be a redis://, rediss:// or unix:// URL")

        return KeyValueConfig(
            url=settings.kv_url,
            namespace=settings.kv_namespace,
            socket_timeout=settings.kv_socket_timeout_seconds,
        )


@runtime_checkable
class KeyValueClient(Protocol):
    """Remote backend holding JSON-compatible values."""

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...


@runtime_checkable
class SetCapableClient(KeyValueClient, Protocol):
    async def smembers(self, key: str) -> list[str]: ...

    async def srem(self, key: str, member: str) -> None: ...


class RedisKeyValueClient:
    """JSON-over-Redis client, value-compatible with @vercel/kv."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    @classmethod
    def from_config(cls, config: KeyValueConfig) -> "RedisKeyValueClient":
        return cls(
            aioredis.from_url(
                config.url,
                decode_responses=True,
                socket_timeout=config.socket_timeout,
                socket_connect_timeout=config.socket_timeout,
            )
        )

    async def get(self, key: str) -> Any:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        await self._redis.set(key, json.dumps(value))

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def smembers(self, key: str) -> list[str]:
        return sorted(await self._redis.smembers(key))

    async def srem(self, key: str, member: str) -> None:
        await self._redis.srem(key, member)

    async def close(self) -> None:
        await self._redis.aclose()


class StoreSource(StrEnum):
    REMOTE = "remote"
    FILE = "file"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class LoadResult:
    value: Any
    source: StoreSource


class DualBackendStore:
    def __init__(
        self,
        client: KeyValueClient | None,
        data_dir: str | Path,
        keyspace: Keyspace | None = None,
    ) -> None:
        self._client = client
        self._data_dir = Path(data_dir)
        self.keyspace = keyspace or Keyspace()

    @property
    def has_remote(self) -> bool:
        return self._client is not None

    @property
    def supports_sets(self) -> bool:
        return isinstance(self._client, SetCapableClient)

    # Legacy blobs: remote first, JSON file mirror always written

    async def load(self, key: str, *, file_name: str, default: Any) -> LoadResult:
        if self._client is not None:
            try:
                value = await self._client.get(key)
            except REMOTE_ERRORS as e:
                logger.warning("kv_load_failed", key=key, error=str(e))
            else:
                if value is not None:
                    return LoadResult(value, StoreSource.REMOTE)

        return await asyncio.to_thread(self._read_file, file_name, default)

    async def save(self, key: str, value: Any, *, file_name: str) -> None:
        if self._client is not None:
            try:
                await self._client.set(key, value)
            except REMOTE_ERRORS as e:
                logger.warning("kv_save_failed", key=key, error=str(e))

        await asyncio.to_thread(self._write_file, file_name, value)

    async def load_legacy(self, blob: LegacyBlob) -> LoadResult:
        return await self.load(blob.kv_key, file_name=blob.file_name, default=blob.default())

    async def save_legacy(self, blob: LegacyBlob, value: Any) -> None:
        await self.save(blob.kv_key, value, file_name=blob.file_name)

    # Indexed keys: remote only

    async def get(self, key: str) -> Any:
        if self._client is None:
            return None
        try:
            return await self._client.get(key)
        except REMOTE_ERRORS as e:
            logger.warning("kv_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any) -> None:
        if self._client is None:
            return
        try:
            await self._client.set(key, value)
        except REMOTE_ERRORS as e:
            logger.warning("kv_set_failed", key=key, error=str(e))

    async def delete(self, key: str) -> None:
        if self._client is None:
            return
        try:
            await self._client.delete(key)
        except REMOTE_ERRORS as e:
            logger.warning("kv_delete_failed", key=key, error=str(e))

    async def set_members(self, key: str) -> list[str]:
        if not self.supports_sets:
            return []
        try:
            members = await self._client.smembers(key)
        except REMOTE_ERRORS as e:
            logger.warning("kv_smembers_failed", key=key, error=str(e))
            return []
        return [str(m) for m in members] if isinstance(members, (list, set, tuple)) else []

    async def set_remove(self, key: str, member: str) -> None:
        if not self.supports_sets:
            return
        try:
            await self._client.srem(key, member)
        except REMOTE_ERRORS as e:
            logger.warning("kv_srem_failed", key=key, member=member, error=str(e))

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

    # File mirror

    def _read_file(self, file_name: str, default: Any) -> LoadResult:
        path = self._data_dir / file_name
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return LoadResult(default, StoreSource.DEFAULT)
        except OSError as e:
            logger.error("mirror_read_failed", path=str(path), error=str(e))
            return LoadResult(default, StoreSource.DEFAULT)

        if not raw.strip():
            return LoadResult(default, StoreSource.DEFAULT)

        try:
            return LoadResult(json.loads(raw), StoreSource.FILE)
        except ValueError as e:
            logger.error("mirror_parse_failed", path=str(path), error=str(e))
            return LoadResult(default, StoreSource.DEFAULT)

    def _write_file(self, file_name: str, value: Any) -> None:
        path = self._data_dir / file_name
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            # Atomic replace
            fd, tmp_name = tempfile.mkstemp(dir=self._data_dir, prefix=f".{file_name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(value, fh, indent=2, ensure_ascii=False)
                os.replace(tmp_name, path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            logger.error("mirror_write_failed", path=str(path), error=str(e))


def build_store(settings: Settings) -> DualBackendStore:
    """Composition root for the store: remote client only when enabled."""
    client = None
    namespace = settings.kv_namespace
    if settings.kv_enabled:
        config = KeyValueConfig.from_settings(settings)
        client = RedisKeyValueClient.from_config(config)
        namespace = config.namespace

    store = DualBackendStore(client, settings.data_dir, Keyspace(namespace))
    logger.info(
        "kv_store_ready",
        backend="remote" if store.has_remote else "file",
        namespace=namespace,
        data_dir=settings.data_dir,
    )
    return store
