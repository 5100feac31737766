"""Redis backend implementing ICycleLease."""

from __future__ import annotations

import redis

from tidemark.core.exceptions import LeaseError

LEASE_KEY_PREFIX = "tidemark:lease:"


class RedisCycleLease:
    """Production ICycleLease: one expiring key per table, owned by the running cycle."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0) -> None:
        self._host = host
        self._port = port
        self._db = db
        self._client = redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    @staticmethod
    def _key(table_name: str) -> str:
        return f"{LEASE_KEY_PREFIX}{table_name}"

    def acquire(self, table_name: str, owner: str, ttl_seconds: int) -> bool:
        try:
            return bool(self._client.set(self._key(table_name), owner, nx=True, ex=ttl_seconds))
        except Exception as exc:
            raise LeaseError(f"Redis SET NX failed for table={table_name!r}: {exc}") from exc

    def renew(self, table_name: str, owner: str, ttl_seconds: int) -> bool:
        key = self._key(table_name)
        try:
            if self._client.get(key) != owner:
                return False
            return bool(self._client.expire(key, ttl_seconds))
        except Exception as exc:
            raise LeaseError(f"Redis EXPIRE failed for table={table_name!r}: {exc}") from exc

    def release(self, table_name: str, owner: str) -> None:
        key = self._key(table_name)
        try:
            if self._client.get(key) == owner:
                self._client.delete(key)
        except Exception as exc:
            raise LeaseError(f"Redis DELETE failed for table={table_name!r}: {exc}") from exc
