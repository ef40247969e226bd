"""Storage for pending authorizations.

A pending authorization lives from the authorization redirect until the
callback consumes it. Stores only need to keep it for its time-to-live;
removing an absent entry is not an error, so a repeated callback cleanup is
harmless.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
import logging
from typing import Dict, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from social.graze.atclient.model.oauth import PendingAuthorization

PENDING_AUTHORIZATION_KEY_PREFIX = "oauth_request:"

logger = logging.getLogger(__name__)


class PendingAuthorizationStore(ABC):
    @abstractmethod
    async def save(self, pending: PendingAuthorization) -> None:
        pass

    @abstractmethod
    async def get(self, state: str) -> Optional[PendingAuthorization]:
        """The unexpired pending authorization stored under ``state``."""
        pass

    @abstractmethod
    async def pop(self, state: str) -> Optional[PendingAuthorization]:
        """Remove and return the entry for ``state`` in one step.

        Of several concurrent callers with the same ``state`` at most one
        receives the entry.
        """
        pass

    @abstractmethod
    async def delete(self, state: str) -> None:
        pass


class MemoryPendingAuthorizationStore(PendingAuthorizationStore):
    """In-process store, for single-process applications and tests."""

    def __init__(self) -> None:
        self._pending: Dict[str, PendingAuthorization] = {}

    async def save(self, pending: PendingAuthorization) -> None:
        self._pending[pending.state] = pending

    async def get(self, state: str) -> Optional[PendingAuthorization]:
        pending = self._pending.get(state)
        if pending is None:
            return None
        if pending.is_expired(datetime.now(timezone.utc)):
            self._pending.pop(state, None)
            return None
        return pending

    async def pop(self, state: str) -> Optional[PendingAuthorization]:
        pending = self._pending.pop(state, None)
        if pending is None or pending.is_expired(datetime.now(timezone.utc)):
            return None
        return pending

    async def delete(self, state: str) -> None:
        self._pending.pop(state, None)


class RedisPendingAuthorizationStore(PendingAuthorizationStore):
    """Redis-backed store. Entries are JSON documents with a TTL."""

    def __init__(self, redis_client: redis.Redis, ttl: int = 600) -> None:
        self._redis = redis_client
        self._ttl = ttl

    @staticmethod
    def key(state: str) -> str:
        return f"{PENDING_AUTHORIZATION_KEY_PREFIX}{state}"

    async def save(self, pending: PendingAuthorization) -> None:
        await self._redis.set(
            self.key(pending.state), pending.model_dump_json(), ex=self._ttl
        )

    @staticmethod
    def _load(raw: bytes | str) -> Optional[PendingAuthorization]:
        try:
            pending = PendingAuthorization.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding unreadable pending authorization")
            return None
        if pending.is_expired(datetime.now(timezone.utc)):
            return None
        return pending

    async def get(self, state: str) -> Optional[PendingAuthorization]:
        raw = await self._redis.get(self.key(state))
        if raw is None:
            return None
        pending = self._load(raw)
        if pending is None:
            await self.delete(state)
        return pending

    async def pop(self, state: str) -> Optional[PendingAuthorization]:
        raw = await self._redis.getdel(self.key(state))
        if raw is None:
            return None
        return self._load(raw)

    async def delete(self, state: str) -> None:
        await self._redis.delete(self.key(state))
