"""Push registration keep-alive bookkeeping.

A registration for a device/identity pair is valid for a fixed TTL (one year
by default). The TTL restarts whenever a new registration succeeds or a push
notification is delivered to the pair, so we re-register once half of it has
elapsed since the last binding.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from push.store import KeyValueStore

LOGGER = logging.getLogger(__name__)

CACHED_DEVICE_TOKEN_KEY = "CachedDeviceToken"
CACHED_BINDING_DATE_KEY = "CachedBindingDate"
DEFAULT_REGISTRATION_TTL_DAYS = 365


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationState:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_days: int = DEFAULT_REGISTRATION_TTL_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ttl = timedelta(days=ttl_days)
        self._clock = clock

    @property
    def refresh_after(self) -> timedelta:
        return self._ttl / 2

    async def last_binding(self) -> datetime | None:
        raw = await self._store.get(CACHED_BINDING_DATE_KEY)
        if raw is None:
            return None
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            LOGGER.warning("Ignoring unparseable binding date %r", raw)
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    async def cached_device_token(self) -> str | None:
        return await self._store.get(CACHED_DEVICE_TOKEN_KEY)

    async def registration_required(self, now: datetime | None = None) -> bool:
        last = await self.last_binding()
        if last is None:
            return True
        now = now or self._clock()
        return now >= last + self.refresh_after

    async def needs_registration(self, device_token: str, now: datetime | None = None) -> bool:
        """True if the binding is due or the device token changed."""

        if await self.registration_required(now):
            return True
        return await self.cached_device_token() != device_token

    async def record_registration(self, device_token: str, now: datetime | None = None) -> None:
        await self._store.set(CACHED_DEVICE_TOKEN_KEY, device_token)
        await self.touch_binding(now)
        LOGGER.debug("Recorded push registration")

    async def touch_binding(self, now: datetime | None = None) -> None:
        now = now or self._clock()
        await self._store.set(CACHED_BINDING_DATE_KEY, now.isoformat())

    async def clear(self) -> None:
        await self._store.delete(CACHED_DEVICE_TOKEN_KEY)
        await self._store.delete(CACHED_BINDING_DATE_KEY)
