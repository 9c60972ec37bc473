"""Factory wiring the configured collaborators into an orchestrator."""

from __future__ import annotations

from calls.events import CallEventBus
from calls.orchestrator import CallOrchestrator
from config.settings import Settings, get_settings
from push.registration import RegistrationState
from push.store import KeyValueStore
from surface.base import CallManagementSurface
from surface.loopback import LoopbackSurface
from telephony.base import TelephonyTransport
from telephony.loopback import LoopbackTransport


def build_transport(settings: Settings | None = None) -> TelephonyTransport:
    """Instantiate the configured telephony transport."""

    settings = settings or get_settings()
    if settings.telephony_provider == "loopback":
        return LoopbackTransport(auto_progress=settings.loopback_auto_progress)
    raise ValueError(f"Unsupported telephony_provider: {settings.telephony_provider}")


def build_surface(settings: Settings | None = None) -> CallManagementSurface:
    settings = settings or get_settings()
    if settings.telephony_provider == "loopback":
        return LoopbackSurface(
            max_call_groups=settings.max_call_groups,
            max_calls_per_call_group=settings.max_calls_per_call_group,
        )
    raise ValueError(f"Unsupported telephony_provider: {settings.telephony_provider}")


def build_orchestrator(
    store: KeyValueStore,
    *,
    settings: Settings | None = None,
    events: CallEventBus | None = None,
) -> CallOrchestrator:
    settings = settings or get_settings()
    return CallOrchestrator(
        build_surface(settings),
        build_transport(settings),
        events=events,
        registration=RegistrationState(store, ttl_days=settings.registration_ttl_days),
    )
