from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from calls.errors import AudioRouteError, RequestDeniedError, SurfaceReportError, TransportError  # noqa: E402
from calls.orchestrator import CallOrchestrator  # noqa: E402
from push.registration import RegistrationState  # noqa: E402
from push.store import InMemoryKeyValueStore  # noqa: E402
from surface.base import (  # noqa: E402
    AnswerCallAction,
    CallManagementSurface,
    EndCallAction,
    PlayDigitsCallAction,
    SetHeldCallAction,
    SetMutedCallAction,
    StartCallAction,
)
from telephony.base import AudioDevice, TelephonyTransport, TransportCall  # noqa: E402
from telephony.loopback import LoopbackTransport  # noqa: E402


class RecordingSurface(CallManagementSurface):
    """Grants every transaction unless its action type is in `denied`."""

    def __init__(self) -> None:
        self.sink = None
        self.requests = []
        self.reports = []
        self.denied: set[type] = set()
        self.refuse_incoming = False

    def bind(self, actions) -> None:
        self.sink = actions

    async def request_transaction(self, action) -> None:
        self.requests.append(action)
        if type(action) in self.denied:
            raise RequestDeniedError(f"{type(action).__name__} denied")

        handlers = {
            StartCallAction: self.sink.perform_start,
            AnswerCallAction: self.sink.perform_answer,
            EndCallAction: self.sink.perform_end,
            SetHeldCallAction: self.sink.perform_set_held,
            SetMutedCallAction: self.sink.perform_set_muted,
            PlayDigitsCallAction: self.sink.perform_play_digits,
        }
        await handlers[type(action)](action)

    async def report_new_incoming_call(self, call_id, update) -> None:
        if self.refuse_incoming:
            raise SurfaceReportError("refused")
        self.reports.append(("incoming", call_id, update))

    async def report_call_updated(self, call_id, update) -> None:
        self.reports.append(("updated", call_id, update))

    async def report_outgoing_started_connecting(self, call_id) -> None:
        self.reports.append(("started_connecting", call_id, None))

    async def report_outgoing_connected(self, call_id) -> None:
        self.reports.append(("connected", call_id, None))

    async def report_call_ended(self, call_id, reason) -> None:
        self.reports.append(("ended", call_id, reason))

    def kinds(self, call_id: str) -> list[str]:
        return [kind for kind, reported_id, _ in self.reports if reported_id == call_id]

    def ended_reasons(self, call_id: str) -> list:
        return [detail for kind, reported_id, detail in self.reports if kind == "ended" and reported_id == call_id]


class FakeAudioDevice(AudioDevice):
    def __init__(self) -> None:
        self.enabled = False
        self.speaker = False
        self.fail = False

    def override_output(self, *, speaker: bool) -> None:
        if self.fail:
            raise AudioRouteError("route unavailable")
        self.speaker = speaker


class FakeTransportCall(TransportCall):
    def __init__(self, call_id: str, sid: str | None = None) -> None:
        self.call_id = call_id
        self.sid = sid
        self.muted = False
        self.on_hold = False
        self.digits = []
        self.disconnects = 0
        self.fail_disconnect = False
        self.fail_updates = False

    async def disconnect(self) -> None:
        self.disconnects += 1
        if self.fail_disconnect:
            raise TransportError("disconnect failed")

    async def set_muted(self, muted: bool) -> None:
        if self.fail_updates:
            raise TransportError("mute failed")
        self.muted = muted

    async def set_on_hold(self, on_hold: bool) -> None:
        if self.fail_updates:
            raise TransportError("hold failed")
        self.on_hold = on_hold

    async def send_digits(self, digits: str) -> None:
        self.digits.append(digits)


class FakeTransport(TelephonyTransport):
    """Records calls and never reports progress on its own."""

    def __init__(self) -> None:
        self.audio = FakeAudioDevice()
        self.calls: dict[str, FakeTransportCall] = {}
        self.dialed: list[str] = []
        self.accepted: list[str] = []
        self.rejected: list[str] = []
        self.fail_connect = False
        self.fail_accept = False
        self._decoder = LoopbackTransport(auto_progress=False)

    async def connect(self, *, address, call_id, events):
        if self.fail_connect:
            raise TransportError("connect failed")
        self.dialed.append(address)
        call = FakeTransportCall(call_id)
        self.calls[call_id] = call
        return call

    async def accept(self, invite, *, events):
        if self.fail_accept:
            raise TransportError("accept failed")
        self.accepted.append(invite.call_id)
        call = FakeTransportCall(invite.call_id, sid=invite.call_sid)
        self.calls[invite.call_id] = call
        return call

    async def reject(self, invite) -> None:
        self.rejected.append(invite.call_id)

    def decode_notification(self, payload):
        return self._decoder.decode_notification(payload)


@pytest.fixture()
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture()
def orchestrator(surface, transport, store) -> CallOrchestrator:
    return CallOrchestrator(surface, transport, registration=RegistrationState(store))


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory):
    tmp_dir = tmp_path_factory.mktemp("runtime")
    db_path = tmp_dir / "ahoy_test.db"

    # Must be set before importing modules that create the SQLAlchemy engine.
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{db_path.as_posix()}"
    os.environ["DATA_DIR"] = str(tmp_dir)
    # Ensure tests can rely on the schema existing without running Alembic.
    os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"
    # Remote progress is driven explicitly so API assertions are deterministic.
    os.environ["LOOPBACK_AUTO_PROGRESS"] = "false"
    os.environ.pop("CALL_EVENTS_WEBHOOK_URL", None)

    import importlib

    # Ensure clean import with the test DB settings.
    for module_name in [
        "config.settings",
        "db.base",
        "db.models",
        "db.repository",
        "calls.factory",
        "integrations.events_webhook",
        "api.dependencies",
        "api.routes",
        "api.push_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
