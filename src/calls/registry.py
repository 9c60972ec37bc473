"""Arena of sessions and pending invites keyed by call id."""

from __future__ import annotations

from collections.abc import Iterator

from calls.models import Invite, Session


class CallRegistry:
    """Single store for the orchestrator's call state.

    An id is never present in both maps. Callers hold the orchestrator lock
    while mutating.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._invites: dict[str, Invite] = {}

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions or call_id in self._invites

    # Invites

    def add_invite(self, invite: Invite) -> None:
        if invite.call_id in self:
            raise KeyError(f"Call id already registered: {invite.call_id}")
        self._invites[invite.call_id] = invite

    def get_invite(self, call_id: str) -> Invite | None:
        return self._invites.get(call_id)

    def pop_invite(self, call_id: str) -> Invite | None:
        return self._invites.pop(call_id, None)

    def find_invite_by_sid(self, call_sid: str) -> Invite | None:
        return next(
            (invite for invite in self._invites.values() if invite.call_sid == call_sid),
            None,
        )

    def invites(self) -> list[Invite]:
        return list(self._invites.values())

    # Sessions

    def add_session(self, session: Session) -> None:
        if session.call_id in self:
            raise KeyError(f"Call id already registered: {session.call_id}")
        self._sessions[session.call_id] = session

    def promote_invite(self, session: Session) -> None:
        """Replace the invite sharing `session.call_id` with the session."""

        if session.call_id not in self._invites:
            raise KeyError(f"No pending invite for {session.call_id}")
        if session.call_id in self._sessions:
            raise KeyError(f"Call id already registered: {session.call_id}")
        del self._invites[session.call_id]
        self._sessions[session.call_id] = session

    def get_session(self, call_id: str) -> Session | None:
        return self._sessions.get(call_id)

    def pop_session(self, call_id: str) -> Session | None:
        return self._sessions.pop(call_id, None)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def __iter__(self) -> Iterator[Session]:
        return iter(self.sessions())

    def __len__(self) -> int:
        return len(self._sessions)
