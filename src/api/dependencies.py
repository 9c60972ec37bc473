"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from fastapi import HTTPException
from starlette.requests import HTTPConnection

from calls.orchestrator import CallOrchestrator


def get_orchestrator(connection: HTTPConnection) -> CallOrchestrator:
    orchestrator = getattr(connection.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Call orchestrator is not running.")
    return orchestrator
