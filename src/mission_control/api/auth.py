"""Bearer-token guard for mutating endpoints."""

from __future__ import annotations

import hmac
import logging

from fastapi import Request, status
from fastapi.exceptions import HTTPException

logger = logging.getLogger(__name__)


def require_runner_token(request: Request) -> None:
    """Accept `Authorization: Bearer <MISSION_CONTROL_RUNNER_TOKEN>` only."""

    expected = request.app.state.services.settings.api.runner_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Runner token is not configured",
        )
    auth = request.headers.get("authorization", "")
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        client = request.client.host if request.client else "-"
        logger.warning("AUTH: invalid runner token from %s", client)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token")
