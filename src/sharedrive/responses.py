"""Uniform ``{success, message?, data?}`` envelopes for results and errors.

Transports call ``ok`` with a result and ``from_exception`` with anything a
drive operation raised.  Unexpected exceptions never leak their text unless
``debug`` is set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sharedrive.drive.exceptions import DriveError

if TYPE_CHECKING:
    from collections.abc import Awaitable

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass
class Envelope:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))


def _serialize(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return model_dump(mode="json")
    if isinstance(value, list | tuple):
        return [_serialize(v) for v in value]
    return value


def ok(result: Any = None, message: str | None = None, status_code: int = 200) -> Envelope:
    """Success envelope.

    Results whose ``to_dict`` already produces a ``success`` key are passed
    through as the whole body; anything else is wrapped under ``data``.
    """
    payload = _serialize(result)
    if isinstance(payload, dict) and "success" in payload:
        passthrough = dict(payload)
        if message is not None:
            passthrough["message"] = message
        return Envelope(status_code, passthrough)

    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if payload is not None:
        body["data"] = payload
    return Envelope(status_code, body)


def from_exception(exc: BaseException, *, debug: bool = False) -> Envelope:
    """Failure envelope with the status code of *exc*."""
    if isinstance(exc, DriveError):
        body: dict[str, Any] = {"success": False, "message": exc.message, "kind": exc.kind}
        return Envelope(exc.status_code, body)

    logger.error("Unhandled error: %s", exc, exc_info=exc)
    body = {"success": False, "message": INTERNAL_ERROR_MESSAGE, "kind": "Internal"}
    if debug:
        body["error"] = {"type": type(exc).__name__, "details": str(exc)}
    return Envelope(500, body)


async def respond(
    operation: Awaitable[Any],
    *,
    message: str | None = None,
    status_code: int = 200,
    debug: bool = False,
) -> Envelope:
    """Await *operation* and wrap its outcome in an envelope."""
    try:
        result = await operation
    except Exception as exc:
        return from_exception(exc, debug=debug)
    return ok(result, message=message, status_code=status_code)
