"""
Typed failures raised by the APS clients.

Callers distinguish "not found" and "conflict" from every other remote failure
by exception type, never by inspecting response bodies.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx


class ApsError(Exception):
    """A non-2xx response from one of the APS endpoints."""

    def __init__(self, status_code: int, message: str, payload: Optional[Any] = None):
        super().__init__(f"APS request failed with status {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


class ApsNotFoundError(ApsError):
    pass


class ApsConflictError(ApsError):
    pass


def _extract_message(response: httpx.Response) -> tuple[str, Optional[Any]]:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None

    if isinstance(payload, dict):
        for key in ("reason", "developerMessage", "errorMessage", "detail", "message"):
            if payload.get(key):
                return str(payload[key]), payload
    return response.reason_phrase, payload


def raise_for_aps_status(response: httpx.Response) -> httpx.Response:
    """Return the response unchanged when successful, raise the matching ApsError otherwise."""
    if response.is_success:
        return response

    message, payload = _extract_message(response)
    if response.status_code == 404:
        raise ApsNotFoundError(response.status_code, message, payload)
    if response.status_code == 409:
        raise ApsConflictError(response.status_code, message, payload)
    raise ApsError(response.status_code, message, payload)
