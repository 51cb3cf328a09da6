import asyncio
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from .configuration import DEFAULT_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


class RequestTimedOut(Exception):
    """Raised to stop a handler whose request already received a timeout response."""


# Keeps drain tasks referenced until they finish.
_late_responses: set[asyncio.Future] = set()


async def _discard_late_response(task: "asyncio.Future[Response]") -> None:
    try:
        response = await task
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Request failed after its timeout response was sent: {exc!r}")
        return

    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is not None:
        async for _ in body_iterator:
            pass


class TimeoutMiddleware(BaseHTTPMiddleware):
    """
    Answers 503 once a request has been running for ``timeout`` seconds.

    The downstream handler is not cancelled: it keeps running, finds
    ``request.state.timedout`` set, and should stop at its next checkpoint
    (see halt_on_timedout). Remote calls already in flight run to completion.
    """

    def __init__(self, app, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.timedout = False
        task = asyncio.ensure_future(call_next(request))
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if task in done:
            return task.result()

        request.state.timedout = True
        logger.warning(f"{request.method} {request.url.path} timed out after {self.timeout}s")
        drain = asyncio.ensure_future(_discard_late_response(task))
        _late_responses.add(drain)
        drain.add_done_callback(_late_responses.discard)
        return JSONResponse(status_code=503, content={"detail": "Response timeout"})


def halt_on_timedout(request: Request) -> None:
    """Stop processing if the timeout middleware has already answered this request."""
    if getattr(request.state, "timedout", False):
        raise RequestTimedOut(request.url.path)
