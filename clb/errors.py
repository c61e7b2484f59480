from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class NoHealthyBackends(Exception):
    pass


class DiscoveryError(Exception):
    """The instance list for a logical name could not be fetched."""


class UpstreamError(Exception):
    def __init__(self, detail: str, timeout: bool = False):
        super().__init__(detail)
        self.detail = detail
        self.timeout = timeout


def install_error_handlers(app: FastAPI) -> None:
    """Map routing failures and bad requests onto HTTP status codes.

      - missing/invalid parameters -> 400
      - no instance for the logical name, registry unreachable -> 503
      - outbound call failed -> 502 (504 on timeout)
    """

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        missing = [".".join(str(p) for p in e.get("loc", ())[1:]) for e in exc.errors()]
        return JSONResponse(status_code=400, content={"detail": f"Invalid or missing parameter(s): {', '.join(missing)}"})

    @app.exception_handler(NoHealthyBackends)
    async def _no_backends(request: Request, exc: NoHealthyBackends) -> JSONResponse:
        log.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(DiscoveryError)
    async def _discovery(request: Request, exc: DiscoveryError) -> JSONResponse:
        log.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(UpstreamError)
    async def _upstream(request: Request, exc: UpstreamError) -> JSONResponse:
        log.error("%s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=504 if exc.timeout else 502, content={"detail": exc.detail})
