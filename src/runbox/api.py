from __future__ import annotations
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .core.models import (
    CompileError,
    Completed,
    InternalError,
    JobResult,
    Rejected,
    RunError,
)
from .services.job_service import JobService
from .settings import Settings, load_settings

log = structlog.get_logger(__name__)


# --------- Schemas ---------
class RunReq(BaseModel):
    # loosely typed on purpose: bad values become {"error": ...}, not a 422
    language: Any = None
    code: Any = None
    stdin: Any = ""


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


# --------- Rate limiting ---------
class RateLimiter:
    """Sliding window of request timestamps per client key."""

    def __init__(self, max_requests: int = 60, window_s: float = 60.0):
        self.max_requests = max_requests
        self.window_s = window_s
        self.requests: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = time.monotonic()

    def is_allowed(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            if now - self._last_sweep >= self.window_s:
                self._sweep(now)
            recent = [t for t in self.requests.get(key, ()) if now - t < self.window_s]
            if len(recent) >= self.max_requests:
                if recent:
                    self.requests[key] = recent
                else:
                    self.requests.pop(key, None)
                return False
            recent.append(now)
            self.requests[key] = recent
            return True

    def _sweep(self, now: float) -> None:
        # drop clients whose newest request has left the window
        stale = [k for k, ts in self.requests.items() if not ts or now - ts[-1] >= self.window_s]
        for k in stale:
            del self.requests[k]
        self._last_sweep = now


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def check_rate_limit(request: Request) -> None:
    limiter: RateLimiter = request.app.state.rate_limiter
    if not limiter.is_allowed(client_ip(request)):
        raise ApiError(429, "Too many requests, slow down.")


# --------- Body size ---------
class BodyTooLarge(HTTPException):
    def __init__(self):
        super().__init__(status_code=413, detail="request body too large")


class BodySizeLimitMiddleware:
    """
    Cap the request body at ``max_bytes``.

    A declared Content-Length over the cap is refused before the app runs.
    Otherwise the bytes actually received are counted, so chunked uploads
    without a length are capped too.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > self.max_bytes:
            response = JSONResponse(status_code=413, content={"error": BodyTooLarge().detail})
            await response(scope, receive, send)
            return

        received = 0

        async def counting_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise BodyTooLarge()
            return message

        await self.app(scope, counting_receive, send)


# --------- Wire format ---------
def result_to_wire(result: JobResult) -> Tuple[int, Dict[str, Any]]:
    """
    Map a JobResult to (status, body).

    Legacy quirk kept for existing clients: a toolchain-reported compile
    failure is sent as {"stderr": ...} while every other failure uses
    {"error": ...}.
    """
    if isinstance(result, Rejected):
        return 400, {"error": result.reason}
    if isinstance(result, CompileError):
        if result.timed_out:
            return 200, {"error": result.message}
        return 200, {"stderr": result.message}
    if isinstance(result, (RunError, InternalError)):
        return 200, {"error": result.message}
    if isinstance(result, Completed):
        return 200, {"stdout": result.stdout, "stderr": result.stderr, "exitCode": result.exit_code}
    raise TypeError(f"unknown job result: {result!r}")


# --------- App ---------
def create_app(settings: Optional[Settings] = None, service: Optional[JobService] = None) -> FastAPI:
    settings = settings or load_settings()
    svc = service or JobService(settings)

    app = FastAPI(title="runbox", dependencies=[Depends(check_rate_limit)])
    app.state.settings = settings
    app.state.service = svc
    app.state.rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_s=settings.rate_limit_window_s,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_bytes)

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(BodyTooLarge)
    async def _too_large(request: Request, exc: BodyTooLarge):
        log.info("api.body_too_large", client=client_ip(request))
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "invalid request body"})

    # --------- Endpoints ---------
    @app.get("/")
    async def health():
        return {"status": "ok", "concurrency": svc.queue.running, "queued": svc.queue.pending}

    @app.post("/run")
    async def run(req: RunReq):
        try:
            result = await svc.execute(req.language, req.code, req.stdin)
            status, body = result_to_wire(result)
        except Exception:
            log.exception("api.run_failed")
            return JSONResponse(status_code=500, content={"error": "Server error"})
        return JSONResponse(status_code=status, content=body)

    return app
