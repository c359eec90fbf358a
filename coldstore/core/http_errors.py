from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from coldstore.core.errors import ColdStoreError

log = logging.getLogger("coldstore.http")


def _trace_id() -> str:
    return f"t_{uuid.uuid4().hex[:12]}"


def _envelope(code: str, message: str, details: Any = None, **extra) -> dict:
    err: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        err["details"] = details
    err.update(extra)
    return {"error": err}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ColdStoreError)
    async def _business_exc(req: Request, exc: ColdStoreError):
        if exc.status >= 500:
            trace_id = _trace_id()
            log.error("%s[%s] %s %s: %s", exc.code, trace_id, req.method, req.url.path, exc.message)
            return JSONResponse(status_code=exc.status,
                                content=_envelope(exc.code, exc.message, exc.details, trace_id=trace_id))
        log.info("%s %s -> %s: %s", req.method, req.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        details = [
            {"path": ".".join(str(p) for p in e.get("loc", ())), "reason": str(e.get("msg") or e.get("type"))}
            for e in exc.errors()
            if isinstance(e, dict)
        ]
        return JSONResponse(status_code=422,
                            content=_envelope("validation_error", "Request body is invalid.", details))

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        trace_id = _trace_id()
        log.exception("unhandled error [%s] %s %s", trace_id, req.method, req.url.path)
        return JSONResponse(status_code=500,
                            content=_envelope("internal_error", "Internal server error.", trace_id=trace_id))
