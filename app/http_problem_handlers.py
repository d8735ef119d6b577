# app/http_problem_handlers.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.problem import make_problem
from app.services.stock_errors import InsufficientStock, StockError, VersionConflict

logger = logging.getLogger("stockcore")

_NEXT_ACTIONS: Dict[str, List[Dict[str, str]]] = {
    VersionConflict.error_code: [{"action": "reload", "label": "Reload stock and retry"}],
    InsufficientStock.error_code: [{"action": "adjust", "label": "Add stock to the source location"}],
}


def _new_trace_id() -> str:
    return f"t_{uuid.uuid4().hex[:12]}"


def _req_ctx(req: Request) -> Dict[str, Any]:
    return {"path": getattr(req.url, "path", ""), "method": req.method}


def problem_from_stock_error(req: Request, exc: StockError) -> Dict[str, Any]:
    """StockError -> Problem body; error context merged over request context."""
    ctx = _req_ctx(req)
    ctx.update(exc.context)
    details = None
    if isinstance(exc, InsufficientStock) and exc.details:
        details = [
            {"type": "shortage", "path": f"transfers[{i}]", **d} for i, d in enumerate(exc.details)
        ]
    return make_problem(
        status_code=exc.http_status,
        error_code=exc.error_code,
        message=exc.message,
        context=ctx,
        details=details,
        next_actions=_NEXT_ACTIONS.get(exc.error_code),
        trace_id=_new_trace_id(),
    )


def _problem_from_http_exc(req: Request, exc: HTTPException) -> Dict[str, Any]:
    """
    HTTPException.detail -> Problem shape. Accepts:
    - a Problem dict already (context / trace_id filled in)
    - str or anything else (wrapped as a state problem)
    """
    status_code = int(exc.status_code)
    trace_id = _new_trace_id()
    ctx = _req_ctx(req)
    d = exc.detail

    if isinstance(d, dict) and "error_code" in d and "message" in d:
        out = dict(d)
        out.setdefault("http_status", status_code)
        out.setdefault("trace_id", trace_id)
        merged = dict(ctx)
        if isinstance(out.get("context"), dict):
            merged.update(out["context"])
        out["context"] = merged
        return out

    msg = str(d) if d is not None else "Request rejected"
    return make_problem(
        status_code=status_code,
        error_code="HTTP_ERROR",
        message=msg,
        context=ctx,
        details=[{"type": "state", "reason": msg}],
        trace_id=trace_id,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        trace_id = _new_trace_id()
        logger.exception("UNHANDLED_EXC[%s]: %s", trace_id, exc)
        content = make_problem(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="Internal server error",
            context=_req_ctx(req),
            trace_id=trace_id,
        )
        return JSONResponse(status_code=500, content=content)

    @app.exception_handler(StockError)
    async def _stock_exc(req: Request, exc: StockError):
        content = problem_from_stock_error(req, exc)
        if exc.http_status >= 500:
            logger.error("stock error %s: %s", exc.error_code, exc.message)
        return JSONResponse(status_code=exc.http_status, content=content)

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        details: List[Dict[str, Any]] = []
        for i, e in enumerate(exc.errors()):
            if not isinstance(e, dict):
                continue
            loc = ".".join(str(p) for p in e.get("loc", ()) if p != "body")
            details.append(
                {
                    "type": "validation",
                    "path": loc or f"validation[{i}]",
                    "reason": str(e.get("msg") or e.get("type") or "invalid"),
                }
            )

        content = make_problem(
            status_code=422,
            error_code="INVALID_REQUEST",
            message="Invalid request",
            context=_req_ctx(req),
            details=details,
            trace_id=_new_trace_id(),
        )
        return JSONResponse(status_code=422, content=content)

    @app.exception_handler(HTTPException)
    async def _http_exc(req: Request, exc: HTTPException):
        content = _problem_from_http_exc(req, exc)
        return JSONResponse(status_code=int(exc.status_code), content=content)
