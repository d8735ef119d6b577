# app/api/problem.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from fastapi import HTTPException


class ProblemDetail(TypedDict, total=False):
    # required
    type: str  # validation|shortage|conflict|state
    # optional: locates the offending line
    path: str  # e.g. transfers[1]
    reason: str

    product_id: int
    location_id: int
    from_location_id: int
    from_location_name: str

    current_quantity: int
    requested_quantity: int
    shortfall: int


class NextAction(TypedDict, total=False):
    action: str
    label: str


@dataclass(frozen=True)
class Problem:
    error_code: str
    message: str
    http_status: int
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[ProblemDetail]] = None
    next_actions: Optional[List[NextAction]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "http_status": int(self.http_status),
        }
        if self.context:
            out["context"] = self.context
        if self.details:
            out["details"] = self.details
        if self.next_actions:
            out["next_actions"] = self.next_actions
        if self.trace_id:
            out["trace_id"] = self.trace_id
        return out


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    next_actions: Optional[Sequence[NextAction]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        context=context,
        details=list(details) if details else None,
        next_actions=list(next_actions) if next_actions else None,
        trace_id=trace_id,
    )
    return p.to_dict()


def raise_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    next_actions: Optional[Sequence[NextAction]] = None,
    trace_id: Optional[str] = None,
) -> None:
    raise HTTPException(
        status_code=int(status_code),
        detail=make_problem(
            status_code=int(status_code),
            error_code=error_code,
            message=message,
            context=context,
            details=details,
            next_actions=next_actions,
            trace_id=trace_id,
        ),
    )


def raise_401(message: str = "Not authenticated") -> None:
    raise_problem(status_code=401, error_code="UNAUTHORIZED", message=message)


def raise_403(message: str = "Forbidden") -> None:
    raise_problem(status_code=403, error_code="FORBIDDEN", message=message)
