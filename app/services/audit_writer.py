# app/services/audit_writer.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditBatch
from app.models.audit_event import AuditEvent

logger = logging.getLogger("stockcore.audit")


class AuditEventWriter:
    """
    Single writer of audit_events:

    - category = flow ("INVENTORY" / "FULFILLMENT" / "INGEST")
    - event    = concrete action ("TRANSFER" / "ORDER_FULFILL" ...)
    - ref      = business reference (transfer ref, order id ...)
    - meta     = JSON payload; always carries flow + event

    Failures propagate: an audit row is part of the caller's atomic unit, so a
    failed insert rolls the stock change back with it.
    """

    @staticmethod
    async def write(
        session: AsyncSession,
        *,
        flow: str,
        event: str,
        ref: str,
        user_id: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
        batch: Optional[AuditBatch] = None,
    ) -> int:
        if batch is not None:
            batch.require_open()

        payload: Dict[str, Any] = dict(meta or {})
        payload.setdefault("flow", flow)
        payload.setdefault("event", event)
        if batch is not None:
            payload.setdefault("batch_id", batch.batch_id)
            if batch.source:
                payload.setdefault("source", batch.source)

        res = await session.execute(
            sa.insert(AuditEvent)
            .values(
                category=flow,
                event=event,
                ref=str(ref),
                user_id=user_id,
                batch_id=batch.batch_id if batch is not None else None,
                meta=payload,
            )
            .returning(AuditEvent.id)
        )
        event_id = int(res.scalar_one())

        if batch is not None:
            batch.record_audit(event_id)
        logger.debug("audit %s/%s ref=%s id=%s", flow, event, ref, event_id)
        return event_id


__all__ = ["AuditEventWriter"]
