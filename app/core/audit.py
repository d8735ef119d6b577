# app/core/audit.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional
from uuid import uuid4

log = logging.getLogger("stockcore.audit")


# ---------------- Audit batch context ----------------


@dataclass
class AuditBatch:
    """
    Correlation context for one logical user action:

    - batch_id: fresh uuid4 hex, copied onto every stock_ledger / audit_events
      row written while the batch is open
    - source: optional origin, e.g. 'http:/inventory/transfer/batch'
    - ledger_entry_ids / audit_event_ids: rows tagged so far

    The batch is passed explicitly to writers; there is no ambient
    "current batch", so concurrent requests can never share one.
    """

    batch_id: str
    source: Optional[str] = None
    closed: bool = False
    ledger_entry_ids: List[int] = field(default_factory=list)
    audit_event_ids: List[int] = field(default_factory=list)

    def require_open(self) -> None:
        if self.closed:
            raise RuntimeError(f"audit batch {self.batch_id} is already closed")

    def record_ledger(self, entry_id: int) -> None:
        self.require_open()
        self.ledger_entry_ids.append(int(entry_id))

    def record_audit(self, event_id: int) -> None:
        self.require_open()
        self.audit_event_ids.append(int(event_id))


def start_batch(source: Optional[str] = None) -> AuditBatch:
    """Allocate a new audit batch."""
    batch = AuditBatch(batch_id=uuid4().hex, source=source)
    log.debug("audit batch started: %s (%s)", batch.batch_id, source)
    return batch


def end_batch(batch: AuditBatch) -> None:
    """Close the batch; later writes with it raise."""
    if batch.closed:
        return
    batch.closed = True
    log.debug(
        "audit batch closed: %s ledger=%d audit=%d",
        batch.batch_id,
        len(batch.ledger_entry_ids),
        len(batch.audit_event_ids),
    )


@contextmanager
def audit_batch(source: Optional[str] = None, batch: Optional[AuditBatch] = None) -> Iterator[AuditBatch]:
    """
    Open a batch for the duration of the block and always close it, even when
    the block raises. An outer batch passed in is reused and left open for its
    owner to close.
    """
    if batch is not None:
        batch.require_open()
        yield batch
        return

    own = start_batch(source)
    try:
        yield own
    finally:
        end_batch(own)
