# app/services/transfer_service.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditBatch, audit_batch
from app.core.tx import tx_atomic
from app.models.enums import LedgerLogType
from app.services.audit_writer import AuditEventWriter
from app.services.location_stock_service import apply_delta
from app.services.master_data import MasterDataService
from app.services.stock_availability_service import validate_stock_availability
from app.services.stock_errors import InsufficientStock, InvalidRequest, VersionConflict

log = logging.getLogger("stockcore.transfer")


@dataclass(frozen=True)
class TransferResult:
    ref: str
    batch_id: str
    product_id: int
    from_location_id: int
    to_location_id: int
    quantity: int
    from_quantity: int
    from_version: int
    to_quantity: int
    to_version: int
    ledger_entry_ids: tuple[int, int]
    audit_event_id: int

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["ledger_entry_ids"] = list(self.ledger_entry_ids)
        return d


def _new_transfer_ref() -> str:
    return f"TRF-{uuid4().hex[:16]}"


async def transfer_stock(
    session: AsyncSession,
    *,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    user_id: Optional[int] = None,
    expected_from_version: Optional[int] = None,
    expected_to_version: Optional[int] = None,
    batch: Optional[AuditBatch] = None,
) -> TransferResult:
    """
    Move quantity of one product between two locations.

    Either every write below lands or none does:
      - source  -quantity, guarded by expected_from_version, or by the version
        the availability check saw when the caller sent none
      - dest    +quantity (guarded only by expected_to_version; row created if missing)
      - two TRANSFER ledger legs sharing one ref
      - one INVENTORY/TRANSFER audit event naming both locations
    All three rows carry the batch id of one audit batch (the caller's, when given).
    """
    qty = int(quantity)
    src, dst = int(from_location_id), int(to_location_id)
    if src == dst:
        raise InvalidRequest(
            "Source and destination locations must differ",
            context={"from_location_id": src, "to_location_id": dst},
        )
    if qty <= 0:
        raise InvalidRequest("quantity must be positive", context={"quantity": qty})

    product = await MasterDataService.get_product(session, product_id)
    src_loc = await MasterDataService.get_location(session, src)
    dst_loc = await MasterDataService.get_location(session, dst)

    avail = await validate_stock_availability(
        session, product_id=product.id, location_id=src, required_qty=qty
    )
    if not avail.is_valid:
        log.warning(
            "transfer rejected product=%s from=%s qty=%s on_hand=%s",
            product.id,
            src,
            qty,
            avail.current_quantity,
        )
        raise InsufficientStock(
            "Insufficient stock in source location",
            product_id=product.id,
            location_id=src,
            current_quantity=avail.current_quantity,
            requested_quantity=qty,
        )

    from_guard = expected_from_version if expected_from_version is not None else avail.version
    ref = _new_transfer_ref()
    note = f"Transfer {ref}: {src_loc.name} -> {dst_loc.name}"

    try:
        with audit_batch(source="transfer", batch=batch) as b:
            async with tx_atomic(session):
                out_leg = await apply_delta(
                    session,
                    product_id=product.id,
                    location_id=src,
                    delta=-qty,
                    user_id=user_id,
                    log_type=LedgerLogType.TRANSFER,
                    expected_version=from_guard,
                    ref=ref,
                    note=note,
                    batch=b,
                )
                in_leg = await apply_delta(
                    session,
                    product_id=product.id,
                    location_id=dst,
                    delta=qty,
                    user_id=user_id,
                    log_type=LedgerLogType.TRANSFER,
                    expected_version=expected_to_version,
                    ref=ref,
                    note=note,
                    batch=b,
                )
                audit_id = await AuditEventWriter.write(
                    session,
                    flow="INVENTORY",
                    event="TRANSFER",
                    ref=ref,
                    user_id=user_id,
                    batch=b,
                    meta={
                        "product_id": product.id,
                        "product_name": product.name,
                        "quantity": qty,
                        "from_location_id": src,
                        "from_location_name": src_loc.name,
                        "to_location_id": dst,
                        "to_location_name": dst_loc.name,
                        "ledger_entry_ids": [out_leg.ledger_id, in_leg.ledger_id],
                    },
                )
            batch_id = b.batch_id
    except VersionConflict as e:
        log.warning(
            "transfer conflict product=%s location=%s expected=%s current=%s",
            product.id,
            e.location_id,
            e.expected_version,
            e.current_version,
        )
        raise

    log.info(
        "transfer %s product=%s qty=%s %s(%s) -> %s(%s)",
        ref,
        product.id,
        qty,
        src_loc.name,
        out_leg.new_quantity,
        dst_loc.name,
        in_leg.new_quantity,
    )
    return TransferResult(
        ref=ref,
        batch_id=batch_id,
        product_id=product.id,
        from_location_id=src,
        to_location_id=dst,
        quantity=qty,
        from_quantity=out_leg.new_quantity,
        from_version=out_leg.new_version,
        to_quantity=in_leg.new_quantity,
        to_version=in_leg.new_version,
        ledger_entry_ids=(out_leg.ledger_id, in_leg.ledger_id),
        audit_event_id=audit_id,
    )


__all__ = ["TransferResult", "transfer_stock"]
