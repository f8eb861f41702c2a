from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete
from sqlalchemy.orm import Session

from reseller_orders.exceptions import LedgerWarning
from reseller_orders.models import Order, OrderCanceled, OrderExpired, OrderStatus
from reseller_orders.services.id_service import next_id
from reseller_orders.services.order_normalization import effective_status, to_decimal
from reseller_orders.services.supplier_ledger_service import (
    adjust_supplier_debt_if_needed,
    calc_remaining_refund,
    run_best_effort,
)

logger = logging.getLogger(__name__)

MOVED_DELETED = 'deleted'
MOVED_CANCELED = 'canceled'
MOVED_EXPIRED = 'expired'

REFUND_OVERRIDE_KEYS = ('can_hoan', 'gia_tri_con_lai')


@dataclass
class ArchiveResult:
    moved_to: str
    deleted_order: dict
    archive_id: int | None = None
    warnings: list[LedgerWarning] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def archive_destination(status: OrderStatus | None) -> str:
    if status == OrderStatus.UNPAID:
        return MOVED_DELETED
    if status in (OrderStatus.PAID, OrderStatus.PROCESSING):
        return MOVED_CANCELED
    return MOVED_EXPIRED


def allowed_columns(model) -> set[str]:
    return {column.key for column in model.__table__.columns}


def prune_archive_data(data: dict, allowed: set[str]) -> dict:
    return {key: value for key, value in data.items() if key in allowed}


def refund_override(request_body: dict | None) -> Decimal | None:
    body = request_body or {}
    for key in REFUND_OVERRIDE_KEYS:
        value = to_decimal(body.get(key))
        if value is not None:
            return max(Decimal('0'), value)
    return None


def delete_order_with_archive(
    db: Session,
    *,
    order: dict,
    normalized: dict,
    request_body: dict | None = None,
) -> ArchiveResult:
    """Remove a live order, archiving it according to its status.

    Runs inside the caller's transaction and does not commit. The archive
    insert is flushed before the live row is deleted.
    """
    order_id = order['id']
    warnings: list[LedgerWarning] = []

    warning = run_best_effort(db, 'debt adjustment', order, adjust_supplier_debt_if_needed, order, normalized)
    if warning is not None:
        warnings.append(warning)

    status = effective_status(normalized)
    destination = archive_destination(status)

    if destination == MOVED_DELETED:
        db.execute(delete(Order).where(Order.id == order_id))
        db.flush()
        logger.info('Order %s hard-deleted', order_id)
        return ArchiveResult(moved_to=MOVED_DELETED, deleted_order=normalized, warnings=warnings)

    archive_data = dict(order)
    if destination == MOVED_CANCELED:
        model = OrderCanceled
        remaining_days = normalized.get('remaining_days')
        override = refund_override(request_body)
        archive_data['refund'] = override if override is not None else Decimal(calc_remaining_refund(order, remaining_days))
        archive_data['days'] = remaining_days
        archive_data['status'] = OrderStatus.PENDING_REFUND.value
        archive_data['check_flag'] = False
        archive_data['created_at'] = _now()
    else:
        model = OrderExpired
        archive_data['status'] = OrderStatus.EXPIRED.value
        archive_data['archived_at'] = _now()

    archive_data['id'] = next_id(db, model)
    prepared = prune_archive_data(archive_data, allowed_columns(model))
    db.add(model(**prepared))
    db.flush()

    db.execute(delete(Order).where(Order.id == order_id))
    db.flush()
    logger.info('Order %s archived to %s as %s', order_id, destination, prepared['id'])
    return ArchiveResult(
        moved_to=destination,
        deleted_order=normalized,
        archive_id=prepared['id'],
        warnings=warnings,
    )
