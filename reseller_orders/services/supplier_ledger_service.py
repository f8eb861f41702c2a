from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from reseller_orders.exceptions import LedgerWarning
from reseller_orders.models import OrderStatus, Supplier, SupplierPaymentCycle
from reseller_orders.services.id_service import next_id
from reseller_orders.services.order_normalization import (
    effective_status,
    normalize_check_flag,
    parse_date,
    to_decimal,
    to_int,
    today_local,
)

logger = logging.getLogger(__name__)

THOUSAND = Decimal('1000')


def ceil_to_thousands(value) -> int:
    """Round the magnitude up to the next thousand, keeping the sign.

    Supplier proration rounds up, unlike the nearest-thousand rounding used
    for sale prices.
    """
    numeric = to_decimal(value)
    if numeric is None or numeric == 0:
        return 0
    magnitude = (abs(numeric) / THOUSAND).to_integral_value(rounding=ROUND_CEILING) * THOUSAND
    return int(-magnitude if numeric < 0 else magnitude)


def calc_remaining_refund(order: dict, remaining_days: int | None) -> int:
    price = to_decimal(order.get('price'))
    if not price:
        return 0
    total_days = to_int(order.get('days'))
    if not total_days or remaining_days is None:
        return max(0, int(price.to_integral_value(rounding=ROUND_HALF_UP)))
    computed = price * Decimal(max(0, remaining_days)) / Decimal(total_days)
    return max(0, int(computed.to_integral_value(rounding=ROUND_HALF_UP)))


def calc_prorated_import(order: dict, remaining_days: int | None) -> int:
    cost = to_decimal(order.get('cost'))
    total_days = to_int(order.get('days'))
    if not cost or cost <= 0:
        return 0
    if not total_days or total_days <= 0:
        return 0
    if remaining_days is None or remaining_days <= 0:
        return 0
    return ceil_to_thousands(cost * Decimal(remaining_days) / Decimal(total_days))


def format_round_label(as_of: date | None = None) -> str:
    return (as_of or today_local()).strftime('%d/%m/%Y')


def get_current_cycle(db: Session, supplier_id: int) -> SupplierPaymentCycle | None:
    return db.execute(
        select(SupplierPaymentCycle)
        .where(SupplierPaymentCycle.source_id == supplier_id)
        .order_by(SupplierPaymentCycle.id.desc())
        .limit(1)
        .with_for_update()
    ).scalar_one_or_none()


def _apply_debt_delta(db: Session, supplier_id: int, delta: Decimal, as_of) -> SupplierPaymentCycle:
    cycle = get_current_cycle(db, supplier_id)
    if cycle is not None:
        cycle.import_value = (to_decimal(cycle.import_value) or Decimal('0')) + delta
    else:
        cycle = SupplierPaymentCycle(
            source_id=supplier_id,
            import_value=delta,
            paid=Decimal('0'),
            round=format_round_label(parse_date(as_of)),
            status=OrderStatus.UNPAID.value,
        )
        db.add(cycle)
    db.flush()
    return cycle


def increase_debt(db: Session, supplier_id: int | None, amount, as_of=None) -> SupplierPaymentCycle | None:
    value = to_decimal(amount)
    if not supplier_id or value is None or value <= 0:
        return None
    logger.info('Increasing supplier %s debt by %s', supplier_id, value)
    return _apply_debt_delta(db, supplier_id, value, as_of)


def decrease_debt(db: Session, supplier_id: int | None, amount, as_of=None) -> SupplierPaymentCycle | None:
    value = to_decimal(amount)
    if not supplier_id or value is None or value <= 0:
        return None
    logger.info('Decreasing supplier %s debt by %s', supplier_id, value)
    return _apply_debt_delta(db, supplier_id, -value, as_of)


def adjust_supplier_debt_if_needed(db: Session, order: dict, normalized: dict) -> int:
    """Reverse supplier debt for an order that is leaving the live table.

    Returns the amount credited back to the supplier, 0 when nothing applied.
    """
    status = effective_status(normalized)
    check_flag = normalize_check_flag(normalized.get('check_flag'))
    supplier_id = order.get('supply_id')
    order_id = order.get('id')

    if status == OrderStatus.UNPAID and check_flag is False:
        amount = to_decimal(order.get('cost'))
        if not supplier_id or not amount or amount <= 0:
            logger.debug('Debt reversal skipped for order %s: no supplier or cost', order_id)
            return 0
        decrease_debt(db, supplier_id, amount)
        return int(amount)

    if status == OrderStatus.PAID and check_flag is True:
        if not supplier_id:
            logger.warning('Debt proration skipped for order %s: supplier not set', order_id)
            return 0
        prorated = calc_prorated_import(order, normalized.get('remaining_days'))
        if prorated <= 0:
            logger.debug(
                'Debt proration skipped for order %s: cost=%s days=%s remaining_days=%s',
                order_id,
                order.get('cost'),
                order.get('days'),
                normalized.get('remaining_days'),
            )
            return 0
        decrease_debt(db, supplier_id, prorated)
        return prorated

    return 0


def add_supplier_import_on_check(db: Session, before: dict, after: dict) -> int:
    """Charge the supplier the first time an unpaid order is marked as needing import."""
    before_flag = normalize_check_flag(before.get('check_flag'))
    after_flag = normalize_check_flag(after.get('check_flag'))
    if before_flag is not None or after_flag is not False:
        return 0
    if OrderStatus.parse(before.get('status')) != OrderStatus.UNPAID:
        return 0
    if OrderStatus.parse(after.get('status')) != OrderStatus.UNPAID:
        return 0

    supplier_id = after.get('supply_id') or before.get('supply_id')
    amount = to_decimal(after.get('cost') if after.get('cost') is not None else before.get('cost'))
    if not supplier_id or not amount or amount <= 0:
        return 0
    increase_debt(db, supplier_id, amount, after.get('order_date'))
    return int(amount)


def run_best_effort(db: Session, action: str, order: dict, fn, *args) -> LedgerWarning | None:
    """Run a ledger adjustment inside a savepoint; failures are logged, not raised."""
    try:
        with db.begin_nested():
            fn(db, *args)
    except Exception as exc:
        logger.warning(
            'Supplier ledger %s failed for order %s (supplier=%s cost=%s status=%s check_flag=%s): %s',
            action,
            order.get('id'),
            order.get('supply_id'),
            order.get('cost'),
            order.get('status'),
            order.get('check_flag'),
            exc,
        )
        return LedgerWarning(
            order_id=order.get('id'),
            supplier_id=order.get('supply_id'),
            action=action,
            message=str(exc),
        )
    return None


def find_supplier_id_by_name(db: Session, name: str | None) -> int | None:
    clean = (name or '').strip()
    if not clean:
        return None
    return db.execute(select(Supplier.id).where(Supplier.supplier_name == clean)).scalar_one_or_none()


def find_or_create_supplier(db: Session, name: str | None) -> int | None:
    clean = (name or '').strip()
    if not clean:
        return None
    existing = find_supplier_id_by_name(db, clean)
    if existing is not None:
        return existing
    supplier = Supplier(id=next_id(db, Supplier), supplier_name=clean, active_supply=True)
    db.add(supplier)
    db.flush()
    logger.info('Created supplier %s (%s)', supplier.id, clean)
    return supplier.id
