from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from reseller_orders.exceptions import LedgerWarning, NotFoundError, OrderNotFound, ValidationError
from reseller_orders.models import Order, OrderCanceled, OrderStatus
from reseller_orders.services.archive_service import delete_order_with_archive
from reseller_orders.services.id_service import next_id
from reseller_orders.services.order_normalization import (
    normalize_check_flag,
    normalize_order,
    order_to_dict,
    parse_date,
    to_decimal,
    to_int,
    today_local,
)
from reseller_orders.services.pricing_service import (
    classify_customer_tier,
    compute_expiry_date,
    compute_price,
    generate_order_code,
    resolve_order_days,
)
from reseller_orders.services.supplier_ledger_service import (
    add_supplier_import_on_check,
    find_or_create_supplier,
    run_best_effort,
)

logger = logging.getLogger(__name__)

ORDER_WRITABLE_COLUMNS = (
    'id_order',
    'id_product',
    'information_order',
    'customer',
    'contact',
    'slot',
    'order_date',
    'days',
    'order_expired',
    'cost',
    'price',
    'note',
    'status',
    'check_flag',
)
DATE_COLUMNS = {'order_date', 'order_expired'}
MONEY_COLUMNS = {'cost', 'price'}

# Deleting a live order is the only way into PENDING_REFUND; EXPIRED is reachable from anywhere.
ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.UNPAID: {OrderStatus.PROCESSING, OrderStatus.PAID},
    OrderStatus.PROCESSING: {OrderStatus.PAID, OrderStatus.UNPAID},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.RENEWAL},
    OrderStatus.RENEWAL: {OrderStatus.PROCESSING, OrderStatus.PAID},
    OrderStatus.PENDING_REFUND: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
    OrderStatus.EXPIRED: set(),
    OrderStatus.CANCELED: set(),
}


@dataclass
class OrderMutationResult:
    order: dict
    moved_to: str | None = None
    warnings: list[LedgerWarning] = field(default_factory=list)


def is_transition_allowed(current: OrderStatus | None, target: OrderStatus) -> bool:
    if current == target or target == OrderStatus.EXPIRED:
        return True
    if current is None:
        # Rows carrying a legacy custom status may be moved back into the lifecycle.
        return target in (OrderStatus.UNPAID, OrderStatus.PROCESSING, OrderStatus.PAID)
    return target in ALLOWED_TRANSITIONS[current]


def sanitize_order_payload(raw: dict | None) -> dict:
    sanitized: dict = {}
    for column in ORDER_WRITABLE_COLUMNS:
        if column not in (raw or {}):
            continue
        value = raw[column]
        if column in DATE_COLUMNS:
            value = parse_date(value)
        elif column in MONEY_COLUMNS:
            value = to_decimal(value)
        elif column == 'days':
            value = to_int(value)
        elif column == 'check_flag':
            value = normalize_check_flag(value)
        elif isinstance(value, str):
            value = value.strip()
        sanitized[column] = value
    return sanitized


def _validate_status(value) -> OrderStatus:
    status = OrderStatus.parse(value)
    if status is None:
        raise ValidationError(f'Unknown status: {value}')
    return status


def _get_order(db: Session, order_id: int, *, lock: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if lock:
        stmt = stmt.with_for_update()
    order = db.execute(stmt).scalar_one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def _ensure_valid_id(order_id) -> int:
    parsed = to_int(order_id)
    if not parsed or parsed <= 0:
        raise ValidationError('Invalid order id')
    return parsed


def create_order(db: Session, payload: dict, *, today: date | None = None) -> OrderMutationResult:
    data = sanitize_order_payload(payload)
    supply_name = (payload or {}).get('supply')
    supplier_id = to_int((payload or {}).get('supply_id'))
    if not data and not supply_name:
        raise ValidationError('Empty payload')

    today = today or today_local()
    order_date = data.get('order_date') or today
    data['order_date'] = order_date
    tier = classify_customer_tier(data.get('id_order'), (payload or {}).get('customer_type'))
    if not data.get('id_order'):
        data['id_order'] = generate_order_code(tier)

    # Quoting runs before the write transaction; a quote is a point-in-time price.
    if data.get('cost') is None or data.get('price') is None:
        quote = compute_price(
            db,
            variant_name=data.get('id_product'),
            order_code=data['id_order'],
            customer_type_hint=(payload or {}).get('customer_type'),
            supplier_id=supplier_id,
            order_date=order_date,
        )
        if data.get('cost') is None:
            data['cost'] = Decimal(quote.cost)
        if data.get('price') is None:
            data['price'] = Decimal(quote.price)
        if data.get('days') is None:
            data['days'] = quote.days

    if data.get('days') is None:
        data['days'] = resolve_order_days(data.get('id_product'))
    if data.get('order_expired') is None:
        data['order_expired'] = compute_expiry_date(order_date, data['days'])

    data['status'] = OrderStatus.UNPAID.value
    data['check_flag'] = None

    try:
        if supply_name and not supplier_id:
            supplier_id = find_or_create_supplier(db, supply_name)
        data['supply_id'] = supplier_id
        data['id'] = next_id(db, Order)
        order = Order(**data)
        db.add(order)
        db.flush()
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('Order create failed for %s', data.get('id_order'))
        raise

    logger.info('Order %s created as %s', order.id, order.id_order)
    return OrderMutationResult(order=normalize_order(order, today))


def update_order_with_finance(
    db: Session,
    order_id,
    payload: dict,
    *,
    today: date | None = None,
) -> OrderMutationResult:
    order_id = _ensure_valid_id(order_id)
    sanitized = sanitize_order_payload(payload)
    supply_name = (payload or {}).get('supply')

    if 'status' in sanitized:
        target = _validate_status(sanitized['status'])
        sanitized['status'] = target.value
        if target == OrderStatus.PAID and 'check_flag' not in sanitized:
            sanitized['check_flag'] = True

    if not sanitized and supply_name is None:
        raise ValidationError('Nothing to update')

    try:
        order = _get_order(db, order_id, lock=True)
        before = order_to_dict(order)

        if 'status' in sanitized:
            current = OrderStatus.parse(before['status'])
            target = OrderStatus(sanitized['status'])
            if not is_transition_allowed(current, target):
                raise ValidationError(f'Cannot move order from {before["status"]} to {target.value}')

        if supply_name is not None:
            sanitized['supply_id'] = find_or_create_supplier(db, supply_name)

        product_changed = 'id_product' in sanitized and sanitized['id_product'] != before['id_product']
        if product_changed and 'cost' not in sanitized and 'price' not in sanitized:
            quote = compute_price(
                db,
                variant_name=sanitized['id_product'],
                order_code=sanitized.get('id_order') or before['id_order'],
                supplier_id=sanitized.get('supply_id') or before['supply_id'],
                order_date=sanitized.get('order_date') or before['order_date'],
                use_previous_order=False,
            )
            sanitized['cost'] = Decimal(quote.cost)
            sanitized['price'] = Decimal(quote.price)

        for column, value in sanitized.items():
            setattr(order, column, value)
        db.flush()
        after = order_to_dict(order)

        warning = run_best_effort(db, 'import charge', after, add_supplier_import_on_check, before, after)
        db.commit()
    except Exception as exc:
        db.rollback()
        if not isinstance(exc, (ValidationError, NotFoundError)):
            logger.exception('Order %s update failed', order_id)
        raise

    return OrderMutationResult(
        order=normalize_order(order, today or today_local()),
        warnings=[warning] if warning is not None else [],
    )


def delete_order(
    db: Session,
    order_id,
    request_body: dict | None = None,
    *,
    today: date | None = None,
) -> OrderMutationResult:
    order_id = _ensure_valid_id(order_id)
    try:
        order = _get_order(db, order_id, lock=True)
        row = order_to_dict(order)
        normalized = normalize_order(row, today or today_local())
        result = delete_order_with_archive(db, order=row, normalized=normalized, request_body=request_body)
        db.commit()
    except Exception as exc:
        db.rollback()
        if not isinstance(exc, NotFoundError):
            logger.exception('Order %s delete failed', order_id)
        raise

    return OrderMutationResult(order=result.deleted_order, moved_to=result.moved_to, warnings=result.warnings)


def mark_refunded(db: Session, archive_id) -> dict:
    archive_id = _ensure_valid_id(archive_id)
    try:
        row = db.execute(
            select(OrderCanceled).where(OrderCanceled.id == archive_id).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f'Canceled order not found: {archive_id}')
        if OrderStatus.parse(row.status) != OrderStatus.PENDING_REFUND:
            raise ValidationError(f'Cannot refund order in status {row.status}')
        row.status = OrderStatus.REFUNDED.value
        row.check_flag = False
        db.commit()
    except Exception as exc:
        db.rollback()
        if not isinstance(exc, (ValidationError, NotFoundError)):
            logger.exception('Canceled order %s refund failed', archive_id)
        raise

    logger.info('Canceled order %s marked refunded', archive_id)
    return {'id': row.id, 'id_order': row.id_order, 'status': row.status, 'check_flag': row.check_flag}
