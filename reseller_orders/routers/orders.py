from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from reseller_orders.db import get_db
from reseller_orders.exceptions import NotFoundError, OrderEngineError
from reseller_orders.services.order_service import (
    create_order,
    delete_order,
    mark_refunded,
    update_order_with_finance,
)
from reseller_orders.services.pricing_service import compute_price

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api', tags=['orders'])


class CalculatePriceRequest(BaseModel):
    san_pham_name: str | None = None
    id_product: str | None = None
    id_order: str | None = None
    customer_type: str | None = None
    supply_id: int | None = None
    order_date: str | None = None


class OrderPayload(BaseModel):
    model_config = ConfigDict(extra='allow')


class DeleteOrderBody(BaseModel):
    can_hoan: float | None = None
    gia_tri_con_lai: float | None = None


def _http_error(exc: OrderEngineError) -> HTTPException:
    status_code = 404 if isinstance(exc, NotFoundError) else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def _warnings_payload(warnings) -> list[dict[str, Any]]:
    return [
        {'order_id': w.order_id, 'supplier_id': w.supplier_id, 'action': w.action, 'message': w.message}
        for w in warnings
    ]


@router.post('/calculate-price')
def calculate_price(body: CalculatePriceRequest, db: Session = Depends(get_db)):
    try:
        quote = compute_price(
            db,
            variant_name=body.san_pham_name or body.id_product,
            order_code=body.id_order,
            customer_type_hint=body.customer_type,
            supplier_id=body.supply_id,
            order_date=body.order_date,
        )
    except OrderEngineError as exc:
        logger.info('Price calculation rejected for %s: %s', body.id_order, exc)
        raise _http_error(exc) from exc
    return quote.as_response()


@router.post('/orders', status_code=201)
def create_order_route(body: OrderPayload, db: Session = Depends(get_db)):
    try:
        result = create_order(db, body.model_dump())
    except OrderEngineError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail='Unable to create order') from exc
    return result.order


@router.put('/orders/{order_id}')
def update_order_route(order_id: int, body: OrderPayload, db: Session = Depends(get_db)):
    try:
        result = update_order_with_finance(db, order_id, body.model_dump())
    except OrderEngineError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail='Unable to update order') from exc
    return {**result.order, 'warnings': _warnings_payload(result.warnings)}


@router.delete('/orders/{order_id}')
def delete_order_route(
    order_id: int,
    body: DeleteOrderBody | None = Body(default=None),
    db: Session = Depends(get_db),
):
    overrides = body.model_dump(exclude_none=True) if body is not None else None
    try:
        result = delete_order(db, order_id, overrides)
    except OrderEngineError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail='Unable to delete order') from exc
    return {
        'success': True,
        'movedTo': result.moved_to,
        'deletedOrder': result.order,
        'warnings': _warnings_payload(result.warnings),
    }


@router.patch('/orders/canceled/{archive_id}/refund')
def mark_refunded_route(archive_id: int, db: Session = Depends(get_db)):
    try:
        updated = mark_refunded(db, archive_id)
    except OrderEngineError as exc:
        raise _http_error(exc) from exc
    return {'success': True, **updated}
