from __future__ import annotations

from dataclasses import dataclass


class OrderEngineError(ValueError):
    pass


class ValidationError(OrderEngineError):
    pass


class MissingProductName(ValidationError):
    def __init__(self) -> None:
        super().__init__('Missing product name')


class NotFoundError(OrderEngineError):
    pass


class VariantNotFound(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Variant not found: {name}')
        self.name = name


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: int) -> None:
        super().__init__(f'Order not found: {order_id}')
        self.order_id = order_id


class PricingUnavailable(OrderEngineError):
    pass


class NoSupplierPrice(PricingUnavailable):
    def __init__(self, variant_name: str) -> None:
        super().__init__(f'No supplier price for {variant_name}')
        self.variant_name = variant_name


@dataclass(frozen=True)
class LedgerWarning:
    """A supplier ledger adjustment that failed without undoing the order mutation."""

    order_id: int | None
    supplier_id: int | None
    action: str
    message: str
