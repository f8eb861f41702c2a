from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from reseller_orders.config import settings
from reseller_orders.exceptions import MissingProductName, NoSupplierPrice, VariantNotFound
from reseller_orders.models import Order, PriceConfig, SupplierCost, Variant
from reseller_orders.services.order_normalization import parse_date, to_decimal, today_local

THOUSAND = Decimal('1000')
_MONTHS_SUFFIX = re.compile(r'--(\d+)m', re.IGNORECASE)


class CustomerTier(str, Enum):
    CTV = 'ctv'
    RETAIL = 'le'
    PROMO = 'khuyen'
    GIFT = 'tang'
    IMPORT_PASSTHROUGH = 'nhap'
    STUDENT = 'sinhvien'
    UNKNOWN = 'unknown'


# Checked in this order; the first tier whose prefix or hint matches wins.
ORDER_CODE_PREFIXES: dict[CustomerTier, str] = {
    CustomerTier.CTV: 'MAVC',
    CustomerTier.RETAIL: 'MAVL',
    CustomerTier.PROMO: 'MAVK',
    CustomerTier.GIFT: 'MAVT',
    CustomerTier.IMPORT_PASSTHROUGH: 'MAVN',
    CustomerTier.STUDENT: 'MAVS',
}


@dataclass(frozen=True)
class PercentConfig:
    pct_ctv: Decimal = Decimal('1')
    pct_khach: Decimal = Decimal('1')
    pct_promo: Decimal = Decimal('0')


@dataclass(frozen=True)
class PriceQuote:
    cost: int
    price: int
    promo_price: int
    promo: int
    resell_price: int
    customer_price: int
    days: int
    order_expired: str
    tier: CustomerTier

    def as_response(self) -> dict:
        return {
            'cost': self.cost,
            'price': self.price,
            'promoPrice': self.promo_price,
            'pricePromo': self.promo_price,
            'promo': self.promo,
            'resellPrice': self.resell_price,
            'customerPrice': self.customer_price,
            'totalPrice': self.promo_price,
            'days': self.days,
            'order_expired': self.order_expired,
        }


def _round_half_up(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_HALF_UP)


def round_to_thousands(value) -> int:
    """Nearest thousand, half up; anything negative collapses to 0."""
    numeric = to_decimal(value) or Decimal('0')
    whole = _round_half_up(numeric)
    rounded = _round_half_up(whole / THOUSAND) * THOUSAND
    return max(0, int(rounded))


def promo_factor(pct_promo: Decimal) -> Decimal:
    # Accepts either a ratio (0.1) or a percentage (10).
    return pct_promo / Decimal('100') if pct_promo > 1 else pct_promo


def classify_customer_tier(order_code: str | None, customer_type_hint: str | None = None) -> CustomerTier:
    code = (order_code or '').strip().upper()
    hint = (customer_type_hint or '').strip()
    for tier, prefix in ORDER_CODE_PREFIXES.items():
        if code.startswith(prefix):
            return tier
        if hint and (hint.upper() == prefix or hint.lower() == tier.value):
            return tier
    return CustomerTier.UNKNOWN


def generate_order_code(tier: CustomerTier, length: int = 5) -> str:
    prefix = ORDER_CODE_PREFIXES.get(tier, ORDER_CODE_PREFIXES[CustomerTier.CTV])
    alphabet = string.ascii_uppercase + string.digits
    return prefix + ''.join(secrets.choice(alphabet) for _ in range(length))


def months_from_name(text: str | None) -> int:
    if not text:
        return 0
    match = _MONTHS_SUFFIX.search(text)
    return int(match.group(1)) if match else 0


def days_from_months(months: int) -> int:
    if months <= 0:
        return 0
    if months == 12:
        return 365
    if months == 24:
        return 730
    return months * 30


def resolve_order_days(variant_name: str | None) -> int:
    derived = days_from_months(months_from_name(variant_name))
    return derived or settings.default_order_days


def compute_expiry_date(order_date: date, days: int) -> date:
    # The registration day counts as the first day of the term.
    return order_date + timedelta(days=max(days, 1) - 1)


def select_tier_price(
    tier: CustomerTier,
    *,
    resell_price: int,
    customer_price: int,
    customer_raw: Decimal,
    factor: Decimal,
    base_cost: int,
) -> int:
    if tier in (CustomerTier.CTV, CustomerTier.STUDENT):
        return resell_price
    if tier == CustomerTier.RETAIL:
        return customer_price
    if tier == CustomerTier.PROMO:
        return round_to_thousands(customer_raw * (Decimal('1') - factor))
    if tier == CustomerTier.GIFT:
        return 0
    if tier == CustomerTier.IMPORT_PASSTHROUGH:
        return base_cost
    return customer_price


def compute_quote(
    *,
    variant_name: str,
    base_for_pricing: Decimal,
    import_by_source: Decimal,
    config: PercentConfig,
    tier: CustomerTier,
    order_date: date,
) -> PriceQuote:
    if base_for_pricing <= 0 and import_by_source <= 0:
        raise NoSupplierPrice(variant_name)

    pricing_base = base_for_pricing if base_for_pricing > 0 else import_by_source
    base_import = import_by_source if import_by_source > 0 else base_for_pricing

    resell_raw = pricing_base * config.pct_ctv
    customer_raw = resell_raw * config.pct_khach

    base_cost = round_to_thousands(base_import)
    resell_price = round_to_thousands(resell_raw)
    customer_price = round_to_thousands(customer_raw)

    factor = promo_factor(config.pct_promo)
    promo_amount = round_to_thousands(customer_price * factor)
    promo_price = max(0, customer_price - promo_amount)

    price = select_tier_price(
        tier,
        resell_price=resell_price,
        customer_price=customer_price,
        customer_raw=customer_raw,
        factor=factor,
        base_cost=base_cost,
    )
    days = resolve_order_days(variant_name)
    return PriceQuote(
        cost=base_cost,
        price=price,
        promo_price=promo_price,
        promo=promo_amount,
        resell_price=resell_price,
        customer_price=customer_price,
        days=days,
        order_expired=compute_expiry_date(order_date, days).isoformat(),
        tier=tier,
    )


def _find_variant(db: Session, search_keys: list[str]) -> Variant | None:
    # Keys are tried in priority order; the first one that resolves wins.
    for key in search_keys:
        variant = db.execute(
            select(Variant)
            .where(or_(Variant.variant_name == key, Variant.display_name == key))
            .order_by(Variant.is_active.desc(), Variant.id.asc())
            .limit(1)
        ).scalar_one_or_none()
        if variant is not None:
            return variant
    return None


def _load_percent_config(db: Session, variant_id: int) -> PercentConfig:
    row = db.execute(select(PriceConfig).where(PriceConfig.variant_id == variant_id)).scalar_one_or_none()
    if row is None:
        return PercentConfig()
    return PercentConfig(
        pct_ctv=to_decimal(row.pct_ctv) or Decimal('1'),
        pct_khach=to_decimal(row.pct_khach) or Decimal('1'),
        pct_promo=to_decimal(row.pct_promo) or Decimal('0'),
    )


def _max_supplier_cost(db: Session, variant_id: int) -> Decimal:
    value = db.execute(select(func.max(SupplierCost.price)).where(SupplierCost.variant_id == variant_id)).scalar_one()
    return to_decimal(value) or Decimal('0')


def _latest_supplier_cost(db: Session, variant_id: int, supplier_id: int) -> Decimal:
    value = db.execute(
        select(SupplierCost.price)
        .where(SupplierCost.variant_id == variant_id, SupplierCost.source_id == supplier_id)
        .order_by(SupplierCost.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    return to_decimal(value) or Decimal('0')


def compute_price(
    db: Session,
    *,
    variant_name: str | None,
    order_code: str | None = None,
    customer_type_hint: str | None = None,
    supplier_id: int | None = None,
    order_date=None,
    use_previous_order: bool = True,
) -> PriceQuote:
    """Quote a variant for an order code.

    With ``use_previous_order`` the live order carrying ``order_code`` supplies
    a fallback product name, supplier and cost. Repricing a product change
    turns it off so nothing from the old product leaks into the quote.
    """
    product_name = (variant_name or '').strip()
    if not product_name:
        raise MissingProductName()
    code = (order_code or '').strip()

    previous = None
    if code and use_previous_order:
        previous = db.execute(select(Order).where(Order.id_order == code).limit(1)).scalar_one_or_none()

    search_keys = [product_name, re.sub(r'\s+', '', product_name)]
    if previous is not None and previous.id_product:
        search_keys.append(str(previous.id_product))
    variant = _find_variant(db, list(dict.fromkeys(search_keys)))
    if variant is None:
        raise VariantNotFound(product_name)

    config = _load_percent_config(db, variant.id)
    base_for_pricing = _max_supplier_cost(db, variant.id)

    effective_supplier_id = supplier_id or (previous.supply_id if previous is not None else None)
    if supplier_id:
        import_by_source = _latest_supplier_cost(db, variant.id, supplier_id)
    elif previous is not None and previous.cost:
        import_by_source = to_decimal(previous.cost) or Decimal('0')
    elif effective_supplier_id:
        import_by_source = _latest_supplier_cost(db, variant.id, effective_supplier_id)
    else:
        import_by_source = Decimal('0')

    return compute_quote(
        variant_name=variant.variant_name,
        base_for_pricing=base_for_pricing,
        import_by_source=import_by_source,
        config=config,
        tier=classify_customer_tier(code, customer_type_hint),
        order_date=parse_date(order_date) or today_local(),
    )
