from decimal import Decimal

from sqlalchemy import select

from reseller_orders.db import SessionLocal, engine
from reseller_orders.models import Base, PriceConfig, SupplierCost, Variant
from reseller_orders.services.id_service import next_id
from reseller_orders.services.supplier_ledger_service import find_or_create_supplier

DEMO_VARIANT = 'Netflix Premium--1m'
DEMO_COSTS = {
    'Supplier A': Decimal('100000'),
    'Supplier B': Decimal('120000'),
}


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        variant = db.execute(select(Variant).where(Variant.variant_name == DEMO_VARIANT)).scalar_one_or_none()
        if not variant:
            variant = Variant(id=next_id(db, Variant), variant_name=DEMO_VARIANT, display_name='Netflix Premium 1 month')
            db.add(variant)
            db.flush()

        config = db.execute(select(PriceConfig).where(PriceConfig.variant_id == variant.id)).scalar_one_or_none()
        if not config:
            db.add(
                PriceConfig(
                    variant_id=variant.id,
                    pct_ctv=Decimal('1.1'),
                    pct_khach=Decimal('1.3'),
                    pct_promo=Decimal('0.1'),
                )
            )

        for supplier_name, price in DEMO_COSTS.items():
            supplier_id = find_or_create_supplier(db, supplier_name)
            existing = db.execute(
                select(SupplierCost.id).where(
                    SupplierCost.variant_id == variant.id,
                    SupplierCost.source_id == supplier_id,
                )
            ).first()
            if not existing:
                db.add(SupplierCost(variant_id=variant.id, source_id=supplier_id, price=price))

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
