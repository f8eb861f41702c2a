from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class OrderStatus(str, Enum):
    # Values are the legacy display strings persisted in the status columns.
    UNPAID = 'Chưa Thanh Toán'
    PROCESSING = 'Đang Xử Lý'
    PAID = 'Đã Thanh Toán'
    RENEWAL = 'Cần Gia Hạn'
    PENDING_REFUND = 'Chưa Hoàn'
    REFUNDED = 'Đã Hoàn'
    EXPIRED = 'Hết Hạn'
    CANCELED = 'Hủy'

    @classmethod
    def parse(cls, value: object) -> OrderStatus | None:
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        try:
            return cls(str(value))
        except ValueError:
            return None


class _OrderColumns:
    id_order: Mapped[str | None] = mapped_column(Text)
    id_product: Mapped[str | None] = mapped_column(Text)
    information_order: Mapped[str | None] = mapped_column(Text)
    customer: Mapped[str | None] = mapped_column(Text)
    contact: Mapped[str | None] = mapped_column(Text)
    slot: Mapped[str | None] = mapped_column(Text)
    order_date: Mapped[date | None] = mapped_column(Date)
    days: Mapped[int | None] = mapped_column(Integer)
    order_expired: Mapped[date | None] = mapped_column(Date)
    supply_id: Mapped[int | None] = mapped_column(BigInteger)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(Text, nullable=False, default=OrderStatus.UNPAID.value)
    check_flag: Mapped[bool | None] = mapped_column(Boolean)


class Order(_OrderColumns, Base):
    __tablename__ = 'order_list'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    note: Mapped[str | None] = mapped_column(Text)


class OrderExpired(_OrderColumns, Base):
    __tablename__ = 'order_expired'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    note: Mapped[str | None] = mapped_column(Text)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class OrderCanceled(_OrderColumns, Base):
    __tablename__ = 'order_canceled'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    refund: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Supplier(Base):
    __tablename__ = 'supplier'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    supplier_name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    number_bank: Mapped[str | None] = mapped_column(Text)
    bin_bank: Mapped[str | None] = mapped_column(Text)
    active_supply: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Variant(Base):
    __tablename__ = 'variant'

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    variant_name: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PriceConfig(Base):
    __tablename__ = 'price_config'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey('variant.id'), nullable=False, unique=True)
    pct_ctv: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    pct_khach: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    pct_promo: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())


class SupplierCost(Base):
    __tablename__ = 'supplier_cost'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey('variant.id'), nullable=False)
    source_id: Mapped[int] = mapped_column(ForeignKey('supplier.id'), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)


class SupplierPaymentCycle(Base):
    __tablename__ = 'payment_supply'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_id: Mapped[int] = mapped_column(ForeignKey('supplier.id'), nullable=False)
    import_value: Mapped[Decimal] = mapped_column('import', Numeric(14, 2), nullable=False, default=Decimal('0'))
    paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    round: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=OrderStatus.UNPAID.value)


class IdSequence(Base):
    __tablename__ = 'id_sequences'
    __table_args__ = (UniqueConstraint('table_name', 'column_name', name='uq_id_sequences_table_column'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    table_name: Mapped[str] = mapped_column(String(128), nullable=False)
    column_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
