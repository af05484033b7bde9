from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Date,
    ForeignKey,
    Numeric,
    Text,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy.app.db.base import Base


# ---------- MASTER DATA ----------
class Drug(Base):
    __tablename__ = "formulary"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    drug_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    trade_name: Mapped[str] = mapped_column(String(255), nullable=False)
    generic_name: Mapped[str | None] = mapped_column(String(255))
    legal_category: Mapped[str | None] = mapped_column(String(128))
    pharma_category: Mapped[str | None] = mapped_column(String(128))
    strength: Mapped[str | None] = mapped_column(String(64))
    unit: Mapped[str | None] = mapped_column(String(32))
    indication: Mapped[str | None] = mapped_column(Text)
    caution: Mapped[str | None] = mapped_column(Text)
    # 0 ou NULL = pas de politique de stock
    min_stock: Mapped[int | None] = mapped_column(Integer, default=0)
    max_stock: Mapped[int | None] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("min_stock IS NULL OR min_stock >= 0", name="ck_formulary_min_stock_nonneg"),
        CheckConstraint("max_stock IS NULL OR max_stock >= 0", name="ck_formulary_max_stock_nonneg"),
    )

    @property
    def display_name(self) -> str:
        if self.generic_name:
            return f"{self.trade_name} ({self.generic_name})"
        return self.trade_name


class Member(Base):
    __tablename__ = "members"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    national_id: Mapped[str | None] = mapped_column(String(32))
    dob: Mapped[date | None] = mapped_column(Date)
    phone: Mapped[str | None] = mapped_column(String(32))
    allergies: Mapped[str | None] = mapped_column(Text)  # JSON
    disease: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


# ---------- INVENTORY ----------
class Lot(Base):
    __tablename__ = "inventory"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    inventory_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # pas de FK vers formulary : une ligne orpheline doit rester lisible
    drug_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lot_number: Mapped[str] = mapped_column(String(64), nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(64))
    barcode: Mapped[str | None] = mapped_column(String(64))
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonneg"),
        CheckConstraint("cost_price >= 0", name="ck_inventory_cost_price_nonneg"),
        CheckConstraint("selling_price >= 0", name="ck_inventory_selling_price_nonneg"),
        Index("ix_inventory_drug_expiry", "drug_id", "expiry_date"),
    )


# ---------- SALES (append-only) ----------
class SaleLine(Base):
    """
    Une ligne par article du panier.
    sale_id est partagé par toutes les lignes d'un même passage en caisse (NON unique).
    """

    __tablename__ = "sales"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    sale_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # heure locale officine, attribuée au commit
    sale_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False, default="N/A")
    pharmacist_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pharmacist: Mapped[str] = mapped_column(String(200), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    inventory_id: Mapped[str] = mapped_column(
        ForeignKey("inventory.inventory_id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity_sold: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    drug_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lot_number: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        CheckConstraint("quantity_sold > 0", name="ck_sales_quantity_pos"),
        CheckConstraint("price_per_unit >= 0", name="ck_sales_price_nonneg"),
        Index("ix_sales_drug_date", "drug_id", "sale_date"),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity_sold) * Decimal(self.price_per_unit)


# ---------- AUDIT ----------
class ActivityLog(Base):
    __tablename__ = "activity_log"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    entity: Mapped[str | None] = mapped_column(String(64))
    entity_id: Mapped[str | None] = mapped_column(String(64))
    performed_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("ix_activity_entity", "entity", "entity_id"),)
