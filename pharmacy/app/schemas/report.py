"""
Rapport KPI (jamais persisté, recalculé à chaque demande).

Les montants restent des Decimal côté Python et sortent en nombres JSON.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer
from pydantic.alias_generators import to_camel


Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class _ReportModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ReportWindow(_ReportModel):
    period: str
    label: str
    start: datetime
    end: datetime  # inclusif, précision ms

    @property
    def start_iso(self) -> str:
        return self.start.isoformat(timespec="milliseconds")

    @property
    def end_iso(self) -> str:
        return self.end.isoformat(timespec="milliseconds")


# ---------- SALES ----------
class ProductSales(_ReportModel):
    drug_id: str
    name: str
    quantity: int
    revenue: Money


class CategorySales(_ReportModel):
    category: str
    quantity: int
    revenue: Money


class MemberSales(_ReportModel):
    member_id: str
    full_name: str
    transaction_count: int
    revenue: Money


class PharmacistSales(_ReportModel):
    pharmacist_id: str
    pharmacist: str
    transaction_count: int
    revenue: Money


class SalesSection(_ReportModel):
    total_revenue: Money = Decimal("0.00")
    total_units_sold: int = 0
    transaction_count: int = 0
    average_ticket: Money = Decimal("0.00")
    unique_customers: int = 0
    top_products: list[ProductSales] = Field(default_factory=list)
    top_categories: list[CategorySales] = Field(default_factory=list)
    top_members: list[MemberSales] = Field(default_factory=list)
    by_pharmacist: list[PharmacistSales] = Field(default_factory=list)


# ---------- INVENTORY ----------
class LowStockItem(_ReportModel):
    drug_id: str
    name: str
    total_quantity: int
    min_stock: int
    max_stock: int | None = None


class ExpiringLot(_ReportModel):
    inventory_id: str
    drug_id: str
    name: str
    lot_number: str
    expiry_date: date
    quantity: int
    days_remaining: int


class SlowMovingItem(_ReportModel):
    drug_id: str
    name: str
    total_quantity: int
    last_sale_date: datetime | None = None
    days_since_last_sale: int | None = None


class InventorySection(_ReportModel):
    as_of: date
    total_drugs: int = 0
    total_members: int = 0
    low_stock: list[LowStockItem] = Field(default_factory=list)
    near_expiry: list[ExpiringLot] = Field(default_factory=list)
    expired_lots: list[ExpiringLot] = Field(default_factory=list)
    slow_moving: list[SlowMovingItem] = Field(default_factory=list)


# ---------- REGULATORY ----------
class LegalCategoryTotal(_ReportModel):
    legal_category: str
    classification: str | None = None
    transaction_count: int
    quantity: int
    revenue: Money


class FlaggedTransaction(_ReportModel):
    sale_id: str
    sale_date: datetime
    member_id: str
    pharmacist_id: str
    pharmacist: str
    drug_id: str
    trade_name: str
    legal_category: str
    classification: str
    lot_number: str
    quantity: int
    price_per_unit: Money
    line_total: Money


class RegulatorySection(_ReportModel):
    controlled_transaction_count: int = 0
    dangerous_transaction_count: int = 0
    by_legal_category: list[LegalCategoryTotal] = Field(default_factory=list)
    flagged_transactions: list[FlaggedTransaction] = Field(default_factory=list)


class IntegrityWarningRead(_ReportModel):
    kind: str
    drug_id: str
    source: str
    message: str


class KpiReport(_ReportModel):
    window: ReportWindow
    sales: SalesSection
    inventory: InventorySection
    thai_fda: RegulatorySection = Field(alias="thaiFda")
    integrity_warnings: list[IntegrityWarningRead] = Field(default_factory=list)
