"""
Export Serializer.

Aplatit un KpiReport (ou une table brute) en lignes de chaînes affichables.
Formatage uniquement, aucun calcul métier :
- montants : 2 décimales, séparateur de milliers  -> "1,234.50"
- comptages : entiers, séparateur de milliers     -> "1,234"
- dates : ISO, None -> ""
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from pharmacy.app.core.errors import ValidationError
from pharmacy.app.db.models.core_types import ReportSection
from pharmacy.app.schemas.report import KpiReport
from pharmacy.services.money import round_money

Row = list[str]

MONEY = "money"
COUNT = "count"
TEXT = "text"
DATE = "date"


@dataclass(frozen=True)
class Column:
    header: str
    key: str
    kind: str = TEXT


def format_value(value: Any, kind: str = TEXT) -> str:
    if value is None:
        return ""
    if kind == MONEY:
        return f"{round_money(value):,.2f}"
    if kind == COUNT:
        return f"{int(value):,}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "value"):  # enums
        return str(value.value)
    return str(value)


def _get(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def table_to_rows(records: Iterable[Any], columns: Sequence[Column]) -> list[Row]:
    """Table brute -> [en-têtes, ligne, ligne, ...]."""
    rows: list[Row] = [[c.header for c in columns]]
    for record in records:
        rows.append([format_value(_get(record, c.key), c.kind) for c in columns])
    return rows


def _block(title: str, records: Iterable[Any], columns: Sequence[Column]) -> list[Row]:
    return [[title], *table_to_rows(records, columns), []]


def _fields(title: str, obj: Any, columns: Sequence[Column]) -> list[Row]:
    rows: list[Row] = [[title]]
    rows.extend([c.header, format_value(_get(obj, c.key), c.kind)] for c in columns)
    rows.append([])
    return rows


# ---------- colonnes du rapport ----------
SALES_SUMMARY = (
    Column("Total revenue", "total_revenue", MONEY),
    Column("Units sold", "total_units_sold", COUNT),
    Column("Transactions", "transaction_count", COUNT),
    Column("Average ticket", "average_ticket", MONEY),
    Column("Unique customers", "unique_customers", COUNT),
)
TOP_PRODUCTS = (
    Column("Drug ID", "drug_id"),
    Column("Name", "name"),
    Column("Quantity", "quantity", COUNT),
    Column("Revenue", "revenue", MONEY),
)
TOP_CATEGORIES = (
    Column("Category", "category"),
    Column("Quantity", "quantity", COUNT),
    Column("Revenue", "revenue", MONEY),
)
TOP_MEMBERS = (
    Column("Member ID", "member_id"),
    Column("Full name", "full_name"),
    Column("Transactions", "transaction_count", COUNT),
    Column("Revenue", "revenue", MONEY),
)
BY_PHARMACIST = (
    Column("Pharmacist ID", "pharmacist_id"),
    Column("Pharmacist", "pharmacist"),
    Column("Transactions", "transaction_count", COUNT),
    Column("Revenue", "revenue", MONEY),
)

INVENTORY_SUMMARY = (
    Column("As of", "as_of", DATE),
    Column("Drugs in formulary", "total_drugs", COUNT),
    Column("Members", "total_members", COUNT),
)
LOW_STOCK = (
    Column("Drug ID", "drug_id"),
    Column("Name", "name"),
    Column("Total quantity", "total_quantity", COUNT),
    Column("Min stock", "min_stock", COUNT),
    Column("Max stock", "max_stock", COUNT),
)
EXPIRING_LOTS = (
    Column("Inventory ID", "inventory_id"),
    Column("Drug ID", "drug_id"),
    Column("Name", "name"),
    Column("Lot", "lot_number"),
    Column("Expiry date", "expiry_date", DATE),
    Column("Quantity", "quantity", COUNT),
    Column("Days remaining", "days_remaining", COUNT),
)
SLOW_MOVING = (
    Column("Drug ID", "drug_id"),
    Column("Name", "name"),
    Column("Total quantity", "total_quantity", COUNT),
    Column("Last sale", "last_sale_date", DATE),
    Column("Days since last sale", "days_since_last_sale", COUNT),
)

REGULATORY_SUMMARY = (
    Column("Controlled transactions", "controlled_transaction_count", COUNT),
    Column("Dangerous transactions", "dangerous_transaction_count", COUNT),
)
LEGAL_CATEGORIES = (
    Column("Legal category", "legal_category"),
    Column("Classification", "classification"),
    Column("Transactions", "transaction_count", COUNT),
    Column("Quantity", "quantity", COUNT),
    Column("Revenue", "revenue", MONEY),
)
FLAGGED = (
    Column("Sale ID", "sale_id"),
    Column("Sale date", "sale_date", DATE),
    Column("Member ID", "member_id"),
    Column("Pharmacist ID", "pharmacist_id"),
    Column("Pharmacist", "pharmacist"),
    Column("Drug ID", "drug_id"),
    Column("Trade name", "trade_name"),
    Column("Legal category", "legal_category"),
    Column("Classification", "classification"),
    Column("Lot", "lot_number"),
    Column("Quantity", "quantity", COUNT),
    Column("Price per unit", "price_per_unit", MONEY),
    Column("Line total", "line_total", MONEY),
)

INTEGRITY_WARNINGS = (
    Column("Kind", "kind"),
    Column("Source", "source"),
    Column("Drug ID", "drug_id"),
    Column("Message", "message"),
)

# ---------- tables brutes ----------
SALES_TABLE = (
    Column("Sale ID", "sale_id"),
    Column("Sale date", "sale_date", DATE),
    Column("Member ID", "member_id"),
    Column("Member", "member_name"),
    Column("Pharmacist", "pharmacist"),
    Column("Drug ID", "drug_id"),
    Column("Trade name", "trade_name"),
    Column("Lot", "lot_number"),
    Column("Quantity", "quantity_sold", COUNT),
    Column("Price per unit", "price_per_unit", MONEY),
    Column("Line total", "line_total", MONEY),
    Column("Sale total", "total_amount", MONEY),
)
INVENTORY_TABLE = (
    Column("Inventory ID", "inventory_id"),
    Column("Drug ID", "drug_id"),
    Column("Trade name", "trade_name"),
    Column("Generic name", "generic_name"),
    Column("Lot", "lot_number"),
    Column("Expiry date", "expiry_date", DATE),
    Column("Quantity", "quantity", COUNT),
    Column("Cost price", "cost_price", MONEY),
    Column("Selling price", "selling_price", MONEY),
    Column("Reference", "reference_id"),
    Column("Barcode", "barcode"),
    Column("Received at", "received_at", DATE),
)
MEMBERS_TABLE = (
    Column("Member ID", "member_id"),
    Column("Full name", "full_name"),
    Column("National ID", "national_id"),
    Column("Date of birth", "dob", DATE),
    Column("Phone", "phone"),
    Column("Allergies", "allergies"),
    Column("Disease", "disease"),
    Column("Created at", "created_at", DATE),
)

RAW_TABLES: dict[str, Sequence[Column]] = {
    "sales": SALES_TABLE,
    "inventory": INVENTORY_TABLE,
    "members": MEMBERS_TABLE,
}


def parse_sections(sections: Iterable[str] | str | None) -> list[ReportSection]:
    """None / vide -> toutes les sections, dans l'ordre canonique."""
    if sections is None:
        return list(ReportSection)
    if isinstance(sections, str):
        sections = [s for s in sections.split(",")]
    wanted = {s.strip() for s in sections if s and s.strip()}
    if not wanted:
        return list(ReportSection)

    valid = {s.value for s in ReportSection}
    unknown = sorted(wanted - valid)
    if unknown:
        raise ValidationError(
            f"Unknown report section(s): {', '.join(unknown)} (expected: {', '.join(sorted(valid))})"
        )
    return [s for s in ReportSection if s.value in wanted]


def report_to_rows(report: KpiReport, sections: Iterable[str] | str | None = None) -> list[Row]:
    selected = parse_sections(sections)
    window = report.window

    rows: list[Row] = [
        ["Pharmacy KPI report"],
        ["Period", window.period],
        ["Label", window.label],
        ["Start", window.start_iso],
        ["End", window.end_iso],
        [],
    ]

    if ReportSection.sales in selected:
        s = report.sales
        rows += _fields("Sales", s, SALES_SUMMARY)
        rows += _block("Top products", s.top_products, TOP_PRODUCTS)
        rows += _block("Top categories", s.top_categories, TOP_CATEGORIES)
        rows += _block("Top members", s.top_members, TOP_MEMBERS)
        rows += _block("Sales by pharmacist", s.by_pharmacist, BY_PHARMACIST)

    if ReportSection.inventory in selected:
        inv = report.inventory
        rows += _fields("Inventory", inv, INVENTORY_SUMMARY)
        rows += _block("Low stock", inv.low_stock, LOW_STOCK)
        rows += _block("Near expiry", inv.near_expiry, EXPIRING_LOTS)
        rows += _block("Expired lots", inv.expired_lots, EXPIRING_LOTS)
        rows += _block("Slow moving", inv.slow_moving, SLOW_MOVING)

    if ReportSection.thai_fda in selected:
        reg = report.thai_fda
        rows += _fields("Thai FDA regulatory summary", reg, REGULATORY_SUMMARY)
        rows += _block("By legal category", reg.by_legal_category, LEGAL_CATEGORIES)
        rows += _block("Flagged transactions", reg.flagged_transactions, FLAGGED)

    # hors sections : toujours exporté
    rows += _block("Integrity warnings", report.integrity_warnings, INTEGRITY_WARNINGS)

    # pas de ligne vide finale
    while rows and not rows[-1]:
        rows.pop()
    return rows


def rows_to_csv(rows: Sequence[Row]) -> str:
    """Lignes -> CSV (les lignes courtes sont complétées par des cellules vides)."""
    if not rows:
        return ""
    width = max(len(r) for r in rows) or 1
    padded = [list(r) + [""] * (width - len(r)) for r in rows]
    return pd.DataFrame(padded).to_csv(index=False, header=False, lineterminator="\n")
