"""
KPI Aggregation Engine.

Deux passes indépendantes :
- ventes de la fenêtre (jointes au formulaire) -> sales + thaiFda
- état COURANT de l'inventaire (hors fenêtre)  -> inventory

Le CA est recalculé depuis les lignes (quantity x price_per_unit),
jamais depuis total_amount déclaré par la caisse.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from pharmacy.app.core.config import get_settings
from pharmacy.app.core.errors import IntegrityWarning
from pharmacy.app.core.logging import get_logger
from pharmacy.app.db.models.core_types import Period, RegulatoryClass
from pharmacy.app.db.models.models_v1 import Drug, Lot, Member, SaleLine
from pharmacy.app.schemas.report import (
    CategorySales,
    ExpiringLot,
    FlaggedTransaction,
    IntegrityWarningRead,
    InventorySection,
    KpiReport,
    LegalCategoryTotal,
    LowStockItem,
    MemberSales,
    PharmacistSales,
    ProductSales,
    RegulatorySection,
    ReportWindow,
    SalesSection,
    SlowMovingItem,
)
from pharmacy.services.inventory import summarize_by_drug
from pharmacy.services.money import round_money
from pharmacy.services.periods import resolve_period, window_upper_bound
from pharmacy.services.regulatory import RegulatoryClassifier

logger = get_logger(__name__)

UNCATEGORIZED = "Uncategorized"
UNSPECIFIED_LEGAL = "Unspecified"
UNKNOWN_MEMBER = "Unknown Member"

_CLASS_RANK = {RegulatoryClass.controlled.value: 0, RegulatoryClass.dangerous.value: 1, None: 2}


@dataclass
class _Bucket:
    quantity: int = 0
    revenue: Decimal = Decimal("0")
    sale_ids: dict[str, None] = field(default_factory=dict)

    def add(self, sale_id: str, quantity: int, revenue: Decimal) -> None:
        self.quantity += quantity
        self.revenue += revenue
        self.sale_ids[sale_id] = None


def _top(buckets: dict[str, _Bucket], n: int) -> list[tuple[str, _Bucket]]:
    # sorted() est stable : à CA égal, l'ordre de première apparition est conservé
    return sorted(buckets.items(), key=lambda kv: kv[1].revenue, reverse=True)[:n]


def build_report(
    db: Session,
    period: str | Period,
    reference: str | date | datetime | None = None,
    *,
    today: date | None = None,
    now: datetime | None = None,
    classifier: RegulatoryClassifier | None = None,
) -> KpiReport:
    """
    Construit le rapport KPI pour (period, reference).

    InvalidPeriodError si la période ou la date de référence est invalide.
    Une fenêtre vide donne des zéros / listes vides, pas une erreur.
    """
    settings = get_settings()
    now = now or datetime.now()
    today = today or now.date()
    classifier = classifier or RegulatoryClassifier.from_settings()

    window = resolve_period(period, reference, now=now)
    drugs = {d.drug_id: d for d in db.execute(select(Drug).order_by(Drug.drug_id)).scalars().all()}
    warnings: dict[tuple[str, str], IntegrityWarning] = {}

    sales, thai_fda = _sales_pass(db, window, drugs, classifier, warnings, top_n=settings.top_n)
    inventory = _inventory_pass(
        db,
        drugs,
        warnings,
        today=today,
        near_expiry_days=settings.near_expiry_days,
        slow_moving_days=settings.slow_moving_days,
    )

    for w in warnings.values():
        logger.warning("integrity_warning", drug_id=w.drug_id, source=w.source)

    report = KpiReport(
        window=window,
        sales=sales,
        inventory=inventory,
        thai_fda=thai_fda,
        integrity_warnings=[
            IntegrityWarningRead(kind=w.kind, drug_id=w.drug_id, source=w.source, message=w.message)
            for _, w in sorted(warnings.items())
        ],
    )
    logger.info(
        "report_built",
        period=window.period,
        label=window.label,
        transactions=sales.transaction_count,
        revenue=str(sales.total_revenue),
    )
    return report


# ---------- SALES (fenêtre) ----------
def _sales_pass(
    db: Session,
    window: ReportWindow,
    drugs: dict[str, Drug],
    classifier: RegulatoryClassifier,
    warnings: dict[tuple[str, str], IntegrityWarning],
    *,
    top_n: int,
) -> tuple[SalesSection, RegulatorySection]:
    anonymous = get_settings().anonymous_member_id

    lines = (
        db.execute(
            select(SaleLine)
            .where(SaleLine.sale_date >= window.start)
            .where(SaleLine.sale_date < window_upper_bound(window))
            .order_by(SaleLine.sale_date.asc(), SaleLine.id.asc())
        )
        .scalars()
        .all()
    )

    revenue = Decimal("0")
    units = 0
    sale_ids: dict[str, None] = {}
    customers: dict[str, None] = {}
    products: dict[str, _Bucket] = {}
    categories: dict[str, _Bucket] = {}
    members: dict[str, _Bucket] = {}
    pharmacists: dict[str, _Bucket] = {}
    pharmacist_names: dict[str, str] = {}
    legal: dict[str, _Bucket] = {}
    legal_class: dict[str, str | None] = {}
    by_class: dict[str, dict[str, None]] = {c.value: {} for c in RegulatoryClass}
    flagged: list[FlaggedTransaction] = []

    for line in lines:
        line_total = Decimal(line.quantity_sold) * Decimal(line.price_per_unit)
        revenue += line_total
        units += line.quantity_sold
        sale_ids[line.sale_id] = None

        drug = drugs.get(line.drug_id)
        if drug is None:
            warnings.setdefault(("sales", line.drug_id), IntegrityWarning(drug_id=line.drug_id, source="sales"))

        products.setdefault(line.drug_id, _Bucket()).add(line.sale_id, line.quantity_sold, line_total)
        category = (drug.pharma_category if drug else None) or UNCATEGORIZED
        categories.setdefault(category, _Bucket()).add(line.sale_id, line.quantity_sold, line_total)

        member_id = (line.member_id or "").strip()
        if member_id and member_id != anonymous:
            customers[member_id] = None
            members.setdefault(member_id, _Bucket()).add(line.sale_id, line.quantity_sold, line_total)

        pharmacists.setdefault(line.pharmacist_id, _Bucket()).add(line.sale_id, line.quantity_sold, line_total)
        pharmacist_names.setdefault(line.pharmacist_id, line.pharmacist)

        # ---------- réglementaire ----------
        legal_category = (drug.legal_category if drug else None) or UNSPECIFIED_LEGAL
        tag = classifier.classify(drug.legal_category if drug else None)
        legal.setdefault(legal_category, _Bucket()).add(line.sale_id, line.quantity_sold, line_total)
        legal_class.setdefault(legal_category, tag.value if tag else None)
        if tag is not None:
            by_class[tag.value][line.sale_id] = None
            flagged.append(
                FlaggedTransaction(
                    sale_id=line.sale_id,
                    sale_date=line.sale_date,
                    member_id=line.member_id,
                    pharmacist_id=line.pharmacist_id,
                    pharmacist=line.pharmacist,
                    drug_id=line.drug_id,
                    trade_name=drug.trade_name if drug else line.drug_id,
                    legal_category=legal_category,
                    classification=tag.value,
                    lot_number=line.lot_number,
                    quantity=line.quantity_sold,
                    price_per_unit=round_money(line.price_per_unit),
                    line_total=round_money(line_total),
                )
            )

    transaction_count = len(sale_ids)
    average = revenue / transaction_count if transaction_count else Decimal("0")

    member_names = _member_names(db, [mid for mid, _ in _top(members, top_n)])

    sales = SalesSection(
        total_revenue=round_money(revenue),
        total_units_sold=units,
        transaction_count=transaction_count,
        average_ticket=round_money(average),
        unique_customers=len(customers),
        top_products=[
            ProductSales(
                drug_id=drug_id,
                name=drugs[drug_id].display_name if drug_id in drugs else drug_id,
                quantity=b.quantity,
                revenue=round_money(b.revenue),
            )
            for drug_id, b in _top(products, top_n)
        ],
        top_categories=[
            CategorySales(category=category, quantity=b.quantity, revenue=round_money(b.revenue))
            for category, b in _top(categories, top_n)
        ],
        top_members=[
            MemberSales(
                member_id=member_id,
                full_name=member_names.get(member_id, UNKNOWN_MEMBER),
                transaction_count=len(b.sale_ids),
                revenue=round_money(b.revenue),
            )
            for member_id, b in _top(members, top_n)
        ],
        by_pharmacist=[
            PharmacistSales(
                pharmacist_id=pid,
                pharmacist=pharmacist_names[pid],
                transaction_count=len(b.sale_ids),
                revenue=round_money(b.revenue),
            )
            for pid, b in _top(pharmacists, len(pharmacists))
        ],
    )

    ordered_legal = sorted(
        legal.items(),
        key=lambda kv: (_CLASS_RANK[legal_class[kv[0]]], -kv[1].revenue),
    )
    thai_fda = RegulatorySection(
        controlled_transaction_count=len(by_class[RegulatoryClass.controlled.value]),
        dangerous_transaction_count=len(by_class[RegulatoryClass.dangerous.value]),
        by_legal_category=[
            LegalCategoryTotal(
                legal_category=name,
                classification=legal_class[name],
                transaction_count=len(b.sale_ids),
                quantity=b.quantity,
                revenue=round_money(b.revenue),
            )
            for name, b in ordered_legal
        ],
        flagged_transactions=flagged,
    )
    return sales, thai_fda


def _member_names(db: Session, member_ids: list[str]) -> dict[str, str]:
    if not member_ids:
        return {}
    rows = db.execute(
        select(Member.member_id, Member.full_name).where(Member.member_id.in_(member_ids))
    ).all()
    return {mid: name for mid, name in rows}


# ---------- INVENTORY (état courant) ----------
def _inventory_pass(
    db: Session,
    drugs: dict[str, Drug],
    warnings: dict[tuple[str, str], IntegrityWarning],
    *,
    today: date,
    near_expiry_days: int,
    slow_moving_days: int,
) -> InventorySection:
    summary = summarize_by_drug(db)

    def name_of(drug_id: str) -> str:
        drug = drugs.get(drug_id)
        return drug.display_name if drug else drug_id

    for drug_id in summary:
        if drug_id not in drugs:
            warnings.setdefault(("inventory", drug_id), IntegrityWarning(drug_id=drug_id, source="inventory"))

    # rupture incluse : un SKU avec politique et 0 en stock est "low stock"
    low_stock = [
        LowStockItem(
            drug_id=drug.drug_id,
            name=drug.display_name,
            total_quantity=summary[drug.drug_id].total_quantity if drug.drug_id in summary else 0,
            min_stock=drug.min_stock,
            max_stock=drug.max_stock or None,
        )
        for drug in drugs.values()
        if (drug.min_stock or 0) > 0
        and (summary[drug.drug_id].total_quantity if drug.drug_id in summary else 0) <= drug.min_stock
    ]
    low_stock.sort(key=lambda item: item.total_quantity)

    lots = (
        db.execute(
            select(Lot)
            .where(Lot.quantity > 0)
            .order_by(Lot.expiry_date.asc(), Lot.drug_id.asc(), Lot.lot_number.asc(), Lot.id.asc())
        )
        .scalars()
        .all()
    )
    near_expiry: list[ExpiringLot] = []
    expired: list[ExpiringLot] = []
    for lot in lots:
        days = (lot.expiry_date - today).days
        if days > near_expiry_days:
            continue
        item = ExpiringLot(
            inventory_id=lot.inventory_id,
            drug_id=lot.drug_id,
            name=name_of(lot.drug_id),
            lot_number=lot.lot_number,
            expiry_date=lot.expiry_date,
            quantity=lot.quantity,
            days_remaining=days,
        )
        (expired if days < 0 else near_expiry).append(item)

    last_sales = {
        drug_id: last
        for drug_id, last in db.execute(
            select(SaleLine.drug_id, func.max(SaleLine.sale_date)).group_by(SaleLine.drug_id)
        ).all()
    }
    slow_moving: list[SlowMovingItem] = []
    for drug_id, s in summary.items():
        last = last_sales.get(drug_id)
        days_since = (today - last.date()).days if last else None
        if days_since is not None and days_since <= slow_moving_days:
            continue
        slow_moving.append(
            SlowMovingItem(
                drug_id=drug_id,
                name=name_of(drug_id),
                total_quantity=s.total_quantity,
                last_sale_date=last,
                days_since_last_sale=days_since,
            )
        )
    # jamais vendu d'abord, puis la dernière vente la plus ancienne
    slow_moving.sort(
        key=lambda item: (
            item.last_sale_date is not None,
            item.last_sale_date or datetime.min,
            item.drug_id,
        )
    )

    total_members = db.execute(select(func.count()).select_from(Member)).scalar_one()

    return InventorySection(
        as_of=today,
        total_drugs=len(drugs),
        total_members=int(total_members),
        low_stock=low_stock,
        near_expiry=near_expiry,
        expired_lots=expired,
        slow_moving=slow_moving,
    )
