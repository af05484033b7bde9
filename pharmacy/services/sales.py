"""
Sale Transaction Processor.

Un panier = un sale_id, N lignes dans `sales`, N décréments de lots.
Tout est commité ensemble ou rien du tout.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy.app.core.config import get_settings
from pharmacy.app.core.errors import ValidationError, InsufficientStockError
from pharmacy.app.core.logging import get_logger
from pharmacy.app.db.models.core_types import ActivityType
from pharmacy.app.db.models.models_v1 import SaleLine, Drug, Member
from pharmacy.app.schemas.sale import SaleCreate
from pharmacy.services.activity import ActivityRecorder, safe_record
from pharmacy.services.inventory import decrement, get_lot
from pharmacy.services.money import round_money

logger = get_logger(__name__)


@dataclass(frozen=True)
class SaleRecorded:
    sale_id: str
    total_amount: Decimal
    pharmacist_id: str


def new_sale_id() -> str:
    return f"SALE-{uuid.uuid4().hex[:16].upper()}"


def _validate_cart(cart: SaleCreate, tolerance: Decimal) -> Decimal:
    """Préconditions avant toute mutation. Retourne la somme des lignes."""
    if not cart.items:
        raise ValidationError("Cart has no items")
    if not (cart.pharmacist_id or "").strip():
        raise ValidationError("pharmacistId is required")
    if not (cart.pharmacist_name or "").strip():
        raise ValidationError("pharmacistName is required")
    if cart.declared_total is None or cart.declared_total < 0:
        raise ValidationError("declaredTotal must be >= 0")

    lines_total = Decimal("0")
    for idx, item in enumerate(cart.items):
        if not (item.inventory_id or "").strip():
            raise ValidationError(f"Line {idx + 1}: inventoryId is required", line_index=idx)
        if not (item.drug_id or "").strip():
            raise ValidationError(f"Line {idx + 1}: drugId is required", line_index=idx)
        if item.quantity is None or item.quantity <= 0:
            raise ValidationError(f"Line {idx + 1}: quantity must be > 0", line_index=idx)
        if item.price_per_unit is None or item.price_per_unit < 0:
            raise ValidationError(f"Line {idx + 1}: pricePerUnit must be >= 0", line_index=idx)
        lines_total += Decimal(item.quantity) * Decimal(item.price_per_unit)

    # le total déclaré n'est qu'un indice UI : il doit coller aux lignes
    if abs(Decimal(cart.declared_total) - lines_total) > tolerance:
        raise ValidationError(
            f"declaredTotal {cart.declared_total} does not match line sum {round_money(lines_total)}",
            declared_total=str(cart.declared_total),
            lines_total=str(round_money(lines_total)),
            tolerance=str(tolerance),
        )
    return lines_total


def record_sale(
    db: Session,
    cart: SaleCreate,
    *,
    activity_log: ActivityRecorder | None = None,
    tolerance: Decimal | None = None,
    now: datetime | None = None,
) -> str:
    """
    Enregistre un panier et retourne son sale_id.

    - ValidationError : panier invalide (rien n'est touché)
    - InsufficientStockError : lot introuvable / stock insuffisant sur une ligne,
      rollback complet du panier
    """
    settings = get_settings()
    if tolerance is None:
        tolerance = settings.sale_total_tolerance
    _validate_cart(cart, Decimal(tolerance))

    sale_id = new_sale_id()
    sale_date = now or datetime.now()
    member_id = (cart.member_id or "").strip() or settings.anonymous_member_id
    pharmacist_id = cart.pharmacist_id.strip()
    pharmacist = cart.pharmacist_name.strip()
    total_amount = round_money(cart.declared_total)

    try:
        for idx, item in enumerate(cart.items):
            lot = get_lot(db, item.inventory_id, for_update=True)
            if lot is None:
                raise InsufficientStockError(
                    f"Line {idx + 1}: lot {item.inventory_id} not found",
                    inventory_id=item.inventory_id,
                    requested=item.quantity,
                    line_index=idx,
                )
            if lot.drug_id != item.drug_id:
                raise ValidationError(
                    f"Line {idx + 1}: lot {lot.inventory_id} belongs to {lot.drug_id}, not {item.drug_id}",
                    line_index=idx,
                )
            if item.lot_number and item.lot_number != lot.lot_number:
                raise ValidationError(
                    f"Line {idx + 1}: lot number {item.lot_number} does not match {lot.lot_number}",
                    line_index=idx,
                )
            lot_number = lot.lot_number

            try:
                decrement(db, item.inventory_id, item.quantity)
            except InsufficientStockError as exc:
                raise InsufficientStockError(
                    f"Line {idx + 1}: {exc.detail}",
                    inventory_id=exc.inventory_id,
                    requested=exc.requested,
                    available=exc.available,
                    line_index=idx,
                ) from exc

            db.add(
                SaleLine(
                    sale_id=sale_id,
                    sale_date=sale_date,
                    member_id=member_id,
                    pharmacist_id=pharmacist_id,
                    pharmacist=pharmacist,
                    total_amount=total_amount,
                    inventory_id=item.inventory_id,
                    quantity_sold=item.quantity,
                    price_per_unit=round_money(item.price_per_unit),
                    drug_id=item.drug_id,
                    lot_number=lot_number,
                )
            )

        db.flush()
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("sale_rolled_back", sale_id=sale_id, pharmacist_id=pharmacist_id, lines=len(cart.items))
        raise

    event = SaleRecorded(sale_id=sale_id, total_amount=total_amount, pharmacist_id=pharmacist_id)
    logger.info(
        "sale_recorded",
        sale_id=event.sale_id,
        total_amount=str(event.total_amount),
        pharmacist_id=event.pharmacist_id,
        lines=len(cart.items),
    )
    safe_record(
        activity_log,
        ActivityType.sale_recorded.value,
        f"Sale {event.sale_id} recorded, total {event.total_amount}",
        entity="sale",
        entity_id=event.sale_id,
        performed_by=event.pharmacist_id,
    )
    return sale_id


def list_sales(db: Session, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    """Lignes de vente sur [start, end), plus récentes d'abord, avec noms membre/médicament."""
    stmt = (
        select(SaleLine, Member.full_name, Drug.trade_name, Drug.generic_name)
        .outerjoin(Member, Member.member_id == SaleLine.member_id)
        .outerjoin(Drug, Drug.drug_id == SaleLine.drug_id)
        .order_by(SaleLine.sale_date.desc(), SaleLine.id.desc())
    )
    if start is not None:
        stmt = stmt.where(SaleLine.sale_date >= start)
    if end is not None:
        stmt = stmt.where(SaleLine.sale_date < end)

    rows = db.execute(stmt).all()
    return [_sale_row(s, member_name, trade_name, generic_name) for s, member_name, trade_name, generic_name in rows]


def member_purchases(db: Session, member_id: str) -> list[dict]:
    rows = db.execute(
        select(SaleLine, Member.full_name, Drug.trade_name, Drug.generic_name)
        .outerjoin(Member, Member.member_id == SaleLine.member_id)
        .outerjoin(Drug, Drug.drug_id == SaleLine.drug_id)
        .where(SaleLine.member_id == member_id)
        .order_by(SaleLine.sale_date.desc(), SaleLine.id.desc())
    ).all()
    return [_sale_row(s, member_name, trade_name, generic_name) for s, member_name, trade_name, generic_name in rows]


def _sale_row(s: SaleLine, member_name: str | None, trade_name: str | None, generic_name: str | None) -> dict:
    return {
        "sale_id": s.sale_id,
        "sale_date": s.sale_date,
        "member_id": s.member_id,
        "member_name": member_name,
        "pharmacist_id": s.pharmacist_id,
        "pharmacist": s.pharmacist,
        "inventory_id": s.inventory_id,
        "drug_id": s.drug_id,
        "trade_name": trade_name or s.drug_id,
        "generic_name": generic_name,
        "lot_number": s.lot_number,
        "quantity_sold": s.quantity_sold,
        "price_per_unit": s.price_per_unit,
        "line_total": round_money(s.line_total),
        "total_amount": s.total_amount,
    }
