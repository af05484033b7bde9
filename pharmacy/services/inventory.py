from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select, update, or_
from sqlalchemy.orm import Session

from pharmacy.app.core.errors import ValidationError, InsufficientStockError
from pharmacy.app.core.logging import get_logger
from pharmacy.app.db.models.models_v1 import Drug, Lot

logger = get_logger(__name__)


@dataclass
class DrugStockSummary:
    drug_id: str
    total_quantity: int = 0
    earliest_expiry: date | None = None
    earliest_lot_number: str | None = None
    lot_count: int = 0


def new_inventory_id() -> str:
    return f"INV-{uuid.uuid4().hex[:16].upper()}"


def receive(
    db: Session,
    *,
    drug_id: str,
    lot_number: str,
    expiry_date: date,
    quantity: int,
    cost_price: Decimal,
    selling_price: Decimal,
    reference_id: str | None = None,
    barcode: str | None = None,
) -> str:
    """
    Réception d'un lot : ajoute une ligne d'inventaire et retourne son inventory_id.

    Le drug_id doit exister dans le formulaire (on refuse de créer du stock orphelin).
    Commit à la charge de l'appelant.
    """
    if quantity is None or quantity < 0:
        raise ValidationError(f"quantity must be >= 0 (got {quantity})")
    if cost_price is None or Decimal(cost_price) < 0:
        raise ValidationError("cost_price must be >= 0")
    if selling_price is None or Decimal(selling_price) < 0:
        raise ValidationError("selling_price must be >= 0")
    if not lot_number or not lot_number.strip():
        raise ValidationError("lot_number is required")

    drug = db.execute(select(Drug).where(Drug.drug_id == drug_id)).scalar_one_or_none()
    if not drug:
        raise ValidationError(f"Unknown drug_id {drug_id!r}")

    lot = Lot(
        inventory_id=new_inventory_id(),
        drug_id=drug_id,
        lot_number=lot_number.strip(),
        expiry_date=expiry_date,
        quantity=int(quantity),
        cost_price=Decimal(cost_price),
        selling_price=Decimal(selling_price),
        reference_id=reference_id,
        barcode=barcode,
    )
    db.add(lot)
    db.flush()

    logger.info(
        "lot_received",
        inventory_id=lot.inventory_id,
        drug_id=drug_id,
        lot_number=lot.lot_number,
        quantity=lot.quantity,
    )
    return lot.inventory_id


def list_sellable_lots(db: Session, drug_id: str, as_of: date) -> list[Lot]:
    """
    Lots vendables d'un médicament, le premier à expirer en tête (FEFO).

    Recommandation seulement : le choix du lot reste à l'appelant.
    """
    return list(
        db.execute(
            select(Lot)
            .where(Lot.drug_id == drug_id)
            .where(Lot.quantity > 0)
            .where(Lot.expiry_date >= as_of)
            .order_by(Lot.expiry_date.asc(), Lot.received_at.asc(), Lot.id.asc())
        )
        .scalars()
        .all()
    )


def get_lot(db: Session, inventory_id: str, *, for_update: bool = False) -> Lot | None:
    stmt = select(Lot).where(Lot.inventory_id == inventory_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def decrement(db: Session, inventory_id: str, quantity: int) -> int:
    """
    Décrément atomique (compare-and-decrement) :

        UPDATE inventory SET quantity = quantity - :q
        WHERE inventory_id = :id AND quantity >= :q

    Rien n'est appliqué si le lot n'existe pas ou si le stock est insuffisant.
    Retourne la nouvelle quantité. Pas de commit ici.
    """
    if quantity is None or quantity <= 0:
        raise ValidationError(f"quantity must be > 0 (got {quantity})")

    result = db.execute(
        update(Lot)
        .where(Lot.inventory_id == inventory_id)
        .where(Lot.quantity >= quantity)
        .values(quantity=Lot.quantity - quantity)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        available = db.execute(
            select(Lot.quantity).where(Lot.inventory_id == inventory_id)
        ).scalar_one_or_none()
        if available is None:
            raise InsufficientStockError(
                f"Lot {inventory_id} not found",
                inventory_id=inventory_id,
                requested=quantity,
            )
        raise InsufficientStockError(
            f"Insufficient stock on lot {inventory_id} (available={available}, requested={quantity})",
            inventory_id=inventory_id,
            requested=quantity,
            available=int(available),
        )

    new_quantity = db.execute(
        select(Lot.quantity).where(Lot.inventory_id == inventory_id)
    ).scalar_one()

    # la session ne doit pas garder l'ancienne quantité
    for obj in list(db.identity_map.values()):
        if isinstance(obj, Lot) and obj.inventory_id == inventory_id:
            db.expire(obj, ["quantity"])

    return int(new_quantity)


def summarize_by_drug(db: Session) -> dict[str, DrugStockSummary]:
    """
    Agrège les lots en stock (quantity > 0) par drug_id.
    Garde le lot qui expire le plus tôt (date + numéro de lot).
    """
    rows = db.execute(
        select(Lot.drug_id, Lot.lot_number, Lot.expiry_date, Lot.quantity)
        .where(Lot.quantity > 0)
        .order_by(Lot.drug_id, Lot.expiry_date, Lot.id)
    ).all()

    summary: dict[str, DrugStockSummary] = {}
    for drug_id, lot_number, expiry_date, qty in rows:
        s = summary.get(drug_id)
        if s is None:
            s = summary[drug_id] = DrugStockSummary(drug_id=drug_id)
        s.total_quantity += int(qty)
        s.lot_count += 1
        if s.earliest_expiry is None or expiry_date < s.earliest_expiry:
            s.earliest_expiry = expiry_date
            s.earliest_lot_number = lot_number
    return summary


def stock_overview(db: Session) -> list[dict]:
    """Vue stock par médicament, triée par nom affiché."""
    drugs = {d.drug_id: d for d in db.execute(select(Drug)).scalars().all()}
    rows = []
    for drug_id, s in summarize_by_drug(db).items():
        drug = drugs.get(drug_id)
        rows.append(
            {
                "drug_id": drug_id,
                "name": drug.display_name if drug else drug_id,
                "total_quantity": s.total_quantity,
                "lot_count": s.lot_count,
                "earliest_lot_number": s.earliest_lot_number,
                "earliest_expiry": s.earliest_expiry,
            }
        )
    rows.sort(key=lambda r: (r["name"].casefold(), r["drug_id"]))
    return rows


def search_drugs(db: Session, term: str | None) -> list[Drug]:
    """Formulaire entier (en stock ou non), par nom commercial ou générique (>= 2 caractères)."""
    if not term or len(term.strip()) < 2:
        return []
    pattern = f"%{term.strip()}%"
    return list(
        db.execute(
            select(Drug)
            .where(or_(Drug.trade_name.ilike(pattern), Drug.generic_name.ilike(pattern)))
            .order_by(Drug.trade_name, Drug.drug_id)
        )
        .scalars()
        .all()
    )


def search_available_drugs(db: Session, term: str | None) -> list[Drug]:
    """Médicaments en stock dont le nom commercial ou générique contient term (>= 2 caractères)."""
    if not term or len(term.strip()) < 2:
        return []
    pattern = f"%{term.strip()}%"

    in_stock = select(Lot.drug_id).where(Lot.quantity > 0).distinct()
    return list(
        db.execute(
            select(Drug)
            .where(Drug.drug_id.in_(in_stock))
            .where(or_(Drug.trade_name.ilike(pattern), Drug.generic_name.ilike(pattern)))
            .order_by(Drug.trade_name)
        )
        .scalars()
        .all()
    )


def list_lots_with_names(db: Session) -> list[dict]:
    """Tous les lots (y compris épuisés), avec les noms du formulaire."""
    rows = db.execute(
        select(Lot, Drug.trade_name, Drug.generic_name)
        .outerjoin(Drug, Drug.drug_id == Lot.drug_id)
        .order_by(Drug.trade_name, Lot.drug_id, Lot.expiry_date, Lot.id)
    ).all()
    return [
        {
            "inventory_id": lot.inventory_id,
            "drug_id": lot.drug_id,
            "trade_name": trade_name or lot.drug_id,
            "generic_name": generic_name,
            "lot_number": lot.lot_number,
            "expiry_date": lot.expiry_date,
            "quantity": lot.quantity,
            "cost_price": lot.cost_price,
            "selling_price": lot.selling_price,
            "reference_id": lot.reference_id,
            "barcode": lot.barcode,
            "received_at": lot.received_at,
        }
        for lot, trade_name, generic_name in rows
    ]
