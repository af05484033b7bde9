from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_db
from pharmacy.app.db.models.models_v1 import Drug
from pharmacy.app.schemas.lot import LotRead
from pharmacy.services.inventory import list_sellable_lots, search_drugs

router = APIRouter(prefix="/drugs")


class DrugCreate(BaseModel):
    drug_id: str = Field(min_length=1, max_length=64)
    trade_name: str = Field(min_length=1, max_length=255)
    generic_name: str | None = Field(default=None, max_length=255)
    legal_category: str | None = Field(default=None, max_length=128)
    pharma_category: str | None = Field(default=None, max_length=128)
    strength: str | None = Field(default=None, max_length=64)
    unit: str | None = Field(default=None, max_length=32)
    indication: str | None = None
    caution: str | None = None
    min_stock: int | None = Field(default=0, ge=0)
    max_stock: int | None = Field(default=0, ge=0)


def _drug_dict(d: Drug) -> dict:
    return {
        "drug_id": d.drug_id,
        "trade_name": d.trade_name,
        "generic_name": d.generic_name,
        "legal_category": d.legal_category,
        "pharma_category": d.pharma_category,
        "strength": d.strength,
        "unit": d.unit,
        "indication": d.indication,
        "caution": d.caution,
        "min_stock": d.min_stock,
        "max_stock": d.max_stock,
    }


@router.get("")
def list_drugs(db: Session = Depends(get_db)):
    rows = db.execute(select(Drug).order_by(Drug.trade_name, Drug.drug_id)).scalars().all()
    return [_drug_dict(d) for d in rows]


@router.post("")
def create_drug(payload: DrugCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Drug).where(Drug.drug_id == payload.drug_id)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="drug_id already exists")

    d = Drug(**payload.model_dump())
    db.add(d)
    db.commit()
    db.refresh(d)
    return {"drug_id": d.drug_id, "trade_name": d.trade_name}


@router.get("/search")
def search(term: str | None = None, db: Session = Depends(get_db)):
    return [_drug_dict(d) for d in search_drugs(db, term)]


@router.get("/{drug_id}/lots", response_model=list[LotRead], response_model_by_alias=True)
def get_sellable_lots(
    drug_id: str,
    as_of: date | None = None,
    db: Session = Depends(get_db),
):
    """
    Lots vendables (quantity > 0, non expirés à as_of), premier à expirer en tête.
    as_of par défaut : aujourd'hui.
    """
    return list_sellable_lots(db, drug_id, as_of or date.today())
