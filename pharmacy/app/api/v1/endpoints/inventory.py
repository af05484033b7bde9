from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import Actor, get_actor, get_activity_log, get_db
from pharmacy.app.db.models.core_types import ActivityType
from pharmacy.services.activity import ActivityRecorder, safe_record
from pharmacy.services.inventory import (
    list_lots_with_names,
    receive,
    search_available_drugs,
    stock_overview,
)

router = APIRouter(prefix="/inventory")


class LotReceive(BaseModel):
    drug_id: str = Field(min_length=1, max_length=64)
    lot_number: str = Field(min_length=1, max_length=64)
    expiry_date: date
    quantity: int
    cost_price: Decimal
    selling_price: Decimal
    reference_id: str | None = Field(default=None, max_length=64)
    barcode: str | None = Field(default=None, max_length=64)


@router.get("")
def list_inventory(db: Session = Depends(get_db)):
    return list_lots_with_names(db)


@router.get("/summary")
def inventory_summary(db: Session = Depends(get_db)):
    return stock_overview(db)


@router.get("/available-drugs")
def available_drugs(term: str | None = None, db: Session = Depends(get_db)):
    return [
        {
            "drug_id": d.drug_id,
            "trade_name": d.trade_name,
            "generic_name": d.generic_name,
            "strength": d.strength,
            "unit": d.unit,
        }
        for d in search_available_drugs(db, term)
    ]


@router.post("")
def receive_lot(
    payload: LotReceive,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    activity_log: ActivityRecorder = Depends(get_activity_log),
):
    inventory_id = receive(db, **payload.model_dump())
    db.commit()

    safe_record(
        activity_log,
        ActivityType.lot_received.value,
        f"Lot {payload.lot_number} of {payload.drug_id} received ({payload.quantity})",
        entity="inventory",
        entity_id=inventory_id,
        performed_by=actor.actor_id,
    )
    return {"status": "success", "inventoryId": inventory_id}
