from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import Actor, get_actor, get_activity_log, get_db
from pharmacy.app.schemas.sale import SaleCreate, SaleRecordedRead
from pharmacy.services.activity import ActivityRecorder
from pharmacy.services.money import round_money
from pharmacy.services.periods import resolve_period, window_upper_bound
from pharmacy.services.sales import list_sales, record_sale

router = APIRouter(prefix="/sales")


@router.post("", response_model=SaleRecordedRead, response_model_by_alias=True)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    activity_log: ActivityRecorder = Depends(get_activity_log),
):
    # l'acteur authentifié sert de pharmacien si le panier ne le précise pas
    if not (payload.pharmacist_id or "").strip() and actor.actor_id:
        payload = payload.model_copy(update={"pharmacist_id": actor.actor_id})

    sale_id = record_sale(db, payload, activity_log=activity_log)
    return SaleRecordedRead(sale_id=sale_id)


@router.get("")
def get_sales(
    period: str = "daily",
    date: str | None = None,
    db: Session = Depends(get_db),
):
    """Lignes de vente de la période (daily/weekly/monthly/quarterly/yearly) contenant date."""
    window = resolve_period(period, date)
    rows = list_sales(db, window.start, window_upper_bound(window))
    return {
        "period": window.period,
        "label": window.label,
        "start": window.start_iso,
        "end": window.end_iso,
        "totalAmount": round_money(sum((r["line_total"] for r in rows), start=0)),
        "sales": rows,
    }
