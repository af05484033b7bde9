from __future__ import annotations

from datetime import date as date_type

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import Actor, get_actor, get_activity_log, get_db
from pharmacy.app.core.errors import NotFoundError
from pharmacy.app.db.models.core_types import ActivityType, ReportSection
from pharmacy.app.db.models.models_v1 import Member
from pharmacy.services.activity import ActivityRecorder, safe_record
from pharmacy.services.export import (
    RAW_TABLES,
    parse_sections,
    report_to_rows,
    rows_to_csv,
    table_to_rows,
)
from pharmacy.services.inventory import list_lots_with_names
from pharmacy.services.reporting import build_report
from pharmacy.services.sales import list_sales

router = APIRouter()

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def _csv_response(rows: list[list[str]], filename: str) -> Response:
    # BOM pour qu'Excel lise correctement le thaï
    body = "\ufeff" + rows_to_csv(rows)
    return Response(
        content=body.encode("utf-8"),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/reports/{period}")
def get_report(
    period: str,
    date: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Rapport KPI en JSON. La section thaiFda n'est renvoyée qu'aux admins."""
    report = build_report(db, period, date)
    exclude = None if actor.is_admin else {"thai_fda"}
    return JSONResponse(content=report.model_dump(mode="json", by_alias=True, exclude=exclude))


@router.get("/reports/{period}/export")
def export_report(
    period: str,
    date: str | None = None,
    sections: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    activity_log: ActivityRecorder = Depends(get_activity_log),
):
    """
    Rapport aplati en CSV. sections : sous-ensemble de sales,inventory,thaiFda.
    Sans sections : tout ce que l'acteur a le droit de voir.
    thaiFda demandé explicitement par un non-admin -> 403.
    """
    selected = parse_sections(sections)
    if ReportSection.thai_fda in selected and not actor.is_admin:
        if (sections or "").strip():
            actor.require_admin("thaiFda export")
        selected.remove(ReportSection.thai_fda)

    report = build_report(db, period, date)
    rows = report_to_rows(report, [s.value for s in selected])

    safe_record(
        activity_log,
        ActivityType.report_exported.value,
        f"KPI report {report.window.label} exported ({', '.join(s.value for s in selected)})",
        entity="report",
        entity_id=f"{report.window.period}:{report.window.start_iso}",
        performed_by=actor.actor_id,
    )
    filename = f"kpi_{report.window.period}_{report.window.start.date().isoformat()}.csv"
    return _csv_response(rows, filename)


@router.get("/export/{table}")
def export_table(table: str, db: Session = Depends(get_db)):
    columns = RAW_TABLES.get(table)
    if columns is None:
        raise NotFoundError(f"Unknown export table {table!r} (expected: {', '.join(RAW_TABLES)})")

    if table == "sales":
        records = list_sales(db)
    elif table == "inventory":
        records = list_lots_with_names(db)
    else:
        records = db.execute(select(Member).order_by(Member.full_name)).scalars().all()

    if not records:
        raise NotFoundError(f"No {table} data to export")

    filename = f"{table}_report_{date_type.today().isoformat()}.csv"
    return _csv_response(table_to_rows(records, columns), filename)
