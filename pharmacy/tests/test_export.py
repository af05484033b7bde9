from datetime import date, datetime
from decimal import Decimal

import pytest

from pharmacy.app.core.errors import ValidationError
from pharmacy.app.db.models.core_types import ReportSection
from pharmacy.services.export import (
    COUNT,
    MONEY,
    MEMBERS_TABLE,
    format_value,
    parse_sections,
    report_to_rows,
    rows_to_csv,
    table_to_rows,
)
from pharmacy.services.reporting import build_report

from conftest import NOW, TODAY, add_drug, add_lot, add_member, add_sale_line


@pytest.mark.parametrize(
    "value, kind, expected",
    [
        (Decimal("1234.5"), MONEY, "1,234.50"),
        (Decimal("0.005"), MONEY, "0.01"),
        (0, MONEY, "0.00"),
        (1234, COUNT, "1,234"),
        (None, MONEY, ""),
        (date(2024, 1, 5), "date", "2024-01-05"),
        (datetime(2024, 1, 5, 9, 30), "date", "2024-01-05T09:30:00"),
        (ReportSection.thai_fda, "text", "thaiFda"),
        ("Tylenol", "text", "Tylenol"),
    ],
)
def test_format_value(value, kind, expected):
    assert format_value(value, kind) == expected


def test_parse_sections():
    assert parse_sections(None) == list(ReportSection)
    assert parse_sections("") == list(ReportSection)
    # ordre canonique, quel que soit l'ordre demandé
    assert parse_sections("thaiFda, sales") == [ReportSection.sales, ReportSection.thai_fda]
    assert parse_sections(["inventory"]) == [ReportSection.inventory]

    with pytest.raises(ValidationError):
        parse_sections("sales,finance")


def test_table_to_rows_from_orm_objects(db_session):
    add_member(db_session, "M1", "Malee")
    member = add_member(db_session, "M2", "Niran")
    member.phone = "081"

    rows = table_to_rows([member], MEMBERS_TABLE)

    assert rows[0][:3] == ["Member ID", "Full name", "National ID"]
    assert rows[1][:5] == ["M2", "Niran", "", "", "081"]


@pytest.fixture
def report(db_session):
    add_drug(db_session, "D1", "Xanax", pharma_category="Anxiolytic", legal_category="วัตถุออกฤทธิ์ประเภท 4")
    add_lot(db_session, "L1", "D1", quantity=1000)
    add_sale_line(db_session, "S1", drug_id="D1", inventory_id="L1", quantity=250, price="5.00",
                  sale_date=datetime(2024, 1, 10, 12, 0))
    db_session.commit()
    return build_report(db_session, "monthly", "2024-01", today=TODAY, now=NOW)


def test_report_to_rows_header_and_sales(report):
    rows = report_to_rows(report, "sales")

    assert rows[:5] == [
        ["Pharmacy KPI report"],
        ["Period", "monthly"],
        ["Label", "January 2024"],
        ["Start", "2024-01-01T00:00:00.000"],
        ["End", "2024-01-31T23:59:59.999"],
    ]
    assert ["Total revenue", "1,250.00"] in rows
    assert ["Units sold", "250"] in rows
    assert ["D1", "Xanax", "250", "1,250.00"] in rows
    assert ["Inventory"] not in rows
    assert ["Thai FDA regulatory summary"] not in rows
    assert rows[-1] != []


def test_report_to_rows_all_sections(report):
    rows = report_to_rows(report)
    titles = [r[0] for r in rows if len(r) == 1]

    assert titles == [
        "Pharmacy KPI report",
        "Sales",
        "Top products",
        "Top categories",
        "Top members",
        "Sales by pharmacist",
        "Inventory",
        "Low stock",
        "Near expiry",
        "Expired lots",
        "Slow moving",
        "Thai FDA regulatory summary",
        "By legal category",
        "Flagged transactions",
        "Integrity warnings",
    ]
    assert ["Controlled transactions", "1"] in rows


def test_rows_to_csv_pads_short_rows():
    csv = rows_to_csv([["Title"], ["a", "1,234.50"], []])

    assert csv.splitlines() == ["Title,", 'a,"1,234.50"', ","]


def test_rows_to_csv_empty():
    assert rows_to_csv([]) == ""


def test_integrity_warnings_are_exported(db_session):
    add_lot(db_session, "L1", "GHOST", quantity=3)
    db_session.commit()
    report = build_report(db_session, "monthly", "2024-01", today=TODAY, now=NOW)

    rows = report_to_rows(report, "sales")

    assert ["Integrity warnings"] in rows
    assert ["IntegrityWarning", "inventory", "GHOST", "inventory row references unknown drug_id 'GHOST'"] in rows
