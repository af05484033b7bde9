from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from pharmacy.app.core.errors import InvalidPeriodError
from pharmacy.services.reporting import build_report

from conftest import NOW, TODAY, add_drug, add_lot, add_member, add_sale_line


def _report(db, period="monthly", reference="2024-01"):
    return build_report(db, period, reference, today=TODAY, now=NOW)


@pytest.fixture
def january(db_session):
    """
    Formulaire :
    - D1 Tylenol, Analgesic, ยาสามัญประจำบ้าน (non classé), min 100
    - D2 Amoxil, Antibiotic, ยาอันตราย (dangerous), min 5
    - D3 Xanax, Anxiolytic, วัตถุออกฤทธิ์ประเภท 4 (controlled)

    Ventes de janvier 2024 :
    - S1 (M1) : 2 x D1 à 10.00 + 1 x D2 à 20.00   = 40.00
    - S2 (anonyme) : 1 x D3 à 50.00               = 50.00
    - S3 (M2) : 3 x D2 à 20.00                    = 60.00
    + une vente de décembre 2023 et une de février 2024, hors fenêtre
    """
    db = db_session
    add_drug(db, "D1", "Tylenol", generic_name="Paracetamol", pharma_category="Analgesic",
             legal_category="ยาสามัญประจำบ้าน", min_stock=100)
    add_drug(db, "D2", "Amoxil", pharma_category="Antibiotic", legal_category="ยาอันตราย", min_stock=5)
    add_drug(db, "D3", "Xanax", pharma_category="Anxiolytic", legal_category="วัตถุออกฤทธิ์ประเภท 4")
    add_member(db, "M1", "Malee")
    add_member(db, "M2", "Niran")

    add_lot(db, "L1", "D1", quantity=30, expiry_date=date(2024, 3, 1))
    add_lot(db, "L2", "D2", quantity=40, expiry_date=date(2025, 6, 1))
    add_lot(db, "L3", "D3", quantity=10, expiry_date=date(2024, 1, 20))

    add_sale_line(db, "S0", drug_id="D1", inventory_id="L1", quantity=9, price="10.00",
                  sale_date=datetime(2023, 12, 31, 23, 59, 59))
    add_sale_line(db, "S1", drug_id="D1", inventory_id="L1", quantity=2, price="10.00",
                  sale_date=datetime(2024, 1, 3, 9, 0), member_id="M1", total_amount="40.00")
    add_sale_line(db, "S1", drug_id="D2", inventory_id="L2", quantity=1, price="20.00",
                  sale_date=datetime(2024, 1, 3, 9, 0), member_id="M1", total_amount="40.00")
    add_sale_line(db, "S2", drug_id="D3", inventory_id="L3", quantity=1, price="50.00",
                  sale_date=datetime(2024, 1, 10, 15, 0), pharmacist_id="PH2", pharmacist="Ploy")
    add_sale_line(db, "S3", drug_id="D2", inventory_id="L2", quantity=3, price="20.00",
                  sale_date=datetime(2024, 1, 31, 23, 59, 59, 999999), member_id="M2")
    add_sale_line(db, "S4", drug_id="D2", inventory_id="L2", quantity=7, price="20.00",
                  sale_date=datetime(2024, 2, 1, 0, 0))
    db.commit()
    return db


def test_sales_totals_recomputed_from_lines(january):
    """
    THEN
    - CA = 150.00 (somme quantity x price, bornes de fenêtre incluses)
    - 3 transactions distinctes, ticket moyen 50.00
    - 2 clients membres (l'anonyme ne compte pas)
    """
    sales = _report(january).sales

    assert sales.total_revenue == Decimal("150.00")
    assert sales.total_units_sold == 7
    assert sales.transaction_count == 3
    assert sales.average_ticket == Decimal("50.00")
    assert sales.unique_customers == 2


def test_top_products_and_categories(january):
    sales = _report(january).sales

    assert [(p.drug_id, p.quantity, p.revenue) for p in sales.top_products] == [
        ("D2", 4, Decimal("80.00")),
        ("D3", 1, Decimal("50.00")),
        ("D1", 2, Decimal("20.00")),
    ]
    assert sales.top_products[2].name == "Tylenol (Paracetamol)"
    assert [c.category for c in sales.top_categories] == ["Antibiotic", "Anxiolytic", "Analgesic"]


def test_top_members_and_pharmacists(january):
    sales = _report(january).sales

    assert [(m.member_id, m.full_name, m.transaction_count, m.revenue) for m in sales.top_members] == [
        ("M2", "Niran", 1, Decimal("60.00")),
        ("M1", "Malee", 1, Decimal("40.00")),
    ]
    assert [(p.pharmacist_id, p.transaction_count, p.revenue) for p in sales.by_pharmacist] == [
        ("PH1", 2, Decimal("100.00")),
        ("PH2", 1, Decimal("50.00")),
    ]


def test_regulatory_section(january):
    reg = _report(january).thai_fda

    assert reg.controlled_transaction_count == 1
    assert reg.dangerous_transaction_count == 2
    assert [(c.legal_category, c.classification) for c in reg.by_legal_category] == [
        ("วัตถุออกฤทธิ์ประเภท 4", "controlled"),
        ("ยาอันตราย", "dangerous"),
        ("ยาสามัญประจำบ้าน", None),
    ]
    assert [(f.sale_id, f.drug_id, f.classification) for f in reg.flagged_transactions] == [
        ("S1", "D2", "dangerous"),
        ("S2", "D3", "controlled"),
        ("S3", "D2", "dangerous"),
    ]


def test_inventory_section(january):
    """
    THEN (au 2024-01-31)
    - D1 (30 <= 100) en stock bas, D2 (40 > 5) non, D3 sans politique
    - L1 expire dans 30 jours -> near expiry ; L3 expiré depuis 11 jours
    """
    inv = _report(january).inventory

    assert inv.as_of == TODAY
    assert inv.total_drugs == 3
    assert inv.total_members == 2
    assert [(i.drug_id, i.total_quantity) for i in inv.low_stock] == [("D1", 30)]
    assert [(l.inventory_id, l.days_remaining) for l in inv.near_expiry] == [("L1", 30)]
    assert [(l.inventory_id, l.days_remaining) for l in inv.expired_lots] == [("L3", -11)]
    assert inv.slow_moving == []


def test_inventory_ignores_window(january):
    jan = _report(january).inventory
    older = _report(january, "yearly", "2020").inventory
    assert jan == older


def test_out_of_stock_counts_as_low_stock(db_session):
    add_drug(db_session, "D1", min_stock=10)
    add_lot(db_session, "L1", "D1", quantity=0)
    db_session.commit()

    inv = _report(db_session).inventory

    assert [(i.drug_id, i.total_quantity) for i in inv.low_stock] == [("D1", 0)]


def test_slow_moving(db_session):
    """
    GIVEN
    - D1 jamais vendu, D2 vendu il y a 200 jours, D3 vendu hier

    THEN
    - slow moving : D1 puis D2
    """
    for drug_id in ("D1", "D2", "D3"):
        add_drug(db_session, drug_id)
        add_lot(db_session, f"L{drug_id}", drug_id, quantity=5)
    add_sale_line(db_session, "S1", drug_id="D2", inventory_id="LD2", quantity=1, price="1.00",
                  sale_date=NOW - timedelta(days=200))
    add_sale_line(db_session, "S2", drug_id="D3", inventory_id="LD3", quantity=1, price="1.00",
                  sale_date=NOW - timedelta(days=1))
    db_session.commit()

    slow = _report(db_session).inventory.slow_moving

    assert [(s.drug_id, s.days_since_last_sale) for s in slow] == [("D1", None), ("D2", 200)]


def test_empty_window_is_not_an_error(db_session):
    report = _report(db_session, "daily", "2024-01-01")

    assert report.sales.total_revenue == Decimal("0.00")
    assert report.sales.transaction_count == 0
    assert report.sales.average_ticket == Decimal("0.00")
    assert report.sales.top_products == []
    assert report.thai_fda.flagged_transactions == []
    assert report.integrity_warnings == []


def test_report_is_idempotent(january):
    first = _report(january).model_dump(mode="json", by_alias=True)
    second = _report(january).model_dump(mode="json", by_alias=True)
    assert first == second


def test_top_n_ties_keep_first_seen_order(db_session):
    """
    GIVEN
    - 7 médicaments vendus pour le même montant, dans l'ordre D7, D6, ..., D1

    THEN
    - top 5 = les 5 premiers vus : D7..D3
    """
    for i in range(7, 0, -1):
        drug_id = f"D{i}"
        add_drug(db_session, drug_id)
        add_lot(db_session, f"L{i}", drug_id, quantity=10)
        add_sale_line(db_session, f"S{i}", drug_id=drug_id, inventory_id=f"L{i}", quantity=1, price="5.00",
                      sale_date=datetime(2024, 1, 1, 8, 0) + timedelta(minutes=8 - i))
    db_session.commit()

    top = _report(db_session).sales.top_products

    assert [p.drug_id for p in top] == ["D7", "D6", "D5", "D4", "D3"]


def test_unknown_drug_produces_integrity_warning(db_session):
    add_lot(db_session, "L1", "GHOST", quantity=3)
    add_sale_line(db_session, "S1", drug_id="GHOST", inventory_id="L1", quantity=1, price="7.00",
                  sale_date=datetime(2024, 1, 5, 10, 0))
    db_session.commit()

    report = _report(db_session)

    # la ligne compte quand même dans le CA
    assert report.sales.total_revenue == Decimal("7.00")
    assert report.sales.top_products[0].name == "GHOST"
    assert report.sales.top_categories[0].category == "Uncategorized"
    assert [(w.source, w.drug_id) for w in report.integrity_warnings] == [
        ("inventory", "GHOST"),
        ("sales", "GHOST"),
    ]


def test_member_missing_from_registry(db_session):
    add_drug(db_session, "D1")
    add_lot(db_session, "L1", "D1", quantity=3)
    add_sale_line(db_session, "S1", drug_id="D1", inventory_id="L1", quantity=1, price="7.00",
                  sale_date=datetime(2024, 1, 5, 10, 0), member_id="M404")
    db_session.commit()

    members = _report(db_session).sales.top_members

    assert [(m.member_id, m.full_name) for m in members] == [("M404", "Unknown Member")]


def test_json_uses_camel_case_and_numbers(january):
    body = _report(january).model_dump(mode="json", by_alias=True)

    assert set(body) == {"window", "sales", "inventory", "thaiFda", "integrityWarnings"}
    assert body["sales"]["totalRevenue"] == 150.0
    assert body["thaiFda"]["controlledTransactionCount"] == 1


def test_invalid_period(db_session):
    with pytest.raises(InvalidPeriodError):
        _report(db_session, "fortnightly", "2024-01")


def test_integer_reference_is_invalid_period(db_session):
    with pytest.raises(InvalidPeriodError):
        build_report(db_session, "yearly", 2024, today=TODAY, now=NOW)
