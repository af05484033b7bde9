from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from pharmacy.app.core.errors import InsufficientStockError, ValidationError
from pharmacy.app.db.models.models_v1 import Lot
from pharmacy.services.inventory import (
    decrement,
    list_sellable_lots,
    receive,
    search_available_drugs,
    stock_overview,
    summarize_by_drug,
)

from conftest import add_drug, add_lot


def _qty(db, inventory_id: str) -> int:
    return db.execute(select(Lot.quantity).where(Lot.inventory_id == inventory_id)).scalar_one()


def test_list_sellable_lots_fefo_order(db_session):
    """
    GIVEN
    - 4 lots du même médicament : un expiré, un vide, deux vendables

    THEN
    - seuls les lots vendables sortent, celui qui expire en premier en tête
    """
    add_drug(db_session, "D1")
    add_lot(db_session, "L-LATE", "D1", quantity=5, expiry_date=date(2024, 12, 31))
    add_lot(db_session, "L-SOON", "D1", quantity=5, expiry_date=date(2024, 3, 1))
    add_lot(db_session, "L-EXPIRED", "D1", quantity=5, expiry_date=date(2023, 12, 31))
    add_lot(db_session, "L-EMPTY", "D1", quantity=0, expiry_date=date(2024, 2, 1))

    lots = list_sellable_lots(db_session, "D1", date(2024, 1, 15))

    assert [l.inventory_id for l in lots] == ["L-SOON", "L-LATE"]


def test_list_sellable_lots_same_expiry_oldest_receipt_first(db_session):
    add_drug(db_session, "D1")
    add_lot(db_session, "L-B", "D1", quantity=1, expiry_date=date(2024, 6, 1), received_at=datetime(2023, 11, 2))
    add_lot(db_session, "L-A", "D1", quantity=1, expiry_date=date(2024, 6, 1), received_at=datetime(2023, 11, 1))

    lots = list_sellable_lots(db_session, "D1", date(2024, 1, 1))

    assert [l.inventory_id for l in lots] == ["L-A", "L-B"]


def test_receive_creates_lot(db_session):
    add_drug(db_session, "D1")

    inventory_id = receive(
        db_session,
        drug_id="D1",
        lot_number=" A123 ",
        expiry_date=date(2025, 1, 1),
        quantity=40,
        cost_price=Decimal("3.00"),
        selling_price=Decimal("5.00"),
    )
    db_session.commit()

    lot = db_session.execute(select(Lot).where(Lot.inventory_id == inventory_id)).scalar_one()
    assert inventory_id.startswith("INV-")
    assert lot.lot_number == "A123"
    assert lot.quantity == 40


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": -1},
        {"cost_price": Decimal("-0.01")},
        {"selling_price": Decimal("-1")},
        {"lot_number": "  "},
        {"drug_id": "UNKNOWN"},
    ],
)
def test_receive_rejects_invalid_input(db_session, overrides):
    add_drug(db_session, "D1")
    params = dict(
        drug_id="D1",
        lot_number="A1",
        expiry_date=date(2025, 1, 1),
        quantity=10,
        cost_price=Decimal("1"),
        selling_price=Decimal("2"),
    )
    params.update(overrides)

    with pytest.raises(ValidationError):
        receive(db_session, **params)

    assert db_session.execute(select(Lot)).scalars().all() == []


def test_decrement_returns_new_quantity(db_session):
    add_drug(db_session, "D1")
    lot = add_lot(db_session, "L1", "D1", quantity=10)

    assert decrement(db_session, "L1", 4) == 6
    # l'objet en session est rafraîchi
    assert lot.quantity == 6


def test_decrement_insufficient_leaves_stock_untouched(db_session):
    """
    GIVEN
    - un lot de 3 unités

    THEN
    - demander 5 lève InsufficientStockError (available=3)
    - la quantité reste à 3
    """
    add_drug(db_session, "D1")
    add_lot(db_session, "L1", "D1", quantity=3)

    with pytest.raises(InsufficientStockError) as exc:
        decrement(db_session, "L1", 5)

    assert exc.value.available == 3
    assert exc.value.requested == 5
    assert _qty(db_session, "L1") == 3


def test_decrement_exact_quantity_reaches_zero(db_session):
    add_drug(db_session, "D1")
    add_lot(db_session, "L1", "D1", quantity=3)

    assert decrement(db_session, "L1", 3) == 0
    with pytest.raises(InsufficientStockError):
        decrement(db_session, "L1", 1)


def test_decrement_unknown_lot(db_session):
    with pytest.raises(InsufficientStockError) as exc:
        decrement(db_session, "NOPE", 1)
    assert exc.value.available is None


@pytest.mark.parametrize("qty", [0, -2])
def test_decrement_rejects_non_positive_quantity(db_session, qty):
    add_drug(db_session, "D1")
    add_lot(db_session, "L1", "D1", quantity=3)

    with pytest.raises(ValidationError):
        decrement(db_session, "L1", qty)


def test_summarize_by_drug(db_session):
    add_drug(db_session, "D1")
    add_drug(db_session, "D2")
    add_lot(db_session, "L1", "D1", quantity=5, expiry_date=date(2024, 9, 1), lot_number="B")
    add_lot(db_session, "L2", "D1", quantity=7, expiry_date=date(2024, 4, 1), lot_number="A")
    add_lot(db_session, "L3", "D1", quantity=0, expiry_date=date(2024, 2, 1))
    add_lot(db_session, "L4", "D2", quantity=2)

    summary = summarize_by_drug(db_session)

    assert set(summary) == {"D1", "D2"}
    assert summary["D1"].total_quantity == 12
    assert summary["D1"].lot_count == 2
    assert summary["D1"].earliest_expiry == date(2024, 4, 1)
    assert summary["D1"].earliest_lot_number == "A"


def test_stock_overview_sorted_by_display_name(db_session):
    add_drug(db_session, "D1", "Zyrtec", generic_name="Cetirizine")
    add_drug(db_session, "D2", "Amoxil", generic_name="Amoxicillin")
    add_lot(db_session, "L1", "D1", quantity=1)
    add_lot(db_session, "L2", "D2", quantity=1)

    rows = stock_overview(db_session)

    assert [r["name"] for r in rows] == ["Amoxil (Amoxicillin)", "Zyrtec (Cetirizine)"]


def test_search_available_drugs(db_session):
    add_drug(db_session, "D1", "Tylenol", generic_name="Paracetamol")
    add_drug(db_session, "D2", "Sara", generic_name="Paracetamol")
    add_lot(db_session, "L1", "D1", quantity=3)
    add_lot(db_session, "L2", "D2", quantity=0)

    assert [d.drug_id for d in search_available_drugs(db_session, "parac")] == ["D1"]
    assert search_available_drugs(db_session, "p") == []
    assert search_available_drugs(db_session, None) == []
