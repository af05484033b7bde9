from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from pharmacy.app.db.base import Base
from pharmacy.app.db.models import models_v1  # noqa: F401  (enregistre les tables)
from pharmacy.app.db.models.models_v1 import Drug, Lot, Member, SaleLine
from pharmacy.app.schemas.sale import SaleCreate, SaleItemCreate

# horloge figée pour tous les tests de reporting
TODAY = date(2024, 1, 31)
NOW = datetime(2024, 1, 31, 18, 0, 0)


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite jetable par test (fichier, pas :memory:) :
    le journal d'activité ouvre sa propre session, il faut une vraie 2e connexion.
    """
    eng = create_engine(
        f"sqlite:///{tmp_path / 'pharmacy.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- factories ----------
def add_drug(db: Session, drug_id: str, trade_name: str | None = None, **kw) -> Drug:
    drug = Drug(drug_id=drug_id, trade_name=trade_name or f"Trade {drug_id}", **kw)
    db.add(drug)
    db.flush()
    return drug


def add_lot(
    db: Session,
    inventory_id: str,
    drug_id: str,
    *,
    quantity: int,
    expiry_date: date = date(2025, 12, 31),
    lot_number: str | None = None,
    price: str = "10.00",
    received_at: datetime | None = None,
) -> Lot:
    lot = Lot(
        inventory_id=inventory_id,
        drug_id=drug_id,
        lot_number=lot_number or f"LOT-{inventory_id}",
        expiry_date=expiry_date,
        quantity=quantity,
        cost_price=Decimal(price) / 2,
        selling_price=Decimal(price),
        received_at=received_at or datetime(2023, 12, 1),
    )
    db.add(lot)
    db.flush()
    return lot


def add_member(db: Session, member_id: str, full_name: str) -> Member:
    member = Member(member_id=member_id, full_name=full_name)
    db.add(member)
    db.flush()
    return member


def add_sale_line(
    db: Session,
    sale_id: str,
    *,
    drug_id: str,
    inventory_id: str,
    quantity: int,
    price: str,
    sale_date: datetime,
    member_id: str = "N/A",
    pharmacist_id: str = "PH1",
    pharmacist: str = "Somchai",
    lot_number: str = "LOT",
    total_amount: str | None = None,
) -> SaleLine:
    """Insère une ligne de vente directement (historique), sans passer par record_sale."""
    line = SaleLine(
        sale_id=sale_id,
        sale_date=sale_date,
        member_id=member_id,
        pharmacist_id=pharmacist_id,
        pharmacist=pharmacist,
        total_amount=Decimal(total_amount) if total_amount else Decimal(price) * quantity,
        inventory_id=inventory_id,
        quantity_sold=quantity,
        price_per_unit=Decimal(price),
        drug_id=drug_id,
        lot_number=lot_number,
    )
    db.add(line)
    db.flush()
    return line


def cart(*items: tuple[str, str, int, str], declared_total: str, **kw) -> SaleCreate:
    """items : (inventory_id, drug_id, quantity, price_per_unit)"""
    kw.setdefault("pharmacist_id", "PH1")
    kw.setdefault("pharmacist_name", "Somchai")
    return SaleCreate(
        items=[
            SaleItemCreate(inventory_id=inv, drug_id=drug, quantity=qty, price_per_unit=Decimal(price))
            for inv, drug, qty, price in items
        ],
        declared_total=Decimal(declared_total),
        **kw,
    )
