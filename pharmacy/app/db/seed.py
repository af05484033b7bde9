from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from pharmacy.app.core.config import get_settings
from pharmacy.app.core.logging import get_logger, setup_logging
from pharmacy.app.db.session import SessionLocal
from pharmacy.app.db.models.models_v1 import Drug
from pharmacy.services.inventory import receive

logger = get_logger(__name__)

FORMULARY = [
    {
        "drug_id": "DRG001",
        "trade_name": "Tylenol",
        "generic_name": "Paracetamol",
        "legal_category": "ยาสามัญประจำบ้าน",
        "pharma_category": "Analgesic",
        "strength": "500 mg",
        "unit": "tablet",
        "min_stock": 100,
        "max_stock": 1000,
    },
    {
        "drug_id": "DRG002",
        "trade_name": "Amoxil",
        "generic_name": "Amoxicillin",
        "legal_category": "ยาอันตราย",
        "pharma_category": "Antibiotic",
        "strength": "500 mg",
        "unit": "capsule",
        "min_stock": 50,
        "max_stock": 500,
    },
    {
        "drug_id": "DRG003",
        "trade_name": "Xanax",
        "generic_name": "Alprazolam",
        "legal_category": "วัตถุออกฤทธิ์ประเภท 4",
        "pharma_category": "Anxiolytic",
        "strength": "0.5 mg",
        "unit": "tablet",
        "min_stock": 20,
        "max_stock": 100,
    },
]


def run_seed():
    db = SessionLocal()
    try:
        for row in FORMULARY:
            drug = db.scalar(select(Drug).where(Drug.drug_id == row["drug_id"]))
            if drug:
                continue
            db.add(Drug(**row))
            db.flush()
            receive(
                db,
                drug_id=row["drug_id"],
                lot_number=f"{row['drug_id']}-L1",
                expiry_date=date.today() + timedelta(days=365),
                quantity=row["max_stock"] // 2,
                cost_price=Decimal("1.00"),
                selling_price=Decimal("2.50"),
            )
        db.commit()
        logger.info("seed_done", drugs=len(FORMULARY))
    finally:
        db.close()


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    run_seed()
