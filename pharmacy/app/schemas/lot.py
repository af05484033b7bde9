from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class LotRead(BaseModel):
    inventory_id: str
    drug_id: str
    lot_number: str
    expiry_date: date
    quantity: int
    cost_price: Decimal
    selling_price: Decimal
    reference_id: str | None = None
    barcode: str | None = None
    received_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True
