from decimal import Decimal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class SaleItemCreate(BaseModel):
    inventory_id: str
    drug_id: str
    quantity: int
    price_per_unit: Decimal
    lot_number: str | None = None  # snapshot, vérifié contre le lot

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SaleCreate(BaseModel):
    """
    Panier soumis en caisse.

    Les règles métier (panier vide, pharmacien manquant, total déclaré)
    sont vérifiées par services.sales.record_sale, pas ici : le service
    doit rejeter de la même façon un appel direct et un appel HTTP.
    """

    member_id: str | None = None
    pharmacist_id: str | None = None
    pharmacist_name: str | None = None
    items: list[SaleItemCreate] = Field(default_factory=list)
    declared_total: Decimal

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SaleRecordedRead(BaseModel):
    sale_id: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
