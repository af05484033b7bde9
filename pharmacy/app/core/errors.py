"""
Erreurs métier.

Chaque erreur porte un "kind" stable (ValidationError, InsufficientStockError, ...)
et se rend en JSON structuré côté HTTP :

    {"ok": false, "error": {"kind": ..., "title": ..., "detail": ..., ...}}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder


class PharmacyError(Exception):
    status: int = 400
    kind: str = "PharmacyError"
    title: str = "Request failed"

    def __init__(self, detail: str | None = None, **extra: Any):
        self.detail = detail
        self.extra = extra
        super().__init__(detail or self.title)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"kind": self.kind, "title": self.title}
        if self.detail:
            body["detail"] = self.detail
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status,
            content=jsonable_encoder({"ok": False, "error": self.to_dict()}),
        )


class ValidationError(PharmacyError):
    status = 422
    kind = "ValidationError"
    title = "Invalid input"


class InvalidPeriodError(PharmacyError):
    status = 400
    kind = "InvalidPeriodError"
    title = "Invalid reporting period"


class InsufficientStockError(PharmacyError):
    status = 409
    kind = "InsufficientStockError"
    title = "Insufficient stock"

    def __init__(
        self,
        detail: str | None = None,
        *,
        inventory_id: str,
        requested: int,
        available: int | None = None,
        line_index: int | None = None,
    ):
        super().__init__(
            detail,
            inventory_id=inventory_id,
            requested=requested,
            available=available,
            line_index=line_index,
        )
        self.inventory_id = inventory_id
        self.requested = requested
        self.available = available
        self.line_index = line_index


class NotFoundError(PharmacyError):
    status = 404
    kind = "NotFoundError"
    title = "Not found"


class ForbiddenError(PharmacyError):
    status = 403
    kind = "ForbiddenError"
    title = "Forbidden"


@dataclass(frozen=True)
class IntegrityWarning:
    """Non bloquant : une ligne référence un drug_id absent du formulaire."""

    drug_id: str
    source: str  # "sales" | "inventory"
    kind: str = "IntegrityWarning"

    @property
    def message(self) -> str:
        return f"{self.source} row references unknown drug_id {self.drug_id!r}"


async def pharmacy_error_handler(request: Request, exc: PharmacyError) -> JSONResponse:
    return exc.to_response()


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Corps ou paramètres mal formés : même enveloppe qu'une ValidationError métier."""
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return ValidationError("Malformed request", errors=errors).to_response()
