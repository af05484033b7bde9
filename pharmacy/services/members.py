"""
Registre des membres : fiche, recherche.

allergies est stocké en texte JSON (liste) ; on le relit en liste,
un contenu illisible donne une liste vide.
"""
from __future__ import annotations

import json

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from pharmacy.app.core.errors import NotFoundError
from pharmacy.app.db.models.models_v1 import Member

MIN_SEARCH_TERM = 2


def parse_allergies(raw: str | None) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return value if isinstance(value, list) else [value]


def member_to_dict(m: Member) -> dict:
    return {
        "member_id": m.member_id,
        "full_name": m.full_name,
        "national_id": m.national_id,
        "dob": m.dob,
        "phone": m.phone,
        "allergies": parse_allergies(m.allergies),
        "disease": m.disease,
    }


def get_member(db: Session, member_id: str) -> Member:
    member = db.execute(select(Member).where(Member.member_id == member_id)).scalar_one_or_none()
    if member is None:
        raise NotFoundError(f"Member {member_id!r} not found")
    return member


def search_members(db: Session, term: str | None) -> list[Member]:
    """Membres dont le nom ou le téléphone contient term (>= 2 caractères, sinon [])."""
    if not term or len(term.strip()) < MIN_SEARCH_TERM:
        return []
    pattern = f"%{term.strip()}%"
    return list(
        db.execute(
            select(Member)
            .where(or_(Member.full_name.ilike(pattern), Member.phone.ilike(pattern)))
            .order_by(Member.full_name, Member.member_id)
        )
        .scalars()
        .all()
    )
