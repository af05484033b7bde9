from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_db
from pharmacy.app.db.models.models_v1 import Member
from pharmacy.services.members import get_member, member_to_dict, search_members
from pharmacy.services.sales import member_purchases

router = APIRouter(prefix="/members")


class MemberCreate(BaseModel):
    member_id: str = Field(min_length=1, max_length=64)
    full_name: str = Field(min_length=1, max_length=255)
    national_id: str | None = Field(default=None, max_length=32)
    dob: date | None = None
    phone: str | None = Field(default=None, max_length=32)
    allergies: str | None = None
    disease: str | None = None


@router.get("")
def list_members(db: Session = Depends(get_db)):
    rows = db.execute(select(Member).order_by(Member.full_name)).scalars().all()
    return [member_to_dict(m) for m in rows]


@router.post("")
def create_member(payload: MemberCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Member).where(Member.member_id == payload.member_id)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="member_id already exists")

    m = Member(**payload.model_dump())
    db.add(m)
    db.commit()
    db.refresh(m)
    return {"member_id": m.member_id, "full_name": m.full_name}


# déclaré avant /{member_id} pour ne pas être capturé par le paramètre
@router.get("/search")
def search(term: str | None = None, db: Session = Depends(get_db)):
    return [member_to_dict(m) for m in search_members(db, term)]


@router.get("/{member_id}")
def get_one(member_id: str, db: Session = Depends(get_db)):
    return member_to_dict(get_member(db, member_id))


@router.get("/{member_id}/purchases")
def get_member_purchases(member_id: str, db: Session = Depends(get_db)):
    return member_purchases(db, member_id)
