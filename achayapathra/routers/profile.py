from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from achayapathra.db.db import get_session
from achayapathra.utils.auth_helper import get_current_user_required, get_db_user


router = APIRouter()


class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=120)


@router.get("/me")
def get_my_profile(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    return get_db_user(session, current_user)


@router.post("/location")
def set_location(
    payload: LocationUpdate,
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    user = get_db_user(session, current_user)

    user.latitude = payload.latitude
    user.longitude = payload.longitude
    if payload.address:
        user.address = payload.address.strip()

    session.add(user)
    session.commit()
    session.refresh(user)

    return True
