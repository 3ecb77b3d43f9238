import uuid
from datetime import datetime
from typing import Literal, Optional
from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from achayapathra.db.db import get_session
from achayapathra.models.claim import Claim
from achayapathra.models.donation import Donation
from achayapathra.models.user import User
from achayapathra.services.lifecycle import DonationLifecycle
from achayapathra.utils.auth_helper import get_current_user_required, get_db_user
from achayapathra.utils.form_validator import to_utc
from achayapathra.utils.s3_service import ImageStorage, get_image_storage
from achayapathra.utils.sheet_sync import build_sync_payload, push_donation_summary


router = APIRouter()


class ClaimCreateRequest(BaseModel):
    donation_id: uuid.UUID
    pickup_time: Optional[datetime] = None

    @field_validator("pickup_time")
    @classmethod
    def normalize_pickup_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None


class ClaimStatusRequest(BaseModel):
    status: Literal["confirmed", "picked_up", "completed", "cancelled"]


@router.post("/create", status_code=201)
def create_claim(
    payload: ClaimCreateRequest,
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    user = get_db_user(session, current_user)

    claim = DonationLifecycle(session).create_claim(payload.donation_id, user, payload.pickup_time)

    return {
        "message": "Donation claimed successfully",
        "claim_id": str(claim.id),
    }


@router.patch("/{claim_id}/status")
def update_claim_status(
    claim_id: uuid.UUID,
    payload: ClaimStatusRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    user = get_db_user(session, current_user)

    claim = DonationLifecycle(session).advance_claim(claim_id, user, payload.status)

    donation = session.get(Donation, claim.donation_id)

    # keep the sheet's pickup column in step with the claim
    if claim.status in ("picked_up", "completed"):
        donor = session.get(User, donation.donor_id)
        ngo = session.get(User, claim.ngo_id)
        background_tasks.add_task(
            push_donation_summary,
            build_sync_payload(
                donation,
                donor,
                image_url=storage.signed_url(donation.image),
                ngo=ngo,
                pickup_status=claim.status,
            ),
        )

    return {
        "claim": claim,
        "donation_status": donation.status,
    }


@router.get("/my")
def get_my_claims(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    user = get_db_user(session, current_user)

    results = session.exec(
        select(Claim, Donation)
        .join(Donation, Claim.donation_id == Donation.id)
        .where(Claim.ngo_id == user.id)
        .order_by(Claim.created_at.desc())
    ).all()

    return {
        "claims": [
            {
                **claim.model_dump(),
                "donation": donation.model_dump(include={"id", "title", "location", "quantity", "unit", "status"}),
            }
            for claim, donation in results
        ],
    }
