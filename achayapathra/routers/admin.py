import uuid
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from achayapathra.db.db import get_session
from achayapathra.models.claim import Claim
from achayapathra.models.donation import Donation
from achayapathra.models.user import User
from achayapathra.services.donations import DonationService
from achayapathra.services.lifecycle import ACTIVE_CLAIM_STATES
from achayapathra.utils.auth_helper import get_current_user_required, require_admin
from achayapathra.utils.s3_service import ImageStorage, get_image_storage
from achayapathra.utils.sheet_sync import build_sync_payload, push_donation_summary

router = APIRouter()


# Response Models
class OverviewStats(BaseModel):
    total_donations: int
    safe_donations: int
    total_claims: int
    meals_saved: int


@router.get("/stats", response_model=OverviewStats)
def get_overview_stats(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    """Get overview statistics for the admin dashboard"""
    require_admin(session, current_user)

    counts = DonationService(session).aggregate_counts()

    return OverviewStats(**counts)


@router.post("/sync/donations/{donation_id}")
def sync_donation(
    donation_id: uuid.UUID,
    session: Session = Depends(get_session),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    """Push one donation to the spreadsheet webhook and report the outcome"""
    require_admin(session, current_user)

    donation = session.get(Donation, donation_id)
    if not donation:
        raise HTTPException(status_code=404, detail="Donation not found")

    donor = session.get(User, donation.donor_id)

    # latest claim, if any, names the NGO
    claim = session.exec(
        select(Claim)
        .where(Claim.donation_id == donation.id)
        .order_by(Claim.created_at.desc())
    ).first()

    ngo = session.get(User, claim.ngo_id) if claim and claim.status != "cancelled" else None
    pickup_status = claim.status if claim and claim.status in ACTIVE_CLAIM_STATES | {"completed"} else "pending"

    result = push_donation_summary(
        build_sync_payload(
            donation,
            donor,
            image_url=storage.signed_url(donation.image),
            ngo=ngo,
            pickup_status=pickup_status,
        )
    )

    if not result["success"]:
        raise HTTPException(
            status_code=502,
            detail=f"Failed to sync donation: {result['error']}",
        )

    return {
        "message": "Donation synced successfully",
        "data": result["data"],
    }
