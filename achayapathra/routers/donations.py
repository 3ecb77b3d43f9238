import uuid
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from sqlmodel import Session

from achayapathra.db.db import get_session
from achayapathra.models.donation import Donation
from achayapathra.models.user import User
from achayapathra.safety.scoring import SafetyScorer
from achayapathra.safety.signals import ImageSignalProvider, get_signal_provider
from achayapathra.services.donations import DonationService
from achayapathra.services.matching import DEFAULT_RADIUS_KM, ProximityMatcher
from achayapathra.utils.auth_helper import get_current_user_required, get_db_user
from achayapathra.utils.form_validator import validate_create_donation_form
from achayapathra.utils.s3_service import ImageStorage, get_image_storage, with_image_urls
from achayapathra.utils.sheet_sync import build_sync_payload, push_donation_summary


router = APIRouter()

MAX_UPLOAD_SIZE_MB = 5
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024


def get_donation_service(
    session: Session = Depends(get_session),
    provider: ImageSignalProvider = Depends(get_signal_provider),
) -> DonationService:
    return DonationService(session, SafetyScorer(provider))


def donation_response(donation: Donation, storage: ImageStorage, distance_km: Optional[float] = None) -> dict:
    data = donation.model_dump()
    data["image"] = storage.signed_url(donation.image)

    if distance_km is not None:
        data["distance_km"] = distance_km

    return data


def assessment_response(donation: Donation) -> Optional[dict]:
    if donation.assessed_at is None:
        return None

    return {
        "safety_score": donation.safety_score,
        "status": donation.safety_status,
        "confidence": donation.safety_confidence,
        "explanation": donation.safety_explanation,
        "image_analysis": {
            "quality": round(donation.image_quality),
            "discoloration": donation.discoloration_detected,
            "moisture_level": round(donation.moisture_level),
            "texture_score": round(donation.texture_score),
        },
    }


# Plain def: runs in the threadpool, so a dropped connection cannot
# interrupt the assessment and strand the donation in "pending".
@router.post("/create", status_code=201)
def create_donation(
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    description: str = Form(""),
    food_category: str = Form(...),
    quantity: int = Form(...),
    unit: str = Form("plates"),
    preparation_time: str = Form(...),
    storage_condition: str = Form(...),
    location: str = Form(...),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    hygiene_checked: bool = Form(False),
    image: UploadFile = File(...),
    session: Session = Depends(get_session),
    service: DonationService = Depends(get_donation_service),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    # user lookup
    user = get_db_user(session, current_user)

    form = validate_create_donation_form(
        title=title,
        description=description,
        food_category=food_category,
        quantity=quantity,
        unit=unit,
        preparation_time=preparation_time,
        storage_condition=storage_condition,
        location=location,
        latitude=latitude,
        longitude=longitude,
        hygiene_checked=hygiene_checked,
    )

    # read image into memory and upload
    raw_bytes = image.file.read()

    if not raw_bytes:
        raise HTTPException(status_code=400, detail="Food image is required")

    if len(raw_bytes) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"Image exceeds {MAX_UPLOAD_SIZE_MB}MB limit")

    image_key = storage.store(raw_bytes, image.filename)

    donation = service.create_donation(user, form, image_key)

    image_url = storage.signed_url(donation.image)

    if donation.status == "approved":
        # best-effort; never blocks or fails this response
        background_tasks.add_task(
            push_donation_summary,
            build_sync_payload(donation, user, image_url=image_url),
        )

    message = "Donation created successfully"
    if donation.status == "assessment_failed":
        message = "Donation created, safety assessment failed"

    return {
        "message": message,
        "donation": donation_response(donation, storage),
        "assessment": assessment_response(donation),
    }


@router.get("/nearby")
def get_nearby_donations(
    latitude: Optional[float] = Query(None),
    longitude: Optional[float] = Query(None),
    radius: float = Query(DEFAULT_RADIUS_KM),
    session: Session = Depends(get_session),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    # fall back to the NGO's saved location
    if latitude is None or longitude is None:
        user = get_db_user(session, current_user)
        latitude, longitude = user.latitude, user.longitude

    if latitude is None or longitude is None:
        raise HTTPException(status_code=400, detail="Location coordinates required")

    matches = ProximityMatcher(session).nearby(latitude, longitude, radius)

    return {
        "donations": [donation_response(m.donation, storage, m.distance_km) for m in matches],
    }


@router.get("/my")
def get_my_donations(
    session: Session = Depends(get_session),
    service: DonationService = Depends(get_donation_service),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    user = get_db_user(session, current_user)

    return {
        "donations": with_image_urls(storage, service.list_own(user)),
    }


@router.get("/{donation_id}")
def get_donation(
    donation_id: uuid.UUID,
    service: DonationService = Depends(get_donation_service),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    donation = service.get(donation_id)

    return {
        "donation": donation_response(donation, storage),
        "assessment": assessment_response(donation),
    }


@router.post("/{donation_id}/reassess")
def reassess_donation(
    donation_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    service: DonationService = Depends(get_donation_service),
    storage: ImageStorage = Depends(get_image_storage),
    current_user=Depends(get_current_user_required),
):
    user = get_db_user(session, current_user)

    donation = service.reassess(donation_id, user)

    if donation.status == "approved":
        donor = session.get(User, donation.donor_id)
        background_tasks.add_task(
            push_donation_summary,
            build_sync_payload(donation, donor, image_url=storage.signed_url(donation.image)),
        )

    return {
        "donation": donation_response(donation, storage),
        "assessment": assessment_response(donation),
    }
