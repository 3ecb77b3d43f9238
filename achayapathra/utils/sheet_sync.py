import os
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from achayapathra.models.donation import Donation
from achayapathra.models.user import User


SHEET_SYNC_URL = os.getenv("SHEET_SYNC_URL")


def build_sync_payload(
    donation: Donation,
    donor: User,
    image_url: Optional[str] = None,
    ngo: Optional[User] = None,
    pickup_status: str = "pending",
) -> Dict[str, Any]:
    return {
        "donorName": donor.name,
        "foodType": donation.food_category,
        "quantity": donation.quantity,
        "imageUrl": image_url or "",
        "safetyScore": donation.safety_score or 0,
        "safetyStatus": donation.safety_status or "Unknown",
        "ngoName": ngo.name if ngo else "",
        "pickupStatus": pickup_status,
    }


def push_donation_summary(
    payload: Dict[str, Any],
    url: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> Dict[str, Any]:
    """
    Post a flattened donation summary to the spreadsheet webhook.

    Never raises: the outcome is returned and logged so callers running it
    as a background task cannot fail the request that scheduled it.
    """
    url = url or SHEET_SYNC_URL
    if not url:
        logger.info("SHEET_SYNC_URL not configured; skipping sync")
        return {"success": False, "error": "sync not configured"}

    owns_client = client is None
    client = client or httpx.Client(timeout=httpx.Timeout(10.0, connect=5.0))

    try:
        response = client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Sheet sync failed: {}", e)
        return {"success": False, "error": str(e)}
    finally:
        if owns_client:
            client.close()

    logger.info("Sheet sync successful for {} ({})", payload.get("donorName"), payload.get("foodType"))

    try:
        data = response.json()
    except ValueError:
        data = response.text

    return {"success": True, "data": data}
