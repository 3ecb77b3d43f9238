import uuid
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from achayapathra.db.db import get_session
from achayapathra.models.event import DonationEvent
from achayapathra.utils.auth_helper import get_current_user_required, require_admin


router = APIRouter()

# Polled by the notification dispatcher, which runs with an admin token.

@router.get("/")
def get_events(
    limit: int = Query(50, ge=1, le=200),
    pending_only: bool = True,
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    require_admin(session, current_user)

    query = (
        select(DonationEvent)
        .order_by(DonationEvent.created_at.asc())
        .limit(limit)
    )

    if pending_only:
        query = query.where(DonationEvent.dispatched_at == None)  # noqa: E711

    events = session.exec(query).all()

    return {"events": events}


@router.post("/{event_id}/mark-dispatched")
def mark_event_dispatched(
    event_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
):
    require_admin(session, current_user)

    event = session.get(DonationEvent, event_id)

    if not event:
        raise HTTPException(
            status_code=404,
            detail="Event not found"
        )

    if event.dispatched_at is None:
        event.dispatched_at = datetime.now(timezone.utc)
        session.add(event)
        session.commit()

    return {"ok": True}
