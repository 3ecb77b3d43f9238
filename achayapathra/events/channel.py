import uuid
from typing import Any, Dict, Protocol

from loguru import logger
from sqlmodel import Session

from achayapathra.models.event import DonationEvent


NEW_DONATION = "new_donation"
DONATION_CLAIMED = "donation_claimed"


class EventChannel(Protocol):
    def emit(self, type_: str, payload: Dict[str, Any]) -> None: ...


class OutboxEventChannel:
    """
    Queues events as rows in the caller's session, so an event is committed
    together with the transition that produced it (or not at all).
    Delivery belongs to the dispatch collaborator polling /events.
    """

    def __init__(self, session: Session):
        self.session = session

    def emit(self, type_: str, payload: Dict[str, Any]) -> None:
        data = {key: (str(value) if isinstance(value, uuid.UUID) else value) for key, value in payload.items()}

        event = DonationEvent(
            type=type_,
            payload=data,
            donation_id=payload.get("donation_id"),
        )
        self.session.add(event)

        logger.debug("Queued {} event for donation {}", type_, data.get("donation_id"))
