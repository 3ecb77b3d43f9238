from datetime import datetime, timezone
from typing import Optional
import uuid

from loguru import logger
from sqlalchemy import update
from sqlmodel import Session

from achayapathra.errors import ConflictError, Forbidden, InvalidTransition, NotFound
from achayapathra.events.channel import DONATION_CLAIMED, NEW_DONATION, EventChannel, OutboxEventChannel
from achayapathra.models.claim import Claim
from achayapathra.models.donation import Donation
from achayapathra.models.user import User
from achayapathra.safety.scoring import APPROVAL_THRESHOLD, SafetyAssessment
from achayapathra.utils.form_validator import to_utc


DONATION_STATES = [
    "pending", "approved", "rejected", "assessment_failed", "claimed", "completed"
]

TERMINAL_DONATION_STATES = {"rejected", "completed"}

DONATION_TRANSITIONS = {
    ("pending", "approved"),
    ("pending", "rejected"),
    ("pending", "assessment_failed"),
    ("assessment_failed", "approved"),
    ("assessment_failed", "rejected"),
    ("approved", "claimed"),
    ("claimed", "approved"),
    ("claimed", "completed"),
}

CLAIM_STATES = ["pending", "confirmed", "picked_up", "completed", "cancelled"]

ACTIVE_CLAIM_STATES = {"pending", "confirmed", "picked_up"}

CLAIM_TRANSITIONS = {
    ("pending",   "confirmed"):  {"parties": ["donor"]},
    ("confirmed", "picked_up"):  {"parties": ["recipient", "donor"]},
    ("picked_up", "completed"):  {"parties": ["recipient", "donor"]},

    ("pending",   "cancelled"):  {"parties": ["recipient", "donor"]},
    ("confirmed", "cancelled"):  {"parties": ["recipient", "donor"]},
}


def can_transition(src: str, dst: str) -> bool:
    return (src, dst) in DONATION_TRANSITIONS


def _now():
    return datetime.now(timezone.utc)


class DonationLifecycle:
    """
    State machine over donations and their claims.

    Every public method commits its own unit of work; events are queued on
    the same session so they land in the same transaction.
    """

    def __init__(self, session: Session, events: Optional[EventChannel] = None):
        self.session = session
        self.events = events or OutboxEventChannel(session)

    def transition(self, donation: Donation, target: str) -> Donation:
        if target not in DONATION_STATES:
            raise InvalidTransition(f"Unknown donation state '{target}'")

        if donation.status in TERMINAL_DONATION_STATES:
            raise InvalidTransition(f"Donation is {donation.status}; no further changes allowed")

        if not can_transition(donation.status, target):
            raise InvalidTransition(f"Cannot move donation from '{donation.status}' to '{target}'")

        donation.status = target
        self.session.add(donation)
        return donation

    def apply_assessment(self, donation: Donation, assessment: SafetyAssessment) -> Donation:
        if donation.assessed_at is not None:
            raise InvalidTransition("Donation has already been assessed")

        target = "approved" if assessment.safety_score >= APPROVAL_THRESHOLD else "rejected"
        self.transition(donation, target)

        donation.safety_score = assessment.safety_score
        donation.safety_status = assessment.status
        donation.safety_confidence = assessment.confidence
        donation.safety_explanation = assessment.explanation
        donation.assessed_at = _now()
        donation.assessment_error = None

        donation.image_quality = assessment.signals.overall_quality
        donation.discoloration_detected = assessment.signals.discoloration_detected
        donation.moisture_level = assessment.signals.moisture_level
        donation.texture_score = assessment.signals.texture_score

        if target == "approved":
            self.events.emit(NEW_DONATION, {
                "donation_id": donation.id,
                "title": donation.title,
                "location": donation.location,
                "safety_score": donation.safety_score,
            })

        self.session.commit()
        self.session.refresh(donation)

        logger.info(
            "Donation {} assessed: score={} status='{}' -> {}",
            donation.id, donation.safety_score, donation.safety_status, donation.status,
        )
        return donation

    def mark_assessment_failed(self, donation: Donation, reason: str) -> Donation:
        self.transition(donation, "assessment_failed")
        donation.assessment_error = reason

        self.session.commit()
        self.session.refresh(donation)
        return donation

    def create_claim(self, donation_id: uuid.UUID, ngo: User, pickup_time: Optional[datetime] = None) -> Claim:
        donation = self.session.get(Donation, donation_id)
        if not donation:
            raise NotFound("Donation not found")

        if ngo.role not in ("ngo", "admin"):
            raise Forbidden("Only NGOs can claim donations")

        if donation.donor_id == ngo.id:
            raise Forbidden("You cannot claim your own donation")

        if donation.status == "claimed":
            raise ConflictError("Donation has already been claimed")

        if donation.status != "approved":
            raise InvalidTransition(f"Donation is {donation.status} and cannot be claimed")

        # compare-and-swap: only one concurrent claimant sees a matching row
        result = self.session.connection().execute(
            update(Donation)
            .where(Donation.id == donation.id)
            .where(Donation.status == "approved")
            .values(status="claimed")
        )

        if result.rowcount == 0:
            self.session.rollback()
            logger.warning("Claim race lost on donation {} by user {}", donation_id, ngo.id)
            raise ConflictError("Donation has already been claimed")

        claim = Claim(
            donation_id=donation.id,
            ngo_id=ngo.id,
            pickup_time=to_utc(pickup_time) if pickup_time else None,
        )
        self.session.add(claim)
        self.session.flush()

        self.events.emit(DONATION_CLAIMED, {
            "donation_id": donation.id,
            "claim_id": claim.id,
        })

        self.session.commit()
        self.session.refresh(claim)
        self.session.refresh(donation)

        logger.info("Donation {} claimed by user {} (claim {})", donation.id, ngo.id, claim.id)
        return claim

    def advance_claim(self, claim_id: uuid.UUID, actor: User, target: str) -> Claim:
        if target not in CLAIM_STATES:
            raise InvalidTransition(f"Unknown claim state '{target}'")

        claim = self.session.get(Claim, claim_id)
        if not claim:
            raise NotFound("Claim not found")

        donation = self.session.get(Donation, claim.donation_id)
        if not donation:
            raise NotFound("Donation not found")

        parties = set()
        if actor.id == donation.donor_id:
            parties.add("donor")
        if actor.id == claim.ngo_id:
            parties.add("recipient")
        if actor.role == "admin":
            parties.update(["donor", "recipient"])

        if not parties:
            raise Forbidden("Not authorized to update this claim")

        rule = CLAIM_TRANSITIONS.get((claim.status, target))
        if not rule:
            raise InvalidTransition(f"Cannot move claim from '{claim.status}' to '{target}'")

        if not parties & set(rule["parties"]):
            raise Forbidden(f"Not authorized to move claim to '{target}'")

        # donation follows the claim in the same transaction
        if target == "completed":
            self.transition(donation, "completed")
        elif target == "cancelled":
            self.transition(donation, "approved")

        claim.status = target
        claim.updated_at = _now()
        self.session.add(claim)

        self.session.commit()
        self.session.refresh(claim)

        logger.info("Claim {} moved to {} by user {}", claim.id, target, actor.id)
        return claim
