from typing import Optional
import uuid

from loguru import logger
from sqlmodel import Session, func, select

from achayapathra.errors import AssessmentFailure, Forbidden, InvalidTransition, NotFound
from achayapathra.events.channel import EventChannel
from achayapathra.models.claim import Claim
from achayapathra.models.donation import Donation
from achayapathra.models.hygiene import HygieneChecklist
from achayapathra.models.user import User
from achayapathra.safety.scoring import APPROVAL_THRESHOLD, SafetyScorer, get_rule_profile
from achayapathra.services.lifecycle import DonationLifecycle
from achayapathra.utils.form_validator import ValidatedCreateDonation


class DonationService:
    def __init__(self, session: Session, scorer: Optional[SafetyScorer] = None, events: Optional[EventChannel] = None):
        self.session = session
        self.scorer = scorer
        self.lifecycle = DonationLifecycle(session, events)

    def create_donation(self, donor: User, form: ValidatedCreateDonation, image_ref: Optional[str]) -> Donation:
        """
        Persist a donation in ``pending`` and run its safety assessment.

        The donation always leaves ``pending``: a provider failure moves it to
        ``assessment_failed`` and is reported on the record instead of raised.
        """
        get_rule_profile(form.food_category)

        donation = Donation(
            donor_id=donor.id,
            title=form.title,
            description=form.description,
            food_category=form.food_category,
            quantity=form.quantity,
            unit=form.unit,
            storage_condition=form.storage_condition,
            preparation_time=form.preparation_time,
            location=form.location,
            latitude=form.latitude,
            longitude=form.longitude,
            image=image_ref,
        )
        self.session.add(donation)
        self.session.flush()

        # hygiene_checked is enforced by the form, so every box was ticked
        checklist = HygieneChecklist(
            donation_id=donation.id,
            cooked_safe_time=True,
            stored_covered=True,
            no_human_contact=True,
        )
        self.session.add(checklist)

        self.session.commit()
        self.session.refresh(donation)

        logger.info("Donation {} submitted by user {}", donation.id, donor.id)

        return self._assess(donation, form.preparation_time)

    def reassess(self, donation_id: uuid.UUID, actor: User) -> Donation:
        donation = self.get(donation_id)

        if donation.donor_id != actor.id and actor.role != "admin":
            raise Forbidden("Unauthorized to reassess this donation")

        if donation.status != "assessment_failed":
            raise InvalidTransition("Only donations whose assessment failed can be reassessed")

        return self._assess(donation, donation.preparation_time)

    def _assess(self, donation: Donation, preparation_time) -> Donation:
        try:
            assessment = self.scorer.assess(
                donation.food_category,
                preparation_time,
                donation.storage_condition,
                donation.image,
            )
        except AssessmentFailure as e:
            logger.warning("Assessment failed for donation {}: {}", donation.id, e.detail)
            if donation.status == "assessment_failed":
                donation.assessment_error = e.detail
                self.session.add(donation)
                self.session.commit()
                self.session.refresh(donation)
                return donation
            return self.lifecycle.mark_assessment_failed(donation, e.detail)

        return self.lifecycle.apply_assessment(donation, assessment)

    def get(self, donation_id: uuid.UUID) -> Donation:
        donation = self.session.get(Donation, donation_id)
        if not donation:
            raise NotFound("Donation not found")
        return donation

    def list_own(self, actor: User) -> list[Donation]:
        return self.session.exec(
            select(Donation)
            .where(Donation.donor_id == actor.id)
            .order_by(Donation.created_at.desc())
        ).all()

    def aggregate_counts(self) -> dict:
        total = self.session.exec(select(func.count(Donation.id))).one()

        safe = self.session.exec(
            select(func.count(Donation.id)).where(Donation.safety_score >= APPROVAL_THRESHOLD)
        ).one()

        total_claims = self.session.exec(select(func.count(Claim.id))).one()

        meals_saved = self.session.exec(
            select(func.coalesce(func.sum(Donation.quantity), 0)).where(Donation.status == "completed")
        ).one()

        return {
            "total_donations": total,
            "safe_donations": safe,
            "total_claims": total_claims,
            "meals_saved": meals_saved,
        }
