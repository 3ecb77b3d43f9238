from dataclasses import dataclass

from sqlmodel import Session, select

from achayapathra.errors import InvalidInput
from achayapathra.models.donation import Donation
from achayapathra.utils.geo import haversine_km, validate_coordinate


DEFAULT_RADIUS_KM = 10.0


@dataclass
class NearbyDonation:
    donation: Donation
    distance_km: float


class ProximityMatcher:
    """
    Radius search over approved donations.

    Donations without coordinates are left out of the result; they are still
    visible to their owner through the "my donations" listing.
    """

    def __init__(self, session: Session):
        self.session = session

    def nearby(self, latitude: float, longitude: float, radius_km: float = DEFAULT_RADIUS_KM) -> list[NearbyDonation]:
        validate_coordinate(latitude, longitude)

        if radius_km is None or radius_km <= 0:
            raise InvalidInput("Radius must be a positive number of kilometers")

        donations = self.session.exec(
            select(Donation)
            .where(Donation.status == "approved")
            .where(Donation.latitude != None)  # noqa: E711
            .where(Donation.longitude != None)  # noqa: E711
            .order_by(Donation.created_at.desc())
        ).all()

        matches = []
        for donation in donations:
            distance = round(haversine_km(latitude, longitude, donation.latitude, donation.longitude), 2)

            # inclusive bound
            if distance <= radius_km:
                matches.append(NearbyDonation(donation=donation, distance_km=distance))

        # stable sort keeps newest first among equal distances
        matches.sort(key=lambda m: m.distance_km)
        return matches
