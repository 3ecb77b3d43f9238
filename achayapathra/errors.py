class DonationError(Exception):
    """Base class for failures scoped to a single donation or claim operation."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(DonationError):
    status_code = 400


class MissingInput(InvalidInput):
    pass


class InvalidCategory(InvalidInput):
    pass


class InvalidCoordinate(InvalidInput):
    pass


class NotFound(DonationError):
    status_code = 404


class Forbidden(DonationError):
    status_code = 403


class InvalidTransition(DonationError):
    status_code = 409


class ConflictError(DonationError):
    # lost the approved -> claimed race; retry against a refreshed listing
    status_code = 409


class AssessmentFailure(DonationError):
    status_code = 502
