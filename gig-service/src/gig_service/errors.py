from typing import Sequence


class GigServiceError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(GigServiceError):
    status_code = 404
    code = "GIG_NOT_FOUND"


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"


class InvalidState(GigServiceError):
    status_code = 400
    code = "INVALID_STATE"


class OfferExpired(InvalidState):
    code = "OFFER_EXPIRED"

    def __init__(self, message: str = "This gig offer has expired"):
        super().__init__(message)


class UpdateConflict(GigServiceError):
    """The conditional write matched no row: another transition got there first."""
    status_code = 500
    code = "UPDATE_CONFLICT"


class ProcessorFailure(GigServiceError):
    status_code = 502
    code = "PROCESSOR_FAILURE"

    def __init__(self, gig_id: str, message: str, failed_payment_ids: Sequence[str] = ()):
        super().__init__(f"Error cancelling payments for {gig_id}: {message}")
        self.gig_id = gig_id
        self.failed_payment_ids = list(failed_payment_ids)


class LedgerPrecondition(GigServiceError):
    status_code = 400
    code = "LEDGER_PRECONDITION"


class NoPaymentsFound(LedgerPrecondition):
    status_code = 404
    code = "NO_PAYMENTS_FOUND"

    def __init__(self, gig_id: str):
        super().__init__(f"There are not registered payments for this gig {gig_id}")
        self.gig_id = gig_id
