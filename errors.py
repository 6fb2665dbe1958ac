class MintError(Exception):
    """Base class for failures reported back to the client as JSON."""

    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ValidationError(MintError):
    status_code = 400


class NotEligibleError(MintError):
    status_code = 403


class CapacityExhaustedError(MintError):
    status_code = 403


class PendingExpiredError(MintError):
    status_code = 410


class LedgerUnavailableError(MintError):
    status_code = 502


class SigningError(MintError):
    status_code = 500


class WireFormatError(ValidationError):
    pass
