"""Error taxonomy shared by the services and the HTTP layer."""


class StackSaveError(Exception):
    """Base class. `status_code` is what the HTTP layer answers with."""
    status_code = 500

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"success": False, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(StackSaveError):
    status_code = 400


class NotFoundError(StackSaveError):
    status_code = 404


class InsufficientBalanceError(StackSaveError):
    status_code = 400


class ConflictError(StackSaveError):
    status_code = 409


class StoreError(StackSaveError):
    status_code = 500


class ChainError(StackSaveError):
    status_code = 502
