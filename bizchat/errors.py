"""Error taxonomy shared by the messaging and notification services.

Every exception carries the HTTP status the API layer renders it with. The
``TransientDeliveryFailure`` is the odd one out: it is raised and caught inside
live delivery and only ever logged, because the store write that triggered the
push has already succeeded.
"""


class AppError(Exception):

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(AppError):

    status_code = 401


class MissingCredential(Unauthenticated):

    def __init__(self, message: str = "Authentication token required") -> None:
        super().__init__(message)


class InvalidCredential(Unauthenticated):

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(message)


class Forbidden(AppError):

    status_code = 403


class NotFound(AppError):

    status_code = 404


class ValidationError(AppError):

    status_code = 400


class TransientDeliveryFailure(AppError):

    status_code = 503

    def __init__(self, user_id: str, handle_id: str, reason: str) -> None:
        super().__init__(f"Could not deliver to handle {handle_id} of user {user_id}: {reason}")
        self.user_id = user_id
        self.handle_id = handle_id
        self.reason = reason
