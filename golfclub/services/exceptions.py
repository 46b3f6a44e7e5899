class ServiceError(Exception):
    """Error raised by the service layer and rendered as an HTTP response."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def detail(self) -> str:
        return self.message


class Unauthenticated(ServiceError):
    status_code = 401


class InvalidCredentials(Unauthenticated):
    pass


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class ValidationError(ServiceError, ValueError):
    status_code = 400


class AlreadyMember(ValidationError):
    pass


class NotAMember(ValidationError):
    pass


class ManagerCannotLeave(ValidationError):
    pass


class CannotRemoveManager(ValidationError):
    pass


class InvalidHoleCount(ValidationError):
    pass


class StoreFailure(ServiceError):
    status_code = 500
