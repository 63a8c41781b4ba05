class ServiceException(Exception):
    """Base for errors raised by the service layer; the API maps status_code 1:1."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFoundError(ServiceException):
    status_code = 404


class ValidationError(ServiceException):
    status_code = 400


class ForbiddenError(ServiceException):
    status_code = 403


class ConflictError(ServiceException):
    status_code = 409


class SessionExpiredError(ServiceException):
    status_code = 400


class OrderCreationError(ServiceException):
    """Order confirmation failed and was rolled back; details are only logged."""

    status_code = 500
