class CrewAppError(Exception):
    """Base class for every error raised by crewapp."""


class StoreUnavailable(CrewAppError):
    """Raised by record store adapters when the backing store can't be reached."""


class ClaimValidationError(CrewAppError):
    pass


class InsufficientDuration(ClaimValidationError):
    pass


class MissingJustification(ClaimValidationError):
    pass


class InvalidDuration(ClaimValidationError):
    pass


class ExceedsRequestable(ClaimValidationError):
    pass


class AuthorizationError(CrewAppError):
    pass


class NotAuthorized(AuthorizationError):
    pass


class InvalidRate(AuthorizationError):
    pass


class LookupFailed(AuthorizationError):
    """
    Transient failure reading the authorization record.

    Callers should retry instead of reporting a permission problem.
    """


class ImageError(CrewAppError):
    pass


class DecodeError(ImageError):
    pass


class EncodeError(ImageError):
    pass


class RequestError(CrewAppError):
    pass


class RequestNotFound(RequestError):
    pass


class NotRequestOwner(RequestError):
    pass


class RequestNotEditable(RequestError):
    pass


class InvalidTransition(RequestError):
    pass
