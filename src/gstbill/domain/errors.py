class AppError(Exception):
    """Base app error."""


class NotFoundError(AppError):
    pass


class ConstraintViolationError(AppError):
    """Uniqueness, range or reference check rejected the write."""


class ValidationError(ConstraintViolationError):
    pass


class WouldViolateInvariantError(AppError):
    pass
