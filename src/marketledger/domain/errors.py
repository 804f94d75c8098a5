class AppError(Exception):
    """Base app error."""


class StorageUnavailableError(AppError):
    """The ledger store is not opened or cannot be reached."""


class ValidationError(AppError):
    pass


class InvalidProductError(ValidationError):
    pass


class EmptySaleError(ValidationError):
    pass


class MissingMarketNameError(ValidationError):
    pass


class NotFoundError(AppError):
    pass


class UnknownProductError(NotFoundError):
    pass
