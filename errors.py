class BudgetError(Exception):
    """Base class for every error raised by the budget stores and reports."""


class InvalidArgumentError(BudgetError, ValueError):
    pass


class NotFoundError(BudgetError, LookupError):
    pass


class DatabaseFileNotFoundError(NotFoundError, FileNotFoundError):
    pass


class ConflictError(BudgetError):
    pass


class StorageError(BudgetError):
    """An engine-level failure, wrapped with the operation that hit it."""


class DisposedError(BudgetError, RuntimeError):
    def __init__(self, owner: str) -> None:
        super().__init__(f"{owner} has been closed")
        self.owner = owner
