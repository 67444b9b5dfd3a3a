from __future__ import annotations


class WorkflowError(ValueError):
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationFailed(WorkflowError):
    pass


class NotFound(WorkflowError):
    status_code = 404


class InvalidTransition(WorkflowError):
    pass


class InsufficientStock(WorkflowError):
    def __init__(self, item_name: str, available: int, requested: int, errors: list[str] | None = None) -> None:
        message = f'Insufficient stock for {item_name}. Available: {available}, Requested: {requested}'
        super().__init__(message, errors or [message])
        self.item_name = item_name
        self.available = available
        self.requested = requested


class NothingToRecycle(WorkflowError):
    def __init__(self) -> None:
        super().__init__('No waste to recycle. The bin is already empty.')


class ConcurrencyConflict(WorkflowError):
    status_code = 409
