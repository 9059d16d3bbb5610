class DomainError(Exception):
    """Base error for admission, lifecycle and delivery failures."""


class DomainValidationError(DomainError):
    """Raised when a payload is malformed; not retried."""


class PermissionDeniedError(DomainError):
    """Raised when the actor's role or ownership does not allow the operation."""


class NotFoundError(DomainError):
    """Raised when the referenced entity does not exist."""


class QuotaUnavailableError(DomainError):
    """Raised when no subscription snapshot is cached for the company yet."""


class QuotaExceededError(DomainError):
    """Raised when admission would exceed the plan's job or featured limit."""


class ConflictError(DomainError):
    """Raised on uniqueness violations and invalid state transitions."""


class DependencyUnavailableError(DomainError):
    """Raised when the store, cache or bus cannot be reached."""


class EventProcessingError(DomainError):
    """Raised when a consumed event cannot be handled and must be redelivered."""
