class ServiceError(Exception):
    pass


class ValidationError(ServiceError):
    pass


class NotFoundError(ServiceError):
    pass


class ConflictError(ServiceError):
    """Request is well-formed but collides with existing state (already done)."""


class RetrievalError(ServiceError):
    pass


class WriteError(ServiceError):
    pass
