class DreamVisionError(Exception):
    """Base class for service-level failures the HTTP layer maps to status codes."""


class NotFoundError(DreamVisionError):
    pass


class ConflictError(DreamVisionError):
    pass


class InterpretationExistsError(ConflictError):
    pass
