class ComplaintServiceError(Exception):
    """Base class for errors raised by the complaint core."""


class NotFound(ComplaintServiceError):
    def __init__(self, resource, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' was not found.")


class ConflictError(ComplaintServiceError):
    """The record changed since the caller read it; re-read and retry."""


class UpstreamUnavailable(ComplaintServiceError):
    """An external provider (geocoding) failed or returned garbage."""


class ImmutableRecordError(ComplaintServiceError):
    pass
