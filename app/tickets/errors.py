class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketValidationError(TicketServiceError):
    """Raised when required input is missing or malformed."""


class InvalidTicketStatusError(TicketValidationError):
    """Raised when a status value is outside the supported lifecycle."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class AttachmentUploadError(TicketServiceError):
    """Raised when the attachment uploader could not produce a URL."""


class TicketStoreError(TicketServiceError):
    """Raised when the persistent store rejects an operation."""
