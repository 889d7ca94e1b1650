"""Ticket service domain models and services."""

from .errors import (
    AttachmentUploadError,
    InvalidTicketStatusError,
    TicketNotFoundError,
    TicketServiceError,
    TicketStoreError,
    TicketValidationError,
)
from .memory import InMemoryTicketRepository
from .models import Message, Ticket, TicketThread
from .repository import SqlTicketRepository, TicketRepository
from .service import TicketService
from .state import SortOrder, TicketStatus
from .uploader import AttachmentUploader, CloudinaryUploader

__all__ = [
    "AttachmentUploadError",
    "AttachmentUploader",
    "CloudinaryUploader",
    "InMemoryTicketRepository",
    "InvalidTicketStatusError",
    "Message",
    "SortOrder",
    "SqlTicketRepository",
    "Ticket",
    "TicketNotFoundError",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStatus",
    "TicketStoreError",
    "TicketThread",
    "TicketValidationError",
]
