"""Outbound supplier inquiries and customer offers."""

from .repository import CommunicationRepository, PostgresCommunicationRepository
from .service import ChannelDraft, CommunicationService, Draft

__all__ = [
    "CommunicationRepository",
    "PostgresCommunicationRepository",
    "CommunicationService",
    "ChannelDraft",
    "Draft",
]
