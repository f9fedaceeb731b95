"""Inbound webhook ingestion and conversation resolution."""

from src.inbound.conversations import ConversationResolver, phone_variants
from src.inbound.ingestor import InboundIngestor, IngestResult, IngestStatus
from src.inbound.responder import ResponderClient

__all__ = [
    "ConversationResolver",
    "InboundIngestor",
    "IngestResult",
    "IngestStatus",
    "ResponderClient",
    "phone_variants",
]
