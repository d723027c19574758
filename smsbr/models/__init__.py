"""
smsbr/models — contacts, messages, attachments and the conversation index.
"""

from smsbr.models.conversations import ConversationIndex, Order
from smsbr.models.record import (
    Contact,
    FileMetadata,
    ImageAttachment,
    Message,
)

__all__ = [
    "Contact",
    "ConversationIndex",
    "FileMetadata",
    "ImageAttachment",
    "Message",
    "Order",
]
