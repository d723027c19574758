"""
smsbr/models/conversations.py
Per-contact conversation index built by the loader.

Every bucket stays sorted ascending by timestamp_ms after each insertion.
list.sort is stable, so messages sharing a timestamp keep their arrival
order. message_count only moves up on add() and only moves down when a
whole bucket is dropped by remove_conversations().
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol

from smsbr.models.record import Contact, Message

logger = logging.getLogger(__name__)


class Order(str, Enum):
    ASC  = 'asc'
    DESC = 'desc'


class ConversationListener(Protocol):
    def message_added(self, message: Message) -> None: ...
    def contact_removed(self, contact: Contact) -> None: ...


def _by_timestamp(message: Message) -> int:
    return message.timestamp_ms


class ConversationIndex:
    """Mapping Contact → messages, with the queries the viewer needs."""

    def __init__(self):
        self._messages: Dict[Contact, List[Message]] = {}
        self._message_count = 0
        self._listeners: List[ConversationListener] = []

    # ── LISTENERS ────────────────────────────────────────────

    def add_listener(self, listener: ConversationListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ConversationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── MUTATION ─────────────────────────────────────────────

    def add(self, message: Message) -> None:
        bucket = self._messages.setdefault(message.contact, [])
        bucket.append(message)
        self._message_count += 1
        bucket.sort(key=_by_timestamp)

        for listener in list(self._listeners):
            listener.message_added(message)

    def remove_conversations(self, contacts: Iterable[Contact]) -> None:
        """Drop every message exchanged with each contact. No partial removal."""
        for contact in list(contacts):
            bucket = self._messages.pop(contact, None)
            if bucket is not None:
                self._message_count -= len(bucket)
                logger.debug(f"Removed conversation with {len(bucket)} messages")
            for listener in list(self._listeners):
                listener.contact_removed(contact)

    # ── QUERIES ──────────────────────────────────────────────

    @property
    def message_count(self) -> int:
        return self._message_count

    @property
    def contacts(self) -> List[Contact]:
        return list(self._messages.keys())

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, contact: object) -> bool:
        return contact in self._messages

    def find_contact(self, phone_number: str) -> Optional[Contact]:
        """Return the bucket key for phone_number, carrying its display name."""
        wanted = Contact(phone_number)
        for contact in self._messages:
            if contact == wanted:
                return contact
        return None

    def contacts_by_date(self, order: Order = Order.ASC) -> List[Contact]:
        """Contacts ordered by the timestamp of their latest message."""
        return sorted(
            self._messages,
            key=lambda c: self._messages[c][-1].timestamp_ms,
            reverse=order is Order.DESC,
        )

    def contacts_by_name(self, order: Order = Order.ASC) -> List[Contact]:
        """Contacts ordered case-insensitively by their display string."""
        return sorted(
            self._messages,
            key=lambda c: str(c).casefold(),
            reverse=order is Order.DESC,
        )

    def conversation(self, contact: Contact, order: Order = Order.ASC) -> List[Message]:
        """Copy of one conversation. Raises KeyError for an unknown contact."""
        messages = list(self._messages[contact])
        if order is Order.DESC:
            messages.sort(key=_by_timestamp, reverse=True)
        return messages

    def messages_with_images(self, contact: Optional[Contact] = None) -> List[Message]:
        if contact is not None:
            buckets = [self._messages.get(contact, [])]
        else:
            buckets = list(self._messages.values())
        return [m for bucket in buckets for m in bucket if m.images]

    def __str__(self):
        lines = []
        for contact, bucket in self._messages.items():
            lines.append(f"{contact} :")
            lines.append('-------------------')
            lines.extend(str(m) for m in bucket)
        return '\n'.join(lines)
