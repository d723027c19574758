"""
smsbr/models/record.py
Shared dataclass schema. Parsers, the loader, exporters and the API
all use these types. Data only, apart from the few mutators the
content parser needs while a message is still open.
"""

import itertools
from dataclasses import dataclass, field
from typing import List

UNKNOWN_CONTACT = '(Unknown)'

# MMS <addr> type code marking the owner's own address
MMS_ADDR_TYPE_SELF = 137

_image_ids = itertools.count(1)


@dataclass(eq=False)
class Contact:
    """
    Conversation identity. Two contacts are the same entity when their
    phone numbers are equal, whatever their names. A blank number is a
    valid identity: every blank-number contact lands in the same bucket.
    """
    phone_number:  str
    complete_name: str = ''

    def __eq__(self, other):
        if isinstance(other, Contact):
            return self.phone_number == other.phone_number
        return NotImplemented

    def __hash__(self):
        return hash(self.phone_number)

    def __str__(self):
        if self.complete_name == UNKNOWN_CONTACT:
            return self.phone_number
        return f"{self.complete_name} ({self.phone_number})"


@dataclass
class ImageAttachment:
    """Image part of an MMS, kept as its base64 payload."""
    mime_type:      str
    filename:       str
    base64_payload: str
    width:          int = 0
    height:         int = 0
    # Stable key for renderers and exporters, assigned at construction
    uid:            int = field(default_factory=lambda: next(_image_ids))


@dataclass
class Message:
    """Normalized SMS or MMS."""
    timestamp_ms: int
    is_from_me:   bool
    is_draft:     bool
    body:         str
    contact:      Contact
    images:       List[ImageAttachment] = field(default_factory=list)
    recipients:   List[str]             = field(default_factory=list)

    def add_image(self, image: ImageAttachment) -> None:
        if image is not None:
            self.images.append(image)

    def add_recipient(self, phone_number: str, type_code: int) -> None:
        if type_code != MMS_ADDR_TYPE_SELF:
            self.recipients.append(phone_number)

    def __str__(self):
        who = 'Me' if self.is_from_me else str(self.contact)
        return f"{who} : \n{self.body} - {self.timestamp_ms}"


@dataclass
class FileMetadata:
    """
    Result of the metadata pass. message_count is the declared root count,
    trusted as-is. contacts is not deduplicated here.
    """
    size_in_bytes: int           = 0
    message_count: int           = 0
    contacts:      List[Contact] = field(default_factory=list)

    def add_contact(self, contact: Contact) -> None:
        self.contacts.append(contact)
