"""
smsbr/parsers/content_parser.py
Second, full pass over a backup file: builds complete Message records.

RECONSTRUCTION:
  <sms> and <mms> open a PendingMessage pushed on a stack. Nested <part> and
  <addr> elements mutate the message on top of the stack. The closing tag
  pops it, applies the draft rule, and hands it to on_message_ready. A
  message is never published before its element closes. Depth is 1 in every
  known export, but nothing here relies on it.

CANCELLATION:
  is_cancelled() is polled before every start/end event. When it returns
  True the pass stops by raising Cancelled. Messages already handed out stay
  handed out; discarding them is the caller's decision.

FIELD ERRORS:
  A date or type code that is not a base-10 integer raises FormatError.
  Image decoding problems and missing layout dimensions are logged and the
  affected fields keep their defaults.

Schema: https://synctech.com.au/sms-backup-restore/fields-in-xml-backup-files/
"""

import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from smsbr.exceptions import Cancelled, FormatError, ImageDecodeError
from smsbr.imaging import decode_image as default_decode_image
from smsbr.models.record import Contact, FileMetadata, ImageAttachment, Message
from smsbr.parsers.metadata_scanner import (
    ATTR_ADDRESS,
    ATTR_CONTACT_NAME,
    TAG_MMS,
    TAG_SMS,
    attributes,
)
from smsbr.parsers.phone import PhoneNumberNormalizer

logger = logging.getLogger(__name__)

TAG_PART = 'part'
TAG_ADDR = 'addr'

ATTR_DATE = 'date'
ATTR_BODY = 'body'
ATTR_TYPE = 'type'
ATTR_SERVICE_CENTER = 'service_center'
ATTR_SNIPPET = 'snippet'
ATTR_MTYPE = 'm_type'
ATTR_TEXT = 'text'
ATTR_CL = 'cl'
ATTR_CT = 'ct'
ATTR_DATA = 'data'

NULL_VALUE = 'null'

SMS_TYPE_SENT = 2     # 2 and above: sent, draft, outbox, failed, queued
SMS_TYPE_DRAFT = 3
MMS_MTYPE_SEND_REQ = 128

_INTEGER = re.compile(r'^[+-]?[0-9]+$')
_LAYOUT_WIDTH = re.compile(r'<root-layout.*width="([0-9]*)[^"]*"')
_LAYOUT_HEIGHT = re.compile(r'<root-layout.*height="([0-9]*)[^"]*"')

DecodeImage = Callable[[str, str], Tuple[int, int]]
MessageCallback = Callable[[Message], None]


class MessageKind(str, Enum):
    SMS = TAG_SMS
    MMS = TAG_MMS


@dataclass
class PendingMessage:
    """A message whose element is still open."""
    kind:    MessageKind
    message: Message


def _never_cancelled() -> bool:
    return False


def parse_int(atts: dict, name: str, default: int = 0) -> int:
    value = atts.get(name)
    if value is None:
        return default
    if not _INTEGER.match(value.strip()):
        raise FormatError(f"Attribute {name!r} is not an integer: {value!r}")
    return int(value)


def declared_dimensions(text: str) -> Tuple[int, int]:
    """Width and height declared by a SMIL <root-layout> inside a part's text."""
    return _layout_value(_LAYOUT_WIDTH, text), _layout_value(_LAYOUT_HEIGHT, text)


def _layout_value(pattern: re.Pattern, text: str) -> int:
    match = pattern.search(text)
    if not match or not match.group(1):
        return 0
    return int(match.group(1))


class ContentParser:
    """
    Parser context for one content pass. Owns its stack and counters; the
    loader only sees what comes out of on_message_ready.
    Not safe for concurrent use: one instance per load.
    """

    def __init__(
        self,
        normalizer:   PhoneNumberNormalizer,
        decode_image: DecodeImage                      = default_decode_image,
        is_cancelled: Optional[Callable[[], bool]]     = None,
    ):
        self.normalizer   = normalizer
        self.decode_image = decode_image
        self.is_cancelled = is_cancelled or _never_cancelled
        self._stack: List[PendingMessage] = []
        self._metadata: Optional[FileMetadata] = None
        self.messages_parsed = 0

    def parse(
        self,
        text:             str,
        on_message_ready: MessageCallback,
        metadata:         Optional[FileMetadata] = None,
    ) -> int:
        """
        Run the content pass over preprocessed backup text.
        Each closed message is added to metadata's contacts (when given)
        and passed to on_message_ready in document order.
        Returns the number of messages delivered.
        """
        self._stack = []
        self._metadata = metadata
        self.messages_parsed = 0

        try:
            for event, el in ET.iterparse(io.StringIO(text), events=('start', 'end')):
                if self.is_cancelled():
                    raise Cancelled("Loading cancelled")

                tag = el.tag.lower()
                if event == 'start':
                    self._open(tag, attributes(el))
                elif tag in (TAG_SMS, TAG_MMS):
                    self._close(on_message_ready)
                    el.clear()

        except ET.ParseError as e:
            raise FormatError(f"Malformed backup file: {e}") from e

        logger.info(f"Content pass: {self.messages_parsed} messages parsed")
        return self.messages_parsed

    # ── OPEN ─────────────────────────────────────────────────

    def _open(self, tag: str, atts: dict) -> None:
        if tag == TAG_SMS:
            self._stack.append(PendingMessage(MessageKind.SMS, self._new_sms(atts)))
        elif tag == TAG_MMS:
            self._stack.append(PendingMessage(MessageKind.MMS, self._new_mms(atts)))
        elif tag == TAG_PART:
            self._add_part(self._open_mms(tag), atts)
        elif tag == TAG_ADDR:
            self._add_addr(self._open_mms(tag), atts)

    def _open_mms(self, tag: str) -> Message:
        if not self._stack or self._stack[-1].kind is not MessageKind.MMS:
            raise FormatError(f"<{tag}> found outside of an <mms> element")
        return self._stack[-1].message

    def _new_sms(self, atts: dict) -> Message:
        address        = atts.get(ATTR_ADDRESS, '')
        contact_name   = atts.get(ATTR_CONTACT_NAME, '')
        service_center = atts.get(ATTR_SERVICE_CENTER)
        type_code      = parse_int(atts, ATTR_TYPE)

        phone_number = self.normalizer.normalize(address)
        if not phone_number.strip() and service_center and service_center != NULL_VALUE:
            phone_number = self.normalizer.normalize(service_center)
            contact_name = address

        return Message(
            timestamp_ms = parse_int(atts, ATTR_DATE),
            is_from_me   = type_code >= SMS_TYPE_SENT,
            is_draft     = type_code == SMS_TYPE_DRAFT,
            body         = atts.get(ATTR_BODY, ''),
            contact      = Contact(phone_number, contact_name),
        )

    def _new_mms(self, atts: dict) -> Message:
        snippet = atts.get(ATTR_SNIPPET, '')
        if snippet.lower() == NULL_VALUE:
            snippet = ''

        return Message(
            timestamp_ms = parse_int(atts, ATTR_DATE),
            is_from_me   = parse_int(atts, ATTR_MTYPE) == MMS_MTYPE_SEND_REQ,
            is_draft     = False,
            body         = snippet,
            contact      = Contact(
                self.normalizer.normalize(atts.get(ATTR_ADDRESS, '')),
                atts.get(ATTR_CONTACT_NAME, ''),
            ),
        )

    def _add_part(self, mms: Message, atts: dict) -> None:
        text = atts.get(ATTR_TEXT, '')
        mime = atts.get(ATTR_CT)
        data = atts.get(ATTR_DATA)

        if mime is not None and mime.lower().startswith('image/') and data is not None:
            width, height = declared_dimensions(text)
            if not (width and height):
                logger.debug("Image part without declared layout dimensions")
            mms.add_image(self._attachment(mime, atts.get(ATTR_CL, ''), data, width, height))

        mms.body = '' if text == NULL_VALUE else text

    def _attachment(self, mime: str, filename: str, data: str, width: int, height: int) -> ImageAttachment:
        try:
            width, height = self.decode_image(mime, data)
        except ImageDecodeError as e:
            logger.warning(f"Keeping declared size {width}x{height} for {filename!r}: {e}")
        except Exception as e:
            # decode_image is injected; whatever it raises stays a soft failure
            logger.warning(
                f"Image decoder failed on {filename!r} ({type(e).__name__}: {e}), "
                f"keeping declared size {width}x{height}"
            )
        return ImageAttachment(
            mime_type      = mime,
            filename       = filename,
            base64_payload = data,
            width          = width,
            height         = height,
        )

    def _add_addr(self, mms: Message, atts: dict) -> None:
        mms.add_recipient(
            self.normalizer.normalize(atts.get(ATTR_ADDRESS, '')),
            parse_int(atts, ATTR_TYPE),
        )

    # ── CLOSE ────────────────────────────────────────────────

    def _close(self, on_message_ready: MessageCallback) -> None:
        message = self._stack.pop().message
        contact = message.contact

        if not contact.complete_name.strip() and not contact.phone_number.strip():
            message.is_draft = True
            contact.complete_name = ''
            contact.phone_number = ''

        if self._metadata is not None:
            self._metadata.add_contact(contact)
        self.messages_parsed += 1
        on_message_ready(message)
