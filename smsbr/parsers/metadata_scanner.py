"""
smsbr/parsers/metadata_scanner.py
First, lightweight pass over a backup file.

Collects the declared message count from the <smses count="N"> root and one
Contact per <sms>/<mms> element, so the loader has a progress denominator
before the content pass starts. Children of messages are ignored.

Streaming: ET.iterparse over the preprocessed text, elements cleared as soon
as they are seen. Malformed XML raises FormatError; nothing is recovered.

Schema: https://synctech.com.au/sms-backup-restore/fields-in-xml-backup-files/
"""

import io
import logging
import xml.etree.ElementTree as ET

from smsbr.exceptions import FormatError
from smsbr.models.record import Contact, FileMetadata
from smsbr.parsers.phone import PhoneNumberNormalizer

logger = logging.getLogger(__name__)

TAG_SMSES = 'smses'
TAG_SMS = 'sms'
TAG_MMS = 'mms'

ATTR_COUNT = 'count'
ATTR_ADDRESS = 'address'
ATTR_CONTACT_NAME = 'contact_name'


def attributes(el: ET.Element) -> dict:
    """Element attributes keyed by lower-cased name."""
    return {name.lower(): value for name, value in el.attrib.items()}


def scan_metadata(
    text:       str,
    normalizer: PhoneNumberNormalizer,
    metadata:   FileMetadata = None,
) -> FileMetadata:
    """
    Run the metadata pass over preprocessed backup text.
    Fills and returns metadata (a fresh FileMetadata when None).
    """
    metadata = metadata if metadata is not None else FileMetadata()
    count_seen = False

    try:
        for event, el in ET.iterparse(io.StringIO(text), events=('start', 'end')):
            tag = el.tag.lower()

            if event == 'end':
                if tag in (TAG_SMS, TAG_MMS):
                    el.clear()
                continue

            if tag == TAG_SMSES and not count_seen:
                count_seen = True
                metadata.message_count = _read_count(attributes(el))

            elif tag in (TAG_SMS, TAG_MMS):
                atts = attributes(el)
                metadata.add_contact(Contact(
                    phone_number  = normalizer.normalize(atts.get(ATTR_ADDRESS, '')),
                    complete_name = atts.get(ATTR_CONTACT_NAME, ''),
                ))

    except ET.ParseError as e:
        raise FormatError(f"Malformed backup file: {e}") from e

    logger.info(
        f"Metadata pass: {metadata.message_count} declared messages, "
        f"{len(metadata.contacts)} contact entries"
    )
    return metadata


def _read_count(atts: dict) -> int:
    value = atts.get(ATTR_COUNT)
    if value is None:
        logger.warning("Backup root has no count attribute, progress is unavailable")
        return 0
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Backup root count is not an integer: {value!r}")
        return 0
