"""
smsbr/parsers/preprocess.py
Turns a backup file on disk into the text both parser passes read.

BOM and encoding: strip a UTF-8 BOM, decode UTF-16 by BOM, else UTF-8 with
errors='replace' as a fallback. Android export format varies by version.

Numeric character references with three or more digits are rewritten to
"emoji://<digits>;" before parsing. The exporter writes emoji as UTF-16
surrogate references (&#55357;&#56832;) which are not legal XML characters;
after the rewrite they survive parsing as plain text and a renderer can map
them back. One- and two-digit references (&#10;) are left for the XML parser.
"""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

BOM_UTF8 = b'\xef\xbb\xbf'
BOM_UTF16_LE = b'\xff\xfe'
BOM_UTF16_BE = b'\xfe\xff'

EMOJI_SCHEME = 'emoji://'

_NUMERIC_REFERENCE = re.compile(r'&#([0-9]{3,});')
_STYLESHEET_PI = re.compile(r'<\?xml-stylesheet[^?]*\?>')


def rewrite_numeric_references(text: str) -> str:
    """
    Replace every "&#NNN;" (3+ digits) with "emoji://NNN;".
    Single left-to-right pass; replacement text is never rescanned.
    """
    return _NUMERIC_REFERENCE.sub(lambda m: f"{EMOJI_SCHEME}{m.group(1)};", text)


def decode_backup_bytes(raw: bytes) -> str:
    """
    Decode raw backup bytes for read_backup_text. A UTF-8 or UTF-16 BOM
    picks the codec and is dropped; otherwise UTF-8, with undecodable
    bytes replaced (and a warning) rather than failing the load.
    """
    if raw.startswith(BOM_UTF8):
        return raw[len(BOM_UTF8):].decode('utf-8', errors='replace')
    if raw.startswith(BOM_UTF16_LE):
        return raw[len(BOM_UTF16_LE):].decode('utf-16-le', errors='replace')
    if raw.startswith(BOM_UTF16_BE):
        return raw[len(BOM_UTF16_BE):].decode('utf-16-be', errors='replace')
    try:
        return raw.decode('utf-8', errors='strict')
    except UnicodeDecodeError:
        logger.warning("Backup file is not valid UTF-8, undecodable bytes replaced")
        return raw.decode('utf-8', errors='replace')


def strip_stylesheet(content: str) -> str:
    return _STYLESHEET_PI.sub('', content)


def read_backup_text(path: Path) -> str:
    """
    Read a backup file and return the text both passes parse.
    Raises OSError when the file cannot be read.
    """
    content = decode_backup_bytes(Path(path).read_bytes())
    content = strip_stylesheet(content)
    return rewrite_numeric_references(content)
