"""
smsbr/exceptions.py
Exception hierarchy for backup file loading.

FormatError and Cancelled travel up through both parser passes to the
loader, which alone decides what a failed or cancelled load means.
ImageDecodeError never leaves the content parser.
"""


class SmsbrError(Exception):
    """Base exception for all smsbr errors."""


class FormatError(SmsbrError):
    """Malformed XML or a required numeric field that is not an integer."""


class Cancelled(SmsbrError):
    """Loading was cancelled at a checked point. Not a failure."""


class ImageDecodeError(SmsbrError):
    """An image attachment payload could not be decoded."""
