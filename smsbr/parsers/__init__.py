"""
smsbr/parsers — the two streaming passes over a backup file and their helpers.
"""

from smsbr.parsers.content_parser import ContentParser
from smsbr.parsers.metadata_scanner import scan_metadata
from smsbr.parsers.phone import PhoneNumberNormalizer
from smsbr.parsers.preprocess import read_backup_text, rewrite_numeric_references

__all__ = [
    "ContentParser",
    "PhoneNumberNormalizer",
    "read_backup_text",
    "rewrite_numeric_references",
    "scan_metadata",
]
