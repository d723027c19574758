"""
smsbr/parsers/phone.py
Address normalization to E.164 using the phonenumbers library.

The exporter joins the members of a group conversation with "~" in a single
address attribute. Every valid number found is kept, in order, separated by
commas. When nothing valid is found the raw address is returned untouched,
so short codes and alphanumeric senders still get their own conversation.
"""

import locale
import logging
import os
from typing import Optional

import phonenumbers
from phonenumbers import PhoneNumberFormat

logger = logging.getLogger(__name__)

ADDRESS_SEPARATOR = '~'
UNKNOWN_REGION = 'ZZ'


def host_region() -> str:
    """Country of the host locale ("fr_FR" → "FR"), or ZZ when unknown."""
    try:
        lang = locale.getlocale()[0]
    except ValueError:
        lang = None
    lang = lang or os.environ.get('LC_ALL') or os.environ.get('LANG')
    if lang and '_' in lang:
        country = lang.split('_', 1)[1].split('.', 1)[0].upper()
        if country in phonenumbers.SUPPORTED_REGIONS:
            return country
    return UNKNOWN_REGION


class PhoneNumberNormalizer:
    """Stateless apart from the region numbers are parsed against."""

    def __init__(self, region: Optional[str] = None):
        self.region = (region or host_region()).upper()

    def normalize(self, raw: Optional[str]) -> str:
        """
        Return the comma-joined E.164 form of every valid number in raw,
        or raw itself when none is valid. Never raises.
        """
        if not raw:
            return raw or ''

        text = raw.replace(ADDRESS_SEPARATOR, ' ')
        found = []
        try:
            for match in phonenumbers.PhoneNumberMatcher(text, self.region):
                if phonenumbers.is_valid_number(match.number):
                    found.append(
                        phonenumbers.format_number(match.number, PhoneNumberFormat.E164)
                    )
        except Exception as e:
            logger.debug(f"Phone matcher failed for region {self.region}: {e}")
            return raw

        if not found:
            return raw
        return ','.join(found)
