"""Pre-compiled regex patterns for the enforcement dashboard.

All patterns are compiled once at module import.

Usage:
    from utils.patterns import WHITESPACE, NAME_PUNCTUATION

    if NAME_PUNCTUATION.search(text):
        ...
"""

import re

# Whitespace normalization: multiple spaces/tabs/newlines
WHITESPACE = re.compile(r'\s+')

# Currency symbols for stripping during numeric conversion
CURRENCY_SYMBOLS = re.compile(r'[\$€£¥₹₽]')

# Punctuation dropped from company names before matching
NAME_PUNCTUATION = re.compile(r'[\.,:;!@#$%^&*()]+')

# Company suffix variants, anchored at the end of an already-lowercased name
LIMITED_SUFFIX = re.compile(r'\s+(limited|ltd\.?)$', re.IGNORECASE)
PLC_SUFFIX = re.compile(r'\s+(plc|p\.l\.c\.?)$', re.IGNORECASE)

# ISO-8601 calendar date: "2024-03-15"
ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

# UK postcode at the end of an address line: "SW1A 1AA", "M1 1AE"
UK_POSTCODE_TAIL = re.compile(r'([A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2})$', re.IGNORECASE)
