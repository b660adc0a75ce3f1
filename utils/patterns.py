"""Pre-compiled regex patterns for the appropriations engine.

All patterns are compiled once at module import.

Usage:
    from utils.patterns import FISCAL_YEAR, PE_NUMBER

    if FISCAL_YEAR.search(text):
        ...
"""

import re

# Program Element (PE) numbers: 7 digits followed by 1-2 letters
# Examples: 0602702E, 0801273F
PE_NUMBER = re.compile(r'\b\d{7}[A-Z]{1,2}\b')

# Fiscal year patterns in various formats
# Matches: "FY2026", "FY 2026", "2026", etc.
FISCAL_YEAR = re.compile(r'(FY\s*)?((?:19|20|21|22)\d{2})', re.IGNORECASE)

# Account code and title: "2010 Operation and Maintenance, Army"
# Captures the code (group 1) and title (group 2)
ACCOUNT_CODE_TITLE = re.compile(r'^(\d{4})\s+(.+)$')

# Whitespace normalization: multiple spaces/tabs/newlines
WHITESPACE = re.compile(r'\s+')

# Currency symbols for stripping during numeric conversion
CURRENCY_SYMBOLS = re.compile(r'[\$€£¥₹₽]')

# Trailing "K"/"M" magnitude suffix on rendered amounts ("$1,234K")
MAGNITUDE_SUFFIX = re.compile(r'([KMB])$', re.IGNORECASE)
