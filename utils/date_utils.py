"""
Date Utilities for MRZ fields.

MRZ dates are encoded as YYMMDD. This module expands them to the
application-wide standard format (YYYY-MM-DD).

Usage:
    from utils.date_utils import parse_mrz_date_of_birth, parse_mrz_expiration_date

    parse_mrz_date_of_birth("990315")    # -> "1999-03-15" (in 2024)
    parse_mrz_expiration_date("301231")  # -> "2030-12-31"
"""
import logging
from datetime import date, datetime
from typing import Optional

logger = logging.getLogger(__name__)


# =============================================================================
# STANDARD FORMAT CONSTANT
# =============================================================================
STANDARD_DATE_FORMAT = "%Y-%m-%d"


def format_date(date_obj: date) -> str:
    """
    Convert a date/datetime object to the standard string format.

    Example:
        >>> format_date(datetime(2024, 1, 15))
        '2024-01-15'
    """
    return date_obj.strftime(STANDARD_DATE_FORMAT)


def _expand(value: str, century: int) -> str:
    """Build a YYYY-MM-DD string from YYMMDD, raising ValueError if invalid."""
    if len(value) != 6 or not value.isdigit():
        raise ValueError(f"Not an MRZ date: {value!r}")
    year = century + int(value[0:2])
    return format_date(datetime(year, int(value[2:4]), int(value[4:6])))


# =============================================================================
# MRZ DATES
# =============================================================================

def parse_mrz_date_of_birth(value: str, today: Optional[date] = None) -> str:
    """
    Expand an MRZ birth date (YYMMDD) to YYYY-MM-DD.

    Pivot on the current two-digit year: a YY strictly greater than the
    current YY belongs to the 1900s, anything else to the 2000s. The rule is
    ambiguous over a 100-year window and is kept as-is.

    Args:
        value: Date in YYMMDD format
        today: Reference date for the pivot (defaults to today)

    Returns:
        Date in YYYY-MM-DD format, or ``value`` unchanged if it cannot be parsed
    """
    today = today or date.today()
    try:
        yy = int(value[0:2])
        century = 1900 if yy > today.year % 100 else 2000
        return _expand(value, century)
    except (ValueError, TypeError) as e:
        logger.debug(f"Date of birth parsing failed for {value!r}: {e}")
        return value


def parse_mrz_expiration_date(value: str) -> str:
    """
    Expand an MRZ expiration date (YYMMDD) to YYYY-MM-DD.

    Expirations are always taken to be in the 2000s.

    Returns:
        Date in YYYY-MM-DD format, or ``value`` unchanged if it cannot be parsed
    """
    try:
        return _expand(value, 2000)
    except (ValueError, TypeError) as e:
        logger.debug(f"Expiration date parsing failed for {value!r}: {e}")
        return value
