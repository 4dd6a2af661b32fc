"""
MRZ (Machine Readable Zone) Parser

Parses MRZ lines according to ICAO 9303 into raw fields plus a checksum
verdict. Grammar and check digit validation are delegated to the ``mrz``
package checkers; this module decides the layout, normalizes the fields
and reports each check digit.

Supported formats:
    TD1   3 lines x 30 chars  (ID cards)
    TD2   2 lines x 36 chars  (ID cards, older travel documents)
    TD3   2 lines x 44 chars  (passports)
    MRVA  2 lines x 44 chars  (visa, format A)
    MRVB  2 lines x 36 chars  (visa, format B)

Example (TD3):
    P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<
    L898902C36UTO7408122F1204159ZE184226B<<<<<10

Structure problems (wrong line count/length, characters outside the MRZ
alphabet) raise ``MrzParseError``. Check digit mismatches do not raise:
they are reported through ``valid`` and ``details``.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mrz.base.functions import hash_string
from mrz.checker.mrva import MRVACodeChecker
from mrz.checker.mrvb import MRVBCodeChecker
from mrz.checker.td1 import TD1CodeChecker
from mrz.checker.td2 import TD2CodeChecker
from mrz.checker.td3 import TD3CodeChecker

from utils.exceptions import MrzParseError

logger = logging.getLogger(__name__)

MRZ_LINE_PATTERN = re.compile(r"^[A-Z0-9<]+$")

SEX_CODES = {"M": "male", "F": "female", "<": "nonspecified", "X": "nonspecified"}

CHECKERS = {
    "TD1": TD1CodeChecker,
    "TD2": TD2CodeChecker,
    "TD3": TD3CodeChecker,
    "MRVA": MRVACodeChecker,
    "MRVB": MRVBCodeChecker,
}


@dataclass
class MrzParseResult:
    """Outcome of a successful parse (valid or not)."""
    format: str
    valid: bool
    fields: Dict[str, Any]
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "valid": self.valid,
            "fields": dict(self.fields),
            "details": [dict(d) for d in self.details],
        }


def calculate_check_digit(data: str) -> str:
    """
    Calculate MRZ check digit according to ICAO 9303.

    Weighting: 7, 3, 1, 7, 3, 1, ...
    Character values: 0-9 = 0-9, A-Z = 10-35, < = 0
    """
    return hash_string(data.upper())


def validate_check_digit(data: str, check_digit: str) -> bool:
    """
    Validate MRZ check digit.

    A "<" check digit is accepted for an all-filler (empty) field.
    """
    if check_digit == "<":
        return set(data) <= {"<"}
    return calculate_check_digit(data) == check_digit


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip fillers; empty fields become None."""
    cleaned = (value or "").replace("<", " ").strip()
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned or None


def _mrz_text(value: Optional[str]) -> str:
    """Checker field value back in MRZ alphabet (spaces become fillers)."""
    return (value or "").strip().replace(" ", "<")


def _check_char(value: Optional[str]) -> str:
    return (value or "").strip() or "<"


def _composite(format_name: str, lines: List[str]) -> Optional[tuple]:
    """Data and check digit of the composite check, None for visas."""
    if format_name == "TD1":
        line1, line2, _ = lines
        return line1[5:30] + line2[0:7] + line2[8:15] + line2[18:29], line2[29]
    if format_name in ("TD2", "TD3"):
        line2 = lines[1]
        return line2[0:10] + line2[13:20] + line2[21:-1], line2[-1]
    return None


def _check_details(format_name: str, lines: List[str], parsed) -> List[Dict[str, Any]]:
    """One entry per check digit in the MRZ."""
    checks = [
        ("document_number", parsed.document_number, parsed.document_number_hash),
        ("birth_date", parsed.birth_date, parsed.birth_date_hash),
        ("expiration_date", parsed.expiry_date, parsed.expiry_date_hash),
    ]
    if format_name == "TD3":
        checks.append(("personal_number", parsed.optional_data, getattr(parsed, "optional_data_hash", None)))

    details = []
    for name, value, check_digit in checks:
        data, digit = _mrz_text(value), _check_char(check_digit)
        details.append({
            "field": name,
            "value": data,
            "check_digit": digit,
            "valid": validate_check_digit(data, digit),
        })

    composite = _composite(format_name, lines)
    if composite is not None:
        data, digit = composite
        details.append({
            "field": "composite",
            "value": data,
            "check_digit": digit,
            "valid": validate_check_digit(data, digit),
        })
    return details


def _fields(format_name: str, lines: List[str], parsed) -> Dict[str, Any]:
    """Normalize checker fields: fillers stripped, empty values None."""
    sex = _clean(parsed.sex) or "<"
    fields = {
        "document_code": _clean(parsed.document_type),
        "issuing_state": _clean(parsed.country),
        "document_number": _clean(parsed.document_number),
        "document_number_check_digit": _check_char(parsed.document_number_hash),
        "nationality": _clean(parsed.nationality),
        "birth_date": _mrz_text(parsed.birth_date),
        "birth_date_check_digit": _check_char(parsed.birth_date_hash),
        "sex": SEX_CODES.get(sex),
        "expiration_date": _mrz_text(parsed.expiry_date),
        "expiration_date_check_digit": _check_char(parsed.expiry_date_hash),
        "last_name": _clean(parsed.surname),
        "first_name": _clean(parsed.name),
    }

    if format_name == "TD3":
        fields["personal_number"] = _clean(parsed.optional_data)
        fields["personal_number_check_digit"] = _check_char(getattr(parsed, "optional_data_hash", None))
    else:
        fields["optional_data"] = _clean(parsed.optional_data)
    if format_name == "TD1":
        fields["optional_data_2"] = _clean(getattr(parsed, "optional_data_2", None))

    composite = _composite(format_name, lines)
    if composite is not None:
        fields["composite_check_digit"] = composite[1]
    return fields


def detect_format(lines: List[str]) -> str:
    """
    Identify the MRZ format from the shape of the lines.

    Raises:
        MrzParseError: If the shape matches no supported format
    """
    lengths = [len(line) for line in lines]
    is_visa = bool(lines) and lines[0].startswith("V")

    if len(lines) == 3 and lengths == [30, 30, 30]:
        return "TD1"
    if len(lines) == 2 and lengths == [36, 36]:
        return "MRVB" if is_visa else "TD2"
    if len(lines) == 2 and lengths == [44, 44]:
        return "MRVA" if is_visa else "TD3"

    raise MrzParseError(
        error=f"Unsupported MRZ shape: {len(lines)} line(s) of length {lengths}",
        details={"line_lengths": lengths},
    )


def parse_mrz(lines: List[str]) -> MrzParseResult:
    """
    Parse MRZ lines into fields and a checksum verdict.

    Pure function: the same input always yields the same result.

    Args:
        lines: MRZ lines, top to bottom

    Returns:
        MrzParseResult (``valid`` is the checker's verdict, False on any
        check digit mismatch)

    Raises:
        MrzParseError: If the lines are not a well-formed MRZ
    """
    lines = [line.strip().upper() for line in (lines or []) if line and line.strip()]
    if not lines:
        raise MrzParseError(error="No MRZ lines")

    for index, line in enumerate(lines):
        if not MRZ_LINE_PATTERN.match(line):
            raise MrzParseError(error=f"Invalid characters in MRZ line {index + 1}")

    format_name = detect_format(lines)
    try:
        checker = CHECKERS[format_name]("\n".join(lines))
        parsed = checker.fields()
    except Exception as e:
        logger.warning(f"{format_name} checker rejected MRZ: {e}")
        raise MrzParseError(error=str(e), details={"format": format_name}) from e

    return MrzParseResult(
        format_name,
        bool(checker.result),
        _fields(format_name, lines, parsed),
        _check_details(format_name, lines, parsed),
    )


def extract_mrz_lines(text_lines: List[str]) -> Optional[List[str]]:
    """
    Pick the MRZ lines out of noisy OCR output.

    Looks for 3 consecutive 30-char lines or 2 consecutive 44/36-char lines
    made only of MRZ characters.

    Returns:
        The MRZ lines, or None if not found
    """
    cleaned = [line.strip().upper().replace(" ", "") for line in text_lines]

    for i in range(len(cleaned) - 2):
        window = cleaned[i:i + 3]
        if all(len(line) == 30 and MRZ_LINE_PATTERN.match(line) for line in window):
            return window

    for length in (44, 36):
        for i in range(len(cleaned) - 1):
            window = cleaned[i:i + 2]
            if all(len(line) == length and MRZ_LINE_PATTERN.match(line) for line in window):
                return window

    return None
