"""
MRZ Result Assembler

Maps parsed MRZ fields to the response schema and decides what happens to
the request's document image:

- Something identifying was read (first name, last name or document
  number): the image is renamed to a human-auditable name and kept.
- Nothing identifying, or the rename failed: the image is deleted.

Exactly one of the two happens per request.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from services.mrz_parser import MrzParseResult
from services.temp_files import TempImageGuard
from utils.date_utils import parse_mrz_date_of_birth, parse_mrz_expiration_date
from utils.image_manager import generate_passport_filename

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_REASON = "Insufficient data for renaming"
UNKNOWN_FILENAME = "unknown"


def _capitalize(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value[0].upper() + value[1:]


def build_mrz_record(parsed: MrzParseResult) -> Dict[str, Any]:
    """Public MRZ record (camelCase keys, ISO dates or None)."""
    fields = parsed.fields
    birth_date = fields.get("birth_date")
    expiration_date = fields.get("expiration_date")
    return {
        "format": parsed.format,
        "valid": parsed.valid,
        "documentNumber": fields.get("document_number") or None,
        "firstName": fields.get("first_name") or None,
        "lastName": fields.get("last_name") or None,
        "sex": _capitalize(fields.get("sex")),
        "nationality": fields.get("nationality") or None,
        "issuingState": fields.get("issuing_state") or None,
        "birthDate": parse_mrz_date_of_birth(birth_date) if birth_date else None,
        "expirationDate": parse_mrz_expiration_date(expiration_date) if expiration_date else None,
    }


def has_identity(record: Dict[str, Any]) -> bool:
    return any(record.get(key) for key in ("firstName", "lastName", "documentNumber"))


def retain_image(record: Dict[str, Any], guard: TempImageGuard, directory: Path) -> Dict[str, Any]:
    """
    Apply the retention policy to the guard's image and describe the outcome.

    Returns:
        imageInfo dict: originalFilename, newFilename, imagePath, renamed,
        plus renameError or reason when the image was not kept
    """
    original = guard.original.filename if guard.original else UNKNOWN_FILENAME
    current = guard.current
    info: Dict[str, Any] = {
        "originalFilename": original,
        "newFilename": None,
        "imagePath": None,
        "renamed": False,
    }

    if current is None:
        info["reason"] = "No image to retain"
        return info

    if not has_identity(record):
        guard.discard()
        logger.info("Cleaned up temporary file")
        info["reason"] = INSUFFICIENT_DATA_REASON
        return info

    new_filename = generate_passport_filename(record, current.path.suffix)
    try:
        new_path = guard.rename_to(Path(directory) / new_filename)
    except OSError as e:
        logger.error(f"Failed to rename image: {e}")
        guard.discard()
        info["renameError"] = str(e)
        return info

    info.update({
        "newFilename": new_filename,
        "imagePath": str(new_path),
        "renamed": True,
    })
    return info


def assemble_identification(
    parsed: MrzParseResult,
    guard: TempImageGuard,
    directory: Path,
    include_origin: bool = False,
) -> Dict[str, Any]:
    """
    Build the IdentificationResult for a parsed MRZ.

    Args:
        parsed: Parser output
        guard: Owner of the request's document image
        directory: Directory retained images are renamed into
        include_origin: Attach the raw parser fields as ``origin``

    Returns:
        MRZ record plus ``imageInfo`` (and ``origin`` when requested)
    """
    result = build_mrz_record(parsed)
    result["imageInfo"] = retain_image(result, guard, directory)
    if include_origin:
        result["origin"] = dict(parsed.fields)
    return result
