import re

from orgtree.exceptions import ErrorCode, ValidationError

# GSTIN: 2-digit state code, PAN (5 letters, 4 digits, 1 letter), entity
# number, literal "Z", check character.
TAX_ID_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")

MIN_NAME_LENGTH = 2


def is_valid_tax_id(tax_id: str) -> bool:
    return bool(TAX_ID_PATTERN.match(tax_id))


def validate_organization_name(name: str | None) -> str:
    """Return the stripped name, or raise ValidationError when it is too short."""
    cleaned = (name or "").strip()
    if len(cleaned) < MIN_NAME_LENGTH:
        raise ValidationError(
            f"Organization name must be at least {MIN_NAME_LENGTH} characters",
            field="name",
            error_code=ErrorCode.VALIDATION_INVALID_NAME,
        )
    return cleaned


def validate_tax_id(tax_id: str | None) -> str | None:
    """Empty tax ids are treated as absent; anything else must match the GSTIN format."""
    if not tax_id:
        return None
    if not is_valid_tax_id(tax_id):
        raise ValidationError(
            "Invalid tax id format",
            field="tax_id",
            error_code=ErrorCode.VALIDATION_INVALID_TAX_ID,
            details={"value": tax_id},
        )
    return tax_id
