"""
Domain Format Validators

Format rules the engine enforces at the domain level, independent of any
request-layer validation: Mexican tax identifiers (RFC, CURP), bank CLABE,
property deed and registry folio numbers, contact formats.

Also holds the spouse-consent rule shared by joint obligors and avals.
"""

from __future__ import annotations

import re
from typing import Final, Optional


# =============================================================================
# Patterns
# =============================================================================

# Mexican RFC: 3 letters (company) or 4 letters (person), date, homoclave
RFC_PATTERN: Final = re.compile(r"^[A-ZÑ&]{3,4}\d{6}[A-Z\d]{3}$")

# Mexican CURP: 18 characters
CURP_PATTERN: Final = re.compile(r"^[A-Z]{4}\d{6}[HM][A-Z]{5}[0-9A-Z]\d$")

# CLABE interbank account number: exactly 18 digits
CLABE_PATTERN: Final = re.compile(r"^\d{18}$")

# Property deed number, e.g. "12345" or "12345-2024"
PROPERTY_DEED_PATTERN: Final = re.compile(r"^\d{1,10}(-\d{4})?$")

# Registry folio, e.g. "F123456789"
REGISTRY_FOLIO_PATTERN: Final = re.compile(r"^[A-Z]?\d{1,10}$")

EMAIL_PATTERN: Final = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# Validation Helpers
# =============================================================================


def is_valid_rfc(rfc: Optional[str]) -> bool:
    """Validate RFC format (case-insensitive)."""
    if not rfc:
        return False
    return bool(RFC_PATTERN.match(rfc.strip().upper()))


def is_valid_curp(curp: Optional[str]) -> bool:
    """Validate CURP format (case-insensitive)."""
    if not curp:
        return False
    return bool(CURP_PATTERN.match(curp.strip().upper()))


def is_valid_clabe(clabe: Optional[str]) -> bool:
    """Validate CLABE is exactly 18 digits."""
    if not clabe:
        return False
    return bool(CLABE_PATTERN.match(clabe.strip()))


def is_valid_property_deed(deed_number: Optional[str]) -> bool:
    """Validate property deed number format."""
    if not deed_number:
        return False
    return bool(PROPERTY_DEED_PATTERN.match(deed_number.strip()))


def is_valid_registry_folio(folio: Optional[str]) -> bool:
    """Validate registry folio format."""
    if not folio:
        return False
    return bool(REGISTRY_FOLIO_PATTERN.match(folio.strip().upper()))


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def is_valid_phone(phone: Optional[str]) -> bool:
    """
    Validate a Mexican phone number.

    Separators are ignored: 10 digits, or 12 digits starting with the
    52 country code.
    """
    if not phone:
        return False
    digits = re.sub(r"\D", "", phone)
    return len(digits) == 10 or (len(digits) == 12 and digits.startswith("52"))


# =============================================================================
# Marriage Rules
# =============================================================================


def requires_spouse_consent(
    nationality: Optional[str],
    marital_status: Optional[str],
    marriage_regime: Optional[str],
    has_property_guarantee: bool,
) -> bool:
    """
    Determine whether a guarantor's spouse must consent to the guarantee.

    Only property guarantees need consent. Mexican nationals need it when
    married under conjugal partnership; foreign nationals whenever married.
    """
    if not has_property_guarantee:
        return False

    if nationality == "MEXICAN":
        return marital_status == "married_joint" and marriage_regime == "conjugal_partnership"

    return marital_status in ("married", "married_joint")


def is_marriage_info_complete(marital_status: Optional[str], marriage_regime: Optional[str]) -> bool:
    """Married guarantors must declare their marriage regime."""
    if marital_status not in ("married", "married_joint"):
        return True
    return bool(marriage_regime)
