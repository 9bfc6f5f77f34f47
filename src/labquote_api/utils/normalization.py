"""
Text normalization shared by the mapping registry, the catalog and the seed loader.

Canonical test names are compared through ``normalize_canonical_name`` so that
"Glycémie à jeun", "GLYCEMIE A JEUN" and "glycemie  a jeun" are recognised as
the same test concept.
"""
import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_LAB_CODE_RE = re.compile(r"^[A-Z0-9_-]{2,20}$")


def normalize_token(value: str | None) -> str | None:
    """
    Normalize a token to lowercase and stripped form.

    Used for case-insensitive matching of lab test codes.

    Examples:
        >>> normalize_token("  NFS  ")
        'nfs'
        >>> normalize_token("  ") is None
        True
    """
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def strip_diacritics(value: str) -> str:
    """
    Remove combining marks after NFKD decomposition.

    Examples:
        >>> strip_diacritics("Glycémie à jeun")
        'Glycemie a jeun'
    """
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_canonical_name(value: str | None) -> str:
    """
    Build the comparison key of a canonical test name.

    Case-folds, strips diacritics and collapses internal whitespace. Returns an
    empty string for blank input so callers can reject it.

    Examples:
        >>> normalize_canonical_name("  Bilan   LIPIDIQUE ")
        'bilan lipidique'
        >>> normalize_canonical_name("Hémoglobine glyquée")
        'hemoglobine glyquee'
    """
    if value is None:
        return ""
    folded = strip_diacritics(value).casefold()
    return _WHITESPACE_RE.sub(" ", folded).strip()


def clean_display_name(value: str) -> str:
    """Trim and collapse whitespace while keeping case and accents."""
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_lab_code(value: str) -> str:
    """
    Normalize and validate a laboratory code.

    Raises:
        ValueError: If the code is not 2-20 characters of A-Z, 0-9, '-' or '_'

    Examples:
        >>> normalize_lab_code(" cdl-01 ")
        'CDL-01'
    """
    normalized = value.strip().upper()
    if not _LAB_CODE_RE.match(normalized):
        raise ValueError(
            "Laboratory code must be 2-20 characters of A-Z, 0-9, hyphens or underscores"
        )
    return normalized


__all__ = [
    "clean_display_name",
    "normalize_canonical_name",
    "normalize_lab_code",
    "normalize_token",
    "strip_diacritics",
]
