"""Canonical labels for profiles, catalog items and record states.

Body shapes and skin tones describe a user's profile; catalog models and
fabrics declare which of them they suit. Helper functions keep validation
consistent between request schemas, the profile analyzer and the catalog
filter.
"""

from typing import Iterable, List, Optional

BODY_SHAPES = ["hourglass", "pear", "apple", "rectangle", "inverted-triangle"]
SKIN_TONES = ["fair", "light", "medium", "olive", "tan", "deep"]
MODEL_CATEGORIES = ["casual", "formal", "ethnic", "party", "sportswear"]
FABRIC_TEXTURES = ["cotton", "silk", "wool", "denim", "linen", "polyester", "chiffon", "velvet"]

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = [ROLE_USER, ROLE_ADMIN]

TRIAL_PENDING = "pending"
TRIAL_COMPLETED = "completed"
TRIAL_FAILED = "failed"
TRIAL_STATUSES = [TRIAL_PENDING, TRIAL_COMPLETED, TRIAL_FAILED]
TRIAL_TERMINAL_STATUSES = {TRIAL_COMPLETED, TRIAL_FAILED}

ORDER_PENDING = "pending"
ORDER_COMPLETED = "completed"


def normalize_label(value: str) -> str:
    """Normalise a free-form label into the canonical lower-case form."""

    return str(value).strip().lower().replace("_", "-")


def _validate(value: str, allowed: List[str], kind: str) -> str:
    key = normalize_label(value)
    if key not in allowed:
        raise ValueError(f"Unsupported {kind} '{value}'. Allowed: {allowed}")
    return key


def validate_body_shape(value: str) -> str:
    return _validate(value, BODY_SHAPES, "body shape")


def validate_skin_tone(value: str) -> str:
    return _validate(value, SKIN_TONES, "skin tone")


def validate_category(value: str) -> str:
    return _validate(value, MODEL_CATEGORIES, "category")


def validate_texture(value: str) -> str:
    return _validate(value, FABRIC_TEXTURES, "texture")


def normalize_labels(values: Iterable[str], allowed: List[str], kind: str) -> List[str]:
    """Validate a collection of labels, dropping duplicates but keeping order."""

    result: List[str] = []
    for value in values:
        key = _validate(value, allowed, kind)
        if key not in result:
            result.append(key)
    return result


def normalize_palette(values: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Trim colour names and drop blanks; the palette order is meaningful."""

    if values is None:
        return None
    return [str(value).strip() for value in values if str(value).strip()]


__all__ = [
    "BODY_SHAPES",
    "SKIN_TONES",
    "MODEL_CATEGORIES",
    "FABRIC_TEXTURES",
    "ROLE_USER",
    "ROLE_ADMIN",
    "ROLES",
    "TRIAL_PENDING",
    "TRIAL_COMPLETED",
    "TRIAL_FAILED",
    "TRIAL_STATUSES",
    "TRIAL_TERMINAL_STATUSES",
    "ORDER_PENDING",
    "ORDER_COMPLETED",
    "normalize_label",
    "normalize_labels",
    "normalize_palette",
    "validate_body_shape",
    "validate_skin_tone",
    "validate_category",
    "validate_texture",
]
