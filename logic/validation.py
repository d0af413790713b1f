"""Pydantic schemas for request bodies and the trusted-origin check.

The JSON API speaks camelCase while the code uses snake_case, so every
schema carries a camelCase alias generator and accepts either spelling.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from logic.errors import InvalidRequest
from models.taxonomy import (
    BODY_SHAPES,
    SKIN_TONES,
    normalize_labels,
    normalize_palette,
    validate_body_shape,
    validate_category,
    validate_skin_tone,
    validate_texture,
)


class ApiSchema(BaseModel):
    """Base for request payloads: camelCase aliases, unknown fields rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        protected_namespaces=(),
        str_strip_whitespace=True,
    )


class SyncIdentityRequest(ApiSchema):
    external_subject: str = Field(
        min_length=1, validation_alias=AliasChoices("externalSubject", "firebaseUid", "external_subject")
    )
    email: str = Field(min_length=1)
    name: str = Field(min_length=1)
    photo_url: Optional[str] = None


class ProfileUpdateRequest(ApiSchema):
    """Partial profile update; identity and role fields are not accepted."""

    name: Optional[str] = Field(None, min_length=1)
    age: Optional[int] = Field(None, ge=1, le=120)
    height: Optional[int] = Field(None, ge=50, le=300)
    weight: Optional[int] = Field(None, ge=20, le=500)
    photo_url: Optional[str] = None
    body_shape: Optional[str] = None
    skin_tone: Optional[str] = None
    color_palette: Optional[List[str]] = None

    @field_validator("body_shape")
    @classmethod
    def _body_shape(cls, value: Optional[str]) -> Optional[str]:
        return validate_body_shape(value) if value is not None else None

    @field_validator("skin_tone")
    @classmethod
    def _skin_tone(cls, value: Optional[str]) -> Optional[str]:
        return validate_skin_tone(value) if value is not None else None

    @field_validator("color_palette")
    @classmethod
    def _palette(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return normalize_palette(value)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually sent; a null name is ignored."""

        payload = self.model_dump(exclude_unset=True)
        if payload.get("name", "") is None:
            payload.pop("name")
        return payload


class AnalyzePhotoRequest(ApiSchema):
    photo_url: str = Field(min_length=1)


class GenerateTrialsRequest(ApiSchema):
    model_ids: List[str]
    fabric_ids: List[str]


class AddCartItemRequest(ApiSchema):
    trial_id: str = Field(min_length=1)
    model_id: str = Field(min_length=1)
    fabric_id: str = Field(min_length=1)


class CreateModelRequest(ApiSchema):
    name: str = Field(min_length=1)
    image_url: str = Field(min_length=1)
    category: str
    body_shapes: List[str] = Field(min_length=1)
    description: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _category(cls, value: str) -> str:
        return validate_category(value)

    @field_validator("body_shapes")
    @classmethod
    def _body_shapes(cls, value: List[str]) -> List[str]:
        return normalize_labels(value, BODY_SHAPES, "body shape")


class CreateFabricRequest(ApiSchema):
    name: str = Field(min_length=1)
    image_url: str = Field(min_length=1)
    texture: str
    skin_tones: List[str] = Field(min_length=1)
    price: int = Field(ge=0)
    retailer_id: Optional[str] = None
    description: Optional[str] = None

    @field_validator("texture")
    @classmethod
    def _texture(cls, value: str) -> str:
        return validate_texture(value)

    @field_validator("skin_tones")
    @classmethod
    def _skin_tones(cls, value: List[str]) -> List[str]:
        return normalize_labels(value, SKIN_TONES, "skin tone")


def is_trusted_image_url(url: Optional[str], trusted_origin: str) -> bool:
    """Return True when ``url`` is served from exactly the trusted origin.

    Scheme and host are compared as a whole; a plain prefix test would accept
    hosts such as ``firebasestorage.googleapis.com.attacker.example``.
    """

    if not url:
        return False
    candidate = urlparse(url)
    trusted = urlparse(trusted_origin)
    return (
        candidate.scheme == trusted.scheme
        and candidate.netloc.lower() == trusted.netloc.lower()
        and not candidate.username
        and not candidate.password
    )


def require_trusted_image(url: Optional[str], trusted_origin: str, field: str) -> str:
    if not is_trusted_image_url(url, trusted_origin):
        raise InvalidRequest(
            f"{field} must be served from {trusted_origin}", field=field
        )
    return url  # type: ignore[return-value]


def invalid_request_from(exc: ValidationError) -> InvalidRequest:
    """Translate the first Pydantic error into an InvalidRequest naming its field."""

    return invalid_request_from_errors(exc.errors())


def invalid_request_from_errors(errors: Sequence[Dict[str, Any]]) -> InvalidRequest:
    if not errors:
        return InvalidRequest("Invalid request payload")
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = ".".join(location) or None
    return InvalidRequest(str(first.get("msg", "Invalid value")), field=field)


__all__ = [
    "ApiSchema",
    "SyncIdentityRequest",
    "ProfileUpdateRequest",
    "AnalyzePhotoRequest",
    "GenerateTrialsRequest",
    "AddCartItemRequest",
    "CreateModelRequest",
    "CreateFabricRequest",
    "is_trusted_image_url",
    "require_trusted_image",
    "invalid_request_from",
    "invalid_request_from_errors",
]
