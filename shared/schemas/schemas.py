"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the directory.
Request models strip whitespace and carry the documented defaults, so
handlers only ever see validated, trimmed values.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic import ValidationError as PydanticValidationError

from shared.exceptions import ValidationError
from shared.models.models import UserRole


def image_path(reference: str) -> str:
    return f"/image/{reference}"


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class RequestSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


RequestT = TypeVar("RequestT", bound=RequestSchema)


# ── Auth / User ───────────────────────────────────────────────

class SignupRequest(RequestSchema):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)
    display_name: Optional[str] = Field(None, max_length=100)


class LoginRequest(RequestSchema):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(BaseSchema):
    id: uuid.UUID
    username: str
    display_name: str
    role: UserRole


class AuthUserResponse(BaseSchema):
    """`user` is null when nobody is logged in."""
    message: Optional[str] = None
    user: Optional[UserResponse] = None


class SavedToggleResponse(BaseSchema):
    message: str
    action: str  # "saved" | "removed"
    saved_services: List[uuid.UUID]


# ── Service ───────────────────────────────────────────────────

class ServiceCreateRequest(RequestSchema):
    name: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., min_length=1, max_length=20)
    address: str = Field(..., min_length=1, max_length=1000)

    @field_validator("category")
    @classmethod
    def blank_category_is_unset(cls, v: Optional[str]) -> Optional[str]:
        # Falls back to settings.DEFAULT_CATEGORY in the lifecycle manager
        return v or None


class ServiceDeleteRequest(RequestSchema):
    code: Optional[str] = Field(None, max_length=64)


class ServiceResponse(BaseSchema):
    id: uuid.UUID
    name: str
    category: str
    city: str
    pincode: str
    address: str
    image_reference: str
    average_rating: float
    rating_count: int
    review_count: int
    is_approved: bool
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def image_url(self) -> Optional[str]:
        return image_path(self.image_reference) if self.image_reference else None


class ServiceCreatedResponse(BaseSchema):
    message: str = "Service created"
    service: ServiceResponse
    # Shown exactly once; keep it safe, it is required to delete the listing
    delete_code: str


class CategoryCount(BaseSchema):
    category: str
    count: int


# ── Review ────────────────────────────────────────────────────

class ReviewCreateRequest(RequestSchema):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=2000)
    username: str = Field("Anonymous", max_length=100)

    @field_validator("username")
    @classmethod
    def blank_username_is_anonymous(cls, v: str) -> str:
        return v or "Anonymous"


class ReviewResponse(BaseSchema):
    id: uuid.UUID
    service_id: uuid.UUID
    username: str
    rating: int
    comment: str
    image_references: List[str]
    created_at: datetime

    @computed_field
    @property
    def image_urls(self) -> List[str]:
        return [image_path(ref) for ref in self.image_references]


class RatingStatsResponse(BaseSchema):
    average_rating: float
    rating_count: int
    review_count: int


class ReviewCreatedResponse(BaseSchema):
    message: str = "Review created"
    review: ReviewResponse
    service: ServiceResponse
    stats: RatingStatsResponse


# ── Admin ─────────────────────────────────────────────────────

class RecomputeResponse(BaseSchema):
    recomputed: int


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    detail: str
    errors: Optional[List[dict]] = None
    request_id: Optional[str] = None


# ── Form parsing ──────────────────────────────────────────────

def validate_request(model: Type[RequestT], **fields: Any) -> RequestT:
    """
    Build a request model from optional form fields, dropping the unset ones so
    model defaults apply. Pydantic failures become a 400 with field-level errors.
    """
    try:
        return model.model_validate({k: v for k, v in fields.items() if v is not None})
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]) or "body", "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError(errors[0]["message"] if errors else None, errors=errors) from e
