"""
API request and response models for the portfolio REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
content/models.py, which own the internal domain representation. Route
handlers map between the two.

JSON is camelCase on the wire (emailOrUsername, coverImageUrl, ...). Every
model inherits CamelModel, which generates the aliases and still accepts the
snake_case field names, so Python callers can construct models normally.

Every successful response is wrapped in Envelope[T]:
    {"success": true, "data": ...}
Errors use ErrorResponse (rendered by the exception handlers in api/main.py).
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Annotated, ClassVar, Generic, Optional, TypeVar
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from content.models import About, Experience, Project

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants and reusable field types
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
USERNAME_PATTERN = r"^[a-zA-Z0-9._-]+$"
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


def _check_http_url(value: str) -> str:
    """Accept only absolute http(s) URLs with a host."""
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be a valid http(s) URL")
    return value


HttpUrlStr = Annotated[str, AfterValidator(_check_http_url)]
_Skill = Annotated[str, Field(min_length=1, max_length=50)]
_TechItem = Annotated[str, Field(min_length=1, max_length=50)]
_Tag = Annotated[str, Field(min_length=1, max_length=30)]
_Highlight = Annotated[str, Field(min_length=1, max_length=200)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _PartialUpdate(CamelModel):
    """Base for PATCH/PUT bodies. Fields in not_null_fields may be omitted but never sent as null."""

    not_null_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        for name in self.not_null_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    data: T


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str
    environment: str
    version: str
    database: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(CamelModel):
    """Request body for POST /api/v1/auth/register. Email is normalized to lowercase."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(CamelModel):
    email_or_username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class UserOut(CamelModel):
    id: int
    email: str
    username: str
    roles: list[str] = Field(default_factory=list)
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            roles=user.roles,
            created_at=user.created_at,
        )


class MessageOut(CamelModel):
    message: str


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    user: UserOut


# ---------------------------------------------------------------------------
# Admin: users and roles
# ---------------------------------------------------------------------------


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListOut(CamelModel):
    users: list[UserOut]
    pagination: Pagination


class RoleAssignRequest(CamelModel):
    role_name: str = Field(min_length=1, max_length=50)


# ---------------------------------------------------------------------------
# About
# ---------------------------------------------------------------------------


class AboutCreate(CamelModel):
    headline: str = Field(min_length=1, max_length=120)
    subheadline: Optional[str] = Field(default=None, max_length=160)
    bio: str = Field(min_length=1, max_length=20000)
    avatar_url: Optional[HttpUrlStr] = None
    location: Optional[str] = Field(default=None, max_length=100)
    email_public: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    phone_public: Optional[str] = Field(default=None, min_length=3, max_length=32)
    links: dict[str, HttpUrlStr] = Field(default_factory=dict)
    skills: list[_Skill] = Field(default_factory=list, max_length=100)
    published: bool = False


class AboutUpdate(_PartialUpdate):
    """Partial update: only fields present in the body are written."""

    not_null_fields: ClassVar[tuple[str, ...]] = ("headline", "bio", "links", "skills", "published")

    headline: Optional[str] = Field(default=None, min_length=1, max_length=120)
    subheadline: Optional[str] = Field(default=None, max_length=160)
    bio: Optional[str] = Field(default=None, min_length=1, max_length=20000)
    avatar_url: Optional[HttpUrlStr] = None
    location: Optional[str] = Field(default=None, max_length=100)
    email_public: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    phone_public: Optional[str] = Field(default=None, min_length=3, max_length=32)
    links: Optional[dict[str, HttpUrlStr]] = None
    skills: Optional[list[_Skill]] = Field(default=None, max_length=100)
    published: Optional[bool] = None


class AboutOut(CamelModel):
    id: int
    headline: str
    subheadline: Optional[str] = None
    bio: str
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    email_public: Optional[str] = None
    phone_public: Optional[str] = None
    links: dict[str, str] = Field(default_factory=dict)
    skills: list[str] = Field(default_factory=list)
    published: bool
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_about(cls, about: About) -> "AboutOut":
        return cls.model_validate(about, from_attributes=True)


class AboutListOut(CamelModel):
    about: list[AboutOut]


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectStatus(str, Enum):
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class _DateRangeModel(CamelModel):
    """Rejects an end_date earlier than start_date when both are present."""

    @model_validator(mode="after")
    def check_date_range(self):
        start = getattr(self, "start_date", None)
        end = getattr(self, "end_date", None)
        if start is not None and end is not None and end < start:
            raise ValueError("End date must be greater than or equal to start date")
        return self


class ProjectCreate(_DateRangeModel):
    title: str = Field(min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100, pattern=SLUG_PATTERN)
    summary: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=10000)
    cover_image_url: Optional[HttpUrlStr] = None
    gallery_urls: list[HttpUrlStr] = Field(default_factory=list, max_length=10)
    repo_url: Optional[HttpUrlStr] = None
    live_url: Optional[HttpUrlStr] = None
    video_url: Optional[HttpUrlStr] = None
    links: dict[str, HttpUrlStr] = Field(default_factory=dict)
    tech_stack: list[_TechItem] = Field(default_factory=list, max_length=20)
    tags: list[_Tag] = Field(default_factory=list, max_length=10)
    status: ProjectStatus = ProjectStatus.ONGOING
    featured: bool = False
    order: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    published: bool = False


class ProjectUpdate(_DateRangeModel, _PartialUpdate):
    not_null_fields: ClassVar[tuple[str, ...]] = (
        "title",
        "slug",
        "gallery_urls",
        "links",
        "tech_stack",
        "tags",
        "status",
        "featured",
        "order",
        "published",
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100, pattern=SLUG_PATTERN)
    summary: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=10000)
    cover_image_url: Optional[HttpUrlStr] = None
    gallery_urls: Optional[list[HttpUrlStr]] = Field(default=None, max_length=10)
    repo_url: Optional[HttpUrlStr] = None
    live_url: Optional[HttpUrlStr] = None
    video_url: Optional[HttpUrlStr] = None
    links: Optional[dict[str, HttpUrlStr]] = None
    tech_stack: Optional[list[_TechItem]] = Field(default=None, max_length=20)
    tags: Optional[list[_Tag]] = Field(default=None, max_length=10)
    status: Optional[ProjectStatus] = None
    featured: Optional[bool] = None
    order: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    published: Optional[bool] = None


class ProjectOut(CamelModel):
    id: int
    title: str
    slug: str
    summary: Optional[str] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    gallery_urls: list[str] = Field(default_factory=list)
    repo_url: Optional[str] = None
    live_url: Optional[str] = None
    video_url: Optional[str] = None
    links: dict[str, str] = Field(default_factory=dict)
    tech_stack: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: str
    featured: bool
    order: int
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    published: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_project(cls, project: Project) -> "ProjectOut":
        return cls.model_validate(project, from_attributes=True)


class ProjectPublicList(CamelModel):
    items: list[ProjectOut]
    page: int
    limit: int
    total: int
    total_pages: int


class ProjectAdminList(CamelModel):
    items: list[ProjectOut]
    page: int
    page_size: int
    total: int
    total_pages: int


class PublishRequest(CamelModel):
    published: bool


class ReorderRequest(CamelModel):
    order: int


# ---------------------------------------------------------------------------
# Experiences
# ---------------------------------------------------------------------------


class EmploymentType(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    CONTRACT = "Contract"
    TEMPORARY = "Temporary"
    VOLUNTEER = "Volunteer"
    INTERNSHIP = "Internship"
    FREELANCE = "Freelance"
    SELF_EMPLOYED = "Self-employed"


class ExperienceCreate(_DateRangeModel):
    company: str = Field(min_length=1, max_length=100)
    role: str = Field(min_length=1, max_length=100)
    company_logo_url: Optional[HttpUrlStr] = None
    start_date: date
    end_date: Optional[date] = None
    location: Optional[str] = Field(default=None, max_length=100)
    employment_type: Optional[EmploymentType] = None
    summary: Optional[str] = Field(default=None, max_length=1000)
    highlights: list[_Highlight] = Field(default_factory=list)
    tech_stack: list[_TechItem] = Field(default_factory=list)
    order: int = Field(default=0, ge=0)
    published: bool = True

    @field_validator("company", "role")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("cannot be empty")
        return value


class ExperienceUpdate(_DateRangeModel, _PartialUpdate):
    not_null_fields: ClassVar[tuple[str, ...]] = ("company", "role", "start_date", "highlights", "tech_stack", "order", "published")

    company: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[str] = Field(default=None, min_length=1, max_length=100)
    company_logo_url: Optional[HttpUrlStr] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    location: Optional[str] = Field(default=None, max_length=100)
    employment_type: Optional[EmploymentType] = None
    summary: Optional[str] = Field(default=None, max_length=1000)
    highlights: Optional[list[_Highlight]] = None
    tech_stack: Optional[list[_TechItem]] = None
    order: Optional[int] = Field(default=None, ge=0)
    published: Optional[bool] = None


class ExperienceOut(CamelModel):
    id: int
    company: str
    role: str
    company_logo_url: Optional[str] = None
    start_date: str
    end_date: Optional[str] = None
    location: Optional[str] = None
    employment_type: Optional[str] = None
    summary: Optional[str] = None
    highlights: list[str] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)
    order: int
    published: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_experience(cls, experience: Experience) -> "ExperienceOut":
        return cls.model_validate(experience, from_attributes=True)


class ExperienceList(CamelModel):
    items: list[ExperienceOut]
    page: int
    page_size: int
    total: int
    total_pages: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def slugify(value: str) -> str:
    """Derive a URL slug from a title: lowercase ASCII words joined by hyphens."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:100].rstrip("-") or "project"


def to_domain_fields(model: BaseModel) -> dict:
    """Dump only the fields the client sent, in domain form.

    Enums become their values and dates become YYYY-MM-DD strings, which is
    what the stores persist.
    """
    fields = model.model_dump(exclude_unset=True)
    for name, value in fields.items():
        if isinstance(value, Enum):
            fields[name] = value.value
        elif isinstance(value, date):
            fields[name] = value.isoformat()
    return fields
