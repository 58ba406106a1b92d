"""
content/models.py -- Domain dataclasses for portfolio content.

These are pure data containers with zero logic. Publishing rules, slug
uniqueness and filtering live in content/store.py and the route layer.

id is None before the record is written to the database. created_at and
updated_at are ISO 8601 UTC strings set by the store.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class About:
    """The "about me" block shown on the public site.

    Several drafts may exist, but at most one is published at any time;
    ContentStore.set_about_published() enforces that.
    """

    headline: str
    bio: str
    subheadline: Optional[str] = None
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    email_public: Optional[str] = None
    phone_public: Optional[str] = None
    links: dict[str, str] = field(default_factory=dict)  # label -> URL
    skills: list[str] = field(default_factory=list)
    published: bool = False
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Project:
    """A portfolio project. slug is unique and addresses the public detail page."""

    title: str
    slug: str
    summary: Optional[str] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    gallery_urls: list[str] = field(default_factory=list)
    repo_url: Optional[str] = None
    live_url: Optional[str] = None
    video_url: Optional[str] = None
    links: dict[str, str] = field(default_factory=dict)
    tech_stack: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    status: str = "ONGOING"  # "ONGOING" | "COMPLETED" | "ARCHIVED"
    featured: bool = False
    order: int = 0
    start_date: Optional[str] = None  # YYYY-MM-DD
    end_date: Optional[str] = None  # YYYY-MM-DD
    published: bool = False
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Experience:
    """A work history entry. end_date None means the position is current."""

    company: str
    role: str
    start_date: str  # YYYY-MM-DD
    end_date: Optional[str] = None
    company_logo_url: Optional[str] = None
    location: Optional[str] = None
    employment_type: Optional[str] = None  # "Full-time" | "Part-time" | "Contract" | ...
    summary: Optional[str] = None
    highlights: list[str] = field(default_factory=list)
    tech_stack: list[str] = field(default_factory=list)
    order: int = 0
    published: bool = True
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
