"""
content/store.py -- SQLAlchemy-backed persistence layer for portfolio content.

Uses SQLAlchemy Core (not ORM) so the dataclasses in content/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. ContentStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route handlers
never touch SQL directly.

List and dict fields (skills, tags, tech_stack, links, ...) are stored as JSON
text. Tag and tech filters match the JSON-encoded element ('"react"') inside
that text, which is exact per element and needs no JSON1 extension.

Publishing invariant: at most one About row has published = 1.
set_about_published() unpublishes every sibling in the same transaction that
publishes the target.

Security: all queries use bound parameters. Sort columns come from fixed
whitelists, never from raw user input.

Usage:
    store = ContentStore("sqlite:///portfolio.db")
    pid = store.create_project(Project(title="Site", slug="site"))
    items, total = store.list_projects(published_only=True, tag="python")
    store.close()
"""

import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from content.models import About, Experience, Project

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_about = Table(
    "about",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("headline", String(120), nullable=False),
    Column("subheadline", String(160)),
    Column("bio", Text, nullable=False),
    Column("avatar_url", Text),
    Column("location", String(100)),
    Column("email_public", String(255)),
    Column("phone_public", String(32)),
    Column("links", Text),  # JSON object
    Column("skills", Text),  # JSON array
    Column("published", Integer, nullable=False, server_default="0"),
    Column("created_by", Integer),
    Column("updated_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(100), nullable=False),
    Column("slug", String(100), nullable=False, unique=True),
    Column("summary", String(500)),
    Column("description", Text),
    Column("cover_image_url", Text),
    Column("gallery_urls", Text),  # JSON array
    Column("repo_url", Text),
    Column("live_url", Text),
    Column("video_url", Text),
    Column("links", Text),  # JSON object
    Column("tech_stack", Text),  # JSON array
    Column("tags", Text),  # JSON array
    Column("status", String(20), nullable=False, server_default="ONGOING"),
    Column("featured", Integer, nullable=False, server_default="0"),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("start_date", String(10)),  # YYYY-MM-DD
    Column("end_date", String(10)),
    Column("published", Integer, nullable=False, server_default="0"),
    Column("created_by", Integer),
    Column("updated_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_experiences = Table(
    "experiences",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("company", String(100), nullable=False),
    Column("role", String(100), nullable=False),
    Column("company_logo_url", Text),
    Column("start_date", String(10), nullable=False),
    Column("end_date", String(10)),
    Column("location", String(100)),
    Column("employment_type", String(30)),
    Column("summary", String(1000)),
    Column("highlights", Text),  # JSON array
    Column("tech_stack", Text),  # JSON array
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("published", Integer, nullable=False, server_default="1"),
    Column("created_by", Integer),
    Column("updated_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_JSON_FIELDS = {"links", "skills", "gallery_urls", "tech_stack", "tags", "highlights"}
_BOOL_FIELDS = {"published", "featured"}

# Sort whitelists: field name (domain) -> column.
PROJECT_SORT_COLUMNS = {
    "title": _projects.c.title,
    "status": _projects.c.status,
    "featured": _projects.c.featured,
    "order": _projects.c.sort_order,
    "start_date": _projects.c.start_date,
    "end_date": _projects.c.end_date,
    "created_at": _projects.c.created_at,
    "updated_at": _projects.c.updated_at,
}

EXPERIENCE_SORT_COLUMNS = {
    "company": _experiences.c.company,
    "role": _experiences.c.role,
    "order": _experiences.c.sort_order,
    "start_date": _experiences.c.start_date,
    "end_date": _experiences.c.end_date,
    "created_at": _experiences.c.created_at,
    "updated_at": _experiences.c.updated_at,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _to_columns(fields: dict) -> dict:
    """Translate domain field values into column values.

    JSON-encodes list/dict fields, stores booleans as 0/1, and renames
    order -> sort_order. Audit and id fields are dropped; the store owns them.
    """
    values: dict = {}
    for name, value in fields.items():
        if name in ("id", "created_at", "updated_at"):
            continue
        if name in _JSON_FIELDS:
            value = json.dumps(value if value is not None else ([] if name != "links" else {}))
        elif name in _BOOL_FIELDS:
            value = 1 if value else 0
        if name == "order":
            name = "sort_order"
        values[name] = value
    return values


def _json_list_contains(column, item: str):
    """Exact element match against a JSON-encoded array column."""
    return column.contains(json.dumps(item), autoescape=True)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ContentStore:
    """Repository for About, Project and Experience entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    def _insert(self, table: Table, entity) -> int:
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(table.insert().values(**_to_columns(asdict(entity)), created_at=now, updated_at=now))
            conn.commit()
            return result.inserted_primary_key[0]

    def _update(self, table: Table, entity_id: int, fields: dict) -> bool:
        """Apply a partial update and bump updated_at. Returns False if id not found."""
        values = _to_columns(fields)
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(table.update().where(table.c.id == entity_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def _delete(self, table: Table, entity_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(table.delete().where(table.c.id == entity_id))
            conn.commit()
        return result.rowcount > 0

    def _get(self, table: Table, entity_id: int):
        with self.engine.connect() as conn:
            return conn.execute(table.select().where(table.c.id == entity_id)).fetchone()

    def _page(self, table: Table, conditions: list, order_by: list, offset: int, limit: int) -> tuple[list, int]:
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(table).where(*conditions)).scalar() or 0
            rows = conn.execute(
                table.select().where(*conditions).order_by(*order_by).offset(offset).limit(limit)
            ).fetchall()
        return rows, total

    # ------------------------------------------------------------------
    # About
    # ------------------------------------------------------------------

    def create_about(self, about: About) -> int:
        return self._insert(_about, about)

    def get_about(self, about_id: int) -> Optional[About]:
        row = self._get(_about, about_id)
        return _row_to_about(row) if row is not None else None

    def update_about(self, about_id: int, **fields) -> bool:
        return self._update(_about, about_id, fields)

    def delete_about(self, about_id: int) -> bool:
        return self._delete(_about, about_id)

    def list_about(self) -> list[About]:
        """All About entries, most recently updated first (admin view)."""
        with self.engine.connect() as conn:
            rows = conn.execute(_about.select().order_by(_about.c.updated_at.desc(), _about.c.id.desc())).fetchall()
        return [_row_to_about(r) for r in rows]

    def get_latest_about(self) -> Optional[About]:
        """Most recently updated About, published or not. Target of the admin upsert."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _about.select().order_by(_about.c.updated_at.desc(), _about.c.id.desc()).limit(1)
            ).fetchone()
        return _row_to_about(row) if row is not None else None

    def get_published_about(self) -> Optional[About]:
        """The public About: most recently updated published entry, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _about.select()
                .where(_about.c.published == 1)
                .order_by(_about.c.updated_at.desc(), _about.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_about(row) if row is not None else None

    def set_about_published(self, about_id: int, published: bool, user_id: Optional[int] = None) -> bool:
        """Publish or unpublish one About entry.

        Publishing unpublishes every other entry in the same transaction, so
        readers never observe two published rows. Returns False if about_id
        does not exist.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            exists = conn.execute(select(_about.c.id).where(_about.c.id == about_id)).fetchone()
            if exists is None:
                return False
            if published:
                conn.execute(
                    _about.update()
                    .where((_about.c.id != about_id) & (_about.c.published == 1))
                    .values(published=0, updated_at=now)
                )
            conn.execute(
                _about.update()
                .where(_about.c.id == about_id)
                .values(published=1 if published else 0, updated_by=user_id, updated_at=now)
            )
        return True

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        """Insert a project. Raises sqlalchemy.exc.IntegrityError on a duplicate slug."""
        return self._insert(_projects, project)

    def get_project(self, project_id: int) -> Optional[Project]:
        row = self._get(_projects, project_id)
        return _row_to_project(row) if row is not None else None

    def get_project_by_slug(self, slug: str, published_only: bool = False) -> Optional[Project]:
        query = _projects.select().where(_projects.c.slug == slug)
        if published_only:
            query = query.where(_projects.c.published == 1)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_project(row) if row is not None else None

    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = select(_projects.c.id).where(_projects.c.slug == slug)
        if exclude_id is not None:
            query = query.where(_projects.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).fetchone() is not None

    def update_project(self, project_id: int, **fields) -> bool:
        return self._update(_projects, project_id, fields)

    def delete_project(self, project_id: int) -> bool:
        return self._delete(_projects, project_id)

    def list_projects(
        self,
        *,
        published_only: bool = False,
        published: Optional[bool] = None,
        q: Optional[str] = None,
        title: Optional[str] = None,
        tag: Optional[str] = None,
        tech: Optional[str] = None,
        status: Optional[str] = None,
        featured: Optional[bool] = None,
        sort: str = "updated_at",
        descending: bool = True,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Project], int]:
        """Filtered, sorted, paginated project listing. Returns (page, total).

        q matches title or summary, title matches title only; both are
        case-insensitive substring matches. sort must be a PROJECT_SORT_COLUMNS
        key; ties break on id so pagination is stable.
        """
        conditions = []
        if published_only:
            conditions.append(_projects.c.published == 1)
        elif published is not None:
            conditions.append(_projects.c.published == (1 if published else 0))
        if q:
            conditions.append(
                _projects.c.title.icontains(q, autoescape=True) | _projects.c.summary.icontains(q, autoescape=True)
            )
        if title:
            conditions.append(_projects.c.title.icontains(title, autoescape=True))
        if tag:
            conditions.append(_json_list_contains(_projects.c.tags, tag))
        if tech:
            conditions.append(_json_list_contains(_projects.c.tech_stack, tech))
        if status:
            conditions.append(_projects.c.status == status)
        if featured is not None:
            conditions.append(_projects.c.featured == (1 if featured else 0))

        column = PROJECT_SORT_COLUMNS[sort]
        order_by = [column.desc(), _projects.c.id.desc()] if descending else [column.asc(), _projects.c.id.asc()]
        rows, total = self._page(_projects, conditions, order_by, offset, limit)
        return [_row_to_project(r) for r in rows], total

    # ------------------------------------------------------------------
    # Experiences
    # ------------------------------------------------------------------

    def create_experience(self, experience: Experience) -> int:
        return self._insert(_experiences, experience)

    def get_experience(self, experience_id: int, published_only: bool = False) -> Optional[Experience]:
        row = self._get(_experiences, experience_id)
        if row is None or (published_only and not row.published):
            return None
        return _row_to_experience(row)

    def update_experience(self, experience_id: int, **fields) -> bool:
        return self._update(_experiences, experience_id, fields)

    def delete_experience(self, experience_id: int) -> bool:
        return self._delete(_experiences, experience_id)

    def list_experiences(
        self,
        *,
        published_only: bool = False,
        published: Optional[bool] = None,
        current: Optional[bool] = None,
        company: Optional[str] = None,
        role: Optional[str] = None,
        sort: str = "start_date",
        descending: bool = True,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Experience], int]:
        """Filtered, sorted, paginated experience listing. Returns (page, total).

        current=True keeps only open-ended positions (end_date IS NULL);
        current=False keeps only finished ones.
        """
        conditions = []
        if published_only:
            conditions.append(_experiences.c.published == 1)
        elif published is not None:
            conditions.append(_experiences.c.published == (1 if published else 0))
        if current is True:
            conditions.append(_experiences.c.end_date.is_(None))
        elif current is False:
            conditions.append(_experiences.c.end_date.is_not(None))
        if company:
            conditions.append(_experiences.c.company.icontains(company, autoescape=True))
        if role:
            conditions.append(_experiences.c.role.icontains(role, autoescape=True))

        column = EXPERIENCE_SORT_COLUMNS[sort]
        order_by = [column.desc(), _experiences.c.id.desc()] if descending else [column.asc(), _experiences.c.id.asc()]
        rows, total = self._page(_experiences, conditions, order_by, offset, limit)
        return [_row_to_experience(r) for r in rows], total

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _loads(raw: Optional[str], default):
    return json.loads(raw) if raw else default


def _row_to_about(row) -> About:
    return About(
        id=row.id,
        headline=row.headline,
        subheadline=row.subheadline,
        bio=row.bio,
        avatar_url=row.avatar_url,
        location=row.location,
        email_public=row.email_public,
        phone_public=row.phone_public,
        links=_loads(row.links, {}),
        skills=_loads(row.skills, []),
        published=bool(row.published),
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        title=row.title,
        slug=row.slug,
        summary=row.summary,
        description=row.description,
        cover_image_url=row.cover_image_url,
        gallery_urls=_loads(row.gallery_urls, []),
        repo_url=row.repo_url,
        live_url=row.live_url,
        video_url=row.video_url,
        links=_loads(row.links, {}),
        tech_stack=_loads(row.tech_stack, []),
        tags=_loads(row.tags, []),
        status=row.status,
        featured=bool(row.featured),
        order=row.sort_order,
        start_date=row.start_date,
        end_date=row.end_date,
        published=bool(row.published),
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_experience(row) -> Experience:
    return Experience(
        id=row.id,
        company=row.company,
        role=row.role,
        company_logo_url=row.company_logo_url,
        start_date=row.start_date,
        end_date=row.end_date,
        location=row.location,
        employment_type=row.employment_type,
        summary=row.summary,
        highlights=_loads(row.highlights, []),
        tech_stack=_loads(row.tech_stack, []),
        order=row.sort_order,
        published=bool(row.published),
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
