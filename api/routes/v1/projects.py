"""
api/routes/v1/projects.py -- Projects: public listing/detail and admin CRUD.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /api/v1/projects                               -- public, published only, 300s cache
  GET    /api/v1/projects/{slug}                        -- public detail, ETag
  GET    /api/v1/admin/projects                         -- admin list        [project:read]
  POST   /api/v1/admin/projects                         -- create; 201       [project:create]
  GET    /api/v1/admin/projects/{project_id}            -- detail            [project:read]
  PATCH  /api/v1/admin/projects/{project_id}            -- partial update    [project:update]
  DELETE /api/v1/admin/projects/{project_id}            -- delete; 204       [project:delete]
  PATCH  /api/v1/admin/projects/{project_id}/publish    -- {published}       [project:publish]
  PATCH  /api/v1/admin/projects/{project_id}/reorder    -- {order}           [project:update]

Slugs: derived from the title when omitted; must be unique (409 SLUG_EXISTS).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.etag import is_not_modified, make_etag, not_modified
from api.models import (
    Envelope,
    ProjectAdminList,
    ProjectCreate,
    ProjectOut,
    ProjectPublicList,
    ProjectStatus,
    ProjectUpdate,
    PublishRequest,
    ReorderRequest,
    slugify,
    to_domain_fields,
)
from api.pagination import clamp_page_size, parse_colon_sort, parse_prefixed_sort, total_pages
from auth.dependencies import require_permission
from auth.models import User
from content.models import Project
from content.store import ContentStore
from core.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("portfolio.content")

router = APIRouter()

_PUBLIC_CACHE = "public, max-age=300"

_PUBLIC_SORT_FIELDS = {
    "updatedAt": "updated_at",
    "createdAt": "created_at",
    "title": "title",
    "order": "order",
    "startDate": "start_date",
    "endDate": "end_date",
}

_ADMIN_SORT_FIELDS = {
    **_PUBLIC_SORT_FIELDS,
    "status": "status",
    "featured": "featured",
}


def _slug_conflict() -> ConflictError:
    return ConflictError("A project with this slug already exists", code="SLUG_EXISTS")


def _get_project_or_404(store: ContentStore, project_id: int) -> Project:
    project = store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project")
    return project


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/projects", response_model=Envelope[ProjectPublicList])
def list_public_projects(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1),
    sort: str = Query("-updatedAt"),
    q: Optional[str] = Query(None, max_length=100),
    tag: Optional[str] = None,
    tech: Optional[str] = None,
    status: Optional[ProjectStatus] = None,
    featured: Optional[bool] = None,
) -> JSONResponse:
    """Published projects with search, tag/tech/status/featured filters and pagination."""
    store: ContentStore = request.app.state.content_store
    limit = clamp_page_size(limit)
    sort_key, descending = parse_prefixed_sort(sort, _PUBLIC_SORT_FIELDS)

    items, total = store.list_projects(
        published_only=True,
        q=q,
        tag=tag,
        tech=tech,
        status=status.value if status else None,
        featured=featured,
        sort=sort_key,
        descending=descending,
        offset=(page - 1) * limit,
        limit=limit,
    )
    payload = Envelope[ProjectPublicList](
        data=ProjectPublicList(
            items=[ProjectOut.from_project(p) for p in items],
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages(total, limit),
        )
    )
    return JSONResponse(
        content=payload.model_dump(mode="json", by_alias=True),
        headers={"Cache-Control": _PUBLIC_CACHE},
    )


@router.get("/projects/{slug}", response_model=Envelope[ProjectOut])
def get_public_project(request: Request, slug: str) -> Response:
    """Published project by slug. Unpublished projects are indistinguishable from missing ones."""
    store: ContentStore = request.app.state.content_store
    project = store.get_project_by_slug(slug, published_only=True)
    if project is None:
        raise NotFoundError("Project")

    etag = make_etag(project.slug, project.updated_at)
    if is_not_modified(request, etag):
        return not_modified(etag, _PUBLIC_CACHE)

    payload = Envelope[ProjectOut](data=ProjectOut.from_project(project))
    return JSONResponse(
        content=payload.model_dump(mode="json", by_alias=True),
        headers={"ETag": etag, "Cache-Control": _PUBLIC_CACHE},
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/admin/projects", response_model=Envelope[ProjectAdminList])
def list_admin_projects(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, alias="pageSize"),
    sort: str = Query("updatedAt:desc"),
    title: Optional[str] = None,
    status: Optional[ProjectStatus] = None,
    published: Optional[bool] = None,
    featured: Optional[bool] = None,
    tag: Optional[str] = None,
    tech: Optional[str] = None,
    current_user: User = Depends(require_permission("project:read")),
) -> Envelope[ProjectAdminList]:
    """All projects, drafts included, with admin filters."""
    store: ContentStore = request.app.state.content_store
    page_size = clamp_page_size(page_size)
    sort_key, descending = parse_colon_sort(sort, _ADMIN_SORT_FIELDS)

    items, total = store.list_projects(
        published=published,
        title=title,
        tag=tag,
        tech=tech,
        status=status.value if status else None,
        featured=featured,
        sort=sort_key,
        descending=descending,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return Envelope[ProjectAdminList](
        data=ProjectAdminList(
            items=[ProjectOut.from_project(p) for p in items],
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages(total, page_size),
        )
    )


@router.post("/admin/projects", response_model=Envelope[ProjectOut], status_code=201)
def create_project(
    request: Request,
    body: ProjectCreate,
    current_user: User = Depends(require_permission("project:create")),
) -> Envelope[ProjectOut]:
    store: ContentStore = request.app.state.content_store
    fields = to_domain_fields(body)
    fields["slug"] = body.slug or slugify(body.title)
    if store.slug_exists(fields["slug"]):
        raise _slug_conflict()

    try:
        project_id = store.create_project(Project(**fields, created_by=current_user.id, updated_by=current_user.id))
    except IntegrityError as exc:
        raise _slug_conflict() from exc

    logger.info("Project %s (%s) created by user_id=%s", project_id, fields["slug"], current_user.id)
    return Envelope[ProjectOut](data=ProjectOut.from_project(store.get_project(project_id)))


@router.get("/admin/projects/{project_id}", response_model=Envelope[ProjectOut])
def get_project(
    request: Request,
    project_id: int,
    current_user: User = Depends(require_permission("project:read")),
) -> Envelope[ProjectOut]:
    store: ContentStore = request.app.state.content_store
    return Envelope[ProjectOut](data=ProjectOut.from_project(_get_project_or_404(store, project_id)))


@router.patch("/admin/projects/{project_id}", response_model=Envelope[ProjectOut])
def update_project(
    request: Request,
    project_id: int,
    body: ProjectUpdate,
    current_user: User = Depends(require_permission("project:update")),
) -> Envelope[ProjectOut]:
    """Partial update. Date range is re-checked against stored values for one-sided edits."""
    store: ContentStore = request.app.state.content_store
    existing = _get_project_or_404(store, project_id)
    fields = to_domain_fields(body)

    if fields.get("slug") and store.slug_exists(fields["slug"], exclude_id=project_id):
        raise _slug_conflict()

    start = fields.get("start_date", existing.start_date)
    end = fields.get("end_date", existing.end_date)
    if start and end and end < start:
        raise ValidationError("End date must be greater than or equal to start date")

    slug_changed = "slug" in fields and fields["slug"] != existing.slug
    try:
        store.update_project(project_id, **fields, updated_by=current_user.id)
    except IntegrityError as exc:
        if slug_changed:
            raise _slug_conflict() from exc
        raise
    return Envelope[ProjectOut](data=ProjectOut.from_project(store.get_project(project_id)))


@router.delete("/admin/projects/{project_id}", status_code=204)
def delete_project(
    request: Request,
    project_id: int,
    current_user: User = Depends(require_permission("project:delete")),
) -> Response:
    store: ContentStore = request.app.state.content_store
    if not store.delete_project(project_id):
        raise NotFoundError("Project")
    logger.info("Project %s deleted by user_id=%s", project_id, current_user.id)
    return Response(status_code=204)


@router.patch("/admin/projects/{project_id}/publish", response_model=Envelope[ProjectOut])
def publish_project(
    request: Request,
    project_id: int,
    body: PublishRequest,
    current_user: User = Depends(require_permission("project:publish")),
) -> Envelope[ProjectOut]:
    store: ContentStore = request.app.state.content_store
    _get_project_or_404(store, project_id)
    store.update_project(project_id, published=body.published, updated_by=current_user.id)
    logger.info("Project %s published=%s by user_id=%s", project_id, body.published, current_user.id)
    return Envelope[ProjectOut](data=ProjectOut.from_project(store.get_project(project_id)))


@router.patch("/admin/projects/{project_id}/reorder", response_model=Envelope[ProjectOut])
def reorder_project(
    request: Request,
    project_id: int,
    body: ReorderRequest,
    current_user: User = Depends(require_permission("project:update")),
) -> Envelope[ProjectOut]:
    store: ContentStore = request.app.state.content_store
    _get_project_or_404(store, project_id)
    store.update_project(project_id, order=body.order, updated_by=current_user.id)
    return Envelope[ProjectOut](data=ProjectOut.from_project(store.get_project(project_id)))
