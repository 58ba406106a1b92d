"""
api/routes/v1/experiences.py -- Work experience: public listing/detail and admin CRUD.

Routes:
  GET    /api/v1/experiences                                  -- public, published only
  GET    /api/v1/experiences/{experience_id}                  -- public detail, ETag, 300s cache
  GET    /api/v1/admin/experiences                            -- admin list      [experience:read]
  POST   /api/v1/admin/experiences                            -- create; 201     [experience:create]
  GET    /api/v1/admin/experiences/{experience_id}            -- detail          [experience:read]
  PUT    /api/v1/admin/experiences/{experience_id}            -- partial update  [experience:update]
  DELETE /api/v1/admin/experiences/{experience_id}            -- delete; 204     [experience:delete]
  PATCH  /api/v1/admin/experiences/{experience_id}/publish    -- {published}     [experience:publish]

current=true on the public list keeps open-ended positions (no endDate).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.etag import is_not_modified, make_etag, not_modified
from api.models import (
    Envelope,
    ExperienceCreate,
    ExperienceList,
    ExperienceOut,
    ExperienceUpdate,
    PublishRequest,
    to_domain_fields,
)
from api.pagination import clamp_page_size, parse_colon_sort, total_pages
from auth.dependencies import require_permission
from auth.models import User
from content.models import Experience
from content.store import ContentStore
from core.errors import NotFoundError, ValidationError

logger = logging.getLogger("portfolio.content")

router = APIRouter()

_PUBLIC_CACHE = "public, max-age=300"

_SORT_FIELDS = {
    "startDate": "start_date",
    "endDate": "end_date",
    "company": "company",
    "role": "role",
    "order": "order",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _get_experience_or_404(store: ContentStore, experience_id: int) -> Experience:
    experience = store.get_experience(experience_id)
    if experience is None:
        raise NotFoundError("Experience")
    return experience


def _list_response(items: list[Experience], page: int, page_size: int, total: int) -> Envelope[ExperienceList]:
    return Envelope[ExperienceList](
        data=ExperienceList(
            items=[ExperienceOut.from_experience(e) for e in items],
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages(total, page_size),
        )
    )


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/experiences", response_model=Envelope[ExperienceList])
def list_public_experiences(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, alias="pageSize"),
    sort: str = Query("startDate:desc"),
    current: Optional[bool] = None,
    company: Optional[str] = None,
    role: Optional[str] = None,
) -> Envelope[ExperienceList]:
    store: ContentStore = request.app.state.content_store
    page_size = clamp_page_size(page_size)
    sort_key, descending = parse_colon_sort(sort, _SORT_FIELDS)
    items, total = store.list_experiences(
        published_only=True,
        current=current,
        company=company,
        role=role,
        sort=sort_key,
        descending=descending,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return _list_response(items, page, page_size, total)


@router.get("/experiences/{experience_id}", response_model=Envelope[ExperienceOut])
def get_public_experience(request: Request, experience_id: int) -> Response:
    store: ContentStore = request.app.state.content_store
    experience = store.get_experience(experience_id, published_only=True)
    if experience is None:
        raise NotFoundError("Experience")

    etag = make_etag(experience.id, experience.updated_at)
    if is_not_modified(request, etag):
        return not_modified(etag, _PUBLIC_CACHE)

    payload = Envelope[ExperienceOut](data=ExperienceOut.from_experience(experience))
    return JSONResponse(
        content=payload.model_dump(mode="json", by_alias=True),
        headers={"ETag": etag, "Cache-Control": _PUBLIC_CACHE},
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/admin/experiences", response_model=Envelope[ExperienceList])
def list_admin_experiences(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, alias="pageSize"),
    sort: str = Query("startDate:desc"),
    company: Optional[str] = None,
    role: Optional[str] = None,
    published: Optional[bool] = None,
    current_user: User = Depends(require_permission("experience:read")),
) -> Envelope[ExperienceList]:
    store: ContentStore = request.app.state.content_store
    page_size = clamp_page_size(page_size)
    sort_key, descending = parse_colon_sort(sort, _SORT_FIELDS)
    items, total = store.list_experiences(
        published=published,
        company=company,
        role=role,
        sort=sort_key,
        descending=descending,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return _list_response(items, page, page_size, total)


@router.post("/admin/experiences", response_model=Envelope[ExperienceOut], status_code=201)
def create_experience(
    request: Request,
    body: ExperienceCreate,
    current_user: User = Depends(require_permission("experience:create")),
) -> Envelope[ExperienceOut]:
    store: ContentStore = request.app.state.content_store
    fields = to_domain_fields(body)
    experience_id = store.create_experience(
        Experience(**fields, created_by=current_user.id, updated_by=current_user.id)
    )
    logger.info("Experience %s created by user_id=%s", experience_id, current_user.id)
    return Envelope[ExperienceOut](data=ExperienceOut.from_experience(store.get_experience(experience_id)))


@router.get("/admin/experiences/{experience_id}", response_model=Envelope[ExperienceOut])
def get_experience(
    request: Request,
    experience_id: int,
    current_user: User = Depends(require_permission("experience:read")),
) -> Envelope[ExperienceOut]:
    store: ContentStore = request.app.state.content_store
    return Envelope[ExperienceOut](data=ExperienceOut.from_experience(_get_experience_or_404(store, experience_id)))


@router.put("/admin/experiences/{experience_id}", response_model=Envelope[ExperienceOut])
def update_experience(
    request: Request,
    experience_id: int,
    body: ExperienceUpdate,
    current_user: User = Depends(require_permission("experience:update")),
) -> Envelope[ExperienceOut]:
    store: ContentStore = request.app.state.content_store
    existing = _get_experience_or_404(store, experience_id)
    fields = to_domain_fields(body)

    start = fields.get("start_date", existing.start_date)
    end = fields.get("end_date", existing.end_date)
    if start and end and end < start:
        raise ValidationError("End date must be greater than or equal to start date")

    store.update_experience(experience_id, **fields, updated_by=current_user.id)
    return Envelope[ExperienceOut](data=ExperienceOut.from_experience(store.get_experience(experience_id)))


@router.delete("/admin/experiences/{experience_id}", status_code=204)
def delete_experience(
    request: Request,
    experience_id: int,
    current_user: User = Depends(require_permission("experience:delete")),
) -> Response:
    store: ContentStore = request.app.state.content_store
    if not store.delete_experience(experience_id):
        raise NotFoundError("Experience")
    logger.info("Experience %s deleted by user_id=%s", experience_id, current_user.id)
    return Response(status_code=204)


@router.patch("/admin/experiences/{experience_id}/publish", response_model=Envelope[ExperienceOut])
def publish_experience(
    request: Request,
    experience_id: int,
    body: PublishRequest,
    current_user: User = Depends(require_permission("experience:publish")),
) -> Envelope[ExperienceOut]:
    store: ContentStore = request.app.state.content_store
    _get_experience_or_404(store, experience_id)
    store.update_experience(experience_id, published=body.published, updated_by=current_user.id)
    logger.info("Experience %s published=%s by user_id=%s", experience_id, body.published, current_user.id)
    return Envelope[ExperienceOut](data=ExperienceOut.from_experience(store.get_experience(experience_id)))
