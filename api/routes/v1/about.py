"""
api/routes/v1/about.py -- About section: public read and admin management.

Routes:
  GET    /api/v1/about                        -- public; latest published entry, ETag + 60s cache
  GET    /api/v1/admin/about                  -- all entries, newest first   [about:read]
  POST   /api/v1/admin/about                  -- upsert latest entry; 200/201 [about:write]
  PUT    /api/v1/admin/about/{about_id}       -- partial update              [about:write]
  DELETE /api/v1/admin/about/{about_id}       -- delete; 204                 [about:delete]
  PATCH  /api/v1/admin/about/{about_id}/publish -- toggle published          [about:publish]

Publishing invariant: at most one About is published. Every write path that
sets published=true goes through ContentStore.set_about_published(), which
unpublishes the others in the same transaction.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.etag import is_not_modified, make_etag, not_modified
from api.models import AboutCreate, AboutListOut, AboutOut, AboutUpdate, Envelope, to_domain_fields
from auth.dependencies import require_permission
from auth.models import User
from content.models import About
from content.store import ContentStore
from core.errors import NotFoundError

logger = logging.getLogger("portfolio.content")

router = APIRouter()

_PUBLIC_CACHE = "public, max-age=60"


def _apply_fields(store: ContentStore, about_id: int, fields: dict, user_id: int) -> About:
    """Write non-publish fields, then route any published flag through the single-publish path."""
    published = fields.pop("published", None)
    store.update_about(about_id, **fields, updated_by=user_id)
    if published is not None:
        store.set_about_published(about_id, published, user_id)
    return store.get_about(about_id)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/about", response_model=Envelope[AboutOut])
def get_public_about(request: Request) -> Response:
    """Return the published About entry. 304 when If-None-Match matches."""
    store: ContentStore = request.app.state.content_store
    about = store.get_published_about()
    if about is None:
        raise NotFoundError("About")

    etag = make_etag(about.id, about.updated_at)
    if is_not_modified(request, etag):
        return not_modified(etag, _PUBLIC_CACHE)

    payload = Envelope[AboutOut](data=AboutOut.from_about(about))
    return JSONResponse(
        content=payload.model_dump(mode="json", by_alias=True),
        headers={"ETag": etag, "Cache-Control": _PUBLIC_CACHE},
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/admin/about", response_model=Envelope[AboutListOut])
def list_about(
    request: Request,
    current_user: User = Depends(require_permission("about:read")),
) -> Envelope[AboutListOut]:
    store: ContentStore = request.app.state.content_store
    return Envelope[AboutListOut](data=AboutListOut(about=[AboutOut.from_about(a) for a in store.list_about()]))


@router.post("/admin/about", response_model=Envelope[AboutOut])
def upsert_about(
    request: Request,
    response: Response,
    body: AboutCreate,
    current_user: User = Depends(require_permission("about:write")),
) -> Envelope[AboutOut]:
    """Update the most recent About entry, or create the first one (201)."""
    store: ContentStore = request.app.state.content_store
    fields = to_domain_fields(body)

    latest = store.get_latest_about()
    if latest is not None:
        about = _apply_fields(store, latest.id, fields, current_user.id)
        logger.info("About %s updated by user_id=%s", latest.id, current_user.id)
        return Envelope[AboutOut](data=AboutOut.from_about(about))

    published = fields.pop("published", False)
    about_id = store.create_about(About(**fields, created_by=current_user.id, updated_by=current_user.id))
    if published:
        store.set_about_published(about_id, True, current_user.id)
    logger.info("About %s created by user_id=%s", about_id, current_user.id)
    response.status_code = 201
    return Envelope[AboutOut](data=AboutOut.from_about(store.get_about(about_id)))


@router.put("/admin/about/{about_id}", response_model=Envelope[AboutOut])
def update_about(
    request: Request,
    about_id: int,
    body: AboutUpdate,
    current_user: User = Depends(require_permission("about:write")),
) -> Envelope[AboutOut]:
    store: ContentStore = request.app.state.content_store
    if store.get_about(about_id) is None:
        raise NotFoundError("About")
    about = _apply_fields(store, about_id, to_domain_fields(body), current_user.id)
    return Envelope[AboutOut](data=AboutOut.from_about(about))


@router.delete("/admin/about/{about_id}", status_code=204)
def delete_about(
    request: Request,
    about_id: int,
    current_user: User = Depends(require_permission("about:delete")),
) -> Response:
    store: ContentStore = request.app.state.content_store
    if not store.delete_about(about_id):
        raise NotFoundError("About")
    logger.info("About %s deleted by user_id=%s", about_id, current_user.id)
    return Response(status_code=204)


@router.patch("/admin/about/{about_id}/publish", response_model=Envelope[AboutOut])
def toggle_about_published(
    request: Request,
    about_id: int,
    current_user: User = Depends(require_permission("about:publish")),
) -> Envelope[AboutOut]:
    """Flip the published flag. Publishing unpublishes every other entry."""
    store: ContentStore = request.app.state.content_store
    about = store.get_about(about_id)
    if about is None:
        raise NotFoundError("About")
    store.set_about_published(about_id, not about.published, current_user.id)
    logger.info("About %s published=%s by user_id=%s", about_id, not about.published, current_user.id)
    return Envelope[AboutOut](data=AboutOut.from_about(store.get_about(about_id)))
