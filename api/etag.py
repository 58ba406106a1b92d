"""
api/etag.py -- Conditional GET helpers for the public content endpoints.

ETag = '"' + md5("<key>-<updatedAt epoch ms>") + '"', where key is the record
id (about, experiences) or slug (projects). A matching If-None-Match returns
304 with no body; every response carries Cache-Control so CDNs and browsers
can revalidate cheaply.

md5 is a change fingerprint here, not a security boundary.
"""

from __future__ import annotations

import hashlib
from datetime import datetime

from fastapi import Request, Response


def make_etag(key: int | str, updated_at: str) -> str:
    updated_ms = int(datetime.fromisoformat(updated_at).timestamp() * 1000)
    digest = hashlib.md5(f"{key}-{updated_ms}".encode(), usedforsecurity=False).hexdigest()
    return f'"{digest}"'


def is_not_modified(request: Request, etag: str) -> bool:
    """True if the client's If-None-Match already names this ETag (or is *)."""
    header = request.headers.get("if-none-match")
    if not header:
        return False
    candidates = {value.strip().removeprefix("W/") for value in header.split(",")}
    return etag in candidates or "*" in candidates


def not_modified(etag: str, cache_control: str) -> Response:
    return Response(status_code=304, headers={"ETag": etag, "Cache-Control": cache_control})
