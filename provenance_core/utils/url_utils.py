# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import posixpath
from urllib.parse import urlparse


def get_host(url: str | None) -> str | None:
    """Lowercased host without `www.` and port."""
    if not url or not isinstance(url, str):
        return None
    try:
        host = (urlparse(url).netloc or "").lower().strip()
    except ValueError:
        return None
    host = host.split("@")[-1].split(":")[0].strip()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def get_registrable_domain(url: str | None) -> str | None:
    """
    Best-effort registrable domain extraction without a public suffix list.
    Approximate: handles the common 2-level suffixes (co.uk, com.au).
    """
    host = get_host(url)
    if not host or "." not in host:
        return None

    parts = [p for p in host.split(".") if p]
    if len(parts) < 2:
        return None

    if len(parts) >= 3:
        last = parts[-1]
        second_last = parts[-2]
        if len(last) == 2 and len(second_last) <= 3:
            return ".".join(parts[-3:])
    return ".".join(parts[-2:])


def source_name_from_url(url: str | None) -> str:
    """Display name for a source when none was stored: the bare host."""
    return get_host(url) or "unknown source"


def guess_extension(url: str | None, content_type: str | None = None, *, default: str = "jpg") -> str:
    ct = (content_type or "").split(";")[0].strip().lower()
    by_type = {
        "image/jpeg": "jpg",
        "image/jpg": "jpg",
        "image/png": "png",
        "image/webp": "webp",
        "image/gif": "gif",
        "image/avif": "avif",
    }
    if ct in by_type:
        return by_type[ct]
    try:
        path = urlparse(url or "").path
    except ValueError:
        return default
    ext = posixpath.splitext(path)[1].lstrip(".").lower()
    if ext == "jpeg":
        return "jpg"
    if ext in ("jpg", "png", "webp", "gif", "avif"):
        return ext
    return default
