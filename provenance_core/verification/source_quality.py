# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Source reputation registry for electronic music coverage.

Categories:
- reference: curated databases and encyclopedias
- specialist_press: electronic music editorial outlets
- general_press: mainstream newspapers and broadcasters
- official: artist/label storefronts and official pages
- user_generated: social platforms and forums
- blogs: self-published hosting
"""

from __future__ import annotations

from provenance_core.constants import DEFAULT_SOURCE_QUALITY
from provenance_core.utils.url_utils import get_host

TRUSTED_SOURCES: dict[str, list[str]] = {
    "reference": [
        "wikipedia.org",
        "musicbrainz.org",
        "discogs.com",
        "allmusic.com",
        "britannica.com",
    ],
    "specialist_press": [
        "residentadvisor.net",
        "ra.co",
        "mixmag.net",
        "djmag.com",
        "factmag.com",
        "xlr8r.com",
        "electronicbeats.net",
        "groove.de",
        "attackmagazine.com",
        "thequietus.com",
        "pitchfork.com",
        "thewire.co.uk",
        "musicradar.com",
        "mixonline.com",
        "soundonsound.com",
    ],
    "general_press": [
        "theguardian.com",
        "nytimes.com",
        "bbc.co.uk",
        "bbc.com",
        "spiegel.de",
        "lemonde.fr",
        "vice.com",
        "rollingstone.com",
    ],
    "official": [
        "bandcamp.com",
        "beatport.com",
        "boomkat.com",
        "juno.co.uk",
    ],
    "user_generated": [
        "reddit.com",
        "facebook.com",
        "instagram.com",
        "twitter.com",
        "x.com",
        "soundcloud.com",
        "youtube.com",
        "tiktok.com",
        "fandom.com",
    ],
    "blogs": [
        "medium.com",
        "blogspot.com",
        "wordpress.com",
        "substack.com",
        "tumblr.com",
    ],
}

CATEGORY_QUALITY: dict[str, float] = {
    "reference": 0.9,
    "specialist_press": 0.85,
    "general_press": 0.8,
    "official": 0.7,
    "user_generated": 0.35,
    "blogs": 0.3,
}


def _build_domain_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for category, domains in TRUSTED_SOURCES.items():
        for domain in domains:
            index[domain.lower()] = category
    return index


class SourceQualityScorer:
    """Maps a source URL to a reputation score in [0, 1]."""

    def __init__(
        self,
        *,
        overrides: dict[str, float] | None = None,
        default: float = DEFAULT_SOURCE_QUALITY,
    ):
        self._index = _build_domain_index()
        self._overrides = {k.lower(): max(0.0, min(1.0, float(v))) for k, v in (overrides or {}).items()}
        self._default = max(0.0, min(1.0, float(default)))

    def category_for(self, url: str | None) -> str | None:
        host = get_host(url)
        if not host:
            return None
        parts = host.split(".")
        # Parent-domain matching: en.wikipedia.org -> wikipedia.org
        for i in range(len(parts) - 1):
            parent = ".".join(parts[i:])
            if parent in self._index:
                return self._index[parent]
        return None

    def score(self, url: str | None) -> float:
        host = get_host(url)
        if host:
            parts = host.split(".")
            for i in range(len(parts) - 1):
                parent = ".".join(parts[i:])
                if parent in self._overrides:
                    return self._overrides[parent]
        category = self.category_for(url)
        if category is None:
            return self._default
        return CATEGORY_QUALITY.get(category, self._default)
