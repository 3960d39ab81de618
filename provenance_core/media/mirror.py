# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Best-effort copy of selected media into Cloud Storage.

A failed mirror is logged and otherwise ignored: the selection stands and
the source URL stays the fallback.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from google.cloud import storage

from provenance_core.constants import MEDIA_BUCKET
from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.schema.media import MediaAsset
from provenance_core.storage.base import KnowledgeStore
from provenance_core.utils.url_utils import guess_extension

logger = logging.getLogger(__name__)


def storage_path_for(asset: MediaAsset, ext: str) -> str:
    return f"{asset.entity_type.value}/{asset.entity_id}.{ext}"


def public_url(bucket_name: str, path: str) -> str:
    return f"https://storage.googleapis.com/{bucket_name}/{path}"


class AssetMirror:
    def __init__(
        self,
        store: KnowledgeStore,
        *,
        bucket_name: str = MEDIA_BUCKET,
        runtime: EngineRuntimeConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        storage_client: storage.Client | None = None,
    ):
        self.store = store
        self.bucket_name = bucket_name
        self.runtime = runtime or EngineRuntimeConfig.load_from_env()
        self._http = http_client
        self._storage = storage_client
        self._tasks: set[asyncio.Task] = set()

    def _bucket(self) -> storage.Bucket:
        if self._storage is None:
            self._storage = storage.Client()
        return self._storage.bucket(self.bucket_name)

    def _upload(self, path: str, data: bytes, content_type: str | None) -> None:
        blob = self._bucket().blob(path)
        blob.upload_from_string(data, content_type=content_type or "application/octet-stream")

    async def _fetch(self, url: str) -> tuple[bytes, str | None]:
        timeout = self.runtime.selection.mirror_timeout_sec
        if self._http is not None:
            resp = await self._http.get(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                resp = await client.get(url)
        resp.raise_for_status()
        data = resp.content
        if len(data) > self.runtime.selection.mirror_max_bytes:
            raise ValueError(f"payload too large: {len(data)} bytes")
        if not data:
            raise ValueError("empty payload")
        return data, resp.headers.get("content-type")

    async def mirror(self, asset: MediaAsset) -> MediaAsset | None:
        """Fetch once, upload, record the location. Returns None on any failure."""
        try:
            data, content_type = await self._fetch(asset.source_url)
            path = storage_path_for(asset, guess_extension(asset.source_url, content_type))
            await asyncio.to_thread(self._upload, path, data, content_type)
            updated = self.store.set_storage_location(asset.asset_id, public_url(self.bucket_name, path), path)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("[AssetMirror] Mirror failed for %s (%s): %s", asset.asset_id, type(e).__name__, e)
            return None
        logger.info("[AssetMirror] Mirrored %s to gs://%s/%s", asset.asset_id, self.bucket_name, path)
        return updated

    def schedule(self, asset: MediaAsset) -> asyncio.Task | None:
        """Run `mirror` in the background. Without a running loop, nothing is scheduled."""
        if not self.runtime.features.storage_mirror:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("[AssetMirror] No running loop; mirror for %s not scheduled", asset.asset_id)
            return None
        task = loop.create_task(self.mirror(asset))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled mirrors (tests, CLI shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
