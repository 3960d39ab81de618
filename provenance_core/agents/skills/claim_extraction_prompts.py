# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Prompt builders for claim extraction.
"""

from __future__ import annotations

from provenance_core.schema.claims import ClaimType
from provenance_core.schema.entities import Entity, RawDocument


def build_claim_extraction_instructions() -> str:
    types = ", ".join(t.value for t in ClaimType)
    return (
        "You extract atomic factual claims about one named subject from a source document "
        "for an electronic music archive.\n"
        "Rules:\n"
        "1. Extract only what the document states. Never add outside knowledge.\n"
        "2. Every claim needs an evidence_snippet copied VERBATIM from the document "
        "(one or two sentences, under 400 characters). Do not paraphrase the snippet.\n"
        "3. One fact per claim. Split compound sentences.\n"
        f"4. claim_type must be one of: {types}.\n"
        "5. value is the bare value when one exists: ISO-8601 dates (YYYY-MM-DD or YYYY), "
        "a name, a place, or a list of names. Use null otherwise.\n"
        "6. confidence (0.0-1.0) reflects how directly the document states the fact "
        "about this subject.\n"
        "Return JSON only:\n"
        '{"claims": [{"claim_type": "...", "claim_text": "...", "value": ..., '
        '"evidence_snippet": "...", "confidence": 0.0}]}\n'
        'If the document says nothing about the subject return {"claims": []}.'
    )


def build_claim_extraction_input(document: RawDocument, entity: Entity, *, max_chars: int) -> str:
    content = document.content[:max_chars]
    title = f"Title: {document.title}\n" if document.title else ""
    return (
        f"Subject: {entity.name} ({entity.entity_type.value})\n"
        f"Source URL: {document.url}\n"
        f"{title}"
        f"\nDocument:\n{content}"
    )
