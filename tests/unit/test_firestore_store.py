# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
FirestoreKnowledgeStore over a small fake client.

The fake buffers transaction writes until the transactional function
returns, so a raised error inside a transaction leaves nothing behind.
"""

import copy
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as gcp_exceptions

from provenance_core.media.selection import SelectionPolicy
from provenance_core.schema.claims import Claim, ClaimType, Source
from provenance_core.schema.entities import EntityType
from provenance_core.schema.media import CopyrightRisk, ImageVerdict, LicenseStatus
from provenance_core.storage import firestore as firestore_store
from provenance_core.storage.firestore import FirestoreCollections, FirestoreKnowledgeStore
from provenance_core.verification.errors import IneligibleCandidate, LedgerImmutableError, RecordNotFound

ENTITY = "artist-jeff-mills"


class FakeSnapshot:
    def __init__(self, ref, data):
        self.reference = ref
        self.id = ref.doc_id
        self.exists = data is not None
        self._data = copy.deepcopy(data)

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocRef:
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.doc_id = doc_id

    def get(self, transaction=None):
        return FakeSnapshot(self, self.collection.docs.get(self.doc_id))

    def create(self, data):
        if self.doc_id in self.collection.docs:
            raise gcp_exceptions.AlreadyExists(f"{self.doc_id} exists")
        self.collection.docs[self.doc_id] = copy.deepcopy(data)

    def set(self, data):
        self.collection.docs[self.doc_id] = copy.deepcopy(data)

    def update(self, data):
        if self.doc_id not in self.collection.docs:
            raise gcp_exceptions.NotFound(f"{self.doc_id} missing")
        self.collection.docs[self.doc_id].update(copy.deepcopy(data))


class FakeQuery:
    def __init__(self, collection, filters=(), limit=None):
        self.collection = collection
        self.filters = tuple(filters)
        self._limit = limit

    def where(self, field, op, value):
        return FakeQuery(self.collection, self.filters + ((field, op, value),), self._limit)

    def limit(self, n):
        return FakeQuery(self.collection, self.filters, n)

    def _matches(self, data):
        for field, op, value in self.filters:
            if op == "==" and data.get(field) != value:
                return False
            if op == "array_contains" and value not in (data.get(field) or []):
                return False
        return True

    def stream(self, transaction=None):
        hits = [
            FakeSnapshot(FakeDocRef(self.collection, doc_id), data)
            for doc_id, data in sorted(self.collection.docs.items())
            if self._matches(data)
        ]
        return iter(hits if self._limit is None else hits[: self._limit])


class FakeCollection(FakeQuery):
    def __init__(self, name):
        super().__init__(self)
        self.name = name
        self.docs = {}

    def document(self, doc_id):
        return FakeDocRef(self, doc_id)


class FakeWriteBuffer:
    def __init__(self):
        self.writes = []

    def create(self, ref, data):
        self.writes.append(("create", ref, data))

    def set(self, ref, data):
        self.writes.append(("set", ref, data))

    def update(self, ref, data):
        self.writes.append(("update", ref, data))

    def commit(self):
        for op, ref, data in self.writes:
            getattr(ref, op)(data)
        self.writes = []


class FakeFirestore:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection(name))

    def transaction(self):
        return FakeWriteBuffer()

    def batch(self):
        return FakeWriteBuffer()


def fake_transactional(fn):
    def run(transaction, *args, **kwargs):
        result = fn(transaction, *args, **kwargs)
        transaction.commit()
        return result

    return run


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def store(db, monkeypatch):
    monkeypatch.setattr(firestore_store, "firestore", SimpleNamespace(transactional=fake_transactional))
    return FirestoreKnowledgeStore(db, collections=FirestoreCollections.with_prefix("knowledge"))


def _raw_asset(db, asset_id):
    return db.collection("media_assets").docs[asset_id]


@pytest.mark.unit
class TestAssets:

    def test_select_deselects_others_in_one_commit(self, db, store, make_asset):
        make_asset("img-a", match=85, quality=85)
        make_asset("img-b", match=80, quality=60)
        store.select_asset("img-b")

        selected, deselected = store.select_asset("img-a")

        assert selected.selected is True
        assert deselected == ["img-b"]
        assert _raw_asset(db, "img-a")["selected"] is True
        assert _raw_asset(db, "img-b")["selected"] is False
        assert _raw_asset(db, "img-b")["version"] == 3

    def test_guard_failure_writes_nothing(self, db, store, make_asset):
        make_asset("img-a")
        store.select_asset("img-a")
        make_asset("img-b")

        with pytest.raises(IneligibleCandidate):
            store.select_asset("img-b", guard=lambda a: "not_today")

        assert _raw_asset(db, "img-a")["selected"] is True
        assert _raw_asset(db, "img-b")["selected"] is False

    def test_select_unknown(self, store):
        with pytest.raises(RecordNotFound):
            store.select_asset("nope")

    def test_reject_clears_selection(self, db, store, make_asset):
        make_asset("img-a")
        store.select_asset("img-a")

        rejected = store.reject_asset("img-a", "wrong person")

        assert rejected.selected is False
        assert _raw_asset(db, "img-a")["license_status"] == "rejected"
        reread = store.get_asset("img-a")
        assert reread.license_status == LicenseStatus.REJECTED
        assert reread.rejection_reason == "wrong person"
        assert reread.is_rejected

    def test_scores_round_trip(self, db, store, make_asset):
        make_asset("img-a", scored=False)
        verdict = ImageVerdict(
            match_score=92, quality_score=81, copyright_risk=CopyrightRisk.HIGH,
            license_status=LicenseStatus.SAFE, tags=("live", "detroit"),
        )

        store.update_asset_scores("img-a", verdict)

        raw = _raw_asset(db, "img-a")
        assert raw["copyright_risk"] == "high"
        assert raw["license_status"] == "safe"
        assert raw["tags"] == ["live", "detroit"]
        asset = store.get_asset("img-a")
        assert asset.copyright_risk == CopyrightRisk.HIGH
        assert asset.match_score == 92
        assert asset.scored is True

    def test_rescore_keeps_rejection(self, store, make_asset):
        make_asset("img-a")
        store.reject_asset("img-a", "watermark")
        store.update_asset_scores("img-a", ImageVerdict(match_score=90, license_status=LicenseStatus.SAFE))
        assert store.get_asset("img-a").license_status == LicenseStatus.REJECTED

    def test_duplicate_asset(self, store, make_asset):
        make_asset("img-a")
        with pytest.raises(LedgerImmutableError):
            make_asset("img-a")

    def test_policy_skips_high_risk(self, store, runtime, make_asset):
        make_asset("img-risky", scored=False)
        make_asset("img-ok", match=65, quality=50)
        store.update_asset_scores("img-risky", ImageVerdict(
            match_score=95, quality_score=95, copyright_risk=CopyrightRisk.HIGH, license_status=LicenseStatus.SAFE,
        ))

        outcome = SelectionPolicy(store, runtime=runtime).select(EntityType.ARTIST, ENTITY)

        assert outcome.selected.asset_id == "img-ok"
        assert [a.asset_id for a in store.list_assets("artist", ENTITY) if a.selected] == ["img-ok"]


@pytest.mark.unit
class TestClaims:

    def test_pair_is_atomic(self, db, store, entity, add_claim):
        claim, source = add_claim(ClaimType.FOUNDED_YEAR, "1989")
        other = Claim(
            claim_id="clm-other",
            entity_id=ENTITY,
            claim_type=ClaimType.LABEL,
            claim_text="label: Axis Records",
            confidence=0.8,
            document_id="doc-9",
        )
        clash = Source(
            source_id=source.source_id,
            claim_id="clm-other",
            document_id="doc-9",
            url="https://example.org/axis",
            domain="example.org",
            quote_snippet="Axis Records",
            quality_score=0.5,
        )

        with pytest.raises(LedgerImmutableError):
            store.add_claim_with_source(other, clash)

        assert store.get_claim("clm-other") is None
        assert [c.claim_id for c in store.claims_for(ENTITY)] == [claim.claim_id]

    def test_dedup_query(self, store, entity, add_claim):
        add_claim(ClaimType.FOUNDED_YEAR, "1989")
        assert store.has_sources_for("doc-1", ENTITY) is True
        assert store.has_sources_for("doc-1", "artist-robert-hood") is False
        assert store.has_sources_for("doc-404", ENTITY) is False

    def test_quality_update_leaves_snippet(self, db, store, entity, add_claim):
        _, source = add_claim(ClaimType.FOUNDED_YEAR, "1989", snippet="co-founded in 1989")

        updated = store.update_source_quality(source.source_id, 0.42)

        assert updated.quality_score == pytest.approx(0.42)
        raw = db.collection("knowledge_sources").docs[source.source_id]
        assert raw["quote_snippet"] == "co-founded in 1989"
        assert raw["url"] == source.url
        assert raw["entity_id"] == ENTITY

    def test_documents_for_entity(self, store, make_document):
        make_document("doc-2")
        make_document("doc-1")
        make_document("doc-x", entity_ids=("venue-tresor",))
        assert [d.document_id for d in store.documents_for_entity(ENTITY)] == ["doc-1", "doc-2"]
