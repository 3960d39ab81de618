"""
Selection invariants under arbitrary interleavings of automated selection,
human overrides, rejections and re-scoring.
"""

import random
import threading
from concurrent.futures import ThreadPoolExecutor

from hypothesis import example, given, settings, strategies as st

from provenance_core.media.selection import SelectionPolicy
from provenance_core.schema.entities import EntityType
from provenance_core.schema.media import CopyrightRisk, ImageVerdict, LicenseStatus
from provenance_core.storage.memory import InMemoryKnowledgeStore
from provenance_core.verification.errors import IneligibleCandidate

ENTITIES = ("artist-a", "artist-b")

scores = st.floats(min_value=0, max_value=100, allow_nan=False)
risks = st.sampled_from(list(CopyrightRisk))

add_op = st.tuples(st.just("add"), st.sampled_from(ENTITIES), scores, scores, risks, st.booleans())
select_op = st.tuples(st.just("select"), st.sampled_from(ENTITIES))
force_op = st.tuples(st.just("force"), st.integers(min_value=0, max_value=30))
reject_op = st.tuples(st.just("reject"), st.integers(min_value=0, max_value=30))
rescore_op = st.tuples(st.just("rescore"), st.integers(min_value=0, max_value=30), scores, scores, risks)
repair_op = st.tuples(st.just("repair"), st.sampled_from(ENTITIES))

operations = st.lists(st.one_of(add_op, select_op, force_op, reject_op, rescore_op, repair_op), max_size=40)


def _selected(store, entity_id):
    return [a for a in store.list_assets(EntityType.ARTIST, entity_id) if a.selected]


def _apply(store, policy, build_asset, op, ids):
    kind = op[0]
    if kind == "add":
        _, entity_id, match, quality, risk, scored = op
        asset_id = f"img-{len(ids):02d}"
        store.put_asset(build_asset(
            asset_id, entity_id, match_score=match, quality_score=quality, copyright_risk=risk, scored=scored,
        ))
        ids.append(asset_id)
        assert store.get_asset(asset_id).copyright_risk is risk
    elif kind == "select":
        outcome = policy.select(EntityType.ARTIST, op[1])
        if outcome.selected is not None:
            chosen = outcome.selected
            assert policy.is_eligible(chosen)
            eligible = [a for a in store.list_assets(EntityType.ARTIST, op[1]) if policy.is_eligible(a)]
            assert policy.combined_score(chosen) == max(policy.combined_score(a) for a in eligible)
    elif kind == "repair":
        policy.repair(EntityType.ARTIST, op[1])
    elif ids:
        asset_id = ids[op[1] % len(ids)]
        if kind == "force":
            try:
                policy.force_select(asset_id, actor="editor")
            except IneligibleCandidate:
                assert store.get_asset(asset_id).is_rejected
        elif kind == "reject":
            policy.reject(asset_id, "editor said no", actor="editor")
            assert store.get_asset(asset_id).license_status is LicenseStatus.REJECTED
        elif kind == "rescore":
            _, _, match, quality, risk = op
            store.update_asset_scores(asset_id, ImageVerdict(
                match_score=match, quality_score=quality, copyright_risk=risk, license_status=LicenseStatus.SAFE,
            ))
            assert store.get_asset(asset_id).copyright_risk is risk


@settings(max_examples=150, deadline=None)
@given(ops=operations)
def test_at_most_one_selected_per_entity(runtime, build_asset, ops):
    store = InMemoryKnowledgeStore()
    policy = SelectionPolicy(store, runtime=runtime)
    ids: list[str] = []

    for op in ops:
        _apply(store, policy, build_asset, op, ids)
        for entity_id in ENTITIES:
            selected = _selected(store, entity_id)
            assert len(selected) <= 1
            assert not any(a.is_rejected for a in selected)


@settings(max_examples=100, deadline=None)
@example(candidates=[(95.0, 95.0, CopyrightRisk.HIGH), (70.0, 60.0, CopyrightRisk.LOW)])
@example(candidates=[(100.0, 100.0, CopyrightRisk.HIGH)])
@given(candidates=st.lists(st.tuples(scores, scores, risks), min_size=1, max_size=12))
def test_high_risk_never_auto_selected(runtime, build_asset, candidates):
    store = InMemoryKnowledgeStore()
    policy = SelectionPolicy(store, runtime=runtime)
    for i, (match, quality, risk) in enumerate(candidates):
        store.put_asset(build_asset(f"img-{i:02d}", "artist-a", match_score=match, quality_score=quality,
                                    copyright_risk=risk))

    stored = store.list_assets(EntityType.ARTIST, "artist-a")
    assert [a.copyright_risk for a in stored] == [risk for _, _, risk in candidates]

    outcome = policy.select(EntityType.ARTIST, "artist-a")

    if outcome.selected is None:
        assert all(not policy.is_eligible(a) for a in store.list_assets(EntityType.ARTIST, "artist-a"))
    else:
        assert outcome.selected.copyright_risk != CopyrightRisk.HIGH
        assert outcome.selected.match_score >= policy.config.min_match_score


@given(match=scores, quality=scores)
def test_combined_score_bounds(runtime, build_asset, match, quality):
    policy = SelectionPolicy(InMemoryKnowledgeStore(), runtime=runtime)
    score = policy.combined_score(build_asset("img", "artist-a", match_score=match, quality_score=quality))
    assert 0.0 <= score <= 100.0


@given(raw=st.floats(allow_nan=True, allow_infinity=True))
def test_stored_scores_are_clamped(build_asset, raw):
    asset = build_asset("img", "artist-a", match_score=raw, quality_score=raw)
    assert 0.0 <= asset.match_score <= 100.0
    assert 0.0 <= asset.quality_score <= 100.0


def test_concurrent_writers_never_double_select(runtime, build_asset):
    store = InMemoryKnowledgeStore()
    policy = SelectionPolicy(store, runtime=runtime)
    rng = random.Random(1234)
    ids = []
    for i in range(20):
        asset_id = f"img-{i:02d}"
        store.put_asset(build_asset(
            asset_id, "artist-a",
            match_score=rng.uniform(40, 100),
            quality_score=rng.uniform(0, 100),
            copyright_risk=rng.choice(list(CopyrightRisk)),
        ))
        ids.append(asset_id)

    stop = threading.Event()
    worst = {"selected": 0}

    def watch():
        while not stop.is_set():
            worst["selected"] = max(worst["selected"], len(_selected(store, "artist-a")))

    def work(seed):
        local = random.Random(seed)
        for _ in range(50):
            roll = local.random()
            asset_id = local.choice(ids)
            if roll < 0.5:
                policy.select(EntityType.ARTIST, "artist-a")
            elif roll < 0.9:
                try:
                    policy.force_select(asset_id, actor=f"editor-{seed}")
                except IneligibleCandidate:
                    pass
            else:
                policy.reject(asset_id, "stress", actor=f"editor-{seed}")

    watcher = threading.Thread(target=watch)
    watcher.start()
    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(work, range(16)))
    finally:
        stop.set()
        watcher.join()

    assert worst["selected"] <= 1
    assert len(_selected(store, "artist-a")) <= 1
    selects = [c for c in store.list_changes() if c.action.value == "select"]
    assert selects
    assert any(store.get_asset(asset_id).is_rejected for asset_id in ids)
