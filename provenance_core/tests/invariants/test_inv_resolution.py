"""
Resolution invariants: deterministic, evidence-backed, bounded.
"""

from dataclasses import replace

from hypothesis import given, settings, strategies as st

from provenance_core.schema.facts import ConflictingFact, FactStatus, UnverifiedFact, ValidFact
from provenance_core.verification.resolver import FactResolver

unit = st.floats(min_value=0, max_value=1, allow_nan=False)
rows = st.lists(
    st.tuples(
        st.sampled_from(["1989", "1990", "1992", "founded in 1989", ""]),
        unit,
        unit,
        st.sampled_from(["en.wikipedia.org", "ra.co", "discogs.com", "reddit.com"]),
        st.sampled_from(["founded in 1989", "   ", "Axis Records began in 1992", ""]),
    ),
    max_size=8,
)
policies = st.sampled_from(["representative", "max", "noisy_or"])


def _resolver(store, runtime, policy="representative"):
    return FactResolver(store, runtime=replace(runtime, resolver=replace(runtime.resolver, agreement_policy=policy)))


@settings(max_examples=150, deadline=None)
@given(data=rows, policy=policies)
def test_resolve_is_deterministic(runtime, store_with_claims, data, policy):
    first = _resolver(store_with_claims(data), runtime, policy).resolve("artist-x", "founded_year")
    again = _resolver(store_with_claims(data), runtime, policy).resolve("artist-x", "founded_year")
    assert first == again


@settings(max_examples=150, deadline=None)
@given(data=rows, policy=policies)
def test_results_carry_evidence(runtime, store_with_claims, data, policy):
    store = store_with_claims(data)
    result = _resolver(store, runtime, policy).resolve("artist-x", "founded_year")

    if isinstance(result, ValidFact):
        assert result.evidence_snippet.strip()
        assert result.source_url
        assert 0.0 <= result.confidence <= 1.0
        assert store.get_source(result.source_id).claim_id == result.claim_id
        if result.status == FactStatus.VERIFIED and policy == "representative":
            assert result.confidence >= runtime.resolver.verified_threshold
    elif isinstance(result, ConflictingFact):
        assert len(result.values) >= 2
        assert all(v.evidence_snippet.strip() and v.source_url for v in result.values)
        qualities = [v.quality_score for v in result.values]
        assert qualities == sorted(qualities, reverse=True)
        assert len({v.claim_id for v in result.values}) == len(result.values)
    else:
        assert isinstance(result, UnverifiedFact)
        assert result.value is None


@settings(max_examples=100, deadline=None)
@given(data=rows)
def test_reconcile_is_idempotent(runtime, store_with_claims, data):
    resolver = _resolver(store_with_claims(data), runtime)
    resolver.reconcile_entity("artist-x", actor="test")
    before = resolver.resolve("artist-x", "founded_year")

    assert resolver.reconcile_entity("artist-x", actor="test") == []
    assert resolver.resolve("artist-x", "founded_year") == before


@settings(max_examples=100, deadline=None)
@given(data=rows)
def test_claims_below_threshold_never_surface(runtime, store_with_claims, data):
    result = _resolver(store_with_claims(data), runtime).resolve("artist-x", "founded_year")
    minimum = runtime.resolver.min_confidence
    if isinstance(result, ValidFact):
        assert result.confidence >= minimum
