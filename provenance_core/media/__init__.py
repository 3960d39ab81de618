from provenance_core.media.mirror import AssetMirror
from provenance_core.media.selection import SelectionOutcome, SelectionPolicy
from provenance_core.media.verification import MediaVerificationReport, MediaVerifier

__all__ = [
    "AssetMirror",
    "MediaVerificationReport",
    "MediaVerifier",
    "SelectionOutcome",
    "SelectionPolicy",
]
