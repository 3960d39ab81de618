# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors

# Extraction
MIN_DOCUMENT_CHARS = 100
MAX_DOCUMENT_CHARS = 15000
MAX_SNIPPET_CHARS = 500
DEFAULT_CLAIM_CONFIDENCE = 0.5

# Source quality for domains missing from the reputation registry.
DEFAULT_SOURCE_QUALITY = 0.5

# Resolver
MIN_CONFIDENCE_THRESHOLD = 0.3
VERIFIED_CONFIDENCE_THRESHOLD = 0.7
CONFIDENCE_HIGH = 0.8
CONFIDENCE_MEDIUM = 0.5

# Media selection
MATCH_WEIGHT = 0.6
QUALITY_WEIGHT = 0.4
MIN_MATCH_SCORE = 60.0

# Batch rate limiting (seconds between inference calls)
EXTRACTION_DELAY_SEC = 2.0
MEDIA_VERIFY_DELAY_SEC = 0.5
MAX_DOCUMENTS_PER_BATCH = 5

MEDIA_BUCKET = "media-assets"

CONFLICT_DISPLAY_TEMPLATE = "Conflicting information from {n} sources"
UNKNOWN_DISPLAY_TEXT = "Unknown"
UNVERIFIED_DISPLAY_TEXT = "Unverified"
EMPTY_STATE_MESSAGE = "No verified facts. Unverified information is not displayed."
