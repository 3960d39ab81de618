# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Provenance Core Engine
======================

Zero-hallucination fact verification for the techno culture archive.
"""

__version__ = "0.3.0"

# Stamped on every extracted claim (extraction_model) for reproducibility.
# When changing prompts, bump these strings.
PROMPT_VERSION = "claim_extract_v2"
MEDIA_PROMPT_VERSION = "media_verify_v1"
