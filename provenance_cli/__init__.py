# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Provenance CLI Module

Usage:
    provenance facts snapshot.json --entity artist-42
    provenance select snapshot.json --entity-type artist --entity artist-42 --write
    provenance reject snapshot.json --asset img-1 --reason "watermarked" --write
    provenance stats snapshot.json --entity artist-42
"""

from provenance_cli.knowledge_cmd import main

__all__ = ["main"]

if __name__ == "__main__":
    main()
