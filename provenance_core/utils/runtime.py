# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of Provenance Engine.
#
# Provenance Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import os


def is_local_run() -> bool:
    """
    Best-effort detection of local/dev runs.
    A Firestore emulator host counts as local.
    """
    if os.getenv("FIRESTORE_EMULATOR_HOST"):
        return True
    if os.getenv("STORAGE_EMULATOR_HOST"):
        return True

    env = (os.getenv("PROVENANCE_ENV") or os.getenv("ENV") or "").strip().lower()
    return env in ("local", "dev", "development", "test")
