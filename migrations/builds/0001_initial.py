"""Initial migration for saved builds."""

from __future__ import annotations


FROM_VERSION = 0
TO_VERSION = 1
DESCRIPTION = "Bootstrap the build save directory"


def apply(context) -> None:  # type: ignore[override]
    target_dir = context.collection.record_directory(context.base)
    target_dir.mkdir(parents=True, exist_ok=True)
