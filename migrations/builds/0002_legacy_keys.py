"""Rewrite camelCase build saves into the current schema."""

from __future__ import annotations

from typing import Any, MutableMapping

from jianghu.models.build import LEGACY_BUILD_KEYS, normalize_build_keys
from jianghu.storage import _read_toml, _write_toml


FROM_VERSION = 1
TO_VERSION = 2
DESCRIPTION = "Rename legacy build keys and tag bare selections as direct picks"


def _selection_records(values: Any) -> list[Any]:
    records = []
    for value in values or ():
        if isinstance(value, str):
            records.append({"key": value, "origin": "direct", "fee": 0})
        else:
            records.append(value)
    return records


def apply(context) -> None:  # type: ignore[override]
    directory = context.collection.record_directory(context.base)
    if not directory.exists():
        return

    updated = 0
    for path in sorted(directory.glob("*.toml")):
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping):
            continue
        changed = any(key in payload for key in LEGACY_BUILD_KEYS)
        if changed:
            payload = normalize_build_keys(payload)
        for key in ("traits", "skills"):
            values = payload.get(key)
            if isinstance(values, list) and any(isinstance(item, str) for item in values):
                payload[key] = _selection_records(values)
                changed = True
        if changed:
            _write_toml(path, payload)
            updated += 1

    if updated:
        context.log(f"rewrote {updated} legacy build save(s)")
