from __future__ import annotations

import sys
import tomllib
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.storage import _read_toml, _write_toml


def test_write_toml_preserves_original_on_replace_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "build.toml"
    _write_toml(target, {"id": "build_1", "name": "段誉"})
    original_contents = target.read_text(encoding="utf8")

    def _boom(src: Path, dst: Path) -> None:
        raise RuntimeError("simulated failure")

    monkeypatch.setattr("jianghu.storage.os.replace", _boom)

    with pytest.raises(RuntimeError):
        _write_toml(target, {"id": "build_1", "name": "虚竹"})

    assert target.read_text(encoding="utf8") == original_contents
    leftovers = [p for p in target.parent.iterdir() if p.name != "build.toml"]
    assert leftovers == []


def test_write_toml_escapes_text_and_quotes_non_ascii_keys(tmp_path: Path) -> None:
    target = tmp_path / "escaped.toml"
    payload = {
        "note": 'say "hi"\n\t\U0001f5e1',
        "attributes": {"臂力": 9, "luck": -2},
        "ratio": 0.5,
        "skipped": None,
    }

    _write_toml(target, payload)

    with target.open("rb") as handle:
        loaded = tomllib.load(handle)
    assert loaded == {
        "note": 'say "hi"\n\t\U0001f5e1',
        "attributes": {"臂力": 9, "luck": -2},
        "ratio": 0.5,
    }


def test_read_toml_tolerates_missing_and_corrupt_files(tmp_path: Path) -> None:
    corrupt = tmp_path / "corrupt.toml"
    corrupt.write_text("this is = = not toml", encoding="utf8")

    assert _read_toml(tmp_path / "absent.toml") is None
    assert _read_toml(corrupt) is None
