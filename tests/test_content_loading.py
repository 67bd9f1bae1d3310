from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.content import DEFAULT_CONTENT_DIR, default_content, load_content
from jianghu.cultivation import Cultivator
from jianghu.models._validation import ModelValidationError
from jianghu.models.attributes import AttributeSet
from jianghu.models.build import CharacterBuild, SelectedEntry
from jianghu.models.catalog import CatalogCategory, SkillRank
from jianghu.models.progression import MasteryLevel


def _copy_content(tmp_path: Path) -> Path:
    target = tmp_path / "content"
    shutil.copytree(DEFAULT_CONTENT_DIR, target)
    return target


def _make_build(origin: str, **kwargs) -> CharacterBuild:
    return CharacterBuild(
        id="build_seed",
        name="郭靖",
        talent_tier="common",
        attributes=AttributeSet(insight=12),
        origin=origin,
        **kwargs,
    )


def test_packaged_content_counts() -> None:
    content = default_content()

    assert len(list(content.catalog.entries(CatalogCategory.TRAITS))) == 99
    assert len(list(content.catalog.entries(CatalogCategory.SKILLS))) == 15
    assert [tier.total_points for tier in content.talent_tiers.values()] == [20, 30, 40, 55, 70]
    assert set(content.origins) == {"commoner", "sect-disciple", "noble-heir", "wandering-swordsman"}
    assert content.skill_rank_costs[SkillRank.LEGENDARY] == 30


def test_unknown_lookups_raise_key_error() -> None:
    content = default_content()

    with pytest.raises(KeyError):
        content.tier("demigod")
    with pytest.raises(KeyError):
        content.draw_pool("cursed")
    assert content.origin("nobody") is None


def test_unknown_mastery_gate_is_rejected(tmp_path: Path) -> None:
    directory = _copy_content(tmp_path)
    skills = directory / "skills.toml"
    skills.write_text(
        skills.read_text(encoding="utf8").replace('"略有小成" = "气息绵长', '"登峰造极" = "气息绵长'),
        encoding="utf8",
    )

    with pytest.raises(ModelValidationError):
        load_content(directory)


def test_origin_with_unknown_skill_is_trimmed(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    directory = _copy_content(tmp_path)
    tiers = directory / "tiers.toml"
    tiers.write_text(
        tiers.read_text(encoding="utf8").replace('name = "太祖长拳"', 'name = "失传拳法"'),
        encoding="utf8",
    )

    with caplog.at_level(logging.WARNING, logger="jianghu.content"):
        content = load_content(directory)

    assert content.origin("sect-disciple").skills == ()
    assert "失传拳法" in caplog.text


def test_missing_content_file_raises(tmp_path: Path) -> None:
    directory = _copy_content(tmp_path)
    (directory / "pools.toml").unlink()

    with pytest.raises(FileNotFoundError):
        load_content(directory)


def test_origin_seeds_realm_cultivation_and_skills() -> None:
    cultivator = Cultivator.from_build(_make_build("noble-heir"), default_content())

    assert cultivator.realm.label == "三流中期"
    assert cultivator.cultivation == 120
    assert cultivator.insight == 12
    assert cultivator.mastery("五虎断门刀").mastery is MasteryLevel.NOVICE


def test_origin_without_cultivation_uses_entry_cost() -> None:
    build = _make_build("wandering-swordsman", skills=(SelectedEntry("太祖长拳"),))

    cultivator = Cultivator.from_build(build, default_content())

    assert cultivator.realm.label == "二流初期"
    assert cultivator.cultivation == 250
    assert cultivator.mastery("越女剑法").unlocked_traits == ("剑走轻灵", "一剑三式，虚实难辨")
    assert cultivator.mastery("太祖长拳").mastery is MasteryLevel.NOVICE


def test_custom_and_unknown_origins() -> None:
    content = default_content()

    custom = Cultivator.from_build(_make_build("custom", custom_realm="一流后期"), content)
    fallback = Cultivator.from_build(_make_build("vanished-sect"), content)

    assert (custom.realm.label, custom.cultivation) == ("一流后期", 2200)
    assert (fallback.realm.label, fallback.cultivation) == ("三流圆满", 200)
