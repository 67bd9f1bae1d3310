"""On-disk persistence for saved character builds.

Each collection named in ``config/storage.toml`` keeps one TOML file per
record, at a path template containing ``{key}``.  Before a collection is
touched, :class:`VersionManager` brings it up to the configured schema
version by running the ``migrations/<collection>/`` scripts in order; the
version reached is recorded in ``schema_version.toml`` inside the
collection's version scope.

:class:`BuildRepository` is the save/load/list/delete surface callers use.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
import math
import os
import tempfile
import tomllib
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional
from urllib.parse import quote, unquote

from .errors import MalformedBuild
from .models.build import CharacterBuild

log = logging.getLogger(__name__)

_STORAGE_LOCK = asyncio.Lock()

PROJECT_ROOT = Path(__file__).resolve().parent.parent

VERSIONS_FILENAME = "schema_version.toml"


def _is_site_packages(path: Path) -> bool:
    parts = {part.lower() for part in path.parts}
    return "site-packages" in parts or "dist-packages" in parts


def resolve_storage_root(package_root: Path) -> Path:
    """Pick the directory saved builds are written under.

    ``JIANGHU_DATA_ROOT`` (or the older ``JIANGHU_STORAGE_ROOT``) wins.  A
    checkout keeps its saves beside the source; an installed or read-only
    package saves into the working directory instead.
    """

    override = os.getenv("JIANGHU_DATA_ROOT") or os.getenv("JIANGHU_STORAGE_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()
    return package_root


# ---------------------------------------------------------------------------
# TOML reading and writing
# ---------------------------------------------------------------------------


def _plain(value: Any) -> Any:
    """Reduce a record to TOML-representable values; ``None`` fields vanish."""

    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value if item is not None]
    if isinstance(value, float) and not math.isfinite(value):
        return 0.0
    if isinstance(value, (str, int, float)):
        return value
    return str(value)


_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _toml_string(text: str) -> str:
    pieces = []
    for char in text:
        code = ord(char)
        if char in _ESCAPES:
            pieces.append(_ESCAPES[char])
        elif 0x20 <= code <= 0x7E:
            pieces.append(char)
        elif code > 0xFFFF:
            pieces.append(f"\\U{code:08x}")
        else:
            pieces.append(f"\\u{code:04x}")
    return '"' + "".join(pieces) + '"'


def _toml_key(key: str) -> str:
    bare = key and all(char.isascii() and (char.isalnum() or char in "_-") for char in key)
    return key if bare else _toml_string(key)


def _toml_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        text = repr(value)
        return text if any(mark in text for mark in ".eE") else text + ".0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_scalar(item) for item in value) + "]"
    return _toml_string(str(value))


def _is_table_array(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, Mapping) for item in value)


def _emit_table(lines: List[str], table: Mapping[str, Any], path: tuple[str, ...]) -> None:
    """Append ``table`` to ``lines``: scalars first, then sub-tables, then arrays of tables."""

    keys = sorted(table)
    scalars = [key for key in keys if not isinstance(table[key], Mapping) and not _is_table_array(table[key])]
    tables = [key for key in keys if isinstance(table[key], Mapping)]
    arrays = [key for key in keys if _is_table_array(table[key])]

    for key in scalars:
        lines.append(f"{_toml_key(key)} = {_toml_scalar(table[key])}")
    for key in tables:
        header = ".".join(_toml_key(part) for part in (*path, key))
        if lines:
            lines.append("")
        lines.append(f"[{header}]")
        _emit_table(lines, table[key], (*path, key))
    for key in arrays:
        header = ".".join(_toml_key(part) for part in (*path, key))
        for item in table[key]:
            if lines:
                lines.append("")
            lines.append(f"[[{header}]]")
            _emit_table(lines, item, (*path, key))


def _toml_dumps(data: Mapping[str, Any]) -> str:
    lines: List[str] = []
    _emit_table(lines, _plain(data), ())
    return "\n".join(lines) + "\n"


def _load_toml(path: Path) -> Any:
    """Parse ``path``; ``None`` if it does not exist, decode errors propagate."""

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return None


def _read_toml(path: Path) -> Any:
    """Like :func:`_load_toml` but an unreadable file is logged and read as ``None``."""

    try:
        return _load_toml(path)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        log.warning("Could not read %s: %s", path, exc)
        return None


def _write_toml(path: Path, payload: Mapping[str, Any]) -> None:
    """Replace ``path`` atomically; on failure the previous file is left intact."""

    text = _toml_dumps(payload)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile("w", encoding="utf8", dir=path.parent, delete=False)
    staged = Path(handle.name)
    try:
        with handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staged, path)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CollectionConfig:
    """One keyed collection: ``path`` is a template containing ``{key}``."""

    name: str
    path: str
    version: int
    version_scope: str | None = None
    migration_key: str | None = None

    def record_path(self, base: Path, key: str) -> Path:
        return base / self.path.format(key=quote(str(key), safe=""))

    def record_directory(self, base: Path) -> Path:
        return self.record_path(base, "_").parent

    def scope_directory(self, base: Path) -> Path:
        if self.version_scope:
            return (base / self.version_scope).resolve()
        return self.record_directory(base).resolve()

    @property
    def migrations(self) -> str:
        return self.migration_key or self.name


def _load_storage_config(path: Path) -> Dict[str, CollectionConfig]:
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise RuntimeError(f"Missing storage configuration at {path}") from exc

    tables = payload.get("collections")
    if not isinstance(tables, Mapping):
        raise RuntimeError("storage configuration must define a [collections] table")

    collections: Dict[str, CollectionConfig] = {}
    for name, options in tables.items():
        if not isinstance(options, Mapping):
            continue
        template = str(options.get("path", "")).strip()
        if "{key}" not in template:
            raise RuntimeError(f"Collection {name!r} needs a path containing '{{key}}'")
        scope = options.get("version_scope")
        migration = options.get("migration")
        collections[str(name)] = CollectionConfig(
            name=str(name),
            path=template,
            version=int(options.get("version", 0)),
            version_scope=None if scope is None else str(scope),
            migration_key=str(migration) if migration else None,
        )
    return collections


# ---------------------------------------------------------------------------
# Schema migrations
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MigrationModule:
    from_version: int
    to_version: int
    apply: Callable[["MigrationContext"], None]
    description: str


@dataclass(slots=True)
class MigrationContext:
    """What a migration script's ``apply`` receives."""

    collection: CollectionConfig
    base: Path
    scope_path: Path

    def log(self, message: str) -> None:
        log.info("[migration:%s] %s", self.collection.name, message)


class MissingMigrationError(RuntimeError):
    pass


def _import_migration(path: Path, collection: str) -> Optional[MigrationModule]:
    spec = importlib.util.spec_from_file_location(f"migrations.{collection}.{path.stem}", path)
    if spec is None or spec.loader is None:
        return None
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception:
        log.exception("Skipping migration %s that failed to import", path)
        return None
    source = getattr(module, "FROM_VERSION", None)
    target = getattr(module, "TO_VERSION", None)
    apply = getattr(module, "apply", None)
    if not isinstance(source, int) or not isinstance(target, int) or not callable(apply):
        return None
    return MigrationModule(source, target, apply, str(getattr(module, "DESCRIPTION", path.stem)))


class VersionManager:
    """Runs pending migrations once per collection and remembers the result."""

    def __init__(self, *, base: Path, migrations_base: Path) -> None:
        self._base = base
        self._migrations_base = migrations_base
        self._versions: Dict[str, int] = {}
        self._steps: Dict[str, List[MigrationModule]] = {}

    def ensure(self, collection: CollectionConfig) -> None:
        key = collection.migrations
        if key not in self._versions:
            self._versions[key] = self._stored_version(collection)
        current = self._versions[key]
        if current >= collection.version:
            return

        plan = self._plan(collection, current)
        scope = collection.scope_directory(self._base)
        scope.mkdir(parents=True, exist_ok=True)
        context = MigrationContext(collection=collection, base=self._base, scope_path=scope)
        for step in plan:
            step.apply(context)
            self._versions[key] = step.to_version
            log.info(
                "Migrated %s %s -> %s: %s",
                collection.name,
                step.from_version,
                step.to_version,
                step.description,
            )
        self._record_version(collection, collection.version)

    def _plan(self, collection: CollectionConfig, current: int) -> List[MigrationModule]:
        by_source = {step.from_version: step for step in self._discover(collection.migrations)}
        plan: List[MigrationModule] = []
        version = current
        while version < collection.version:
            step = by_source.get(version)
            if step is None:
                raise MissingMigrationError(
                    f"Missing migration for {collection.name!r}: {version} -> {collection.version}"
                )
            plan.append(step)
            version = step.to_version
        if version != collection.version:
            raise MissingMigrationError(
                f"Incomplete migration chain for {collection.name!r}: {current} -> {collection.version}"
            )
        return plan

    def _discover(self, key: str) -> List[MigrationModule]:
        if key not in self._steps:
            directory = self._migrations_base / key
            found = []
            if directory.is_dir():
                for path in sorted(directory.glob("*.py")):
                    if path.name.startswith("__"):
                        continue
                    step = _import_migration(path, key)
                    if step is not None:
                        found.append(step)
            self._steps[key] = sorted(found, key=lambda step: step.from_version)
        return self._steps[key]

    def _versions_file(self, collection: CollectionConfig) -> Path:
        return collection.scope_directory(self._base) / VERSIONS_FILENAME

    def _stored_version(self, collection: CollectionConfig) -> int:
        payload = _read_toml(self._versions_file(collection))
        recorded = payload.get("collections") if isinstance(payload, Mapping) else None
        if not isinstance(recorded, Mapping):
            return 0
        try:
            return int(recorded.get(collection.migrations))
        except (TypeError, ValueError):
            return 0

    def _record_version(self, collection: CollectionConfig, version: int) -> None:
        path = self._versions_file(collection)
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping) or not isinstance(
            payload.get("collections"), MutableMapping
        ):
            payload = {"collections": {}}
        payload["collections"][collection.migrations] = int(version)
        _write_toml(path, payload)
        self._versions[collection.migrations] = version


# ---------------------------------------------------------------------------
# DataStore
# ---------------------------------------------------------------------------


class DataStore:
    """Asynchronous access to keyed record collections.

    Every call migrates its collection first and runs under one module-wide
    lock, so readers never observe a half-written record.
    """

    def __init__(
        self,
        *,
        storage_root: Path | None = None,
        project_root: Path | None = None,
    ) -> None:
        self._package_root = project_root or PROJECT_ROOT
        self._storage_root = storage_root or resolve_storage_root(self._package_root)
        self._collections = _load_storage_config(self._package_root / "config" / "storage.toml")
        self._versions = VersionManager(
            base=self._storage_root,
            migrations_base=self._package_root / "migrations",
        )

    @property
    def storage_root(self) -> Path:
        return self._storage_root

    def _ready(self, name: str) -> CollectionConfig:
        try:
            collection = self._collections[name]
        except KeyError as exc:
            raise KeyError(f"Unknown collection: {name}") from exc
        self._versions.ensure(collection)
        return collection

    async def get(self, collection: str) -> Mapping[str, Any]:
        """All readable records keyed by record key; unparsable files are skipped."""

        async with _STORAGE_LOCK:
            directory = self._ready(collection).record_directory(self._storage_root)
            records: Dict[str, Any] = {}
            if directory.is_dir():
                for path in sorted(directory.glob("*.toml")):
                    if path.name == VERSIONS_FILENAME:
                        continue
                    payload = _read_toml(path)
                    if isinstance(payload, Mapping):
                        records[unquote(path.stem)] = payload
            return MappingProxyType(records)

    async def get_record(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """The record stored under ``key``, or ``None`` when there is none.

        A file that exists but cannot be parsed raises
        :class:`tomllib.TOMLDecodeError`.
        """

        async with _STORAGE_LOCK:
            config = self._ready(collection)
            payload = _load_toml(config.record_path(self._storage_root, key))
            return dict(payload) if isinstance(payload, Mapping) else None

    async def set(self, collection: str, key: str, value: Mapping[str, Any]) -> None:
        async with _STORAGE_LOCK:
            config = self._ready(collection)
            _write_toml(config.record_path(self._storage_root, key), deepcopy(value))

    async def delete(self, collection: str, key: str) -> bool:
        """Remove ``key``; returns whether anything was stored under it."""

        async with _STORAGE_LOCK:
            config = self._ready(collection)
            try:
                config.record_path(self._storage_root, key).unlink()
            except FileNotFoundError:
                return False
            return True


# ---------------------------------------------------------------------------
# Character builds
# ---------------------------------------------------------------------------


BUILDS_COLLECTION = "builds"


class BuildRepository:
    """Save, load, list and delete finalised character builds."""

    def __init__(self, store: DataStore | None = None, *, collection: str = BUILDS_COLLECTION) -> None:
        self._store = store or DataStore()
        self._collection = collection

    async def save_build(self, build: CharacterBuild) -> str:
        await self._store.set(self._collection, build.id, build.to_dict())
        log.info("Saved build %s (%s)", build.id, build.name)
        return build.id

    async def load_build(self, build_id: str) -> CharacterBuild:
        """Read one build.

        Raises ``KeyError`` when nothing is stored under ``build_id`` and
        :class:`MalformedBuild` when the stored file is unreadable.
        """

        try:
            record = await self._store.get_record(self._collection, build_id)
        except tomllib.TOMLDecodeError as exc:
            raise MalformedBuild([f"Build file for {build_id!r} is not valid TOML: {exc}"]) from exc
        if record is None:
            raise KeyError(f"No build stored under {build_id!r}")
        return CharacterBuild.from_dict(record)

    async def list_builds(self) -> List[CharacterBuild]:
        """Every readable build, newest first; malformed records are skipped."""

        records = await self._store.get(self._collection)
        builds: List[CharacterBuild] = []
        for key, record in records.items():
            try:
                builds.append(CharacterBuild.from_dict(record))
            except MalformedBuild as exc:
                log.warning("Skipping malformed build %s: %s", key, exc)
        builds.sort(key=lambda build: (-build.created_at, build.id))
        return builds

    async def delete_build(self, build_id: str) -> bool:
        removed = await self._store.delete(self._collection, build_id)
        if removed:
            log.info("Deleted build %s", build_id)
        return removed


__all__ = [
    "BUILDS_COLLECTION",
    "BuildRepository",
    "CollectionConfig",
    "DataStore",
    "MissingMigrationError",
    "VersionManager",
    "resolve_storage_root",
]
