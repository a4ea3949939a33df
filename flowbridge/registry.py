"""flowbridge.registry

Mapping registry: per-type conversion records for both directions.

Lookup order for `MappingRegistry.lookup(type, direction)`:
1. exact type match
2. prefix-only match for namespaced types (`http:ActionSendData` -> `http`,
   `n8n-nodes-base.httpRequest` -> `n8n-nodes-base`)
3. special aliases: the variable-assignment family and the webhook family

Lookup returns None when nothing applies; callers decide the fallback policy.
A registry never changes after construction, so it can be shared freely.
"""

from __future__ import annotations

import copy
import functools
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Tuple, Union

from .defaults import DEFAULT_MAPPING_DB
from .errors import MappingDatabaseError
from .platforms import Direction, EntityKind

logger = logging.getLogger(__name__)

CustomTransform = Callable[[Dict[str, Any], Dict[str, Any]], Optional[Dict[str, Any]]]
ValueTransform = Union[str, Callable[[Any], Any]]

_MISSING = object()


# ---------------------------------------------------------------------------
# Named value transforms
# ---------------------------------------------------------------------------


def _boolean_to_string(v: Any) -> Any:
    return ("1" if v else "0") if isinstance(v, bool) else v


def _string_to_boolean(v: Any) -> Any:
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("1", "true"):
            return True
        if s in ("0", "false"):
            return False
    return v


def _number_to_string(v: Any) -> Any:
    return str(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v


def _string_to_number(v: Any) -> Any:
    if not isinstance(v, str):
        return v
    try:
        f = float(v.strip())
    except ValueError:
        return v
    return int(f) if f.is_integer() and "." not in v else f


def _to_array(v: Any) -> Any:
    if v is None:
        return []
    return list(v) if isinstance(v, (list, tuple)) else [v]


def _json_stringify(v: Any) -> Any:
    return v if isinstance(v, str) else json.dumps(v, ensure_ascii=False)


def _json_parse(v: Any) -> Any:
    if not isinstance(v, str):
        return v
    try:
        return json.loads(v)
    except ValueError:
        return v


NAMED_TRANSFORMS: Mapping[str, Callable[[Any], Any]] = MappingProxyType(
    {
        "booleanToString": _boolean_to_string,
        "stringToBoolean": _string_to_boolean,
        "toUpperCase": lambda v: v.upper() if isinstance(v, str) else v,
        "toLowerCase": lambda v: v.lower() if isinstance(v, str) else v,
        "numberToString": _number_to_string,
        "stringToNumber": _string_to_number,
        "toArray": _to_array,
        "jsonStringify": _json_stringify,
        "jsonParse": _json_parse,
    }
)


def apply_named_transform(value: Any, transform: ValueTransform) -> Tuple[Any, bool]:
    """Apply a named or callable transform. Returns (value, known)."""
    if callable(transform):
        return transform(value), True
    fn = NAMED_TRANSFORMS.get(str(transform))
    if fn is None:
        return value, False
    return fn(value), True


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class ParameterRule(NamedTuple):
    """One entry of a parameter-path map.

    source_path None means "no source value": only `default` is written.
    """

    source_path: Optional[str]
    target_path: str
    transform: Optional[ValueTransform] = None
    default: Any = _MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING


class MappingRecord(NamedTuple):
    source_type: str
    target_type: str
    direction: Direction
    rules: Tuple[ParameterRule, ...] = ()
    kind: EntityKind = EntityKind.GENERIC
    custom_transform: Optional[CustomTransform] = None
    version: str = "1.0.0"
    description: str = ""

    @property
    def mapped_source_paths(self) -> Tuple[str, ...]:
        return tuple(r.source_path for r in self.rules if r.source_path)


def _parse_rules(raw: Any, *, where: str) -> Tuple[ParameterRule, ...]:
    """Accept {"src": {"targetPath": ...}} or {"src": "dst"} or [{"sourcePath", "targetPath"}]."""
    rules: List[ParameterRule] = []
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        items: Iterable[Tuple[Optional[str], Any]] = raw.items()
    elif isinstance(raw, list):
        items = [(r.get("sourcePath") if isinstance(r, Mapping) else None, r) for r in raw]
    else:
        raise MappingDatabaseError(f"{where}: parameterMappings must be a dict or list")

    for src, spec in items:
        if isinstance(spec, str):
            rules.append(ParameterRule(source_path=src, target_path=spec))
            continue
        if not isinstance(spec, Mapping):
            raise MappingDatabaseError(f"{where}: invalid parameter mapping for {src!r}")
        target = spec.get("targetPath") or spec.get("target") or src
        if not isinstance(target, str) or not target:
            raise MappingDatabaseError(f"{where}: parameter mapping for {src!r} has no targetPath")
        default = spec["defaultValue"] if "defaultValue" in spec else spec.get("default", _MISSING)
        rules.append(
            ParameterRule(
                source_path=src if isinstance(src, str) and src else None,
                target_path=target,
                transform=spec.get("transform"),
                default=default if default is _MISSING else copy.deepcopy(default),
            )
        )
    return tuple(rules)


def _entries(db: Mapping[str, Any]) -> Iterator[Tuple[str, Mapping[str, Any]]]:
    maps = db.get("mappings")
    if isinstance(maps, Mapping):
        for k, v in maps.items():
            yield str(k), v
    elif isinstance(maps, list):
        for i, v in enumerate(maps):
            yield str(i), v
    else:
        raise MappingDatabaseError("Mapping database missing 'mappings' (dict or list)")


def records_from_database(db: Mapping[str, Any]) -> List[MappingRecord]:
    """Flatten a mapping database into directional records.

    Two entry shapes are accepted:
    - paired: {"n8nNodeType", "makeModuleId", "parameterMappings": {"n8nToMake": {...}, "makeToN8n": {...}}}
      (one record per direction; `oneWay: "n8nToMake"` restricts it)
    - directional: {"sourceType", "targetType", "direction", "parameterMappings": {...}}
    """
    if not isinstance(db, Mapping):
        raise MappingDatabaseError("Mapping database must be a dictionary")
    version = str(db.get("version") or "1.0.0")
    out: List[MappingRecord] = []
    for key, entry in _entries(db):
        where = f"mapping {key!r}"
        if not isinstance(entry, Mapping):
            raise MappingDatabaseError(f"{where}: expected a dictionary")
        kind = EntityKind.parse(entry.get("kind"), EntityKind.GENERIC)
        desc = str(entry.get("description") or "")
        ver = str(entry.get("version") or version)
        pm = entry.get("parameterMappings") or {}

        if "sourceType" in entry:
            try:
                direction = Direction.parse(entry.get("direction") or "n8nToMake")
            except ValueError as e:
                raise MappingDatabaseError(f"{where}: {e}")
            target = entry.get("targetType")
            if not isinstance(target, str) or not target:
                raise MappingDatabaseError(f"{where}: missing targetType")
            out.append(
                MappingRecord(
                    source_type=str(entry["sourceType"]),
                    target_type=target,
                    direction=direction,
                    rules=_parse_rules(pm, where=where),
                    kind=kind,
                    custom_transform=entry.get("customTransform") if callable(entry.get("customTransform")) else None,
                    version=ver,
                    description=desc,
                )
            )
            continue

        n8n_type = entry.get("n8nNodeType")
        make_type = entry.get("makeModuleId") or entry.get("makeModuleType")
        if not isinstance(n8n_type, str) or not isinstance(make_type, str):
            raise MappingDatabaseError(f"{where}: needs n8nNodeType and makeModuleId")
        try:
            one_way = Direction.parse(entry["oneWay"]) if entry.get("oneWay") else None
        except ValueError as e:
            raise MappingDatabaseError(f"{where}: {e}")
        transforms = entry.get("customTransform")
        for direction in Direction:
            if one_way is not None and one_way is not direction:
                continue
            src, dst = (n8n_type, make_type) if direction is Direction.N8N_TO_MAKE else (make_type, n8n_type)
            if isinstance(pm, Mapping) and any(k in pm for k in ("n8nToMake", "makeToN8n")):
                raw_rules = pm.get(direction.key)
            else:
                raw_rules = pm
            ct = transforms.get(direction.key) if isinstance(transforms, Mapping) else transforms
            out.append(
                MappingRecord(
                    source_type=src,
                    target_type=dst,
                    direction=direction,
                    rules=_parse_rules(raw_rules, where=where),
                    kind=kind,
                    custom_transform=ct if callable(ct) else None,
                    version=ver,
                    description=desc,
                )
            )
    return out


# ---------------------------------------------------------------------------
# Type helpers + family heuristics
# ---------------------------------------------------------------------------


def split_type(entity_type: str) -> Tuple[str, str]:
    """Split a namespaced type into (prefix, suffix).

    Make types use ':' (`http:ActionSendData`); n8n types use the last '.'
    (`n8n-nodes-base.httpRequest`). Types without a separator return ("", type).
    """
    t = str(entity_type or "")
    if ":" in t:
        p, _, s = t.partition(":")
        return p, s
    if "." in t:
        p, _, s = t.rpartition(".")
        return p, s
    return "", t


def is_variables_family(entity_type: str) -> bool:
    _, suffix = split_type(entity_type)
    s = suffix.lower()
    return "setvariable" in s or s in ("set", "setvariables")


def is_webhook_family(entity_type: str) -> bool:
    prefix, suffix = split_type(entity_type)
    return prefix.lower() in ("webhook", "webhooks", "gateway") or "webhook" in suffix.lower()


# Heuristic families for types without any mapping. Only core namespaces are
# considered, and the lower-cased suffix must equal one of the family names.
_FAMILY_PREFIXES = frozenset({"", "builtin", "code", "util", "helper", "n8n-nodes-base"})
_FAMILY_SUFFIXES: Tuple[Tuple[EntityKind, Tuple[str, ...]], ...] = (
    (EntityKind.ROUTER, ("basicrouter", "router", "switch")),
    (EntityKind.WEBHOOK, ("webhook", "customwebhook")),
    (EntityKind.CODE, ("code", "executecode", "function", "functionitem", "javascript", "python")),
    (EntityKind.NOTE, ("note", "stickynote", "comment")),
)


def guess_family(entity_type: str) -> Optional[EntityKind]:
    """Best-effort family for an unmapped type, or None.

    `gateway:*` and `webhook:*` are webhooks; otherwise the prefix must be a
    core namespace and the suffix an exact family name, so app modules such
    as `google-maps:geocode` never match.
    """
    prefix, suffix = split_type(entity_type)
    p = prefix.lower()
    if p in ("webhook", "webhooks", "gateway"):
        return EntityKind.WEBHOOK
    if p not in _FAMILY_PREFIXES:
        return None
    s = suffix.lower()
    for kind, names in _FAMILY_SUFFIXES:
        if s in names:
            return kind
    return None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class MappingRegistry:
    """Immutable lookup table of MappingRecords keyed by (direction, source type)."""

    def __init__(self, records: Iterable[MappingRecord] = (), *, version: str = "1.0.0"):
        tables: Dict[Direction, Dict[str, MappingRecord]] = {d: {} for d in Direction}
        aliases: Dict[Direction, Dict[EntityKind, MappingRecord]] = {d: {} for d in Direction}
        for rec in records:
            table = tables[rec.direction]
            if rec.source_type in table:
                logger.debug("mapping for %s (%s) overridden", rec.source_type, rec.direction.value)
            table[rec.source_type] = rec
            if rec.kind in (EntityKind.VARIABLES, EntityKind.WEBHOOK):
                aliases[rec.direction].setdefault(rec.kind, rec)
        self._tables = MappingProxyType({d: MappingProxyType(t) for d, t in tables.items()})
        self._aliases = MappingProxyType({d: MappingProxyType(a) for d, a in aliases.items()})
        self.version = str(version)

    @classmethod
    def from_database(cls, db: Mapping[str, Any], *, extra: Iterable[MappingRecord] = ()) -> "MappingRegistry":
        records = records_from_database(db)
        records.extend(extra)
        return cls(records, version=str(db.get("version") or "1.0.0"))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "MappingRegistry":
        return cls.from_database(load_mapping_database(path))

    def __repr__(self) -> str:
        counts = ", ".join(f"{d.value}={len(t)}" for d, t in self._tables.items())
        return f"MappingRegistry(version={self.version!r}, {counts})"

    def __len__(self) -> int:
        return sum(len(t) for t in self._tables.values())

    def records(self, direction: Optional[Direction] = None) -> List[MappingRecord]:
        if direction is None:
            return [r for t in self._tables.values() for r in t.values()]
        return list(self._tables[Direction.parse(direction)].values())

    def has(self, entity_type: str, direction: Direction) -> bool:
        return entity_type in self._tables[Direction.parse(direction)]

    def lookup(self, entity_type: Any, direction: Any) -> Optional[MappingRecord]:
        if not isinstance(entity_type, str) or not entity_type:
            return None
        d = Direction.parse(direction)
        table = self._tables[d]

        rec = table.get(entity_type)
        if rec is not None:
            return rec

        prefix, _ = split_type(entity_type)
        if prefix:
            rec = table.get(prefix) or table.get(f"{prefix}:*") or table.get(f"{prefix}.*")
            if rec is not None:
                return rec

        alias = self._aliases[d]
        if is_variables_family(entity_type) and EntityKind.VARIABLES in alias:
            return alias[EntityKind.VARIABLES]
        if is_webhook_family(entity_type) and EntityKind.WEBHOOK in alias:
            return alias[EntityKind.WEBHOOK]
        return None

    def kind_of(self, entity_type: Any, direction: Any) -> EntityKind:
        """Dispatch tag for an entity type: the record's kind, else the heuristic family, else PLACEHOLDER."""
        rec = self.lookup(entity_type, direction)
        if rec is not None:
            return rec.kind
        fam = guess_family(str(entity_type or ""))
        return fam if fam is not None else EntityKind.PLACEHOLDER

    def target_types(self, kind: EntityKind, direction: Any) -> List[str]:
        """Target types of every record of the given kind (first registered first)."""
        d = Direction.parse(direction)
        seen: List[str] = []
        for rec in self._tables[d].values():
            if rec.kind is kind and rec.target_type not in seen:
                seen.append(rec.target_type)
        return seen


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_mapping_database(file_path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            result = json.loads(f.read())
            if not isinstance(result, dict):
                raise ValueError("Invalid mapping database: expected dictionary")
            return result
    except FileNotFoundError:
        raise MappingDatabaseError(f"Mapping database not found: {file_path}")
    except json.JSONDecodeError as e:
        raise MappingDatabaseError(f"Invalid JSON in mapping database {file_path}: {str(e)}")
    except UnicodeDecodeError as e:
        raise MappingDatabaseError(f"Encoding error reading mapping database {file_path}: {str(e)}")
    except Exception as e:
        raise MappingDatabaseError(f"Unexpected error loading mapping database {file_path}: {str(e)}")


@functools.lru_cache(maxsize=None)
def _cached_registry(path: str) -> MappingRegistry:
    if path:
        return MappingRegistry.from_file(path)
    from .mappings import builtin_database

    return MappingRegistry.from_database(builtin_database())


def default_registry(mapping_db: Optional[Union[str, Path]] = None) -> MappingRegistry:
    """Process-wide cached registry.

    Source precedence: mapping_db arg -> FLOWBRIDGE_MAPPING_DB -> built-in database.
    """
    path = str(mapping_db) if mapping_db else DEFAULT_MAPPING_DB
    return _cached_registry(path)


def resolve_registry(registry: Any = None) -> MappingRegistry:
    """Accept a MappingRegistry, a database dict, a JSON path, or None (default registry)."""
    if isinstance(registry, MappingRegistry):
        return registry
    if registry is None:
        return default_registry()
    if isinstance(registry, Mapping):
        return MappingRegistry.from_database(registry)
    if isinstance(registry, (str, Path)):
        return default_registry(registry)
    raise TypeError(f"registry must be a MappingRegistry, dict or path, got {type(registry).__name__}")
