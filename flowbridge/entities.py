"""flowbridge.entities

Entity conversion: one n8n node <-> one Make module.

Dispatch is by EntityKind (resolved through the registry): structurally
divergent kinds (variables, router, IF, webhook, HTTP auth, code, note) have a
dedicated handler, everything else goes through the record's parameter rules.
Types with no mapping are matched against a few known families; anything left
becomes a placeholder that keeps the original type, name and parameters under
`__stubInfo`.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple

from .defaults import (
    DEFAULT_POSITION_STEP,
    MAKE_CONNECTION_PREFIX,
    MAKE_PLACEHOLDER_TYPE,
    N8N_PLACEHOLDER_TYPE,
)
from .diagnostics import Diagnostics
from .errors import CustomTransformError, ErrorCategory, MappingNotFoundError, error_details
from .options import ConversionOptions
from .params import ParameterProcessor
from .platforms import Direction, EntityKind, Platform
from .registry import MappingRecord, MappingRegistry, guess_family

logger = logging.getLogger(__name__)

STUB_KEY = "__stubInfo"
# Original type and parameters of an entity converted by a family heuristic.
SOURCE_INFO_KEY = "__sourceInfo"


# ---------------------------------------------------------------------------
# Fixed tables
# ---------------------------------------------------------------------------

# n8n condition operation -> Make route operator
OPERATORS_N8N_TO_MAKE: Dict[str, str] = {
    "equal": "equal",
    "notEqual": "notEqual",
    "larger": "greaterThan",
    "largerEqual": "greaterThanOrEqual",
    "smaller": "lessThan",
    "smallerEqual": "lessThanOrEqual",
    "contains": "contains",
    "notContains": "notContains",
    "startsWith": "startsWith",
    "endsWith": "endsWith",
    "regex": "regex",
    "isEmpty": "isEmpty",
    "isNotEmpty": "isNotEmpty",
    "else": "else",
}
OPERATORS_MAKE_TO_N8N: Dict[str, str] = {v: k for k, v in OPERATORS_N8N_TO_MAKE.items()}

# Newer n8n operator spellings (IF/Switch v2 filter objects).
_N8N_OPERATOR_ALIASES = {
    "equals": "equal",
    "notEquals": "notEqual",
    "gt": "larger",
    "gte": "largerEqual",
    "lt": "smaller",
    "lte": "smallerEqual",
    "empty": "isEmpty",
    "notEmpty": "isNotEmpty",
}

# Make filter tokens (`text:equal`, `number:greater`, ...) after dropping the type prefix.
_MAKE_FILTER_OPERATORS = {
    "equal": "equal",
    "notequal": "notEqual",
    "greater": "larger",
    "greaterorequal": "largerEqual",
    "less": "smaller",
    "lessorequal": "smallerEqual",
    "contain": "contains",
    "notcontain": "notContains",
    "startswith": "startsWith",
    "endswith": "endsWith",
    "pattern": "regex",
    "notexist": "isEmpty",
    "exist": "isNotEmpty",
    "eq": "equal",
    "neq": "notEqual",
}

# n8n authentication token -> Make credential bag type
AUTH_N8N_TO_MAKE: Dict[str, str] = {
    "basicAuth": "basic",
    "headerAuth": "header",
    "oAuth2": "oauth2",
    "queryAuth": "apiKey",
}
AUTH_MAKE_TO_N8N: Dict[str, str] = {v: k for k, v in AUTH_N8N_TO_MAKE.items()}

_AUTH_BAG_FIELDS: Dict[str, Dict[str, str]] = {
    "basic": {"username": "", "password": ""},
    "header": {"name": "", "value": ""},
    "oauth2": {"accessToken": "", "tokenType": "Bearer"},
    "apiKey": {"key": "", "value": "", "in": "query"},
}

# n8n responseMode <-> Make responseMode
RESPONSE_MODES_N8N_TO_MAKE: Dict[str, str] = {
    "onReceived": "on receive",
    "lastNode": "last module",
    "responseNode": "webhook response",
}
RESPONSE_MODES_MAKE_TO_N8N: Dict[str, str] = {v: k for k, v in RESPONSE_MODES_N8N_TO_MAKE.items()}

DEFAULT_WEBHOOK_METHOD = "GET"
DEFAULT_N8N_RESPONSE_MODE = "onReceived"
DEFAULT_MAKE_RESPONSE_MODE = "on receive"

# Target types used for heuristic families when the registry has no record of that kind.
FAMILY_TARGET_TYPES: Dict[Platform, Dict[EntityKind, str]] = {
    Platform.N8N: {
        EntityKind.ROUTER: "n8n-nodes-base.switch",
        EntityKind.WEBHOOK: "n8n-nodes-base.webhook",
        EntityKind.CODE: "n8n-nodes-base.code",
        EntityKind.NOTE: "n8n-nodes-base.stickyNote",
    },
    Platform.MAKE: {
        EntityKind.ROUTER: "builtin:BasicRouter",
        EntityKind.WEBHOOK: "gateway:CustomWebHook",
        EntityKind.CODE: "code:ExecuteCode",
        EntityKind.NOTE: "helper:Note",
    },
}

PLACEHOLDER_TYPES: Dict[Platform, str] = {
    Platform.N8N: N8N_PLACEHOLDER_TYPE,
    Platform.MAKE: MAKE_PLACEHOLDER_TYPE,
}


# ---------------------------------------------------------------------------
# Entity accessors + default application (pure)
# ---------------------------------------------------------------------------


def entity_type(entity: Mapping[str, Any], platform: Platform) -> str:
    if platform is Platform.MAKE:
        t = entity.get("module") or entity.get("type")
    else:
        t = entity.get("type")
    return t if isinstance(t, str) else ""


def entity_name(entity: Mapping[str, Any], platform: Platform) -> Optional[str]:
    if platform is Platform.MAKE:
        for key in ("label", "name"):
            v = entity.get(key)
            if isinstance(v, str) and v:
                return v
        designer = (entity.get("metadata") or {}).get("designer") if isinstance(entity.get("metadata"), dict) else None
        if isinstance(designer, dict) and isinstance(designer.get("name"), str) and designer.get("name"):
            return designer["name"]
        return None
    v = entity.get("name")
    return v if isinstance(v, str) and v else None


def entity_parameters(entity: Mapping[str, Any], platform: Platform) -> Dict[str, Any]:
    """Source parameter tree. Make modules merge `parameters` (minus connections) with `mapper`."""
    if platform is Platform.N8N:
        p = entity.get("parameters")
        return dict(p) if isinstance(p, dict) else {}
    out: Dict[str, Any] = {}
    params = entity.get("parameters")
    if isinstance(params, dict):
        out.update({k: v for k, v in params.items() if not str(k).startswith(MAKE_CONNECTION_PREFIX)})
    mapper = entity.get("mapper")
    if isinstance(mapper, dict):
        out.update(mapper)
    return out


def entity_position(entity: Mapping[str, Any], platform: Platform) -> Optional[Tuple[float, float]]:
    if platform is Platform.N8N:
        pos = entity.get("position")
        if isinstance(pos, (list, tuple)) and len(pos) >= 2 and all(isinstance(v, (int, float)) for v in pos[:2]):
            return pos[0], pos[1]
        return None
    meta = entity.get("metadata")
    designer = meta.get("designer") if isinstance(meta, dict) else None
    if isinstance(designer, dict) and isinstance(designer.get("x"), (int, float)) and isinstance(designer.get("y"), (int, float)):
        return designer["x"], designer["y"]
    pos = entity.get("position")
    if isinstance(pos, (list, tuple)) and len(pos) >= 2:
        return pos[0], pos[1]
    return None


def default_position(index: int, step: int = DEFAULT_POSITION_STEP) -> Tuple[int, int]:
    return index * step, 0


def coerce_id(value: Any, platform: Platform) -> Any:
    """Source id in the target platform's id type (n8n: str, Make: int when numeric)."""
    if platform is Platform.N8N:
        return str(value)
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return value
    s = str(value)
    return int(s) if s.isdigit() else s


def new_shell(platform: Platform, entity_id: Any, type_: str, name: str, position: Tuple[Any, Any]) -> Dict[str, Any]:
    """Empty target entity with platform defaults applied."""
    if platform is Platform.N8N:
        return {
            "id": entity_id,
            "name": name,
            "type": type_,
            "typeVersion": 1,
            "position": [position[0], position[1]],
            "parameters": {},
        }
    return {
        "id": entity_id,
        "module": type_,
        "version": 1,
        "label": name,
        "parameters": {},
        "mapper": {},
        "metadata": {"designer": {"x": position[0], "y": position[1]}},
    }


def target_parameters(shell: Dict[str, Any], platform: Platform) -> Dict[str, Any]:
    """The dict that receives converted parameters (n8n: parameters, Make: mapper)."""
    key = "parameters" if platform is Platform.N8N else "mapper"
    p = shell.get(key)
    if not isinstance(p, dict):
        p = {}
        shell[key] = p
    return p


def deep_merge(dst: Any, src: Any) -> Any:
    """Deep-merge src into dst (dicts recurse, other collisions overwrite with src)."""
    if not isinstance(dst, dict) or not isinstance(src, dict):
        return src
    for k, v in src.items():
        if k in dst and isinstance(dst.get(k), dict) and isinstance(v, dict):
            deep_merge(dst[k], v)
        else:
            dst[k] = v
    return dst


def map_credentials(entity: Mapping[str, Any], shell: Dict[str, Any], direction: Direction) -> int:
    """n8n `credentials{name: value}` <-> Make `parameters["__IMTCONN__" + name]`. Returns count."""
    n = 0
    if direction is Direction.N8N_TO_MAKE:
        creds = entity.get("credentials")
        if isinstance(creds, dict):
            params = shell.setdefault("parameters", {})
            for name, value in creds.items():
                params[f"{MAKE_CONNECTION_PREFIX}{name}"] = copy.deepcopy(value)
                n += 1
        return n
    params = entity.get("parameters")
    if not isinstance(params, dict):
        return 0
    creds_out: Dict[str, Any] = {}
    for key, value in params.items():
        if str(key).startswith(MAKE_CONNECTION_PREFIX):
            creds_out[str(key)[len(MAKE_CONNECTION_PREFIX):]] = copy.deepcopy(value)
    if creds_out:
        shell["credentials"] = creds_out
        n = len(creds_out)
    return n


def map_operator(op: Any, direction: Direction) -> Tuple[Any, bool]:
    """Map a condition operator token. Returns (token, known); unknown tokens pass through."""
    if not isinstance(op, str) or not op:
        return op, False
    if direction is Direction.N8N_TO_MAKE:
        key = _N8N_OPERATOR_ALIASES.get(op, op)
        if key in OPERATORS_N8N_TO_MAKE:
            return OPERATORS_N8N_TO_MAKE[key], True
        return op, False
    if op in OPERATORS_MAKE_TO_N8N:
        return OPERATORS_MAKE_TO_N8N[op], True
    token = op.split(":", 1)[1] if ":" in op else op
    token = token.split(":", 1)[0].lower()
    if token in _MAKE_FILTER_OPERATORS:
        return _MAKE_FILTER_OPERATORS[token], True
    return op, False


class EntityResult(NamedTuple):
    entity: Dict[str, Any]
    source_id: str
    source_name: str
    kind: EntityKind
    mapped: bool = True
    placeholder: bool = False
    branches: int = 0


Handler = Callable[[Dict[str, Any], Dict[str, Any], Dict[str, Any], MappingRecord], int]


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------


class EntityConverter:
    """Converts single entities for one direction.

    node_ids / node_names feed the expression transpiler so that node
    references can be rewritten to the ids/names planned for the target.
    """

    def __init__(
        self,
        registry: MappingRegistry,
        direction: Direction,
        options: Optional[ConversionOptions] = None,
        diagnostics: Optional[Diagnostics] = None,
        *,
        node_ids: Optional[Mapping[str, Any]] = None,
        node_names: Optional[Mapping[str, str]] = None,
    ):
        self.registry = registry
        self.direction = Direction.parse(direction)
        self.source = self.direction.source
        self.target = self.direction.target
        self.options = options or ConversionOptions()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.processor = ParameterProcessor(self.direction, self.options, node_ids=node_ids, node_names=node_names)
        self._handlers: Dict[EntityKind, Handler] = {
            EntityKind.VARIABLES: self._convert_variables,
            EntityKind.ROUTER: self._convert_router,
            EntityKind.CONDITIONAL: self._convert_conditional,
            EntityKind.WEBHOOK: self._convert_webhook,
            EntityKind.HTTP: self._convert_http,
            EntityKind.CODE: self._convert_code,
            EntityKind.NOTE: self._convert_note,
        }

    def __repr__(self) -> str:
        return f"EntityConverter({self.direction.value}, registry={self.registry!r})"

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def convert(self, entity: Dict[str, Any], *, target_id: Any, target_name: str, index: int) -> EntityResult:
        """Convert one entity. Raises MappingNotFoundError in strict mode when only a placeholder would do."""
        stype = entity_type(entity, self.source)
        src_id = str(entity.get("id", index + 1))
        position = entity_position(entity, self.source) or default_position(index)

        restored = self._restore_stub(entity, target_id, target_name, position)
        if restored is not None:
            return restored

        record = self.registry.lookup(stype, self.direction)
        heuristic = False
        if record is None:
            family = guess_family(stype)
            if family is None or family not in self._handlers:
                if self.options.strict_mode:
                    raise MappingNotFoundError(stype, self.direction)
                return self.placeholder(entity, target_id=target_id, target_name=target_name, index=index)
            record = MappingRecord(
                source_type=stype,
                target_type=self._family_target_type(family),
                direction=self.direction,
                kind=family,
            )
            heuristic = True

        shell = new_shell(self.target, target_id, record.target_type, target_name, position)
        src_params = entity_parameters(entity, self.source)
        ctx: Dict[str, Any] = {"name": target_name, "type": stype}

        handler = self._handlers.get(record.kind)
        if handler is not None:
            branches = handler(entity, shell, src_params, record)
        else:
            branches = self._convert_generic(entity, shell, src_params, record)

        if heuristic:
            target_parameters(shell, self.target)[SOURCE_INFO_KEY] = {
                "originalType": stype,
                "originalName": entity_name(entity, self.source) or target_name,
                "originalPlatform": self.source.value,
                "originalParameters": copy.deepcopy(src_params),
            }
        map_credentials(entity, shell, self.direction)
        if record.custom_transform is not None:
            self._apply_custom_transform(entity, shell, record, ctx)

        self._flush_processor(target_name)
        if heuristic:
            self.diagnostics.info(
                f"No mapping for type {stype}; converted '{target_name}' as a {record.kind.value} entity ({record.target_type})",
                category=ErrorCategory.MAPPING,
                entity=str(target_id),
            )
            self.diagnostics.flag(target_name, f"Converted by {record.kind.value} heuristic from {stype}; verify parameters")
        self.diagnostics.mark_mapped()
        self.diagnostics.record(
            source=src_id,
            target=str(target_id),
            sourceType=stype,
            targetType=record.target_type,
            kind=record.kind.value,
            heuristic=heuristic,
        )
        return EntityResult(
            entity=shell,
            source_id=src_id,
            source_name=entity_name(entity, self.source) or target_name,
            kind=record.kind,
            mapped=True,
            placeholder=False,
            branches=branches,
        )

    def placeholder(
        self,
        entity: Mapping[str, Any],
        *,
        target_id: Any,
        target_name: str,
        index: int,
        reason: Optional[str] = None,
    ) -> EntityResult:
        """Neutral no-op entity carrying the original type, name and parameters under __stubInfo."""
        stype = entity_type(entity, self.source) or "unknown"
        src_name = entity_name(entity, self.source) or target_name
        position = entity_position(entity, self.source) or default_position(index)
        ptype = PLACEHOLDER_TYPES[self.target]
        note = f"This {'node' if self.source is Platform.N8N else 'module'} could not be converted automatically. Original type: {stype}"
        stub = {
            "originalType": stype,
            "originalName": src_name,
            "originalPlatform": self.source.value,
            "originalParameters": copy.deepcopy(entity_parameters(entity, self.source)),
            "note": note,
        }
        shell = new_shell(self.target, target_id, ptype, target_name, position)
        params = target_parameters(shell, self.target)
        if self.target is Platform.N8N:
            params["displayName"] = f"Placeholder for {src_name} ({stype})"
        else:
            params["note"] = note
        params[STUB_KEY] = stub
        map_credentials(entity, shell, self.direction)

        msg = reason or f"No mapping found for type: {stype}; created placeholder for '{src_name}'"
        self.diagnostics.warning(msg, category=ErrorCategory.MAPPING, entity=str(target_id), details={"type": stype})
        self.diagnostics.flag(target_name, f"Placeholder for unmapped type {stype}")
        self.diagnostics.mark_unmapped(target_id)
        self.diagnostics.record(source=str(entity.get("id", "")), target=str(target_id), sourceType=stype, targetType=ptype, kind="placeholder")
        # Parameters of a placeholder are stored verbatim; nothing from the processor applies.
        self.processor.drain()
        return EntityResult(
            entity=shell,
            source_id=str(entity.get("id", index + 1)),
            source_name=src_name,
            kind=EntityKind.PLACEHOLDER,
            mapped=False,
            placeholder=True,
            branches=0,
        )

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _family_target_type(self, family: EntityKind) -> str:
        known = self.registry.target_types(family, self.direction)
        return known[0] if known else FAMILY_TARGET_TYPES[self.target][family]

    def _flush_processor(self, entity_name_: str) -> None:
        review, warnings = self.processor.drain()
        for path, reason in review:
            self.diagnostics.flag(entity_name_, reason, path)
        for w in warnings:
            self.diagnostics.warning(f"{entity_name_}: {w}", category=ErrorCategory.TRANSFORM, entity=entity_name_)

    def _apply_custom_transform(
        self, entity: Dict[str, Any], shell: Dict[str, Any], record: MappingRecord, ctx: Dict[str, Any]
    ) -> None:
        ctx = dict(ctx, direction=self.direction.value, options=self.options, target=copy.deepcopy(shell))
        try:
            try:
                out = record.custom_transform(copy.deepcopy(entity), ctx)  # type: ignore[misc]
            except Exception as e:
                raise CustomTransformError(record.source_type, e) from e
            if out is None:
                return
            if not isinstance(out, Mapping):
                raise CustomTransformError(record.source_type, TypeError(f"expected a dict, got {type(out).__name__}"))
            deep_merge(shell, copy.deepcopy(dict(out)))
        except CustomTransformError as e:
            self.diagnostics.error(
                f"{ctx.get('name')}: {e}",
                category=ErrorCategory.TRANSFORM,
                entity=str(shell.get("id")),
                details=error_details(e.cause),
            )

    def _restore_stub(
        self, entity: Mapping[str, Any], target_id: Any, target_name: str, position: Tuple[Any, Any]
    ) -> Optional[EntityResult]:
        """Turn a placeholder created by the opposite conversion back into its original entity."""
        if entity_type(entity, self.source) != PLACEHOLDER_TYPES[self.source]:
            return None
        stub = entity_parameters(entity, self.source).get(STUB_KEY)
        if not isinstance(stub, dict) or stub.get("originalPlatform") != self.target.value:
            return None
        otype = stub.get("originalType")
        if not isinstance(otype, str) or not otype:
            return None
        shell = new_shell(self.target, target_id, otype, target_name, position)
        params = stub.get("originalParameters")
        if isinstance(params, dict):
            target_parameters(shell, self.target).update(copy.deepcopy(params))
        map_credentials(entity, shell, self.direction)
        self.diagnostics.info(
            f"Restored original {otype} entity '{target_name}' from placeholder",
            category=ErrorCategory.MAPPING,
            entity=str(target_id),
        )
        self.diagnostics.mark_mapped()
        return EntityResult(
            entity=shell,
            source_id=str(entity.get("id", "")),
            source_name=entity_name(entity, self.source) or target_name,
            kind=EntityKind.GENERIC,
        )

    # ------------------------------------------------------------------
    # Kind handlers: (entity, shell, source params, record) -> branch count
    # ------------------------------------------------------------------

    def _convert_generic(self, entity, shell, src, record) -> int:
        out = target_parameters(shell, self.target)
        out.update(self.processor.map_parameters(src, record))
        return 0

    def _convert_http(self, entity, shell, src, record) -> int:
        self._convert_generic(entity, shell, src, record)
        out = target_parameters(shell, self.target)
        name = str(shell.get("name") or shell.get("label") or "")

        if self.direction is Direction.N8N_TO_MAKE:
            token = src.get("authentication")
            if token == "genericCredentialType":
                token = src.get("genericAuthType")
            out.pop("genericAuthType", None)
            if token in (None, "", "none"):
                out.pop("authentication", None)
                return 0
            bag_type = AUTH_N8N_TO_MAKE.get(str(token))
            if bag_type is None:
                self.diagnostics.warning(
                    f"{name}: unknown authentication type {token!r}; defaulting to basic with empty credentials",
                    category=ErrorCategory.MAPPING,
                    entity=str(shell.get("id")),
                )
                bag_type = "basic"
            out["authentication"] = {"type": bag_type, "credentials": dict(_AUTH_BAG_FIELDS[bag_type])}
            self.diagnostics.flag(name, f"Re-enter {bag_type} credentials", "authentication")
            return 0

        bag = src.get("authentication")
        if bag in (None, "", "none"):
            out.pop("authentication", None)
            return 0
        bag_type = bag.get("type") if isinstance(bag, dict) else bag
        token = AUTH_MAKE_TO_N8N.get(str(bag_type))
        if token is None:
            self.diagnostics.warning(
                f"{name}: unknown authentication type {bag_type!r}; defaulting to basic with empty credentials",
                category=ErrorCategory.MAPPING,
                entity=str(shell.get("id")),
            )
            token = AUTH_MAKE_TO_N8N["basic"]
        out["authentication"] = token
        creds = bag.get("credentials") if isinstance(bag, dict) else None
        if isinstance(creds, dict) and any(v not in (None, "") for v in creds.values()):
            self.diagnostics.flag(name, "Credential values are not carried over; create an n8n credential", "authentication")
        return 0

    def _convert_variables(self, entity, shell, src, record) -> int:
        out = target_parameters(shell, self.target)
        if self.direction is Direction.N8N_TO_MAKE:
            variables: List[Dict[str, Any]] = []
            values = src.get("values")
            if isinstance(values, dict):
                for group, items in values.items():
                    if not isinstance(items, list):
                        continue
                    for i, item in enumerate(items):
                        if isinstance(item, dict) and "name" in item:
                            v = self.processor.process_value(item.get("value"), f"values.{group}[{i}].value")
                            variables.append({"name": item["name"], "value": v})
            assigns = src.get("assignments")
            items = assigns.get("assignments") if isinstance(assigns, dict) else None
            if isinstance(items, list):
                for i, item in enumerate(items):
                    if isinstance(item, dict) and "name" in item:
                        v = self.processor.process_value(item.get("value"), f"assignments.assignments[{i}].value")
                        variables.append({"name": item["name"], "value": v})
            out["variables"] = variables
            out["scope"] = "roundtrip"
            return 0

        raw = src.get("variables")
        pairs: List[Tuple[str, Any, str]] = []
        if isinstance(raw, list):
            for i, item in enumerate(raw):
                if isinstance(item, dict) and "name" in item:
                    pairs.append((str(item["name"]), item.get("value"), f"variables[{i}].value"))
        elif isinstance(raw, dict):
            for k, v in raw.items():
                value = v.get("value") if isinstance(v, dict) and "value" in v else v
                pairs.append((str(k), value, f"variables.{k}"))
        elif "name" in src and "value" in src:
            # single-variable modules (util:SetVariable2)
            pairs.append((str(src["name"]), src.get("value"), "value"))

        groups: Dict[str, List[Dict[str, Any]]] = {}
        for name, value, path in pairs:
            v = self.processor.process_value(value, path)
            if isinstance(v, bool):
                group = "boolean"
            elif isinstance(v, (int, float)):
                group = "number"
            else:
                group = "string"
            groups.setdefault(group, []).append({"name": name, "value": v})
        out["values"] = groups
        out["options"] = {}
        return 0

    def _route_condition(self, left: Any, op: Any, right: Any, path: str, name: str) -> Dict[str, Any]:
        mapped, known = map_operator(op, Direction.N8N_TO_MAKE)
        if not known:
            self.diagnostics.flag(name, f"Unknown condition operator {op!r}", path)
        return {
            "left": self.processor.process_value(left, f"{path}.value1"),
            "operator": mapped,
            "right": self.processor.process_value(right, f"{path}.value2"),
        }

    def _convert_router(self, entity, shell, src, record) -> int:
        name = str(shell.get("name") or shell.get("label") or "")
        if self.direction is Direction.N8N_TO_MAKE:
            rules = src.get("rules") if isinstance(src.get("rules"), dict) else {}
            conditions = rules.get("conditions") if isinstance(rules.get("conditions"), list) else rules.get("values")
            routes: List[Dict[str, Any]] = []
            for i, cond in enumerate(conditions if isinstance(conditions, list) else []):
                if not isinstance(cond, dict):
                    continue
                route: Dict[str, Any] = {
                    "condition": self._route_condition(
                        cond.get("value1"), cond.get("operation"), cond.get("value2"), f"rules.conditions[{i}]", name
                    ),
                    "flow": [],
                }
                label = cond.get("outputKey") or cond.get("label")
                if isinstance(label, str) and label:
                    route["label"] = label
                routes.append(route)
            shell["routes"] = routes
            if self.options.copy_non_mapped_parameters:
                self.processor.copy_unmapped(src, target_parameters(shell, self.target), ("rules",))
            return len(routes)

        routes_in = entity.get("routes") if isinstance(entity.get("routes"), list) else []
        conditions_out: List[Dict[str, Any]] = []
        for i, route in enumerate(routes_in):
            route = route if isinstance(route, dict) else {}
            left, op, right = self._make_route_condition(route, f"routes[{i}]", name)
            mapped, known = map_operator(op, Direction.MAKE_TO_N8N)
            if not known:
                self.diagnostics.flag(name, f"Unknown condition operator {op!r}", f"routes[{i}].condition.operator")
            cond = {
                "operation": mapped,
                "value1": self.processor.process_value(left, f"routes[{i}].condition.left"),
                "value2": self.processor.process_value(right, f"routes[{i}].condition.right"),
            }
            if isinstance(route.get("label"), str) and route["label"]:
                cond["outputKey"] = route["label"]
            conditions_out.append(cond)
        out = target_parameters(shell, self.target)
        out["rules"] = {"conditions": conditions_out}
        if self.options.copy_non_mapped_parameters:
            self.processor.copy_unmapped(src, out, ("rules",))
        return len(conditions_out)

    def _make_route_condition(self, route: Dict[str, Any], path: str, name: str) -> Tuple[Any, Any, Any]:
        cond = route.get("condition")
        if isinstance(cond, dict):
            return cond.get("left"), cond.get("operator"), cond.get("right")
        flt = route.get("filter")
        if isinstance(flt, dict) and isinstance(flt.get("conditions"), list) and flt["conditions"]:
            first = flt["conditions"][0]
            if isinstance(first, list) and first and isinstance(first[0], dict):
                if len(flt["conditions"]) > 1 or len(first) > 1:
                    self.diagnostics.flag(name, "Only the first filter condition of the route was converted", f"{path}.filter")
                c = first[0]
                return c.get("a"), c.get("o"), c.get("b")
        return "", "else", ""

    def _convert_conditional(self, entity, shell, src, record) -> int:
        name = str(shell.get("name") or shell.get("label") or "")
        flat: List[Tuple[Any, Any, Any, str]] = []
        conds = src.get("conditions")
        if isinstance(conds, dict) and isinstance(conds.get("conditions"), list):
            for i, c in enumerate(conds["conditions"]):
                if isinstance(c, dict):
                    op = c.get("operator")
                    op = op.get("operation") if isinstance(op, dict) else op
                    flat.append((c.get("leftValue"), op, c.get("rightValue"), f"conditions.conditions[{i}]"))
        elif isinstance(conds, dict):
            for group, items in conds.items():
                if not isinstance(items, list):
                    continue
                for i, c in enumerate(items):
                    if isinstance(c, dict):
                        flat.append((c.get("value1"), c.get("operation"), c.get("value2"), f"conditions.{group}[{i}]"))

        true_route: Dict[str, Any] = {"label": "True", "condition": None, "flow": []}
        if flat:
            left, op, right, path = flat[0]
            true_route["condition"] = self._route_condition(left, op, right, path, name)
        else:
            self.diagnostics.flag(name, "IF node without conditions", "conditions")
        if len(flat) > 1:
            true_route["conditions"] = [self._route_condition(*c, name) for c in flat]
            combine = src.get("combineOperation") or (conds.get("combinator") if isinstance(conds, dict) else None) or "all"
            true_route["combine"] = combine
            self.diagnostics.flag(name, "Multiple IF conditions; only the first drives the route filter", "conditions")
        else_route = {"label": "False", "condition": {"left": "", "operator": "else", "right": ""}, "flow": []}
        shell["routes"] = [true_route, else_route]
        return 2

    def _convert_webhook(self, entity, shell, src, record) -> int:
        out = target_parameters(shell, self.target)
        if self.direction is Direction.N8N_TO_MAKE:
            mode = src.get("responseMode") or DEFAULT_N8N_RESPONSE_MODE
            out["method"] = str(src.get("httpMethod") or DEFAULT_WEBHOOK_METHOD).upper()
            out["path"] = self.processor.process_value(src.get("path") or "", "path")
            out["responseMode"] = RESPONSE_MODES_N8N_TO_MAKE.get(mode, mode)
            mapped = ("httpMethod", "path", "responseMode")
        else:
            mode = src.get("responseMode") or DEFAULT_MAKE_RESPONSE_MODE
            out["httpMethod"] = str(src.get("method") or DEFAULT_WEBHOOK_METHOD).upper()
            out["path"] = self.processor.process_value(src.get("path") or src.get("hook") or "", "path")
            out["responseMode"] = RESPONSE_MODES_MAKE_TO_N8N.get(mode, mode)
            mapped = ("method", "path", "responseMode", "hook")
        if self.options.copy_non_mapped_parameters:
            self.processor.copy_unmapped(src, out, mapped)
        return 0

    def _convert_code(self, entity, shell, src, record) -> int:
        out = target_parameters(shell, self.target)
        name = str(shell.get("name") or shell.get("label") or "")
        if self.direction is Direction.N8N_TO_MAKE:
            lang = src.get("language") or "javaScript"
            code = src.get("jsCode") or src.get("pythonCode") or src.get("functionCode") or src.get("code") or ""
            out["language"] = "python" if str(lang).lower().startswith("python") else "javascript"
            out["code"] = code
            path = next((k for k in ("jsCode", "pythonCode", "functionCode", "code") if src.get(k)), "jsCode")
        else:
            lang = str(src.get("language") or "javascript").lower()
            code = src.get("code") or src.get("script") or ""
            if lang.startswith("python"):
                out["language"] = "python"
                out["pythonCode"] = code
            else:
                out["jsCode"] = code
            path = "code"
        self.diagnostics.flag(name, "Code must be reviewed and ported manually", path)
        return 0

    def _convert_note(self, entity, shell, src, record) -> int:
        out = target_parameters(shell, self.target)
        if self.direction is Direction.N8N_TO_MAKE:
            out["note"] = src.get("content") or src.get("notes") or src.get("displayName") or ""
        else:
            out["content"] = src.get("note") or src.get("text") or src.get("content") or ""
        return 0
