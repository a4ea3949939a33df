"""flowbridge.mappings

Built-in mapping database (same shape as an external JSON database, see
flowbridge.registry.records_from_database).
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

MAPPING_DB_VERSION = "1.2.0"

_MERGE_MODES = {"append": "append", "merge": "combine", "multiplex": "multiplex"}


def _merge_mode(value: Any) -> str:
    return _MERGE_MODES.get(str(value), "append")


def _manual_trigger_note(entity: Dict[str, Any], ctx: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return {
        "notes": (
            "Converted from an n8n Manual Trigger. Make has no manual trigger, "
            "so a scheduler module is used; replace it with a suitable trigger."
        )
    }


def _both(rules: Dict[str, str]) -> Dict[str, Dict[str, Dict[str, str]]]:
    """Symmetric parameter map: n8n key -> Make key, and back."""
    return {
        "n8nToMake": {k: {"targetPath": v} for k, v in rules.items()},
        "makeToN8n": {v: {"targetPath": k} for k, v in rules.items()},
    }


_HTTP_RULES = {
    "url": "url",
    "method": "method",
    "headerParameters": "headers",
    "queryParameters": "qs",
    "body": "data",
    "timeout": "timeout",
}

_BUILTIN: Dict[str, Any] = {
    "version": MAPPING_DB_VERSION,
    "mappings": {
        "httpRequest": {
            "n8nNodeType": "n8n-nodes-base.httpRequest",
            "makeModuleId": "http:ActionSendData",
            "kind": "http",
            "description": "HTTP request",
            "parameterMappings": _both(_HTTP_RULES),
        },
        # Any other module of the Make HTTP app falls back to the n8n HTTP node.
        "httpApp": {
            "sourceType": "http",
            "targetType": "n8n-nodes-base.httpRequest",
            "direction": "makeToN8n",
            "kind": "http",
            "parameterMappings": {v: {"targetPath": k} for k, v in _HTTP_RULES.items()},
        },
        "set": {
            "n8nNodeType": "n8n-nodes-base.set",
            "makeModuleId": "util:SetVariables",
            "kind": "variables",
            "description": "Variable assignment",
        },
        "webhook": {
            "n8nNodeType": "n8n-nodes-base.webhook",
            "makeModuleId": "gateway:CustomWebHook",
            "kind": "webhook",
            "description": "Incoming webhook trigger",
        },
        "switch": {
            "n8nNodeType": "n8n-nodes-base.switch",
            "makeModuleId": "builtin:BasicRouter",
            "kind": "router",
            "description": "Multi-branch router",
        },
        "if": {
            "n8nNodeType": "n8n-nodes-base.if",
            "makeModuleId": "builtin:BasicRouter",
            "kind": "conditional",
            "oneWay": "n8nToMake",
            "description": "IF node as a two-route router",
        },
        "code": {
            "n8nNodeType": "n8n-nodes-base.code",
            "makeModuleId": "code:ExecuteCode",
            "kind": "code",
            "description": "Custom code",
        },
        "function": {
            "n8nNodeType": "n8n-nodes-base.function",
            "makeModuleId": "code:ExecuteCode",
            "kind": "code",
            "oneWay": "n8nToMake",
        },
        "stickyNote": {
            "n8nNodeType": "n8n-nodes-base.stickyNote",
            "makeModuleId": "helper:Note",
            "kind": "note",
        },
        "noOp": {
            "n8nNodeType": "n8n-nodes-base.noOp",
            "makeModuleId": "helper:Note",
            "kind": "note",
            "oneWay": "n8nToMake",
        },
        "merge": {
            "n8nNodeType": "n8n-nodes-base.merge",
            "makeModuleId": "builtin:BasicAggregator",
            "oneWay": "n8nToMake",
            "description": "Merge as an aggregator",
            "parameterMappings": [
                {"sourcePath": "mode", "targetPath": "aggregationType", "transform": _merge_mode},
                {"targetPath": "targetData", "defaultValue": "combinedData"},
            ],
        },
        "manualTrigger": {
            "n8nNodeType": "n8n-nodes-base.manualTrigger",
            "makeModuleId": "builtin:Scheduler",
            "kind": "trigger",
            "oneWay": "n8nToMake",
            "parameterMappings": [
                {"targetPath": "interval", "defaultValue": {"value": 1, "unit": "days"}},
            ],
            "customTransform": _manual_trigger_note,
        },
        "scheduleTrigger": {
            "n8nNodeType": "n8n-nodes-base.scheduleTrigger",
            "makeModuleId": "builtin:Scheduler",
            "kind": "trigger",
            "parameterMappings": _both({"rule.interval": "interval"}),
        },
        "emailSend": {
            "n8nNodeType": "n8n-nodes-base.emailSend",
            "makeModuleId": "email:ActionSendEmail",
            "parameterMappings": _both(
                {"toEmail": "to", "subject": "subject", "text": "text", "html": "html", "attachments": "attachments"}
            ),
        },
        "slack": {
            "n8nNodeType": "n8n-nodes-base.slack",
            "makeModuleId": "slack:CreateMessage",
            "parameterMappings": _both({"channel": "channel", "text": "text", "attachments": "attachments"}),
        },
        "googleSheets": {
            "n8nNodeType": "n8n-nodes-base.googleSheets",
            "makeModuleId": "google-sheets:addRow",
            "parameterMappings": _both(
                {"operation": "operation", "sheetId": "spreadsheetId", "range": "range", "values": "values"}
            ),
        },
    },
}


def builtin_database() -> Dict[str, Any]:
    """Deep copy of the built-in database (callables are shared)."""
    return copy.deepcopy(_BUILTIN)
