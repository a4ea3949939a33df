"""flowbridge.diagnostics

Accumulates leveled log entries, review entries, unmapped entity ids and
mapped/unmapped counts during a single conversion pass.

Every entry is also forwarded to the stdlib logger of this module and to an
optional log sink callable: `sink(level: str, message: str)`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from .errors import ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)

LogSink = Callable[[str, str], Any]

_LOG_FUNCS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
}


class LogEntry(NamedTuple):
    level: ErrorSeverity
    message: str
    category: ErrorCategory = ErrorCategory.CONVERSION
    entity: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "message": self.message}


class ReviewEntry(NamedTuple):
    """A parameter (or whole entity, when path is None) needing human inspection."""

    entity: str
    reason: str
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"entity": self.entity, "reason": self.reason}
        if self.path is not None:
            d["path"] = self.path
        return d


class Diagnostics:
    """Mutable collector owned by exactly one conversion call."""

    def __init__(self, *, sink: Optional[LogSink] = None, debug: bool = False):
        self.logs: List[LogEntry] = []
        self.review: List[ReviewEntry] = []
        self.unmapped: List[str] = []
        self.mapped_count = 0
        self.unmapped_count = 0
        self.debug = bool(debug)
        self.trace: List[Dict[str, Any]] = []
        self._sink = sink
        self._started = time.perf_counter()

    def __repr__(self) -> str:
        return (
            f"Diagnostics(logs={len(self.logs)}, review={len(self.review)}, "
            f"mapped={self.mapped_count}, unmapped={self.unmapped_count})"
        )

    # ------------------------------------------------------------------
    # Log entries
    # ------------------------------------------------------------------

    def add(
        self,
        level: ErrorSeverity,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.CONVERSION,
        entity: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> LogEntry:
        entry = LogEntry(level=level, message=message, category=category, entity=entity, details=details)
        self.logs.append(entry)
        logger.log(_LOG_FUNCS.get(level, logging.INFO), message)
        if self._sink is not None:
            try:
                self._sink(level.value, message)
            except Exception:
                # A broken sink must not break the conversion.
                logger.exception("log sink raised while handling: %s", message)
        return entry

    def info(self, message: str, **kw: Any) -> LogEntry:
        return self.add(ErrorSeverity.INFO, message, **kw)

    def warning(self, message: str, **kw: Any) -> LogEntry:
        return self.add(ErrorSeverity.WARNING, message, **kw)

    def error(self, message: str, **kw: Any) -> LogEntry:
        return self.add(ErrorSeverity.ERROR, message, **kw)

    def entries(self, level: Optional[ErrorSeverity] = None) -> List[LogEntry]:
        if level is None:
            return list(self.logs)
        return [e for e in self.logs if e.level == level]

    @property
    def warnings(self) -> List[LogEntry]:
        return self.entries(ErrorSeverity.WARNING)

    @property
    def errors(self) -> List[LogEntry]:
        return self.entries(ErrorSeverity.ERROR)

    def as_log_dicts(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.logs]

    # ------------------------------------------------------------------
    # Review / mapping bookkeeping
    # ------------------------------------------------------------------

    def flag(self, entity: str, reason: str, path: Optional[str] = None) -> None:
        """Add a review entry (duplicates for the same entity+path are ignored)."""
        for r in self.review:
            if r.entity == entity and r.path == path:
                return
        self.review.append(ReviewEntry(entity=str(entity), reason=reason, path=path))

    def mark_mapped(self) -> None:
        self.mapped_count += 1

    def mark_unmapped(self, entity_id: Any) -> None:
        self.unmapped_count += 1
        sid = str(entity_id)
        if sid not in self.unmapped:
            self.unmapped.append(sid)

    def record(self, **info: Any) -> None:
        """Append a per-entity trace row (debug mode only)."""
        if self.debug:
            self.trace.append(dict(info))

    def reset_outputs(self) -> None:
        """Drop review/unmapped state after a fatal abort; logs are kept."""
        self.review = []
        self.unmapped = []

    def summary(self, *, source: str, target: str, total: int) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "sourcePlatform": source,
            "targetPlatform": target,
            "totalEntities": int(total),
            "mappedEntities": self.mapped_count,
            "unmappedEntities": self.unmapped_count,
            "warnings": len(self.warnings),
            "errors": len(self.errors),
        }
        if self.debug:
            out["trace"] = list(self.trace)
            out["elapsedMs"] = round((time.perf_counter() - self._started) * 1000.0, 3)
        return out
