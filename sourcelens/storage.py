"""Persistence of the addressable view state (current source and target line)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import parse_qs, urlencode

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewQuery:
    """Plain key-value state that restores a view: ``source=...&line=...``."""

    source_id: str
    line: int = 0
    root: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        payload = {"source": self.source_id, "line": str(self.line)}
        if self.root:
            payload["root"] = self.root
        return payload

    def to_query_string(self) -> str:
        return urlencode(self.to_dict())

    @classmethod
    def from_dict(cls, payload: Dict[str, str]) -> Optional["ViewQuery"]:
        source = payload.get("source")
        if not source:
            return None
        try:
            line = int(payload.get("line") or 0)
        except (TypeError, ValueError):
            line = 0
        return cls(source_id=source, line=max(line, 0), root=payload.get("root") or None)

    @classmethod
    def from_query_string(cls, query: str) -> Optional["ViewQuery"]:
        parsed = parse_qs(query.lstrip("?"), keep_blank_values=True)
        return cls.from_dict({key: values[0] for key, values in parsed.items() if values})


class ViewStateStore:
    """Manage the persisted view state file."""

    def __init__(self) -> None:
        config.ensure_base_dirs()

    def save(self, query: ViewQuery) -> None:
        config.ensure_base_dirs()
        config.STATE_FILE.write_text(
            json.dumps({"view": query.to_query_string()}, indent=2),
            encoding="utf-8",
        )

    def load(self) -> Optional[ViewQuery]:
        if not config.STATE_FILE.exists():
            return None
        try:
            payload = json.loads(config.STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt state file %s", config.STATE_FILE)
            return None
        query = payload.get("view") if isinstance(payload, dict) else None
        if not query:
            return None
        return ViewQuery.from_query_string(query)

    def clear(self) -> None:
        config.ensure_base_dirs()
        config.STATE_FILE.write_text(json.dumps({"view": None}, indent=2), encoding="utf-8")
