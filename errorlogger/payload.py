"""payload.py - Turn a gated record into its two serialised artifacts.

``assemble()`` is a pure transform. It produces:

    file_line   ``[<timestamp>] [<LEVEL>] <message> <json context>``
    document    the JSON-shaped report posted to the remote endpoint

Values that JSON cannot represent are replaced with
``"[unserializable(TypeName)]"`` rather than failing the whole payload, so a
document always survives an encode/decode round trip.
"""

import json
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .levels import level_name
from .sanitizer import Sanitizer


@dataclass
class LogRecord:
    """One candidate log entry. Built per call and never retained.

    Attributes:
        level: Numeric severity (see LogLevel).
        message: Free-text message.
        context: Structured context, already merged with the context stack.
        timestamp: Capture time, timezone-aware.
        request_id: Identifier shared by every record of one run or request.
        entry_id: Identifier unique to this record.
    """

    level: int
    message: str
    context: Dict[str, Any]
    timestamp: datetime
    request_id: str
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def level_name(self) -> str:
        return level_name(self.level)

    @property
    def iso_timestamp(self) -> str:
        return self.timestamp.isoformat(timespec="seconds")


@dataclass(frozen=True)
class Payload:
    file_line: str
    document: Dict[str, Any]


def assemble(
    record: LogRecord,
    *,
    project_hash: str,
    sanitizer: Sanitizer,
    default_tags: Iterable[str] = (),
    system: Optional[Mapping[str, Any]] = None,
    environment: Optional[Mapping[str, Any]] = None,
    cli: Optional[Mapping[str, Any]] = None,
    web: Optional[Mapping[str, Any]] = None,
) -> Payload:
    """Build the file line and the remote document for ``record``.

    Exactly one of ``cli`` and ``web`` is reported; ``web`` wins when both are
    given.
    """
    context = sanitizer.sanitize(json_safe(record.context))
    return Payload(
        file_line=format_line(record, context),
        document=_document(record, context, project_hash, sanitizer, default_tags,
                           system, environment, cli, web),
    )


def format_line(record: LogRecord, context: Mapping[str, Any]) -> str:
    line = f"[{record.iso_timestamp}] [{record.level_name}] {record.message}"
    if context:
        line += " " + to_json(context)
    return line


def to_json(value: Any) -> str:
    return json.dumps(json_safe(value), ensure_ascii=False)


def merge_tags(*groups: Any) -> List[str]:
    """Flatten tag groups into one list, dropping duplicates, first seen wins."""
    tags: List[str] = []
    for group in groups:
        if group is None:
            continue
        if isinstance(group, str):
            group = [group]
        for tag in group:
            tag = str(tag)
            if tag not in tags:
                tags.append(tag)
    return tags


def json_safe(value: Any, _seen: Optional[set] = None) -> Any:
    """Return a copy of ``value`` that ``json.dumps`` accepts unchanged.

    Mapping keys become strings, tuples and sets become lists, dates become
    ISO strings, non-finite floats and any other object become placeholders.
    Circular references are cut with a placeholder as well.
    """
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else f"[unserializable({value})]"
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    seen = _seen if _seen is not None else set()
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if id(value) in seen:
            return "[circular]"
        seen.add(id(value))
        try:
            if isinstance(value, Mapping):
                return {str(k): json_safe(v, seen) for k, v in value.items()}
            return [json_safe(item, seen) for item in value]
        finally:
            seen.discard(id(value))
    return f"[unserializable({type(value).__name__})]"


def _document(
    record: LogRecord,
    context: Dict[str, Any],
    project_hash: str,
    sanitizer: Sanitizer,
    default_tags: Iterable[str],
    system: Optional[Mapping[str, Any]],
    environment: Optional[Mapping[str, Any]],
    cli: Optional[Mapping[str, Any]],
    web: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    context = dict(context)
    context_tags = context.pop("tags", None)

    document: Dict[str, Any] = {
        "project_hash": project_hash,
        "entry_id": record.entry_id,
        "request_id": record.request_id,
        "timestamp": record.iso_timestamp,
        "level": int(record.level),
        "level_name": record.level_name,
        "message": record.message,
        "context": context,
        "tags": merge_tags(default_tags, context_tags),
        "system": json_safe(dict(system or {})),
        "environment": json_safe(dict(environment or {})),
    }

    if web is not None:
        request = json_safe(dict(web))
        headers = request.pop("headers", None) or {}
        body = request.pop("body", None)
        session = request.pop("session", None)
        request["query_params"] = sanitizer.sanitize(request.get("query_params") or {})
        document["web"] = request
        document["headers"] = sanitizer.sanitize(headers)
        if isinstance(body, Mapping):
            body = sanitizer.sanitize(body)
        elif isinstance(body, list):
            body = sanitizer.sanitize({"body": body})["body"]
        document["request_body"] = body
        if session:
            document["session"] = session
    else:
        document["cli"] = json_safe(dict(cli or {}))

    return document
