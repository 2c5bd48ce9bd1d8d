"""Map the producer's field layouts onto the canonical ``BuildEvent``.

Producers disagree on where a payload lives: some nest it under a generic
``payload`` wrapper, and older ones use different field names for the same
kind (``buildStarted`` vs ``started``).  Both tables below are the only
place those aliases are known; the accumulator only sees ``EventKind``.
"""

from __future__ import annotations

from typing import Any

from bep_analyzer.models.events import BuildEvent, EventKind

# id key -> kind
_ID_KINDS: dict[str, EventKind] = {
    "started": EventKind.BUILD_STARTED,
    "buildStarted": EventKind.BUILD_STARTED,
    "finished": EventKind.BUILD_FINISHED,
    "buildFinished": EventKind.BUILD_FINISHED,
    "actionCompleted": EventKind.ACTION_COMPLETED,
    "targetCompleted": EventKind.TARGET_COMPLETED,
    "testSummary": EventKind.TEST_SUMMARY,
    "problem": EventKind.PROBLEM,
    "workspace": EventKind.WORKSPACE_STATUS,
    "workspaceStatus": EventKind.WORKSPACE_STATUS,
    "configuration": EventKind.CONFIGURATION,
    "buildMetrics": EventKind.BUILD_METRICS,
    "buildToolLogs": EventKind.BUILD_TOOL_LOGS,
    "optionsParsed": EventKind.OPTIONS_PARSED,
    "structuredCommandLine": EventKind.STRUCTURED_COMMAND_LINE,
    "pattern": EventKind.PATTERN,
    "namedSet": EventKind.NAMED_SET,
    "convenienceSymlinksIdentified": EventKind.CONVENIENCE_SYMLINKS,
    "progress": EventKind.PROGRESS,
}

# kind -> payload field names, canonical first
_PAYLOAD_KEYS: dict[EventKind, tuple[str, ...]] = {
    EventKind.BUILD_STARTED: ("started", "buildStarted"),
    EventKind.BUILD_FINISHED: ("finished", "buildFinished"),
    EventKind.ACTION_COMPLETED: ("action", "completed", "actionCompleted"),
    EventKind.TARGET_COMPLETED: ("completed", "targetCompleted"),
    EventKind.TEST_SUMMARY: ("testSummary", "summary"),
    EventKind.PROBLEM: ("problem",),
    EventKind.WORKSPACE_STATUS: ("workspaceStatus",),
    EventKind.CONFIGURATION: ("configuration",),
    EventKind.BUILD_METRICS: ("buildMetrics",),
    EventKind.BUILD_TOOL_LOGS: ("buildToolLogs",),
    EventKind.OPTIONS_PARSED: ("optionsParsed",),
    EventKind.STRUCTURED_COMMAND_LINE: ("structuredCommandLine",),
    EventKind.PATTERN: ("expanded",),
    EventKind.NAMED_SET: ("namedSetOfFiles",),
    EventKind.CONVENIENCE_SYMLINKS: ("convenienceSymlinksIdentified",),
    EventKind.PROGRESS: ("progress",),
}


class MalformedEventError(ValueError):
    """Raised when a record has no usable ``id`` object."""


def _container(record: dict[str, Any]) -> dict[str, Any]:
    wrapped = record.get("payload")
    if isinstance(wrapped, dict):
        return wrapped
    return record


def _resolve_id(event_id: dict[str, Any]) -> tuple[EventKind, str]:
    for key in event_id:
        kind = _ID_KINDS.get(key)
        if kind is not None:
            return kind, key
    first = next(iter(event_id), "")
    return EventKind.UNKNOWN, first


def normalize_event(record: dict[str, Any]) -> BuildEvent:
    """Turn one decoded record into a canonical ``BuildEvent``.

    Raises
    ------
    MalformedEventError
        If the record is not a mapping with an ``id`` object.
    """
    if not isinstance(record, dict) or not isinstance(record.get("id"), dict):
        raise MalformedEventError("event record has no 'id' object")

    event_id = record["id"]
    kind, id_key = _resolve_id(event_id)
    data = _container(record)

    payload: dict[str, Any] | None = None
    aborted = data.get("aborted")
    if isinstance(aborted, dict):
        kind = EventKind.ABORTED
        payload = aborted
    else:
        for key in _PAYLOAD_KEYS.get(kind, ()):
            candidate = data.get(key)
            if isinstance(candidate, dict):
                payload = candidate
                break

    inner_id = event_id.get(id_key) if id_key else None
    children = record.get("children") or []
    return BuildEvent(
        kind=kind,
        id_key=id_key,
        event_id=inner_id if isinstance(inner_id, dict) else {},
        payload=payload,
        children=[c for c in children if isinstance(c, dict)],
        last_message=bool(record.get("lastMessage") or data.get("lastMessage")),
        raw=record,
    )
