"""Lenient field coercion for decoded event payloads.

Protobuf's JSON mapping renders 64-bit integers as strings and timestamps
as RFC 3339 text; older producers emit ``*Millis`` strings instead.  None
of these helpers raise: malformed values default to zero or empty.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any
from urllib.parse import urlparse
from urllib.request import url2pathname


def as_int(value: Any, default: int = 0) -> int:
    """Coerce a numeric field (int, float, or numeric string) to ``int``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return default


def as_str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def timestamp_ms(value: Any) -> int | None:
    """Parse an RFC 3339 timestamp (or protobuf Timestamp dict) into epoch ms."""
    if not value:
        return None
    if isinstance(value, dict):
        seconds = as_int(value.get("seconds"))
        nanos = as_int(value.get("nanos"))
        return seconds * 1000 + nanos // 1_000_000
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat only accepts up to microsecond precision
    text = re.sub(r"(\.\d{6})\d+", r"\1", text)
    try:
        return int(datetime.fromisoformat(text).timestamp() * 1000)
    except ValueError:
        return None


def millis_field(payload: dict[str, Any], millis_key: str, timestamp_key: str) -> int:
    """Read a time as ms, preferring the legacy ``*Millis`` field."""
    if payload.get(millis_key) not in (None, ""):
        return as_int(payload.get(millis_key))
    return timestamp_ms(payload.get(timestamp_key)) or 0


def file_stem(path: str) -> str:
    """``/out/bin/foo.pic.o`` -> ``foo``; used to join progress text to actions."""
    if not path:
        return ""
    basename = re.split(r"[\\/]", path)[-1]
    return basename.split(".", 1)[0].strip()


def path_ends_with(path: str, subject: str) -> bool:
    """Whether *subject* names the trailing whole segments of *path*.

    ``bazel-out/k8/bin/app/main`` ends with ``app/main`` but not with
    ``pp/main`` or ``app/main.cc``.
    """
    path = path.replace("\\", "/")
    subject = subject.replace("\\", "/").strip("/")
    if not subject:
        return False
    return path == subject or path.endswith("/" + subject)


def uri_to_path(uri: str) -> str:
    """Convert a ``file://`` URI into a local filesystem path."""
    parsed = urlparse(uri)
    if parsed.scheme not in ("file", ""):
        raise ValueError(f"unsupported URI scheme {parsed.scheme!r}")
    if parsed.scheme == "":
        return uri
    return url2pathname(parsed.path)


def duration_ms(value: Any) -> int:
    """Parse a protobuf Duration (``"1.500s"`` or ``{seconds, nanos}``) into ms."""
    if not value:
        return 0
    if isinstance(value, dict):
        return as_int(value.get("seconds")) * 1000 + as_int(value.get("nanos")) // 1_000_000
    text = str(value).strip()
    if text.endswith("s"):
        text = text[:-1]
    try:
        return int(float(text) * 1000)
    except ValueError:
        return 0
