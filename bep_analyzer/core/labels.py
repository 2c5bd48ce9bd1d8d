"""Matching target labels against the requested build patterns.

Only outputs of targets the invocation explicitly asked for are resolved,
which bounds the file-set walk on large builds.
"""

from __future__ import annotations

from collections.abc import Iterable

_RECURSIVE_SUFFIX = "/..."
_ALL_TARGET_SUFFIXES = (":all-targets", ":all", ":*")


def strip_repo_prefix(label: str) -> str:
    """Drop the ``@`` / ``@@`` main-repository marker from a label."""
    if label.startswith("@@"):
        return label[2:]
    if label.startswith("@"):
        return label[1:]
    return label


def label_matches_pattern(label: str, pattern: str) -> bool:
    """Whether *label* is covered by a single positive target *pattern*."""
    label = strip_repo_prefix(label)
    pattern = strip_repo_prefix(pattern)

    for suffix in _ALL_TARGET_SUFFIXES:
        if pattern.endswith(suffix):
            pattern = pattern[: -len(suffix)]
            if not pattern.endswith(_RECURSIVE_SUFFIX):
                return label.startswith(pattern + ":")
            break

    if pattern.endswith(_RECURSIVE_SUFFIX):
        package = pattern[: -len(_RECURSIVE_SUFFIX)]
        if package in ("", "/"):
            return label.startswith("//")
        return label.startswith(package + "/") or label.startswith(package + ":")

    return label == pattern or label.startswith(pattern)


def is_requested(label: str, patterns: Iterable[str]) -> bool:
    """Positive patterns include a label; ``-`` patterns exclude it again."""
    included = False
    for pattern in patterns:
        if pattern.startswith("-"):
            if label_matches_pattern(label, pattern[1:]):
                return False
        elif label_matches_pattern(label, pattern):
            included = True
    return included
