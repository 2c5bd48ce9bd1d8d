"""Tests for event normalization — id aliases, payload aliases, wrappers."""

from __future__ import annotations

import pytest

from bep_analyzer.core.normalizer import MalformedEventError, normalize_event
from bep_analyzer.models.events import EventKind


class TestNormalizeEvent:
    def test_canonical_started(self, bep):
        event = normalize_event(bep.started(uuid="abc"))
        assert event.kind is EventKind.BUILD_STARTED
        assert event.id_key == "started"
        assert event.payload["uuid"] == "abc"

    def test_legacy_started_layout(self, bep):
        event = normalize_event(bep.started(uuid="abc", legacy=True))
        assert event.kind is EventKind.BUILD_STARTED
        assert event.payload["uuid"] == "abc"

    def test_payload_wrapper_is_unwrapped(self):
        record = {
            "id": {"buildStarted": {}},
            "payload": {"started": {"uuid": "wrapped"}},
        }
        event = normalize_event(record)
        assert event.kind is EventKind.BUILD_STARTED
        assert event.payload == {"uuid": "wrapped"}

    def test_wrapped_and_direct_layouts_are_equivalent(self):
        direct = normalize_event({"id": {"started": {}}, "started": {"uuid": "u"}})
        wrapped = normalize_event({"id": {"buildStarted": {}}, "payload": {"buildStarted": {"uuid": "u"}}})
        assert direct.kind == wrapped.kind
        assert direct.payload == wrapped.payload

    def test_action_completed_payload_aliases(self):
        for key in ("action", "completed", "actionCompleted"):
            event = normalize_event(
                {"id": {"actionCompleted": {"label": "//a:b"}}, key: {"success": True}}
            )
            assert event.kind is EventKind.ACTION_COMPLETED
            assert event.payload == {"success": True}
            assert event.event_id == {"label": "//a:b"}

    def test_test_summary_payload_alias(self):
        event = normalize_event(
            {"id": {"testSummary": {"label": "//t"}}, "summary": {"overallStatus": "PASSED"}}
        )
        assert event.kind is EventKind.TEST_SUMMARY
        assert event.payload["overallStatus"] == "PASSED"

    def test_workspace_id_alias(self):
        event = normalize_event({"id": {"workspace": {}}, "workspaceStatus": {"item": []}})
        assert event.kind is EventKind.WORKSPACE_STATUS

    def test_aborted_payload_overrides_kind(self, bep):
        event = normalize_event(bep.aborted("USER_INTERRUPTED", "stopped"))
        assert event.kind is EventKind.ABORTED
        assert event.payload["reason"] == "USER_INTERRUPTED"

    def test_unknown_kind(self):
        event = normalize_event({"id": {"fetch": {"url": "https://x"}}, "fetch": {}})
        assert event.kind is EventKind.UNKNOWN
        assert event.id_key == "fetch"

    def test_children_and_last_message(self, bep):
        record = bep.progress("x", children_labels=["//a:b"])
        record["lastMessage"] = True
        event = normalize_event(record)
        assert event.children == [{"actionCompleted": {"label": "//a:b"}}]
        assert event.last_message is True
        assert event.is_terminus is True

    def test_finished_is_terminus(self, bep):
        assert normalize_event(bep.finished()).is_terminus is True
        assert normalize_event(bep.started()).is_terminus is False

    def test_missing_payload_is_none(self):
        event = normalize_event({"id": {"problem": {}}})
        assert event.kind is EventKind.PROBLEM
        assert event.payload is None

    @pytest.mark.parametrize("record", [{}, {"id": "started"}, {"id": None}, []])
    def test_records_without_id_object_rejected(self, record):
        with pytest.raises(MalformedEventError):
            normalize_event(record)
