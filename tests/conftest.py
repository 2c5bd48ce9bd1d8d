"""Shared test fixtures for bep_analyzer."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest
from google.protobuf import struct_pb2
from google.protobuf.internal.encoder import _VarintBytes

# ---------------------------------------------------------------------------
# Event record factories: raw BEP JSON records, as the build tool writes them
# ---------------------------------------------------------------------------


class BepRecords:
    """Builds raw BEP records (dicts) with sensible defaults."""

    @staticmethod
    def started(
        start_ms: int = 1_700_000_000_000,
        *,
        uuid: str = "b1d-0001",
        command: str = "build",
        legacy: bool = False,
    ) -> dict[str, Any]:
        payload = {
            "uuid": uuid,
            "startTimeMillis": str(start_ms),
            "buildToolVersion": "7.1.0",
            "command": command,
            "workingDirectory": "/work",
            "workspaceDirectory": "/work",
            "serverPid": "4242",
        }
        if legacy:
            return {"id": {"buildStarted": {}}, "buildStarted": payload}
        return {"id": {"started": {}}, "started": payload}

    @staticmethod
    def finished(
        finish_ms: int = 1_700_000_000_600,
        *,
        success: bool = True,
        last_message: bool = False,
    ) -> dict[str, Any]:
        name = "SUCCESS" if success else "BUILD_FAILURE"
        record: dict[str, Any] = {
            "id": {"buildFinished": {}},
            "finished": {
                "overallSuccess": success,
                "exitCode": {"name": name, "code": 0 if success else 1},
                "finishTimeMillis": str(finish_ms),
            },
        }
        if last_message:
            record["lastMessage"] = True
        return record

    @staticmethod
    def action(
        label: str = "//app:main",
        *,
        success: bool = True,
        mnemonic: str = "CppCompile",
        primary_output: str = "bazel-out/k8-fastbuild/bin/app/_objs/main/main.o",
        start_ms: int | None = None,
        wall_ms: int | None = None,
        stderr_uri: str | None = None,
        argv: list[str] | None = None,
        exit_code: int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": success, "mnemonic": mnemonic}
        if start_ms is not None or wall_ms is not None:
            payload["actionResult"] = {
                "executionInfo": {
                    "startTimeMillis": str(start_ms or 0),
                    "wallTimeMillis": str(wall_ms or 0),
                }
            }
        if stderr_uri is not None:
            payload["stderr"] = {"name": "stderr", "uri": stderr_uri}
        if argv is not None:
            payload["commandLine"] = argv
        if exit_code is not None:
            payload["exitCode"] = exit_code
        return {
            "id": {
                "actionCompleted": {
                    "primaryOutput": primary_output,
                    "label": label,
                    "configuration": {"id": "cfg-1"},
                }
            },
            "action": payload,
        }

    @staticmethod
    def test_summary(
        label: str = "//app:test",
        status: str = "PASSED",
        *,
        total_run_count: int = 1,
    ) -> dict[str, Any]:
        return {
            "id": {"testSummary": {"label": label, "configuration": {"id": "cfg-1"}}},
            "testSummary": {
                "overallStatus": status,
                "totalRunCount": total_run_count,
                "runCount": 1,
                "attemptCount": 1,
                "shardCount": 1,
                "totalNumCached": 0,
                "passed": [{"uri": f"file:///logs/{label.strip('/')}/test.log"}]
                if status == "PASSED"
                else [],
                "failed": [{"uri": f"file:///logs/{label.strip('/')}/test.log"}]
                if status != "PASSED"
                else [],
                "totalRunDurationMillis": "1500",
            },
        }

    @staticmethod
    def pattern(*patterns: str) -> dict[str, Any]:
        return {"id": {"pattern": {"pattern": list(patterns)}}, "expanded": {}}

    @staticmethod
    def named_set(
        set_id: str,
        files: Iterable[str] = (),
        file_sets: Iterable[str] = (),
    ) -> dict[str, Any]:
        return {
            "id": {"namedSet": {"id": set_id}},
            "namedSetOfFiles": {
                "files": [{"name": name, "uri": f"file:///out/{name}"} for name in files],
                "fileSets": [{"id": ref} for ref in file_sets],
            },
        }

    @staticmethod
    def target_completed(
        label: str,
        *,
        success: bool = True,
        set_ids: Iterable[str] = (),
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": success}
        set_ids = list(set_ids)
        if set_ids:
            payload["outputGroup"] = [
                {"name": "default", "fileSets": [{"id": sid} for sid in set_ids]}
            ]
        return {
            "id": {"targetCompleted": {"label": label, "configuration": {"id": "cfg-1"}}},
            "completed": payload,
        }

    @staticmethod
    def progress(
        stderr: str = "",
        *,
        children_labels: Iterable[str] = (),
        count: int = 0,
    ) -> dict[str, Any]:
        return {
            "id": {"progress": {"opaqueCount": count}},
            "children": [
                {"actionCompleted": {"label": label}} for label in children_labels
            ],
            "progress": {"stderr": stderr},
        }

    @staticmethod
    def problem(message: str = "ERROR: something broke") -> dict[str, Any]:
        return {"id": {"problem": {}}, "problem": {"message": message}}

    @staticmethod
    def aborted(reason: str = "USER_INTERRUPTED", description: str = "") -> dict[str, Any]:
        return {
            "id": {"targetCompleted": {"label": "//app:main"}},
            "aborted": {"reason": reason, "description": description},
        }


@pytest.fixture
def bep() -> type[BepRecords]:
    """Provide the BEP record factory."""
    return BepRecords


def to_json_lines(records: Iterable[dict[str, Any]]) -> str:
    return "".join(json.dumps(record) + "\n" for record in records)


def to_binary_stream(records: Iterable[dict[str, Any]]) -> bytes:
    """Length-prefix each record, encoded as a ``google.protobuf.Struct``."""
    chunks: list[bytes] = []
    for record in records:
        message = struct_pb2.Struct()
        message.update(record)
        data = message.SerializeToString()
        chunks.append(_VarintBytes(len(data)) + data)
    return b"".join(chunks)


@pytest.fixture
def write_json_stream(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture: write records as a JSON-lines file and return its path."""

    def _write(records: Iterable[dict[str, Any]], name: str = "bep.json") -> Path:
        path = tmp_path / name
        path.write_text(to_json_lines(records), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_binary_stream(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture: write records as a length-prefixed binary file."""

    def _write(records: Iterable[dict[str, Any]], name: str = "bep.pb") -> Path:
        path = tmp_path / name
        path.write_bytes(to_binary_stream(records))
        return path

    return _write


@pytest.fixture
def sample_build(bep: type[BepRecords], tmp_path: Path) -> list[dict[str, Any]]:
    """A small but complete build: patterns, outputs, one failing action, tests."""
    stderr_file = tmp_path / "stderr-lib"
    stderr_file.write_text("lib.cc:3: error: expected ';'\n", encoding="utf-8")
    return [
        bep.started(1_700_000_000_000),
        bep.pattern("//app/...", "-//app/experimental:all"),
        bep.progress(
            "[1 / 3] Compiling app/main.cc; 1s linux-sandbox\n",
            count=0,
        ),
        bep.action(
            "//app:main",
            start_ms=1_700_000_000_100,
            wall_ms=300,
        ),
        bep.action(
            "//app:lib",
            success=False,
            primary_output="bazel-out/k8-fastbuild/bin/app/_objs/lib/lib.o",
            start_ms=1_700_000_000_150,
            wall_ms=200,
            stderr_uri=stderr_file.as_uri(),
            argv=["gcc", "-c", "app/lib.cc"],
            exit_code=1,
        ),
        bep.named_set("0", files=["app/main"]),
        bep.named_set("1", files=["app/main.runfiles"], file_sets=["0"]),
        bep.target_completed("//app:main", set_ids=["1"]),
        bep.target_completed("//app/experimental:tool", set_ids=["0"]),
        bep.target_completed("//app:lib", success=False),
        bep.test_summary("//app:test", "PASSED"),
        bep.problem("ERROR: /work/app/BUILD:3:1: C++ compilation of rule '//app:lib' failed"),
        bep.finished(1_700_000_000_600, success=False, last_message=True),
    ]
