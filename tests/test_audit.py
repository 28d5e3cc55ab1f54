"""Tests for audit events and the JSONL sink."""

from __future__ import annotations

import json
import threading
from datetime import timezone
from pathlib import Path

from permissionless import AuditAction, AuditEvent, JsonlAuditSink, Permissionless


class TestAuditEvent:
    def test_timestamp_is_utc(self) -> None:
        event = AuditEvent(action=AuditAction.ROLE_ADDED, details={"role": "editor"})
        assert event.timestamp.tzinfo == timezone.utc

    def test_actions(self) -> None:
        assert AuditAction.ALL == {
            AuditAction.ROLE_ADDED,
            AuditAction.ROLE_REMOVED,
            AuditAction.PERMISSION_ADDED,
            AuditAction.CONFIG_RELOADED,
        }


class TestJsonlAuditSink:
    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "logs" / "audit.log"
        JsonlAuditSink(path)
        assert path.parent.is_dir()

    def test_appends_one_line_per_event(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.log"
        sink = JsonlAuditSink(path)

        sink(AuditEvent(action=AuditAction.ROLE_ADDED, details={"role": "editor"}))
        sink(AuditEvent(action=AuditAction.ROLE_REMOVED, details={"role": "editor"}))

        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [r["action"] for r in records] == ["role_added", "role_removed"]
        assert records[0]["details"] == {"role": "editor"}
        assert "timestamp" in records[0]

    def test_engine_mutations_are_recorded(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.log"
        engine = Permissionless({"roles": {"viewer": {"permissions": ["read:articles"]}}})
        engine.subscribe(JsonlAuditSink(path))

        engine.add_role("editor", ["write:articles"], ["viewer"])
        engine.add_permission_to_role("editor", "delete:articles")
        engine.remove_role("editor")
        engine.replace_configuration({"roles": {}})

        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [r["action"] for r in records] == [
            "role_added",
            "permission_added",
            "role_removed",
            "config_reloaded",
        ]
        assert records[0]["details"] == {
            "role": "editor",
            "permissions": ["write:articles"],
            "inherits": ["viewer"],
        }
        assert records[1]["details"] == {"role": "editor", "permission": "delete:articles"}

    def test_concurrent_writes_do_not_interleave(self, tmp_path: Path) -> None:
        path = tmp_path / "audit.log"
        sink = JsonlAuditSink(path)

        def write(n: int) -> None:
            for i in range(50):
                sink(AuditEvent(action=AuditAction.PERMISSION_ADDED, details={"worker": n, "i": i}))

        threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 200
        assert all(json.loads(line)["action"] == "permission_added" for line in lines)

    def test_repr(self, tmp_path: Path) -> None:
        assert "audit.log" in repr(JsonlAuditSink(tmp_path / "audit.log"))
