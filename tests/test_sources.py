"""Tests for configuration sources, reloads and the file watcher."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

import httpx
import pytest

from permissionless import (
    AuditAction,
    ConfigSourceError,
    ConfigurationInvalid,
    EngineSettings,
    Permissionless,
    User,
    fetch_config,
    load_config_file,
    watch_config_file,
)

INITIAL = {"roles": {"viewer": {"permissions": ["read:articles"]}}}
UPDATED = {
    "roles": {
        "viewer": {"permissions": ["read:articles"]},
        "editor": {"permissions": ["write:articles"], "inherits": ["viewer"]},
    }
}
URL = "https://config.example.com/permissions.json"


def _write(path: Path, document: object) -> None:
    path.write_text(json.dumps(document), encoding="utf-8")


def _bump_mtime(path: Path, seconds: int) -> None:
    stat = path.stat()
    new_mtime = stat.st_mtime_ns + seconds * 1_000_000_000
    os.utime(path, ns=(stat.st_atime_ns, new_mtime))


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _wait_for(predicate, timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestLoadConfigFile:
    def test_reads_document(self, tmp_path: Path) -> None:
        path = tmp_path / "permissions.json"
        _write(path, INITIAL)
        assert load_config_file(path) == INITIAL

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigSourceError, match="not found") as exc:
            load_config_file(tmp_path / "missing.json")
        assert exc.value.details["path"].endswith("missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "permissions.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigSourceError, match="Failed to parse"):
            load_config_file(path)


class TestFetchConfig:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == URL
            return httpx.Response(200, json=INITIAL)

        async with _mock_client(handler) as client:
            assert await fetch_config(URL, client=client) == INITIAL

    @pytest.mark.asyncio
    async def test_non_200(self) -> None:
        async with _mock_client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(ConfigSourceError) as exc:
                await fetch_config(URL, client=client)
        assert exc.value.details == {"url": URL, "status_code": 503}

    @pytest.mark.asyncio
    async def test_invalid_json_body(self) -> None:
        async with _mock_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(ConfigSourceError, match="not valid JSON"):
                await fetch_config(URL, client=client)

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _mock_client(handler) as client:
            with pytest.raises(ConfigSourceError, match="connection refused"):
                await fetch_config(URL, client=client)

    @pytest.mark.asyncio
    async def test_shared_client_left_open(self) -> None:
        async with _mock_client(lambda request: httpx.Response(200, json=INITIAL)) as client:
            await fetch_config(URL, client=client)
            assert not client.is_closed


class TestReload:
    def test_reload_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "permissions.json"
        _write(path, UPDATED)
        engine = Permissionless(INITIAL)
        events = []
        engine.subscribe(events.append)

        engine.reload_from_file(str(path))

        assert engine.list_roles() == ["viewer", "editor"]
        assert events[0].action == AuditAction.CONFIG_RELOADED
        assert events[0].details == {"source": f"file:{path}", "roles": 2, "users": 0}

    def test_reload_from_missing_file_keeps_config(self, tmp_path: Path) -> None:
        engine = Permissionless(INITIAL)
        with pytest.raises(ConfigSourceError):
            engine.reload_from_file(str(tmp_path / "missing.json"))
        assert engine.list_roles() == ["viewer"]

    def test_reload_from_settings_path(self, tmp_path: Path) -> None:
        path = tmp_path / "permissions.json"
        _write(path, UPDATED)
        engine = Permissionless(INITIAL, settings=EngineSettings(config_path=str(path), audit_log_path=""))
        engine.reload_from_file()
        assert engine.has_role("editor")

    @pytest.mark.asyncio
    async def test_reload_from_url(self) -> None:
        engine = Permissionless(INITIAL)
        async with _mock_client(lambda request: httpx.Response(200, json=UPDATED)) as client:
            await engine.reload_from_url(URL, client=client)
        assert engine.has_permission(User(id="1", role="editor"), "read", "articles")

    @pytest.mark.asyncio
    async def test_reload_from_url_invalid_document_keeps_config(self) -> None:
        engine = Permissionless(INITIAL)
        bad = {"roles": {"viewer": {"permissions": "read:*"}}}
        async with _mock_client(lambda request: httpx.Response(200, json=bad)) as client:
            with pytest.raises(ConfigurationInvalid):
                await engine.reload_from_url(URL, client=client)
        assert engine.get_permissions_for_role("viewer") == ["read:articles"]

    @pytest.mark.asyncio
    async def test_reload_from_url_requires_url(self) -> None:
        engine = Permissionless(INITIAL)
        with pytest.raises(ConfigSourceError, match="No configuration URL"):
            await engine.reload_from_url()

    @pytest.mark.asyncio
    async def test_reload_from_custom_source(self) -> None:
        engine = Permissionless(INITIAL)

        async def source() -> dict:
            return UPDATED

        await engine.reload_from(source, name="firestore")
        assert engine.has_role("editor")

    @pytest.mark.asyncio
    async def test_reload_from_failing_source_is_wrapped(self) -> None:
        engine = Permissionless(INITIAL)

        async def source() -> dict:
            raise RuntimeError("backend down")

        with pytest.raises(ConfigSourceError, match="backend down") as exc:
            await engine.reload_from(source, name="db")
        assert exc.value.details == {"source": "db"}
        assert engine.list_roles() == ["viewer"]


class TestFromSettings:
    def test_builds_engine_with_audit_sink(self, tmp_path: Path) -> None:
        config_path = tmp_path / "permissions.json"
        audit_path = tmp_path / "audit" / "permissionless_audit.log"
        _write(config_path, INITIAL)

        engine = Permissionless.from_settings(
            EngineSettings(config_path=str(config_path), audit_log_path=str(audit_path))
        )
        engine.add_role("editor", ["write:articles"], ["viewer"])

        lines = audit_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["action"] == "role_added"
        assert record["details"]["role"] == "editor"

    def test_audit_sink_disabled(self, tmp_path: Path) -> None:
        config_path = tmp_path / "permissions.json"
        _write(config_path, INITIAL)

        engine = Permissionless.from_settings(EngineSettings(config_path=str(config_path), audit_log_path=""))
        engine.add_role("editor", ["write:articles"])

        assert list(tmp_path.iterdir()) == [config_path]

    def test_missing_config_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigSourceError):
            Permissionless.from_settings(EngineSettings(config_path=str(tmp_path / "nope.json"), audit_log_path=""))


class TestWatchConfigFile:
    @pytest.mark.asyncio
    async def test_reloads_on_change(self, tmp_path: Path) -> None:
        path = tmp_path / "permissions.json"
        _write(path, INITIAL)
        engine = Permissionless(INITIAL)

        task = asyncio.create_task(watch_config_file(engine, path, interval=0.01))
        await asyncio.sleep(0.05)
        _write(path, UPDATED)
        _bump_mtime(path, 5)

        try:
            assert await _wait_for(lambda: engine.has_role("editor"))
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    @pytest.mark.asyncio
    async def test_invalid_change_keeps_config(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "permissions.json"
        _write(path, INITIAL)
        engine = Permissionless(INITIAL)

        with caplog.at_level(logging.WARNING, logger="permissionless.sources"):
            task = engine.watch(str(path), interval=0.01)
            await asyncio.sleep(0.05)
            path.write_text('{"users": {}}', encoding="utf-8")
            _bump_mtime(path, 5)
            try:
                assert await _wait_for(lambda: "rejected" in caplog.text)
            finally:
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

        assert engine.list_roles() == ["viewer"]

    @pytest.mark.asyncio
    async def test_unchanged_file_is_not_reloaded(self, tmp_path: Path) -> None:
        path = tmp_path / "permissions.json"
        _write(path, INITIAL)
        engine = Permissionless(INITIAL)
        events = []
        engine.subscribe(events.append)

        task = engine.watch(str(path), interval=0.01)
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert events == []

    @pytest.mark.asyncio
    async def test_explicit_interval_is_kept(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[float] = []

        async def fake_watch(engine: Permissionless, path: object, *, interval: float) -> None:
            seen.append(interval)

        monkeypatch.setattr("permissionless.engine.watch_config_file", fake_watch)
        engine = Permissionless(INITIAL, settings=EngineSettings(watch_interval_seconds=5.0, audit_log_path=""))

        await engine.watch(str(tmp_path / "p.json"), interval=0)
        await engine.watch(str(tmp_path / "p.json"))

        assert seen == [0, 5.0]

    @pytest.mark.asyncio
    async def test_reload_from_url_uses_settings_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[float] = []

        async def fake_fetch(url: str, *, timeout: float, client: object = None) -> dict:
            seen.append(timeout)
            return UPDATED

        monkeypatch.setattr("permissionless.engine.fetch_config", fake_fetch)
        engine = Permissionless(INITIAL, settings=EngineSettings(fetch_timeout_seconds=2.5, audit_log_path=""))

        await engine.reload_from_url(URL)

        assert seen == [2.5]
        assert engine.has_role("editor")
