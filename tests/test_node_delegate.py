"""
Tests for the Node.js runtime delegate — detection, validation, the
discovery strategy ladder, and process cleanup.
"""

import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.adapters.runtimes import node
from src.adapters.runtimes.node import NodeDelegate, try_create_delegate
from src.adapters.runtimes.node_package import (
    get_runtime_choice,
    get_sdk_version,
    runtime_from_engines,
)
from src.core.errors import DiscoveryError, ProcessError, SourceValidationError
from src.core.models.build import Build, ScheduleTrigger

LEGACY_INDEX = 'exports.hello = functions.https.onRequest((req, res) => res.send("hi"));\n'


def _warnings(caplog) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.levelno == logging.WARNING]


# ── package.json helpers ────────────────────────────────────────────


class TestRuntimeChoice:
    def test_engines(self):
        assert runtime_from_engines({"engines": {"node": "20"}}) == "nodejs20"
        assert runtime_from_engines({"engines": {"node": ">=18"}}) == "nodejs18"
        assert runtime_from_engines({"engines": {"node": "^22.1.0"}}) == "nodejs22"
        assert runtime_from_engines({}) is None

    def test_declared_wins(self, make_node):
        source = make_node(engines="18")
        assert get_runtime_choice(source, "nodejs20") == "nodejs20"

    def test_engines_then_latest(self, make_node, tmp_path: Path):
        assert get_runtime_choice(make_node(engines="18"), None) == "nodejs18"
        other = tmp_path / "other"
        other.mkdir()
        (other / "package.json").write_text("{}")
        assert get_runtime_choice(other, None) == "nodejs22"

    def test_unsupported(self, make_node):
        with pytest.raises(SourceValidationError, match="nodejs8"):
            get_runtime_choice(make_node(engines="8"), None)

    def test_decommissioned(self, make_node):
        with pytest.raises(SourceValidationError):
            get_runtime_choice(make_node(), "nodejs16")


class TestSdkVersion:
    def test_installed(self, make_node):
        assert get_sdk_version(make_node(sdk_version="4.9.0", declared="^4.0.0")) == "4.9.0"

    def test_declared_verbatim_when_not_installed(self, make_node):
        assert get_sdk_version(make_node(sdk_version=None, declared="^4.0.0")) == "^4.0.0"

    def test_hoisted_node_modules(self, tmp_path: Path, make_node):
        source = make_node(sdk_version=None, declared="4.0.0")
        hoisted = tmp_path / "node_modules" / "firebase-functions"
        hoisted.mkdir(parents=True)
        (hoisted / "package.json").write_text(json.dumps({"version": "5.1.0"}))
        assert get_sdk_version(source) == "5.1.0"


# ── Detection ───────────────────────────────────────────────────────


class TestTryCreateDelegate:
    @pytest.mark.asyncio
    async def test_not_node(self, tmp_path: Path, descriptor_for):
        assert await try_create_delegate(descriptor_for(tmp_path)) is None

    @pytest.mark.asyncio
    async def test_node(self, node_source: Path, descriptor_for):
        delegate = await try_create_delegate(descriptor_for(node_source, "nodejs20"))
        assert isinstance(delegate, NodeDelegate)
        assert delegate.runtime == "nodejs20"
        assert delegate.language == "nodejs"
        assert delegate.sdk_version == "4.5.0"

    @pytest.mark.asyncio
    async def test_invalid_runtime(self, node_source: Path, descriptor_for):
        with pytest.raises(SourceValidationError):
            await try_create_delegate(descriptor_for(node_source, "nodejs0"))


class TestSdkVersionCaching:
    def test_read_once(self, node_source: Path):
        delegate = NodeDelegate("p", node_source.parent, node_source, "nodejs20")
        with patch.object(node, "get_sdk_version", return_value="4.5.0") as reader:
            assert delegate.sdk_version == "4.5.0"
            assert delegate.sdk_version == "4.5.0"
        assert reader.call_count == 1

    def test_empty_version_is_cached(self, node_source: Path):
        delegate = NodeDelegate("p", node_source.parent, node_source, "nodejs20")
        with patch.object(node, "get_sdk_version", return_value="") as reader:
            assert delegate.sdk_version == ""
            assert delegate.sdk_version == ""
        assert reader.call_count == 1


# ── Validation ──────────────────────────────────────────────────────


class TestValidate:
    @pytest.mark.asyncio
    async def test_valid(self, node_source: Path):
        await NodeDelegate("p", node_source.parent, node_source, "nodejs20").validate()

    @pytest.mark.asyncio
    async def test_missing_main(self, make_node):
        source = make_node(main="lib/index.js")
        (source / "lib" / "index.js").unlink()
        delegate = NodeDelegate("p", source.parent, source, "nodejs20")
        with pytest.raises(SourceValidationError, match="does not exist") as exc:
            await delegate.validate()
        assert "functions/package.json" in exc.value.message

    @pytest.mark.asyncio
    async def test_sdk_too_old(self, make_node):
        source = make_node(sdk_version="1.9.0")
        with pytest.raises(SourceValidationError, match="no longer supported"):
            await NodeDelegate("p", source.parent, source, "nodejs20").validate()

    @pytest.mark.asyncio
    async def test_missing_sdk_warns(self, make_node, caplog):
        caplog.set_level(logging.WARNING)
        source = make_node(sdk_version=None, declared="")
        delegate = NodeDelegate("p", source.parent, source, "nodejs20")
        await delegate.validate()
        assert "could not find an installed firebase-functions" in caplog.text


# ── Discovery ladder ────────────────────────────────────────────────


class TestDiscoverBuildLegacy:
    @pytest.mark.asyncio
    async def test_unparseable_version_no_warning(self, make_node, caplog):
        caplog.set_level(logging.DEBUG)
        source = make_node(sdk_version=None, declared="^4.0.0", index=LEGACY_INDEX)
        delegate = NodeDelegate("p", source.parent, source, "nodejs20")
        with patch.object(node, "spawn", new=AsyncMock()) as spawn:
            build = await delegate.discover_build({}, {})
        spawn.assert_not_called()
        assert set(build.endpoints) == {"hello"}
        assert _warnings(caplog) == []

    @pytest.mark.asyncio
    async def test_old_version_warns_once(self, make_node, caplog):
        caplog.set_level(logging.DEBUG)
        source = make_node(sdk_version="3.10.0", index=LEGACY_INDEX)
        delegate = NodeDelegate("p", source.parent, source, "nodejs20")
        with patch.object(node, "spawn", new=AsyncMock()) as spawn:
            build = await delegate.discover_build({}, {"KEY": "v"})
        spawn.assert_not_called()
        assert build.endpoints["hello"].environment_variables == {"KEY": "v"}
        warnings = _warnings(caplog)
        assert len(warnings) == 1
        assert "3.10.0" in warnings[0].getMessage()
        assert ">=3.20.0" in warnings[0].getMessage()


class TestDiscoverBuildStatic:
    @pytest.mark.asyncio
    async def test_functions_yaml_short_circuits(self, make_node, fast_settings):
        source = make_node(sdk_version="4.5.0")
        (source / "functions.yaml").write_text(
            "specVersion: v1alpha1\nendpoints:\n  tick:\n    scheduleTrigger:\n"
            "      schedule: every 1 minutes\n"
        )
        delegate = NodeDelegate("p", source.parent, source, "nodejs20", settings=fast_settings)
        with patch.object(node, "spawn", new=AsyncMock()) as spawn, \
                patch.object(node, "find_available_port") as port:
            build = await delegate.discover_build({}, {})
        spawn.assert_not_called()
        port.assert_not_called()
        assert isinstance(build.endpoints["tick"].trigger, ScheduleTrigger)


class TestDiscoverBuildLive:
    @pytest.mark.asyncio
    async def test_server_stopped_when_probe_fails(self, node_source: Path, fast_settings):
        delegate = NodeDelegate("p", node_source.parent, node_source, "nodejs20",
                                settings=fast_settings)
        proc = AsyncMock()
        proc.running = True
        with patch.object(delegate, "_start_server", new=AsyncMock(return_value=proc)) as start, \
                patch.object(node.discovery, "detect_from_port",
                             new=AsyncMock(side_effect=DiscoveryError("boom", port=1))):
            with pytest.raises(DiscoveryError, match="boom"):
                await delegate.discover_build({}, {})
        start.assert_awaited_once()
        proc.terminate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_stopped_on_success(self, node_source: Path, fast_settings):
        delegate = NodeDelegate("p", node_source.parent, node_source, "nodejs20",
                                settings=fast_settings)
        proc = AsyncMock()
        with patch.object(delegate, "_start_server", new=AsyncMock(return_value=proc)), \
                patch.object(node.discovery, "detect_from_port",
                             new=AsyncMock(return_value=Build.empty("nodejs20"))) as probe:
            build = await delegate.discover_build({"a": 1}, {})
        assert build.runtime == "nodejs20"
        proc.terminate.assert_awaited_once()
        assert probe.await_args.kwargs["timeout"] == fast_settings.discovery_timeout

    @pytest.mark.asyncio
    async def test_missing_binary(self, node_source: Path, fast_settings):
        delegate = NodeDelegate("p", node_source.parent, node_source, "nodejs20",
                                settings=fast_settings)
        with pytest.raises(ProcessError, match="Could not find the firebase-functions executable"):
            await delegate.discover_build({}, {})


class TestEndToEnd:
    """Real subprocess standing in for the SDK's discovery server."""

    @pytest.mark.asyncio
    async def test_live_discovery(self, make_node, fast_settings, monkeypatch):
        monkeypatch.setenv("LEAKY_HOST_VAR", "nope")
        source = make_node(sdk_version="3.25.0", with_binary=True)
        sdk_dir = source / "node_modules" / "firebase-functions"
        delegate = NodeDelegate("demo-project", source.parent, source, "nodejs20",
                                settings=fast_settings)

        build = await delegate.discover_build({"service": {"key": "v"}}, {"GREETING": "hi"})

        assert set(build.endpoints) == {"hello", "nightly"}
        assert build.endpoints["hello"].project == "demo-project"
        assert build.endpoints["nightly"].region == ["europe-west1"]
        assert [a.api for a in build.required_apis] == ["cloudscheduler.googleapis.com"]

        env = json.loads((sdk_dir / "env.json").read_text())
        assert env["FUNCTIONS_CONTROL_API"] == "true"
        assert env["GREETING"] == "hi"
        assert json.loads(env["CLOUD_RUNTIME_CONFIG"]) == {"service": {"key": "v"}}
        assert "LEAKY_HOST_VAR" not in env

        requests = (sdk_dir / "requests.log").read_text().split()
        assert "/__/functions.yaml" in requests
        assert requests[-1] == "/__/quitquitquit"
        assert (sdk_dir / "starts.log").read_text().count("start") == 1

    @pytest.mark.asyncio
    async def test_serve_and_teardown(self, make_node, fast_settings):
        from src.adapters.process.ports import find_available_port
        from src.core.services.discovery import detect_from_port

        source = make_node(sdk_version="4.5.0", with_binary=True)
        delegate = NodeDelegate("demo-project", source.parent, source, "nodejs20",
                                settings=fast_settings)
        port = find_available_port()
        teardown = await delegate.serve(port, {}, {})
        try:
            build = await detect_from_port(port, "demo-project", "nodejs20", timeout=10)
        finally:
            await teardown()
        await teardown()
        assert "hello" in build.endpoints
        env = json.loads((source / "node_modules" / "firebase-functions" / "env.json").read_text())
        assert "CLOUD_RUNTIME_CONFIG" not in env
        assert env["PORT"] == str(port)


class TestWatchAndBuild:
    @pytest.mark.asyncio
    async def test_noops(self, node_source: Path):
        delegate = NodeDelegate("p", node_source.parent, node_source, "nodejs20")
        assert await delegate.build() is None
        teardown = await delegate.watch()
        await teardown()
        await teardown()
        await (await delegate.watch(serving=True))()
