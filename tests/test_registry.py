"""
Tests for the delegate registry — first-claim-wins detection.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.adapters.runtimes.dart import DartDelegate
from src.adapters.runtimes.node import NodeDelegate
from src.adapters.runtimes.registry import (
    DelegateRegistry,
    default_registry,
    detect_delegate,
    get_runtime_delegate,
)
from src.core.errors import SourceValidationError


class TestDelegateRegistry:
    def test_default_languages(self):
        assert default_registry().list_languages() == ["nodejs", "dart"]

    def test_register_unregister(self):
        registry = DelegateRegistry()
        registry.register("fake", AsyncMock(return_value=None))
        assert registry.list_languages() == ["fake"]
        registry.unregister("fake")
        registry.unregister("fake")
        assert registry.list_languages() == []

    @pytest.mark.asyncio
    async def test_first_claim_wins(self, tmp_path: Path, descriptor_for):
        claimed = MagicMock(runtime="fake1")
        first = AsyncMock(return_value=None)
        second = AsyncMock(return_value=claimed)
        third = AsyncMock(return_value=MagicMock(runtime="fake2"))
        registry = DelegateRegistry()
        registry.register("a", first)
        registry.register("b", second)
        registry.register("c", third)

        context = descriptor_for(tmp_path)
        assert await registry.detect(context) is claimed
        first.assert_awaited_once()
        third.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_factory_error_propagates(self, tmp_path: Path, descriptor_for):
        registry = DelegateRegistry()
        registry.register("broken", AsyncMock(side_effect=SourceValidationError("bad")))
        with pytest.raises(SourceValidationError, match="bad"):
            await registry.detect(descriptor_for(tmp_path))


class TestDetection:
    @pytest.mark.asyncio
    async def test_node(self, node_source: Path, descriptor_for):
        delegate = await detect_delegate(descriptor_for(node_source))
        assert isinstance(delegate, NodeDelegate)

    @pytest.mark.asyncio
    async def test_dart(self, tmp_path: Path, descriptor_for):
        (tmp_path / "pubspec.yaml").write_text("name: x\n")
        delegate = await detect_delegate(descriptor_for(tmp_path))
        assert isinstance(delegate, DartDelegate)

    @pytest.mark.asyncio
    async def test_unknown_returns_none(self, tmp_path: Path, descriptor_for):
        (tmp_path / "requirements.txt").write_text("flask\n")
        assert await detect_delegate(descriptor_for(tmp_path)) is None

    @pytest.mark.asyncio
    async def test_unknown_is_user_error(self, tmp_path: Path, descriptor_for):
        with pytest.raises(SourceValidationError, match="Could not detect") as exc:
            await get_runtime_delegate(descriptor_for(tmp_path))
        assert "package.json" in exc.value.remediation
        assert exc.value.exit_code == 2

    @pytest.mark.asyncio
    async def test_settings_passed_through(self, node_source: Path, descriptor_for, fast_settings):
        delegate = await get_runtime_delegate(descriptor_for(node_source), fast_settings)
        assert delegate.settings is fast_settings
