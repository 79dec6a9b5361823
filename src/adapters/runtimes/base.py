"""
Runtime delegate base — the contract between the deploy pipeline and a
language ecosystem.

The orchestrator only talks to delegates through this interface, never
to npm, dart or user code directly.  One delegate exists per source
directory; it is created by the ecosystem's ``try_create_delegate`` and
dropped when the deploy or emulator session ends.

To add an ecosystem:
    1. Subclass RuntimeDelegate
    2. Implement validate, build, watch, serve, discover_build, _load_sdk_version
    3. Add its ``try_create_delegate`` to the registry's factory list
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from src.adapters.process.supervisor import Teardown
from src.core.config.settings import RuntimeSettings
from src.core.models.build import Build
from src.core.models.source import EnvironmentVariables, RuntimeConfigValues


class RuntimeDelegate(ABC):
    """Uniform lifecycle for one function source directory."""

    language: str = ""

    def __init__(
        self,
        project_id: str,
        project_dir: Path,
        source_dir: Path,
        runtime: str,
        settings: RuntimeSettings | None = None,
    ):
        self.project_id = project_id
        self.project_dir = Path(project_dir)
        self.source_dir = Path(source_dir)
        self.runtime = runtime
        self.settings = settings or RuntimeSettings.from_env()
        self._sdk_version: str | None = None

    @property
    def sdk_version(self) -> str:
        """SDK version the source depends on ("" if unknown).

        Read from disk on first access only; later calls reuse it.
        """
        if self._sdk_version is None:
            self._sdk_version = self._load_sdk_version()
        return self._sdk_version

    @property
    def relative_source(self) -> str:
        try:
            return str(self.source_dir.relative_to(self.project_dir))
        except ValueError:
            return str(self.source_dir)

    @abstractmethod
    def _load_sdk_version(self) -> str:
        """Read the SDK version from the source directory."""

    @abstractmethod
    async def validate(self) -> None:
        """Check the source is structurally deployable.

        Never modifies the source.

        Raises:
            SourceValidationError: with a remediation for the user.
        """

    @abstractmethod
    async def build(self) -> None:
        """Compile or generate artifacts.  Must be idempotent."""

    @abstractmethod
    async def watch(self, *, serving: bool = False) -> Teardown:
        """Start background processes for local development.

        With ``serving=True`` the caller also runs ``serve()``, so only
        processes that serve() does not already start are launched.

        Returns:
            A teardown that stops everything started (safe to call twice).
        """

    @abstractmethod
    async def serve(
        self,
        port: int,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> Teardown:
        """Start a local process answering discovery requests on ``port``."""

    @abstractmethod
    async def discover_build(
        self,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> Build:
        """Describe the functions in the source.

        Raises:
            DiscoveryError: if no discovery strategy succeeds.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} runtime={self.runtime!r} source={str(self.source_dir)!r}>"
