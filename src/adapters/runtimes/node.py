"""
Node.js runtime delegate.

Discovery for Node.js prefers a functions.yaml already in the source
directory.  Without one, the SDK's own ``firebase-functions`` binary is
started on a free local port with the control API enabled, and the
manifest is fetched from it over HTTP.  SDKs too old (or too oddly
versioned) to speak that protocol fall back to the legacy source scan.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from src.adapters.process.ports import find_available_port
from src.adapters.process.supervisor import (
    SupervisedProcess,
    Teardown,
    make_teardown,
    noop_teardown,
    runtime_env,
    spawn,
)
from src.adapters.runtimes.base import RuntimeDelegate
from src.adapters.runtimes.node_package import (
    PACKAGE_JSON,
    SDK_PACKAGE,
    check_sdk_version,
    find_sdk_binary,
    get_runtime_choice,
    get_sdk_version,
    package_json_is_valid,
)
from src.core.config.settings import RuntimeSettings
from src.core.errors import ProcessError
from src.core.models.build import Build
from src.core.models.source import (
    EnvironmentVariables,
    RuntimeConfigValues,
    SourceDescriptor,
)
from src.core.services import discovery, legacy_triggers, versioning

logger = logging.getLogger(__name__)

# First SDK release that serves its manifest over the control API.
MIN_FUNCTIONS_SDK_VERSION = "3.20.0"

QUIT_PATH = "/__/quitquitquit"
_QUIT_TIMEOUT = 2.0


async def try_create_delegate(
    context: SourceDescriptor,
    settings: RuntimeSettings | None = None,
) -> NodeDelegate | None:
    """Return a Node.js delegate if the source has a package.json."""
    if not (Path(context.source_dir) / PACKAGE_JSON).exists():
        logger.debug("Customer code is not Node.js (no %s)", PACKAGE_JSON)
        return None

    runtime = get_runtime_choice(context.source_dir, context.runtime)
    return NodeDelegate(
        context.project_id,
        context.project_dir,
        context.source_dir,
        runtime,
        settings=settings,
    )


class NodeDelegate(RuntimeDelegate):
    """Delegate for Node.js sources using the functions SDK."""

    language = "nodejs"

    def _load_sdk_version(self) -> str:
        return get_sdk_version(self.source_dir)

    async def validate(self) -> None:
        check_sdk_version(self.sdk_version)
        package_json_is_valid(self.source_dir, self.relative_source)

    async def build(self) -> None:
        # Compilation (tsc, bundlers) already runs through predeploy hooks.
        return None

    async def watch(self, *, serving: bool = False) -> Teardown:
        return noop_teardown

    async def serve(
        self,
        port: int,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> Teardown:
        proc = await self._start_server(port, config, env)
        return make_teardown(proc)

    async def discover_build(
        self,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> Build:
        if not versioning.is_valid(self.sdk_version):
            logger.debug(
                "Could not parse %s version '%s' into semver. Falling back to the legacy scan.",
                SDK_PACKAGE, self.sdk_version,
            )
            return legacy_triggers.discover_build(self.project_id, self.source_dir, self.runtime, env)

        if versioning.lt(self.sdk_version, MIN_FUNCTIONS_SDK_VERSION):
            logger.warning(
                "functions: You are using an old version of %s SDK (%s). "
                "Please update %s SDK to >=%s",
                SDK_PACKAGE, self.sdk_version, SDK_PACKAGE, MIN_FUNCTIONS_SDK_VERSION,
            )
            return legacy_triggers.discover_build(self.project_id, self.source_dir, self.runtime, env)

        discovered = discovery.detect_from_yaml(self.source_dir, self.project_id, self.runtime)
        if discovered is not None:
            return discovered

        port = find_available_port()
        proc = await self._start_server(port, config, env)
        try:
            discovered = await discovery.detect_from_port(
                port,
                self.project_id,
                self.runtime,
                timeout=self.settings.discovery_timeout,
                is_alive=lambda: proc.running,
            )
        finally:
            await proc.terminate()
        return discovered

    async def _start_server(
        self,
        port: int,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> SupervisedProcess:
        binary = find_sdk_binary(self.source_dir)
        if binary is None:
            raise ProcessError(
                f"Could not find the {SDK_PACKAGE} executable for {self.relative_source}.",
                remediation=f"Run npm install in {self.relative_source}.",
            )

        async def quit() -> None:
            async with httpx.AsyncClient(timeout=_QUIT_TIMEOUT) as client:
                await client.get(f"http://localhost:{port}{QUIT_PATH}")

        return await spawn(
            SDK_PACKAGE,
            [str(binary), str(self.source_dir)],
            cwd=self.source_dir,
            env=runtime_env(port, config, env),
            grace_period=self.settings.grace_period,
            quit=quit,
            stdout_level=logging.DEBUG,
            stderr_level=logging.INFO,
        )
