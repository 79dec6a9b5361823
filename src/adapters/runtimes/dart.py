"""
Dart runtime delegate.

Dart sources describe their functions at build time: the
``build_runner`` code generator writes
``.dart_tool/firebase/functions.yaml``.  Discovery reads that file, and
runs the generator once to produce it when it is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from src.adapters.process.supervisor import (
    SupervisedProcess,
    Teardown,
    build_child_env,
    make_teardown,
    run_to_completion,
    runtime_env,
    spawn,
)
from src.adapters.runtimes.base import RuntimeDelegate
from src.core.config.settings import RuntimeSettings
from src.core.errors import (
    DiscoveryError,
    InternalConsistencyError,
    ProcessError,
    SourceValidationError,
)
from src.core.models import runtime as supported
from src.core.models.build import Build
from src.core.models.source import (
    EnvironmentVariables,
    RuntimeConfigValues,
    SourceDescriptor,
)
from src.core.services import discovery

logger = logging.getLogger(__name__)

PUBSPEC = "pubspec.yaml"
SDK_PACKAGE = "firebase_functions"
MANIFEST_DIR = Path(".dart_tool") / "firebase"


async def try_create_delegate(
    context: SourceDescriptor,
    settings: RuntimeSettings | None = None,
) -> DartDelegate | None:
    """Return a Dart delegate if the source has a pubspec.yaml."""
    if not (Path(context.source_dir) / PUBSPEC).exists():
        logger.debug("Customer code is not Dart (no %s)", PUBSPEC)
        return None

    runtime = context.runtime or supported.latest("dart")
    if not supported.is_runtime(runtime):
        raise SourceValidationError(
            f"Runtime {runtime} is not a valid Dart runtime",
            remediation="Use one of: " + ", ".join(r.name for r in supported.runtimes_for("dart")),
        )
    if not supported.runtime_is_language(runtime, "dart"):
        raise InternalConsistencyError(
            f"Internal error. Trying to construct a dart runtime delegate for runtime {runtime}",
            exit_code=1,
        )
    return DartDelegate(
        context.project_id,
        context.project_dir,
        context.source_dir,
        runtime,
        settings=settings,
    )


class DartDelegate(RuntimeDelegate):
    """Delegate for Dart sources using build_runner code generation."""

    language = "dart"
    executable = "dart"

    @property
    def manifest_dir(self) -> Path:
        return self.source_dir / MANIFEST_DIR

    @property
    def manifest_path(self) -> Path:
        return self.manifest_dir / discovery.MANIFEST_FILE

    def _load_sdk_version(self) -> str:
        try:
            pubspec = self._read_pubspec()
        except SourceValidationError:
            return ""
        dependency = (pubspec.get("dependencies") or {}).get(SDK_PACKAGE)
        if isinstance(dependency, str):
            return dependency
        if isinstance(dependency, dict) and isinstance(dependency.get("version"), str):
            return dependency["version"]
        # path: or git: dependencies carry no version
        return ""

    def _read_pubspec(self) -> dict[str, Any]:
        path = self.source_dir / PUBSPEC
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise SourceValidationError(f"Failed to read {PUBSPEC} at {path}: {e}") from e
        except yaml.YAMLError as e:
            raise SourceValidationError(
                f"Invalid YAML in {path}: {e}",
                remediation=f"Fix the syntax error in {PUBSPEC}.",
            ) from e
        if not isinstance(data, dict):
            raise SourceValidationError(f"Expected a YAML mapping in {path}")
        return data

    async def validate(self) -> None:
        pubspec = self._read_pubspec()
        if not pubspec.get("name"):
            raise SourceValidationError(
                f"{self.relative_source}/{PUBSPEC} is missing the required 'name' field.",
            )
        dependencies = pubspec.get("dependencies") or {}
        if not isinstance(dependencies, dict) or SDK_PACKAGE not in dependencies:
            raise SourceValidationError(
                f"{self.relative_source}/{PUBSPEC} does not depend on {SDK_PACKAGE}.",
                remediation=f"Run: dart pub add {SDK_PACKAGE}",
            )

    async def build(self) -> None:
        # build_runner produces everything; see discover_build and watch.
        return None

    async def watch(self, *, serving: bool = False) -> Teardown:
        env = build_child_env()
        started: list[SupervisedProcess] = []
        try:
            if not serving:
                started.append(await spawn(
                    "dart run",
                    [self.executable, "run", str(self.source_dir)],
                    cwd=self.source_dir,
                    env=env,
                    grace_period=self.settings.grace_period,
                    stdout_level=logging.INFO,
                    stderr_level=logging.ERROR,
                ))
            started.append(await spawn(
                "build_runner",
                [self.executable, "run", "build_runner", "watch", "-d"],
                cwd=self.source_dir,
                env=env,
                grace_period=self.settings.grace_period,
                stdout_level=logging.INFO,
                stderr_level=logging.ERROR,
            ))
        except ProcessError:
            await make_teardown(*started)()
            raise
        return make_teardown(*started)

    async def serve(
        self,
        port: int,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> Teardown:
        proc = await spawn(
            "dart run",
            [self.executable, "run", str(self.source_dir)],
            cwd=self.source_dir,
            env=runtime_env(port, config, env),
            grace_period=self.settings.grace_period,
            stdout_level=logging.DEBUG,
            stderr_level=logging.INFO,
        )
        return make_teardown(proc)

    async def discover_build(
        self,
        config: RuntimeConfigValues,
        env: EnvironmentVariables,
    ) -> Build:
        discovered = discovery.detect_from_yaml(self.manifest_dir, self.project_id, self.runtime)
        if discovered is not None:
            return discovered

        logger.debug("%s not found, running build_runner to generate it...", self.manifest_path)
        proc = await run_to_completion(
            "build_runner",
            [self.executable, "run", "build_runner", "build"],
            cwd=self.source_dir,
            env=build_child_env(),
            grace_period=self.settings.grace_period,
        )
        if proc.returncode != 0:
            tail = "\n".join(f"  | {line}" for line in proc.stderr_tail)
            raise DiscoveryError(
                f"build_runner failed with exit code {proc.returncode}, so {self.manifest_path} "
                f"was not generated." + (f"\n{tail}" if tail else ""),
                path=str(self.manifest_path),
                remediation=(
                    f"Make sure your Dart project is properly configured with {SDK_PACKAGE} "
                    "and that `dart pub get` succeeds."
                ),
            )

        discovered = discovery.detect_from_yaml(self.manifest_dir, self.project_id, self.runtime)
        if discovered is None:
            raise DiscoveryError(
                f"Could not find functions.yaml at {self.manifest_path} after running build_runner.",
                path=str(self.manifest_path),
                remediation=f"Make sure your Dart project is properly configured with {SDK_PACKAGE}.",
            )
        return discovered
