"""
Legacy trigger discovery — static scan of a Node.js entry file.

SDKs older than the discovery-server protocol (or whose version cannot
be parsed) cannot describe themselves.  For those we read the package
entry point as text and recognise the classic v1 declaration shape:

    exports.name = functions.region("europe-west1").https.onRequest(...)

Nothing is executed.  Declarations assembled dynamically at runtime
are invisible to this scan, which is why it is only a fallback.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from src.core.errors import DiscoveryError
from src.core.models.build import (
    Build,
    CallableTrigger,
    Endpoint,
    EventTrigger,
    HttpsTrigger,
    ScheduleTrigger,
    TaskQueueTrigger,
)
from src.core.models.source import EnvironmentVariables

logger = logging.getLogger(__name__)

_EXPORT_RE = re.compile(
    r"^[ \t]*(?:module\.)?exports(?:\.([A-Za-z_$][\w$]*)|\[\s*['\"]([^'\"]+)['\"]\s*\])"
    r"\s*=\s*functions((?:\s*\.\s*[A-Za-z_$][\w$]*\s*(?:\([^()]*\))?)+)",
    re.MULTILINE,
)
_SEGMENT_RE = re.compile(r"\.\s*([A-Za-z_$][\w$]*)\s*(?:\(([^()]*)\))?")
_STRING_RE = re.compile(r"""['"`]([^'"`]*)['"`]""")
_MEMORY_RE = re.compile(r"memory\s*:\s*['\"](\d+)\s*(MB|GB|MiB|GiB)['\"]")
_TIMEOUT_RE = re.compile(r"timeoutSeconds\s*:\s*(\d+)")

_CRUD = {"onCreate": "create", "onUpdate": "update", "onDelete": "delete", "onWrite": "write"}
_STORAGE = {
    "onFinalize": "finalize",
    "onDelete": "delete",
    "onArchive": "archive",
    "onMetadataUpdate": "metadataUpdate",
}


@dataclass
class _Declaration:
    name: str
    segments: list[tuple[str, str]] = field(default_factory=list)

    def strings(self, segment: str) -> list[str]:
        out: list[str] = []
        for name, args in self.segments:
            if name == segment:
                out.extend(_STRING_RE.findall(args))
        return out

    def first(self, segment: str) -> str | None:
        values = self.strings(segment)
        return values[0] if values else None

    def has(self, segment: str) -> bool:
        return any(name == segment for name, _ in self.segments)

    @property
    def handler(self) -> str:
        return self.segments[-1][0] if self.segments else ""

    @property
    def provider(self) -> str:
        for name, _ in self.segments:
            if name not in ("region", "runWith"):
                return name
        return ""


def entry_file(source_dir: Path) -> Path:
    """Resolve the entry point named by package.json ("main", default index.js)."""
    main = "index.js"
    package_json = source_dir / "package.json"
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
        if isinstance(data, dict) and isinstance(data.get("main"), str):
            main = data["main"]
    except (OSError, json.JSONDecodeError):
        pass
    path = (source_dir / main).resolve()
    if path.is_dir():
        path = path / "index.js"
    elif not path.suffix:
        path = path.with_suffix(".js")
    return path


def discover_build(
    project_id: str,
    source_dir: Path,
    runtime: str,
    env: EnvironmentVariables | None = None,
) -> Build:
    """Scan the entry file for v1 trigger declarations.

    Raises:
        DiscoveryError: if the entry file does not exist.
    """
    path = entry_file(Path(source_dir))
    if not path.is_file():
        raise DiscoveryError(
            f"Cannot scan for functions: entry point {path} does not exist.",
            path=str(path),
            remediation=(
                'Check the "main" field of package.json, and run your build step '
                "first if the code is compiled (e.g. TypeScript)."
            ),
        )

    text = path.read_text(encoding="utf-8", errors="replace")
    build = Build.empty(runtime)
    for decl in _scan(text):
        endpoint = _to_endpoint(decl, project_id, runtime, env or {})
        if endpoint is None:
            logger.warning(
                "Skipping export '%s' in %s: unrecognised trigger '%s'",
                decl.name, path.name, ".".join(s for s, _ in decl.segments),
            )
            continue
        build.endpoints[endpoint.id] = endpoint

    if not build.endpoints:
        logger.warning("No functions found in %s", path)
    else:
        logger.debug("Legacy scan found %d functions in %s", len(build.endpoints), path)
    return build


def _scan(text: str) -> list[_Declaration]:
    decls = []
    for match in _EXPORT_RE.finditer(text):
        name = match.group(1) or match.group(2)
        segments = [(m.group(1), m.group(2) or "") for m in _SEGMENT_RE.finditer(match.group(3))]
        decls.append(_Declaration(name=name, segments=segments))
    return decls


def _to_endpoint(
    decl: _Declaration,
    project_id: str,
    runtime: str,
    env: EnvironmentVariables,
) -> Endpoint | None:
    trigger = _trigger_for(decl, project_id)
    if trigger is None:
        return None

    fields: dict = {}
    regions = decl.strings("region")
    if regions:
        fields["region"] = regions
    for name, args in decl.segments:
        if name != "runWith":
            continue
        memory = _MEMORY_RE.search(args)
        if memory:
            amount = int(memory.group(1))
            fields["available_memory_mb"] = amount * 1024 if memory.group(2).startswith("G") else amount
        timeout = _TIMEOUT_RE.search(args)
        if timeout:
            fields["timeout_seconds"] = int(timeout.group(1))

    return Endpoint(
        id=decl.name,
        project=project_id,
        runtime=runtime,
        entry_point=decl.name,
        platform="gcfv1",
        environment_variables=dict(env),
        trigger=trigger,
        **fields,
    )


def _trigger_for(decl: _Declaration, project_id: str):
    provider, handler = decl.provider, decl.handler

    if provider == "https":
        if handler == "onRequest":
            return HttpsTrigger()
        if handler == "onCall":
            return CallableTrigger()

    elif provider == "pubsub":
        if decl.has("schedule") and handler == "onRun":
            return ScheduleTrigger(
                schedule=decl.first("schedule") or "",
                time_zone=decl.first("timeZone"),
            )
        topic = decl.first("topic")
        if topic and handler == "onPublish":
            return EventTrigger(
                event_type="google.pubsub.topic.publish",
                event_filters={"resource": f"projects/{project_id}/topics/{topic}"},
            )

    elif provider == "firestore" and handler in _CRUD:
        path = decl.first("document")
        if path:
            return EventTrigger(
                event_type=f"providers/cloud.firestore/eventTypes/document.{_CRUD[handler]}",
                event_filters={
                    "resource": f"projects/{project_id}/databases/(default)/documents/{path}",
                },
            )

    elif provider == "database" and handler in _CRUD:
        ref = decl.first("ref")
        if ref is not None:
            instance = decl.first("instance") or f"{project_id}-default-rtdb"
            return EventTrigger(
                event_type=f"providers/google.firebase.database/eventTypes/ref.{_CRUD[handler]}",
                event_filters={
                    "resource": f"projects/_/instances/{instance}/refs/{ref.lstrip('/')}",
                },
            )

    elif provider == "storage" and handler in _STORAGE:
        bucket = decl.first("bucket") or f"{project_id}.appspot.com"
        return EventTrigger(
            event_type=f"google.storage.object.{_STORAGE[handler]}",
            event_filters={"resource": f"projects/_/buckets/{bucket}"},
        )

    elif provider == "auth" and handler in ("onCreate", "onDelete"):
        return EventTrigger(
            event_type=f"providers/firebase.auth/eventTypes/user.{_CRUD[handler]}",
            event_filters={"resource": f"projects/{project_id}"},
        )

    elif provider == "tasks" and handler == "onDispatch":
        return TaskQueueTrigger()

    return None
