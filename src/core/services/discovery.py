"""
Trigger discovery — turn a functions manifest into a Build.

Two sources feed the same parser:

    detect_from_yaml   a functions.yaml already on disk (static discovery)
    detect_from_port   the manifest served by user code running in a
                       subprocess on a local port (live discovery)

User code is never imported into this process.  The live path talks to
the child over HTTP and the static path only reads a file.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable

import httpx
import yaml
from pydantic import ValidationError

from src.core.errors import DiscoveryError
from src.core.models.build import (
    DEFAULT_REGION,
    TRIGGER_KEYS,
    Build,
    Endpoint,
    RequiredApi,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "functions.yaml"
MANIFEST_PATH = "/__/functions.yaml"
SUPPORTED_SPEC_VERSIONS = ("v1alpha1",)

DEFAULT_DISCOVERY_TIMEOUT = 10.0
_POLL_INTERVAL = 0.2


# ── Manifest parsing ────────────────────────────────────────────────


def manifest_to_build(manifest: Any, project_id: str, runtime: str) -> Build:
    """Validate a raw manifest mapping and normalize it into a Build.

    Raises:
        DiscoveryError: if the manifest is malformed.
    """
    if not isinstance(manifest, dict):
        raise DiscoveryError(
            f"Expected the functions manifest to be a mapping, got {type(manifest).__name__}"
        )

    spec_version = manifest.get("specVersion")
    if spec_version not in SUPPORTED_SPEC_VERSIONS:
        raise DiscoveryError(
            f"Unsupported functions manifest specVersion '{spec_version}'. "
            f"Supported: {', '.join(SUPPORTED_SPEC_VERSIONS)}",
            remediation="Upgrade this tool or pin an SDK that emits a supported manifest.",
        )

    raw_endpoints = manifest.get("endpoints") or {}
    if not isinstance(raw_endpoints, dict):
        raise DiscoveryError("Manifest field 'endpoints' must be a mapping of id → endpoint")

    endpoints: dict[str, Endpoint] = {}
    for endpoint_id, raw in raw_endpoints.items():
        endpoints[endpoint_id] = _parse_endpoint(endpoint_id, raw, project_id, runtime)

    raw_apis = manifest.get("requiredAPIs") or []
    if not isinstance(raw_apis, list):
        raise DiscoveryError("Manifest field 'requiredAPIs' must be a list")
    try:
        required_apis = [RequiredApi.model_validate(a) for a in raw_apis]
    except ValidationError as e:
        raise DiscoveryError(f"Invalid requiredAPIs in functions manifest: {e}") from e

    params = manifest.get("params") or []
    if not isinstance(params, list):
        raise DiscoveryError("Manifest field 'params' must be a list")

    return Build(
        runtime=runtime,
        required_apis=required_apis,
        params=params,
        endpoints=endpoints,
    )


def _parse_endpoint(endpoint_id: str, raw: Any, project_id: str, runtime: str) -> Endpoint:
    if not isinstance(raw, dict):
        raise DiscoveryError(f"Endpoint '{endpoint_id}' must be a mapping")

    trigger_keys = [k for k in TRIGGER_KEYS if k in raw]
    if len(trigger_keys) != 1:
        found = ", ".join(trigger_keys) or "none"
        raise DiscoveryError(
            f"Endpoint '{endpoint_id}' must declare exactly one trigger (found: {found})"
        )
    trigger_key = trigger_keys[0]

    fields = {k: v for k, v in raw.items() if k not in TRIGGER_KEYS}
    trigger_body = raw[trigger_key]
    if trigger_body is None:
        trigger_body = {}
    if not isinstance(trigger_body, dict):
        raise DiscoveryError(
            f"Endpoint '{endpoint_id}': '{trigger_key}' must be a mapping, "
            f"got {type(trigger_body).__name__}"
        )
    trigger_data = dict(trigger_body)
    trigger_data["kind"] = TRIGGER_KEYS[trigger_key].model_fields["kind"].default

    region = fields.get("region") or [DEFAULT_REGION]
    if isinstance(region, str):
        region = [region]

    data = {
        **fields,
        "id": endpoint_id,
        "project": fields.get("project") or project_id,
        "runtime": fields.get("runtime") or runtime,
        "entryPoint": fields.get("entryPoint") or endpoint_id,
        "region": region,
        "trigger": trigger_data,
    }
    try:
        return Endpoint.model_validate(data)
    except ValidationError as e:
        raise DiscoveryError(f"Invalid endpoint '{endpoint_id}' in functions manifest: {e}") from e


def _load_manifest_text(text: str, origin: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DiscoveryError(f"Failed to parse functions manifest from {origin}: {e}") from e


# ── Static discovery ────────────────────────────────────────────────


def detect_from_yaml(directory: Path, project_id: str, runtime: str) -> Build | None:
    """Read ``<directory>/functions.yaml`` if it exists.

    Returns:
        The Build, or None when there is no manifest file.

    Raises:
        DiscoveryError: if the file exists but cannot be read or parsed.
    """
    path = Path(directory) / MANIFEST_FILE
    if not path.is_file():
        logger.debug("No %s at %s", MANIFEST_FILE, path)
        return None

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DiscoveryError(f"Cannot read {path}: {e}", path=str(path)) from e

    logger.debug("Found functions manifest at %s", path)
    return manifest_to_build(_load_manifest_text(text, str(path)), project_id, runtime)


# ── Live discovery ──────────────────────────────────────────────────


async def detect_from_port(
    port: int,
    project_id: str,
    runtime: str,
    timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
    is_alive: Callable[[], bool] | None = None,
) -> Build:
    """Fetch the manifest from a discovery server on ``port``.

    The server may still be booting, so connection failures are retried
    until ``timeout`` seconds have passed.  If ``is_alive`` reports that
    the server process is gone, polling stops immediately.

    Raises:
        DiscoveryError: on timeout, a non-200 answer, or a bad manifest.
    """
    url = f"http://localhost:{port}{MANIFEST_PATH}"
    deadline = time.monotonic() + timeout
    last_error: Exception | None = None

    async with httpx.AsyncClient(timeout=min(timeout, 5.0)) as client:
        while True:
            try:
                response = await client.get(url)
                break
            except httpx.TransportError as e:
                last_error = e
            if is_alive is not None and not is_alive():
                raise DiscoveryError(
                    f"The functions discovery server on port {port} exited before "
                    f"answering {url}.",
                    port=port,
                    remediation="Check the log above for errors thrown while loading your code.",
                )
            if time.monotonic() >= deadline:
                raise DiscoveryError(
                    f"Timed out after {timeout:.0f}s waiting for the functions discovery "
                    f"server at {url}: {last_error}",
                    port=port,
                    remediation=(
                        "Make sure your code loads without errors. Slow-loading code can "
                        "raise FNR_DISCOVERY_TIMEOUT."
                    ),
                )
            await asyncio.sleep(_POLL_INTERVAL)

    if response.status_code != 200:
        raise DiscoveryError(
            f"Functions discovery server at {url} answered {response.status_code}: "
            f"{response.text[:200]}",
            port=port,
        )

    logger.debug("Got functions manifest from port %d", port)
    return manifest_to_build(_load_manifest_text(response.text, url), project_id, runtime)
