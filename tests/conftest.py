"""
Shared test fixtures and configuration.

Ecosystem tools (the firebase-functions binary, dart) are stood in for
by small Python scripts run with the current interpreter.
"""

import json
import os
import stat
import sys
import textwrap
from pathlib import Path

import pytest

from src.core.config.settings import RuntimeSettings
from src.core.models.source import SourceDescriptor

# Serves a canned manifest on $PORT the way the SDK's discovery server
# does, and exits on /__/quitquitquit.  Records its environment and every
# request path next to itself so tests can inspect them.
FAKE_SDK_SERVER = textwrap.dedent("""\
    import json
    import os
    import sys
    import threading
    from http.server import BaseHTTPRequestHandler, HTTPServer

    HERE = os.path.dirname(os.path.realpath(__file__))
    MANIFEST = open(os.path.join(HERE, "manifest.yaml")).read()

    with open(os.path.join(HERE, "env.json"), "w") as f:
        json.dump(dict(os.environ), f)
    with open(os.path.join(HERE, "starts.log"), "a") as f:
        f.write("start\\n")


    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            with open(os.path.join(HERE, "requests.log"), "a") as f:
                f.write(self.path + "\\n")
            if self.path == "/__/functions.yaml":
                body = MANIFEST.encode()
                self.send_response(200)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
            elif self.path == "/__/quitquitquit":
                self.send_response(200)
                self.send_header("Content-Length", "0")
                self.end_headers()
                threading.Thread(target=self.server.shutdown).start()
            else:
                self.send_response(404)
                self.send_header("Content-Length", "0")
                self.end_headers()

        def log_message(self, *args):
            pass


    server = HTTPServer(("127.0.0.1", int(os.environ["PORT"])), Handler)
    print("discovery server listening", flush=True)
    server.serve_forever()
""")

SAMPLE_MANIFEST = textwrap.dedent("""\
    specVersion: v1alpha1
    requiredAPIs:
      - api: cloudscheduler.googleapis.com
        reason: Needed for scheduled functions.
    endpoints:
      hello:
        entryPoint: hello
        platform: gcfv2
        httpsTrigger: {}
      nightly:
        entryPoint: nightly
        region: [europe-west1]
        scheduleTrigger:
          schedule: every day 00:00
          timeZone: UTC
""")


def write_script(path: Path, body: str) -> Path:
    """Write an executable Python script run by the current interpreter."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_node_source(
    root: Path,
    *,
    sdk_version: str | None = "4.5.0",
    declared: str = "^4.5.0",
    engines: str | None = None,
    main: str = "index.js",
    index: str = "",
    with_binary: bool = False,
    manifest: str = SAMPLE_MANIFEST,
) -> Path:
    """Lay out a Node.js functions source under ``root/functions``.

    ``sdk_version`` is the installed SDK (None = not installed);
    ``declared`` is the dependency range in package.json.
    """
    source = root / "functions"
    source.mkdir(parents=True, exist_ok=True)
    package = {
        "name": "functions",
        "main": main,
        "dependencies": {"firebase-functions": declared},
    }
    if engines:
        package["engines"] = {"node": engines}
    (source / "package.json").write_text(json.dumps(package), encoding="utf-8")
    (source / main).parent.mkdir(parents=True, exist_ok=True)
    (source / main).write_text(index, encoding="utf-8")

    if sdk_version is not None:
        sdk_dir = source / "node_modules" / "firebase-functions"
        sdk_dir.mkdir(parents=True)
        (sdk_dir / "package.json").write_text(
            json.dumps({"name": "firebase-functions", "version": sdk_version}),
            encoding="utf-8",
        )
        if with_binary:
            binary = write_script(sdk_dir / "server.py", FAKE_SDK_SERVER)
            (sdk_dir / "manifest.yaml").write_text(manifest, encoding="utf-8")
            bin_dir = source / "node_modules" / ".bin"
            bin_dir.mkdir()
            os.symlink(binary, bin_dir / "firebase-functions")
    return source


@pytest.fixture
def fast_settings() -> RuntimeSettings:
    """Short timeouts so failing tests fail quickly."""
    return RuntimeSettings(grace_period=3.0, discovery_timeout=10.0)


@pytest.fixture
def node_source(tmp_path: Path) -> Path:
    return make_node_source(tmp_path)


@pytest.fixture
def descriptor_for():
    """Build a SourceDescriptor for a source directory."""

    def _make(source_dir: Path, runtime: str | None = None) -> SourceDescriptor:
        return SourceDescriptor(
            project_id="demo-project",
            project_dir=source_dir.parent,
            source_dir=source_dir,
            runtime=runtime,
        )

    return _make


@pytest.fixture
def make_node(tmp_path: Path):
    """make_node_source() rooted at the test's tmp_path."""

    def _make(**kwargs) -> Path:
        return make_node_source(tmp_path, **kwargs)

    return _make


@pytest.fixture
def script():
    """write_script() as a fixture."""
    return write_script
