"""Process supervision — child processes and local ports."""

from src.adapters.process.ports import find_available_port
from src.adapters.process.supervisor import (
    SupervisedProcess,
    Teardown,
    build_child_env,
    make_teardown,
    noop_teardown,
    run_to_completion,
    runtime_env,
    spawn,
    supervised,
)

__all__ = [
    "SupervisedProcess",
    "Teardown",
    "build_child_env",
    "find_available_port",
    "make_teardown",
    "noop_teardown",
    "run_to_completion",
    "runtime_env",
    "spawn",
    "supervised",
]
