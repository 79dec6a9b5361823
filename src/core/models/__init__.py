"""
Domain models — Pydantic types for runtime delegates.

All models are re-exported here for convenient access:

    from src.core.models import Build, Endpoint, SourceDescriptor
"""

from src.core.models.build import (
    BlockingTrigger,
    Build,
    CallableTrigger,
    Endpoint,
    EventTrigger,
    HttpsTrigger,
    RequiredApi,
    ScheduleTrigger,
    SecretEnvVar,
    TaskQueueTrigger,
)
from src.core.models.runtime import Runtime
from src.core.models.source import (
    EnvironmentVariables,
    RuntimeConfigValues,
    SourceDescriptor,
)

__all__ = [
    # build.py
    "BlockingTrigger",
    "Build",
    "CallableTrigger",
    "Endpoint",
    "EventTrigger",
    "HttpsTrigger",
    "RequiredApi",
    "ScheduleTrigger",
    "SecretEnvVar",
    "TaskQueueTrigger",
    # runtime.py
    "Runtime",
    # source.py
    "EnvironmentVariables",
    "RuntimeConfigValues",
    "SourceDescriptor",
]
