"""
Build description — the normalized output of trigger discovery.

Whatever strategy found the triggers (a generated functions.yaml, a
live introspection server, or the legacy source scan), the result is
expressed with these models.  They are the contract boundary to the
rest of the deployment pipeline, so they stay language agnostic and
serialize with the camelCase names used by the manifest format.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

DEFAULT_REGION = "us-central1"

Platform = Literal["gcfv1", "gcfv2"]

# A CEL expression bound at deploy time, e.g. "{{ params.MEMORY }}"
Expression = Annotated[str, StringConstraints(pattern=r"^\{\{.*\}\}$")]
IntField = Union[int, Expression]


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Triggers ────────────────────────────────────────────────────────


class HttpsTrigger(_Model):
    kind: Literal["https"] = "https"
    invoker: list[str] = Field(default_factory=list)


class CallableTrigger(_Model):
    kind: Literal["callable"] = "callable"


class EventTrigger(_Model):
    kind: Literal["event"] = "event"
    event_type: str
    event_filters: dict[str, str] = Field(default_factory=dict)
    event_filter_path_patterns: dict[str, str] = Field(default_factory=dict)
    retry: bool = False
    channel: str | None = None


class ScheduleTrigger(_Model):
    kind: Literal["schedule"] = "schedule"
    schedule: str
    time_zone: str | None = None
    retry_config: dict[str, Any] = Field(default_factory=dict)


class TaskQueueTrigger(_Model):
    kind: Literal["taskQueue"] = "taskQueue"
    retry_config: dict[str, Any] = Field(default_factory=dict)
    rate_limits: dict[str, Any] = Field(default_factory=dict)
    invoker: list[str] = Field(default_factory=list)


class BlockingTrigger(_Model):
    kind: Literal["blocking"] = "blocking"
    event_type: str
    options: dict[str, Any] = Field(default_factory=dict)


Trigger = Annotated[
    Union[
        HttpsTrigger,
        CallableTrigger,
        EventTrigger,
        ScheduleTrigger,
        TaskQueueTrigger,
        BlockingTrigger,
    ],
    Field(discriminator="kind"),
]

# Manifest key → trigger model
TRIGGER_KEYS: dict[str, type[BaseModel]] = {
    "httpsTrigger": HttpsTrigger,
    "callableTrigger": CallableTrigger,
    "eventTrigger": EventTrigger,
    "scheduleTrigger": ScheduleTrigger,
    "taskQueueTrigger": TaskQueueTrigger,
    "blockingTrigger": BlockingTrigger,
}


# ── Endpoints ───────────────────────────────────────────────────────


class SecretEnvVar(_Model):
    """A secret exposed to the function as an environment variable."""

    key: str
    secret: str
    project_id: str | None = None
    version: str | None = None


class RequiredApi(_Model):
    api: str
    reason: str = ""


class Endpoint(_Model):
    """One deployable function and how it is triggered."""

    id: str
    project: str
    runtime: str
    entry_point: str
    platform: Platform = "gcfv2"
    region: list[str] = Field(default_factory=lambda: [DEFAULT_REGION])

    available_memory_mb: IntField | None = None
    timeout_seconds: IntField | None = None
    min_instances: IntField | None = None
    max_instances: IntField | None = None
    concurrency: IntField | None = None
    service_account: str | None = None

    labels: dict[str, str] = Field(default_factory=dict)
    environment_variables: dict[str, str] = Field(default_factory=dict)
    secret_environment_variables: list[SecretEnvVar] = Field(default_factory=list)

    trigger: Trigger

    @property
    def trigger_kind(self) -> str:
        return self.trigger.kind


class Build(_Model):
    """Everything discovered about one codebase."""

    runtime: str
    required_apis: list[RequiredApi] = Field(default_factory=list)
    params: list[dict[str, Any]] = Field(default_factory=list)
    endpoints: dict[str, Endpoint] = Field(default_factory=dict)

    @classmethod
    def empty(cls, runtime: str) -> Build:
        return cls(runtime=runtime)

    def endpoint_list(self) -> list[Endpoint]:
        return list(self.endpoints.values())

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
