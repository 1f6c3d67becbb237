"""Pydantic models describing Kubernetes API envelope payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class KubernetesBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class StatusCause(KubernetesBaseModel):
    reason: str | None = None
    message: str | None = None
    field: str | None = None


class StatusDetails(KubernetesBaseModel):
    name: str | None = None
    group: str | None = None
    kind: str | None = None
    uid: str | None = None
    causes: list[StatusCause] = Field(default_factory=list)
    retry_after_seconds: int | None = Field(default=None, alias="retryAfterSeconds")


class Status(KubernetesBaseModel):
    """``meta/v1 Status`` returned by the API server for failed requests."""

    kind: str | None = None
    api_version: str = Field(default="v1", alias="apiVersion")
    status: str | None = None
    message: str | None = None
    reason: str | None = None
    code: int | None = None
    details: StatusDetails | None = None

    def describe(self) -> str:
        parts = [self.message or self.reason or "unknown error"]
        if self.details is not None:
            parts.extend(
                f"{cause.field}: {cause.message}"
                for cause in self.details.causes
                if cause.field and cause.message
            )
        return "; ".join(parts)


class DeleteOptions(KubernetesBaseModel):
    kind: str = "DeleteOptions"
    api_version: str = Field(default="v1", alias="apiVersion")
    propagation_policy: str | None = Field(default="Background", alias="propagationPolicy")
    preconditions: dict[str, str] | None = None
