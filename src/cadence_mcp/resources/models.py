"""Resource definitions for provider fallback and account rotation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal

from pydantic import BaseModel, Field, field_validator

ResourceKind = Literal["provider", "account"]


class Resource(BaseModel):
    """An interchangeable upstream endpoint the pool can route to."""

    id: str = Field(..., description="Unique identifier used for availability tracking.")
    kind: ResourceKind = Field(default="provider", description="Which pool the resource belongs to.")
    title: str | None = Field(default=None, description="Display name.")
    model: str | None = Field(
        default=None,
        description="Model served by a provider resource, when the provider pins one.",
    )
    capabilities: frozenset[str] = Field(
        default_factory=frozenset,
        description="Declared capabilities such as toolcall, attachment or reasoning.",
    )
    enabled: bool = Field(default=True, description="Disabled resources are never selected.")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Resource id must not be empty")
        return normalized

    @field_validator("capabilities", mode="before")
    @classmethod
    def _normalize_capabilities(cls, value: Any):  # type: ignore[override]
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        if isinstance(value, dict):
            # mapping form: {toolcall: true, attachment: false}
            return frozenset(str(key).strip().lower() for key, flag in value.items() if flag)
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(item).strip().lower() for item in value if str(item).strip())
        raise TypeError("Capabilities must be a list of names or a name -> bool mapping")

    def satisfies(self, required: Iterable[str] | None) -> bool:
        if not required:
            return True
        return {item.strip().lower() for item in required} <= self.capabilities


@dataclass(slots=True)
class RateRecord:
    """A recorded window during which a resource should not be used."""

    resource_id: str
    reset_at: int
    reason: str


__all__ = ["RateRecord", "Resource", "ResourceKind"]
