"""Record entity: the thing a rule domain is matched against."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Record(Protocol):
    """Anything exposing an entity name and named attribute access."""

    @property
    def entity_name(self) -> str: ...

    def get(self, field: str) -> Any: ...


@dataclass(frozen=True)
class EntityRecord:
    """A plain record of an entity type.

    Attributes:
        entity_name: The entity type (e.g. "invoice").
        attributes: Field values. Missing fields read as None.
    """

    entity_name: str
    attributes: dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not self.entity_name:
            raise ValueError("Entity name is required")

    def get(self, field: str) -> Any:
        return self.attributes.get(field)

    @classmethod
    def from_mapping(cls, entity_name: str, data: dict[str, Any]) -> "EntityRecord":
        return cls(entity_name=entity_name, attributes=dict(data))
