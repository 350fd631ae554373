"""Source-tagged identifiers for projects, activities and roles."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Union


class EntitySource(str, Enum):
    LOCAL = "local"
    REMOTE = "zebra"


@dataclass(frozen=True, slots=True)
class EntityKey:
    """Identifier of an entity: a UUID for local data, an int for Zebra data."""

    source: EntitySource
    id: Union[uuid.UUID, int]

    def __post_init__(self) -> None:
        if self.source is EntitySource.LOCAL and not isinstance(self.id, uuid.UUID):
            raise ValueError(f"Local entity keys need a UUID, got {self.id!r}")
        if self.source is EntitySource.REMOTE and (
            not isinstance(self.id, int) or isinstance(self.id, bool)
        ):
            raise ValueError(f"Zebra entity keys need an integer id, got {self.id!r}")

    @classmethod
    def local(cls, value: Union[uuid.UUID, str, None] = None) -> "EntityKey":
        if value is None:
            return cls(EntitySource.LOCAL, uuid.uuid4())
        if isinstance(value, uuid.UUID):
            return cls(EntitySource.LOCAL, value)
        try:
            return cls(EntitySource.LOCAL, uuid.UUID(str(value)))
        except ValueError as exc:
            raise ValueError(f"Invalid local entity id: {value!r}") from exc

    @classmethod
    def remote(cls, value: Union[int, str]) -> "EntityKey":
        if isinstance(value, str):
            text = value.strip()
            if not text.isdigit():
                raise ValueError(f"Invalid Zebra entity id: {value!r}")
            value = int(text)
        return cls(EntitySource.REMOTE, value)

    @classmethod
    def parse(cls, text: str) -> "EntityKey":
        """Parse ``source:id`` or a bare id (digits are Zebra ids, UUIDs are local)."""
        raw = text.strip()
        prefix, sep, rest = raw.partition(":")
        if sep:
            try:
                source = EntitySource(prefix.lower())
            except ValueError as exc:
                raise ValueError(f"Unknown entity source: {prefix!r}") from exc
            if source is EntitySource.LOCAL:
                return cls.local(rest)
            return cls.remote(rest)
        if raw.isdigit():
            return cls.remote(raw)
        return cls.local(raw)

    @property
    def is_local(self) -> bool:
        return self.source is EntitySource.LOCAL

    @property
    def is_remote(self) -> bool:
        return self.source is EntitySource.REMOTE

    @property
    def id_string(self) -> str:
        if isinstance(self.id, uuid.UUID):
            return self.id.hex
        return str(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source.value, "id": self.id_string if self.is_local else self.id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntityKey":
        source = EntitySource(data["source"])
        if source is EntitySource.LOCAL:
            return cls.local(data["id"])
        return cls.remote(data["id"])

    def __str__(self) -> str:
        return f"{self.source.value}:{self.id_string}"

    def __repr__(self) -> str:
        return f"EntityKey(source={self.source.value}, id={self.id_string})"


__all__ = ["EntityKey", "EntitySource"]
