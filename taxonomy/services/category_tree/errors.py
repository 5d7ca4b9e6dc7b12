from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class CategoryTreeError(Exception):
    """Base for recoverable category tree failures."""

    code: str
    message: str
    status: int = 400

    def __post_init__(self):
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_payload(self) -> dict:
        return {
            "ok": False,
            "code": self.code,
            "message": self.message,
        }


@dataclass(eq=False)
class MalformedTreeError(CategoryTreeError):
    node_ids: list[int] = field(default_factory=list)
    status: int = 422

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["node_ids"] = [int(x) for x in self.node_ids]
        return payload


@dataclass(eq=False)
class ReparentError(CategoryTreeError):
    node_id: int | None = None
    parent_id: int | None = None

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["node_id"] = int(self.node_id) if self.node_id is not None else None
        payload["parent_id"] = int(self.parent_id) if self.parent_id is not None else None
        return payload


@dataclass(eq=False)
class DuplicateSlugError(CategoryTreeError):
    slug: str = ""
    conflicting_id: int | None = None
    status: int = 409

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["slug"] = self.slug
        if self.conflicting_id is not None:
            payload["conflicting_id"] = int(self.conflicting_id)
        return payload


@dataclass(eq=False)
class CategoryNotFoundError(CategoryTreeError):
    category_id: int | None = None
    status: int = 404

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["category_id"] = int(self.category_id) if self.category_id is not None else None
        return payload


@dataclass(eq=False)
class CategoryValidationError(CategoryTreeError):
    field_name: str = ""

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.field_name:
            payload["field"] = self.field_name
        return payload


@dataclass(eq=False)
class TreeLimitError(CategoryTreeError):
    limit: int = 0
    actual: int = 0

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["limit"] = int(self.limit)
        payload["actual"] = int(self.actual)
        return payload


@dataclass(eq=False)
class TreeInvariantError(CategoryTreeError):
    """Raised when a derived view contradicts a builder invariant."""

    status: int = 500
