from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _maybe_int(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except Exception:
        return None


def _maybe_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    text_value = str(value).strip()
    if not text_value:
        return None
    try:
        return datetime.fromisoformat(text_value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _as_iso(value: datetime | None) -> str | None:
    return value.isoformat() if isinstance(value, datetime) else None


def _coerce_bool(value, default: bool = True) -> bool:
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "on")
    return bool(default)


@dataclass
class CategoryRecord:
    """Flat category row as the repository hands it over."""

    id: int
    name: str
    slug: str = ""
    description: str | None = None
    status: bool = True
    parent_id: int | None = None
    position: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoryRecord":
        parent_raw = data.get("parent_id", data.get("parentId"))
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            slug=str(data.get("slug") or ""),
            description=data.get("description"),
            status=_coerce_bool(data.get("status", data.get("is_active")), True),
            parent_id=_maybe_int(parent_raw),
            position=_maybe_int(data.get("position", data.get("sort_order"))),
            created_at=_maybe_datetime(data.get("created_at", data.get("createdAt"))),
            updated_at=_maybe_datetime(data.get("updated_at", data.get("updatedAt"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "slug": self.slug or "",
            "description": self.description,
            "status": bool(self.status),
            "parent_id": int(self.parent_id) if self.parent_id is not None else None,
            "position": int(self.position) if self.position is not None else None,
            "created_at": _as_iso(self.created_at),
            "updated_at": _as_iso(self.updated_at),
        }


@dataclass(eq=False)
class CategoryNode:
    """A category inside a built forest. ``path`` is derived, ``children`` owned."""

    id: int
    name: str
    slug: str = ""
    description: str | None = None
    status: bool = True
    parent_id: int | None = None
    position: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    path: list[str] = field(default_factory=list)
    children: list["CategoryNode"] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: CategoryRecord) -> "CategoryNode":
        return cls(
            id=int(record.id),
            name=record.name,
            slug=record.slug,
            description=record.description,
            status=bool(record.status),
            parent_id=record.parent_id,
            position=record.position,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_record(self) -> CategoryRecord:
        return CategoryRecord(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            status=self.status,
            parent_id=self.parent_id,
            position=self.position,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def copy(self, *, children: list["CategoryNode"] | None = None) -> "CategoryNode":
        """Detached copy of this node; ``children`` replaces the child list."""
        return CategoryNode(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            status=self.status,
            parent_id=self.parent_id,
            position=self.position,
            created_at=self.created_at,
            updated_at=self.updated_at,
            path=list(self.path),
            children=list(children) if children is not None else [],
        )

    def to_dict(self) -> dict:
        # Built with an explicit stack so very deep trees serialize too.
        root_payload = self._own_dict()
        stack = [(self, root_payload)]
        while stack:
            node, payload = stack.pop()
            for child in node.children:
                child_payload = child._own_dict()
                payload["children"].append(child_payload)
                stack.append((child, child_payload))
        return root_payload

    def _own_dict(self) -> dict:
        payload = self.to_record().to_dict()
        payload["path"] = list(self.path)
        payload["children"] = []
        return payload


@dataclass
class CategoryFlatNode:
    id: int
    name: str
    slug: str
    description: str | None
    status: bool
    parent_id: int | None
    position: int | None
    path: list[str]
    depth: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_node(cls, node: CategoryNode, depth: int) -> "CategoryFlatNode":
        return cls(
            id=node.id,
            name=node.name,
            slug=node.slug,
            description=node.description,
            status=node.status,
            parent_id=node.parent_id,
            position=node.position,
            path=list(node.path),
            depth=int(depth),
            created_at=node.created_at,
            updated_at=node.updated_at,
        )

    def as_record(self) -> CategoryRecord:
        return CategoryRecord(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            status=self.status,
            parent_id=self.parent_id,
            position=self.position,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict:
        payload = self.as_record().to_dict()
        payload["path"] = list(self.path)
        payload["depth"] = int(self.depth)
        return payload


@dataclass
class ParentCandidate:
    id: int | None
    label: str
    depth: int
    path: list[str]
    eligible: bool = True

    def to_dict(self) -> dict:
        return {
            "id": int(self.id) if self.id is not None else None,
            "label": self.label,
            "depth": int(self.depth),
            "path": list(self.path),
            "eligible": bool(self.eligible),
        }


@dataclass(frozen=True)
class CategoryStats:
    total: int
    active: int
    roots: int
    subcategories: int

    def to_dict(self) -> dict:
        return {
            "total": int(self.total),
            "active": int(self.active),
            "roots": int(self.roots),
            "subcategories": int(self.subcategories),
        }


@dataclass
class CategoryMutation:
    """Mutation intent the repository persists after the engine accepted it."""

    kind: str
    category_id: int
    fields: dict[str, Any] = field(default_factory=dict)
    removed_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        fields = {}
        for key, value in self.fields.items():
            fields[str(key)] = _as_iso(value) if isinstance(value, datetime) else value
        return {
            "kind": self.kind,
            "category_id": int(self.category_id),
            "fields": fields,
            "removed_ids": [int(x) for x in self.removed_ids],
        }
