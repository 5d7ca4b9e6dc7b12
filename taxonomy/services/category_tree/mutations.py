from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from taxonomy.models.category import CategoryMutation, CategoryNode
from taxonomy.services.category_tree.builder import (
    CategoryTree,
    assign_paths,
    collect_subtree_ids,
    sort_siblings,
)
from taxonomy.services.category_tree.errors import (
    CategoryValidationError,
    DuplicateSlugError,
    ReparentError,
)
from taxonomy.services.category_tree.reparent import can_reparent, move_category
from taxonomy.services.category_tree.slugs import first_free_slug, slugify


logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 120
UPDATABLE_FIELDS = ("name", "slug", "description", "status", "position", "parent_id")


def ensure_unique_slug(tree: CategoryTree, base: str, *, exclude_id: int | None = None) -> str:
    return first_free_slug(base, lambda slug: tree.slug_taken(slug, exclude_id=exclude_id))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message="Category name is required",
            field_name="name",
        )
    if len(name) > NAME_MAX_LENGTH:
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message=f"Category name must be at most {NAME_MAX_LENGTH} characters",
            field_name="name",
        )
    return name


def _clean_description(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _clean_optional_int(value: Any, field_name: str) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message=f"{field_name} must be an integer",
            field_name=field_name,
        )
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message=f"{field_name} must be an integer",
            field_name=field_name,
        ) from None


def _clean_status(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "on")
    raise CategoryValidationError(
        code="INVALID_CATEGORY",
        message="status must be a boolean",
        field_name="status",
    )


def _explicit_slug(tree: CategoryTree, raw_slug: Any, *, exclude_id: int | None = None) -> str:
    slug = slugify(raw_slug)
    owners = tree.slug_owners(slug) - {exclude_id}
    if owners:
        owner = min(owners)
        raise DuplicateSlugError(
            code="DUPLICATE_SLUG",
            message=f"Slug '{slug}' is already used by category {owner}",
            slug=slug,
            conflicting_id=owner,
        )
    return slug


def create_category(
    tree: CategoryTree,
    *,
    category_id: int,
    name: str,
    slug: str | None = None,
    description: str | None = None,
    status: bool = True,
    parent_id: int | None = None,
    position: int | None = None,
) -> CategoryMutation:
    if int(category_id) in tree:
        raise CategoryValidationError(
            code="INVALID_CATEGORY",
            message=f"Category id {category_id} already exists",
            field_name="id",
        )
    clean_name = _clean_name(name)
    parent_id = _clean_optional_int(parent_id, "parent_id")
    position = _clean_optional_int(position, "position")
    parent = tree.get(parent_id)
    if parent_id is not None and parent is None:
        raise ReparentError(
            code="PARENT_NOT_FOUND",
            message=f"Parent category {parent_id} not found",
            status=404,
            node_id=category_id,
            parent_id=parent_id,
        )

    if slug is not None and str(slug).strip():
        clean_slug = _explicit_slug(tree, slug)
    else:
        clean_slug = ensure_unique_slug(tree, slugify(clean_name))

    stamp = _now()
    node = CategoryNode(
        id=int(category_id),
        name=clean_name,
        slug=clean_slug,
        description=_clean_description(description),
        status=_clean_status(status),
        parent_id=parent_id,
        position=position,
        created_at=stamp,
        updated_at=stamp,
    )
    siblings = tree.siblings_for(parent_id)
    siblings.append(node)
    sort_siblings(siblings)
    assign_paths([node], parent.path if parent is not None else [])
    tree.nodes[node.id] = node
    tree.claim_slug(node.slug, node.id)

    fields = node.to_record().to_dict()
    fields.pop("id", None)
    return CategoryMutation(kind="create", category_id=node.id, fields=fields)


def update_category(tree: CategoryTree, category_id: int, changes: dict[str, Any]) -> CategoryMutation:
    """Validate every requested change first, then apply them together.

    A rename without an explicit slug re-derives the slug from the new name. A
    ``parent_id`` change goes through the reparent check and regenerates paths.
    """
    node = tree.require(category_id)
    requested = {key: changes[key] for key in UPDATABLE_FIELDS if key in changes}

    new_name = node.name
    if "name" in requested:
        new_name = _clean_name(requested["name"])
    renamed = new_name != node.name

    new_parent_id = node.parent_id
    if "parent_id" in requested:
        new_parent_id = _clean_optional_int(requested["parent_id"], "parent_id")
    moved = new_parent_id != node.parent_id
    if moved:
        error = can_reparent(tree, node.id, new_parent_id)
        if error is not None:
            raise error

    new_slug = node.slug
    raw_slug = requested.get("slug")
    if raw_slug is not None and str(raw_slug).strip():
        new_slug = _explicit_slug(tree, raw_slug, exclude_id=node.id)
    elif renamed or "slug" in requested:
        new_slug = ensure_unique_slug(tree, slugify(new_name), exclude_id=node.id)

    new_position = node.position
    if "position" in requested:
        new_position = _clean_optional_int(requested["position"], "position")
    new_status = node.status
    if "status" in requested:
        new_status = _clean_status(requested["status"])
    new_description = node.description
    if "description" in requested:
        new_description = _clean_description(requested["description"])

    fields: dict[str, Any] = {}
    if renamed:
        node.name = new_name
        fields["name"] = new_name
    if new_slug != node.slug:
        tree.release_slug(node.slug, node.id)
        node.slug = new_slug
        tree.claim_slug(new_slug, node.id)
        fields["slug"] = new_slug
    if new_description != node.description:
        node.description = new_description
        fields["description"] = new_description
    if new_status != node.status:
        node.status = new_status
        fields["status"] = new_status
    repositioned = new_position != node.position
    if repositioned:
        node.position = new_position
        fields["position"] = new_position

    if moved:
        move_category(tree, node.id, new_parent_id)
        fields["parent_id"] = node.parent_id
    else:
        if repositioned:
            sort_siblings(tree.siblings_for(node.parent_id))
        if renamed:
            parent = tree.get(node.parent_id)
            assign_paths([node], parent.path if parent is not None else [])

    if fields:
        node.updated_at = _now()
        fields["updated_at"] = node.updated_at
    return CategoryMutation(kind="update", category_id=node.id, fields=fields)


def delete_category(tree: CategoryTree, category_id: int) -> CategoryMutation:
    """Remove a category together with its entire subtree."""
    node = tree.require(category_id)
    removed = collect_subtree_ids(node)

    siblings = tree.siblings_for(node.parent_id)
    siblings[:] = [item for item in siblings if item is not node]
    for rid in removed:
        gone = tree.nodes.pop(rid, None)
        if gone is not None:
            tree.release_slug(gone.slug, rid)

    logger.info("category_subtree_removed id=%s count=%s", node.id, len(removed))
    return CategoryMutation(kind="delete", category_id=int(node.id), removed_ids=sorted(removed))
