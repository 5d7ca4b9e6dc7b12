from taxonomy.models.category import (  # noqa: F401
    CategoryFlatNode,
    CategoryMutation,
    CategoryNode,
    CategoryRecord,
    CategoryStats,
    ParentCandidate,
)

__all__ = [
    "CategoryFlatNode",
    "CategoryMutation",
    "CategoryNode",
    "CategoryRecord",
    "CategoryStats",
    "ParentCandidate",
]
