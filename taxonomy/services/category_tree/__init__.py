from .builder import (  # noqa: F401
    CategoryTree,
    assign_paths,
    build_tree,
    build_tree_report,
    collect_descendant_ids,
    collect_subtree_ids,
    copy_forest,
    describe_category,
    find_node,
    flatten,
    iter_preorder,
    records_from_flat,
    sibling_sort_key,
)
from .candidates import ROOT_LABEL, list_parent_candidates  # noqa: F401
from .errors import (  # noqa: F401
    CategoryNotFoundError,
    CategoryTreeError,
    CategoryValidationError,
    DuplicateSlugError,
    MalformedTreeError,
    ReparentError,
    TreeInvariantError,
    TreeLimitError,
)
from .expansion import (  # noqa: F401
    initial_expansion,
    is_expanded,
    reconcile_expansion,
    toggle_expansion,
    visible_rows,
)
from .mutations import (  # noqa: F401
    create_category,
    delete_category,
    ensure_unique_slug,
    update_category,
)
from .reparent import can_reparent, move_category, subtree_height  # noqa: F401
from .search import filter_tree, node_matches, normalize_search_text, prune_inactive  # noqa: F401
from .slugs import first_free_slug, slugify  # noqa: F401
from .stats import compute_stats  # noqa: F401
