from flask_cors import CORS

from taxonomy.services.category_store import CategoryStore


cors = CORS()

STORE_KEY = "taxonomy_store"


def init_store(app, store: CategoryStore | None = None) -> CategoryStore:
    resolved = store if store is not None else CategoryStore()
    app.extensions[STORE_KEY] = resolved
    return resolved
