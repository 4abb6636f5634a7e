"""Remote extension repositories.

A repository is a JSON manifest that points at a plugin list. Subscribed
repositories are kept by ``RepositoryRegistry``; ``CatalogClient`` fetches
and parses the documents.
"""

from repositories.catalog import (
    CatalogClient,
    CatalogEntry,
    FetchError,
    Repository,
    resolve_plugin_list_url,
)
from repositories.registry import (
    SHORTCODES,
    InvalidReference,
    RepositoryRegistry,
    resolve_shortcode,
)

__all__ = [
    "CatalogClient",
    "CatalogEntry",
    "FetchError",
    "InvalidReference",
    "Repository",
    "RepositoryRegistry",
    "SHORTCODES",
    "resolve_plugin_list_url",
    "resolve_shortcode",
]
