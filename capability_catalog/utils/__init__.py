from .logger import setup_logging
from .naming import cache_item_id, is_valid_identifier, kebab_case, search_terms

__all__ = [
    "setup_logging",
    "cache_item_id",
    "is_valid_identifier",
    "kebab_case",
    "search_terms",
]
