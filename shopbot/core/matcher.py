"""Substring product matcher.

Backend-free search used for the header autosuggest, the storefront search
and as the fast-path recommendation source inside the chat.
"""

from collections.abc import Iterable

from shopbot.data.catalog import Product, ProductRepository

AUTOSUGGEST_LIMIT = 5
CHAT_MATCH_LIMIT = 3


def product_matches(product: Product, needle: str) -> bool:
    """True if the lowercased needle occurs in the name, category or any tag."""
    if needle in product.name.lower() or needle in product.category.lower():
        return True
    return any(needle in tag.lower() for tag in product.tags)


def match_products(products: Iterable[Product], query: str, limit: int | None) -> list[Product]:
    """Case-insensitive substring match preserving catalog order.

    Args:
        products: Candidate products, in repository order.
        query: Free-text query. Blank queries match nothing.
        limit: Max results, or None for no limit.

    Returns:
        Up to `limit` matching products.
    """
    needle = (query or "").strip().lower()
    if not needle or (limit is not None and limit <= 0):
        return []

    matches = []
    for product in products:
        if product_matches(product, needle):
            matches.append(product)
            if limit is not None and len(matches) >= limit:
                break
    return matches


class LocalMatcher:
    """Matcher bound to a product repository."""

    def __init__(self, repository: ProductRepository):
        self._repository = repository

    def match(self, query: str, limit: int | None = CHAT_MATCH_LIMIT) -> list[Product]:
        return match_products(self._repository, query, limit)
