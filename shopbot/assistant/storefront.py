"""Storefront search entry points: header autosuggest and search submit.

A search that finds nothing pushes a restock offer into the chat through the
Conversation Manager's side channel instead of running a full turn.
"""

import structlog

from shopbot.assistant.conversation import ConversationManager
from shopbot.assistant.prompts import restock_message
from shopbot.core.matcher import AUTOSUGGEST_LIMIT, match_products
from shopbot.data.catalog import Product, ProductRepository

logger = structlog.get_logger(__name__)


def suggest(repository: ProductRepository, term: str) -> list[Product]:
    """Autosuggest for the header search box."""
    return match_products(repository, term, AUTOSUGGEST_LIMIT)


def search(repository: ProductRepository, manager: ConversationManager, term: str) -> list[Product]:
    """Run a storefront search and handle a miss.

    Args:
        repository: Product catalog.
        manager: Conversation that receives the restock offer on a miss.
        term: Search box contents.

    Returns:
        All matching products in catalog order. Empty on a miss, in which case
        a restock offer has been appended to the transcript.
    """
    term = (term or "").strip()
    if not term:
        return []

    matches = match_products(repository, term, limit=None)
    if matches:
        logger.info("storefront.search_hit", term=term, matches=len(matches))
        return matches

    logger.info("storefront.search_miss", term=term)
    manager.inject_assistant_message(restock_message(term))
    return []
