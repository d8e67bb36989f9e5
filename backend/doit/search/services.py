"""
backend/doit/search/services.py

Search History Services
- Record searches in the user's personal history and in the shared trending pool
- Recall recent searches, deduplicated by query text (most recent wins),
  preferring personal history and falling back to the trending pool

Both operations are non-critical: failures are logged and never raised.
"""

import logging

from doit.core.exceptions import APIError
from doit.database.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore
from doit.search import schemas
from doit.users.services import USERS

logger = logging.getLogger(__name__)

TRENDING_SEARCHES = "trending_searches"
DEFAULT_RECENT_LIMIT = 8


def search_history_path(user_id: str) -> str:
    return f"{USERS}/{user_id}/searchHistory"


def normalize_query(query: str) -> str:
    return query.strip().lower()


def _dedupe(snapshots: list[DocumentSnapshot], **flags: bool) -> list[schemas.RecentSearch]:
    """Keeps the first (most recent) entry per query text."""
    seen: dict[str, schemas.RecentSearch] = {}
    for snapshot in snapshots:
        query = snapshot.data.get("query")
        if not query or query in seen:
            continue
        seen[query] = schemas.RecentSearch(
            id=snapshot.id,
            query=query,
            category=snapshot.data.get("category") or "all",
            timestamp=snapshot.data.get("timestamp"),
            **flags,
        )
    return list(seen.values())


class SearchService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def save_search_query(self, user_id: str | None, query: str, category: str | None = None) -> None:
        """Records a non-blank search; storage errors are logged and swallowed."""
        if not query or not query.strip():
            return

        data = {
            "query": normalize_query(query),
            "category": category or "all",
            "timestamp": SERVER_TIMESTAMP,
        }
        try:
            if user_id:
                await self.store.add(search_history_path(user_id), data)
            await self.store.add(TRENDING_SEARCHES, {**data, "anonymized": not user_id})
        except APIError as e:
            logger.error(f"[SEARCH] Could not save search '{data['query']}': {e.message}")
            return
        logger.debug(f"[SEARCH] Saved search '{data['query']}' (user={user_id})")

    async def get_recent_searches(
        self, user_id: str | None, limit: int = DEFAULT_RECENT_LIMIT
    ) -> list[schemas.RecentSearch]:
        """
        Personal history when the user has any; otherwise the trending pool.

        The trending query fetches twice the limit because duplicates collapse.
        Returns an empty list on failure.
        """
        if user_id:
            try:
                personal = await self.store.query(
                    search_history_path(user_id), order_by="timestamp", descending=True, limit=limit
                )
                if personal:
                    return _dedupe(personal, personal=True)
            except APIError as e:
                logger.error(f"[SEARCH] Could not load search history for {user_id}: {e.message}")

        try:
            trending = await self.store.query(
                TRENDING_SEARCHES, order_by="timestamp", descending=True, limit=limit * 2
            )
        except APIError as e:
            logger.error(f"[SEARCH] Could not load trending searches: {e.message}")
            return []
        return _dedupe(trending, trending=True)[:limit]
