"""
backend/doit/search/schemas.py

Search Schemas
- SearchQueryWrite: A search to record
- RecentSearch: One deduplicated entry of personal history or the trending pool
"""

from datetime import datetime

from pydantic import Field

from doit.core.schemas import DocumentModel


class SearchQueryWrite(DocumentModel):
    query: str = Field(..., max_length=200, description="Search text as typed")
    category: str | None = Field(default=None, description="Category filter active during the search")


class RecentSearch(DocumentModel):
    id: str
    query: str
    category: str = "all"
    timestamp: datetime | None = None
    personal: bool = False
    trending: bool = False
