"""
backend/doit/database/models.py

Document Storage Model

Defines:
- Base: declarative base holding the table metadata
- Document: one JSON document addressed by (collection path, document id).
  Nested collections use slash-separated paths such as
  "chats/{chat_id}/messages" or "users/{uid}/searchHistory".
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------
# Document Model
# ---------------------------------------------------
class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc"),)

    # Insertion order; breaks ties when ordering by a document field
    seq: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Monotonic insertion sequence",
    )
    collection: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        index=True,
        comment="Collection path the document belongs to",
    )
    doc_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Document identifier, unique within its collection",
    )
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Document fields",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id}>"
