"""
Post Model

The central blog entity. ``author_id`` is fixed at creation; ``slug`` is
generated once from the title and never regenerated, so permalinks survive
title edits.

``version`` starts at 1 and is bumped on every update. Callers that submit it
back with an edit get stale-write detection; callers that omit it keep the
last-write-wins behaviour.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Field, SQLModel, Column
from sqlalchemy import Text, Index, JSON


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Post(SQLModel, table=True):
    """
    Attributes:
        id: Primary key
        title: 1-100 characters
        content: Body text, at least 10 characters
        slug: URL-friendly unique identifier derived from the title
        author_id: Owning user, immutable
        category_id: Classification, mutable
        tags: JSON array of tags, order preserved
        featured_image: Stored blob filename, if any
        version: Monotonic edit counter
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=100)
    content: str = Field(sa_column=Column(Text, nullable=False))
    slug: str = Field(unique=True, index=True, max_length=120)
    author_id: int = Field(foreign_key="user.id", index=True)
    category_id: int = Field(foreign_key="category.id", index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, default=[]))
    featured_image: Optional[str] = Field(default=None, max_length=255)
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    __table_args__ = (
        # List posts by category + date
        Index("ix_post_category_created", "category_id", "created_at"),
    )


__all__ = ["Post"]
