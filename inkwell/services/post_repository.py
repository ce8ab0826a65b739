"""
Post repository.

``PostRepository`` is the storage contract used by the API layer;
``SQLPostRepository`` implements it over a SQLModel session.

Validation lives here rather than in the route handlers so every write path
(create, partial update, test seeding) enforces the same rules:

    title    required, at most 100 characters
    content  required, at least 10 characters
    category required, must reference an existing Category

Slugs are generated once at creation from the title. A taken slug gets the
next free numeric suffix (``hello``, ``hello-2``, ``hello-3``); the unique
index on ``post.slug`` is the final guard against a concurrent insert.
"""

import math
import re
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from inkwell.core.errors import (
    Conflict,
    FieldError,
    NotFound,
    StaleVersion,
    ValidationError,
)
from inkwell.core.logging_config import get_logger
from inkwell.core.tags import parse_tags
from inkwell.models import Category, Post
from inkwell.services.identifiers import parse_identifier

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 100
MIN_CONTENT_LENGTH = 10
SLUG_MAX_LENGTH = 80
DEFAULT_PAGE_SIZE = 6

# Keys a caller may set; anything else in an input mapping is ignored.
MUTABLE_FIELDS = ("title", "content", "category_id", "tags", "featured_image")


def slugify(title: str) -> str:
    """Generate URL-friendly slug from a post title."""
    slug = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = slug.lower()
    # Replace special characters with hyphens
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = slug.strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or "post"


@dataclass
class PostPage:
    posts: List[Post]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


class PostRepository(ABC):
    """Storage contract for posts. Reads never check ownership; callers do that for writes."""

    @abstractmethod
    def validate(self, fields: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]: ...

    @abstractmethod
    def create(self, author_id: int, fields: Mapping[str, Any]) -> Post: ...

    @abstractmethod
    def get_by_id(self, post_id: Union[int, str]) -> Post: ...

    @abstractmethod
    def list(self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, category_id: Optional[int] = None) -> PostPage: ...

    @abstractmethod
    def search(self, term: str, category_id: Optional[int] = None) -> List[Post]: ...

    @abstractmethod
    def update(
        self,
        post_id: Union[int, str],
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Post: ...

    @abstractmethod
    def delete(self, post_id: Union[int, str]) -> None: ...


class SQLPostRepository(PostRepository):
    def __init__(self, session: Session):
        self.session = session

    # ----- validation -----

    def validate(self, fields: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Check and clean input fields.

        With ``partial=True`` only keys present in ``fields`` are checked, using
        the same rules as a full create.

        Raises:
            ValidationError: with one FieldError per failing field
        """
        errors: List[FieldError] = []
        cleaned: Dict[str, Any] = {}

        if not partial or "title" in fields:
            title = (fields.get("title") or "").strip()
            if not title:
                errors.append(FieldError("title", "Title is required"))
            elif len(title) > MAX_TITLE_LENGTH:
                errors.append(FieldError("title", f"Title cannot be more than {MAX_TITLE_LENGTH} characters"))
            else:
                cleaned["title"] = title

        if not partial or "content" in fields:
            content = fields.get("content") or ""
            if not content.strip():
                errors.append(FieldError("content", "Content is required"))
            elif len(content.strip()) < MIN_CONTENT_LENGTH:
                errors.append(FieldError("content", f"Content must be at least {MIN_CONTENT_LENGTH} characters"))
            else:
                cleaned["content"] = content

        if not partial or "category_id" in fields:
            raw_category = fields.get("category_id")
            if raw_category is None or (isinstance(raw_category, str) and not raw_category.strip()):
                errors.append(FieldError("category", "Category is required"))
            else:
                category = self._find_category(raw_category)
                if category is None:
                    errors.append(FieldError("category", "Category not found"))
                else:
                    cleaned["category_id"] = category.id

        if "tags" in fields:
            cleaned["tags"] = parse_tags(fields.get("tags"))
        elif not partial:
            cleaned["tags"] = []

        if "featured_image" in fields:
            cleaned["featured_image"] = fields.get("featured_image")

        if errors:
            raise ValidationError(errors)
        return cleaned

    def _find_category(self, raw: Any) -> Optional[Category]:
        try:
            category_id = parse_identifier(raw)
        except NotFound:
            return None
        return self.session.get(Category, category_id)

    # ----- slugs -----

    def _unique_slug(self, title: str) -> str:
        base = slugify(title)
        taken = set(
            self.session.exec(
                select(Post.slug).where(or_(Post.slug == base, Post.slug.like(f"{base}-%")))
            ).all()
        )
        if base not in taken:
            return base
        n = 2
        while f"{base}-{n}" in taken:
            n += 1
        return f"{base}-{n}"

    # ----- operations -----

    def create(self, author_id: int, fields: Mapping[str, Any]) -> Post:
        cleaned = self.validate(fields)
        post = Post(
            author_id=author_id,
            slug=self._unique_slug(cleaned["title"]),
            **cleaned,
        )
        self._commit(post, "create")
        logger.info("Post created", post_id=post.id, slug=post.slug, author_id=author_id)
        return post

    def get_by_id(self, post_id: Union[int, str]) -> Post:
        post = self.session.get(Post, parse_identifier(post_id))
        if post is None:
            raise NotFound("Post not found")
        return post

    def list(self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, category_id: Optional[int] = None) -> PostPage:
        if page < 1 or page_size < 1:
            raise ValidationError("Page and page size must be positive", field_name="page")

        count_query = select(func.count()).select_from(Post)
        query = select(Post)
        if category_id is not None:
            count_query = count_query.where(Post.category_id == category_id)
            query = query.where(Post.category_id == category_id)

        total = self.session.exec(count_query).one()
        posts = self.session.exec(
            query.order_by(Post.created_at.desc(), Post.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return PostPage(posts=list(posts), page=page, page_size=page_size, total=total)

    def search(self, term: str, category_id: Optional[int] = None) -> List[Post]:
        term = (term or "").strip()
        if not term:
            # Never fall through to a full scan on an empty term
            return []

        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        query = select(Post).where(
            or_(
                Post.title.ilike(pattern, escape="\\"),
                Post.content.ilike(pattern, escape="\\"),
            )
        )
        if category_id is not None:
            query = query.where(Post.category_id == category_id)

        return list(self.session.exec(query.order_by(Post.created_at.desc(), Post.id.desc())).all())

    def update(
        self,
        post_id: Union[int, str],
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Post:
        post = self.get_by_id(post_id)
        if expected_version is not None and expected_version != post.version:
            raise StaleVersion(current_version=post.version, submitted_version=expected_version)

        present = {key: fields[key] for key in MUTABLE_FIELDS if key in fields}
        cleaned = self.validate(present, partial=True)
        for key, value in cleaned.items():
            setattr(post, key, value)
        post.version += 1
        post.updated_at = datetime.now(timezone.utc)

        self._commit(post, "update")
        logger.info("Post updated", post_id=post.id, fields=sorted(cleaned), version=post.version)
        return post

    def delete(self, post_id: Union[int, str]) -> None:
        post = self.get_by_id(post_id)
        self.session.delete(post)
        self.session.commit()
        logger.info("Post deleted", post_id=post.id)

    def _commit(self, post: Post, operation: str) -> None:
        self.session.add(post)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning("Post write violated a constraint", operation=operation, error=str(e.orig))
            raise Conflict()
        self.session.refresh(post)
