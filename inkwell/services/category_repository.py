from typing import List, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from inkwell.core.errors import Conflict, FieldError, NotFound, ValidationError
from inkwell.core.logging_config import get_logger
from inkwell.models import Category, Post
from inkwell.services.identifiers import parse_identifier

logger = get_logger(__name__)

MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 500


class CategoryRepository:
    """Categories are shared; any authenticated user may create them."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, name: str, description: str = "") -> Category:
        name = (name or "").strip()
        description = (description or "").strip()

        errors = []
        if not name:
            errors.append(FieldError("name", "Category name is required"))
        elif len(name) > MAX_NAME_LENGTH:
            errors.append(FieldError("name", f"Category name cannot be more than {MAX_NAME_LENGTH} characters"))
        if len(description) > MAX_DESCRIPTION_LENGTH:
            errors.append(FieldError("description", f"Description cannot be more than {MAX_DESCRIPTION_LENGTH} characters"))
        if errors:
            raise ValidationError(errors)

        existing = self.session.exec(select(Category).where(func.lower(Category.name) == name.lower())).first()
        if existing:
            raise Conflict()

        category = Category(name=name, description=description)
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise Conflict()
        self.session.refresh(category)
        logger.info("Category created", category_id=category.id, name=name)
        return category

    def list(self) -> List[Category]:
        return list(self.session.exec(select(Category).order_by(Category.name)).all())

    def get_by_id(self, category_id: Union[int, str]) -> Category:
        category = self.session.get(Category, parse_identifier(category_id))
        if category is None:
            raise NotFound("Category not found")
        return category

    def delete(self, category_id: Union[int, str]) -> None:
        """Delete an unreferenced category. Categories still used by posts are kept."""
        category = self.get_by_id(category_id)
        in_use = self.session.exec(
            select(func.count()).select_from(Post).where(Post.category_id == category.id)
        ).one()
        if in_use:
            raise Conflict("Category is in use by existing posts")

        self.session.delete(category)
        self.session.commit()
        logger.info("Category deleted", category_id=category.id)
