"""Test support routes.

Endpoints used by end-to-end browser tests to put the database into a known
state. They answer 403 outside the development and test environments.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import delete, func
from sqlmodel import Session, select

from inkwell.api import deps
from inkwell.core.config import Settings
from inkwell.core.errors import Forbidden
from inkwell.db import get_session
from inkwell.models import Category, Post, User
from inkwell.schemas import CategoryOut, PostOut, UserOut
from inkwell.services.category_repository import CategoryRepository
from inkwell.services.post_repository import SQLPostRepository
from inkwell.services.user_repository import UserRepository

SEED_POST_COUNT = 5


def require_test_environment(settings: Settings = Depends(deps.get_settings)) -> None:
    if not settings.is_development:
        raise Forbidden("Test routes are only available in development and test environments")


router = APIRouter(dependencies=[Depends(require_test_environment)])


def _clear_all(request: Request, session: Session) -> None:
    # Children first so foreign keys hold
    for model in (Post, Category, User):
        session.execute(delete(model))
    session.commit()
    request.app.state.rate_limiter.clear()


@router.post("/clear-database")
def clear_database(
    request: Request,
    session: Session = Depends(get_session),
    logger: Any = Depends(deps.get_app_logger),
) -> Any:
    _clear_all(request, session)
    logger.info("Test database cleared")
    return {"message": "Database cleared successfully"}


@router.post("/reset-to-clean-state")
def reset_to_clean_state(
    request: Request,
    session: Session = Depends(get_session),
) -> Any:
    _clear_all(request, session)
    return {"message": "Database reset to clean state"}


@router.post("/seed-data")
def seed_data(
    request: Request,
    session: Session = Depends(get_session),
    logger: Any = Depends(deps.get_app_logger),
) -> Any:
    """Replace all data with one user, two categories and five posts."""
    _clear_all(request, session)

    user = UserRepository(session).create("testuser", "test@example.com", "password123")
    categories = CategoryRepository(session)
    tech = categories.create("Technology", "Technology related posts")
    lifestyle = categories.create("Lifestyle", "Lifestyle related posts")

    post_repo = SQLPostRepository(session)
    posts = []
    for i in range(1, SEED_POST_COUNT + 1):
        posts.append(
            post_repo.create(
                user.id,
                {
                    "title": f"Test Post {i}",
                    "content": (
                        f"This is the content for test post {i}. "
                        "It contains some sample text to demonstrate the post functionality."
                    ),
                    "category_id": tech.id if i % 2 == 0 else lifestyle.id,
                    "featured_image": "default-post.jpg",
                },
            )
        )

    logger.info("Test data seeded", posts=len(posts))
    return {
        "message": "Test data seeded successfully",
        "data": {
            "user": UserOut.from_model(user),
            "categories": [CategoryOut.from_model(tech), CategoryOut.from_model(lifestyle)],
            "posts": [PostOut.from_model(p) for p in posts],
        },
    }


@router.get("/stats")
def stats(session: Session = Depends(get_session)) -> Any:
    def count(model) -> int:
        return session.exec(select(func.count()).select_from(model)).one()

    return {"users": count(User), "posts": count(Post), "categories": count(Category)}
