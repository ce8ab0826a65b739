from typing import Any, List

from fastapi import APIRouter, Depends, status

from inkwell.api import deps
from inkwell.core.identity import Identity
from inkwell.schemas import CategoryCreate, CategoryOut, MessageResponse
from inkwell.services.category_repository import CategoryRepository

router = APIRouter()


@router.get("", response_model=List[CategoryOut])
def list_categories(
    categories: CategoryRepository = Depends(deps.get_category_repository),
) -> Any:
    return [CategoryOut.from_model(c) for c in categories.list()]


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(
    category_in: CategoryCreate,
    identity: Identity = Depends(deps.require_identity),
    categories: CategoryRepository = Depends(deps.get_category_repository),
    logger: Any = Depends(deps.get_app_logger),
) -> Any:
    """Any signed-in user may add a category."""
    category = categories.create(category_in.name, category_in.description)
    logger.debug("Category added via API", category_id=category.id, user_id=identity.id)
    return CategoryOut.from_model(category)


@router.delete("/{category_id}", response_model=MessageResponse)
def delete_category(
    category_id: str,
    identity: Identity = Depends(deps.require_identity),
    categories: CategoryRepository = Depends(deps.get_category_repository),
) -> Any:
    """Remove a category no post refers to."""
    categories.delete(category_id)
    return MessageResponse(message="Category deleted")
