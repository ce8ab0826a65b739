"""
Post endpoints.

Reads are public. Writes need a bearer token, and update/delete are limited to
the post's author. Every write runs in the same order: look up the post (404),
check ownership (403), validate input (400), store the image, then persist.
The image is only written once the fields are known to be valid, and is
removed again if the final write fails.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Form, Query, status
from starlette.datastructures import UploadFile

from inkwell.api import deps
from inkwell.core.config import Settings
from inkwell.core.errors import NotFound, ValidationError
from inkwell.core.identity import Identity
from inkwell.core.policy import ensure_can_modify
from inkwell.schemas import MessageResponse, PostOut, PostPageOut
from inkwell.services.identifiers import parse_identifier
from inkwell.services.post_repository import PostRepository
from inkwell.services.uploads import LocalBlobStore

router = APIRouter()


def _collect_fields(
    title: Optional[str],
    content: Optional[str],
    category: Optional[str],
    tags: Optional[str],
) -> Dict[str, Any]:
    """Form values that were actually sent, keyed by repository field name."""
    submitted = {"title": title, "content": content, "category_id": category, "tags": tags}
    return {key: value for key, value in submitted.items() if value is not None}


def _parse_category_filter(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return parse_identifier(raw)
    except NotFound:
        raise ValidationError("Invalid category filter", field_name="category")


@router.get("", response_model=PostPageOut)
def list_posts(
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    search: Optional[str] = None,
    category: Optional[str] = None,
    posts: PostRepository = Depends(deps.get_post_repository),
    settings: Settings = Depends(deps.get_settings),
) -> Any:
    """
    Paginated posts, newest first.

    With a non-blank ``search`` term the full match list is returned as a
    single page.
    """
    category_id = _parse_category_filter(category)

    if search is not None and search.strip():
        matches = posts.search(search, category_id=category_id)
        return PostPageOut(
            posts=[PostOut.from_model(p) for p in matches],
            page=1,
            total=len(matches),
            total_pages=1 if matches else 0,
        )

    page_size = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    result = posts.list(page=page, page_size=page_size, category_id=category_id)
    return PostPageOut(
        posts=[PostOut.from_model(p) for p in result.posts],
        page=result.page,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/{post_id}", response_model=PostOut)
def get_post(
    post_id: str,
    posts: PostRepository = Depends(deps.get_post_repository),
) -> Any:
    return PostOut.from_model(posts.get_by_id(post_id))


@router.post("", response_model=PostOut, status_code=status.HTTP_201_CREATED)
def create_post(
    identity: Identity = Depends(deps.require_identity),
    title: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None),
    image: Optional[UploadFile] = Depends(deps.get_featured_image),
    posts: PostRepository = Depends(deps.get_post_repository),
    blob_store: LocalBlobStore = Depends(deps.get_blob_store),
) -> Any:
    fields = _collect_fields(title, content, category, tags)
    fields = posts.validate(fields)

    if image is not None:
        fields["featured_image"] = blob_store.save(image)

    try:
        post = posts.create(identity.id, fields)
    except Exception:
        if "featured_image" in fields:
            blob_store.discard(fields["featured_image"])
        raise
    return PostOut.from_model(post)


@router.put("/{post_id}", response_model=PostOut)
def update_post(
    post_id: str,
    identity: Identity = Depends(deps.require_identity),
    title: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None),
    version: Optional[int] = Form(default=None),
    image: Optional[UploadFile] = Depends(deps.get_featured_image),
    posts: PostRepository = Depends(deps.get_post_repository),
    blob_store: LocalBlobStore = Depends(deps.get_blob_store),
) -> Any:
    """
    Partial update by the author.

    ``version`` is optional; when sent it must match the stored version or the
    update is rejected with 409.
    """
    post = posts.get_by_id(post_id)
    ensure_can_modify(identity, post.author_id)

    fields = _collect_fields(title, content, category, tags)
    fields = posts.validate(fields, partial=True)

    if image is not None:
        fields["featured_image"] = blob_store.save(image)

    try:
        updated = posts.update(post.id, fields, expected_version=version)
    except Exception:
        if "featured_image" in fields:
            blob_store.discard(fields["featured_image"])
        raise
    return PostOut.from_model(updated)


@router.delete("/{post_id}", response_model=MessageResponse)
def delete_post(
    post_id: str,
    identity: Identity = Depends(deps.require_identity),
    posts: PostRepository = Depends(deps.get_post_repository),
) -> Any:
    post = posts.get_by_id(post_id)
    ensure_can_modify(identity, post.author_id)

    posts.delete(post.id)
    return MessageResponse(message="Post deleted")
