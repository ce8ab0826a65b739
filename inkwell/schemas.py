from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from inkwell.models import Category, Post, User


class UserCreate(BaseModel):
    username: str
    email: str
    password: str


class UserLogin(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, user: User) -> "UserOut":
        return cls(id=user.id, username=user.username, email=user.email, created_at=user.created_at)


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserOut


class CategoryCreate(BaseModel):
    name: str
    description: str = ""


class CategoryOut(BaseModel):
    id: int
    name: str
    description: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, category: Category) -> "CategoryOut":
        return cls(
            id=category.id,
            name=category.name,
            description=category.description,
            created_at=category.created_at,
        )


class PostOut(BaseModel):
    id: int
    title: str
    content: str
    slug: str
    author: int  # User id
    category: int  # Category id
    tags: List[str] = []
    featured_image: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, post: Post) -> "PostOut":
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            slug=post.slug,
            author=post.author_id,
            category=post.category_id,
            tags=list(post.tags or []),
            featured_image=post.featured_image,
            version=post.version,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


class PostPageOut(BaseModel):
    posts: List[PostOut]
    page: int
    total: int
    total_pages: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str

