import re
from typing import Optional, Union

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from inkwell.core import security
from inkwell.core.errors import Conflict, FieldError, NotFound, ValidationError
from inkwell.core.logging_config import get_logger
from inkwell.models import User
from inkwell.services.identifiers import parse_identifier

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
MIN_PASSWORD_LENGTH = 8


class UserRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, username: str, email: str, password: str) -> User:
        username = (username or "").strip()
        email = (email or "").strip().lower()
        password = password or ""

        errors = []
        if not 3 <= len(username) <= 30:
            errors.append(FieldError("username", "Username must be between 3 and 30 characters"))
        elif not USERNAME_PATTERN.match(username):
            errors.append(FieldError("username", "Username may only contain letters, numbers, '.', '-' and '_'"))
        if not EMAIL_PATTERN.match(email):
            errors.append(FieldError("email", "Please enter a valid email"))
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(FieldError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"))
        if errors:
            raise ValidationError(errors)

        existing = self.session.exec(
            select(User).where(or_(User.email == email, User.username == username))
        ).first()
        if existing:
            raise Conflict("User already exists")

        user = User(
            username=username,
            email=email,
            hashed_password=security.get_password_hash(password),
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise Conflict()
        self.session.refresh(user)
        logger.info("User registered", user_id=user.id, username=username)
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        email = (email or "").strip().lower()
        return self.session.exec(select(User).where(User.email == email)).first()

    def get_by_id(self, user_id: Union[int, str]) -> User:
        user = self.session.get(User, parse_identifier(user_id))
        if user is None:
            raise NotFound("User not found")
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user when the credentials match, otherwise None."""
        user = self.get_by_email(email)
        if user is None or not security.verify_password(password or "", user.hashed_password):
            return None
        return user
