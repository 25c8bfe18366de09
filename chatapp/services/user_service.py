"""User service: registration, login and lookup."""
from typing import List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from chatapp.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from chatapp.models.user import User
from chatapp.utils.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


def escape_like(text: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class UserService:
    """Service class for identity operations."""

    def __init__(self, session: Session):
        self.session = session

    def register(self, username: str, email: str, password: str) -> User:
        """Create a user; duplicate email or username is a ConflictError."""
        username = username.strip()
        email = email.strip().lower()
        if not username:
            raise ValidationError("Username, email, and password are required")

        if self.session.exec(select(User).where(User.email == email)).first():
            raise ConflictError("Email already in use")
        if self.session.exec(select(User).where(User.username == username)).first():
            raise ConflictError("Username already taken")

        user = User(username=username, email=email, password_hash=hash_password(password))
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            # A concurrent registration took the email or username first
            self.session.rollback()
            raise ConflictError("Email or username already in use")
        self.session.refresh(user)
        logger.info(f"Registered user {user.id} ({user.username})")
        return user

    def login(self, email: str, password: str) -> User:
        user = self.session.exec(select(User).where(User.email == email.strip().lower())).first()
        if not user:
            raise NotFoundError("User not found")
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return user

    def get(self, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def search(self, query: Optional[str], current_user_id: str) -> List[User]:
        """Case-insensitive substring match on username or email, excluding the caller."""
        if not query or not query.strip():
            raise ValidationError("Search query is required")

        pattern = f"%{escape_like(query.strip())}%"
        statement = (
            select(User)
            .where(User.id != current_user_id)
            .where(or_(
                col(User.username).ilike(pattern, escape="\\"),
                col(User.email).ilike(pattern, escape="\\"),
            ))
            .order_by(User.username)
            .limit(SEARCH_LIMIT)
        )
        return list(self.session.exec(statement).all())
