"""Create a test user for local development: ``python -m chatapp.db.seed``."""
import logging

from sqlmodel import Session, select

from chatapp.db.config import engine
from chatapp.db.init import init_db
from chatapp.models.user import User
from chatapp.services.user_service import UserService

logger = logging.getLogger(__name__)

TEST_USERNAME = "testuser"
TEST_EMAIL = "test@example.com"
TEST_PASSWORD = "password123"


def create_test_user(session: Session) -> User:
    """Return the test user, creating it if it does not exist yet."""
    existing = session.exec(select(User).where(User.email == TEST_EMAIL)).first()
    if existing:
        logger.info("Test user already exists!")
        return existing

    user = UserService(session).register(TEST_USERNAME, TEST_EMAIL, TEST_PASSWORD)
    logger.info(f"Test user created successfully: {user.username} <{user.email}> id={user.id}")
    return user


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
    with Session(engine) as session:
        create_test_user(session)
