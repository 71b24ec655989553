import logging
import re

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.session import generate_access_token, hash_access_token
from app.models.user import User
from app.services.errors import AuthenticationRequiredError, ConflictError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]{3,50}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_username(username: str) -> str:
    username = username.strip()
    if not USERNAME_RE.match(username):
        raise ServiceError("Username must be 3-50 characters: letters, digits, '_' or '-'")
    return username


def validate_email(email: str) -> str:
    email = email.strip().lower()
    if not EMAIL_RE.match(email):
        raise ServiceError("Invalid email address")
    return email


async def register_user(db: AsyncSession, username: str, email: str, display_name: str = "") -> tuple[User, str]:
    """Создает пользователя и возвращает его вместе с одноразово показываемым токеном доступа."""
    username = validate_username(username)
    email = validate_email(email)
    if username.lower() == settings.tie_breaker_username.lower():
        raise ConflictError("Username is reserved")

    exists = await db.scalar(
        select(User.id).where(or_(func.lower(User.username) == username.lower(), User.email == email))
    )
    if exists:
        raise ConflictError("Username or email already registered")

    token = generate_access_token()
    user = User(
        username=username,
        email=email,
        display_name=display_name.strip()[:120] or username,
        token_hash=hash_access_token(token),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Username or email already registered") from exc
    await db.refresh(user)
    logger.info("User %s registered", user.username)
    return user, token


async def authenticate(db: AsyncSession, username: str, access_token: str) -> User:
    user = await db.scalar(select(User).where(func.lower(User.username) == username.strip().lower()))
    if not user or user.is_system or not user.token_hash or user.token_hash != hash_access_token(access_token):
        raise AuthenticationRequiredError("Invalid username or access token")
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def get_or_create_tie_breaker_user(db: AsyncSession) -> User:
    # Голоса тай-брейка записываются от имени служебного администратора.
    user = await db.scalar(select(User).where(User.username == settings.tie_breaker_username))
    if user:
        return user
    user = User(
        username=settings.tie_breaker_username,
        email=f"{settings.tie_breaker_username}@system.local",
        display_name="System Administrator",
        is_admin=True,
        is_system=True,
    )
    db.add(user)
    await db.flush()
    logger.info("Created tie-breaker account %s", user.username)
    return user
