"""The ``auth_users`` table and the queries and updates made on it."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, Integer, String, func, select, true, false
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base of the service's tables."""


class AuthError(Exception):
    """A failure in an account operation."""

    class Kind(StrEnum):
        EMAIL_EXISTS = "email_exists"
        USERNAME_EXISTS = "username_exists"
        INVALID_CREDENTIALS = "invalid_credentials"
        INACTIVE_ACCOUNT = "inactive_account"
        DATABASE_ERROR = "database_error"
        HASHING_ERROR = "hashing_error"

    def __init__(self, kind: str, detail: str = "") -> None:
        self.kind = AuthError.Kind(kind)
        self.detail = detail
        super().__init__(f"{self.kind.value}: {detail}" if detail else self.kind.value)


class AuthUser(Base):
    """A user account."""

    __tablename__ = "auth_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_superuser: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_staff: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    last_login: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, server_default=func.current_timestamp()
    )

    def __repr__(self) -> str:
        return f"AuthUser(id={self.id!r}, username={self.username!r}, email={self.email!r})"

    def full_name(self) -> str:
        """Return first and last name, whichever are set, else the username."""
        match (self.first_name, self.last_name):
            case (str() as first, str() as last):
                return f"{first} {last}"
            case (str() as first, None):
                return first
            case (None, str() as last):
                return last
            case _:
                return self.username

    def _save(self, session: Session, **changes: object) -> AuthUser:
        for name, value in changes.items():
            setattr(self, name, value)
        self.updated_at = _utcnow()
        session.add(self)
        try:
            session.commit()
        except SQLAlchemyError as err:
            session.rollback()
            raise AuthError(AuthError.Kind.DATABASE_ERROR, str(err)) from err
        return self

    def update_last_login(self, session: Session) -> AuthUser:
        """Record the current time as the last login."""
        return self._save(session, last_login=_utcnow())

    def activate(self, session: Session) -> AuthUser:
        """Mark the account active."""
        return self._save(session, is_active=True)

    def deactivate(self, session: Session) -> AuthUser:
        """Mark the account inactive."""
        return self._save(session, is_active=False)

    def verify_email(self, session: Session) -> AuthUser:
        """Mark the account's e-mail address as verified."""
        return self._save(session, is_verified=True)


def _first(session: Session, statement) -> AuthUser | None:
    try:
        return session.scalars(statement).first()
    except SQLAlchemyError as err:
        raise AuthError(AuthError.Kind.DATABASE_ERROR, str(err)) from err


def find_by_email(session: Session, email: str) -> AuthUser | None:
    """Return the user with this e-mail address, if any."""
    return _first(session, select(AuthUser).where(AuthUser.email == email))


def find_by_username(session: Session, username: str) -> AuthUser | None:
    """Return the user with this username, if any."""
    return _first(session, select(AuthUser).where(AuthUser.username == username))


def email_exists(session: Session, email: str) -> bool:
    """Tell whether a user has this e-mail address."""
    return find_by_email(session, email) is not None


def username_exists(session: Session, username: str) -> bool:
    """Tell whether a user has this username."""
    return find_by_username(session, username) is not None