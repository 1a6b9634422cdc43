"""
Database abstraction for the portfolio tables and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol, TypeVar

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    Text,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(Exception):
    """Raised when the underlying store fails an operation."""


class DuplicateEmailError(StorageError):
    """Raised when a user email collides with an existing row."""

    def __init__(self, email: str):
        super().__init__(f"Email already exists: {email}")
        self.email = email


class DbClient(Protocol):
    """Interface for database access."""

    def initialize(self) -> None:
        ...

    def close(self) -> None:
        ...

    def list_users(self) -> list["UserRecord"]:
        ...

    def get_user(self, user_id: int) -> Optional["UserRecord"]:
        ...

    def create_user(self, name: str, email: str, message: str = "") -> "UserRecord":
        ...

    def update_user(self, user_id: int, name: str, email: str, message: str) -> bool:
        ...

    def delete_user(self, user_id: int) -> bool:
        ...

    def list_projects(self) -> list["ProjectRecord"]:
        ...

    def get_project(self, project_id: int) -> Optional["ProjectRecord"]:
        ...

    def create_project(
        self,
        title: str,
        description: str = "",
        technologies: str = "",
        link: str = "",
    ) -> "ProjectRecord":
        ...

    def update_project(
        self,
        project_id: int,
        title: str,
        description: str,
        technologies: str,
        link: str,
    ) -> bool:
        ...

    def delete_project(self, project_id: int) -> bool:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class UserRecord:
    id: int
    name: str
    email: str
    message: str = ""
    created_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "message": self.message,
            "created_at": self.created_at,
        }


@dataclass
class ProjectRecord:
    id: int
    title: str
    description: str = ""
    technologies: str = ""
    link: str = ""
    created_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "technologies": self.technologies,
            "link": self.link,
            "created_at": self.created_at,
        }


def is_transient_error(exc: BaseException) -> bool:
    """Lock contention and busy databases are worth another try."""
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def run_with_retry(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    delay_seconds: float = 0.1,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
) -> T:
    """
    Call ``operation`` and retry it while it fails with a transient error.

    At most ``attempts`` calls are made. The last error, or the first
    non-transient one, propagates to the caller.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    attempt = 1
    while True:
        try:
            return operation()
        except Exception as exc:
            if attempt >= attempts or not is_transient(exc):
                raise
            logger.warning(
                "Transient storage error (attempt %d/%d): %s", attempt, attempts, exc
            )
            time.sleep(delay_seconds)
            attempt += 1


MAX_ROW_ID = 2**63 - 1
MIN_ROW_ID = -(2**63)


def _storable_id(row_id: int) -> bool:
    """Ids outside the signed 64-bit INTEGER range cannot match any row."""
    return MIN_ROW_ID <= row_id <= MAX_ROW_ID


def _describe(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[int, UserRecord] = {}
        self.projects: Dict[int, ProjectRecord] = {}
        self.initialized = False
        self._next_user_id = 1
        self._next_project_id = 1

    def initialize(self) -> None:
        self.initialized = True

    def close(self) -> None:
        self.initialized = False

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.projects.clear()
        self._next_user_id = 1
        self._next_project_id = 1

    def _email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        return any(
            user.email == email and user.id != exclude_id
            for user in self.users.values()
        )

    def list_users(self) -> list[UserRecord]:
        return sorted(
            self.users.values(), key=lambda u: (u.created_at, u.id), reverse=True
        )

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def create_user(self, name: str, email: str, message: str = "") -> UserRecord:
        if self._email_taken(email):
            raise DuplicateEmailError(email)
        record = UserRecord(
            id=self._next_user_id, name=name, email=email, message=message
        )
        self.users[record.id] = record
        self._next_user_id += 1
        return record

    def update_user(self, user_id: int, name: str, email: str, message: str) -> bool:
        user = self.users.get(user_id)
        if not user:
            return False
        if self._email_taken(email, exclude_id=user_id):
            raise DuplicateEmailError(email)
        user.name = name
        user.email = email
        user.message = message
        return True

    def delete_user(self, user_id: int) -> bool:
        return self.users.pop(user_id, None) is not None

    def list_projects(self) -> list[ProjectRecord]:
        return sorted(
            self.projects.values(), key=lambda p: (p.created_at, p.id), reverse=True
        )

    def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        return self.projects.get(project_id)

    def create_project(
        self,
        title: str,
        description: str = "",
        technologies: str = "",
        link: str = "",
    ) -> ProjectRecord:
        record = ProjectRecord(
            id=self._next_project_id,
            title=title,
            description=description,
            technologies=technologies,
            link=link,
        )
        self.projects[record.id] = record
        self._next_project_id += 1
        return record

    def update_project(
        self,
        project_id: int,
        title: str,
        description: str,
        technologies: str,
        link: str,
    ) -> bool:
        project = self.projects.get(project_id)
        if not project:
            return False
        project.title = title
        project.description = description
        project.technologies = technologies
        project.link = link
        return True

    def delete_project(self, project_id: int) -> bool:
        return self.projects.pop(project_id, None) is not None


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL; SQLite is
    the default and an in-memory SQLite URL shares one connection.
    """

    def __init__(
        self,
        database_url: str,
        *,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 0.1,
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        url = make_url(database_url)
        engine_kwargs: dict = {"future": True}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.retry_attempts = retry_attempts
        self.retry_delay_seconds = retry_delay_seconds

    def initialize(self) -> None:
        """
        Create the ``users`` and ``projects`` tables if they do not exist.

        Tables are created one after the other so a failure names its table.
        """
        for table in (UserRow.__table__, ProjectRow.__table__):
            try:
                table.create(self.engine, checkfirst=True)
            except SQLAlchemyError as exc:
                logger.error("Error creating %s table: %s", table.name, _describe(exc))
                raise StorageError(
                    f"Failed to create {table.name} table: {_describe(exc)}"
                ) from exc
            logger.info("%s table ready", table.name.capitalize())

    def close(self) -> None:
        self.engine.dispose()

    def _run(self, operation: Callable[[], T]) -> T:
        try:
            return run_with_retry(
                operation,
                attempts=self.retry_attempts,
                delay_seconds=self.retry_delay_seconds,
            )
        except StorageError:
            raise
        except SQLAlchemyError as exc:
            raise StorageError(_describe(exc)) from exc

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            message=row.message or "",
            created_at=_as_utc(row.created_at),
        )

    def _to_project_record(self, row: "ProjectRow") -> ProjectRecord:
        return ProjectRecord(
            id=row.id,
            title=row.title,
            description=row.description or "",
            technologies=row.technologies or "",
            link=row.link or "",
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _user_integrity_error(exc: IntegrityError, email: str) -> StorageError:
        if "email" in _describe(exc).lower():
            return DuplicateEmailError(email)
        return StorageError(_describe(exc))

    def list_users(self) -> list[UserRecord]:
        def _list():
            with self.Session() as session:
                stmt = select(UserRow).order_by(
                    UserRow.created_at.desc(), UserRow.id.desc()
                )
                return [self._to_user_record(r) for r in session.execute(stmt).scalars()]

        return self._run(_list)

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        if not _storable_id(user_id):
            return None
        def _get():
            with self.Session() as session:
                row = session.get(UserRow, user_id)
                return self._to_user_record(row) if row else None

        return self._run(_get)

    def create_user(self, name: str, email: str, message: str = "") -> UserRecord:
        def _insert():
            with self.Session() as session:
                row = UserRow(name=name, email=email, message=message)
                session.add(row)
                try:
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise self._user_integrity_error(exc, email) from exc
                session.refresh(row)
                return self._to_user_record(row)

        return self._run(_insert)

    def update_user(self, user_id: int, name: str, email: str, message: str) -> bool:
        if not _storable_id(user_id):
            return False
        def _update():
            with self.Session() as session:
                stmt = (
                    update(UserRow)
                    .where(UserRow.id == user_id)
                    .values(name=name, email=email, message=message)
                )
                try:
                    result = session.execute(stmt)
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise self._user_integrity_error(exc, email) from exc
                return result.rowcount > 0

        return self._run(_update)

    def delete_user(self, user_id: int) -> bool:
        if not _storable_id(user_id):
            return False
        def _delete():
            with self.Session() as session:
                result = session.execute(delete(UserRow).where(UserRow.id == user_id))
                session.commit()
                return result.rowcount > 0

        return self._run(_delete)

    def list_projects(self) -> list[ProjectRecord]:
        def _list():
            with self.Session() as session:
                stmt = select(ProjectRow).order_by(
                    ProjectRow.created_at.desc(), ProjectRow.id.desc()
                )
                return [
                    self._to_project_record(r) for r in session.execute(stmt).scalars()
                ]

        return self._run(_list)

    def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        if not _storable_id(project_id):
            return None
        def _get():
            with self.Session() as session:
                row = session.get(ProjectRow, project_id)
                return self._to_project_record(row) if row else None

        return self._run(_get)

    def create_project(
        self,
        title: str,
        description: str = "",
        technologies: str = "",
        link: str = "",
    ) -> ProjectRecord:
        def _insert():
            with self.Session() as session:
                row = ProjectRow(
                    title=title,
                    description=description,
                    technologies=technologies,
                    link=link,
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._to_project_record(row)

        return self._run(_insert)

    def update_project(
        self,
        project_id: int,
        title: str,
        description: str,
        technologies: str,
        link: str,
    ) -> bool:
        if not _storable_id(project_id):
            return False
        def _update():
            with self.Session() as session:
                stmt = (
                    update(ProjectRow)
                    .where(ProjectRow.id == project_id)
                    .values(
                        title=title,
                        description=description,
                        technologies=technologies,
                        link=link,
                    )
                )
                result = session.execute(stmt)
                session.commit()
                return result.rowcount > 0

        return self._run(_update)

    def delete_project(self, project_id: int) -> bool:
        if not _storable_id(project_id):
            return False
        def _delete():
            with self.Session() as session:
                result = session.execute(
                    delete(ProjectRow).where(ProjectRow.id == project_id)
                )
                session.commit()
                return result.rowcount > 0

        return self._run(_delete)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    message = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ProjectRow(Base):
    __tablename__ = "projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    technologies = Column(Text, nullable=False, default="")
    link = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
