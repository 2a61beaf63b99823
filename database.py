import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from sqlalchemy import create_engine, event, inspect, select
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from errors import (
    DatabaseFileNotFoundError,
    DisposedError,
    InvalidArgumentError,
    StorageError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Base(DeclarativeBase):
    pass


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def _create_engine(path: Path) -> Engine:
    url = URL.create("sqlite", database=str(path))
    eng = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _validate_path(path: Optional[PathLike]) -> Path:
    if path is None or not str(path).strip():
        raise InvalidArgumentError("Database path cannot be null or empty")
    return Path(path)


class DatabaseService:
    """
    Owns the engine and session for one SQLite budget file.

    Use ``create`` for a fresh database (schema and category types included)
    and ``open`` for an existing one. Calling the constructor directly
    connects leniently and creates an empty file if none exists.
    """

    def __init__(self, path: PathLike) -> None:
        self.path = _validate_path(path)
        self._closed = False
        self.engine = _create_engine(self.path)
        try:
            with self.engine.connect():
                pass
        except SQLAlchemyError as exc:
            self.engine.dispose()
            logger.error(f"database_connect_failed: path={self.path} error={exc}")
            raise StorageError(f"Database connect failed: {exc}") from exc
        self._session: Session = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )()
        logger.debug(f"database_connected: path={self.path}")

    @classmethod
    def create(cls, path: PathLike) -> "DatabaseService":
        target = _validate_path(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Create database failed: {exc}") from exc
        db = cls(target)
        try:
            db.create_tables()
        except StorageError:
            db.close()
            raise
        logger.info(f"database_created: path={target}")
        return db

    @classmethod
    def open(cls, path: PathLike) -> "DatabaseService":
        target = _validate_path(path)
        if not target.exists():
            raise DatabaseFileNotFoundError(f"File doesn't exist: {target}")
        db = cls(target)
        logger.info(f"database_opened: path={target}")
        return db

    @property
    def session(self) -> Session:
        if self._closed:
            raise DisposedError("DatabaseService")
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_connected(self) -> bool:
        return not self._closed

    @contextmanager
    def scope(self, operation: str) -> Iterator[Session]:
        """Run one unit of work: commit on success, roll back on any error."""
        session = self.session
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"storage_failure: operation={operation!r} error={exc}")
            raise StorageError(f"{operation} failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise

    def create_tables(self) -> None:
        # Importing the models registers their tables on Base.metadata
        import models  # noqa: F401

        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            logger.error(f"create_tables_failed: path={self.path} error={exc}")
            raise StorageError(f"Create database failed: {exc}") from exc
        self.insert_default_category_types()

    def insert_default_category_types(self) -> None:
        from models import CategoryType, CategoryTypeRecord

        with self.scope("Insert category types") as session:
            existing = set(session.scalars(select(CategoryTypeRecord.id)).all())
            for category_type in CategoryType:
                if category_type.value in existing:
                    continue
                session.add(
                    CategoryTypeRecord(
                        id=category_type.value, description=category_type.label
                    )
                )

    def table_names(self) -> list[str]:
        if self._closed:
            raise DisposedError("DatabaseService")
        try:
            return sorted(inspect(self.engine).get_table_names())
        except SQLAlchemyError as exc:
            raise StorageError(f"List tables failed: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.close()
        self.engine.dispose()
        logger.info(f"database_closed: path={self.path}")

    def __enter__(self) -> "DatabaseService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class DatabaseHandle:
    """A store's reference to a DatabaseService plus the rule for letting go of it."""

    def __init__(self, database: DatabaseService) -> None:
        if database is None:
            raise InvalidArgumentError("Database service cannot be None")
        self.database = database

    def release(self) -> None:
        raise NotImplementedError


class OwnedDatabase(DatabaseHandle):
    def release(self) -> None:
        self.database.close()


class BorrowedDatabase(DatabaseHandle):
    def release(self) -> None:
        # The lender closes it.
        pass
