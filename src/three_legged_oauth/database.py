"""SQLAlchemy-backed token storage.

One row per token identity (a user, an account, a browser session) holds
the persisted shape: token, secret, status and last exception message.
The access-token commit uses a conditional UPDATE, so two processes
finishing the same handshake cannot both win.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import TokenStorageError
from .models import AuthorizationStatus, Token
from .token_storage import TokenStore, coerce_status

logger = logging.getLogger(__name__)

# SQLAlchemy declarative base for the token table
Base = declarative_base()


class OAuthTokenRecord(Base):
    """Stored OAuth token state for one identity.

    Attributes:
        id: Unique identifier (auto-incrementing integer)
        identity: Owner of the token (unique)
        token: Request or access token key
        secret: Token secret
        status: Authorization status (0-3)
        last_exception: Message of the most recent recorded failure
        created_at: Timestamp when the row was created
        updated_at: Timestamp when the row was last modified
    """

    __tablename__ = "oauth_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity = Column(String, nullable=False, unique=True, index=True)
    token = Column(String, nullable=True)
    secret = Column(String, nullable=True)
    status = Column(Integer, nullable=True)
    last_exception = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<OAuthTokenRecord(id={self.id}, identity={self.identity}, "
            f"status={self.status})>"
        )


def create_session_factory(database_url: str = "sqlite:///:memory:", echo: bool = False) -> sessionmaker:
    """Create an engine and session factory, creating the token table.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log SQL statements

    Returns:
        Configured sessionmaker instance
    """
    kwargs: dict = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}  # Needed for SQLite
        if ":memory:" in database_url:
            kwargs["poolclass"] = StaticPool  # Keep the in-memory database alive
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Token database initialized: {engine.url}")

    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


class SqlAlchemyTokenStore(TokenStore):
    """Token storage in a relational database.

    Every operation runs in its own short session and commits
    immediately, giving read-after-write consistency across processes.
    """

    def __init__(self, session_factory: sessionmaker, identity: str = "default"):
        """Initialize database storage.

        Args:
            session_factory: SQLAlchemy session factory
            identity: Key of the row this store reads and writes
        """
        self.session_factory = session_factory
        self.identity = identity

    def _find(self, db: Session) -> Optional[OAuthTokenRecord]:
        return db.query(OAuthTokenRecord).filter_by(identity=self.identity).first()

    def _ensure_row(self, db: Session) -> OAuthTokenRecord:
        record = self._find(db)
        if record is not None:
            return record

        record = OAuthTokenRecord(identity=self.identity)
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            # created concurrently
            db.rollback()
            return self._find(db)
        return record

    def _get(self, column: str) -> Any:
        try:
            with self.session_factory() as db:
                record = self._find(db)
                return getattr(record, column) if record is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read {column} for {self.identity}: {e}")
            raise TokenStorageError(f"Failed to read token data: {e}") from e

    def _set(self, **values: Any) -> "SqlAlchemyTokenStore":
        try:
            with self.session_factory() as db:
                record = self._ensure_row(db)
                for column, value in values.items():
                    setattr(record, column, value)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to write token data for {self.identity}: {e}")
            raise TokenStorageError(f"Failed to write token data: {e}") from e
        return self

    def get_token(self) -> Optional[str]:
        return self._get("token")

    def set_token(self, token: Optional[str]) -> "SqlAlchemyTokenStore":
        return self._set(token=token)

    def get_secret(self) -> Optional[str]:
        return self._get("secret")

    def set_secret(self, secret: Optional[str]) -> "SqlAlchemyTokenStore":
        return self._set(secret=secret)

    def get_status(self) -> Optional[AuthorizationStatus]:
        return coerce_status(self._get("status"))

    def set_status(self, status: AuthorizationStatus) -> "SqlAlchemyTokenStore":
        return self._set(status=int(status))

    def get_last_exception(self) -> Optional[str]:
        return self._get("last_exception")

    def set_last_exception(self, message: Optional[str]) -> "SqlAlchemyTokenStore":
        return self._set(last_exception=message)

    def save(self, token: Optional[Token], status: AuthorizationStatus) -> "SqlAlchemyTokenStore":
        return self._set(
            token=token.key if token else None,
            secret=token.secret if token else None,
            status=int(status),
        )

    def compare_and_set(
        self,
        expected_status: Optional[AuthorizationStatus],
        expected_token: Optional[str],
        token: Optional[Token],
        status: AuthorizationStatus,
    ) -> bool:
        """Atomic compare-and-set using a conditional UPDATE."""
        conditions = [OAuthTokenRecord.identity == self.identity]
        if expected_status is None:
            conditions.append(OAuthTokenRecord.status.is_(None))
        else:
            conditions.append(OAuthTokenRecord.status == int(expected_status))
        if expected_token is None:
            conditions.append(OAuthTokenRecord.token.is_(None))
        else:
            conditions.append(OAuthTokenRecord.token == expected_token)

        try:
            with self.session_factory() as db:
                self._ensure_row(db)
                result = db.execute(
                    update(OAuthTokenRecord)
                    .where(*conditions)
                    .values(
                        token=token.key if token else None,
                        secret=token.secret if token else None,
                        status=int(status),
                        updated_at=datetime.utcnow(),
                    )
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update token data for {self.identity}: {e}")
            raise TokenStorageError(f"Failed to update token data: {e}") from e

        return result.rowcount == 1
