import logging
import os
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, delete, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import codec
from .errors import MessageNotFound, StorageError
from .models import Base, Message


logger = logging.getLogger("otm")

DEFAULT_TTL = timedelta(hours=24)
ID_ATTEMPTS = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    # fixed width so that string order == time order
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def new_message_id() -> str:
    return secrets.token_hex(16)


def _engine_kwargs(url: str, timeout: float) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}
    return {"pool_timeout": timeout, "pool_pre_ping": True}


@dataclass(frozen=True)
class ConsumedMessage:
    id: str
    message: str
    key: bytes
    created_at: str
    expires_at: str


class MessageStore:
    """
    Owns the database engine and every read/write of one-time messages.

    A message can be consumed at most once: `consume` reads the row and
    then deletes it with a conditional DELETE, and only the caller whose
    DELETE removed the row gets the message back.
    """

    def __init__(
        self,
        database_url: str,
        *,
        ttl: timedelta = DEFAULT_TTL,
        timeout: float = 5.0,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_message_id,
    ) -> None:
        self.database_url = database_url
        self.ttl = ttl
        self.clock = clock
        self.id_factory = id_factory
        # keep message bodies and keys out of error messages
        self.engine = create_engine(
            database_url, hide_parameters=True, **_engine_kwargs(database_url, timeout)
        )
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self._sessions()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(str(exc)) from exc
        finally:
            db.close()

    def init_schema(self) -> None:
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            parent = os.path.dirname(os.path.abspath(url.database))
            os.makedirs(parent, exist_ok=True)
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    def close(self) -> None:
        self.engine.dispose()

    def ping(self) -> None:
        with self.session() as db:
            db.execute(text("SELECT 1"))

    def create(
        self,
        plaintext: str,
        *,
        writer_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """
        Store a new message and return its id.

        Ids are random; a collision with a live record is retried with a
        fresh id up to ID_ATTEMPTS times.
        """
        ciphertext, key = codec.encode_text(plaintext)
        created = self.clock()
        created_at = to_iso(created)
        expires_at = to_iso(created + self.ttl)

        with self.session() as db:
            for _ in range(ID_ATTEMPTS):
                message_id = self.id_factory()
                db.add(
                    Message(
                        id=message_id,
                        ciphertext=ciphertext,
                        key=key,
                        created_at=created_at,
                        expires_at=expires_at,
                        writer_address=writer_address,
                        user_agent=user_agent,
                    )
                )
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    logger.warning("message id collision, retrying")
                    continue
                return message_id

        raise StorageError(f"could not allocate a unique id after {ID_ATTEMPTS} attempts")

    def consume(self, message_id: str) -> ConsumedMessage:
        """Read and destroy a message. Raises MessageNotFound."""
        now = to_iso(self.clock())
        with self.session() as db:
            row = db.execute(
                select(Message.ciphertext, Message.key, Message.created_at, Message.expires_at)
                .where(Message.id == message_id)
            ).first()
            if row is None:
                raise MessageNotFound(message_id)

            deleted = db.execute(delete(Message).where(Message.id == message_id)).rowcount
            db.commit()

        # someone else deleted it between our read and our delete
        if deleted != 1:
            raise MessageNotFound(message_id)
        if row.expires_at < now:
            raise MessageNotFound(message_id)

        return ConsumedMessage(
            id=message_id,
            message=codec.decode_text(row.ciphertext, row.key),
            key=row.key,
            created_at=row.created_at,
            expires_at=row.expires_at,
        )

    def fetch_and_consume(self, message_id: str) -> str:
        return self.consume(message_id).message

    def exists(self, message_id: str) -> bool:
        now = to_iso(self.clock())
        with self.session() as db:
            found = db.execute(
                select(Message.id).where(
                    Message.id == message_id,
                    Message.expires_at >= now,
                )
            ).first()
        return found is not None

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every message with expires_at < now. Returns the count."""
        cutoff = to_iso(now if now is not None else self.clock())
        with self.session() as db:
            purged = db.execute(delete(Message).where(Message.expires_at < cutoff)).rowcount or 0
            db.commit()
        if purged:
            logger.info("purged %d expired message(s)", purged)
        return purged
