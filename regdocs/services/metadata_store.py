"""Durable metadata store for ingested documents."""

import asyncio
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import create_engine, delete, func, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import Settings, get_settings
from ..core.errors import DuplicateKeyError, StoreError
from ..core.logging import get_logger
from ..models.document import Category, DocumentRecord
from ..models.ingestion import IngestionEvent
from ..models.tables import Base, DocumentAliasRow, DocumentRow, PendingNotificationRow

logger = get_logger(__name__)

# Keeps IN (...) lists under SQLite's bound parameter limit
_BATCH_SIZE = 400


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for an embedded (SQLite) or networked database."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True, echo=echo, future=True)

    kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=echo, future=True, **kwargs)


class MetadataStore:
    """Single source of truth for whether a document has been ingested.

    Uniqueness of ``source_url`` and ``content_hash`` is enforced by database
    constraints, so concurrent inserts racing on the same document resolve to
    one row and one ``DuplicateKeyError``. Blocking database calls run in
    worker threads.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        engine: Optional[Engine] = None,
    ):
        settings = settings or get_settings()
        self.engine = engine or create_store_engine(
            database_url or settings.database_url,
            echo=settings.database_echo,
        )
        self._sessions = sessionmaker(bind=self.engine, class_=Session, expire_on_commit=False)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except (DuplicateKeyError, StoreError):
            raise
        except SQLAlchemyError as e:
            raise StoreError(f"Metadata store error: {e}") from e

    # Schema

    async def create_schema(self) -> None:
        await self._run(Base.metadata.create_all, self.engine)

    async def ping(self) -> None:
        """Raise ``StoreError`` when the database cannot be reached."""
        def _ping() -> None:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))

        await self._run(_ping)

    async def close(self) -> None:
        await asyncio.to_thread(self.engine.dispose)

    # Existence checks

    async def exists_by_url(self, url: str) -> bool:
        return url in await self.existing_urls([url])

    async def existing_urls(self, urls: Iterable[str]) -> Set[str]:
        """Return which of ``urls`` already belong to a record or an alias."""
        return await self._run(self._existing_urls, list(dict.fromkeys(urls)))

    def _existing_urls(self, urls: List[str]) -> Set[str]:
        found: Set[str] = set()
        with self._sessions() as session:
            for start in range(0, len(urls), _BATCH_SIZE):
                batch = urls[start:start + _BATCH_SIZE]
                stmt = select(DocumentRow.source_url).where(DocumentRow.source_url.in_(batch)).union(
                    select(DocumentAliasRow.source_url).where(DocumentAliasRow.source_url.in_(batch))
                )
                found.update(session.scalars(stmt))
        return found

    async def exists_by_hash(self, content_hash: str) -> Optional[str]:
        """Return the id of the record holding ``content_hash``, if any."""
        return await self._run(self._exists_by_hash, content_hash)

    def _exists_by_hash(self, content_hash: str) -> Optional[str]:
        with self._sessions() as session:
            return session.scalar(
                select(DocumentRow.id).where(DocumentRow.content_hash == content_hash)
            )

    # Records

    async def insert(self, record: DocumentRecord) -> None:
        """Insert ``record`` and its pending notification in one transaction.

        Raises ``DuplicateKeyError`` when the URL or content hash is taken.
        """
        await self._run(self._insert, record)

    def _insert(self, record: DocumentRecord) -> None:
        event = IngestionEvent.from_record(record)
        with self._sessions() as session:
            try:
                with session.begin():
                    aliased = session.scalar(
                        select(DocumentAliasRow.id).where(DocumentAliasRow.source_url == record.source_url)
                    )
                    if aliased is not None:
                        raise DuplicateKeyError("source_url", record.source_url)

                    session.add(self._to_row(record))
                    session.add(PendingNotificationRow(
                        document_id=record.id,
                        payload=event.model_dump_json(),
                        created_at=datetime.now(timezone.utc),
                    ))
            except IntegrityError as e:
                raise self._duplicate_from(e, record) from e

    def _duplicate_from(self, error: IntegrityError, record: DocumentRecord) -> Exception:
        message = str(error.orig).lower()
        if "content_hash" in message:
            return DuplicateKeyError("content_hash", record.content_hash)
        if "source_url" in message:
            return DuplicateKeyError("source_url", record.source_url)
        return StoreError(f"Integrity error inserting {record.source_url}: {error.orig}")

    async def get(self, document_id: str) -> Optional[DocumentRecord]:
        return await self._run(self._get, DocumentRow.id == document_id)

    async def get_by_hash(self, content_hash: str) -> Optional[DocumentRecord]:
        return await self._run(self._get, DocumentRow.content_hash == content_hash)

    async def get_by_url(self, url: str) -> Optional[DocumentRecord]:
        return await self._run(self._get, DocumentRow.source_url == url)

    def _get(self, condition) -> Optional[DocumentRecord]:
        with self._sessions() as session:
            row = session.scalars(select(DocumentRow).where(condition)).first()
            return self._to_record(row) if row is not None else None

    async def count_documents(self) -> int:
        def _count() -> int:
            with self._sessions() as session:
                return session.scalar(select(func.count()).select_from(DocumentRow)) or 0

        return await self._run(_count)

    # Aliases

    async def add_alias(self, source_url: str, document_id: str, content_hash: str) -> bool:
        """Record ``source_url`` as another location of an ingested document.

        Returns False when the URL is already known.
        """
        return await self._run(self._add_alias, source_url, document_id, content_hash)

    def _add_alias(self, source_url: str, document_id: str, content_hash: str) -> bool:
        with self._sessions() as session:
            try:
                with session.begin():
                    owner = session.scalar(
                        select(DocumentRow.id).where(DocumentRow.source_url == source_url)
                    )
                    if owner is not None:
                        return False
                    session.add(DocumentAliasRow(
                        source_url=source_url,
                        document_id=document_id,
                        content_hash=content_hash,
                        created_at=datetime.now(timezone.utc),
                    ))
            except IntegrityError:
                # Another task recorded the same alias first
                return False
        return True

    async def get_alias_target(self, source_url: str) -> Optional[str]:
        def _target() -> Optional[str]:
            with self._sessions() as session:
                return session.scalar(
                    select(DocumentAliasRow.document_id).where(DocumentAliasRow.source_url == source_url)
                )

        return await self._run(_target)

    # Notification outbox

    async def pending_notifications(self, limit: int = 100) -> List[IngestionEvent]:
        """Events persisted with their record but not yet published, oldest first."""
        def _pending() -> List[IngestionEvent]:
            with self._sessions() as session:
                rows = session.scalars(
                    select(PendingNotificationRow)
                    .order_by(PendingNotificationRow.created_at)
                    .limit(limit)
                )
                return [IngestionEvent.model_validate_json(row.payload) for row in rows]

        return await self._run(_pending)

    async def mark_notified(self, document_id: str) -> None:
        def _mark() -> None:
            with self._sessions() as session, session.begin():
                session.execute(
                    delete(PendingNotificationRow).where(PendingNotificationRow.document_id == document_id)
                )

        await self._run(_mark)

    # Mapping

    @staticmethod
    def _to_row(record: DocumentRecord) -> DocumentRow:
        return DocumentRow(
            id=record.id,
            source_url=record.source_url,
            content_hash=record.content_hash,
            hash_version=record.hash_version,
            title=record.title,
            category=record.category.value,
            published_at=record.published_at,
            storage_key=record.storage_key,
            page_count=record.page_count,
            ingested_at=record.ingested_at,
            event=record.event,
            source_name=record.source_name,
        )

    @staticmethod
    def _to_record(row: DocumentRow) -> DocumentRecord:
        return DocumentRecord(
            id=row.id,
            source_url=row.source_url,
            content_hash=row.content_hash,
            hash_version=row.hash_version,
            title=row.title,
            category=Category(row.category),
            published_at=_utc(row.published_at),
            storage_key=row.storage_key,
            page_count=row.page_count,
            ingested_at=_utc(row.ingested_at),
            event=row.event,
            source_name=row.source_name,
        )
