"""Orchestrates discovery, download, upload, persistence and notification."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional
from uuid import uuid4

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..core.config import Settings, get_settings
from ..core.errors import (
    DuplicateKeyError,
    FetchError,
    RenderError,
    StoreError,
    UploadError,
    is_transient,
)
from ..core.hashing import ContentHasher
from ..core.logging import DocumentLogger, get_logger
from ..core.registry import SourceRegistry
from ..core.storage import (
    BINARY_CONTENT_TYPE,
    PAGE_CONTENT_TYPE,
    PDF_CONTENT_TYPE,
    ObjectUploader,
    document_storage_key,
    page_storage_key,
)
from ..fetchers import DocumentFetcher, ListingFetcher
from ..models.document import DocumentRecord, DocumentReference, RenderedPage
from ..models.ingestion import (
    CycleResult,
    DocumentOutcome,
    DocumentState,
    FailureStage,
    IngestionEvent,
    ListingResult,
)
from ..models.source import ListingSource
from ..parsers import DocumentRenderer, ListingParser
from .dedup_index import DedupIndex
from .metadata_store import MetadataStore
from .notification_emitter import InngestNotificationEmitter, NotificationEmitter

logger = get_logger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient error, retrying",
        operation=getattr(retry_state.fn, "__qualname__", str(retry_state.fn)),
        attempt=retry_state.attempt_number,
        error=str(error),
    )


class IngestionPipeline:
    """Runs the per-document state machine over every active listing source.

    Documents from one listing are dispatched in page order onto a bounded
    pool of tasks. The metadata store's unique constraints are the only
    synchronization between tasks; every per-document failure is confined to
    that document's outcome.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[MetadataStore] = None,
        registry: Optional[SourceRegistry] = None,
        listing_fetcher: Optional[ListingFetcher] = None,
        document_fetcher: Optional[DocumentFetcher] = None,
        parser: Optional[ListingParser] = None,
        renderer: Optional[DocumentRenderer] = None,
        uploader: Optional[ObjectUploader] = None,
        emitter: Optional[NotificationEmitter] = None,
        hasher: Optional[ContentHasher] = None,
    ):
        self.settings = settings or get_settings()
        self._owned: List[Any] = []

        self.store = store or self._own(MetadataStore(settings=self.settings))
        self.registry = registry or SourceRegistry(settings=self.settings)
        self.listing_fetcher = listing_fetcher or self._own(ListingFetcher(self.settings))
        self.document_fetcher = document_fetcher or self._own(DocumentFetcher(self.settings))
        self.parser = parser or ListingParser()
        self.renderer = renderer or DocumentRenderer(self.settings)
        self.uploader = uploader or self._own(ObjectUploader(self.settings))
        self.emitter = emitter or InngestNotificationEmitter(settings=self.settings)
        self.hasher = hasher or ContentHasher()
        self.dedup = DedupIndex(self.store)

        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_documents)
        self._stop_event = asyncio.Event()
        self._shutdown_event: Optional[asyncio.Event] = None
        self._schema_ready = False

    def _own(self, component):
        self._owned.append(component)
        return component

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Release the clients and connections this pipeline created."""
        for component in reversed(self._owned):
            await component.close()
        self._owned.clear()

    async def _retry(
        self,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
        max_retries: Optional[int] = None,
    ) -> Any:
        retries = self.settings.max_retries if max_retries is None else max_retries
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(
                multiplier=self.settings.retry_backoff,
                max=self.settings.retry_backoff_max,
            ),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(operation, *args)

    def _stopping(self) -> bool:
        if self._shutdown_event is not None and self._shutdown_event.is_set():
            return True
        return self._stop_event.is_set()

    async def _ensure_schema(self) -> None:
        """Create any missing tables on first use."""
        if not self._schema_ready:
            await self.store.create_schema()
            self._schema_ready = True

    # Cycle

    async def run_cycle(
        self,
        stop_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> CycleResult:
        """Run one discovery cycle across all active listing sources.

        Setting ``stop_event`` (or reaching ``timeout``) stops new work from
        starting; documents already uploaded still finish persisting.
        """
        cycle = CycleResult()
        # The timer only ends this cycle; the caller's event stays untouched
        self._stop_event = asyncio.Event()
        self._shutdown_event = stop_event

        timeout = timeout if timeout is not None else self.settings.run_timeout
        timer = None
        if timeout:
            timer = asyncio.get_running_loop().call_later(timeout, self._stop_event.set)

        logger.info("Starting ingestion cycle", cycle_id=str(cycle.cycle_id))

        try:
            await self._ensure_schema()
            cycle.redelivered = await self.redeliver_pending()

            for source in self.registry.list_sources(active_only=True):
                if self._stopping():
                    logger.info("Stop requested, skipping remaining sources", source_name=source.name)
                    break
                cycle.listings.append(await self.process_listing(source))

        except StoreError as e:
            cycle.aborted = True
            cycle.error_message = str(e)
            logger.error(
                "Metadata store unavailable, aborting cycle",
                cycle_id=str(cycle.cycle_id),
                error=str(e),
            )
        finally:
            if timer is not None:
                timer.cancel()
            cycle.completed_at = datetime.now(timezone.utc)

        logger.info("Ingestion cycle completed", **cycle.summary())
        return cycle

    async def redeliver_pending(self) -> int:
        """Publish events left in the outbox by earlier runs.

        Returns the number delivered. Raises ``StoreError`` when the outbox
        cannot be read.
        """
        events = await self.store.pending_notifications()
        if not events:
            return 0

        logger.info("Redelivering pending notifications", pending=len(events))
        delivered = 0
        for event in events:
            doc_logger = DocumentLogger(event.source_url or event.document_id, event.source_name)
            doc_logger.bind(document_id=event.document_id)
            if await self._notify(event, doc_logger):
                delivered += 1
        return delivered

    # Listing

    async def process_listing(self, source: ListingSource) -> ListingResult:
        """Discover, pre-filter and process the documents of one listing page.

        Raises ``StoreError`` when the pre-filter cannot reach the store.
        """
        result = ListingResult(source_name=source.name)
        log = logger.bind(source_name=source.name, listing_url=source.url)

        try:
            html = await self._retry(self.listing_fetcher.fetch, source)
        except FetchError as e:
            result.error_message = str(e)
            log.error("Listing fetch failed", error=str(e))
            return result

        listing = self.parser.parse(html, source.url, source)
        references = listing.references()
        result.discovered = len(references)
        result.parse_skipped = listing.skipped

        filtered = await self.dedup.filter_new(references)
        result.known = filtered.known
        result.repeated = filtered.repeated

        log.info(
            "Discovered documents",
            discovered=result.discovered,
            parse_skipped=result.parse_skipped,
            new=len(filtered.new),
            known=result.known,
        )

        tasks = []
        for position, reference in enumerate(filtered.new):
            await self._semaphore.acquire()
            if self._stopping():
                self._semaphore.release()
                result.deferred = len(filtered.new) - position
                log.info("Stop requested, deferring remaining documents", deferred=result.deferred)
                break

            task = asyncio.create_task(self._guarded(reference))
            task.add_done_callback(lambda _: self._semaphore.release())
            tasks.append(task)

        result.outcomes = list(await asyncio.gather(*tasks))
        return result

    async def _guarded(self, reference: DocumentReference) -> DocumentOutcome:
        try:
            return await self.process_document(reference)
        except Exception as e:
            logger.exception(
                "Unexpected error processing document",
                source_url=reference.source_url,
                outcome="failed",
            )
            return DocumentOutcome(reference=reference, state=DocumentState.FAILED, reason=str(e))

    # Document

    async def process_document(self, reference: DocumentReference) -> DocumentOutcome:
        """Drive one pre-filtered reference to a terminal state."""
        doc_logger = DocumentLogger(reference.source_url, reference.source_name)
        doc_logger.debug("Processing document", state=DocumentState.PRE_FILTERED_NEW.value, title=reference.title)

        if self._stopping():
            return self._failed(reference, FailureStage.DOWNLOAD, "stop requested before download", doc_logger)

        try:
            payload = await self._retry(self.document_fetcher.fetch, reference.source_url)
        except FetchError as e:
            return self._failed(reference, FailureStage.DOWNLOAD, str(e), doc_logger)

        content_hash = self.hasher.digest(payload)
        doc_logger.bind(content_hash=content_hash)
        doc_logger.debug("Document downloaded", state=DocumentState.DOWNLOADED.value, size=len(payload))

        try:
            existing_id = await self.store.exists_by_hash(content_hash)
        except StoreError as e:
            return self._failed(reference, FailureStage.CONTENT_CHECK, str(e), doc_logger, content_hash)

        if existing_id is not None:
            await self._record_alias(reference, existing_id, content_hash, doc_logger)
            return self._skipped(reference, content_hash, existing_id, "content_hash", doc_logger)

        document_id = str(uuid4())
        doc_logger.bind(document_id=document_id)
        doc_logger.debug("Content is new", state=DocumentState.CONTENT_CHECKED.value)

        storage_key = document_storage_key(content_hash, self.settings.s3_key_prefix)
        images = await self._render(payload, doc_logger)
        pages = [
            RenderedPage(
                document_id=document_id,
                page_index=index,
                storage_key=page_storage_key(storage_key, index),
            )
            for index in range(len(images))
        ]

        if self._stopping():
            return self._failed(reference, FailureStage.UPLOAD, "stop requested before upload", doc_logger, content_hash)

        content_type = PDF_CONTENT_TYPE if self.renderer.can_render(payload) else BINARY_CONTENT_TYPE
        try:
            await self._retry(self.uploader.put, storage_key, payload, content_type)
            for page, image in zip(pages, images):
                await self._retry(self.uploader.put, page.storage_key, image, PAGE_CONTENT_TYPE)
        except UploadError as e:
            return self._failed(reference, FailureStage.UPLOAD, str(e), doc_logger, content_hash)

        doc_logger.debug("Document uploaded", state=DocumentState.UPLOADED.value, pages=len(pages))

        record = DocumentRecord.from_reference(
            reference,
            document_id=document_id,
            content_hash=content_hash,
            storage_key=storage_key,
            page_count=len(pages),
        )

        try:
            await self.store.insert(record)
        except DuplicateKeyError as e:
            return await self._lost_race(reference, content_hash, e, doc_logger)
        except StoreError as e:
            return self._failed(reference, FailureStage.PERSIST, str(e), doc_logger, content_hash)

        doc_logger.info(
            "Document persisted",
            state=DocumentState.PERSISTED.value,
            storage_key=storage_key,
            page_count=record.page_count,
            category=record.category.value,
        )

        notified = await self._notify(IngestionEvent.from_record(record), doc_logger)
        state = DocumentState.NOTIFIED if notified else DocumentState.PERSISTED
        return DocumentOutcome(
            reference=reference,
            state=state,
            stage=None if notified else FailureStage.NOTIFY,
            reason=None if notified else "notification not delivered",
            document_id=document_id,
            content_hash=content_hash,
            page_count=record.page_count,
        )

    async def _render(self, payload: bytes, doc_logger: DocumentLogger) -> List[bytes]:
        try:
            return await asyncio.to_thread(self.renderer.render, payload)
        except RenderError as e:
            doc_logger.warning(
                "Rendering failed, storing original only",
                kind=e.kind.value,
                error=str(e),
                page_count=0,
            )
            return []

    async def _notify(self, event: IngestionEvent, doc_logger: DocumentLogger) -> bool:
        try:
            await self._retry(
                self.emitter.publish,
                event,
                max_retries=self.settings.notify_max_retries,
            )
        except Exception as e:
            # The record is already persisted; its outbox row stays for redelivery
            doc_logger.error(
                "Notification not delivered, kept for redelivery",
                outcome="persisted",
                stage=FailureStage.NOTIFY.value,
                error=str(e),
            )
            return False

        try:
            await self.store.mark_notified(event.document_id)
        except StoreError as e:
            # The channel collapses the redelivery by event id
            doc_logger.warning("Could not clear pending notification", error=str(e))

        doc_logger.info("Document notified", state=DocumentState.NOTIFIED.value, outcome="notified")
        return True

    async def _lost_race(
        self,
        reference: DocumentReference,
        content_hash: str,
        error: DuplicateKeyError,
        doc_logger: DocumentLogger,
    ) -> DocumentOutcome:
        existing_id = None
        if error.field == "content_hash":
            try:
                existing_id = await self.store.exists_by_hash(content_hash)
            except StoreError as e:
                doc_logger.warning("Could not resolve duplicate record", error=str(e))
            if existing_id is not None:
                await self._record_alias(reference, existing_id, content_hash, doc_logger)
        return self._skipped(reference, content_hash, existing_id, error.field, doc_logger)

    async def _record_alias(
        self,
        reference: DocumentReference,
        document_id: str,
        content_hash: str,
        doc_logger: DocumentLogger,
    ) -> None:
        try:
            added = await self.store.add_alias(reference.source_url, document_id, content_hash)
        except StoreError as e:
            doc_logger.warning("Could not record alias", duplicate_of=document_id, error=str(e))
            return
        if added:
            doc_logger.debug("Recorded alias", duplicate_of=document_id)

    def _skipped(
        self,
        reference: DocumentReference,
        content_hash: str,
        duplicate_of: Optional[str],
        reason: str,
        doc_logger: DocumentLogger,
    ) -> DocumentOutcome:
        doc_logger.info(
            "Skipping duplicate document",
            outcome=DocumentState.SKIPPED_DUPLICATE.value,
            duplicate_key=reason,
            duplicate_of=duplicate_of,
        )
        return DocumentOutcome(
            reference=reference,
            state=DocumentState.SKIPPED_DUPLICATE,
            reason=f"duplicate {reason}",
            content_hash=content_hash,
            duplicate_of=duplicate_of,
        )

    def _failed(
        self,
        reference: DocumentReference,
        stage: FailureStage,
        reason: str,
        doc_logger: DocumentLogger,
        content_hash: Optional[str] = None,
    ) -> DocumentOutcome:
        doc_logger.error(
            "Document ingestion failed",
            outcome=DocumentState.FAILED.value,
            stage=stage.value,
            error=reason,
        )
        return DocumentOutcome(
            reference=reference,
            state=DocumentState.FAILED,
            stage=stage,
            reason=reason,
            content_hash=content_hash,
        )
