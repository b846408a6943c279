"""Durable email queue and delivery engine.

Delivery records live in the ``email_logs`` table. A batch selects the
oldest QUEUED records, claims each one with a conditional UPDATE so that
concurrent batches (threads or processes) never send the same record
twice, hands it to the transport under a timeout and records the outcome.

Record lifecycle:
    QUEUED -> SENDING -> SENT
                      -> QUEUED  (failed attempt, retries left)
                      -> FAILED  (retries exhausted, or no content)
    FAILED -> QUEUED             (operator retry)
"""

import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import timedelta
from typing import Callable, Optional, Sequence

from hrnotify.config.models import QueueConfig
from hrnotify.domain.models import EmailLog, EmailStatus, QueuedEmail
from hrnotify.logging import get_logger
from hrnotify.logging.context import log_context
from hrnotify.persistence import EmailLogRepository, PersistenceError, get_session
from hrnotify.utils.timestamps import start_of_utc_day, start_of_week_window, utc_now

from .models import (
    EmailLogFilter,
    EmailLogPage,
    EmailStats,
    MissingContentError,
    QueueProcessResult,
    TransportError,
    TransportTimeoutError,
)
from .transport import Transport, is_valid_address

logger = get_logger(__name__, component="queue")

MISSING_CONTENT_ERROR = "Email content not found"
MAX_PAGE_SIZE = 100

_SENT = "sent"
_FAILED = "failed"
_SKIPPED = "skipped"


class EmailQueue:
    """Enqueues rendered emails and delivers them in batches."""

    def __init__(
        self,
        transport: Transport,
        config: Optional[QueueConfig] = None,
        session_factory: Callable = get_session,
        sleep: Callable[[float], None] = time.sleep,
        send_workers: int = 4,
    ):
        """Initialize the queue.

        Args:
            transport: Mail transport; its lifecycle belongs to the caller
            config: Batch size, retry bound, delays and timeouts
            session_factory: Context manager yielding a database session
            sleep: Sleep function used between sends (injectable for tests)
            send_workers: Threads available for timed transport calls
        """
        self.transport = transport
        self.config = config or QueueConfig()
        self.session_factory = session_factory
        self._sleep = sleep
        self._send_executor = ThreadPoolExecutor(
            max_workers=send_workers, thread_name_prefix="hrnotify-send"
        )

    @property
    def max_retries(self) -> int:
        return self.config.max_retries

    def is_transport_configured(self) -> bool:
        return self.transport.is_configured()

    def enqueue(self, email: QueuedEmail) -> int:
        """Persist a QUEUED delivery record and return its id.

        Raises:
            PersistenceError: If the record cannot be written
        """
        with self.session_factory() as session:
            log = EmailLogRepository(session).create(email)

        logger.info(
            f"Queued {email.type.value} email for {email.recipient_email}",
            extra={
                "event": "queue.enqueued",
                "email_log_id": log.id,
                "notification_type": email.type.value,
            },
        )
        return log.id

    def process_batch(
        self, limit: Optional[int] = None, log_ids: Optional[Sequence[int]] = None
    ) -> QueueProcessResult:
        """Deliver up to ``limit`` queued emails, oldest first.

        Args:
            limit: Maximum records to attempt (defaults to the configured batch size)
            log_ids: Restrict the batch to these records

        Returns:
            Counts of processed, sent, failed and skipped records
        """
        result = QueueProcessResult()
        limit = self.config.batch_size if limit is None else limit
        if limit <= 0 or (log_ids is not None and not log_ids):
            return result

        batch_id = uuid.uuid4().hex[:12]
        with log_context(batch_id=batch_id):
            if not self.transport.is_configured():
                logger.warning(
                    "Mail transport not configured; leaving emails queued",
                    extra={"event": "queue.batch.transport_unconfigured"},
                )
                return result

            try:
                with self.session_factory() as session:
                    candidates = EmailLogRepository(session).select_queued(
                        limit, self.max_retries, log_ids
                    )
            except PersistenceError as e:
                logger.error(
                    f"Could not select queued emails: {e}",
                    extra={"event": "queue.batch.select_failed"},
                )
                return result

            if not candidates:
                logger.debug("No queued emails", extra={"event": "queue.batch.empty"})
                return result

            logger.info(
                f"Processing {len(candidates)} queued emails",
                extra={"event": "queue.batch.started", "candidates": len(candidates)},
            )

            attempted = 0
            for email_log in candidates:
                if attempted and self.config.send_delay_ms:
                    self._sleep(self.config.send_delay_ms / 1000.0)

                outcome = self._process_one(email_log)
                if outcome == _SKIPPED:
                    result.skipped += 1
                    continue

                attempted += 1
                result.processed += 1
                if outcome == _SENT:
                    result.sent += 1
                else:
                    result.failed += 1

            logger.info(
                "Queue batch completed",
                extra={
                    "event": "queue.batch.completed",
                    "processed": result.processed,
                    "sent": result.sent,
                    "failed": result.failed,
                    "skipped": result.skipped,
                },
            )
        return result

    def _process_one(self, email_log: EmailLog) -> str:
        with _record_context(email_log):
            try:
                with self.session_factory() as session:
                    claimed = EmailLogRepository(session).claim(email_log.id, self.max_retries)
            except PersistenceError as e:
                logger.error(
                    f"Could not claim email {email_log.id}: {e}",
                    extra={"event": "queue.claim_failed"},
                )
                return _SKIPPED

            if not claimed:
                logger.debug(
                    "Email already claimed by another worker",
                    extra={"event": "queue.claim_lost"},
                )
                return _SKIPPED

            try:
                _require_content(email_log)
            except MissingContentError as e:
                self._fail_without_retry(email_log, str(e))
                return _FAILED

            if not is_valid_address(email_log.recipient_email):
                self._record_failure(
                    email_log, f"Invalid email address: {email_log.recipient_email}"
                )
                return _FAILED

            timeout = self.config.send_timeout_seconds
            future = self._send_executor.submit(
                self.transport.send_mail,
                email_log.recipient_email,
                email_log.subject,
                email_log.html_body,
            )
            done, _ = wait([future], timeout=timeout)
            if not done:
                self._settle_when_finished(email_log, future, timeout)
                return _FAILED

            error = _send_error(future)
            if error is None:
                self._record_sent(email_log)
                return _SENT

            self._record_failure(email_log, error)
            return _FAILED

    def _settle_when_finished(self, email_log: EmailLog, future: Future, timeout: float) -> None:
        """Record the outcome of a send that outlived its timeout.

        The record stays SENDING until the transport call returns, so one
        claim never has two live sends. A late success marks it SENT; a late
        error counts as a failed attempt.
        """
        message = str(TransportTimeoutError(f"Send timed out after {timeout:g}s"))
        logger.warning(
            f"{message}; outcome will be recorded when the send returns",
            extra={"event": "queue.send_timeout", "timeout_seconds": timeout},
        )

        def settle(finished: Future) -> None:
            with _record_context(email_log):
                error = _send_error(finished)
                if error is None:
                    logger.info(
                        "Timed-out send completed",
                        extra={"event": "queue.send_completed_late"},
                    )
                    self._record_sent(email_log)
                else:
                    self._record_failure(email_log, f"{message}: {error}")

        future.add_done_callback(settle)

    def _record_sent(self, email_log: EmailLog) -> None:
        try:
            with self.session_factory() as session:
                EmailLogRepository(session).mark_sent(email_log.id)
        except PersistenceError as e:
            # Delivered but not recorded; stale recovery will requeue it
            logger.error(
                f"Sent email {email_log.id} but could not record it: {e}",
                extra={"event": "queue.mark_sent_failed"},
            )
            return

        logger.info(
            f"Email sent to {email_log.recipient_email}",
            extra={"event": "queue.sent", "retry_count": email_log.retry_count},
        )

    def _record_failure(self, email_log: EmailLog, error: str) -> None:
        try:
            with self.session_factory() as session:
                status = EmailLogRepository(session).record_failure(
                    email_log.id, error, self.max_retries
                )
        except PersistenceError as e:
            logger.error(
                f"Could not record failure for email {email_log.id}: {e}",
                extra={"event": "queue.record_failure_failed", "error": error},
            )
            return

        if status == EmailStatus.FAILED:
            logger.error(
                f"Email permanently failed after {self.max_retries} attempts: {error}",
                extra={"event": "queue.failed", "retry_count": email_log.retry_count + 1},
            )
        else:
            logger.warning(
                f"Email failed, will retry: {error}",
                extra={"event": "queue.retry_scheduled", "retry_count": email_log.retry_count + 1},
            )

    def _fail_without_retry(self, email_log: EmailLog, error: str) -> None:
        try:
            with self.session_factory() as session:
                EmailLogRepository(session).mark_failed(email_log.id, error)
        except PersistenceError as e:
            logger.error(
                f"Could not mark email {email_log.id} failed: {e}",
                extra={"event": "queue.mark_failed_failed"},
            )
            return

        logger.error(error, extra={"event": "queue.failed_missing_content"})

    def retry(self, log_id: int) -> bool:
        """Requeue a FAILED email with a fresh retry budget.

        Returns:
            False if the record does not exist or is not FAILED
        """
        with self.session_factory() as session:
            reset = EmailLogRepository(session).reset_failed(log_id)

        logger.info(
            f"Manual retry of email {log_id} {'accepted' if reset else 'rejected'}",
            extra={"event": "queue.manual_retry", "email_log_id": log_id, "accepted": reset},
        )
        return reset

    def requeue_stale(self, older_than: Optional[timedelta] = None) -> int:
        """Return emails stuck in SENDING back to QUEUED.

        A record stays SENDING only while a worker holds it; one older than
        ``older_than`` belongs to a worker that died mid-send.
        """
        if older_than is None:
            older_than = timedelta(seconds=self.config.stale_sending_after_seconds)

        with self.session_factory() as session:
            count = EmailLogRepository(session).requeue_stale(utc_now() - older_than)

        if count:
            logger.warning(
                f"Requeued {count} emails abandoned in SENDING",
                extra={"event": "queue.stale_requeued", "count": count},
            )
        return count

    def get_log(self, log_id: int) -> Optional[EmailLog]:
        with self.session_factory() as session:
            return EmailLogRepository(session).get(log_id)

    def list_logs(
        self,
        filters: Optional[EmailLogFilter] = None,
        page: int = 1,
        limit: int = 20,
    ) -> EmailLogPage:
        """Filtered page of delivery records, newest first."""
        filters = filters or EmailLogFilter()
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        with self.session_factory() as session:
            logs, total = EmailLogRepository(session).list_logs(
                status=filters.status,
                notification_type=filters.type,
                recipient_email=filters.recipient_email,
                start_date=filters.start_date,
                end_date=filters.end_date,
                page=page,
                limit=limit,
            )
        return EmailLogPage(logs=logs, total=total, page=page, limit=limit)

    def get_stats(self) -> EmailStats:
        today = start_of_utc_day()
        week = start_of_week_window()

        with self.session_factory() as session:
            repo = EmailLogRepository(session)
            counts = repo.count_by_status()
            return EmailStats(
                total=sum(counts.values()),
                queued=counts[EmailStatus.QUEUED],
                sending=counts[EmailStatus.SENDING],
                sent=counts[EmailStatus.SENT],
                failed=counts[EmailStatus.FAILED],
                today_sent=repo.count_sent_since(today),
                today_failed=repo.count_failed_since(today),
                week_sent=repo.count_sent_since(week),
                week_failed=repo.count_failed_since(week),
            )

    def pending_count(self) -> int:
        with self.session_factory() as session:
            return EmailLogRepository(session).pending_count()

    def shutdown(self) -> None:
        self._send_executor.shutdown(wait=False)


def _record_context(email_log: EmailLog) -> log_context:
    return log_context(
        email_log_id=email_log.id,
        notification_type=email_log.type.value,
        priority=email_log.priority.value,
    )


def _require_content(email_log: EmailLog) -> None:
    if not email_log.has_content:
        raise MissingContentError(MISSING_CONTENT_ERROR)


def _send_error(future: Future) -> Optional[str]:
    """Error message of a finished send, or None if it succeeded."""
    error = future.exception()
    if error is None:
        return None
    if isinstance(error, TransportError):
        return str(error) or type(error).__name__

    logger.error(
        f"Unexpected transport failure: {error}",
        exc_info=error,
        extra={"event": "queue.send_unexpected_error"},
    )
    return f"Unexpected error: {error}"
