"""Concurrent batches must never deliver the same record twice."""

import threading
from collections import Counter

from hrnotify.config.models import QueueConfig
from hrnotify.domain.models import EmailStatus
from hrnotify.notifications.queue import EmailQueue
from hrnotify.persistence import EmailLogRepository, get_session

from tests.helpers import RecordingTransport, queued_email

BACKLOG = 20


def test_two_workers_deliver_each_record_once(database):
    """Test two queues draining one backlog in parallel send every email exactly once."""
    transport = RecordingTransport(delay=0.01)
    config = QueueConfig(send_delay_ms=0, batch_size=BACKLOG)
    queues = [EmailQueue(transport, config=config) for _ in range(2)]

    for i in range(BACKLOG):
        queues[0].enqueue(queued_email(recipient_email=f"user{i}@example.com"))

    barrier = threading.Barrier(len(queues))
    results = []
    results_lock = threading.Lock()

    def worker(email_queue):
        barrier.wait()
        result = email_queue.process_batch()
        with results_lock:
            results.append(result)

    threads = [threading.Thread(target=worker, args=(q,)) for q in queues]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    sends = Counter(transport.recipients)
    assert len(sends) == BACKLOG
    assert all(count == 1 for count in sends.values())

    assert sum(r.sent for r in results) == BACKLOG
    assert sum(r.processed for r in results) == BACKLOG

    with get_session() as session:
        counts = EmailLogRepository(session).count_by_status()
    assert counts[EmailStatus.SENT] == BACKLOG
    assert counts[EmailStatus.SENDING] == 0

    for email_queue in queues:
        email_queue.shutdown()


def test_claim_succeeds_for_exactly_one_caller(database):
    """Test the conditional claim update lands for only the first caller."""
    email_queue = EmailQueue(RecordingTransport(), config=QueueConfig(send_delay_ms=0))
    log_id = email_queue.enqueue(queued_email())

    with get_session() as session:
        first = EmailLogRepository(session).claim(log_id, max_retries=3)
    with get_session() as session:
        second = EmailLogRepository(session).claim(log_id, max_retries=3)

    assert first is True
    assert second is False
    email_queue.shutdown()
