"""Tests for the delivery worker tick."""

import threading
from unittest.mock import Mock

from hrnotify.domain.models import EmailStatus
from hrnotify.notifications.models import QueueProcessResult
from hrnotify.persistence import PersistenceError
from hrnotify.scheduler import DeliveryWorker

from tests.helpers import queued_email


def mock_queue(batch=None):
    queue = Mock()
    queue.requeue_stale.return_value = 0
    queue.process_batch.return_value = batch or QueueProcessResult()
    return queue


class TestDeliveryWorker:
    """Tests for DeliveryWorker.run_once."""

    def test_recovers_stale_claims_before_processing(self):
        """Test stale claims are requeued before the batch is drained."""
        queue = mock_queue()
        order = []
        queue.requeue_stale.side_effect = lambda: order.append("requeue") or 1
        queue.process_batch.side_effect = lambda size: order.append("batch") or QueueProcessResult(
            processed=2, sent=2
        )

        result = DeliveryWorker(queue, batch_size=5).run_once()

        assert order == ["requeue", "batch"]
        queue.process_batch.assert_called_once_with(5)
        assert result.requeued == 1
        assert result.batch.sent == 2
        assert result.error is None
        assert result.skipped is False
        assert result.finished_at >= result.started_at

    def test_requeue_failure_does_not_block_batch(self):
        """Test a database error during recovery still lets the batch run."""
        queue = mock_queue()
        queue.requeue_stale.side_effect = PersistenceError("locked")

        result = DeliveryWorker(queue).run_once()

        queue.process_batch.assert_called_once_with(None)
        assert result.requeued == 0
        assert result.error is None

    def test_batch_exception_is_captured(self):
        """Test an unexpected error is recorded instead of propagating."""
        queue = mock_queue()
        queue.process_batch.side_effect = RuntimeError("disk full")

        result = DeliveryWorker(queue).run_once()

        assert result.error == "disk full"
        assert result.batch.processed == 0

    def test_overlapping_run_is_skipped(self):
        """Test a tick that starts during another tick returns immediately."""
        started = threading.Event()
        release = threading.Event()
        queue = mock_queue()

        def slow_batch(size):
            started.set()
            release.wait(timeout=5)
            return QueueProcessResult()

        queue.process_batch.side_effect = slow_batch
        worker = DeliveryWorker(queue)

        thread = threading.Thread(target=worker.run_once)
        thread.start()
        try:
            assert started.wait(timeout=5)
            result = worker.run_once()
        finally:
            release.set()
            thread.join(timeout=5)

        assert result.skipped is True
        assert queue.process_batch.call_count == 1

    def test_lock_released_after_run(self):
        """Test consecutive runs both execute."""
        queue = mock_queue()
        worker = DeliveryWorker(queue)

        worker.run_once()
        second = worker.run_once()

        assert second.skipped is False
        assert queue.process_batch.call_count == 2

    def test_run_against_real_queue(self, queue, transport):
        """Test a tick delivers queued emails end to end."""
        log_id = queue.enqueue(queued_email())

        result = DeliveryWorker(queue).run_once()

        assert result.batch.sent == 1
        assert transport.recipients == ["jane@example.com"]
        assert queue.get_log(log_id).status == EmailStatus.SENT
