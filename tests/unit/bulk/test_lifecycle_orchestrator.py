"""Tests for BoundedDispatcher and DeviceLifecycleOrchestrator."""

import logging
import threading
from unittest.mock import patch

import pytest

from devicefleet.bulk.barrier import CompletionBarrier
from devicefleet.bulk.batch import BoundedDispatcher, DeviceLifecycleOrchestrator
from devicefleet.bulk.exceptions import CreationFailure, DeletionFailure
from devicefleet.bulk.models import DeviceRecord, IndexRange
from devicefleet.bulk.registry import DeviceRegistry, ProgressCounter
from devicefleet.bulk.scheduler import ProgressReporter, SessionRefresher
from devicefleet.bulk.tokens import encode_token
from devicefleet.rest_clients.client import RestClientError
from devicefleet.utils.config import Config
from tests.fixtures.device_api import FakeDeviceApi, device_id_for


@pytest.fixture
def orchestrator():
    """Orchestrator with a small pool and fast helper cadence."""
    orch = DeviceLifecycleOrchestrator(
        max_workers=4,
        progress_interval=0.05,
        refresh_interval=60.0,
        settle_interval=0.0,
    )
    yield orch
    orch.shutdown()


def _registry_of(*device_ids):
    registry = DeviceRegistry()
    for i, device_id in enumerate(device_ids):
        registry.add(DeviceRecord(device_id=device_id, token=encode_token(i), index=i))
    return registry


class TestBoundedDispatcher:
    """Test BoundedDispatcher."""

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError, match="at least 1"):
            BoundedDispatcher(0)

    def test_every_task_signals_barrier(self):
        """Test that failing and succeeding tasks each signal exactly once."""
        dispatcher = BoundedDispatcher(3)
        barrier = CompletionBarrier(10)

        def failing():
            raise RuntimeError("task failed")

        try:
            for i in range(10):
                dispatcher.submit(failing if i % 2 else (lambda: None), barrier)
            assert barrier.wait(timeout=5) is True
        finally:
            dispatcher.shutdown()

    def test_never_exceeds_pool_size(self):
        """Test that no more than max_workers tasks run at once."""
        dispatcher = BoundedDispatcher(2)
        barrier = CompletionBarrier(8)
        lock = threading.Lock()
        active = [0]
        peak = [0]

        def task():
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            threading.Event().wait(0.02)
            with lock:
                active[0] -= 1

        try:
            for _ in range(8):
                dispatcher.submit(task, barrier)
            assert barrier.wait(timeout=5) is True
        finally:
            dispatcher.shutdown()

        assert peak[0] <= 2

    def test_stopping_helpers_leaves_tasks_running(self):
        """Test that stopping progress and refresh helpers mid-phase never disturbs tasks."""
        dispatcher = BoundedDispatcher(2)
        barrier = CompletionBarrier(6)
        finished = []
        reporter = ProgressReporter(ProgressCounter(), "created", interval=0.01)
        refresher = SessionRefresher(FakeDeviceApi(), interval=0.01)

        def slow_task():
            threading.Event().wait(0.05)
            finished.append(1)

        try:
            reporter.start()
            refresher.start()
            for _ in range(6):
                dispatcher.submit(slow_task, barrier)

            assert reporter.stop() is True
            assert refresher.stop() is True
            assert barrier.count > 0

            assert barrier.wait(timeout=5) is True
        finally:
            dispatcher.shutdown()

        assert len(finished) == 6
        assert not reporter.is_running()
        assert not refresher.is_running()

    def test_shutdown_can_cancel_queued_tasks(self):
        """Test that cancel_pending drops queued tasks but lets the running one finish."""
        dispatcher = BoundedDispatcher(1)
        barrier = CompletionBarrier(4)
        started = threading.Event()
        release = threading.Event()

        def blocking():
            started.set()
            release.wait(timeout=5)

        futures = [dispatcher.submit(blocking, barrier)]
        futures += [dispatcher.submit(lambda: None, barrier) for _ in range(3)]
        assert started.wait(timeout=5)

        dispatcher.shutdown(wait=False, cancel_pending=True)
        release.set()

        assert all(f.cancelled() for f in futures[1:])
        futures[0].result(timeout=5)
        assert dispatcher.is_shutdown

    def test_submit_after_shutdown_signals_and_raises(self):
        dispatcher = BoundedDispatcher(1)
        dispatcher.shutdown()
        barrier = CompletionBarrier(1)

        with pytest.raises(RuntimeError):
            dispatcher.submit(lambda: None, barrier)
        assert barrier.count == 0


class TestCreateAll:
    """Test the create-all phase."""

    def test_creates_every_device(self, orchestrator):
        """Test that each index gets a device named after its token."""
        api = FakeDeviceApi()

        result = orchestrator.create_all(IndexRange(0, 3), api)

        assert (result.succeeded, result.attempted) == (3, 3)
        assert result.operation == "create"
        tokens = [encode_token(i) for i in range(3)]
        assert sorted(orchestrator.registry.tokens()) == tokens
        assert sorted(d.name for d in api.devices.values()) == [f"Device {t}" for t in tokens]
        assert api.credentials == {device_id_for(t): t for t in tokens}
        assert api.login_calls == 1

    def test_credential_failure_cleans_up_device(self, orchestrator, caplog):
        """Test that a device whose credentials fail is deleted and not registered."""
        bad_token = encode_token(1)
        api = FakeDeviceApi(fail_credentials_for=[bad_token])

        with caplog.at_level(logging.ERROR, logger="devicefleet.bulk.batch"):
            result = orchestrator.create_all(IndexRange(0, 3), api)

        assert result.summary == "2/3"
        assert bad_token not in orchestrator.registry.tokens()
        assert api.delete_calls == [device_id_for(bad_token)]
        assert device_id_for(bad_token) not in api.devices

        assert len(result.failures) == 1
        failure = result.failures[0]
        assert isinstance(failure, CreationFailure)
        assert failure.index == 1
        assert failure.device_id == device_id_for(bad_token)
        assert "Failed to create device #1" in caplog.text

    def test_failing_cleanup_is_logged(self, orchestrator, caplog):
        """Test that a failed cleanup delete is logged and the phase still completes."""
        bad_token = encode_token(1)
        api = FakeDeviceApi(
            fail_credentials_for=[bad_token], fail_delete_for=[device_id_for(bad_token)]
        )

        with caplog.at_level(logging.WARNING, logger="devicefleet.bulk.batch"):
            result = orchestrator.create_all(IndexRange(0, 3), api)

        assert result.summary == "2/3"
        assert api.delete_calls == [device_id_for(bad_token)]
        assert bad_token not in orchestrator.registry.tokens()
        assert "Cleanup of partially created device" in caplog.text

    def test_stored_failures_release_tracebacks(self, orchestrator):
        """Test that recorded failures do not keep the worker stack alive."""
        api = FakeDeviceApi(fail_create_for=[encode_token(i) for i in range(5)])

        result = orchestrator.create_all(IndexRange(0, 5), api)

        assert len(result.failures) == 5
        for failure in result.failures:
            assert failure.__traceback__ is None
            assert failure.cause.__traceback__ is None

    def test_recorded_failures_are_capped(self, caplog):
        """Test that failures past the limit are counted but not stored."""
        api = FakeDeviceApi(fail_create_for=[encode_token(i) for i in range(10)])
        orch = DeviceLifecycleOrchestrator(
            max_workers=2, settle_interval=0.0, max_recorded_failures=3
        )
        try:
            with caplog.at_level(logging.WARNING, logger="devicefleet.bulk.batch"):
                result = orch.create_all(IndexRange(0, 10), api)
        finally:
            orch.shutdown()

        assert len(result.failures) == 3
        assert result.failed == 10
        assert "7 failures beyond the first 3 were not kept" in caplog.text

    def test_stack_trace_logged_at_debug(self, orchestrator, caplog):
        api = FakeDeviceApi(fail_create_for=[encode_token(0)])

        with caplog.at_level(logging.DEBUG, logger="devicefleet.bulk.batch"):
            orchestrator.create_all(IndexRange(0, 1), api)

        traced = [r for r in caplog.records if r.levelno == logging.DEBUG and r.exc_info]
        assert len(traced) == 1
        assert traced[0].exc_info[0] is RestClientError
        assert "Stack trace for device #0" in traced[0].getMessage()

    def test_rejected_submit_recorded_as_failure(self, orchestrator):
        """Test that tasks refused by a shut-down pool become failures instead of errors."""
        api = FakeDeviceApi()
        real_submit = orchestrator.dispatcher.submit
        submitted = []

        def submit(body, barrier):
            submitted.append(body)
            if len(submitted) == 3:
                orchestrator.dispatcher.shutdown(wait=False)
            return real_submit(body, barrier)

        with patch.object(orchestrator.dispatcher, "submit", side_effect=submit):
            result = orchestrator.create_all(IndexRange(0, 5), api)

        assert (result.succeeded, result.attempted) == (2, 5)
        assert sorted(f.index for f in result.failures) == [2, 3, 4]
        assert all(isinstance(f.cause, RuntimeError) for f in result.failures)
        assert sorted(orchestrator.registry.tokens()) == [encode_token(0), encode_token(1)]

    def test_create_failure_skips_cleanup(self, orchestrator):
        """Test that nothing is deleted when the create call itself failed."""
        api = FakeDeviceApi(fail_create_for=[encode_token(0)])

        result = orchestrator.create_all(IndexRange(0, 2), api)

        assert result.summary == "1/2"
        assert api.delete_calls == []
        assert result.failures[0].device_id is None

    def test_empty_range(self, orchestrator):
        api = FakeDeviceApi()
        result = orchestrator.create_all(IndexRange(10, 10), api)
        assert (result.succeeded, result.attempted) == (0, 0)
        assert len(orchestrator.registry) == 0

    def test_submits_one_task_per_index(self, orchestrator):
        api = FakeDeviceApi()
        with patch.object(
            orchestrator.dispatcher, "submit", wraps=orchestrator.dispatcher.submit
        ) as submit:
            orchestrator.create_all(IndexRange(5, 25), api)

        assert submit.call_count == 20
        assert len(orchestrator.registry) == 20

    def test_login_failure_dispatches_nothing(self, orchestrator):
        """Test that a failed initial login propagates before any task runs."""
        api = FakeDeviceApi(fail_login_after=0)

        with patch.object(orchestrator.dispatcher, "submit") as submit:
            with pytest.raises(RestClientError, match="login rejected"):
                orchestrator.create_all(IndexRange(0, 3), api)

        submit.assert_not_called()
        assert api.devices == {}

    def test_session_refreshed_during_slow_phase(self):
        """Test that the session is re-authenticated while tasks are still running."""
        api = FakeDeviceApi(call_delay=0.02)
        orch = DeviceLifecycleOrchestrator(
            max_workers=2, progress_interval=0.05, refresh_interval=0.05, settle_interval=0.0
        )
        try:
            result = orch.create_all(IndexRange(0, 20), api)
        finally:
            orch.shutdown()

        assert result.succeeded == 20
        assert api.login_calls >= 2

    def test_refresh_failure_does_not_abort_phase(self):
        api = FakeDeviceApi(call_delay=0.02, fail_login_after=1)
        orch = DeviceLifecycleOrchestrator(
            max_workers=2, progress_interval=0.05, refresh_interval=0.03, settle_interval=0.0
        )
        try:
            result = orch.create_all(IndexRange(0, 10), api)
        finally:
            orch.shutdown()

        assert result.summary == "10/10"
        assert api.login_calls >= 2

    def test_progress_and_summary_logged(self, orchestrator, caplog):
        api = FakeDeviceApi(call_delay=0.05)
        with caplog.at_level(logging.INFO, logger="devicefleet.bulk"):
            orchestrator.create_all(IndexRange(0, 4), api)

        assert "Creating 4 devices..." in caplog.text
        assert "have been created so far..." in caplog.text
        assert "4 devices have been created successfully!" in caplog.text

    def test_custom_name_prefix_and_type(self):
        api = FakeDeviceApi()
        orch = DeviceLifecycleOrchestrator(
            max_workers=2, settle_interval=0.0, device_type="sensor", name_prefix="probe-"
        )
        try:
            orch.create_all(IndexRange(0, 1), api)
        finally:
            orch.shutdown()

        device = api.devices[device_id_for(encode_token(0))]
        assert device.name == f"probe-{encode_token(0)}"
        assert device.type == "sensor"


class TestRemoveAll:
    """Test the remove-all phase."""

    def test_partial_failure_leaves_registry_intact(self, orchestrator, caplog):
        """Test that failed deletions are counted and the registry is unchanged."""
        registry = _registry_of("a", "b", "c", "d", "e")
        api = FakeDeviceApi(fail_delete_for=["b", "d"])

        with caplog.at_level(logging.INFO, logger="devicefleet.bulk"):
            result = orchestrator.remove_all(registry, api)

        assert (result.succeeded, result.attempted) == (3, 5)
        assert result.operation == "remove"
        assert sorted(api.delete_calls) == ["a", "b", "c", "d", "e"]
        assert registry.device_ids() == ["a", "b", "c", "d", "e"]
        assert {f.device_id for f in result.failures} == {"b", "d"}
        assert all(isinstance(f, DeletionFailure) for f in result.failures)
        assert "3 devices have been removed successfully! 2 were failed for removal!" in (
            caplog.text
        )

    def test_empty_registry(self, orchestrator):
        api = FakeDeviceApi()
        result = orchestrator.remove_all(DeviceRegistry(), api)
        assert (result.succeeded, result.attempted) == (0, 0)
        assert api.login_calls == 1

    def test_settle_interval_applied(self):
        orch = DeviceLifecycleOrchestrator(max_workers=1, settle_interval=0.5)
        try:
            with patch("devicefleet.bulk.batch.time.sleep") as sleep:
                orch.remove_all(DeviceRegistry(), FakeDeviceApi())
        finally:
            orch.shutdown()

        sleep.assert_called_once_with(0.5)

    def test_create_then_remove_reuses_pool(self, orchestrator):
        """Test that both phases run on one orchestrator and remove everything created."""
        api = FakeDeviceApi()

        orchestrator.create_all(IndexRange(0, 10), api)
        result = orchestrator.remove_all(orchestrator.registry, api)

        assert result.summary == "10/10"
        assert api.devices == {}
        assert len(orchestrator.registry) == 10

    def test_login_failure_raises(self, orchestrator):
        api = FakeDeviceApi(fail_login_after=0)
        with pytest.raises(RestClientError):
            orchestrator.remove_all(_registry_of("a"), api)
        assert api.delete_calls == []


class TestOrchestratorLifecycle:
    """Test orchestrator construction and shutdown."""

    def test_phase_after_shutdown_raises(self):
        orch = DeviceLifecycleOrchestrator(max_workers=1)
        orch.shutdown()
        with pytest.raises(RuntimeError, match="shut down"):
            orch.create_all(IndexRange(0, 1), FakeDeviceApi())

    def test_context_manager_shuts_down(self):
        with DeviceLifecycleOrchestrator(max_workers=1) as orch:
            pass
        assert orch.dispatcher.is_shutdown

    def test_from_config(self, isolated_config):
        orch = DeviceLifecycleOrchestrator.from_config(Config(), device_type=None, max_workers=3)
        try:
            assert orch.dispatcher.max_workers == 3
            assert orch.progress_interval == 0.05
            assert orch.settle_interval == 0.0
            assert orch.device_type == "default"
            assert orch.name_prefix == "Device "
        finally:
            orch.shutdown()
