"""Bounded-parallel dispatch and phase orchestration for bulk device operations.

This module drives the two phases of a fleet run: creating one device per index
of a range, and removing every device recorded in a registry.

Classes:
    BoundedDispatcher: Fixed-size worker pool whose tasks always signal a barrier
    DeviceLifecycleOrchestrator: Runs create-all and remove-all phases
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from ..utils.config import Config
from .barrier import CompletionBarrier
from .exceptions import CreationFailure, DeletionFailure, FleetError
from .models import DeviceRecord, IndexRange, PhaseResult
from .registry import AppendOnlyLog, DeviceRegistry, ProgressCounter
from .scheduler import ProgressReporter, SessionRefresher
from .tokens import DEFAULT_NAME_PREFIX, device_name, encode_token

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 100
MAX_RECORDED_FAILURES = 1000


class BoundedDispatcher:
    """Fixed-size thread pool for outbound API calls.

    Every submitted task is isolated: an exception inside it is logged and
    swallowed, and the barrier is signalled in a ``finally`` block, so the
    waiting phase always sees exactly one signal per task.
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS):
        """Initialize the dispatcher.

        Args:
            max_workers: Number of worker threads
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="devicefleet-worker"
        )
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(self, body: Callable[[], Any], barrier: CompletionBarrier) -> Future:
        """Schedule a task that signals the barrier exactly once when it ends.

        Raises:
            RuntimeError: If the dispatcher has been shut down. The barrier is
                still signalled for the rejected task.
        """
        try:
            return self._executor.submit(self._run_guarded, body, barrier)
        except RuntimeError:
            barrier.count_down()
            raise

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        """Stop accepting tasks and release the worker threads.

        Args:
            wait: Block until running tasks have finished
            cancel_pending: Drop queued tasks that have not started yet
        """
        if not self._shutdown:
            self._shutdown = True
            self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)

    @staticmethod
    def _run_guarded(body: Callable[[], Any], barrier: CompletionBarrier) -> None:
        try:
            body()
        except Exception as e:
            logger.error(f"Unhandled error in dispatched task: {e}", exc_info=True)
        finally:
            barrier.count_down()


class DeviceLifecycleOrchestrator:
    """Creates and removes a fleet of devices with bounded parallelism.

    The worker pool is created once and reused by every phase until
    shutdown() is called. Progress reporting and session refresh run on
    their own threads for the duration of each phase.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        progress_interval: float = 1.0,
        refresh_interval: float = 600.0,
        settle_interval: float = 1.0,
        device_type: str = "default",
        name_prefix: str = DEFAULT_NAME_PREFIX,
        registry: Optional[DeviceRegistry] = None,
        dispatcher: Optional[BoundedDispatcher] = None,
        max_recorded_failures: int = MAX_RECORDED_FAILURES,
    ):
        """Initialize the orchestrator.

        Args:
            max_workers: Worker pool size for API calls
            progress_interval: Seconds between progress lines
            refresh_interval: Seconds between session re-logins
            settle_interval: Grace period after removal before the final summary
            device_type: Device type passed to the create call
            name_prefix: Prefix of generated device names
            registry: Registry to record created devices in
            dispatcher: Preconstructed dispatcher (overrides max_workers)
            max_recorded_failures: Failures kept per phase; later ones are only counted
        """
        self.progress_interval = progress_interval
        self.refresh_interval = refresh_interval
        self.settle_interval = settle_interval
        self.device_type = device_type
        self.name_prefix = name_prefix
        self.max_recorded_failures = max_recorded_failures
        self.registry = registry if registry is not None else DeviceRegistry()
        self.dispatcher = dispatcher or BoundedDispatcher(max_workers)

    @classmethod
    def from_config(
        cls, config: Optional[Config] = None, **overrides: Any
    ) -> "DeviceLifecycleOrchestrator":
        """Build an orchestrator from the bulk and device configuration sections.

        Args:
            config: Configuration instance. If None, creates a new one.
            **overrides: Constructor arguments that take precedence over config
        """
        config = config or Config()
        bulk_config = config.get_bulk_config()
        device_config = config.get_device_config()

        kwargs = {
            "max_workers": bulk_config["workers"],
            "progress_interval": bulk_config["progress_interval"],
            "refresh_interval": bulk_config["refresh_interval"],
            "settle_interval": bulk_config["settle_interval"],
            "device_type": device_config["type"],
            "name_prefix": device_config["name_prefix"],
        }
        kwargs.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**kwargs)

    def create_all(self, index_range: IndexRange, session: Any) -> PhaseResult:
        """Create one device per index in the range.

        Args:
            index_range: Indices to create devices for
            session: Authenticated API collaborator, normally a DeviceRestClient

        Returns:
            PhaseResult with the created and attempted counts

        Raises:
            AuthenticationError: If the initial login fails; nothing is dispatched
        """
        session.login()
        logger.info(f"Creating {index_range.count} devices...")

        counter = ProgressCounter()
        failures: AppendOnlyLog[FleetError] = AppendOnlyLog(self.max_recorded_failures)

        def dispatch(barrier: CompletionBarrier) -> None:
            for index in index_range:
                try:
                    self.dispatcher.submit(
                        lambda index=index: self._create_one(index, session, counter, failures),
                        barrier,
                    )
                except RuntimeError as e:
                    self._record_failure(failures, CreationFailure(index, e))

        duration = self._run_phase("created", counter, index_range.count, dispatch, session)

        result = PhaseResult(
            operation="create",
            succeeded=counter.value,
            attempted=index_range.count,
            duration=duration,
            failures=self._collected_failures(failures),
        )
        logger.info(f"{result.succeeded} devices have been created successfully!")
        return result

    def remove_all(self, registry: DeviceRegistry, session: Any) -> PhaseResult:
        """Delete every device recorded in the registry.

        The sweep works on a snapshot and never removes entries from the
        registry, whatever the outcome of each deletion.

        Args:
            registry: Devices to delete
            session: Authenticated API collaborator, normally a DeviceRestClient

        Returns:
            PhaseResult with the removed and total counts

        Raises:
            AuthenticationError: If the initial login fails; nothing is dispatched
        """
        session.login()
        records = registry.snapshot()
        logger.info(f"Removing {len(records)} devices...")

        counter = ProgressCounter()
        failures: AppendOnlyLog[FleetError] = AppendOnlyLog(self.max_recorded_failures)

        def dispatch(barrier: CompletionBarrier) -> None:
            for record in records:
                try:
                    self.dispatcher.submit(
                        lambda record=record: self._remove_one(record, session, counter, failures),
                        barrier,
                    )
                except RuntimeError as e:
                    self._record_failure(failures, DeletionFailure(record.device_id, e))

        duration = self._run_phase("removed", counter, len(records), dispatch, session)

        if self.settle_interval > 0:
            time.sleep(self.settle_interval)

        result = PhaseResult(
            operation="remove",
            succeeded=counter.value,
            attempted=len(records),
            duration=duration,
            failures=self._collected_failures(failures),
        )
        logger.info(
            f"{result.succeeded} devices have been removed successfully! "
            f"{result.failed} were failed for removal!"
        )
        return result

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        """Release the worker pool. The orchestrator cannot run phases afterwards.

        Args:
            wait: Block until running tasks have finished
            cancel_pending: Drop queued tasks that have not started yet
        """
        self.dispatcher.shutdown(wait=wait, cancel_pending=cancel_pending)

    def __enter__(self) -> "DeviceLifecycleOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def _run_phase(
        self,
        verb: str,
        counter: ProgressCounter,
        task_count: int,
        dispatch: Callable[[CompletionBarrier], None],
        session: Any,
    ) -> float:
        """Dispatch a phase's tasks and block until every one has signalled.

        Returns:
            Phase duration in seconds
        """
        if self.dispatcher.is_shutdown:
            raise RuntimeError("Orchestrator has been shut down")

        start_time = time.time()
        barrier = CompletionBarrier(task_count)
        reporter = ProgressReporter(counter, verb, interval=self.progress_interval)
        refresher = SessionRefresher(session, interval=self.refresh_interval)

        reporter.start()
        refresher.start()
        try:
            dispatch(barrier)
            barrier.wait()
        finally:
            refresher.stop(timeout=1.0)
            reporter.stop(timeout=1.0)

        return time.time() - start_time

    def _record_failure(self, failures: AppendOnlyLog[FleetError], failure: FleetError) -> None:
        failures.add(failure.release_traceback())

    def _collected_failures(self, failures: AppendOnlyLog[FleetError]) -> List[FleetError]:
        if failures.dropped:
            logger.warning(
                f"{failures.dropped} failures beyond the first {self.max_recorded_failures} "
                "were not kept for the summary (see log output above)"
            )
        return list(failures.snapshot())

    def _create_one(
        self,
        index: int,
        session: Any,
        counter: ProgressCounter,
        failures: AppendOnlyLog[FleetError],
    ) -> None:
        device = None
        try:
            token = encode_token(index)
            device = session.create_device(device_name(index, self.name_prefix), self.device_type)
            session.update_device_credentials(device.id, token)
            self.registry.add(DeviceRecord(device_id=device.id, token=token, index=index))
            counter.increment()
        except Exception as e:
            device_id = getattr(device, "id", None)
            failure = CreationFailure(index, e, device_id=device_id)
            logger.error(f"Error while creating device: {failure}")
            logger.debug(f"Stack trace for device #{index}", exc_info=True)
            self._record_failure(failures, failure)
            if device_id:
                self._cleanup_partial_device(device_id, session)

    def _cleanup_partial_device(self, device_id: str, session: Any) -> None:
        try:
            session.delete_device(device_id)
            logger.debug(f"Removed partially created device {device_id}")
        except Exception as e:
            logger.warning(f"Cleanup of partially created device {device_id} failed: {e}")

    def _remove_one(
        self,
        record: DeviceRecord,
        session: Any,
        counter: ProgressCounter,
        failures: AppendOnlyLog[FleetError],
    ) -> None:
        try:
            session.delete_device(record.device_id)
            counter.increment()
        except Exception as e:
            failure = DeletionFailure(record.device_id, e)
            logger.error(f"Error while deleting device: {failure}")
            logger.debug(f"Stack trace for device {record.device_id}", exc_info=True)
            self._record_failure(failures, failure)
