# stepflow/core/scheduler/service.py
from __future__ import annotations
import asyncio
from stepflow.core.errors import ConfigurationError, ErrorCode
from stepflow.core.store.base import WorkflowStore
from stepflow.core.worker.runner import TaskRunner
from stepflow.core.logging import get_logger

logger = get_logger('scheduler')


class Scheduler:
    """
    Polling loop that feeds queued tasks to the task runner, one at a time.

    Responsibilities:
    1. Ensure the store's schema exists
    2. Pick the next queued task (oldest workflow first, then lowest step)
    3. Hand it to the TaskRunner
    4. Sleep for the poll interval, or until asked to stop

    A single scheduler per store is assumed: tasks are not leased, so two
    schedulers polling the same store could run the same task twice.
    """

    def __init__(
        self,
        store: WorkflowStore,
        runner: TaskRunner,
        poll_interval_seconds: float = 5.0,
    ):
        if poll_interval_seconds <= 0:
            raise ConfigurationError(
                message='poll_interval_seconds must be positive',
                code=ErrorCode.CONFIG_INVALID_POLL_INTERVAL,
                notes=[f'got poll_interval_seconds={poll_interval_seconds}'],
                help_text='use a positive number of seconds, e.g. 5',
            )
        self.store = store
        self.runner = runner
        self.poll_interval_seconds = poll_interval_seconds
        self._stop = asyncio.Event()
        self._initialized = False

        logger.info(f'Scheduler initialized, poll_interval={poll_interval_seconds}s')

    async def start(self) -> None:
        """Initialize the store schema. Idempotent."""
        if self._initialized:
            return
        await self.store.ensure_schema_initialized()
        self._initialized = True
        logger.info('Scheduler started')

    async def stop(self) -> None:
        """Clean shutdown of scheduler."""
        self._stop.set()
        await self.store.close()
        logger.info('Scheduler stopped')

    def request_stop(self) -> None:
        """Request scheduler to stop gracefully."""
        self._stop.set()

    async def run_once(self) -> bool:
        """
        Run the next queued task, if any.

        Errors from the store or the job are logged and swallowed; the task's
        failure has already been recorded by the runner.

        Returns:
            True if a task was picked up, False if the queue was empty or the
            store could not be read.
        """
        task = None
        try:
            task = await self.store.claim_next_task()
            if task is None:
                logger.debug('No queued tasks')
                return False
            logger.info(
                f'Executing task {task.id}, type: {task.task_type}, '
                f'step: {task.step_number}, client: {task.client_id}'
            )
            result = await self.runner.run(task)
            logger.info(f'Task {task.id} finished, result: {result.data}')
        except Exception as e:
            if task is None:
                logger.error(f'Error polling for tasks: {e}', exc_info=True)
                return False
            logger.error(f'Task {task.id} failed: {e}')
        return True

    async def run_forever(self) -> None:
        """Main polling loop."""
        logger.info('Starting scheduler loop')

        try:
            await self.start()

            while not self._stop.is_set():
                await self.run_once()

                # Wait for poll interval or stop signal
                try:
                    await asyncio.wait_for(
                        self._stop.wait(),
                        timeout=self.poll_interval_seconds,
                    )
                    break  # Stop signal received
                except asyncio.TimeoutError:
                    continue

        finally:
            await self.stop()

