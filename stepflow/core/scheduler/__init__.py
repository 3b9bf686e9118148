# stepflow/core/scheduler/__init__.py
"""
Scheduler module for executing queued workflow tasks.

Example usage:
    from stepflow.core.scheduler import Scheduler

    scheduler = Scheduler(store, runner, poll_interval_seconds=5)
    await scheduler.run_forever()
"""

from stepflow.core.scheduler.service import Scheduler

__all__ = [
    'Scheduler',
]
