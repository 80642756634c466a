"""Analysis job tier: persistent store, worker, dispatch and polling."""

from intelgate.jobs.dispatch import Dispatcher, RedisJobQueue, TaskDispatcher
from intelgate.jobs.poller import Poller, PollResult
from intelgate.jobs.store import JobNotFound, JobStore
from intelgate.jobs.worker import JobWorker

__all__ = [
    "Dispatcher",
    "JobNotFound",
    "JobStore",
    "JobWorker",
    "PollResult",
    "Poller",
    "RedisJobQueue",
    "TaskDispatcher",
]
