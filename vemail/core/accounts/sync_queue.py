"""Background queue for best-effort cloud account sync.

Account mutations are synchronous and local; the matching cloud write is
submitted here and runs later on a single worker task. Submitting never
blocks and never raises. A job that still fails after the retry policy is
exhausted is logged and dropped; the next mutation re-syncs anyway.

Usage Examples
--------------

    >>> queue = CloudSyncQueue(RetryPolicy(max_attempts=3))
    >>> queue.submit("push account 42", partial(cloud.push, user, account, None))
    >>> await queue.drain()   # wait until everything submitted so far ran
    >>> await queue.stop()
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from vemail.utils.errors import ErrorHandler
from vemail.utils.logging import get_logger, log_event

logger = get_logger(__name__)

SyncCall = Callable[[], Awaitable[bool]]


@dataclass
class RetryPolicy:
    """How often, and how patiently, a failed sync job is retried.

    The default of a single attempt is plain fire-and-forget.
    """

    max_attempts: int = 1
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        return min(self.backoff_seconds * 2 ** (attempt - 1), self.max_backoff_seconds)


@dataclass
class SyncJob:
    description: str
    run: SyncCall
    attempts: int = 0


@dataclass
class SyncStats:
    submitted: int = 0
    succeeded: int = 0
    retried: int = 0
    dropped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(vars(self))


@dataclass
class CloudSyncQueue:
    """Single-worker FIFO of cloud sync jobs."""

    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self):
        self._queue: asyncio.Queue[SyncJob] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.stats = SyncStats()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, description: str, run: SyncCall) -> None:
        """Queue a job; returns immediately."""
        self._queue.put_nowait(SyncJob(description, run))
        self.stats.submitted += 1
        logger.debug(f"Queued cloud sync job: {description} ({self.pending} pending)")

    async def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="vemail-cloud-sync")
            logger.debug("Cloud sync worker started")

    async def drain(self) -> None:
        """Wait until every job submitted so far has finished or been dropped."""
        await self.start()
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        if drain:
            await self.drain()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
            logger.debug("Cloud sync worker stopped")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._execute(job)
            finally:
                self._queue.task_done()

    async def _execute(self, job: SyncJob) -> None:
        policy = self.retry_policy

        while job.attempts < policy.max_attempts:
            job.attempts += 1

            try:
                ok = await job.run()
            except Exception as e:
                ErrorHandler.handle(e, f"Cloud sync job '{job.description}'", log_traceback=False)
                ok = False

            if ok:
                self.stats.succeeded += 1
                return

            if job.attempts < policy.max_attempts:
                delay = policy.delay_for(job.attempts)
                self.stats.retried += 1
                logger.info(
                    f"Retrying cloud sync job '{job.description}' in {delay:.1f}s",
                    extra={"attempt": job.attempts, "max_attempts": policy.max_attempts},
                )
                await self.sleep(delay)

        self.stats.dropped += 1
        log_event(
            "cloud_sync_dropped",
            f"Dropped cloud sync job '{job.description}' after {job.attempts} attempt(s)",
            attempts=job.attempts,
        )
