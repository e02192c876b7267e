"""
Extraction dispatch strategies.

Exactly one strategy is chosen when the application starts: a durable RQ
queue when Redis answers, otherwise detached in-process execution. Neither
blocks the caller that requested processing.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

from .config import SourcesConfig
from .job_queue import BACKOFF_SECONDS, EXTRACTION_ATTEMPTS, RQJobQueue, WorkerConfig
from .worker import ExtractionWorker

logger = logging.getLogger(__name__)


class ExtractionDispatcher:
    name = "abstract"

    def dispatch(self, material_id: str) -> None:
        raise NotImplementedError

    def shutdown(self, wait: bool = True) -> None:
        return None


class QueueExtractionDispatcher(ExtractionDispatcher):
    """Hands each material to the durable queue with bounded retries."""

    name = "queue"

    def __init__(
        self,
        job_queue: RQJobQueue,
        worker_config: WorkerConfig,
        attempts: int = EXTRACTION_ATTEMPTS,
        backoff_seconds: int = BACKOFF_SECONDS,
    ):
        self.job_queue = job_queue
        self.worker_config = worker_config
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds

    def dispatch(self, material_id: str) -> None:
        job = self.job_queue.enqueue_extraction_job(
            material_id,
            self.worker_config,
            attempts=self.attempts,
            backoff_seconds=self.backoff_seconds,
        )
        logger.info("Enqueued extraction job %s for source material %s", getattr(job, "id", None), material_id)


class InlineExtractionDispatcher(ExtractionDispatcher):
    """
    Runs a single attempt on a background thread. Failures are already
    written to the ledger by the worker; here they are only logged, never
    retried and never raised to the original caller.
    """

    name = "inline"

    def __init__(self, worker: ExtractionWorker, executor: Optional[Executor] = None, max_workers: int = 2):
        self.worker = worker
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="extraction")

    def dispatch(self, material_id: str) -> None:
        self.executor.submit(self._run, material_id)
        logger.info("Scheduled inline extraction for source material %s", material_id)

    def _run(self, material_id: str) -> None:
        try:
            self.worker.run(material_id)
        except Exception:  # noqa: BLE001
            logger.exception("Inline extraction failed for source material %s", material_id)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


def build_dispatcher(config: SourcesConfig, worker: ExtractionWorker) -> ExtractionDispatcher:
    if config.redis_url:
        job_queue = RQJobQueue(config.redis_url, queue_name=config.queue_name, job_timeout=config.job_timeout)
        if job_queue.ping():
            logger.info("Using RQ queue %s for source extraction", config.queue_name)
            return QueueExtractionDispatcher(job_queue, WorkerConfig(config.database_url, config.storage_root))
        logger.warning("Redis unreachable at %s; falling back to inline extraction", config.redis_url)
    return InlineExtractionDispatcher(worker, max_workers=config.inline_workers)
