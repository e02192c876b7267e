from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry, Worker, get_current_job

from .db import create_db_engine
from .extractors import ExtractorRegistry
from .ledger import MaterialLedger
from .repository import SqlAlchemyMaterialRepository
from .storage import LocalObjectStorage, StoragePaths
from .worker import ExtractionWorker

logger = logging.getLogger(__name__)

EXTRACTION_ATTEMPTS = 3
BACKOFF_SECONDS = 1


@dataclass
class WorkerConfig:
    database_url: str
    storage_root: str


def backoff_intervals(attempts: int = EXTRACTION_ATTEMPTS, base_seconds: int = BACKOFF_SECONDS) -> List[int]:
    """Exponential delays between attempts: 1s, 2s, 4s, ..."""
    return [base_seconds * 2**i for i in range(max(0, attempts - 1))]


def is_retry_attempt(job) -> bool:
    """True when RQ is running a job again after an earlier attempt failed."""
    if job is None or job.retries_left is None:
        return False
    attempts = job.meta.get("attempts", 1)
    return job.retries_left < attempts - 1


def run_extraction_job(material_id: str, config: WorkerConfig) -> None:
    """
    RQ task entrypoint. Builds the worker's collaborators inside the worker
    process and runs a single extraction attempt. Exceptions propagate so RQ
    can apply its retry policy.
    """
    requeued = is_retry_attempt(get_current_job())
    engine = create_db_engine(config.database_url)
    try:
        worker = ExtractionWorker(
            ledger=MaterialLedger(SqlAlchemyMaterialRepository(engine)),
            storage=LocalObjectStorage(StoragePaths(Path(config.storage_root))),
            extractors=ExtractorRegistry.default(),
        )
        worker.run(material_id, requeued=requeued)
    finally:
        engine.dispose()


class RQJobQueue:
    """
    Redis-backed job queue using RQ. The queue pushes jobs to Redis and workers
    are started by calling `work()` in a dedicated process.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        queue_name: str = "source-extraction",
        job_timeout: int = 600,
        connection: Optional[Redis] = None,
    ):
        self.redis = connection if connection is not None else Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis, default_timeout=job_timeout)

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    def enqueue_extraction_job(
        self,
        material_id: str,
        config: WorkerConfig,
        attempts: int = EXTRACTION_ATTEMPTS,
        backoff_seconds: int = BACKOFF_SECONDS,
    ):
        retry = None
        if attempts > 1:
            retry = Retry(max=attempts - 1, interval=backoff_intervals(attempts, backoff_seconds))
        return self.queue.enqueue(
            run_extraction_job,
            material_id,
            config,
            retry=retry,
            meta={"attempts": attempts},
            description=f"extract source material {material_id}",
        )

    def work(self, burst: bool = False) -> None:
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True, burst=burst)


def main() -> None:
    import argparse

    from .config import SourcesConfig

    parser = argparse.ArgumentParser(description="Run an RQ worker for source material extraction")
    parser.add_argument("--burst", action="store_true", help="Exit once the queue is empty")
    args = parser.parse_args()

    config = SourcesConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not config.redis_url:
        raise SystemExit("REDIS_URL must be set to run an extraction worker")
    RQJobQueue(config.redis_url, queue_name=config.queue_name, job_timeout=config.job_timeout).work(burst=args.burst)


if __name__ == "__main__":
    main()
