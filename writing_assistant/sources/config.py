from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class SourcesConfig:
    database_url: str = "sqlite+pysqlite:///./data/writing_assistant.db"
    storage_root: str = "./data"
    redis_url: Optional[str] = None
    queue_name: str = "source-extraction"
    job_timeout: int = 600
    inline_workers: int = 2
    max_upload_bytes: int = 10 * 1024 * 1024
    search_max_matches: int = 10
    starred_message_limit: int = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SourcesConfig":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            storage_root=os.getenv("SOURCE_STORAGE_ROOT", cls.storage_root),
            redis_url=os.getenv("REDIS_URL") or None,
            queue_name=os.getenv("EXTRACTION_QUEUE_NAME", cls.queue_name),
            job_timeout=int(os.getenv("EXTRACTION_JOB_TIMEOUT", str(cls.job_timeout))),
            inline_workers=int(os.getenv("INLINE_WORKERS", str(cls.inline_workers))),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(cls.max_upload_bytes))),
            search_max_matches=int(os.getenv("SEARCH_MAX_MATCHES", str(cls.search_max_matches))),
            starred_message_limit=int(os.getenv("STARRED_MESSAGE_LIMIT", str(cls.starred_message_limit))),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )
