from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from writing_assistant.sources import (
    ExtractionFailed,
    ExtractionWorker,
    ExtractorRegistry,
    InlineExtractionDispatcher,
    MaterialLedger,
    MaterialStatus,
    QueueExtractionDispatcher,
    RQJobQueue,
    SourceMaterial,
    SourcesConfig,
    SqlAlchemyMaterialRepository,
    UnsupportedFormat,
    WorkerConfig,
    build_dispatcher,
    create_db_engine,
    run_extraction_job,
)
from writing_assistant.sources import dispatch, job_queue as job_queue_module
from writing_assistant.sources.job_queue import backoff_intervals, is_retry_attempt


@pytest.fixture
def worker(ledger, storage):
    return ExtractionWorker(ledger=ledger, storage=storage, extractors=ExtractorRegistry.default())


def _stored_material(make_material, storage, content=b"The ghost wrote all night", file_type="txt"):
    reference = storage.issue_write_location("user-1", "m", f"notes.{file_type}")
    material = make_material(file_type=file_type, storage_path=reference)
    if content is not None:
        storage.write(reference, content)
    return material


def test_worker_completes_material(worker, ledger, storage, make_material):
    material = _stored_material(make_material, storage)
    result = worker.run(material.id)
    assert result.status == MaterialStatus.COMPLETED
    stored = ledger.get(material.id)
    assert stored.extracted_text == "The ghost wrote all night"
    assert stored.word_count == 5
    assert stored.error_message is None


def test_unsupported_format_marks_failed(worker, ledger, storage, make_material):
    material = _stored_material(make_material, storage, file_type="xyz")
    with pytest.raises(UnsupportedFormat):
        worker.run(material.id)
    stored = ledger.get(material.id)
    assert stored.status == MaterialStatus.FAILED
    assert stored.error_message == "Unsupported file type: xyz"
    assert stored.extracted_text is None


def test_storage_read_failure_marks_failed(worker, ledger, storage, make_material):
    material = _stored_material(make_material, storage, content=None)
    with pytest.raises(ExtractionFailed):
        worker.run(material.id)
    stored = ledger.get(material.id)
    assert stored.status == MaterialStatus.FAILED
    assert "not found" in stored.error_message


def test_failed_material_is_left_alone_without_requeue(worker, ledger, storage, make_material):
    material = _stored_material(make_material, storage, content=None)
    with pytest.raises(ExtractionFailed):
        worker.run(material.id)
    storage.write(material.storage_path, b"late arrival")
    assert worker.run(material.id).status == MaterialStatus.FAILED
    assert ledger.get(material.id).extracted_text is None


def test_requeued_attempt_after_failure_completes(worker, ledger, storage, make_material):
    material = _stored_material(make_material, storage, content=None)
    with pytest.raises(ExtractionFailed):
        worker.run(material.id)
    storage.write(material.storage_path, b"late arrival")
    assert worker.run(material.id, requeued=True).status == MaterialStatus.COMPLETED
    assert ledger.get(material.id).extracted_text == "late arrival"


def test_completed_material_is_not_reprocessed(worker, ledger, storage, make_material):
    material = _stored_material(make_material, storage)
    worker.run(material.id)
    first = ledger.get(material.id)
    storage.write(material.storage_path, b"changed")
    worker.run(material.id)
    assert ledger.get(material.id) == first


def test_inline_dispatch_runs_one_attempt_off_thread(worker, ledger, storage, make_material):
    ok = _stored_material(make_material, storage)
    broken = _stored_material(make_material, storage, file_type="xyz")
    dispatcher = InlineExtractionDispatcher(worker, executor=ThreadPoolExecutor(max_workers=1))

    dispatcher.dispatch(ok.id)
    dispatcher.dispatch(broken.id)  # must not raise to the caller
    dispatcher.shutdown(wait=True)

    assert ledger.get(ok.id).status == MaterialStatus.COMPLETED
    failed = ledger.get(broken.id)
    assert failed.status == MaterialStatus.FAILED
    assert failed.error_message == "Unsupported file type: xyz"


class RecordingJobQueue:
    def __init__(self):
        self.calls = []

    def enqueue_extraction_job(self, material_id, config, attempts, backoff_seconds):
        self.calls.append((material_id, config, attempts, backoff_seconds))
        return type("Job", (), {"id": f"job-{material_id}"})()


def test_queue_dispatch_enqueues_with_bounded_retries():
    job_queue = RecordingJobQueue()
    config = WorkerConfig(database_url="sqlite://", storage_root="/tmp/data")
    QueueExtractionDispatcher(job_queue, config).dispatch("mat-9")
    assert job_queue.calls == [("mat-9", config, 3, 1)]


class RecordingRQQueue:
    def __init__(self):
        self.calls = []

    def enqueue(self, func, *args, **kwargs):
        self.calls.append((func, args, kwargs))
        return None


def test_rq_job_uses_exponential_backoff():
    job_queue = RQJobQueue.__new__(RQJobQueue)
    job_queue.queue = RecordingRQQueue()
    config = WorkerConfig(database_url="sqlite://", storage_root="/tmp/data")

    job_queue.enqueue_extraction_job("mat-1", config)

    func, args, kwargs = job_queue.queue.calls[0]
    assert func is run_extraction_job
    assert args == ("mat-1", config)
    assert kwargs["retry"].max == 2
    assert kwargs["retry"].intervals == [1, 2]
    assert kwargs["meta"] == {"attempts": 3}


def test_backoff_intervals_double():
    assert backoff_intervals(1) == []
    assert backoff_intervals(3) == [1, 2]
    assert backoff_intervals(4, base_seconds=2) == [2, 4, 8]


def test_build_dispatcher_probes_redis_once(monkeypatch, worker):
    inline = build_dispatcher(SourcesConfig(redis_url=None), worker)
    assert isinstance(inline, InlineExtractionDispatcher)
    inline.shutdown()

    monkeypatch.setattr(dispatch.RQJobQueue, "ping", lambda self: False)
    fallback = build_dispatcher(SourcesConfig(redis_url="redis://localhost:6379/0"), worker)
    assert isinstance(fallback, InlineExtractionDispatcher)
    fallback.shutdown()

    monkeypatch.setattr(dispatch.RQJobQueue, "ping", lambda self: True)
    queued = build_dispatcher(SourcesConfig(redis_url="redis://localhost:6379/0"), worker)
    assert isinstance(queued, QueueExtractionDispatcher)
    assert queued.attempts == 3


def test_run_extraction_job_entrypoint(tmp_path):
    db_url = f"sqlite+pysqlite:///{tmp_path / 'jobs.db'}"
    storage_root = tmp_path / "data"
    engine = create_db_engine(db_url)
    ledger = MaterialLedger(SqlAlchemyMaterialRepository(engine))
    reference = "sources/u1/m1/abc.txt"
    (storage_root / "sources" / "u1" / "m1").mkdir(parents=True)
    (storage_root / "sources" / "u1" / "m1" / "abc.txt").write_bytes(b"queued words here")
    ledger.create(
        SourceMaterial(
            id="m1",
            project_id="p1",
            user_id="u1",
            title="abc",
            filename="abc.txt",
            file_type="txt",
            file_size=17,
            storage_path=reference,
            created_at=datetime(2024, 1, 1),
            updated_at=datetime(2024, 1, 1),
        )
    )

    run_extraction_job("m1", WorkerConfig(database_url=db_url, storage_root=str(storage_root)))

    stored = ledger.get("m1")
    assert stored.status == MaterialStatus.COMPLETED
    assert stored.word_count == 3
    engine.dispose()


class FakeJob:
    def __init__(self, retries_left, attempts=3):
        self.retries_left = retries_left
        self.meta = {"attempts": attempts}


def test_retry_attempt_detection():
    assert not is_retry_attempt(None)
    assert not is_retry_attempt(FakeJob(retries_left=None))
    assert not is_retry_attempt(FakeJob(retries_left=2))
    assert is_retry_attempt(FakeJob(retries_left=1))
    assert is_retry_attempt(FakeJob(retries_left=0))


@pytest.mark.parametrize("job, expected", [(None, MaterialStatus.FAILED), (FakeJob(1), MaterialStatus.COMPLETED)])
def test_run_extraction_job_resets_failed_only_on_retry(tmp_path, monkeypatch, job, expected):
    db_url = f"sqlite+pysqlite:///{tmp_path / 'jobs.db'}"
    storage_root = tmp_path / "data"
    engine = create_db_engine(db_url)
    ledger = MaterialLedger(SqlAlchemyMaterialRepository(engine))
    (storage_root / "sources" / "u1" / "m1").mkdir(parents=True)
    (storage_root / "sources" / "u1" / "m1" / "abc.txt").write_bytes(b"second try")
    ledger.create(
        SourceMaterial(
            id="m1",
            project_id="p1",
            user_id="u1",
            title="abc",
            filename="abc.txt",
            file_type="txt",
            file_size=10,
            storage_path="sources/u1/m1/abc.txt",
        )
    )
    ledger.transition("m1", MaterialStatus.PROCESSING)
    ledger.transition("m1", MaterialStatus.FAILED, error_message="storage down")
    monkeypatch.setattr(job_queue_module, "get_current_job", lambda: job)

    run_extraction_job("m1", WorkerConfig(database_url=db_url, storage_root=str(storage_root)))

    assert ledger.get("m1").status == expected
    engine.dispose()
