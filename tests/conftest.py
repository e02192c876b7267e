"""Shared pytest fixtures."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta

import pytest

from writing_assistant.sources import (
    InMemoryMaterialRepository,
    InMemoryProjectGateway,
    LocalObjectStorage,
    MaterialLedger,
    MaterialStatus,
    SourceMaterial,
    StoragePaths,
)

PROJECT_ID = "proj-1"
USER_ID = "user-1"


@pytest.fixture
def ledger():
    return MaterialLedger(InMemoryMaterialRepository())


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(StoragePaths(tmp_path / "data"))


@pytest.fixture
def projects():
    gateway = InMemoryProjectGateway()
    gateway.add_project(PROJECT_ID, USER_ID)
    return gateway


@pytest.fixture
def make_material(ledger):
    """Create a pending material; later calls are created one minute apart."""
    counter = itertools.count()
    base = datetime(2024, 1, 1, 12, 0, 0)

    def _make(title="notes", file_type="txt", storage_path="sources/user-1/x/x.txt", project_id=PROJECT_ID):
        n = next(counter)
        material = SourceMaterial(
            id=f"mat-{n}",
            project_id=project_id,
            user_id=USER_ID,
            title=title,
            filename=f"{title}.{file_type}",
            file_type=file_type,
            file_size=100,
            storage_path=storage_path,
            created_at=base + timedelta(minutes=n),
            updated_at=base + timedelta(minutes=n),
        )
        return ledger.create(material)

    return _make


@pytest.fixture
def add_completed(ledger, make_material):
    """Create a material and drive it to completed with the given text."""

    def _add(title, text, author=None, project_id=PROJECT_ID):
        material = make_material(title=title, project_id=project_id)
        ledger.transition(material.id, MaterialStatus.PROCESSING)
        return ledger.transition(material.id, MaterialStatus.COMPLETED, text=text, author_name=author)

    return _add
