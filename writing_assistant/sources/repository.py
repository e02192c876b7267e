from __future__ import annotations

import json
import threading
from copy import deepcopy
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text, delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db import Base
from .models import MaterialStatus, SourceMaterial


class SourceMaterialModel(Base):
    __tablename__ = "source_materials"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    storage_path = Column(String, nullable=False)
    status = Column(Enum(MaterialStatus), index=True, nullable=False)
    error_message = Column(Text)
    extracted_text = Column(Text)
    word_count = Column(Integer)
    page_count = Column(Integer)
    author_name = Column(String)
    metadata_json = Column("metadata", Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime)


class MaterialRepository:
    """
    Persistence boundary for source materials. Status and result fields are
    only ever written through `compare_and_set_status`, which the ledger uses
    to make each transition atomic.
    """

    def get(self, material_id: str) -> Optional[SourceMaterial]:
        raise NotImplementedError

    def insert(self, material: SourceMaterial) -> None:
        raise NotImplementedError

    def list_by_project(self, project_id: str) -> List[SourceMaterial]:
        """Return materials ordered by creation time, oldest first."""
        raise NotImplementedError

    def compare_and_set_status(
        self,
        material_id: str,
        expected: MaterialStatus,
        values: Dict[str, Any],
    ) -> bool:
        """
        Apply `values` only if the stored status still equals `expected`.
        Returns False when the record is missing or its status moved on.
        """
        raise NotImplementedError

    def set_activation(self, material_id: str, is_active: bool) -> bool:
        raise NotImplementedError

    def delete(self, material_id: str) -> bool:
        raise NotImplementedError


class InMemoryMaterialRepository(MaterialRepository):
    """
    In-memory store for local runs and tests. Records are replaced, never
    mutated in place, so readers always get a complete pre- or post-change copy.
    """

    def __init__(self):
        self.materials: Dict[str, SourceMaterial] = {}
        self._lock = threading.Lock()

    def _clone(self, obj):
        return deepcopy(obj)

    def get(self, material_id: str) -> Optional[SourceMaterial]:
        material = self.materials.get(material_id)
        return self._clone(material) if material else None

    def insert(self, material: SourceMaterial) -> None:
        with self._lock:
            if material.id in self.materials:
                raise ValueError(f"Source material {material.id} already exists")
            self.materials[material.id] = self._clone(material)

    def list_by_project(self, project_id: str) -> List[SourceMaterial]:
        found = [m for m in self.materials.values() if m.project_id == project_id]
        found.sort(key=lambda m: (m.created_at, m.id))
        return [self._clone(m) for m in found]

    def compare_and_set_status(
        self,
        material_id: str,
        expected: MaterialStatus,
        values: Dict[str, Any],
    ) -> bool:
        with self._lock:
            current = self.materials.get(material_id)
            if current is None or current.status != expected:
                return False
            self.materials[material_id] = replace(self._clone(current), **values)
            return True

    def set_activation(self, material_id: str, is_active: bool) -> bool:
        with self._lock:
            current = self.materials.get(material_id)
            if current is None:
                return False
            self.materials[material_id] = replace(current, is_active=is_active, updated_at=datetime.utcnow())
            return True

    def delete(self, material_id: str) -> bool:
        with self._lock:
            return self.materials.pop(material_id, None) is not None


class SqlAlchemyMaterialRepository(MaterialRepository):
    """
    SQL-backed repository. Works with SQLite/Postgres engines built by
    `create_db_engine`.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    @staticmethod
    def _to_record(model: SourceMaterialModel) -> SourceMaterial:
        return SourceMaterial(
            id=model.id,
            project_id=model.project_id,
            user_id=model.user_id,
            title=model.title,
            filename=model.filename,
            file_type=model.file_type,
            file_size=model.file_size,
            storage_path=model.storage_path,
            status=model.status,
            error_message=model.error_message,
            extracted_text=model.extracted_text,
            word_count=model.word_count,
            page_count=model.page_count,
            author_name=model.author_name,
            metadata=json.loads(model.metadata_json or "{}"),
            is_active=bool(model.is_active),
            created_at=model.created_at,
            updated_at=model.updated_at,
            processed_at=model.processed_at,
        )

    @staticmethod
    def _column_values(values: Dict[str, Any]) -> Dict[str, Any]:
        columns = dict(values)
        if "metadata" in columns:
            columns["metadata_json"] = json.dumps(columns.pop("metadata") or {}, default=str)
        return columns

    def get(self, material_id: str) -> Optional[SourceMaterial]:
        with self._session() as session:
            model = session.get(SourceMaterialModel, material_id)
            return self._to_record(model) if model else None

    def insert(self, material: SourceMaterial) -> None:
        with self._session() as session:
            session.add(
                SourceMaterialModel(
                    id=material.id,
                    project_id=material.project_id,
                    user_id=material.user_id,
                    title=material.title,
                    filename=material.filename,
                    file_type=material.file_type,
                    file_size=material.file_size,
                    storage_path=material.storage_path,
                    status=material.status,
                    error_message=material.error_message,
                    extracted_text=material.extracted_text,
                    word_count=material.word_count,
                    page_count=material.page_count,
                    author_name=material.author_name,
                    metadata_json=json.dumps(material.metadata or {}, default=str),
                    is_active=material.is_active,
                    created_at=material.created_at,
                    updated_at=material.updated_at,
                    processed_at=material.processed_at,
                )
            )
            session.commit()

    def list_by_project(self, project_id: str) -> List[SourceMaterial]:
        with self._session() as session:
            stmt = (
                select(SourceMaterialModel)
                .where(SourceMaterialModel.project_id == project_id)
                .order_by(SourceMaterialModel.created_at.asc(), SourceMaterialModel.id.asc())
            )
            return [self._to_record(m) for m in session.execute(stmt).scalars().all()]

    def compare_and_set_status(
        self,
        material_id: str,
        expected: MaterialStatus,
        values: Dict[str, Any],
    ) -> bool:
        with self._session() as session:
            stmt = (
                update(SourceMaterialModel)
                .where(SourceMaterialModel.id == material_id, SourceMaterialModel.status == expected)
                .values(**self._column_values(values))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def set_activation(self, material_id: str, is_active: bool) -> bool:
        with self._session() as session:
            stmt = (
                update(SourceMaterialModel)
                .where(SourceMaterialModel.id == material_id)
                .values(is_active=is_active, updated_at=datetime.utcnow())
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def delete(self, material_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(SourceMaterialModel).where(SourceMaterialModel.id == material_id))
            session.commit()
            return result.rowcount == 1
