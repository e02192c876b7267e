from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .budget import count_words
from .db import Base
from .models import StarredMessage


class ProjectModel(Base):
    __tablename__ = "projects"
    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String)


class ManuscriptModel(Base):
    __tablename__ = "manuscripts"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True, nullable=False)
    word_count = Column(Integer)


class OutlineItemModel(Base):
    __tablename__ = "outline_items"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True, nullable=False)
    content = Column(Text, nullable=False, default="")


class ChatMessageModel(Base):
    __tablename__ = "chat_messages"
    id = Column(String, primary_key=True)
    session_id = Column(String, index=True, nullable=False)
    project_id = Column(String, index=True)
    role = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    is_starred = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False)


class ProjectGateway:
    """
    Read-only view of the writing-project collaborators this subsystem
    depends on: ownership, manuscript/outline size and starred chat turns.
    """

    def get_project_owner(self, project_id: str) -> Optional[str]:
        raise NotImplementedError

    def manuscript_word_count(self, project_id: str) -> int:
        raise NotImplementedError

    def outline_word_count(self, project_id: str) -> int:
        raise NotImplementedError

    def starred_messages(self, session_id: str, limit: int) -> List[StarredMessage]:
        """Most recently created starred messages of a session, newest first."""
        raise NotImplementedError


@dataclass
class _ChatMessage:
    session_id: str
    role: str
    content: str
    is_starred: bool
    created_at: datetime


class InMemoryProjectGateway(ProjectGateway):
    def __init__(self):
        self.owners: Dict[str, str] = {}
        self.manuscript_words: Dict[str, List[int]] = {}
        self.outline_items: Dict[str, List[str]] = {}
        self.messages: List[_ChatMessage] = []

    def add_project(self, project_id: str, user_id: str) -> None:
        self.owners[project_id] = user_id

    def add_manuscript(self, project_id: str, word_count: int) -> None:
        self.manuscript_words.setdefault(project_id, []).append(word_count)

    def add_outline_item(self, project_id: str, content: str) -> None:
        self.outline_items.setdefault(project_id, []).append(content)

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        is_starred: bool = False,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.messages.append(
            _ChatMessage(session_id, role, content, is_starred, created_at or datetime.utcnow())
        )

    def get_project_owner(self, project_id: str) -> Optional[str]:
        return self.owners.get(project_id)

    def manuscript_word_count(self, project_id: str) -> int:
        return sum(self.manuscript_words.get(project_id, []))

    def outline_word_count(self, project_id: str) -> int:
        return sum(count_words(item) for item in self.outline_items.get(project_id, []))

    def starred_messages(self, session_id: str, limit: int) -> List[StarredMessage]:
        starred = [m for m in self.messages if m.session_id == session_id and m.is_starred]
        starred.sort(key=lambda m: m.created_at, reverse=True)
        return [StarredMessage(role=m.role, content=m.content, created_at=m.created_at) for m in starred[:limit]]


class SqlAlchemyProjectGateway(ProjectGateway):
    """
    Reads the project, manuscript, outline and chat tables owned by the
    surrounding application. Never writes.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    def get_project_owner(self, project_id: str) -> Optional[str]:
        with self._session() as session:
            model = session.get(ProjectModel, project_id)
            return model.user_id if model else None

    def manuscript_word_count(self, project_id: str) -> int:
        with self._session() as session:
            stmt = select(func.coalesce(func.sum(ManuscriptModel.word_count), 0)).where(
                ManuscriptModel.project_id == project_id
            )
            return int(session.execute(stmt).scalar_one())

    def outline_word_count(self, project_id: str) -> int:
        with self._session() as session:
            stmt = select(OutlineItemModel.content).where(OutlineItemModel.project_id == project_id)
            return sum(count_words(content or "") for content in session.execute(stmt).scalars())

    def starred_messages(self, session_id: str, limit: int) -> List[StarredMessage]:
        with self._session() as session:
            stmt = (
                select(ChatMessageModel)
                .where(ChatMessageModel.session_id == session_id, ChatMessageModel.is_starred.is_(True))
                .order_by(ChatMessageModel.created_at.desc())
                .limit(limit)
            )
            return [
                StarredMessage(role=m.role, content=m.content, created_at=m.created_at)
                for m in session.execute(stmt).scalars().all()
            ]
