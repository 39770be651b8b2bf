from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import Column, DateTime, Enum, Integer, String, create_engine, delete, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import ArtifactCategory, ArtifactRecord

Base = declarative_base()


class ArtifactModel(Base):
    __tablename__ = "artifacts"
    id = Column(String, primary_key=True)
    file_path = Column(String)
    mime_type = Column(String)
    size_bytes = Column(Integer)
    category = Column(Enum(ArtifactCategory), index=True)
    size_variant = Column(String)
    created_at = Column(DateTime, index=True)


class ArtifactRepository:
    """
    Persistence boundary for the artifact cache index. Callers serialize
    mutations; implementations only need to be safe for concurrent reads.
    """

    def get(self, key: str) -> Optional[ArtifactRecord]:
        raise NotImplementedError

    def save(self, record: ArtifactRecord) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list_all(self) -> List[ArtifactRecord]:
        raise NotImplementedError

    def list_created_before(self, cutoff: datetime) -> List[ArtifactRecord]:
        raise NotImplementedError


class InMemoryArtifactRepository(ArtifactRepository):
    """
    Dict-backed index for tests and single-process runs. Keeps copies of the
    dataclasses to avoid cross-mutation between calls.
    """

    def __init__(self):
        self.records: Dict[str, ArtifactRecord] = {}

    def _clone(self, obj):
        return deepcopy(obj)

    def get(self, key: str) -> Optional[ArtifactRecord]:
        record = self.records.get(key)
        return self._clone(record) if record else None

    def save(self, record: ArtifactRecord) -> None:
        self.records[record.id] = self._clone(record)

    def delete(self, key: str) -> None:
        self.records.pop(key, None)

    def list_all(self) -> List[ArtifactRecord]:
        return [self._clone(r) for r in list(self.records.values())]

    def list_created_before(self, cutoff: datetime) -> List[ArtifactRecord]:
        return [self._clone(r) for r in list(self.records.values()) if r.created_at <= cutoff]


class SqlAlchemyArtifactRepository(ArtifactRepository):
    """
    SQL-backed index using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        # Persistence tasks register records from executor threads.
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, future=True, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    @staticmethod
    def _to_record(model: ArtifactModel) -> ArtifactRecord:
        return ArtifactRecord(
            id=model.id,
            file_path=model.file_path,
            mime_type=model.mime_type,
            size_bytes=int(model.size_bytes or 0),
            category=model.category,
            size_variant=model.size_variant,
            created_at=model.created_at,
        )

    def get(self, key: str) -> Optional[ArtifactRecord]:
        with self._session() as session:
            model = session.get(ArtifactModel, key)
            return self._to_record(model) if model else None

    def save(self, record: ArtifactRecord) -> None:
        with self._session() as session:
            model = ArtifactModel(
                id=record.id,
                file_path=record.file_path,
                mime_type=record.mime_type,
                size_bytes=record.size_bytes,
                category=record.category,
                size_variant=record.size_variant,
                created_at=record.created_at,
            )
            session.merge(model)
            session.commit()

    def delete(self, key: str) -> None:
        with self._session() as session:
            session.execute(delete(ArtifactModel).where(ArtifactModel.id == key))
            session.commit()

    def list_all(self) -> List[ArtifactRecord]:
        with self._session() as session:
            models = session.execute(select(ArtifactModel).order_by(ArtifactModel.created_at)).scalars().all()
            return [self._to_record(m) for m in models]

    def list_created_before(self, cutoff: datetime) -> List[ArtifactRecord]:
        with self._session() as session:
            stmt = select(ArtifactModel).where(ArtifactModel.created_at <= cutoff)
            models = session.execute(stmt).scalars().all()
            return [self._to_record(m) for m in models]
