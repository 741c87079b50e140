"""Durable key-value storage for the last computed personalization results."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete

from ..database import Database
from ..db_models import PersonalizationRecordRow
from ..models import PersonalizationRecord

logger = logging.getLogger(__name__)


def feature_of(key: str) -> str:
    """Return the feature portion of a ``feature:scope`` store key."""

    return key.split(":", 1)[0]


class PersistentStore(Protocol):
    async def get(self, key: str) -> PersonalizationRecord | None: ...

    async def put(self, key: str, record: PersonalizationRecord) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local backend, handy for tests and ephemeral deployments."""

    def __init__(self) -> None:
        self._records: dict[str, PersonalizationRecord] = {}

    async def get(self, key: str) -> PersonalizationRecord | None:
        return self._records.get(key)

    async def put(self, key: str, record: PersonalizationRecord) -> None:
        self._records[key] = record

    async def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def __len__(self) -> int:
        return len(self._records)


class SQLAlchemyStore:
    """Store records as JSON rows through the async SQLAlchemy engine."""

    def __init__(self, database: Database):
        self._database = database

    async def get(self, key: str) -> PersonalizationRecord | None:
        async with self._database.session() as session:
            row = await session.get(PersonalizationRecordRow, key)
            if row is None:
                return None
            return PersonalizationRecord(
                fingerprint=row.fingerprint,
                result=row.payload,
                computed_at=row.computed_at,
            )

    async def put(self, key: str, record: PersonalizationRecord) -> None:
        payload = record.model_dump(mode="json")["result"]
        async with self._database.session() as session:
            row = await session.get(PersonalizationRecordRow, key)
            if row is None:
                row = PersonalizationRecordRow(key=key, feature=feature_of(key))
                session.add(row)
            row.fingerprint = record.fingerprint
            row.payload = payload
            row.computed_at = record.computed_at
            row.updated_at = datetime.utcnow()
            await session.commit()
        logger.debug("Persisted personalization record %s", key)

    async def delete(self, key: str) -> None:
        async with self._database.session() as session:
            await session.execute(
                delete(PersonalizationRecordRow).where(
                    PersonalizationRecordRow.key == key
                )
            )
            await session.commit()
