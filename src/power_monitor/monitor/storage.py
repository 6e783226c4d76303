"""
ReadingStore: persistence sink for readings.

SQLAlchemy Core over whichever engine the database URL names (SQLite for a
single file, PostgreSQL for a shared server). Storage failures surface as
StorageError; the caller logs them and keeps polling.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    insert,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from power_monitor.core.reading import Reading

logger = logging.getLogger(__name__)

metadata = MetaData()

power_records = Table(
    "power_records",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("remaining_energy", Float, nullable=False),
    Column("remaining_money", Float, nullable=False),
    Column("meter_room_id", Text, nullable=False),
    Column("room_display_name", Text, nullable=False),
    Column("room_id", Text, nullable=False),
    Column("building_id", Text, nullable=False),
    Column("campus_id", Text, nullable=False),
    Column("room_number", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


class StorageError(Exception):
    """A reading could not be written."""


class ReadingStore:
    """Writes each Reading as one row of ``power_records``."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        try:
            self.engine: Engine = create_engine(
                database_url,
                pool_pre_ping=True,
                connect_args={"check_same_thread": False}
                if database_url.startswith("sqlite")
                else {},
            )
        except (SQLAlchemyError, ImportError) as exc:
            raise StorageError(f"cannot create engine: {exc}") from exc

    def init(self) -> None:
        """Create the table if it does not exist."""
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"cannot initialise schema: {exc}") from exc
        logger.info("Storage ready (%s)", self.engine.url.render_as_string(hide_password=True))

    def save(self, reading: Reading) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(power_records).values(
                        remaining_energy=reading.remaining_energy,
                        remaining_money=reading.remaining_money,
                        meter_room_id=reading.meter_room_id,
                        room_display_name=reading.room_display_name,
                        room_id=reading.room_id,
                        building_id=reading.building_id,
                        campus_id=reading.campus_id,
                        room_number=reading.room_number,
                        created_at=reading.captured_at,
                    )
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"cannot save reading: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()
