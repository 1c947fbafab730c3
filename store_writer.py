#!/usr/bin/env python3
"""
SmartSink - PostgreSQL Store Writer

Copyright (C) 2026 Magnus S. Modig

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    MetaData,
    Numeric,
    Table,
    Text,
    create_engine,
    inspect,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.schema import CreateSchema

from config_manager import StoreConfig
from smart_models import PartitionRecord

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Schema bootstrap against the store failed"""


class StoreConnectionError(StoreError):
    """The store could not be reached"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_store_url(config: StoreConfig) -> URL:
    return URL.create(
        'postgresql+psycopg2',
        username=config.username,
        password=config.password,
        host=config.host,
        port=config.port,
        database=config.database,
        query={'sslmode': config.sslmode},
    )


def create_store_engine(config: StoreConfig) -> Engine:
    """Engine for a single writer invocation, no pooling across partitions"""
    url = build_store_url(config)
    connect_args = {}
    if config.connect_timeout:
        connect_args['connect_timeout'] = config.connect_timeout
    logger.debug("[DB] Creating engine %s", url.render_as_string(hide_password=True))
    return create_engine(url, poolclass=NullPool, connect_args=connect_args, future=True)


def telemetry_table(config: StoreConfig, metadata: Optional[MetaData] = None) -> Table:
    return Table(
        config.table,
        metadata if metadata is not None else MetaData(),
        Column('uuid', Text),
        Column('ts', DateTime(timezone=True)),
        Column('partition_name', Text),
        Column('label', Text),
        Column('mount_path', Text),
        Column('size_bytes', Numeric(asdecimal=False)),
        Column('attributes', JSON().with_variant(JSONB(), 'postgresql')),
        schema=config.schema,
    )


def check_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise StoreConnectionError(f"Failed to connect to store: {e}") from e
    logger.debug("[DB] Connection test OK")


def ensure_schema(engine: Engine, table: Table) -> None:
    """Create the schema and table if absent. Safe to call on every run."""
    try:
        with engine.begin() as conn:
            if not inspect(conn).has_schema(table.schema):
                conn.execute(CreateSchema(table.schema))
                logger.info("[DB] Created schema %s", table.schema)
            table.create(conn, checkfirst=True)
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to initialize {table.fullname}: {e}") from e
    logger.info("[DB] Committing initialization of %s", table.fullname)


def insert_record(engine: Engine, table: Table, record: PartitionRecord) -> int:
    """Insert one row for the record. Returns rows committed, 0 on failure."""
    row = {
        'uuid': record.uuid,
        'ts': record.ts,
        'partition_name': record.partition_name,
        'label': record.label,
        'mount_path': record.mount_path,
        'size_bytes': record.size_bytes,
        'attributes': [attr.to_dict() for attr in record.attributes],
    }
    try:
        with engine.begin() as conn:
            result = conn.execute(table.insert(), row)
    except SQLAlchemyError as e:
        logger.error("[DB] Insert for %s rolled back: %s", record.partition_name, e)
        return 0
    logger.info("[DB] Committing %d rows for %s", result.rowcount, record.partition_name)
    return result.rowcount


def prune_retention(engine: Engine, table: Table, retention_hours: Optional[int],
                    now: Optional[datetime] = None) -> int:
    """
    Delete rows older than the retention window.

    Rows with ts strictly earlier than now - retention_hours are removed
    in their own transaction. A missing or non-positive window deletes
    nothing.
    """
    if retention_hours is None:
        logger.debug("[DB] No data retention configured, keeping all rows")
        return 0
    if retention_hours <= 0:
        logger.info("[DB] data_retention_hours must be greater than zero if present, skipping")
        return 0

    cutoff = (now or utc_now()) - timedelta(hours=retention_hours)
    try:
        with engine.begin() as conn:
            result = conn.execute(table.delete().where(table.c.ts < cutoff))
    except SQLAlchemyError as e:
        logger.error("[DB] Retention delete rolled back: %s", e)
        return 0
    logger.info("[DB] Deleted %d rows older than %s by retention rule",
                result.rowcount, cutoff.isoformat())
    return result.rowcount


def write_record(record: PartitionRecord, config: StoreConfig,
                 engine: Optional[Engine] = None, now: Optional[datetime] = None) -> int:
    """
    Persist one record: connect, optionally initialize, insert, prune.

    Connection and initialization failures raise; insert and delete
    failures are logged and rolled back. Returns rows inserted.
    """
    owns_engine = engine is None
    if owns_engine:
        engine = create_store_engine(config)
    try:
        check_connection(engine)
        table = telemetry_table(config)
        if config.initialize:
            ensure_schema(engine, table)
        inserted = insert_record(engine, table, record)
        prune_retention(engine, table, config.data_retention_hours, now=now)
        return inserted
    finally:
        if owns_engine:
            engine.dispose()
