#!/usr/bin/env python3
# SmartSink
# Copyright (C) 2026 Magnus S. Modig
# Licensed under GPLv3. See LICENSE for details.

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Default configuration file, relative to the working directory
DEFAULT_CONFIG_FILE = 'conf.json'

# Reallocated, Reported Uncorrectable, Command Timeout, Pending, Offline Uncorrectable
# https://www.backblaze.com/blog/what-smart-stats-indicate-hard-drive-failures/
DEFAULT_ATTRIBUTES: Tuple[int, ...] = (5, 187, 188, 197, 198)

OUTPUT_JSON = 'json'
OUTPUT_TABLE = 'table'
OUTPUT_POSTGRES = 'postgres'
OUTPUT_TYPES = (OUTPUT_JSON, OUTPUT_TABLE, OUTPUT_POSTGRES)

_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class ConfigError(Exception):
    """Configuration file is missing, unreadable or invalid"""


@dataclass(frozen=True)
class StoreConfig:
    host: str
    port: int
    username: str
    password: str
    schema: str
    table: str
    initialize: bool = False
    data_retention_hours: Optional[int] = None
    database: str = 'postgres'
    sslmode: str = 'disable'
    connect_timeout: Optional[int] = 10


@dataclass(frozen=True)
class CollectorConfig:
    partitions: Tuple[str, ...]
    attributes: Tuple[int, ...] = DEFAULT_ATTRIBUTES
    output_type: str = OUTPUT_JSON
    store: Optional[StoreConfig] = None


def load_config(path: str = DEFAULT_CONFIG_FILE,
                default_attributes: Sequence[int] = DEFAULT_ATTRIBUTES) -> CollectorConfig:
    """Read and resolve the configuration file. Raises ConfigError on any failure."""
    config_path = Path(path)
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except OSError as e:
        raise ConfigError(f"Could not read config file {config_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Config file {config_path} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Could not parse config file {config_path}: {e}") from e

    config = resolve_config(raw, default_attributes)
    logger.info("Using config file %s", config_path)
    return config


def resolve_config(raw: Any, default_attributes: Sequence[int] = DEFAULT_ATTRIBUTES) -> CollectorConfig:
    """
    Build a CollectorConfig from parsed JSON.

    Pure function of the file contents and the supplied defaults:
    - 'attributes' missing or null -> default_attributes
    - 'output_type' missing or empty -> json
    - 'db' missing or null -> no store
    """
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a JSON object")

    partitions = raw.get('partitions') or []
    if not isinstance(partitions, list) or not all(isinstance(p, str) for p in partitions):
        raise ConfigError("'partitions' must be a list of device paths")

    attributes = raw.get('attributes')
    if attributes is None:
        attributes = list(default_attributes)
    attributes = _resolve_attribute_ids(attributes)

    output_type = raw.get('output_type') or OUTPUT_JSON
    if output_type not in OUTPUT_TYPES:
        raise ConfigError(
            f"Unknown output_type '{output_type}', expected one of {', '.join(OUTPUT_TYPES)}"
        )

    store = None
    if raw.get('db') is not None:
        store = _resolve_store_config(raw['db'])

    return CollectorConfig(
        partitions=tuple(partitions),
        attributes=attributes,
        output_type=output_type,
        store=store,
    )


def _resolve_attribute_ids(values: Any) -> Tuple[int, ...]:
    if not isinstance(values, list):
        raise ConfigError("'attributes' must be a list of attribute IDs")
    ids = []
    for value in values:
        # bool is an int subclass, reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 255:
            raise ConfigError(f"Invalid attribute ID {value!r}, expected an integer 0-255")
        ids.append(value)
    return tuple(ids)


def _resolve_store_config(db: Any) -> StoreConfig:
    if not isinstance(db, dict):
        raise ConfigError("'db' must be a JSON object")

    missing = [key for key in ('host', 'port', 'username', 'password', 'schema', 'table') if key not in db]
    if missing:
        raise ConfigError(f"'db' is missing required keys: {', '.join(missing)}")

    for key in ('schema', 'table'):
        if not isinstance(db[key], str) or not _IDENTIFIER_RE.match(db[key]):
            raise ConfigError(
                f"'db.{key}' must be a plain SQL identifier (letters, digits, underscore), got {db[key]!r}"
            )

    try:
        port = int(db['port'])
    except (TypeError, ValueError):
        raise ConfigError(f"'db.port' must be an integer, got {db['port']!r}")

    retention = db.get('data_retention_hours')
    if retention is not None and (isinstance(retention, bool) or not isinstance(retention, int)):
        raise ConfigError(f"'db.data_retention_hours' must be an integer, got {retention!r}")

    connect_timeout = db.get('connect_timeout', 10)
    if connect_timeout is not None and (isinstance(connect_timeout, bool) or not isinstance(connect_timeout, int)):
        raise ConfigError(f"'db.connect_timeout' must be an integer, got {connect_timeout!r}")

    initialize = db.get('initialize', False)
    if not isinstance(initialize, bool):
        raise ConfigError(f"'db.initialize' must be true or false, got {initialize!r}")

    return StoreConfig(
        host=str(db['host']),
        port=port,
        username=str(db['username']),
        password=str(db['password']),
        schema=db['schema'],
        table=db['table'],
        initialize=initialize,
        data_retention_hours=retention,
        database=str(db.get('database') or 'postgres'),
        sslmode=str(db.get('sslmode') or 'disable'),
        connect_timeout=connect_timeout or None,
    )


def export_config(config: CollectorConfig) -> Dict[str, Any]:
    """Configuration as a JSON-ready dict with the password masked"""
    exported: Dict[str, Any] = {
        'partitions': list(config.partitions),
        'attributes': list(config.attributes),
        'output_type': config.output_type,
    }
    if config.store is not None:
        store = config.store
        exported['db'] = {
            'host': store.host,
            'port': store.port,
            'username': store.username,
            'password': '***',
            'schema': store.schema,
            'table': store.table,
            'initialize': store.initialize,
            'data_retention_hours': store.data_retention_hours,
            'database': store.database,
            'sslmode': store.sslmode,
            'connect_timeout': store.connect_timeout,
        }
    return exported
