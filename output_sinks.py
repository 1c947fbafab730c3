#!/usr/bin/env python3
# SmartSink
# Copyright (C) 2026 Magnus S. Modig
# Licensed under GPLv3. See LICENSE for details.

import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional, TextIO

from config_manager import (
    OUTPUT_POSTGRES,
    OUTPUT_TABLE,
    CollectorConfig,
    StoreConfig,
)
from smart_models import AttributeTable, PartitionRecord
from store_writer import write_record

logger = logging.getLogger(__name__)

# Attribute IDs printed by the table view, independent of the configured list
TABLE_ATTRIBUTES = (5, 187, 188, 197, 198)


class OutputError(Exception):
    """A record could not be rendered"""


class OutputSink(ABC):
    """Destination for partition records"""

    @abstractmethod
    def emit(self, record: PartitionRecord, table: AttributeTable) -> None:
        pass


def record_to_json(record: PartitionRecord) -> str:
    try:
        return json.dumps(record.to_dict())
    except (TypeError, ValueError) as e:
        raise OutputError(f"json output error for {record.partition_name}: {e}") from e


class JsonSink(OutputSink):
    """One JSON object per line"""

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out

    def emit(self, record: PartitionRecord, table: AttributeTable) -> None:
        print(record_to_json(record), file=self.out or sys.stdout)


class TableSink(OutputSink):
    """
    Human-readable current/raw listing.

    Legacy behaviour: the five TABLE_ATTRIBUTES are read from the full
    decoded table, not from the record, so the configured attribute list
    does not affect this view. IDs the device did not report are shown
    as unavailable.
    """

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out

    def render(self, record: PartitionRecord, table: AttributeTable) -> str:
        lines = [record.partition_name, "Current/Raw"]
        for attr_id in TABLE_ATTRIBUTES:
            attr = table.get(attr_id)
            if attr is None:
                lines.append(f"{attr_id} (unavailable): -/-")
            else:
                lines.append(f"{attr_id} ({attr.name}): {attr.current}/{attr.raw}")
        return "\n".join(lines) + "\n"

    def emit(self, record: PartitionRecord, table: AttributeTable) -> None:
        print(self.render(record, table), file=self.out or sys.stdout)


class StoreSink(OutputSink):
    """Writes each record to the PostgreSQL store"""

    def __init__(self, config: StoreConfig, writer: Optional[Callable] = None):
        self.config = config
        self.writer = writer

    def emit(self, record: PartitionRecord, table: AttributeTable) -> None:
        writer = self.writer or write_record
        writer(record, self.config)


def make_sink(config: CollectorConfig, out: Optional[TextIO] = None) -> OutputSink:
    if config.output_type == OUTPUT_TABLE:
        return TableSink(out)
    if config.output_type == OUTPUT_POSTGRES:
        if config.store is None:
            logger.warning("No DB config, printing json")
            return JsonSink(out)
        return StoreSink(config.store)
    return JsonSink(out)
