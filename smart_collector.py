#!/usr/bin/env python3
"""
SmartSink - S.M.A.R.T. Telemetry Collector

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

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence

from config_manager import DEFAULT_CONFIG_FILE, CollectorConfig, ConfigError, export_config, load_config
from device_source import DeviceError, DeviceSourceError, SmartDeviceSource
from output_sinks import OutputError, OutputSink, make_sink
from smart_models import Attribute, PartitionRecord, PartitionRef, Unsupported
from store_writer import StoreError

logger = logging.getLogger(__name__)


def select_attributes(ids: Sequence[int], table: Mapping[int, Attribute]) -> List[Attribute]:
    """
    Pick the configured attributes out of a decoded table.

    Output follows the order of `ids`. IDs the device did not report are
    skipped, since not every drive exposes every attribute.
    """
    selected = []
    for attr_id in ids:
        attr = table.get(attr_id)
        if attr is None:
            logger.debug("Attribute %d not reported, skipping", attr_id)
            continue
        selected.append(attr)
    return selected


def build_record(partition: PartitionRef, run_ts: datetime,
                 attributes: Sequence[Attribute]) -> PartitionRecord:
    return PartitionRecord(
        uuid=partition.uuid,
        ts=run_ts,
        partition_name=partition.device_path,
        label=partition.label,
        mount_path=partition.mount_path,
        size_bytes=partition.size_bytes,
        attributes=tuple(attributes),
    )


class SmartCollector:
    """Runs one scan: every configured partition, one record each"""

    def __init__(self, config: CollectorConfig, source, sink: OutputSink):
        self.config = config
        self.source = source
        self.sink = sink

    def run(self, run_ts: Optional[datetime] = None) -> int:
        """
        Scan configured partitions and emit a record for each readable one.

        Per-partition failures are logged and skipped. Store connection
        and initialization errors propagate. Returns records emitted.
        """
        # One timestamp for the whole scan
        run_ts = run_ts or datetime.now(timezone.utc)
        wanted = set(self.config.partitions)
        emitted = 0

        for partition in self.source.list_partitions():
            # Skip disks we don't care about
            if partition.device_path not in wanted:
                continue
            if self._process(partition, run_ts):
                emitted += 1

        logger.info("Scan complete: %d record(s) from %d configured partition(s)",
                    emitted, len(wanted))
        return emitted

    def _process(self, partition: PartitionRef, run_ts: datetime) -> bool:
        device_path = partition.device_path
        try:
            table = self.source.read_attributes(device_path)
        except DeviceError as e:
            logger.warning("%s", e)
            return False

        if isinstance(table, Unsupported):
            logger.info("Skipping %s: %s", device_path, table.reason)
            return False

        record = build_record(partition, run_ts, select_attributes(self.config.attributes, table))
        try:
            self.sink.emit(record, table)
        except OutputError as e:
            logger.error("%s", e)
            return False
        return True


def _configure_logging() -> None:
    level = os.getenv('SMARTSINK_LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    _configure_logging()

    parser = argparse.ArgumentParser(
        description='SmartSink - Collect S.M.A.R.T. attributes for disk partitions',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        '-f',
        dest='config_file',
        default=DEFAULT_CONFIG_FILE,
        help=f'Config file path (default: {DEFAULT_CONFIG_FILE})'
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config_file)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)
    logger.debug("Config: %s", json.dumps(export_config(config)))

    collector = SmartCollector(config, SmartDeviceSource(), make_sink(config))
    try:
        collector.run()
    except DeviceSourceError as e:
        logger.error("Could not enumerate block devices: %s", e)
        sys.exit(1)
    except StoreError as e:
        logger.error("%s", e)
        sys.exit(1)
    return 0


if __name__ == '__main__':
    main()
