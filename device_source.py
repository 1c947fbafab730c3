#!/usr/bin/env python3
"""
SmartSink - Device Telemetry Source

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

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

from pySMART import Device

from smart_models import Attribute, AttributeTable, PartitionRef, Unsupported

logger = logging.getLogger(__name__)

LSBLK_COLUMNS = 'NAME,TYPE,SIZE,MOUNTPOINT,LABEL,UUID'


class DeviceSourceError(Exception):
    """Partitions could not be enumerated"""


class DeviceError(Exception):
    """A single device could not be opened or read"""


def _parse_int(value) -> Optional[int]:
    """First integer token of a S.M.A.R.T. value (raw values may carry suffixes)"""
    if value is None:
        return None
    try:
        return int(str(value).split()[0])
    except (ValueError, TypeError, IndexError):
        return None


class AttributeDecoder(ABC):
    """Turns an open pySMART device into an attribute table for one bus type"""

    kind = 'unknown'

    @abstractmethod
    def decode(self, device: Device, device_path: str) -> Union[AttributeTable, Unsupported]:
        pass


class AtaAttributeDecoder(AttributeDecoder):
    """ATA/SATA drives expose the classic vendor attribute table"""

    kind = 'ata'

    def decode(self, device: Device, device_path: str) -> Union[AttributeTable, Unsupported]:
        if not device.attributes:
            raise DeviceError(f"No S.M.A.R.T. attributes returned for {device_path}")

        table: AttributeTable = {}
        for attr in device.attributes:
            if not attr:
                continue
            attr_id = _parse_int(attr.num)
            current = _parse_int(attr.value)
            raw = _parse_int(attr.raw)
            if attr_id is None or current is None or raw is None:
                logger.debug("Skipping non-numeric attribute %s (%s)", attr.num, attr.name)
                continue
            table[attr_id] = Attribute(id=attr_id, name=attr.name, current=current, raw=raw)
        return table


class NvmeAttributeDecoder(AttributeDecoder):
    kind = 'nvme'

    def decode(self, device: Device, device_path: str) -> Union[AttributeTable, Unsupported]:
        # NVMe reports a health information log, not an attribute table
        return Unsupported(device_path, "NVMe health log is not collected")


class ScsiAttributeDecoder(AttributeDecoder):
    kind = 'scsi'

    def decode(self, device: Device, device_path: str) -> Union[AttributeTable, Unsupported]:
        return Unsupported(device_path, "SCSI devices have no attribute table")


# pySMART interface name -> decoder
DECODERS: Dict[str, AttributeDecoder] = {
    'ata': AtaAttributeDecoder(),
    'sat': AtaAttributeDecoder(),
    'sata': AtaAttributeDecoder(),
    'nvme': NvmeAttributeDecoder(),
    'scsi': ScsiAttributeDecoder(),
}


@contextmanager
def open_device(device_path: str) -> Iterator[Device]:
    """
    Open a device for S.M.A.R.T. access for the duration of a with-block.

    The handle is released on every exit path, including errors raised
    while the caller is decoding it.
    """
    try:
        device = Device(device_path)
    except Exception as e:
        raise DeviceError(f"Could not open disk {device_path}, check sudo?: {e}") from e

    if device.interface is None:
        # some devices (like dm-crypt mappings) do not support the SMART interface
        raise DeviceError(f"Could not open disk {device_path}, check sudo?: no S.M.A.R.T. interface")

    logger.debug("Opened %s (%s)", device_path, device.interface)
    try:
        yield device
    finally:
        logger.debug("Released %s", device_path)


def _run_lsblk() -> Dict:
    cmd = ['lsblk', '-J', '-b', '-o', LSBLK_COLUMNS]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise DeviceSourceError(f"Could not run lsblk: {e}") from e
    if not proc.stdout.strip():
        raise DeviceSourceError(proc.stderr.strip() or "lsblk returned no output")
    try:
        return json.loads(proc.stdout)
    except json.JSONDecodeError as e:
        raise DeviceSourceError(f"lsblk returned non-JSON output: {e}") from e


def parse_lsblk(data: Dict) -> List[PartitionRef]:
    """Partitions of every disk in `lsblk -J -b` output"""
    result: List[PartitionRef] = []
    for dev in data.get('blockdevices', []):
        if dev.get('type') != 'disk':
            continue
        for child in dev.get('children', []) or []:
            if child.get('type') != 'part':
                continue
            result.append(
                PartitionRef(
                    uuid=child.get('uuid') or '',
                    device_path=f"/dev/{child.get('name')}",
                    label=child.get('label') or '',
                    mount_path=child.get('mountpoint') or '',
                    size_bytes=_parse_int(child.get('size')) or 0,
                )
            )
    return result


class SmartDeviceSource:
    """Enumerates partitions with lsblk and reads attributes with pySMART"""

    def __init__(self, decoders: Optional[Dict[str, AttributeDecoder]] = None):
        self.decoders = decoders if decoders is not None else DECODERS

    def list_partitions(self) -> List[PartitionRef]:
        partitions = parse_lsblk(_run_lsblk())
        logger.info("Found %d partition(s)", len(partitions))
        return partitions

    def read_attributes(self, device_path: str) -> Union[AttributeTable, Unsupported]:
        with open_device(device_path) as device:
            decoder = self.decoders.get(device.interface)
            if decoder is None:
                return Unsupported(device_path, f"Unsupported interface '{device.interface}'")
            try:
                return decoder.decode(device, device_path)
            except DeviceError:
                raise
            except Exception as e:
                raise DeviceError(
                    f"Could not read {decoder.kind} S.M.A.R.T. data for {device_path}: {e}"
                ) from e
