#!/usr/bin/env python3
# SmartSink
# Copyright (C) 2026 Magnus S. Modig
# Licensed under GPLv3. See LICENSE for details.

"""
Data model for collected S.M.A.R.T. telemetry.

A PartitionRecord is the unit of output and persistence: one per
partition per scan run, immutable once built.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Tuple


@dataclass(frozen=True)
class Attribute:
    """A single decoded S.M.A.R.T. attribute"""
    id: int
    name: str
    current: int
    raw: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'current': self.current,
            'raw': self.raw,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Attribute':
        return cls(
            id=int(data['id']),
            name=str(data['name']),
            current=int(data['current']),
            raw=int(data['raw']),
        )


# Decoded attribute table of one device read, keyed by attribute ID
AttributeTable = Dict[int, Attribute]


@dataclass(frozen=True)
class Unsupported:
    """Returned by a device source when a device has no attribute table"""
    device_path: str
    reason: str


@dataclass(frozen=True)
class PartitionRef:
    """Partition metadata as reported by the platform"""
    uuid: str
    device_path: str
    label: str = ''
    mount_path: str = ''
    size_bytes: int = 0


@dataclass(frozen=True)
class PartitionRecord:
    uuid: str
    ts: datetime
    partition_name: str
    label: str
    mount_path: str
    size_bytes: int
    attributes: Tuple[Attribute, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form used for JSON output"""
        return {
            'uuid': self.uuid,
            'ts': format_timestamp(self.ts),
            'partition_name': self.partition_name,
            'label': self.label,
            'mount_path': self.mount_path,
            'size_bytes': self.size_bytes,
            'attributes': [attr.to_dict() for attr in self.attributes],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PartitionRecord':
        return cls(
            uuid=data['uuid'],
            ts=parse_timestamp(data['ts']),
            partition_name=data['partition_name'],
            label=data.get('label', ''),
            mount_path=data.get('mount_path', ''),
            size_bytes=int(data.get('size_bytes', 0)),
            attributes=tuple(Attribute.from_dict(a) for a in data.get('attributes', [])),
        )


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 text with an explicit UTC offset; naive values are taken as UTC"""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def parse_timestamp(text: str) -> datetime:
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
