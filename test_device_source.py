#!/usr/bin/env python3
"""
Test partition enumeration and attribute decoding with fake pySMART devices
"""

import json
import logging
import subprocess
from types import SimpleNamespace

import pytest

import device_source
from device_source import (
    AtaAttributeDecoder,
    DeviceError,
    DeviceSourceError,
    SmartDeviceSource,
    open_device,
    parse_lsblk,
)
from smart_models import Attribute, PartitionRef, Unsupported


LSBLK_OUTPUT = {
    'blockdevices': [
        {
            'name': 'sda', 'type': 'disk', 'size': 2000398934016,
            'mountpoint': None, 'label': None, 'uuid': None,
            'children': [
                {'name': 'sda1', 'type': 'part', 'size': 536870912,
                 'mountpoint': '/boot/efi', 'label': 'EFI', 'uuid': '7A3C-11EF'},
                {'name': 'sda2', 'type': 'part', 'size': 1999860000000,
                 'mountpoint': None, 'label': None, 'uuid': 'c0ffee00-1234',
                 'children': [
                     {'name': 'cryptroot', 'type': 'crypt', 'size': 1999850000000,
                      'mountpoint': '/', 'label': None, 'uuid': 'deadbeef'},
                 ]},
            ],
        },
        {'name': 'sr0', 'type': 'rom', 'size': 1073741312, 'mountpoint': None,
         'label': None, 'uuid': None},
        {'name': 'nvme0n1', 'type': 'disk', 'size': 512110190592, 'mountpoint': None,
         'label': None, 'uuid': None, 'children': None},
    ]
}


def _attr(num, name, value, raw):
    return SimpleNamespace(num=num, name=name, value=value, worst=value, thresh='000', raw=raw)


def _device(interface='sat', attributes=None):
    return SimpleNamespace(interface=interface, attributes=attributes or [])


def test_parse_lsblk_lists_disk_partitions_only():
    assert parse_lsblk(LSBLK_OUTPUT) == [
        PartitionRef(uuid='7A3C-11EF', device_path='/dev/sda1', label='EFI',
                     mount_path='/boot/efi', size_bytes=536870912),
        PartitionRef(uuid='c0ffee00-1234', device_path='/dev/sda2', label='',
                     mount_path='', size_bytes=1999860000000),
    ]


def test_list_partitions_runs_lsblk(monkeypatch):
    def fake_run(cmd, capture_output, text):
        assert cmd[0] == 'lsblk' and '-J' in cmd
        return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(LSBLK_OUTPUT), stderr='')

    monkeypatch.setattr(device_source.subprocess, 'run', fake_run)
    paths = [p.device_path for p in SmartDeviceSource().list_partitions()]
    assert paths == ['/dev/sda1', '/dev/sda2']


def test_list_partitions_without_output_fails(monkeypatch):
    monkeypatch.setattr(
        device_source.subprocess, 'run',
        lambda cmd, capture_output, text: subprocess.CompletedProcess(cmd, 1, stdout='', stderr='lsblk: not found'),
    )
    with pytest.raises(DeviceSourceError, match='lsblk: not found'):
        SmartDeviceSource().list_partitions()


def test_ata_decoder_builds_table():
    device = _device(attributes=[
        None,
        _attr(5, 'Reallocated_Sector_Ct', '100', '0'),
        _attr(9, 'Power_On_Hours', '071', '25731'),
        _attr(194, 'Temperature_Celsius', '064', '36 (Min/Max 17/52)'),
        None,
    ])
    table = AtaAttributeDecoder().decode(device, '/dev/sda1')
    assert table == {
        5: Attribute(5, 'Reallocated_Sector_Ct', 100, 0),
        9: Attribute(9, 'Power_On_Hours', 71, 25731),
        194: Attribute(194, 'Temperature_Celsius', 64, 36),
    }


def test_ata_decoder_skips_non_numeric_values():
    device = _device(attributes=[
        _attr(9, 'Power_On_Hours', '---', '0h+17m+48s'),
        _attr(197, 'Current_Pending_Sector', '100', '0'),
    ])
    table = AtaAttributeDecoder().decode(device, '/dev/sda1')
    assert list(table) == [197]


def test_ata_decoder_without_attributes_fails():
    with pytest.raises(DeviceError, match='No S.M.A.R.T. attributes'):
        AtaAttributeDecoder().decode(_device(attributes=[]), '/dev/sda1')


def test_read_attributes_dispatches_on_interface(monkeypatch):
    devices = {
        '/dev/sda1': _device('sat', [_attr(5, 'Reallocated_Sector_Ct', '100', '0')]),
        '/dev/nvme0n1p1': _device('nvme'),
        '/dev/sdb1': _device('scsi'),
        '/dev/sdc1': _device('usbjmicron'),
    }
    monkeypatch.setattr(device_source, 'Device', lambda path: devices[path])
    source = SmartDeviceSource()

    assert source.read_attributes('/dev/sda1') == {5: Attribute(5, 'Reallocated_Sector_Ct', 100, 0)}
    for path in ('/dev/nvme0n1p1', '/dev/sdb1', '/dev/sdc1'):
        result = source.read_attributes(path)
        assert isinstance(result, Unsupported)
        assert result.device_path == path


def test_open_device_without_interface_fails(monkeypatch):
    monkeypatch.setattr(device_source, 'Device', lambda path: _device(interface=None))
    with pytest.raises(DeviceError, match='check sudo'):
        with open_device('/dev/dm-0'):
            pass


def test_open_device_wraps_constructor_errors(monkeypatch):
    def broken(path):
        raise PermissionError("Permission denied")

    monkeypatch.setattr(device_source, 'Device', broken)
    with pytest.raises(DeviceError, match='Permission denied'):
        SmartDeviceSource().read_attributes('/dev/sda1')


def test_device_released_when_decoding_fails(monkeypatch, caplog):
    class ExplodingDecoder(AtaAttributeDecoder):
        def decode(self, device, device_path):
            raise RuntimeError("smartctl exited with status 2")

    monkeypatch.setattr(device_source, 'Device', lambda path: _device('sat'))
    source = SmartDeviceSource(decoders={'sat': ExplodingDecoder()})

    with caplog.at_level(logging.DEBUG, logger='device_source'):
        with pytest.raises(DeviceError, match='Could not read ata S.M.A.R.T. data for /dev/sda1'):
            source.read_attributes('/dev/sda1')

    assert 'Released /dev/sda1' in caplog.text
