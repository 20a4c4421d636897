# Copyright 2026 The cabtool contributors
#
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Caboose placement at build time.

The caboose is placed after everything else in its backing memory region,
aligned so that the memory protection unit can cover it with a single
region, and only the configured tasks are granted read access to it.
"""

import logging
import struct
from collections import namedtuple

from .caboose import CABOOSE_MAGIC, CABOOSE_WORD_SIZE, CABOOSE_MIN_SIZE
from .errors import (AlignmentViolation, CabooseConfigError, CabooseCorrupt,
                     RegionOverflow)
from .header import set_total_image_len
from .records import (PAD_BYTE, RecordWriter, align_up, check_tag,
                      decode_records)

logger = logging.getLogger(__name__)

MemoryRegion = namedtuple('MemoryRegion', ['name', 'base', 'size'])
Allocation = namedtuple('Allocation', ['name', 'region', 'base', 'size'])
TrailerPosition = namedtuple('TrailerPosition', ['address', 'length'])


class RegionConfig(namedtuple('RegionConfig',
                              ['region', 'size', 'readers', 'default'])):
    __slots__ = ()

    def __new__(cls, region, size, readers=(), default=True):
        return super().__new__(cls, region, size, frozenset(readers),
                               default)


class AlignmentRule:
    """Power-of-two sized, naturally aligned protected regions."""

    def __init__(self, minimum):
        self.minimum = minimum

    def __repr__(self):
        return "<AlignmentRule minimum={}>".format(self.minimum)

    def check(self, size):
        if size < self.minimum or size & (size - 1):
            raise AlignmentViolation(
                "Caboose size {} must be a power of two of at least {} "
                "bytes".format(size, self.minimum))

    def address_align(self, size):
        return size


class IsolationTable:
    """Protected regions and the tasks allowed to read them.

    This only records grants for the kernel configuration; enforcement is
    left to the memory protection hardware.
    """

    def __init__(self):
        self.grants = {}

    def grant(self, name, base, size, readers):
        if name in self.grants:
            raise CabooseConfigError(
                "Region '{}' has already been granted".format(name))
        self.grants[name] = {
            'base': base,
            'size': size,
            'readers': sorted(readers),
        }

    def to_dict(self):
        return {name: dict(grant) for name, grant in self.grants.items()}


def allocate_caboose(config, memory, allocations, rule, isolation,
                     tasks=None):
    """Reserve the caboose after all other allocations in its region.

    `memory` maps region names to MemoryRegion. Returns the final
    TrailerPosition of the caboose.
    """
    try:
        region = memory[config.region]
    except KeyError:
        raise CabooseConfigError(
            "Caboose region '{}' is not a known memory region".format(
                config.region))

    if tasks is not None:
        unknown = sorted(set(config.readers) - set(tasks))
        if unknown:
            raise CabooseConfigError(
                "Caboose reader(s) {} are not tasks in this image".format(
                    ', '.join(unknown)))

    rule.check(config.size)

    used_end = region.base
    for alloc in allocations:
        if alloc.region == region.name:
            used_end = max(used_end, alloc.base + alloc.size)

    address = align_up(used_end, rule.address_align(config.size))
    region_end = region.base + region.size
    if address + config.size > region_end:
        raise RegionOverflow(
            "Caboose (0x{:x} bytes at 0x{:x}) exceeds region '{}' ending at "
            "0x{:x}".format(config.size, address, region.name, region_end))

    logger.debug("Caboose placed at 0x%x (0x%x bytes) in %s",
                 address, config.size, region.name)
    isolation.grant('caboose', address, config.size, config.readers)
    return TrailerPosition(address, config.size)


def build_caboose(size, records=None):
    """Lay out a caboose of `size` bytes.

    With no records, the space between the two boundary words is left
    erased so that the records can be filled in later.
    """
    if size < CABOOSE_MIN_SIZE:
        raise CabooseConfigError(
            "Caboose size {} is smaller than {} bytes".format(
                size, CABOOSE_MIN_SIZE))
    capacity = size - 2 * CABOOSE_WORD_SIZE
    if records is None:
        body = bytes([PAD_BYTE] * capacity)
    else:
        body = RecordWriter(records).encode(capacity)
    return struct.pack('<I', CABOOSE_MAGIC) + body + struct.pack('<I', size)


def append_caboose(image, base_addr, position, caboose, header_offset=None):
    """Return a copy of `image` with `caboose` placed at `position`.

    The gap between the end of the image and the caboose is filled with
    erased bytes. If a header offset is given, the header's total length is
    updated to cover the caboose.
    """
    offset = position.address - base_addr
    if offset < len(image):
        raise RegionOverflow(
            "Caboose at 0x{:x} overlaps the image ending at 0x{:x}".format(
                position.address, base_addr + len(image)))
    if len(caboose) != position.length:
        raise CabooseConfigError(
            "Caboose is 0x{:x} bytes, 0x{:x} were reserved".format(
                len(caboose), position.length))

    buf = bytearray(image)
    buf += bytes([PAD_BYTE] * (offset - len(image)))
    buf += caboose
    if header_offset is not None:
        set_total_image_len(buf, header_offset, len(buf))
    return bytes(buf)


def rewrite_caboose(image, region, records):
    """Return a copy of `image` with the caboose records replaced.

    `records` is an iterable of (tag, value) pairs. A value of None removes
    the tag; other tags already present are kept in their original order.
    """
    start = region.records_start
    end = region.records_end
    existing = decode_records(image[start:end])
    if existing.truncated:
        raise CabooseCorrupt(
            "Caboose records at 0x{:x} are truncated after {} record(s); "
            "refusing to rewrite them".format(start, len(existing)))

    updates = list(records)
    update_tags = [check_tag(tag) for tag, _ in updates]
    writer = RecordWriter()
    for record in existing:
        if record.tag in update_tags:
            continue
        writer.add(record.tag, record.value)
    for tag, value in updates:
        if value is not None:
            writer.add(tag, value)

    buf = bytearray(image)
    buf[start:end] = writer.encode(end - start)
    return bytes(buf)
