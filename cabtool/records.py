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
Caboose record encoding.

Each record is a four character tag, a little-endian u32 length and the
value, padded with zeros to a four byte boundary. Unused space after the
last record is left erased (0xff).
"""

import struct
from collections import namedtuple

from .errors import CabooseConfigError, RecordOverflow

RECORD_HDR_FMT = '<4sI'
RECORD_HDR_SIZE = struct.calcsize(RECORD_HDR_FMT)
RECORD_ALIGN = 4
TAG_SIZE = 4
PAD_BYTE = 0xff

CABOOSE_TAGS = {
        'GITC': 'Git commit',
        'BORD': 'Board',
        'NAME': 'Image name',
        'VERS': 'Version',
}

Record = namedtuple('Record', ['tag', 'value'])


def align_up(num, align):
    assert (align & (align - 1) == 0) and align != 0
    return (num + (align - 1)) & ~(align - 1)


def tag_name(tag):
    return tag.decode('ascii', errors='replace')


class DecodeResult:
    """Records found in a caboose, in storage order."""

    def __init__(self, records, truncated=False):
        self.records = tuple(records)
        self.truncated = truncated

    def __iter__(self):
        return iter(self.records)

    def __len__(self):
        return len(self.records)

    def __eq__(self, other):
        if not isinstance(other, DecodeResult):
            return NotImplemented
        return (self.records, self.truncated) == \
            (other.records, other.truncated)

    def __repr__(self):
        return "<DecodeResult tags={} truncated={}>".format(
            [tag_name(r.tag) for r in self.records], self.truncated)

    def get(self, tag):
        if isinstance(tag, str):
            tag = tag.encode('utf-8')
        for record in self.records:
            if record.tag == tag:
                return record.value
        return None

    def as_dict(self):
        # First occurrence of a tag wins, matching get()
        result = {}
        for record in self.records:
            result.setdefault(tag_name(record.tag), record.value)
        return result


def decode_records(data):
    """Walk the records in `data`.

    Stops at the end of the buffer or at erased space. A record whose
    declared length runs past the end stops the walk as well; what was
    decoded up to that point is kept and the result is marked truncated.
    """
    data = bytes(data)
    # Everything past the last non-erased byte is free space
    content_end = len(data.rstrip(bytes([PAD_BYTE])))
    records = []
    off = 0
    while off < content_end:
        remaining = len(data) - off
        if remaining < RECORD_HDR_SIZE:
            return DecodeResult(records, truncated=True)
        tag, length = struct.unpack_from(RECORD_HDR_FMT, data, off)
        if length > remaining - RECORD_HDR_SIZE:
            return DecodeResult(records, truncated=True)
        value_off = off + RECORD_HDR_SIZE
        records.append(Record(tag, data[value_off:value_off + length]))
        off = value_off + align_up(length, RECORD_ALIGN)
    return DecodeResult(records)


def check_tag(tag):
    if isinstance(tag, str):
        try:
            tag = tag.encode('ascii')
        except UnicodeEncodeError:
            raise CabooseConfigError(
                "Caboose tag {!r} is not ASCII".format(tag))
    if len(tag) != TAG_SIZE:
        raise CabooseConfigError(
            "Caboose tag {!r} must be exactly {} bytes".format(
                tag, TAG_SIZE))
    return bytes(tag)


class RecordWriter:

    def __init__(self, records=()):
        self.records = []
        for tag, value in records:
            self.add(tag, value)

    def __len__(self):
        return len(self.records)

    def add(self, tag, value):
        """
        Add a record. String values are stored as UTF-8.
        """
        if isinstance(value, str):
            value = value.encode('utf-8')
        elif not isinstance(value, (bytes, bytearray)):
            raise CabooseConfigError(
                "Caboose value for {!r} must be a string or bytes, not "
                "{}".format(tag, type(value).__name__))
        self.records.append(Record(check_tag(tag), bytes(value)))

    def encoded_size(self):
        return sum(RECORD_HDR_SIZE + align_up(len(r.value), RECORD_ALIGN)
                   for r in self.records)

    def encode(self, capacity):
        size = self.encoded_size()
        if size > capacity:
            raise RecordOverflow(
                "Caboose records (0x{:x} bytes) exceed the available "
                "space of 0x{:x} bytes".format(size, capacity))
        buf = bytearray()
        for record in self.records:
            buf += struct.pack(RECORD_HDR_FMT, record.tag, len(record.value))
            buf += record.value
            buf += bytes(align_up(len(record.value), RECORD_ALIGN) -
                         len(record.value))
        buf += bytes([PAD_BYTE] * (capacity - len(buf)))
        return bytes(buf)


def default_records(commit, board, name, version=None):
    records = [('GITC', commit), ('BORD', board), ('NAME', name)]
    if version is not None:
        records.append(('VERS', version))
    return records
