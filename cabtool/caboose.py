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
Caboose lookup.

The caboose is the last thing in an image. Its final word holds its total
size, so it can be found from the image length alone:

    start            start + 4          end - 4     end
    | CABOOSE_MAGIC  | records ... 0xff | size (u32) |

Every lookup here tolerates arbitrary input; anything that does not check
out is reported as no caboose at all.
"""

import logging
from collections import namedtuple

from .header import find_header
from .records import DecodeResult, decode_records
from .window import ReadWindow

logger = logging.getLogger(__name__)

CABOOSE_MAGIC = 0xcab0005e
CABOOSE_WORD_SIZE = 4
CABOOSE_MIN_SIZE = 2 * CABOOSE_WORD_SIZE


class CabooseRegion(namedtuple('CabooseRegion', ['start', 'length'])):
    __slots__ = ()

    @property
    def end(self):
        return self.start + self.length

    @property
    def records_start(self):
        return self.start + CABOOSE_WORD_SIZE

    @property
    def records_end(self):
        return self.end - CABOOSE_WORD_SIZE


def find_caboose(window, image_len):
    """Find the caboose of an image that is `image_len` bytes long."""
    if image_len > len(window) or image_len < CABOOSE_MIN_SIZE:
        logger.debug("Image length 0x%x unusable for a window of 0x%x",
                     image_len, len(window))
        return None

    length = window.read_u32(image_len - CABOOSE_WORD_SIZE)
    if length is None:
        return None
    start = image_len - length
    if start < 0 or length < CABOOSE_MIN_SIZE:
        logger.debug("Caboose length 0x%x invalid for image length 0x%x",
                     length, image_len)
        return None

    magic = window.read_u32(start)
    if magic != CABOOSE_MAGIC:
        logger.debug("No caboose magic at 0x%x", start)
        return None
    return CabooseRegion(start, length)


def check_caboose(window, start, length):
    """Validate a caboose at a position recorded elsewhere."""
    if start < 0 or length < CABOOSE_MIN_SIZE or \
            not window.contains(start, length):
        return None
    if window.read_u32(start) != CABOOSE_MAGIC:
        return None
    if window.read_u32(start + length - CABOOSE_WORD_SIZE) != length:
        return None
    return CabooseRegion(start, length)


class Caboose:

    def __init__(self, window, region):
        self.region = region
        records = window.sub(region.records_start,
                             region.records_end - region.records_start)
        data = records.read(0, len(records))
        if data is None:
            # Short read from the device
            self.records = DecodeResult((), truncated=True)
        else:
            self.records = decode_records(data)

    def __repr__(self):
        return "<Caboose start=0x{:x}, length=0x{:x}, records={}>".format(
            self.region.start, self.region.length, len(self.records))

    def get(self, tag):
        return self.records.get(tag)

    def as_dict(self):
        return self.records.as_dict()

    @staticmethod
    def locate(window, image_len=None, target=None, header_offset=None):
        """Find and decode the caboose of an image.

        When `image_len` is not given, it is taken from the image header.
        """
        if not isinstance(window, ReadWindow):
            window = ReadWindow.from_bytes(window)
        if image_len is None:
            found = find_header(window, target, header_offset)
            if found is None:
                return None
            image_len = found[2].total_image_len
        region = find_caboose(window, image_len)
        if region is None:
            return None
        return Caboose(window, region)

    @staticmethod
    def at(window, start, length):
        if not isinstance(window, ReadWindow):
            window = ReadWindow.from_bytes(window)
        region = check_caboose(window, start, length)
        if region is None:
            return None
        return Caboose(window, region)
