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
Image header lookup.

The header sits at a fixed, target-specific offset near the start of the
image and carries the total length of the image, caboose included.
"""

import logging
import struct
from collections import namedtuple

from .errors import CabooseConfigError

logger = logging.getLogger(__name__)

HEADER_MAGIC = 0x64ced6ca
HEADER_RESERVED_WORDS = 16
HEADER_FMT = '<II' + 'I' * HEADER_RESERVED_WORDS
HEADER_SIZE = struct.calcsize(HEADER_FMT)

ImageHeader = namedtuple('ImageHeader', ['magic', 'total_image_len'])

Target = namedtuple('Target', ['header_offset', 'min_region_size'])

# Header offsets follow the vector table of each architecture; the minimum
# region size is what the memory protection unit can express.
TARGETS = {
        'armv6m':  Target(0xc0, 256),
        'armv7m':  Target(0x298, 32),
        'riscv32': Target(0x100, 8),
}


def get_target(name):
    try:
        return TARGETS[name]
    except KeyError:
        raise CabooseConfigError(
            "Unknown target '{}', expected one of: {}".format(
                name, ', '.join(TARGETS)))


def pack_header(total_image_len):
    return struct.pack(HEADER_FMT, HEADER_MAGIC, total_image_len,
                       *([0] * HEADER_RESERVED_WORDS))


def read_header(window, offset):
    """Read the header at `offset`, returning None if it is not there."""
    data = window.read(offset, HEADER_SIZE)
    if data is None:
        logger.debug("Header at 0x%x does not fit in the image", offset)
        return None
    magic, total_image_len = struct.unpack_from('<II', data)
    if magic != HEADER_MAGIC:
        logger.debug("No header magic at 0x%x (found 0x%08x)", offset, magic)
        return None
    return ImageHeader(magic, total_image_len)


def find_header(window, target=None, header_offset=None):
    """Locate the image header.

    An explicit offset wins, then the offset of the named target. With
    neither, every known target is tried in turn, since probing a header is
    harmless. Returns a (target, offset, header) tuple or None.
    """
    if header_offset is not None:
        candidates = [(target, header_offset)]
    elif target is not None:
        candidates = [(target, get_target(target).header_offset)]
    else:
        candidates = [(name, t.header_offset) for name, t in TARGETS.items()]

    for name, offset in candidates:
        header = read_header(window, offset)
        if header is not None:
            logger.debug("Found header at 0x%x (target %s)", offset, name)
            return name, offset, header
    return None


def set_total_image_len(buf, offset, total_image_len):
    """Rewrite the length field of the header in a mutable build buffer."""
    if (offset < 0 or offset + HEADER_SIZE > len(buf) or
            struct.unpack_from('<I', buf, offset)[0] != HEADER_MAGIC):
        raise CabooseConfigError(
            "No image header found at offset 0x{:x}".format(offset))
    struct.pack_into('<I', buf, offset + 4, total_image_len)
