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
Baking the caboose position into a task image.

A task that wants to know where the caboose is without searching for it
links a placeholder constant into its image. Once the final layout is
known, the placeholder is overwritten in place with the caboose address and
length. The patch has the same size as the placeholder, so nothing needs
to be relinked.
"""

import logging
import struct
from collections import namedtuple

from .errors import BakeError
from .layout import TrailerPosition

logger = logging.getLogger(__name__)

PLACEHOLDER_FMT = '<II'
PLACEHOLDER_SIZE = struct.calcsize(PLACEHOLDER_FMT)
PLACEHOLDER = struct.pack(PLACEHOLDER_FMT, 0x5e00b0ca, 0xcab0005e)

BakeSlot = namedtuple('BakeSlot', ['consumer', 'offset'])


def placeholder_bytes():
    return PLACEHOLDER


class PositionBaker:
    """Two-phase patching of caboose positions into task images.

    reserve() is called on each task image as linked; patch() is called with
    the final position once the layout is complete. No reservations are
    accepted after the first patch.
    """

    def __init__(self):
        self.slots = {}
        self.patched = set()

    def reserve(self, consumer, image):
        if self.patched:
            raise BakeError("Cannot reserve '{}' after patching "
                            "started".format(consumer))
        if consumer in self.slots:
            raise BakeError("'{}' already has a reserved slot".format(
                consumer))
        offset = image.find(PLACEHOLDER)
        if offset < 0:
            raise BakeError("No caboose placeholder found in '{}'".format(
                consumer))
        if image.find(PLACEHOLDER, offset + 1) >= 0:
            raise BakeError("Multiple caboose placeholders found in "
                            "'{}'".format(consumer))
        slot = BakeSlot(consumer, offset)
        self.slots[consumer] = slot
        logger.debug("Reserved caboose slot for %s at 0x%x", consumer, offset)
        return slot

    def patch(self, consumer, image, position):
        try:
            slot = self.slots[consumer]
        except KeyError:
            raise BakeError("'{}' has no reserved slot".format(consumer))
        end = slot.offset + PLACEHOLDER_SIZE
        if image[slot.offset:end] != PLACEHOLDER:
            raise BakeError("Placeholder for '{}' is no longer at "
                            "0x{:x}".format(consumer, slot.offset))
        buf = bytearray(image)
        buf[slot.offset:end] = struct.pack(PLACEHOLDER_FMT,
                                           position.address, position.length)
        self.patched.add(consumer)
        logger.debug("Baked caboose position 0x%x+0x%x into %s",
                     position.address, position.length, consumer)
        return bytes(buf)


def read_baked_position(image, offset):
    """Return the baked TrailerPosition, or None if not baked yet."""
    if offset < 0 or offset + PLACEHOLDER_SIZE > len(image):
        return None
    data = bytes(image[offset:offset + PLACEHOLDER_SIZE])
    if data == PLACEHOLDER:
        return None
    return TrailerPosition(*struct.unpack(PLACEHOLDER_FMT, data))
