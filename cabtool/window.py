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
Bounds-checked access to image bytes.

Offsets handed to a window usually come from the image itself, so every
request is validated against the known length before the underlying
reader is touched.
"""

import struct

U32_MAX = 0xffffffff


class ReadWindow:

    def __init__(self, length, reader):
        if length < 0:
            raise ValueError("window length must not be negative")
        self.length = length
        self._reader = reader

    @classmethod
    def from_bytes(cls, data):
        data = bytes(data)
        return cls(len(data), lambda offset, size: data[offset:offset + size])

    def __len__(self):
        return self.length

    def __repr__(self):
        return "<ReadWindow length=0x{:x}>".format(self.length)

    def contains(self, offset, size):
        if offset < 0 or size < 0:
            return False
        return offset + size <= self.length

    def read(self, offset, size):
        """Return `size` bytes at `offset`, or None if out of range."""
        if not self.contains(offset, size):
            return None
        data = bytes(self._reader(offset, size))
        if len(data) != size:
            # Short read from the backing source
            return None
        return data

    def read_u32(self, offset):
        data = self.read(offset, 4)
        if data is None:
            return None
        return struct.unpack('<I', data)[0]

    def sub(self, offset, size):
        if not self.contains(offset, size):
            return None
        reader = self._reader
        return ReadWindow(size, lambda o, s: reader(offset + o, s))
