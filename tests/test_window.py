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

import pytest

from cabtool.window import ReadWindow


def test_read_in_bounds():
    window = ReadWindow.from_bytes(b"\x01\x02\x03\x04\x05")
    assert len(window) == 5
    assert window.read(1, 3) == b"\x02\x03\x04"
    assert window.read(0, 5) == b"\x01\x02\x03\x04\x05"
    assert window.read(5, 0) == b""
    assert window.read_u32(0) == 0x04030201


@pytest.mark.parametrize("offset, size", [
    (-1, 1), (0, -1), (0, 6), (2, 4), (5, 1), (0xffffffff, 4),
])
def test_read_out_of_bounds(offset, size):
    calls = []

    def reader(offset, size):
        calls.append((offset, size))
        return bytes(size)

    window = ReadWindow(5, reader)
    assert window.read(offset, size) is None
    assert calls == []


def test_read_u32_out_of_bounds():
    window = ReadWindow.from_bytes(b"\x00" * 6)
    assert window.read_u32(3) is None
    assert window.read_u32(2) == 0


def test_short_read_is_rejected():
    window = ReadWindow(8, lambda offset, size: b"\x00")
    assert window.read(0, 4) is None


def test_sub_window():
    window = ReadWindow.from_bytes(bytes(range(16)))
    sub = window.sub(4, 8)
    assert len(sub) == 8
    assert sub.read(0, 2) == b"\x04\x05"
    assert sub.read(6, 2) == b"\x0a\x0b"
    assert sub.read(7, 2) is None
    assert window.sub(10, 8) is None


def test_negative_length():
    with pytest.raises(ValueError):
        ReadWindow(-1, lambda offset, size: b"")
