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

import struct

import pytest

from cabtool.caboose import (CABOOSE_MAGIC, Caboose, CabooseRegion,
                             check_caboose, find_caboose)
from cabtool.header import HEADER_SIZE
from cabtool.layout import build_caboose
from cabtool.records import default_records
from cabtool.window import ReadWindow
from tests.constants import GITC, make_image

IMAGE_LEN = 0x10000
CABOOSE_LEN = 128


def image_with_caboose(records=None, image_len=IMAGE_LEN,
                       caboose_len=CABOOSE_LEN):
    image = make_image(image_len)
    start = image_len - caboose_len
    image[start:] = build_caboose(caboose_len, records)
    return image


class RecordingReader:

    def __init__(self, data):
        self.data = bytes(data)
        self.calls = []

    def __call__(self, offset, size):
        self.calls.append((offset, size))
        assert 0 <= offset and offset + size <= len(self.data)
        return self.data[offset:offset + size]


def test_locate_present():
    image = image_with_caboose()
    assert struct.unpack_from("<I", image, 0xfffc)[0] == 128
    assert struct.unpack_from("<I", image, 0xff80)[0] == CABOOSE_MAGIC

    region = find_caboose(ReadWindow.from_bytes(image), IMAGE_LEN)
    assert region == CabooseRegion(0xff80, 128)
    assert (region.records_start, region.records_end) == (0xff84, 0xfffc)
    assert region.end == IMAGE_LEN


def test_locate_erased_length():
    image = make_image(IMAGE_LEN)
    image[-4:] = b"\xff\xff\xff\xff"
    assert find_caboose(ReadWindow.from_bytes(image), IMAGE_LEN) is None


@pytest.mark.parametrize("image_len", [0, 1, 4, 7, 8, 12, 0x40, 0x100])
@pytest.mark.parametrize("length", [0, 1, 4, 7, 0x41, 0x101, 0x7fffffff,
                                    0xfffffffc, 0xffffffff])
def test_locate_never_out_of_bounds(image_len, length):
    buf = bytearray(b"\x5e\x00\xb0\xca" * (image_len // 4 + 1))[:image_len]
    if image_len >= 4:
        struct.pack_into("<I", buf, image_len - 4, length)
    reader = RecordingReader(buf)
    region = find_caboose(ReadWindow(len(buf), reader), image_len)
    if length > image_len or length < 8:
        assert region is None
    for offset, size in reader.calls:
        assert offset + size <= image_len


@pytest.mark.parametrize("length", [8, 12, 0x40])
def test_locate_magic_everywhere(length):
    # every word is the caboose magic, so any sane length is accepted
    buf = bytearray(struct.pack("<I", CABOOSE_MAGIC) * 0x10)
    struct.pack_into("<I", buf, len(buf) - 4, length)
    region = find_caboose(ReadWindow.from_bytes(buf), len(buf))
    assert region == CabooseRegion(len(buf) - length, length)


@pytest.mark.parametrize("fill", [b"\x00", b"\xff", b"\xa5", b"\x5e"])
def test_locate_magic_mismatch(fill):
    buf = bytearray(fill * 0x100)
    struct.pack_into("<I", buf, 0xfc, 0x40)
    assert find_caboose(ReadWindow.from_bytes(buf), 0x100) is None


def test_locate_image_len_larger_than_window():
    image = image_with_caboose()
    window = ReadWindow.from_bytes(image)
    assert find_caboose(window, IMAGE_LEN + 4) is None
    assert find_caboose(window, 0) is None


def test_locate_in_larger_window():
    # e.g. a full flash dump, where the image is followed by erased flash
    image = image_with_caboose() + b"\xff" * 0x1000
    region = find_caboose(ReadWindow.from_bytes(image), IMAGE_LEN)
    assert region == CabooseRegion(0xff80, 128)


def test_caboose_locate_through_header():
    records = default_records(GITC, "gimlet", "demo", "1.0.0")
    image = image_with_caboose(records)
    caboose = Caboose.locate(image)
    assert caboose.region == CabooseRegion(0xff80, 128)
    assert caboose.get("GITC") == GITC.encode()
    assert caboose.get("VERS") == b"1.0.0"
    assert caboose.as_dict() == {
        "GITC": GITC.encode(),
        "BORD": b"gimlet",
        "NAME": b"demo",
        "VERS": b"1.0.0",
    }


def test_caboose_locate_without_header():
    image = image_with_caboose()
    image[0x298:0x29c] = b"\x00" * 4
    assert Caboose.locate(image) is None
    assert Caboose.locate(image, image_len=IMAGE_LEN) is not None


def test_caboose_empty():
    caboose = Caboose.locate(image_with_caboose())
    assert len(caboose.records) == 0
    assert not caboose.records.truncated
    assert caboose.get("VERS") is None


def test_caboose_device_reads_stay_in_bounds():
    records = default_records(GITC, "gimlet", "demo")
    image = image_with_caboose(records)
    reader = RecordingReader(image)
    caboose = Caboose.locate(ReadWindow(len(image), reader),
                             target="armv7m")
    assert caboose.get("NAME") == b"demo"
    assert (0xff84, 0xfffc - 0xff84) in reader.calls



def test_caboose_short_device_read():
    image = image_with_caboose(default_records(GITC, "gimlet", "demo"))
    reader = RecordingReader(image)

    def short_read(offset, size):
        # the header and boundary words fit, the records do not
        return reader(offset, size)[:HEADER_SIZE]

    caboose = Caboose.locate(ReadWindow(len(image), short_read),
                             target="armv7m")
    assert caboose.region.records_start == 0xff84
    assert caboose.records.truncated
    assert len(caboose.records) == 0


def test_caboose_decode_twice():
    records = default_records(GITC, "gimlet", "demo", "2.1")
    image = bytes(image_with_caboose(records))
    first = Caboose.locate(image)
    second = Caboose.locate(image)
    assert first.records == second.records
    assert first.region == second.region


def test_check_caboose():
    image = image_with_caboose()
    window = ReadWindow.from_bytes(image)
    assert check_caboose(window, 0xff80, 128) == CabooseRegion(0xff80, 128)
    assert check_caboose(window, 0xff00, 256) is None
    assert check_caboose(window, 0xff80, 0x100) is None
    assert check_caboose(window, -4, 128) is None
    assert check_caboose(window, 0xff80, 4) is None
    assert Caboose.at(image, 0xff80, 128) is not None
    assert Caboose.at(image, 0xff84, 124) is None
