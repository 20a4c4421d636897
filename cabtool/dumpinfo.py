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
Parse and print the caboose of an image.
"""
import os.path

import yaml

from .archive import read_caboose
from .caboose import CABOOSE_MAGIC
from .records import CABOOSE_TAGS, tag_name

_LINE_LENGTH = 60


def format_value(value):
    """Show printable values as text and anything else as hex."""
    try:
        text = value.decode('utf-8')
    except UnicodeDecodeError:
        return None
    if text.isprintable():
        return text
    return None


def print_in_frame(header_text, content):
    sepc = " "
    header = "#### " + header_text + sepc
    post_header = "#" * (_LINE_LENGTH - len(header))
    print(header + post_header)

    print("|", sepc * (_LINE_LENGTH - 2), "|", sep="")
    offset = (_LINE_LENGTH - len(content)) // 2
    pre = "|" + (sepc * (offset - 1))
    post = sepc * (_LINE_LENGTH - len(pre) - len(content) - 1) + "|"
    print(pre, content, post, sep="")
    print("|", sepc * (_LINE_LENGTH - 2), "|", sep="")
    print("#" * _LINE_LENGTH)


def print_in_row(row_text):
    row_text = "#### " + row_text + " "
    fill = "#" * (_LINE_LENGTH - len(row_text))
    print(row_text + fill)


def print_records(records):
    indent = _LINE_LENGTH // 8
    for record in records:
        print(" " * indent, "-" * 45)
        name = tag_name(record.tag)
        print(" " * indent, "tag:  {} ({})".format(
            name, CABOOSE_TAGS.get(name, "UNKNOWN")))
        print(" " * indent, "len: ", hex(len(record.value)))
        text = format_value(record.value)
        if text is not None:
            print(" " * indent, "data:  {}".format(text))
            continue
        print(" " * indent, "data: ", end="")
        for j, data in enumerate(record.value):
            print("{0:#04x}".format(data), end=" ")
            if ((j + 1) % 8 == 0) and ((j + 1) != len(record.value)):
                print("\n", end=" " * (indent + 7))
        print()


def caboose_info(caboose):
    if caboose is None:
        return {"caboose": None}
    return {
        "caboose": {
            "start": caboose.region.start,
            "size": caboose.region.length,
            "truncated": caboose.records.truncated,
            "records": [{"tag": tag_name(r.tag), "len": len(r.value),
                         "data": r.value} for r in caboose.records],
        }
    }


def dump_cabooseinfo(imgfile, outfile=None, silent=False, archive=None,
                     target=None, header_offset=None):
    """Print/save the caboose found in an image. Returns the Caboose."""
    caboose = read_caboose(imgfile, archive, target, header_offset)

    if outfile is not None:
        with open(outfile, "w") as outf:
            yaml.dump(caboose_info(caboose), outf, sort_keys=False)

    if silent:
        return caboose

    print("Printing caboose of image:", os.path.basename(str(imgfile)), "\n")
    if caboose is None:
        print_in_frame("Caboose (offset: unknown)", "No caboose found")
        return None

    region = caboose.region
    print_in_row("Caboose (offset: {})".format(hex(region.start)))
    print("magic:    ", hex(CABOOSE_MAGIC))
    print("size:     ", hex(region.length))
    print_records(caboose.records)
    if caboose.records.truncated:
        print("Warning: the last record is truncated!")
    print("#" * _LINE_LENGTH)
    print_in_row("End of Caboose ")
    return caboose
