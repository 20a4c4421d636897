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

from cabtool import config as cfgmod
from cabtool.errors import CabooseConfigError
from cabtool.layout import Allocation, MemoryRegion, RegionConfig
from tests.constants import FLASH_BASE, tmp_name, write_config


def test_load_config(tmp_path):
    cfg = cfgmod.load_config(write_config(tmp_path))
    assert cfg.target == "armv7m"
    assert cfg.header_offset is None
    assert cfg.memory["flash"] == MemoryRegion("flash", FLASH_BASE, 0x10000)
    assert cfg.tasks == ["jefe", "sys", "update_server", "hiffy"]
    assert cfg.caboose == RegionConfig("flash", 256,
                                       ["update_server", "hiffy"], True)
    assert cfgmod.header_offset(cfg) == 0x298
    assert cfgmod.alignment_rule(cfg).minimum == 32


def test_load_config_no_default(tmp_path):
    cfg = cfgmod.load_config(write_config(tmp_path, default="false"))
    assert cfg.caboose.default is False


def test_parse_config_strings_and_allocations():
    cfg = cfgmod.parse_config({
        "target": "riscv32",
        "header_offset": "0x200",
        "memory": {"flash": {"base": "0x20000000", "size": "65536"}},
        "allocations": [
            {"name": "kernel", "region": "flash", "base": 0x20000000,
             "size": "0x4000"},
        ],
        "caboose": {"region": "flash", "size": "0x100"},
    })
    assert cfg.header_offset == 0x200
    assert cfgmod.header_offset(cfg) == 0x200
    assert cfg.memory["flash"].size == 0x10000
    assert cfg.allocations == [
        Allocation("kernel", "flash", 0x20000000, 0x4000)]
    assert cfg.tasks is None
    assert cfg.caboose.readers == frozenset()
    assert cfg.caboose.default is True


@pytest.mark.parametrize("data", [
    None,
    [],
    {"memory": {}, "caboose": {"region": "flash", "size": 256}},
    {"target": "z80", "memory": {}, "caboose": {}},
    {"target": "armv7m", "caboose": {"region": "flash", "size": 256}},
    {"target": "armv7m", "memory": [], "caboose": {}},
    {"target": "armv7m", "memory": {"flash": {"base": 0}},
     "caboose": {"region": "flash", "size": 256}},
    {"target": "armv7m", "memory": {}},
    {"target": "armv7m", "memory": {}, "caboose": "flash"},
    {"target": "armv7m", "memory": {}, "caboose": {"size": 256}},
    {"target": "armv7m", "memory": {},
     "caboose": {"region": "flash", "size": "big"}},
    {"target": "armv7m", "memory": {},
     "caboose": {"region": "flash", "size": True}},
])
def test_parse_config_invalid(data):
    with pytest.raises(CabooseConfigError):
        cfgmod.parse_config(data)


def test_load_config_missing(tmp_path):
    with pytest.raises(CabooseConfigError):
        cfgmod.load_config(tmp_name(tmp_path, "missing", ".yaml"))


def test_load_config_bad_yaml(tmp_path):
    path = tmp_name(tmp_path, "bad", ".yaml")
    path.write_text("target: [armv7m\n")
    with pytest.raises(CabooseConfigError):
        cfgmod.load_config(path)
