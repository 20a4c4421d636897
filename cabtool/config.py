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
Build configuration.

The caboose is configured alongside the memory map of the image, e.g.:

    target: armv7m
    memory:
      flash: {base: 0x08000000, size: 0x100000}
    tasks: [jefe, sys, update_server]
    caboose:
      region: flash
      size: 256
      tasks: [update_server]
"""

from collections import namedtuple

import yaml

from .errors import CabooseConfigError
from .header import get_target
from .layout import AlignmentRule, Allocation, MemoryRegion, RegionConfig

BuildConfig = namedtuple('BuildConfig', ['target', 'header_offset', 'memory',
                                         'allocations', 'tasks', 'caboose'])


def cvt_int(val, desc):
    if isinstance(val, bool):
        raise CabooseConfigError("Invalid value for {}: {!r}".format(desc, val))
    if isinstance(val, int):
        return val
    try:
        return int(str(val), 0)
    except ValueError:
        raise CabooseConfigError("Invalid value for {}: {!r}".format(desc, val))


def get_val(obj, attr, desc):
    try:
        return obj[attr]
    except (KeyError, TypeError):
        raise CabooseConfigError("Missing '{}' in {}".format(attr, desc))


def parse_config(data):
    if not isinstance(data, dict):
        raise CabooseConfigError("Configuration must be a mapping")

    target = get_val(data, 'target', 'configuration')
    get_target(target)
    header_offset = data.get('header_offset')
    if header_offset is not None:
        header_offset = cvt_int(header_offset, 'header_offset')

    areas = get_val(data, 'memory', 'configuration')
    if not isinstance(areas, dict):
        raise CabooseConfigError("'memory' must be a mapping")
    memory = {}
    for name, area in areas.items():
        memory[name] = MemoryRegion(
            name,
            cvt_int(get_val(area, 'base', "memory '{}'".format(name)),
                    "memory '{}' base".format(name)),
            cvt_int(get_val(area, 'size', "memory '{}'".format(name)),
                    "memory '{}' size".format(name)))

    allocations = []
    for area in data.get('allocations') or []:
        name = get_val(area, 'name', 'allocation')
        desc = "allocation '{}'".format(name)
        allocations.append(Allocation(
            name,
            get_val(area, 'region', desc),
            cvt_int(get_val(area, 'base', desc), desc + ' base'),
            cvt_int(get_val(area, 'size', desc), desc + ' size')))

    tasks = data.get('tasks')
    if tasks is not None:
        tasks = [str(t) for t in tasks]

    cab = get_val(data, 'caboose', 'configuration')
    if not isinstance(cab, dict):
        raise CabooseConfigError("'caboose' must be a mapping")
    caboose = RegionConfig(
        get_val(cab, 'region', 'caboose'),
        cvt_int(get_val(cab, 'size', 'caboose'), 'caboose size'),
        [str(t) for t in cab.get('tasks') or []],
        bool(cab.get('default', True)))

    return BuildConfig(target, header_offset, memory, allocations, tasks,
                       caboose)


def load_config(path):
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise CabooseConfigError("Configuration file not found ({})".format(
            path))
    except yaml.YAMLError as e:
        raise CabooseConfigError("Invalid configuration file: {}".format(e))
    return parse_config(data)


def alignment_rule(config):
    return AlignmentRule(get_target(config.target).min_region_size)


def header_offset(config):
    if config.header_offset is not None:
        return config.header_offset
    return get_target(config.target).header_offset
