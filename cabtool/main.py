#! /usr/bin/env python3
#
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

import logging
import os.path
import sys

import click

from cabtool import cabtool_version
from .archive import (ARCHIVE_EXT, file_ext, find_image_caboose, git_commit,
                      load_image, make_manifest, manifest_int, open_image,
                      read_caboose, read_archive, save_image, write_archive)
from .bake import PositionBaker
from .caboose import CabooseRegion
from . import config as cfgmod
from .dumpinfo import dump_cabooseinfo, format_value
from .errors import CabooseError
from .header import TARGETS
from .layout import (Allocation, IsolationTable, TrailerPosition,
                     allocate_caboose, append_caboose, build_caboose,
                     rewrite_caboose)
from .records import default_records
from .window import U32_MAX

MIN_PYTHON_VERSION = (3, 6)
if sys.version_info < MIN_PYTHON_VERSION:
    sys.exit("Python %s.%s or newer is required by cabtool."
             % MIN_PYTHON_VERSION)


class BasedIntParamType(click.ParamType):
    name = 'integer'

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            return int(value, 0)
        except ValueError:
            self.fail('%s is not a valid integer. Please use code literals '
                      'prefixed with 0b/0B, 0o/0O, or 0x/0X as necessary.'
                      % value, param, ctx)


def get_custom_tags(custom_tag):
    tags = []
    for tag, value in custom_tag:
        if value.startswith('0x'):
            if len(value[2:]) % 2:
                raise click.UsageError('Custom tag value length is odd.')
            tags.append((tag, bytes.fromhex(value[2:])))
        else:
            tags.append((tag, value.encode('utf-8')))
    return tags


def image_name(path):
    return os.path.splitext(os.path.basename(str(path)))[0]


def print_value(value):
    text = format_value(value)
    print(text if text is not None else value.hex())


@click.argument('outfile')
@click.argument('infile')
@click.option('-a', '--archive', metavar='filename',
              help='Also write a build archive containing the final image '
                   'and its manifest')
@click.option('-B', '--base-addr', type=BasedIntParamType(), required=False,
              help='Address of the first byte of INFILE. Defaults to the '
                   'Intel HEX start address, or the start of the caboose '
                   'memory region.')
@click.option('--version', metavar='version',
              help='Version string to record in the caboose (VERS)')
@click.option('-n', '--name', metavar='name',
              help='Image name (NAME). Defaults to the INFILE base name.')
@click.option('--board', metavar='board',
              help='Board name (BORD). Defaults to the configured target.')
@click.option('--gitc', metavar='commit',
              help='Commit identifier (GITC). Defaults to the checked out '
                   'git commit.')
@click.option('-c', '--config', metavar='filename', required=True,
              help='YAML build configuration')
@click.command(help='''Append a caboose to a linked image\n
               INFILE and OUTFILE are parsed as Intel HEX if the params have
               .hex extension, otherwise binary format is used''')
def build(config, gitc, board, name, version, base_addr, archive, infile,
          outfile):
    try:
        cfg = cfgmod.load_config(config)
        image, hex_base = load_image(infile)
        if base_addr is None:
            base_addr = hex_base
        if base_addr is None and cfg.caboose.region in cfg.memory:
            base_addr = cfg.memory[cfg.caboose.region].base
        if base_addr is None:
            raise click.UsageError("No base address known for {}".format(
                infile))

        records = None
        if cfg.caboose.default:
            gitc = gitc or git_commit()
            if gitc is None:
                raise click.UsageError("No git commit found, use --gitc")
            records = default_records(gitc, board or cfg.target,
                                      name or image_name(infile), version)

        allocations = list(cfg.allocations)
        allocations.append(Allocation('image', cfg.caboose.region,
                                      base_addr, len(image)))
        isolation = IsolationTable()
        position = allocate_caboose(cfg.caboose, cfg.memory, allocations,
                                    cfgmod.alignment_rule(cfg), isolation,
                                    cfg.tasks)
        caboose = build_caboose(position.length, records)
        hdr_off = cfgmod.header_offset(cfg)
        final = append_caboose(image, base_addr, position, caboose, hdr_off)
    except CabooseError as e:
        raise click.UsageError(e)

    save_image(outfile, final, base_addr)
    if archive is not None:
        write_archive(archive, final, make_manifest(
            name or image_name(infile), cfg.target, hdr_off, base_addr,
            position, isolation))
    print("Caboose: 0x{:x} bytes at 0x{:x}".format(position.length,
                                                   position.address))


@click.argument('imgfile')
@click.option('--tag', metavar='tag',
              help='Only print the value of this tag')
@click.option('-H', '--header-offset', type=BasedIntParamType(),
              help='Offset of the image header')
@click.option('-t', '--target', type=click.Choice(list(TARGETS)),
              help='Target the image was built for')
@click.option('-a', '--archive', metavar='filename',
              help='Build archive IMGFILE was produced from')
@click.command(help='Print the caboose records of an image or build archive')
def read(archive, target, header_offset, tag, imgfile):
    caboose = read_caboose(imgfile, archive, target, header_offset)
    if caboose is None:
        print("No caboose found")
        if tag is not None:
            sys.exit(1)
        return
    if tag is not None:
        value = caboose.get(tag)
        if value is None:
            print("Tag {} not found".format(tag))
            sys.exit(1)
        print_value(value)
        return
    for key, value in caboose.as_dict().items():
        print("{}: ".format(key), end="")
        print_value(value)
    if caboose.records.truncated:
        print("Warning: the caboose records are truncated")


@click.argument('imgfile')
@click.option('-H', '--header-offset', type=BasedIntParamType(),
              help='Offset of the image header')
@click.option('-t', '--target', type=click.Choice(list(TARGETS)),
              help='Target the image was built for')
@click.option('-a', '--archive', metavar='filename',
              help='Build archive IMGFILE was produced from')
@click.option('-o', '--outfile', metavar='filename', required=False,
              help='Save caboose information to outfile in YAML format')
@click.option('-s', '--silent', default=False, is_flag=True,
              help='Do not print caboose information to output')
@click.command(help='Print the location and records of the caboose of an '
                    'image')
def dumpinfo(imgfile, outfile, silent, archive, target, header_offset):
    dump_cabooseinfo(imgfile, outfile, silent, archive, target,
                     header_offset)
    if not silent:
        print("dumpinfo has run successfully")


@click.argument('outfile')
@click.argument('infile')
@click.option('--remove-tag', metavar='tag', multiple=True,
              help='Remove a record. Specify the option multiple times to '
                   'remove multiple records.')
@click.option('--custom-tag', required=False, nargs=2, default=[],
              multiple=True, metavar='[tag] [value]',
              help='Record to add or replace. Add "0x" prefix if the value '
                   'should be interpreted as hex bytes, otherwise it will be '
                   'interpreted as a string. Specify the option multiple '
                   'times to add multiple records.')
@click.option('--version', metavar='version',
              help='Version string to record in the caboose (VERS)')
@click.option('-H', '--header-offset', type=BasedIntParamType(),
              help='Offset of the image header')
@click.option('-t', '--target', type=click.Choice(list(TARGETS)),
              help='Target the image was built for')
@click.option('-a', '--archive', metavar='filename',
              help='Build archive INFILE was produced from')
@click.command(help='''Write a new image with edited caboose records\n
               INFILE may be an image or a build archive. OUTFILE is written
               as a build archive if it has a .zip extension.''')
def write(archive, target, header_offset, version, custom_tag, remove_tag,
          infile, outfile):
    image, image_base, manifest = open_image(infile, archive)
    caboose = find_image_caboose(image, image_base, manifest, target,
                                 header_offset)
    if caboose is None:
        raise click.UsageError("No caboose found in {}".format(infile))

    updates = get_custom_tags(custom_tag)
    if version is not None:
        updates.append(('VERS', version))
    updates.extend((tag, None) for tag in remove_tag)
    try:
        new_image = rewrite_caboose(image, caboose.region, updates)
    except CabooseError as e:
        raise click.UsageError(e)

    if file_ext(outfile) == ARCHIVE_EXT:
        if manifest is None:
            raise click.UsageError("A build archive can only be written "
                                   "from a build archive")
        write_archive(outfile, new_image, manifest)
    else:
        if image_base is None and manifest is not None:
            image_base = manifest.get('base_addr')
        save_image(outfile, new_image, image_base)


@click.argument('outfile')
@click.argument('infile')
@click.option('--length', type=BasedIntParamType(),
              help='Caboose length, instead of reading it from --archive')
@click.option('--address', type=BasedIntParamType(),
              help='Caboose address, instead of reading it from --archive')
@click.option('-a', '--archive', metavar='filename',
              help='Build archive recording the final caboose position')
@click.command(help='Patch the caboose position placeholder of a task image')
def bake(archive, address, length, infile, outfile):
    if archive is not None:
        _, manifest = read_archive(archive)
        cab = manifest.get('caboose')
        if not isinstance(cab, dict):
            cab = {}
        address = manifest_int(cab.get('address'))
        length = manifest_int(cab.get('size'))
        if address is None or length is None:
            raise click.UsageError("No caboose position in {}".format(
                archive))
        position = TrailerPosition(address, length)
    elif address is not None and length is not None:
        position = TrailerPosition(address, length)
    else:
        raise click.UsageError("Either --archive or both --address and "
                               "--length are required")
    if not (0 <= position.address <= U32_MAX and
            0 <= position.length <= U32_MAX):
        raise click.UsageError("Caboose position 0x{:x}+0x{:x} does not fit "
                               "in 32 bits".format(position.address,
                                                   position.length))

    image, base_addr = load_image(infile)
    consumer = image_name(infile)
    baker = PositionBaker()
    try:
        baker.reserve(consumer, image)
        baked = baker.patch(consumer, image, position)
    except CabooseError as e:
        raise click.UsageError(e)
    save_image(outfile, baked, base_addr)
    region = CabooseRegion(position.address, position.length)
    print("Baked caboose 0x{:x}..0x{:x} into {}".format(
        region.start, region.end, consumer))


class AliasesGroup(click.Group):

    _aliases = {
        "info": "dumpinfo",
    }

    def list_commands(self, ctx):
        cmds = [k for k in self.commands]
        aliases = [k for k in self._aliases]
        return sorted(cmds + aliases)

    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        if cmd_name in self._aliases:
            return click.Group.get_command(self, ctx, self._aliases[cmd_name])
        return None


@click.command(help='Print cabtool version information')
def version():
    print(cabtool_version)


@click.option('-v', '--verbose', default=False, is_flag=True,
              help='Log locate and layout decisions')
@click.command(cls=AliasesGroup,
               context_settings=dict(help_option_names=['-h', '--help']))
def cabtool(verbose):
    if verbose:
        logging.basicConfig(format='%(levelname)5s: %(message)s',
                            level=logging.DEBUG, stream=sys.stdout)


cabtool.add_command(build)
cabtool.add_command(read)
cabtool.add_command(dumpinfo)
cabtool.add_command(write)
cabtool.add_command(bake)
cabtool.add_command(version)


if __name__ == '__main__':
    cabtool()
