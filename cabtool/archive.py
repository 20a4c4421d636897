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
Image files and build archives.

Images are read and written as raw binaries or, with a .hex extension, as
Intel HEX. A build archive is a zip file holding the final image together
with a YAML manifest describing where the caboose was placed.
"""

import logging
import os.path
import subprocess
import zipfile

import click
import yaml
from intelhex import IntelHex

from .caboose import Caboose
from .header import TARGETS
from .window import ReadWindow

logger = logging.getLogger(__name__)

BIN_EXT = "bin"
INTEL_HEX_EXT = "hex"
ARCHIVE_EXT = "zip"
ARCHIVE_IMAGE = "img/final.bin"
ARCHIVE_MANIFEST = "image-info.yaml"
COMMIT_ID_LEN = 12
DIRTY_SUFFIX = "+"


def file_ext(path):
    return os.path.splitext(str(path))[1][1:].lower()


def load_image(path):
    """Load an image file, returning its bytes and base address.

    The base address is only known for Intel HEX input and is None
    otherwise.
    """
    try:
        if file_ext(path) == INTEL_HEX_EXT:
            ih = IntelHex(str(path))
            return bytes(ih.tobinarray()), ih.minaddr()
        with open(path, 'rb') as f:
            return f.read(), None
    except FileNotFoundError:
        raise click.UsageError("Image file not found ({})".format(path))


def save_image(path, data, base_addr=None):
    if file_ext(path) == INTEL_HEX_EXT:
        if base_addr is None:
            raise click.UsageError("No address exists in input file "
                                   "neither was it provided by user")
        h = IntelHex()
        h.frombytes(bytes=data, offset=base_addr)
        h.tofile(str(path), 'hex')
    else:
        with open(path, 'wb') as f:
            f.write(data)


def make_manifest(name, target, header_offset, base_addr, position,
                  isolation):
    return {
        'name': name,
        'target': target,
        'header_offset': header_offset,
        'base_addr': base_addr,
        'caboose': {
            'address': position.address,
            'offset': position.address - base_addr,
            'size': position.length,
        },
        'grants': isolation.to_dict(),
    }


def write_archive(path, image, manifest):
    with zipfile.ZipFile(str(path), 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(ARCHIVE_IMAGE, image)
        zf.writestr(ARCHIVE_MANIFEST, yaml.dump(manifest, sort_keys=False))


def read_archive(path):
    """Return the final image and the manifest of a build archive."""
    try:
        with zipfile.ZipFile(str(path)) as zf:
            image = zf.read(ARCHIVE_IMAGE)
            manifest = yaml.safe_load(zf.read(ARCHIVE_MANIFEST))
    except FileNotFoundError:
        raise click.UsageError("Archive file not found ({})".format(path))
    except (zipfile.BadZipFile, KeyError) as e:
        raise click.UsageError("Invalid build archive {}: {}".format(path, e))
    if not isinstance(manifest, dict):
        raise click.UsageError("Invalid manifest in {}".format(path))
    return image, manifest


def manifest_int(value):
    """Read an integer field of a manifest that may have been edited by
    hand. Returns None for anything that is not an integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value), 0)
    except ValueError:
        return None


def manifest_target(manifest):
    target = manifest.get('target')
    if isinstance(target, str) and target in TARGETS:
        return target
    if target is not None:
        logger.debug("Ignoring unknown target %r in manifest", target)
    return None


def caboose_from_manifest(window, manifest, image_base=None):
    """Use the caboose position recorded in a manifest."""
    cab = manifest.get('caboose')
    if not isinstance(cab, dict):
        return None
    size = manifest_int(cab.get('size'))
    if image_base is None:
        offset = manifest_int(cab.get('offset'))
    else:
        offset = manifest_int(cab.get('address'))
        if offset is not None:
            offset -= image_base
    if offset is None or size is None:
        return None
    return Caboose.at(window, offset, size)


def open_image(imgfile, archive=None):
    """Load an image file, returning (image, image_base, manifest).

    `imgfile` may be a build archive, or an image optionally paired with
    the `archive` it was built into.
    """
    manifest = None
    image_base = None
    if file_ext(imgfile) == ARCHIVE_EXT:
        image, manifest = read_archive(imgfile)
    else:
        image, image_base = load_image(imgfile)
        if archive is not None:
            _, manifest = read_archive(archive)
            if image_base is None:
                image_base = manifest_int(manifest.get('base_addr'))
    return image, image_base, manifest


def find_image_caboose(image, image_base=None, manifest=None, target=None,
                       header_offset=None):
    """Find the caboose, at its recorded position if there is a manifest,
    otherwise through the image header."""
    window = ReadWindow.from_bytes(image)
    if manifest is not None:
        caboose = caboose_from_manifest(window, manifest, image_base)
        if caboose is not None:
            logger.debug("Caboose found at recorded position")
            return caboose
        if target is None:
            target = manifest_target(manifest)
        if header_offset is None:
            header_offset = manifest_int(manifest.get('header_offset'))
    return Caboose.locate(window, target=target, header_offset=header_offset)


def read_caboose(imgfile, archive=None, target=None, header_offset=None):
    image, image_base, manifest = open_image(imgfile, archive)
    return find_image_caboose(image, image_base, manifest, target,
                              header_offset)


def format_commit(sha, dirty):
    return sha[:COMMIT_ID_LEN] + (DIRTY_SUFFIX if dirty else "")


def git_commit(path="."):
    """Describe the checked out commit, or None outside of a git tree."""
    try:
        sha = subprocess.check_output(
            ['git', 'rev-parse', 'HEAD'], cwd=path,
            stderr=subprocess.DEVNULL).decode().strip()
        dirty = subprocess.call(
            ['git', 'diff-index', '--quiet', 'HEAD', '--'], cwd=path,
            stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL) != 0
    except (OSError, subprocess.CalledProcessError):
        return None
    return format_commit(sha, dirty)
