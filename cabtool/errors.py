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
Build-time errors.

Decoding never raises for malformed images; these only come out of the
build, configuration and rewrite paths.
"""


class CabooseError(Exception):
    """Base class for cabtool errors"""


class CabooseConfigError(CabooseError):
    """The build configuration is invalid"""


class AlignmentViolation(CabooseConfigError):
    """The caboose size cannot be expressed as a protected region"""


class RegionOverflow(CabooseError):
    """The caboose does not fit in its backing memory region"""


class RecordOverflow(CabooseError):
    """The encoded records exceed the caboose capacity"""


class BakeError(CabooseError):
    """A baked position placeholder could not be reserved or patched"""


class CabooseCorrupt(CabooseError):
    """The existing caboose records cannot be decoded completely"""
