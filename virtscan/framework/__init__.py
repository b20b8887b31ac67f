# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""virtscan framework."""
import sys

if sys.version_info < (3, 8):
    raise RuntimeError("virtscan framework requires python version 3.8.0 or greater")

import logging
from typing import Tuple

from virtscan.framework import constants, interfaces

vollog = logging.getLogger(__name__)


def interface_version() -> Tuple[int, int, int]:
    """Provides the version of the framework's component interfaces."""
    return constants.VERSION_MAJOR, constants.VERSION_MINOR, constants.VERSION_PATCH


def require_interface_version(*args) -> None:
    """Raises a RuntimeError unless the framework offers the (major, minor)
    interface version a component was written against.

    The major version must match exactly, the framework's minor version
    must be at least the one requested.
    """
    current = interface_version()
    if args and args[0] != current[0]:
        raise RuntimeError(
            f"Framework interface version {current[0]} is incompatible with required version {args[0]}"
        )
    if len(args) > 1 and args[1] > current[1]:
        raise RuntimeError(
            f"Framework interface version {current[0]}.{current[1]} is older than the required version {args[0]}.{args[1]}"
        )
