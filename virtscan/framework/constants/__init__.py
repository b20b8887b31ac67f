# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""virtscan Constants.

Stores all the constant values that are generally fixed throughout
virtscan.  This includes page sizes, address widths and logging levels.
"""
from typing import Callable, Optional

from virtscan.framework.constants._version import (
    PACKAGE_VERSION,
    VERSION_MAJOR,
    VERSION_MINOR,
    VERSION_PATCH,
    VERSION_SUFFIX,
)

LOGLEVEL_INFO = 20
"""Logging level for information data"""
LOGLEVEL_DEBUG = 10
"""Logging level for debugging data"""
LOGLEVEL_V = 9
"""Logging level for the lowest "extra" level of logging"""
LOGLEVEL_VV = 8
"""Logging level for two levels of detail"""
LOGLEVEL_VVV = 7
"""Logging level for three levels of detail"""
LOGLEVEL_VVVV = 6
"""Logging level for four levels of detail"""

PAGE_SIZE = 0x1000
"""Size of a standard page, the step used when walking virtual ranges and sweeping buffers"""

LARGE_PAGE_SIZE = 0x200000
"""Size of the block read when a mapping is flagged as a large page"""

MAXIMUM_VIRTUAL_BITS = 48
"""Width of the virtual addresses that can be scanned"""

MAXIMUM_VIRTUAL_ADDRESS = (1 << MAXIMUM_VIRTUAL_BITS) - 1
"""The highest virtual address that can be scanned"""

DEFAULT_SCAN_STOP = 0xFFFFFFFFFFFF
"""The (exclusive) end of a scan when no stop address is given"""

HEADER_SCAN_MASK = 0xF000
"""Mask applied to a single-page request to decide whether the preceding page should be rescanned"""

PROGRESS_INTERVAL_PAGES = 0x100
"""Number of pages walked between calls to a scan's progress callback"""

ProgressCallback = Optional[Callable[[float, str], None]]
"""Type information for ProgressCallback objects"""

CancellationCheck = Optional[Callable[[], bool]]
"""Type information for cancellation predicates, which return True once a scan should stop"""
