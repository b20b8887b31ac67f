# This file is used to augment the test configuration

import itertools
import os
import struct

import pytest

from virtscan.framework import constants, contexts
from virtscan.framework.layers import intel, physical
from virtscan.framework.layers.scanners import virtual

MEMORY_SIZE = 0x400000
TABLE_BASE = 0x1000
DATA_BASE = 0x100000
LARGE_PAGE_BASE = 0x200000

ENTRY_FLAGS = 0x3
EPT_ENTRY_FLAGS = 0x7
EPT_POINTER_FLAGS = 0x1E


def pytest_addoption(parser):
    parser.addoption(
        "--image", action="append", default=[], help="path to an image to test"
    )

    parser.addoption(
        "--image-dir",
        action="append",
        default=[],
        help="path to a directory containing images to test",
    )

    parser.addoption(
        "--dtb",
        action="store",
        default=None,
        help="page map offset (DTB) of an address space within the images",
    )


def pytest_generate_tests(metafunc):
    """Parameterize tests based on image names"""

    images = metafunc.config.getoption("image")
    for image_dir in metafunc.config.getoption("image_dir"):
        images = images + [
            os.path.join(image_dir, dir) for dir in os.listdir(image_dir)
        ]

    # tests with "image" parameter are run against images
    if "image" in metafunc.fixturenames:
        metafunc.parametrize(
            "image", images, ids=[os.path.basename(image) for image in images]
        )


class PageTables:
    """Lays out four level paging structures inside a flat physical memory
    buffer, allocating a fresh table page whenever a walk needs one."""

    def __init__(
        self,
        memory: bytearray,
        table_base: int = TABLE_BASE,
        flags: int = ENTRY_FLAGS,
    ) -> None:
        self.memory = memory
        self.flags = flags
        self._next_table = table_base
        self.root = self._allocate()

    def _allocate(self) -> int:
        address = self._next_table
        self._next_table += constants.PAGE_SIZE
        return address

    def _entry(self, table: int, index: int) -> int:
        return struct.unpack_from("<Q", self.memory, table + index * 8)[0]

    def _set_entry(self, table: int, index: int, value: int) -> None:
        struct.pack_into("<Q", self.memory, table + index * 8, value)

    def map(self, virtual_address: int, physical_address: int, large: bool = False):
        """Maps the page (or 2MiB large page) at virtual_address onto
        physical_address."""
        shifts = (39, 30) if large else (39, 30, 21)
        table = self.root
        for shift in shifts:
            index = (virtual_address >> shift) & 0x1FF
            entry = self._entry(table, index)
            if not entry:
                entry = self._allocate() | self.flags
                self._set_entry(table, index, entry)
            table = entry & 0x000FFFFFFFFFF000
        index = (virtual_address >> (21 if large else 12)) & 0x1FF
        self._set_entry(
            table, index, physical_address | self.flags | (0x80 if large else 0)
        )


def build_pe_header(
    machine: int = 0x8664,
    timestamp: int = 0x5F5E1000,
    characteristics: int = 0x22,
    image_base: int = 0x140000000,
    size_of_image: int = 0x5000,
    entry_point: int = 0x1000,
    subsystem: int = 2,
    dll: bool = False,
) -> bytes:
    """Builds a minimal PE32+ header with no sections."""
    header = bytearray(0x200)
    header[0:2] = b"MZ"
    struct.pack_into("<I", header, 0x3C, 0x80)
    header[0x80:0x84] = b"PE\x00\x00"
    if dll:
        characteristics |= 0x2000
    struct.pack_into(
        "<HHIIIHH", header, 0x84, machine, 0, timestamp, 0, 0, 0xF0, characteristics
    )
    optional = 0x98
    struct.pack_into("<H", header, optional, 0x20B)
    struct.pack_into("<I", header, optional + 16, entry_point)
    struct.pack_into("<Q", header, optional + 24, image_base)
    struct.pack_into("<II", header, optional + 32, 0x1000, 0x200)
    struct.pack_into("<II", header, optional + 56, size_of_image, 0x400)
    struct.pack_into("<H", header, optional + 68, subsystem)
    struct.pack_into("<I", header, optional + 108, 16)
    return bytes(header)


# Fixtures
@pytest.fixture
def image_dtb(request):
    value = request.config.getoption("--dtb")
    if value is None:
        pytest.skip("No --dtb provided for the image")
    return int(value, 0)


@pytest.fixture
def memory():
    return bytearray(MEMORY_SIZE)


@pytest.fixture
def page_tables(memory):
    return PageTables(memory)


@pytest.fixture
def pe_header():
    return build_pe_header()


@pytest.fixture
def make_backend():
    """Returns a function building a context holding the given physical
    memory, and an Intel32e backend over it."""

    def _make_backend(data: bytes):
        context = contexts.Context()
        context.add_layer(
            physical.BufferDataLayer(context, "physical", "physical", data)
        )
        context.config["backend.memory_layer"] = "physical"
        return context, intel.Intel32e(context, "backend", "backend")

    return _make_backend


@pytest.fixture
def make_scanner():
    """Returns a function building a VirtualScanner configured with the
    given keyword settings."""

    paths = itertools.count()

    def _make_scanner(context, backend, **kwargs):
        config_path = f"scanner{next(paths)}"
        for key, value in kwargs.items():
            context.config[f"{config_path}.{key}"] = value
        return virtual.VirtualScanner(context, config_path, backend)

    return _make_scanner
