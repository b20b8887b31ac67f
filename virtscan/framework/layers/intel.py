# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Intel 64-bit address translation, for ordinary processes and for guests
running under VT-x with extended page tables."""

import functools
import logging
import struct
from typing import Callable, List, Optional, Tuple

from virtscan.framework import constants, exceptions, interfaces
from virtscan.framework.configuration import requirements

vollog = logging.getLogger(__name__)

TableReader = Callable[[int], Optional[bytes]]

# NOTE: 52 is MAXPHYADDR as defined in the Intel specs *NOT* the maximum physical address
_ADDRESS_MASK = ((1 << 52) - 1) & ~(constants.PAGE_SIZE - 1)
_LARGE_PAGE_BIT = 1 << 7
_INDEX_MASK = 0x1FF
_ENTRY = struct.Struct("<Q")


class PageTableWalker:
    """Resolves an address through four levels of Intel paging structures.

    The same walk serves ordinary 4-level paging and the extended page
    tables, which differ only in which bits mark an entry as present.  A
    large page ends the walk early at the page directory pointer (1GiB) or
    page directory (2MiB) level.  Bits 11:0 of the root are ignored, so the
    flags held in the low bits of a CR3 value or an EPT pointer are
    harmless.
    """

    _levels = [
        ("page map level 4", 39, False),
        ("page directory pointer table", 30, True),
        ("page directory", 21, True),
        ("page table", 12, False),
    ]

    def __init__(self, name: str, present_mask: int) -> None:
        self._name = name
        self._present_mask = present_mask

    def walk(self, root: int, offset: int, read_table: TableReader) -> Tuple[int, int]:
        """Translates offset through the tables at root.

        Args:
            root: Physical address of the top level table
            offset: The address to translate
            read_table: Returns the page sized table at a physical address, or None if it cannot be trusted

        Returns:
            The translated address and the number of bits covered by the page it lies in

        Raises:
            PagedInvalidAddressException: if an entry along the walk is not present
            InvalidAddressException: if a table along the walk is corrupt
        """
        if not 0 <= offset <= constants.MAXIMUM_VIRTUAL_ADDRESS:
            raise exceptions.PagedInvalidAddressException(
                self._name,
                offset,
                constants.MAXIMUM_VIRTUAL_BITS,
                root,
                f"Address {hex(offset)} is beyond {constants.MAXIMUM_VIRTUAL_BITS} bits",
            )
        table_address = root & _ADDRESS_MASK
        for level, shift, may_be_large in self._levels:
            table = read_table(table_address)
            if table is None:
                raise exceptions.InvalidAddressException(
                    self._name, offset, f"Corrupt {level} at {hex(table_address)}"
                )
            (entry,) = _ENTRY.unpack_from(table, ((offset >> shift) & _INDEX_MASK) * _ENTRY.size)
            if not entry & self._present_mask:
                raise exceptions.PagedInvalidAddressException(
                    self._name,
                    offset,
                    shift,
                    entry,
                    f"Page fault at entry {hex(entry)} in {level}",
                )
            if shift == 12 or (may_be_large and entry & _LARGE_PAGE_BIT):
                # The PAT bit of a large page entry falls inside the page offset and is masked off here
                page_mask = (1 << shift) - 1
                return (entry & _ADDRESS_MASK & ~page_mask) | (offset & page_mask), shift
            table_address = entry & _ADDRESS_MASK
        raise AssertionError("Paging structure walk did not end in a page")


class Intel32e(interfaces.layers.MemoryAccessInterface):
    """Memory access backend for 64-bit (32-bit extensions) Intel paging.

    Paging structures and page data are read from the physical layer named
    by the ``memory_layer`` requirement.  For a guest under VT-x,
    :meth:`translate_nested` takes every guest physical address, the
    guest's own tables included, through the extended page tables first.
    """

    def __init__(
        self,
        context: interfaces.context.ContextInterface,
        config_path: str,
        name: str,
    ) -> None:
        super().__init__(context=context, config_path=config_path)
        unmet = self.unsatisfied(context, config_path)
        if unmet:
            raise exceptions.UnsatisfiedException(unmet)

        self._name = name
        self._base_layer = self.config["memory_layer"]
        self._walker = PageTableWalker(name, present_mask=0x1)
        # An EPT entry is present when any of its read, write or execute bits is set
        self._ept_walker = PageTableWalker(name + "_ept", present_mask=0x7)

    @property
    def name(self) -> str:
        return self._name

    @functools.lru_cache(1025)
    def _get_valid_table(self, base_address: int) -> Optional[bytes]:
        """Reads the table at base_address, or returns None if every entry
        in it is the same (the sign of a page of junk, not a real table)."""
        table = self._context.layers.read(
            self._base_layer, base_address, constants.PAGE_SIZE
        )
        if len(set(_ENTRY.iter_unpack(table))) == 1:
            return None
        return table

    def _mapping(
        self, walk: Callable[[], Tuple[int, bool]]
    ) -> interfaces.layers.PhysicalMappingEntry:
        try:
            address, large_page = walk()
        except exceptions.PagedInvalidAddressException:
            return interfaces.layers.PhysicalMappingEntry.invalid()
        except exceptions.InvalidAddressException:
            return interfaces.layers.PhysicalMappingEntry.invalid(bad=True)
        return interfaces.layers.PhysicalMappingEntry(
            address=address,
            valid=True,
            bad=not self._context.layers[self._base_layer].is_valid(address),
            large_page=large_page,
        )

    def translate(
        self, page_map_offset: int, offset: int
    ) -> interfaces.layers.PhysicalMappingEntry:
        def walk() -> Tuple[int, bool]:
            address, bits = self._walker.walk(page_map_offset, offset, self._get_valid_table)
            return address, bits > 12

        return self._mapping(walk)

    def translate_nested(
        self, ept_pointer: int, page_map_offset: int, offset: int
    ) -> interfaces.layers.PhysicalMappingEntry:
        def to_host(guest_address: int) -> Tuple[int, int]:
            return self._ept_walker.walk(ept_pointer, guest_address, self._get_valid_table)

        def read_guest_table(guest_address: int) -> Optional[bytes]:
            return self._get_valid_table(to_host(guest_address)[0])

        def walk() -> Tuple[int, bool]:
            guest_address, guest_bits = self._walker.walk(
                page_map_offset, offset, read_guest_table
            )
            host_address, host_bits = to_host(guest_address)
            # Host data is only contiguous across a large guest page when the EPT maps it large too
            return host_address, min(guest_bits, host_bits) > 12

        return self._mapping(walk)

    def read_page(
        self, entry: interfaces.layers.PhysicalMappingEntry, buffer: bytearray
    ) -> bool:
        if not entry.usable:
            return False
        length = len(buffer)
        address = entry.address & ~(length - 1)
        try:
            buffer[:] = self._context.layers.read(self._base_layer, address, length)
        except exceptions.InvalidAddressException as excp:
            vollog.log(
                constants.LOGLEVEL_VVVV,
                f"Unable to read {hex(length)} bytes at physical address {hex(address)}: {excp}",
            )
            return False
        return True

    @classmethod
    def get_requirements(cls) -> List[interfaces.configuration.RequirementInterface]:
        return [
            requirements.LayerRequirement(
                name="memory_layer",
                description="Physical layer holding the paging structures and page data",
            ),
        ]
