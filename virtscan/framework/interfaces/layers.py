# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Defines layers for containing data, the memory access backends that
translate virtual addresses onto them, and the scanners that look for
executable images in the data they return.

Data layers are leaves: they hold physical memory (a buffer or a dump
file).  A memory access backend resolves a virtual address to a
:class:`PhysicalMappingEntry` against a paging root, and reads the page
that entry describes out of a data layer.
"""
import collections.abc
import dataclasses
import logging
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, Iterable, Iterator, NamedTuple, Optional, Union

from virtscan.framework import exceptions, interfaces

vollog = logging.getLogger(__name__)


class PhysicalMappingEntry(NamedTuple):
    """The result of translating a virtual address.

    Attributes:
        address: The physical address the virtual address resolves to
        valid: Whether the paging structures mark the address as present
        bad: Whether the entry (or the tables leading to it) cannot be trusted
        large_page: Whether the mapping covers a large page rather than a standard page
    """

    address: int = 0
    valid: bool = False
    bad: bool = False
    large_page: bool = False

    @classmethod
    def invalid(cls, bad: bool = False) -> "PhysicalMappingEntry":
        """Returns an entry for an unmapped (or corrupt, if bad) address."""
        return cls(valid=False, bad=bad)

    @property
    def usable(self) -> bool:
        """Whether the entry can be handed to a page read."""
        return self.valid and not self.bad


@dataclasses.dataclass(frozen=True)
class DetectionRecord:
    """An executable image header found in memory.

    Attributes:
        virtual_address: The virtual address at which the header begins
        header: The structured header metadata produced by the header detector
    """

    virtual_address: int
    header: Any


@dataclasses.dataclass(frozen=True)
class PagingRoot:
    """An ordinary address space, translated through a single paging root
    (the DTB/CR3 value)."""

    page_map_offset: int

    def translate(
        self, memory: "MemoryAccessInterface", offset: int
    ) -> PhysicalMappingEntry:
        return memory.translate(self.page_map_offset, offset)


@dataclasses.dataclass(frozen=True)
class NestedPagingRoot:
    """A virtualized guest address space, whose paging root is a guest
    physical address translated through an EPT root."""

    ept_pointer: int
    page_map_offset: int

    def translate(
        self, memory: "MemoryAccessInterface", offset: int
    ) -> PhysicalMappingEntry:
        return memory.translate_nested(self.ept_pointer, self.page_map_offset, offset)


AddressSpace = Union[PagingRoot, NestedPagingRoot]


class ScannerInterface(
    interfaces.configuration.VersionableInterface, metaclass=ABCMeta
):
    """A search over a block of memory read from a known address.

    Scanners hold no per-call state, so one instance can serve scans running
    on many threads at once.
    """

    _required_framework_version = (1, 0, 0)

    @abstractmethod
    def __call__(self, data: bytes, data_offset: int) -> Iterable[Any]:
        """Yields the hits within data, which was read from data_offset, in
        ascending address order."""


class HeaderDetectorInterface(metaclass=ABCMeta):
    """Decides whether an executable image header begins at an offset within
    a buffer.

    Detectors must be free of side effects and must not assume the offset
    is the start of the buffer.
    """

    signature: bytes = b""
    """The bytes an image header begins with, checked before any parsing is attempted"""

    @abstractmethod
    def try_parse(self, data: bytes, offset: int) -> Optional[Any]:
        """Returns the structured header found at offset within data, or None
        if no valid header starts there."""


class DataLayerInterface(
    interfaces.configuration.ConfigurableInterface, metaclass=ABCMeta
):
    """A named source of physical memory, such as a raw dump file.

    Data layers do no translation: offsets are physical addresses.
    """

    def __init__(
        self,
        context: "interfaces.context.ContextInterface",
        config_path: str,
        name: str,
    ) -> None:
        super().__init__(context, config_path)
        self._name = name

    @property
    def name(self) -> str:
        """Returns the layer name."""
        return self._name

    @property
    @abstractmethod
    def maximum_address(self) -> int:
        """Returns the maximum valid address of the space."""

    @property
    @abstractmethod
    def minimum_address(self) -> int:
        """Returns the minimum valid address of the space."""

    def is_valid(self, offset: int, length: int = 1) -> bool:
        """Returns whether every byte of [offset, offset + length) lies
        within the layer."""
        return (
            length > 0
            and self.minimum_address <= offset
            and offset + length - 1 <= self.maximum_address
        )

    def _first_invalid(self, offset: int) -> int:
        """Returns the first unreadable address of a read starting at offset."""
        if self.minimum_address <= offset <= self.maximum_address:
            return self.maximum_address + 1
        return offset

    @abstractmethod
    def read(self, offset: int, length: int) -> bytes:
        """Reads length bytes at offset.

        Raises:
            InvalidAddressException: if any part of the range cannot be read
        """

    def destroy(self) -> None:
        """Releases any handles held by the layer."""


class MemoryAccessInterface(
    interfaces.configuration.ConfigurableInterface, metaclass=ABCMeta
):
    """A backend that translates virtual addresses and reads physical pages.

    A single backend is expected to be shared by many scans running at the
    same time, so implementations must be safe for concurrent reads and must
    never report an unmapped or unreadable page by raising.
    """

    @abstractmethod
    def translate(self, page_map_offset: int, offset: int) -> PhysicalMappingEntry:
        """Translates a virtual offset through the paging structures rooted at
        page_map_offset."""

    @abstractmethod
    def translate_nested(
        self, ept_pointer: int, page_map_offset: int, offset: int
    ) -> PhysicalMappingEntry:
        """Translates a virtual offset in a virtualized guest, whose paging
        structures (rooted at the guest physical page_map_offset) are
        themselves mapped through the extended page tables at ept_pointer."""

    @abstractmethod
    def read_page(self, entry: PhysicalMappingEntry, buffer: bytearray) -> bool:
        """Fills buffer with the physical data described by entry.

        Exactly len(buffer) bytes are read, starting at the entry's address
        aligned down to the buffer's size.  Returns False if the data cannot
        be read, in which case the contents of buffer are undefined.
        """


class LayerContainer(collections.abc.Mapping):
    """The data layers of a context, by name."""

    def __init__(self) -> None:
        self._layers: Dict[str, DataLayerInterface] = {}

    def read(self, layer: str, offset: int, length: int) -> bytes:
        """Reads length bytes at offset from the layer called layer."""
        return self._layers[layer].read(offset, length)

    def add_layer(self, layer: DataLayerInterface) -> None:
        """Adds a layer under its own name.

        Raises:
            LayerException: if a layer of that name is already present
        """
        if layer.name in self._layers:
            raise exceptions.LayerException(
                layer.name, f"Layer already exists: {layer.name}"
            )
        self._layers[layer.name] = layer

    def del_layer(self, name: str) -> None:
        """Removes the layer called name, closing any handles it holds."""
        self._layers.pop(name).destroy()

    def __getitem__(self, name: str) -> DataLayerInterface:
        return self._layers[name]

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[str]:
        return iter(self._layers)
