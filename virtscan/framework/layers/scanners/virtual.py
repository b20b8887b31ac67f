# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Scans the virtual address space of a process (or a virtualized guest)
for executable images.

Unlike a physical scan, every virtual page has to be translated before it
can be read, so most of the work is skipping the pages that are not
mapped.  Images found this way include those that were loaded or injected
without ever being registered in the operating system's module lists.
"""
import dataclasses
import logging
import threading
from typing import List, Optional, Union

from virtscan.framework import constants, exceptions, interfaces
from virtscan.framework.configuration import requirements
from virtscan.framework.layers import scanners

vollog = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ScanContext:
    """The settings a :class:`VirtualScanner` is bound to when it is
    constructed.

    Attributes:
        memory: The backend used to translate virtual addresses and read physical pages
        address_space: The paging roots of the scanned address space, if known
        header_scan: Whether single page requests may be moved back to the preceding page
    """

    memory: interfaces.layers.MemoryAccessInterface
    address_space: Optional[interfaces.layers.AddressSpace] = None
    header_scan: bool = False


class VirtualScanner(
    interfaces.configuration.ConfigurableInterface,
    interfaces.configuration.VersionableInterface,
):
    """Walks a virtual address range page by page looking for image
    headers.

    A single scanner may be used by many threads at once, each scanning its
    own portion of the address space.  Every call to :meth:`scan` uses its
    own page buffer, and the scanner's settings never change after
    construction.
    """

    _required_framework_version = (1, 0, 0)

    def __init__(
        self,
        context: interfaces.context.ContextInterface,
        config_path: str,
        memory: interfaces.layers.MemoryAccessInterface,
        scanner: Optional[scanners.PageScanner] = None,
    ) -> None:
        super().__init__(context, config_path)
        unmet = self.unsatisfied(context, config_path)
        if unmet:
            raise exceptions.UnsatisfiedException(unmet)

        self._scan_context = ScanContext(
            memory=memory,
            address_space=self._address_space_from_config(),
            header_scan=bool(self.config_value("header_scan")),
        )
        self._scanner = scanner or scanners.PageScanner()

    @property
    def scan_context(self) -> ScanContext:
        return self._scan_context

    def _unsatisfied(self, name: str) -> exceptions.UnsatisfiedException:
        requirement = [req for req in self.get_requirements() if req.name == name][0]
        return exceptions.UnsatisfiedException(
            {interfaces.configuration.path_join(self.config_path, name): requirement}
        )

    def _address_space_from_config(self) -> Optional[interfaces.layers.AddressSpace]:
        page_map_offset = self.config.get("page_map_offset", None)
        ept_pointer = self.config.get("ept_pointer", None)
        if page_map_offset is None:
            if ept_pointer is not None:
                # The EPT only maps the guest's physical memory, it cannot stand in for the guest's paging root
                raise self._unsatisfied("page_map_offset")
            return None
        if ept_pointer is None:
            return interfaces.layers.PagingRoot(page_map_offset)
        return interfaces.layers.NestedPagingRoot(ept_pointer, page_map_offset)

    @staticmethod
    def _check_range(start: int, stop: int) -> None:
        if start < 0 or stop > constants.MAXIMUM_VIRTUAL_ADDRESS + 1:
            raise exceptions.InvalidRangeException(
                start,
                stop,
                f"Scan range {hex(start)}-{hex(stop)} exceeds the {constants.MAXIMUM_VIRTUAL_BITS}-bit virtual address space",
            )
        if start >= stop:
            raise exceptions.InvalidRangeException(
                start, stop, f"Scan range {hex(start)}-{hex(stop)} is empty"
            )

    def scan(
        self,
        start: int = 0,
        stop: int = constants.DEFAULT_SCAN_STOP,
        entry: Optional[interfaces.layers.PhysicalMappingEntry] = None,
        cancel: Union[constants.CancellationCheck, threading.Event] = None,
        memory: Optional[interfaces.layers.MemoryAccessInterface] = None,
        progress_callback: constants.ProgressCallback = None,
    ) -> List[interfaces.layers.DetectionRecord]:
        """Scans the virtual range [start, stop) for image headers.

        When the physical mapping of the range is already known it can be
        supplied as entry, avoiding any translation: a large page mapping
        is read and scanned whole, and a standard page mapping is used when
        the range covers exactly one page.  Otherwise each page of the range
        is translated through the configured paging roots, and pages that
        are unmapped or unreadable are skipped.

        Args:
            start: The first virtual address to scan
            stop: The virtual address at which to stop scanning (exclusive)
            entry: The physical mapping of start, if already known
            cancel: Predicate (or event) checked before each page, the scan stops early once it is true
            memory: A backend to use in place of the scanner's own for this scan
            progress_callback: Method that is called periodically during scanning to update progress

        Returns:
            The records found within [start, stop), in ascending virtual address
            order.  A cancelled scan returns the records found before it stopped.
        """
        self._check_range(start, stop)
        if progress_callback is not None and not callable(progress_callback):
            raise TypeError("Progress_callback is not callable")
        if isinstance(cancel, threading.Event):
            cancel = cancel.is_set

        if memory is None:
            memory = self._scan_context.memory

        if entry is not None and entry.large_page:
            # A large page is scanned exactly once, as a whole
            return self._scan_block(
                memory, entry, start, stop, bytearray(constants.LARGE_PAGE_SIZE)
            )

        if entry is not None and stop - start == constants.PAGE_SIZE:
            if not (
                self._scan_context.header_scan
                and (start & constants.HEADER_SCAN_MASK) == constants.PAGE_SIZE
            ):
                return self._scan_block(
                    memory, entry, start, stop, bytearray(constants.PAGE_SIZE)
                )
            # An image whose header sits on the preceding page is only visible from there
            vollog.debug(
                f"Header scan moving single page request at {hex(start)} back to {hex(start - constants.PAGE_SIZE)}"
            )
            start -= constants.PAGE_SIZE
            stop -= constants.PAGE_SIZE
        elif entry is not None:
            vollog.debug(
                f"Ignoring supplied mapping for multi-page range {hex(start)}-{hex(stop)}"
            )

        return self._scan_range(memory, start, stop, cancel, progress_callback)

    def _scan_block(
        self,
        memory: interfaces.layers.MemoryAccessInterface,
        entry: interfaces.layers.PhysicalMappingEntry,
        start: int,
        stop: int,
        buffer: bytearray,
    ) -> List[interfaces.layers.DetectionRecord]:
        if not memory.read_page(entry, buffer):
            vollog.log(
                constants.LOGLEVEL_VVVV,
                f"No data for supplied mapping of {hex(start)} at physical address {hex(entry.address)}",
            )
            return []
        # Detections are anchored at the aligned base the page was read from
        anchor = start & ~(len(buffer) - 1)
        return self._detect(anchor, buffer, start, stop)

    def _scan_range(
        self,
        memory: interfaces.layers.MemoryAccessInterface,
        start: int,
        stop: int,
        cancel: constants.CancellationCheck,
        progress_callback: constants.ProgressCallback,
    ) -> List[interfaces.layers.DetectionRecord]:
        address_space = self._scan_context.address_space
        if address_space is None:
            raise self._unsatisfied("page_map_offset")

        vollog.debug(
            f"Scanning virtual range {hex(start)}-{hex(stop)} of {address_space}"
        )
        results: List[interfaces.layers.DetectionRecord] = []
        buffer = bytearray(constants.PAGE_SIZE)
        first_page = start & ~(constants.PAGE_SIZE - 1)
        for index, offset in enumerate(range(first_page, stop, constants.PAGE_SIZE)):
            if cancel is not None and cancel():
                vollog.debug(
                    f"Scan cancelled at {hex(offset)} with {len(results)} detections"
                )
                break
            if progress_callback and not index % constants.PROGRESS_INTERVAL_PAGES:
                progress_callback(
                    (offset - first_page) * 100 / (stop - first_page),
                    f"Scanning virtual range {hex(start)}-{hex(stop)}",
                )

            mapping = address_space.translate(memory, offset)
            if not mapping.usable:
                continue
            if not memory.read_page(mapping, buffer):
                continue
            results.extend(self._detect(offset, buffer, start, stop))
        return results

    def _detect(
        self, anchor: int, buffer: bytearray, start: int, stop: int
    ) -> List[interfaces.layers.DetectionRecord]:
        detections = [
            detection
            for detection in self._scanner.detect(anchor, buffer)
            if start <= detection.virtual_address < stop
        ]
        for detection in detections:
            vollog.log(
                constants.LOGLEVEL_V,
                f"Detected PE @ VA {hex(detection.virtual_address)}",
            )
        return detections

    @classmethod
    def get_requirements(cls) -> List[interfaces.configuration.RequirementInterface]:
        return [
            requirements.IntRequirement(
                name="page_map_offset",
                description="Physical address of the top level paging structure (the DTB)",
                optional=True,
            ),
            requirements.IntRequirement(
                name="ept_pointer",
                description="Host physical address of the extended page tables of a virtualized guest",
                optional=True,
            ),
            requirements.BooleanRequirement(
                name="header_scan",
                description="Scan the preceding page of single page requests one page past a 64KiB boundary",
                default=False,
                optional=True,
            ),
        ]
