# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
from typing import Generator, List, Optional

from virtscan.framework import constants, interfaces
from virtscan.framework.layers.scanners import pe


class PageScanner(interfaces.layers.ScannerInterface):
    """Looks for image headers at each page boundary of a block of memory.

    Images are always mapped page aligned, so only the start of each page
    is examined.  The detector is only consulted when the page begins with
    its signature, which keeps pages without a header cheap to scan.
    """

    _required_framework_version = (1, 0, 0)

    def __init__(
        self,
        detector: Optional[interfaces.layers.HeaderDetectorInterface] = None,
    ) -> None:
        super().__init__()
        self._detector = detector or pe.PEHeaderDetector()

    def __call__(
        self, data: bytes, data_offset: int
    ) -> Generator[interfaces.layers.DetectionRecord, None, None]:
        """Runs through the data page by page, and yields a record for every
        page that begins with a valid image header."""
        signature = self._detector.signature
        for offset in range(0, len(data), constants.PAGE_SIZE):
            if data[offset : offset + len(signature)] != signature:
                continue
            header = self._detector.try_parse(data, offset)
            if header is not None:
                yield interfaces.layers.DetectionRecord(data_offset + offset, header)

    def detect(
        self, anchor: int, data: bytes
    ) -> List[interfaces.layers.DetectionRecord]:
        """Returns every record found in data, which was read from the
        virtual address anchor."""
        return list(self(data, anchor))
