# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import dataclasses
import logging
from typing import Optional

import pefile

from virtscan.framework import constants, interfaces

vollog = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PEHeader:
    """The metadata of a PE image header, as read from its file and optional
    headers."""

    machine: int
    number_of_sections: int
    timestamp: int
    characteristics: int
    is_dll: bool
    is_64bit: bool
    image_base: int
    size_of_image: int
    size_of_headers: int
    entry_point: int
    subsystem: int


class PEHeaderDetector(interfaces.layers.HeaderDetectorInterface):
    """Validates PE (MZ) image headers using pefile.

    Only the DOS, NT, file and optional headers are parsed (pefile's fast
    load), data directories are never followed.
    """

    signature = b"MZ"

    def try_parse(self, data: bytes, offset: int) -> Optional[PEHeader]:
        if data[offset : offset + len(self.signature)] != self.signature:
            return None

        try:
            pe = pefile.PE(data=bytes(data[offset:]), fast_load=True)
        except pefile.PEFormatError as excp:
            vollog.log(
                constants.LOGLEVEL_VVVV,
                f"Signature at offset {hex(offset)} is not a PE header: {excp}",
            )
            return None

        try:
            return PEHeader(
                machine=pe.FILE_HEADER.Machine,
                number_of_sections=pe.FILE_HEADER.NumberOfSections,
                timestamp=pe.FILE_HEADER.TimeDateStamp,
                characteristics=pe.FILE_HEADER.Characteristics,
                is_dll=pe.is_dll(),
                is_64bit=pe.OPTIONAL_HEADER.Magic == pefile.OPTIONAL_HEADER_MAGIC_PE_PLUS,
                image_base=pe.OPTIONAL_HEADER.ImageBase,
                size_of_image=pe.OPTIONAL_HEADER.SizeOfImage,
                size_of_headers=pe.OPTIONAL_HEADER.SizeOfHeaders,
                entry_point=pe.OPTIONAL_HEADER.AddressOfEntryPoint,
                subsystem=pe.OPTIONAL_HEADER.Subsystem,
            )
        finally:
            pe.close()
