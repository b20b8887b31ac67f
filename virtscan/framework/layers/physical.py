# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Physical memory sources: an in-memory buffer, or a raw dump file."""
import logging
import os
import threading
from typing import IO, List, Optional

from virtscan.framework import exceptions, interfaces
from virtscan.framework.configuration import requirements

vollog = logging.getLogger(__name__)


class BufferDataLayer(interfaces.layers.DataLayerInterface):
    """Physical memory held in a bytes object, such as a snapshot taken from
    a live introspection session."""

    def __init__(
        self,
        context: interfaces.context.ContextInterface,
        config_path: str,
        name: str,
        buffer: bytes,
    ) -> None:
        super().__init__(context=context, config_path=config_path, name=name)
        self._buffer = bytes(buffer)

    @property
    def maximum_address(self) -> int:
        return len(self._buffer) - 1

    @property
    def minimum_address(self) -> int:
        return 0

    def read(self, offset: int, length: int) -> bytes:
        if not self.is_valid(offset, length):
            raise exceptions.InvalidAddressException(
                self.name,
                self._first_invalid(offset),
                f"Read of {hex(length)} bytes at {hex(offset)} is outside of the buffer",
            )
        return self._buffer[offset : offset + length]


class FileLayer(interfaces.layers.DataLayerInterface):
    """Physical memory read from a raw dump file named by the ``location``
    requirement.

    Reads from many threads share one file handle, a lock keeps each seek
    and read together.  The handle is opened on first use, and again after
    :meth:`destroy`.
    """

    def __init__(
        self,
        context: interfaces.context.ContextInterface,
        config_path: str,
        name: str,
    ) -> None:
        super().__init__(context=context, config_path=config_path, name=name)
        unmet = self.unsatisfied(context, config_path)
        if unmet:
            raise exceptions.UnsatisfiedException(unmet)

        self._location = self.config["location"]
        self._size = os.path.getsize(self._location)
        self._handle: Optional[IO[bytes]] = None
        self._lock = threading.Lock()

    @property
    def location(self) -> str:
        return self._location

    @property
    def maximum_address(self) -> int:
        return self._size - 1

    @property
    def minimum_address(self) -> int:
        return 0

    def read(self, offset: int, length: int) -> bytes:
        if not self.is_valid(offset, length):
            raise exceptions.InvalidAddressException(
                self.name,
                self._first_invalid(offset),
                f"Read of {hex(length)} bytes at {hex(offset)} is outside of {self._location}",
            )
        with self._lock:
            if self._handle is None:
                vollog.debug(f"Opening {self._location} for {self.name}")
                self._handle = open(self._location, "rb")
            self._handle.seek(offset)
            data = self._handle.read(length)
        if len(data) < length:
            raise exceptions.InvalidAddressException(
                self.name, offset + len(data), f"Short read from {self._location}"
            )
        return data

    def destroy(self) -> None:
        """Closes the file handle."""
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None

    @classmethod
    def get_requirements(cls) -> List[interfaces.configuration.RequirementInterface]:
        return [
            requirements.StringRequirement(
                name="location", description="Path of the raw memory dump"
            )
        ]
