# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The exceptions virtscan raises.

Layers and the page walker throw :class:`InvalidAddressException` (and
the more specific :class:`PagedInvalidAddressException`) when an address
cannot be read or translated.  These never escape a scan: the memory
access boundary turns them into invalid mappings or failed reads.  Only
misuse of the scanner itself, such as an empty or oversized range or an
unsatisfied configuration, reaches the caller.
"""
from typing import Dict

from virtscan.framework import interfaces


class VirtscanException(Exception):
    """Base class of every exception raised by virtscan."""


class LayerException(VirtscanException):
    """A failure involving the named data layer or memory backend."""

    def __init__(self, layer_name: str, *args) -> None:
        super().__init__(*args)
        self.layer_name = layer_name


class InvalidAddressException(LayerException):
    """An address that cannot be read, or resolved, within a layer."""

    def __init__(self, layer_name: str, invalid_address: int, *args) -> None:
        super().__init__(layer_name, *args)
        self.invalid_address = invalid_address


class PagedInvalidAddressException(InvalidAddressException):
    """An address whose page walk reached an entry that is not present.

    Carries the faulting paging entry and the number of low address bits
    that entry would have resolved.
    """

    def __init__(
        self,
        layer_name: str,
        invalid_address: int,
        invalid_bits: int,
        entry: int,
        *args,
    ) -> None:
        super().__init__(layer_name, invalid_address, *args)
        self.invalid_bits = invalid_bits
        self.entry = entry


class InvalidRangeException(VirtscanException):
    """Thrown when a scan is requested over an empty range, or one that
    exceeds the supported virtual address width."""

    def __init__(self, start: int, stop: int, *args) -> None:
        super().__init__(*args)
        self.start = start
        self.stop = stop


class UnsatisfiedException(VirtscanException):
    """A component's requirements are not met by the configuration."""

    def __init__(
        self, unsatisfied: Dict[str, interfaces.configuration.RequirementInterface]
    ) -> None:
        super().__init__()
        self.unsatisfied = unsatisfied

    def __str__(self):
        return f"Unsatisfied requirements: {', '.join(sorted(self.unsatisfied))}"
