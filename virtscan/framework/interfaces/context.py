# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The state shared by the components of a scan: a configuration tree and
the physical data layers that memory backends read from."""
from abc import ABCMeta, abstractmethod

from virtscan.framework import interfaces


class ContextInterface(metaclass=ABCMeta):
    """All context-like objects must adhere to the following interface.

    This interface is present to avoid import dependency cycles.
    """

    @property
    @abstractmethod
    def config(self) -> "interfaces.configuration.HierarchicalDict":
        """Returns the configuration tree of this context."""

    @property
    @abstractmethod
    def layers(self) -> "interfaces.layers.LayerContainer":
        """Returns the physical data layers of this context."""

    def add_layer(self, layer: "interfaces.layers.DataLayerInterface") -> None:
        """Adds a data layer, under its own name, to the context."""
        self.layers.add_layer(layer)
