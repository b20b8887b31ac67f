# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The default context, pairing a fresh configuration tree with an empty
set of physical data layers."""

from virtscan.framework import interfaces


class Context(interfaces.context.ContextInterface):
    """Holds the configuration and physical memory used by one scan setup.

    Separate contexts keep separate images and settings, so several can be
    scanned side by side without interfering with each other.
    """

    def __init__(self) -> None:
        self._config = interfaces.configuration.HierarchicalDict()
        self._layers = interfaces.layers.LayerContainer()

    @property
    def config(self) -> interfaces.configuration.HierarchicalDict:
        return self._config

    @property
    def layers(self) -> interfaces.layers.LayerContainer:
        return self._layers
