# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The interfaces module contains the API interface for the core virtscan
framework.

These interfaces describe the contracts between the scanner and its
collaborators: configuration, contexts, physical data layers, the
memory access backend and header detectors.
"""

# Import the submodules we want people to be able to use without importing them themselves
# This will also avoid namespace issues, because people can use interfaces.layers to
# avoid clashing with the layers package
from virtscan.framework.interfaces import (
    configuration,
    context,
    layers,
)
