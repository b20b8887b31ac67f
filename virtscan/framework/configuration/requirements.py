# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Requirement types for the components of a scan.

Simple requirements take a boolean, integer or string straight from the
configuration tree.  A :class:`LayerRequirement` names a physical layer
that must already have been added to the context.
"""
import logging
from typing import ClassVar, Dict, Type

from virtscan.framework import constants, interfaces

vollog = logging.getLogger(__name__)


class BooleanRequirement(interfaces.configuration.SimpleTypeRequirement):
    """A requirement type that contains a boolean value."""


class IntRequirement(interfaces.configuration.SimpleTypeRequirement):
    """A requirement type that contains a single integer."""

    instance_type: ClassVar[Type] = int


class StringRequirement(interfaces.configuration.SimpleTypeRequirement):
    """A requirement type that contains a single unicode string."""

    instance_type: ClassVar[Type] = str


class LayerRequirement(StringRequirement):
    """The name of a data layer held by the context."""

    def unsatisfied(
        self, context: interfaces.context.ContextInterface, config_path: str
    ) -> Dict[str, interfaces.configuration.RequirementInterface]:
        result = super().unsatisfied(context, config_path)
        value = self.value(context, config_path)
        if not result and value not in context.layers:
            vollog.log(
                constants.LOGLEVEL_V, f"Layer not found in the context: {value}"
            )
            result = {interfaces.configuration.path_join(config_path, self.name): self}
        return result
