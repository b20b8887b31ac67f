# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Configuration trees, and the requirements that components check their
configuration against.

Components (memory backends, physical layers and scanners) specify a
list of requirements.  The values that fulfill those requirements live
in a complementary configuration tree held by the context, under each
component's configuration path.  Components read their configuration
once, when they are constructed.
"""

import collections.abc
import logging
from abc import ABCMeta, abstractmethod
from typing import ClassVar, Dict, Iterator, List, Optional, Tuple, Type, Union

from virtscan import framework
from virtscan.framework import constants, interfaces

CONFIG_SEPARATOR = "."
"""Separates the elements of a configuration path"""

vollog = logging.getLogger(__name__)

SimpleTypes = Union[int, bool, bytes, str]
ConfigSimpleType = Optional[SimpleTypes]


def path_join(*args) -> str:
    """Joins configuration paths together, skipping empty elements."""
    return CONFIG_SEPARATOR.join(arg for arg in args if arg)


class HierarchicalDict(collections.abc.Mapping):
    """A configuration tree addressed by separator-joined paths.

    Each level holds its own values and a child tree per path element, so
    ``tree["a.b.c"]`` is the value ``c`` of the child ``b`` of the child
    ``a``.  Iteration yields the full path of every value in the tree.
    """

    def __init__(self) -> None:
        self._values: Dict[str, ConfigSimpleType] = {}
        self._children: Dict[str, "HierarchicalDict"] = {}

    @staticmethod
    def _split(key: str) -> Tuple[str, str]:
        head, _, tail = key.partition(CONFIG_SEPARATOR)
        return head, tail

    def __getitem__(self, key: str) -> ConfigSimpleType:
        head, tail = self._split(key)
        try:
            return self._children[head][tail] if tail else self._values[head]
        except KeyError:
            raise KeyError(key)

    def __setitem__(self, key: str, value: ConfigSimpleType) -> None:
        if value is not None and not isinstance(value, (int, bool, bytes, str)):
            raise TypeError(f"Invalid type stored in configuration: {type(value)}")
        head, tail = self._split(key)
        if tail:
            self._children.setdefault(head, HierarchicalDict())[tail] = value
        else:
            self._values[head] = value

    def __iter__(self) -> Iterator[str]:
        yield from self._values
        for name, child in self._children.items():
            for key in child:
                yield path_join(name, key)

    def __len__(self) -> int:
        return len(self._values) + sum(len(child) for child in self._children.values())

    def branch(self, key: str) -> "HierarchicalDict":
        """Returns the subtree housed under key, creating it if necessary.

        The subtree is shared, not copied, so values set on it appear in
        this tree under the key's prefix.
        """
        head, tail = self._split(key)
        child = self._children.setdefault(head, HierarchicalDict())
        return child.branch(tail) if tail else child


class RequirementInterface(metaclass=ABCMeta):
    """A named piece of configuration that a component needs.

    The value of a requirement lives in the context's configuration tree
    at the component's configuration path joined with the requirement's
    name.  Concrete requirements are found in
    :mod:`virtscan.framework.configuration.requirements`.
    """

    def __init__(
        self,
        name: str,
        description: str = None,
        default: ConfigSimpleType = None,
        optional: bool = False,
    ) -> None:
        if CONFIG_SEPARATOR in name:
            raise ValueError(
                f"Name cannot contain the config-hierarchy divider ({CONFIG_SEPARATOR})"
            )
        self.name = name
        self.description = description or ""
        self.default = default
        self.optional = optional

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def value(
        self, context: "interfaces.context.ContextInterface", config_path: str
    ) -> ConfigSimpleType:
        """Returns the configured value for this requirement beneath
        config_path, or None if there is none."""
        return context.config.get(path_join(config_path, self.name), None)

    @abstractmethod
    def unsatisfied(
        self, context: "interfaces.context.ContextInterface", config_path: str
    ) -> Dict[str, "RequirementInterface"]:
        """Validates the value configured for this requirement beneath
        config_path.

        Returns:
            A dictionary of the configuration paths whose values are unacceptable, mapped to their requirements
        """


class SimpleTypeRequirement(RequirementInterface):
    """A requirement whose value must be an instance of `instance_type`."""

    instance_type: ClassVar[Type] = bool

    def unsatisfied(
        self, context: "interfaces.context.ContextInterface", config_path: str
    ) -> Dict[str, RequirementInterface]:
        value = self.value(context, config_path)
        # bool is a subclass of int, but a flag is never an acceptable integer
        if isinstance(value, self.instance_type) and (
            self.instance_type is bool or not isinstance(value, bool)
        ):
            return {}
        vollog.log(
            constants.LOGLEVEL_V,
            f"TypeError - {self.name} requirements only accept {self.instance_type.__name__} type: {value!r}",
        )
        return {path_join(config_path, self.name): self}


class ConfigurableInterface(metaclass=ABCMeta):
    """A component whose settings live in the context's configuration tree
    and are checked against the requirements it declares."""

    def __init__(
        self, context: "interfaces.context.ContextInterface", config_path: str
    ) -> None:
        super().__init__()
        self._context = context
        self._config_path = config_path

    @property
    def context(self) -> "interfaces.context.ContextInterface":
        """The context holding this component's configuration."""
        return self._context

    @property
    def config_path(self) -> str:
        """Where this component's settings sit in the configuration tree."""
        return self._config_path

    @property
    def config(self) -> HierarchicalDict:
        """The configuration subtree for this configurable."""
        return self._context.config.branch(self._config_path)

    def config_value(self, name: str) -> ConfigSimpleType:
        """Returns the configured value for the requirement called name,
        falling back to that requirement's default."""
        for requirement in self.get_requirements():
            if requirement.name == name:
                return self.config.get(name, requirement.default)
        raise KeyError(f"{self.__class__.__name__} has no requirement named {name}")

    @classmethod
    def get_requirements(cls) -> List[RequirementInterface]:
        """Returns the requirements this component's configuration must meet."""
        return []

    @classmethod
    def unsatisfied(
        cls, context: "interfaces.context.ContextInterface", config_path: str
    ) -> Dict[str, RequirementInterface]:
        """Returns the unsatisfied requirements of this class, keyed by
        configuration path.

        Optional requirements are only validated when a value has been
        provided for them, so an empty result means the class can be
        constructed:

        .. code-block:: python

            unmet = configurable.unsatisfied(context, config_path)
            if unmet:
                raise exceptions.UnsatisfiedException(unmet)
        """
        result: Dict[str, RequirementInterface] = {}
        for requirement in cls.get_requirements():
            if requirement.optional and requirement.value(context, config_path) is None:
                continue
            result.update(requirement.unsatisfied(context, config_path))
        return result


class VersionableInterface:
    """A component that checks, on construction, that the framework provides
    the interface version it was written against (semantic versioning)."""

    _required_framework_version: Tuple[int, int, int] = (0, 0, 0)

    def __init__(self, *args, **kwargs):
        framework.require_interface_version(*self._required_framework_version)
        super().__init__(*args, **kwargs)
