"""Value templates for transform steps and nodes.

A transform maps output field names to templates. Each template is parsed
once into one of three expression kinds:

- ``Reference``: the string ``"$name"``, resolved to the value of ``name``.
- ``Interpolation``: a string containing ``${name}`` placeholders, rendered
  as text. Unresolved placeholders are left as-is.
- ``Literal``: anything else, returned unchanged.

Lookups read the context variables first and fall back to the current
record (pipelines only).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _lookup(name: str, variables: Mapping[str, Any], item: Any) -> Any:
    value = variables.get(name)
    if value is None and isinstance(item, Mapping):
        value = item.get(name)
    return value


@dataclass(frozen=True)
class Literal:
    value: Any

    def evaluate(self, variables: Mapping[str, Any], item: Any = None) -> Any:
        return self.value


@dataclass(frozen=True)
class Reference:
    name: str

    def evaluate(self, variables: Mapping[str, Any], item: Any = None) -> Any:
        return _lookup(self.name, variables, item)


@dataclass(frozen=True)
class Interpolation:
    template: str
    names: tuple[str, ...]

    def evaluate(self, variables: Mapping[str, Any], item: Any = None) -> str:
        def replacer(match: re.Match) -> str:
            value = _lookup(match.group(1), variables, item)
            if value is None:
                return match.group(0)  # Leave unresolved
            return str(value)

        return PLACEHOLDER_PATTERN.sub(replacer, self.template)


Expression = Union[Literal, Reference, Interpolation]


def parse_template(value: Any) -> Expression:
    """Parse a single template value into an expression."""
    if not isinstance(value, str):
        return Literal(value)
    names = tuple(PLACEHOLDER_PATTERN.findall(value))
    if names:
        return Interpolation(value, names)
    if value.startswith("$") and len(value) > 1:
        return Reference(value[1:])
    return Literal(value)


class CompiledTransform:
    """A field-name to expression mapping compiled from a transform definition.

    Example:
        >>> transform = CompiledTransform({"b": "$a", "label": "id-${a}"})
        >>> transform.apply({}, {"a": 5, "x": 9})
        {'b': 5, 'label': 'id-5'}
    """

    def __init__(self, mapping: Mapping[str, Any]) -> None:
        self._fields: dict[str, Expression] = {
            key: parse_template(value) for key, value in mapping.items()
        }

    @property
    def fields(self) -> dict[str, Expression]:
        return dict(self._fields)

    def apply(self, variables: Mapping[str, Any], item: Any = None) -> dict[str, Any]:
        """Build one output record."""
        return {
            key: expression.evaluate(variables, item)
            for key, expression in self._fields.items()
        }
