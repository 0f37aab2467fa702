"""Declared task attributes.

A task type declares its attributes once, at registration time. Scalar
attributes are validated with a pydantic `TypeAdapter` and stored in pydantic's
JSON mode, so an instance's attribute map is always safe to snapshot. Model
attributes hold references to externally owned domain objects and are stored
only as `{id, type}` pairs produced by the storage adapter.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from durable_tasks.errors import ConfigurationError, MissingInputs, ValidationError

# Names used by the data carrier for its control operations.
RESERVED_NAMES: frozenset[str] = frozenset(
    {
        "call",
        "complete",
        "fail_with",
        "flush",
        "go_to",
        "in_foreground",
        "inputs",
        "start",
        "state",
        "task_id",
    }
)

ModelRef = dict[str, Any]


@dataclass(frozen=True, slots=True)
class AttributeSpec:
    """A scalar (JSON-representable) attribute."""

    name: str
    type: Any = str
    default: Any = None
    required: bool = False
    adapter: TypeAdapter[Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "adapter", TypeAdapter(self.type))

    def dump(self, value: Any) -> Any:
        """Validate `value` and convert it to its stored form."""
        if value is None:
            return None
        try:
            validated = self.adapter.validate_python(value)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid value for {self.name}: {e}") from e
        return self.adapter.dump_python(validated, mode="json")

    def load(self, raw: Any) -> Any:
        if raw is None:
            return copy.deepcopy(self.default)
        return self.adapter.validate_python(raw)


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """A reference to one (or, with `many`, a list of) external domain objects."""

    name: str
    model_class: type | None = None
    many: bool = False
    required: bool = False

    def check(self, value: Any) -> None:
        if value is None or self.model_class is None:
            return
        values = value if self.many else [value]
        for item in values:
            if not isinstance(item, self.model_class):
                raise ValidationError(
                    f"{item!r} is not a {self.model_class.__name__} - {self.name}"
                )

    def dump(self, value: Any, serialise_ref: Callable[[Any], ModelRef]) -> Any:
        self.check(value)
        if value is None:
            return [] if self.many else None
        if self.many:
            return [serialise_ref(item) for item in value]
        return serialise_ref(value)


Spec = AttributeSpec | ModelSpec


class AttributeSchema:
    """The ordered, read-only set of attribute declarations of one task type."""

    def __init__(self, specs: Iterable[Spec] = ()) -> None:
        declared: dict[str, Spec] = {}
        for spec in specs:
            if spec.name in RESERVED_NAMES or spec.name.startswith("_"):
                raise ConfigurationError(f"{spec.name!r} cannot be used as an attribute name")
            if spec.name in declared:
                raise ConfigurationError(f"Attribute {spec.name!r} is declared twice")
            declared[spec.name] = spec
        self._specs: Mapping[str, Spec] = MappingProxyType(declared)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[Spec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, name: str) -> Spec | None:
        return self._specs.get(name)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._specs)

    def initial_values(
        self, given: Mapping[str, Any], serialise_ref: Callable[[Any], ModelRef]
    ) -> dict[str, Any]:
        """Validate construction input and return the stored attribute map.

        Raises:
            ValidationError: An undeclared attribute was given, or a value has
                the wrong type.
            MissingInputs: A required attribute is absent (or None/blank).
        """
        unknown = sorted(set(given) - set(self._specs))
        if unknown:
            raise ValidationError(f"Unknown attributes: {', '.join(unknown)}")

        missing = [
            spec.name
            for spec in self._specs.values()
            if spec.required and given.get(spec.name) in (None, "")
        ]
        if missing:
            raise MissingInputs(missing)

        values: dict[str, Any] = {}
        for spec in self._specs.values():
            if isinstance(spec, ModelSpec):
                values[spec.name] = spec.dump(given.get(spec.name), serialise_ref)
                continue
            value = given.get(spec.name)
            if value is None:
                value = copy.deepcopy(spec.default)
            values[spec.name] = spec.dump(value)
        return values
