"""Field catalog: the static registry of evaluable field paths."""

from typing import Any, Iterable, Optional

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from ..core.errors import ConfigError, UnknownFieldError
from .model import FieldType
from .operators import DEFAULT_OPERATORS, supports


class FieldOption(BaseModel):
    """One allowed value of an enum field."""
    value: str
    label: str = ""


class FieldDefinition(BaseModel):
    """A catalog entry: dotted path, type and legal operators."""
    model_config = {"frozen": True}

    path: str = Field(min_length=1)
    type: FieldType
    label: str = ""
    options: list[FieldOption] = Field(default_factory=list)
    operators: frozenset[str] = Field(default_factory=frozenset, validate_default=True)
    case_sensitive: bool = True
    nullable: bool = False

    @field_validator("operators")
    @classmethod
    def _narrow_operators(cls, value: frozenset[str], info: ValidationInfo) -> frozenset[str]:
        """Fill in the type's default set; reject anything the type lacks."""
        field_type = info.data.get("type")
        if field_type is None:
            return value
        if not value:
            return DEFAULT_OPERATORS[field_type]
        for op_name in value:
            if not supports(field_type, op_name):
                raise ValueError(
                    f"Operator {op_name!r} is not defined for {field_type.value} fields"
                )
        return value

    @model_validator(mode="after")
    def _check_options(self) -> "FieldDefinition":
        if self.type is FieldType.ENUM and not self.options:
            raise ValueError(f"Enum field {self.path} needs options")
        if self.type is not FieldType.ENUM and self.options:
            raise ValueError(f"Only enum fields take options ({self.path})")
        return self

    @property
    def option_values(self) -> list[str]:
        return [o.value for o in self.options]


class FieldCatalog:
    """
    Read-only mapping of field path to FieldDefinition.

    Built once per process; nothing mutates it afterwards, so it can be
    shared between concurrent evaluations.
    """

    def __init__(self, definitions: Iterable[FieldDefinition]):
        fields: dict[str, FieldDefinition] = {}
        for definition in definitions:
            if definition.path in fields:
                raise ConfigError(f"Duplicate field path in catalog: {definition.path}")
            fields[definition.path] = definition
        self._fields = fields

    @classmethod
    def from_dicts(
        cls,
        items: Iterable[dict[str, Any]],
        source: Optional[str] = None,
    ) -> "FieldCatalog":
        """Build a catalog from plain dicts (YAML/JSON config)."""
        definitions = []
        for item in items:
            try:
                definitions.append(FieldDefinition(**item))
            except ValidationError as e:
                raise ConfigError(f"Invalid field definition: {e}", config_path=source)
        return cls(definitions)

    def get(self, path: str) -> Optional[FieldDefinition]:
        """Get definition for path, or None."""
        return self._fields.get(path)

    def resolve(self, path: str) -> FieldDefinition:
        """Get definition for path, raising UnknownFieldError if absent."""
        definition = self._fields.get(path)
        if definition is None:
            raise UnknownFieldError(path)
        return definition

    def operators_for(self, path: str) -> frozenset[str]:
        """Operators legal for the field at path."""
        return self.resolve(path).operators

    def paths(self) -> list[str]:
        return list(self._fields)

    def to_list(self) -> list[dict[str, Any]]:
        """Dump definitions, e.g. for a builder UI."""
        return [
            {
                **d.model_dump(mode="json", exclude={"operators"}),
                "operators": sorted(d.operators),
            }
            for d in self._fields.values()
        ]

    def __contains__(self, path: object) -> bool:
        return path in self._fields

    def __len__(self) -> int:
        return len(self._fields)
