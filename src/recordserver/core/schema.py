"""
Schema model: record types, their attributes and relationships.

A Schema is built once at startup and treated as immutable. Route tables,
GraphQL schemas and SQL tables are all derived from it.

Schema documents look like:

    {
        "models": {
            "planet": {
                "attributes": {"name": {"type": "string"}},
                "relationships": {
                    "moons": {"type": "hasMany", "model": "moon",
                              "inverse": "planet", "dependent": "remove"}
                }
            },
            "moon": {
                "attributes": {"name": {"type": "string"}},
                "relationships": {
                    "planet": {"type": "hasOne", "model": "planet", "inverse": "moons"}
                }
            }
        },
        "inflections": {"plurals": {"person": "people"}}
    }
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Literal, Optional, Union

import yaml

from .errors import SchemaConfigError
from .utils import pluralize, singularize


AttributeKind = Literal["string", "number", "boolean", "date", "datetime"]
RelationshipKind = Literal["hasOne", "hasMany"]

ATTRIBUTE_KINDS = ("string", "number", "boolean", "date", "datetime")
RELATIONSHIP_KINDS = ("hasOne", "hasMany")


@dataclass
class AttributeDef:
    """Definition of a record attribute."""
    name: str
    kind: str = "string"


@dataclass
class RelationshipDef:
    """Definition of a relationship between record types."""
    name: str
    kind: RelationshipKind
    target: Union[str, list[str]]  # list of types = polymorphic
    inverse: Optional[str] = None
    dependent: Optional[Literal["remove"]] = None

    @property
    def is_polymorphic(self) -> bool:
        return isinstance(self.target, list)

    @property
    def targets(self) -> list[str]:
        return list(self.target) if isinstance(self.target, list) else [self.target]


@dataclass
class ModelDef:
    """Complete definition of a record type."""
    type: str
    attributes: dict[str, AttributeDef] = field(default_factory=dict)
    relationships: dict[str, RelationshipDef] = field(default_factory=dict)


class Schema:
    """
    Record schema with derived inflection tables.

    Usage:
        schema = Schema.from_dict(yaml.safe_load(text))
        schema.pluralize("planet")      # "planets"
        schema.has_attribute("planet", "name")
    """

    def __init__(
        self,
        models: dict[str, ModelDef],
        plurals: Optional[dict[str, str]] = None,
        singulars: Optional[dict[str, str]] = None,
    ):
        self.models = models
        self._plural_overrides = dict(plurals or {})
        self._singular_overrides = dict(singulars or {})
        for singular, plural in self._plural_overrides.items():
            self._singular_overrides.setdefault(plural, singular)

        self.singulars: dict[str, str] = {}
        self.plurals: dict[str, str] = {name: self.pluralize(name) for name in models}
        self.singulars = {plural: name for name, plural in self.plurals.items()}

        self._validate()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        """Build a schema from a schema document."""
        raw_models = data.get("models")
        if not isinstance(raw_models, dict):
            raise SchemaConfigError("Schema document must contain a 'models' mapping")

        models: dict[str, ModelDef] = {}
        for type_name, raw in raw_models.items():
            raw = raw or {}
            attributes = {
                name: AttributeDef(name=name, kind=(definition or {}).get("type", "string"))
                for name, definition in (raw.get("attributes") or {}).items()
            }
            relationships = {}
            for name, definition in (raw.get("relationships") or {}).items():
                kind = definition.get("type") or definition.get("kind")
                target = definition.get("model") or definition.get("target")
                if kind not in RELATIONSHIP_KINDS:
                    raise SchemaConfigError(
                        f"Relationship {type_name}.{name} has unknown kind {kind!r}"
                    )
                if not target:
                    raise SchemaConfigError(f"Relationship {type_name}.{name} has no target model")
                relationships[name] = RelationshipDef(
                    name=name,
                    kind=kind,
                    target=target,
                    inverse=definition.get("inverse"),
                    dependent=definition.get("dependent"),
                )
            models[type_name] = ModelDef(
                type=type_name, attributes=attributes, relationships=relationships
            )

        inflections = data.get("inflections") or {}
        return cls(
            models,
            plurals=inflections.get("plurals"),
            singulars=inflections.get("singulars"),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> Schema:
        """Load a schema from a YAML or JSON file."""
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise SchemaConfigError(f"Cannot load schema from {path}: {e}") from e
        return cls.from_dict(data or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialize the models back to a schema document."""
        models: dict[str, Any] = {}
        for type_name, model in self.models.items():
            entry: dict[str, Any] = {}
            if model.attributes:
                entry["attributes"] = {
                    name: {"type": attr.kind} for name, attr in model.attributes.items()
                }
            if model.relationships:
                relationships = {}
                for name, rel in model.relationships.items():
                    definition: dict[str, Any] = {"type": rel.kind, "model": rel.target}
                    if rel.inverse:
                        definition["inverse"] = rel.inverse
                    if rel.dependent:
                        definition["dependent"] = rel.dependent
                    relationships[name] = definition
                entry["relationships"] = relationships
            models[type_name] = entry
        return {"models": models}

    def inflections(self) -> dict[str, dict[str, str]]:
        return {"plurals": dict(self.plurals), "singulars": dict(self.singulars)}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        errors = []
        for type_name, model in self.models.items():
            for attr in model.attributes.values():
                if attr.kind not in ATTRIBUTE_KINDS:
                    errors.append(f"{type_name}.{attr.name}: unknown attribute type {attr.kind!r}")

            for rel in model.relationships.values():
                missing = [t for t in rel.targets if t not in self.models]
                if missing:
                    errors.append(f"{type_name}.{rel.name}: unknown target model(s) {missing}")
                    continue
                if rel.dependent not in (None, "remove"):
                    errors.append(f"{type_name}.{rel.name}: unknown dependent policy {rel.dependent!r}")
                if not rel.inverse:
                    continue
                for target in rel.targets:
                    inverse = self.models[target].relationships.get(rel.inverse)
                    if inverse is None:
                        errors.append(
                            f"{type_name}.{rel.name}: inverse {target}.{rel.inverse} does not exist"
                        )
                    elif type_name not in inverse.targets or inverse.inverse != rel.name:
                        errors.append(
                            f"{type_name}.{rel.name}: inverse {target}.{rel.inverse} "
                            f"does not point back to {type_name}.{rel.name}"
                        )

        if errors:
            raise SchemaConfigError("Invalid schema: " + "; ".join(errors))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def has_model(self, type: str) -> bool:
        return type in self.models

    def get_model(self, type: str) -> ModelDef:
        try:
            return self.models[type]
        except KeyError:
            raise SchemaConfigError(f"Unknown model {type!r}") from None

    def has_attribute(self, type: str, attribute: str) -> bool:
        model = self.models.get(type)
        return model is not None and attribute in model.attributes

    def has_relationship(self, type: str, relationship: str) -> bool:
        model = self.models.get(type)
        return model is not None and relationship in model.relationships

    def get_attribute(self, type: str, attribute: str) -> Optional[AttributeDef]:
        model = self.models.get(type)
        return model.attributes.get(attribute) if model else None

    def get_relationship(self, type: str, relationship: str) -> Optional[RelationshipDef]:
        model = self.models.get(type)
        return model.relationships.get(relationship) if model else None

    def each_attribute(self, type: str) -> Iterator[AttributeDef]:
        yield from self.get_model(type).attributes.values()

    def each_relationship(self, type: str) -> Iterator[RelationshipDef]:
        yield from self.get_model(type).relationships.values()

    def inverse_of(self, type: str, relationship: str) -> Optional[RelationshipDef]:
        """Return the inverse definition of a (non polymorphic) relationship."""
        rel = self.get_relationship(type, relationship)
        if rel is None or not rel.inverse or rel.is_polymorphic:
            return None
        return self.get_relationship(rel.target, rel.inverse)

    # ------------------------------------------------------------------
    # Inflection
    # ------------------------------------------------------------------

    def pluralize(self, word: str) -> str:
        if word in self._plural_overrides:
            return self._plural_overrides[word]
        return pluralize(word)

    def singularize(self, word: str) -> str:
        if word in self._singular_overrides:
            return self._singular_overrides[word]
        if word in self.singulars:
            return self.singulars[word]
        return singularize(word)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def generate_id(self, type: Optional[str] = None) -> str:
        return str(uuid.uuid4())

    def initialize_record(self, record: Any) -> None:
        """Assign an id to a record that has none. Client supplied ids are kept."""
        if not record.id:
            record.id = self.generate_id(record.type)
