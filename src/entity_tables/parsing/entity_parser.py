"""Parser for the entity definition DSL.

Each definition becomes a keyword-only entity dataclass carrying the same
markers ``entity_tables.fields`` attaches to hand-written entities::

    Address { street: text, city: text, zip: text? }

    User as users {
        id: uuid @id,
        name: text,
        address: Address? @embedded(prefix = "addr"),
        team_id: uuid?,
        team: Team? @many_to_one(join = "team_id", fetch = lazy),
    }

    Team { id: uuid @id, name: text, members: User[] @one_to_many(mapped_by = "team") }

A type that is used through ``@embedded`` is a value object and gets no
table of its own.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Any, Optional

import ply.yacc as yacc

from entity_tables import fields as markers
from entity_tables.errors import MappingError
from entity_tables.introspection import TypeDescriptor, inspect
from entity_tables.parsing.entity_lexer import EntityLexer
from entity_tables.types import SCALAR_KIND_NAMES, Cascade, FetchMode

if TYPE_CHECKING:
    from entity_tables.registry import Registry
    from entity_tables.table import Table


@dataclass
class TypeRef:
    """Reference to a type, possibly nullable or as an array."""

    name: str
    nullable: bool = False
    is_array: bool = False


@dataclass
class AnnotationSpec:
    """An ``@name(arg = value, ...)`` annotation on a field."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class FieldSpec:
    """Specification for a field before resolution."""

    name: str
    type_ref: TypeRef
    annotations: list[AnnotationSpec] = field(default_factory=list)

    def annotation(self, name: str) -> AnnotationSpec | None:
        for annotation in self.annotations:
            if annotation.name == name:
                return annotation
        return None


@dataclass
class EntitySpec:
    """Specification for an entity before resolution."""

    name: str
    fields: list[FieldSpec]
    table_name: str | None = None


# Accepted arguments per annotation
_ANNOTATIONS: dict[str, frozenset[str]] = {
    "id": frozenset(),
    "column": frozenset({"name"}),
    "embedded": frozenset({"prefix"}),
    "many_to_one": frozenset({"join", "fetch", "cascade"}),
    "one_to_one": frozenset({"join", "mapped_by", "fetch", "cascade"}),
    "one_to_many": frozenset({"join", "mapped_by", "fetch", "cascade"}),
}

_RELATIONSHIPS = ("many_to_one", "one_to_one", "one_to_many")


class EntitySchema:
    """The entity types produced by one parse, by name."""

    def __init__(
        self,
        entities: dict[str, type],
        table_names: dict[str, str],
        value_types: set[str],
    ) -> None:
        self.entities = entities
        self.table_names = table_names
        self.value_types = value_types

    def __getitem__(self, name: str) -> type:
        return self.entities[name]

    def __contains__(self, name: str) -> bool:
        return name in self.entities

    def __iter__(self) -> Iterator[str]:
        return iter(self.entities)

    def __len__(self) -> int:
        return len(self.entities)

    def table_entities(self) -> list[type]:
        """Entity types that map to a table, in definition order."""
        return [cls for name, cls in self.entities.items() if name not in self.value_types]

    def table_name(self, entity_type: type) -> str:
        from entity_tables.registry import default_table_name

        return self.table_names.get(entity_type.__name__) or default_table_name(entity_type)

    def tables(self) -> list[tuple[str, TypeDescriptor]]:
        """Return (table name, descriptor) for every table entity."""
        return [(self.table_name(cls), inspect(cls)) for cls in self.table_entities()]

    def register_all(self, registry: Registry) -> dict[str, Table]:
        """Register every table entity and return the tables by entity name."""
        return {
            cls.__name__: registry.register(cls, self.table_name(cls))
            for cls in self.table_entities()
        }


class EntityParser:
    """Parser for the entity definition DSL."""

    tokens = EntityLexer.tokens

    def __init__(self) -> None:
        self.lexer = EntityLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._specs: dict[str, EntitySpec] = {}
        self._built: dict[str, type] = {}
        # Errors found inside grammar actions, reported once parsing is done
        self._errors: list[str] = []

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : statement_list"""
        p[0] = p[1]

    def p_schema_empty(self, p: yacc.YaccProduction) -> None:
        """schema : empty"""
        p[0] = []

    def p_empty(self, p: yacc.YaccProduction) -> None:
        """empty :"""
        p[0] = None

    def p_statement_list_single(self, p: yacc.YaccProduction) -> None:
        """statement_list : entity_def"""
        p[0] = [p[1]]

    def p_statement_list_multiple(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement_list entity_def"""
        p[0] = p[1] + [p[2]]

    def p_entity_def(self, p: yacc.YaccProduction) -> None:
        """entity_def : IDENTIFIER table_clause LBRACE field_list RBRACE
                      | IDENTIFIER table_clause LBRACE field_list COMMA RBRACE"""
        p[0] = EntitySpec(name=p[1], fields=p[4], table_name=p[2])

    def p_entity_def_empty(self, p: yacc.YaccProduction) -> None:
        """entity_def : IDENTIFIER table_clause LBRACE RBRACE"""
        p[0] = EntitySpec(name=p[1], fields=[], table_name=p[2])

    def p_table_clause(self, p: yacc.YaccProduction) -> None:
        """table_clause : AS IDENTIFIER
                        | AS STRING"""
        p[0] = p[2]

    def p_table_clause_empty(self, p: yacc.YaccProduction) -> None:
        """table_clause : empty"""
        p[0] = None

    def p_field_list_single(self, p: yacc.YaccProduction) -> None:
        """field_list : field"""
        p[0] = [p[1]]

    def p_field_list_multiple(self, p: yacc.YaccProduction) -> None:
        """field_list : field_list COMMA field"""
        p[0] = p[1] + [p[3]]

    def p_field(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER COLON type_ref annotation_list"""
        p[0] = FieldSpec(name=p[1], type_ref=p[3], annotations=p[4])

    def p_type_ref_simple(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER"""
        p[0] = TypeRef(name=p[1])

    def p_type_ref_nullable(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER QUESTION"""
        p[0] = TypeRef(name=p[1], nullable=True)

    def p_type_ref_array(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER LBRACKET RBRACKET"""
        p[0] = TypeRef(name=p[1], is_array=True)

    def p_annotation_list_empty(self, p: yacc.YaccProduction) -> None:
        """annotation_list : empty"""
        p[0] = []

    def p_annotation_list_multiple(self, p: yacc.YaccProduction) -> None:
        """annotation_list : annotation_list annotation"""
        p[0] = p[1] + [p[2]]

    def p_annotation_bare(self, p: yacc.YaccProduction) -> None:
        """annotation : AT IDENTIFIER
                      | AT IDENTIFIER LPAREN RPAREN"""
        p[0] = AnnotationSpec(name=p[2])

    def p_annotation_arguments(self, p: yacc.YaccProduction) -> None:
        """annotation : AT IDENTIFIER LPAREN argument_list RPAREN
                      | AT IDENTIFIER LPAREN argument_list COMMA RPAREN"""
        arguments: dict[str, Any] = {}
        for name, value in p[4]:
            if name in arguments:
                self._errors.append(
                    f"Duplicate argument '{name}' for @{p[2]} (line {p.lineno(1)})"
                )
                continue
            arguments[name] = value
        p[0] = AnnotationSpec(name=p[2], arguments=arguments)

    def p_argument_list_single(self, p: yacc.YaccProduction) -> None:
        """argument_list : argument"""
        p[0] = [p[1]]

    def p_argument_list_multiple(self, p: yacc.YaccProduction) -> None:
        """argument_list : argument_list COMMA argument"""
        p[0] = p[1] + [p[3]]

    def p_argument(self, p: yacc.YaccProduction) -> None:
        """argument : IDENTIFIER EQUALS value"""
        p[0] = (p[1], p[3])

    def p_value_scalar(self, p: yacc.YaccProduction) -> None:
        """value : STRING
                 | IDENTIFIER
                 | INTEGER"""
        p[0] = p[1]

    def p_value_list(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET value_list RBRACKET
                 | LBRACKET value_list COMMA RBRACKET"""
        p[0] = p[2]

    def p_value_list_empty(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET RBRACKET"""
        p[0] = []

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (line {p.lineno})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse_specs(self, data: str) -> list[EntitySpec]:
        """Parse entity definitions without building any types."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)
        self.lexer.lexer.lineno = 1
        self._errors = []
        specs = self.parser.parse(data, lexer=self.lexer.lexer)
        if self._errors:
            raise SyntaxError(self._errors[0])
        return specs or []

    def parse(self, data: str) -> EntitySchema:
        """Parse entity definitions and build their dataclasses.

        Raises:
            SyntaxError: If the text is not valid DSL.
            MappingError: If a definition names an unknown type or annotation,
                or uses an annotation inconsistently with its field type.
        """
        specs = self.parse_specs(data)
        self._specs = {}
        for spec in specs:
            if spec.name in self._specs:
                raise MappingError(spec.name, "Entity is defined more than once")
            if spec.name in SCALAR_KIND_NAMES:
                raise MappingError(spec.name, "Entity name clashes with a scalar type")
            self._specs[spec.name] = spec
        self._built = {}

        value_types: set[str] = set()
        for spec in specs:
            for field_spec in spec.fields:
                self._check_annotations(spec, field_spec)
                if field_spec.annotation("embedded") is not None:
                    value_types.add(field_spec.type_ref.name)

        # Phase 1: build every class; embedded types are built before their owners
        for spec in specs:
            self._build(spec, set())

        # Phase 2: relationship targets exist now, so their annotations can be filled in
        for spec in specs:
            self._resolve_relationships(spec)

        entities = {spec.name: self._built[spec.name] for spec in specs}
        table_names = {spec.name: spec.table_name for spec in specs if spec.table_name}
        return EntitySchema(entities, table_names, value_types)

    def _check_annotations(self, spec: EntitySpec, field_spec: FieldSpec) -> None:
        seen: set[str] = set()
        for annotation in field_spec.annotations:
            allowed = _ANNOTATIONS.get(annotation.name)
            if allowed is None:
                raise MappingError(
                    spec.name, f"Unknown annotation @{annotation.name} on field '{field_spec.name}'"
                )
            if annotation.name in seen:
                raise MappingError(
                    spec.name, f"Annotation @{annotation.name} repeated on field '{field_spec.name}'"
                )
            seen.add(annotation.name)
            unknown = sorted(set(annotation.arguments) - allowed)
            if unknown:
                raise MappingError(
                    spec.name,
                    f"Unknown argument(s) {', '.join(unknown)} for @{annotation.name} "
                    f"on field '{field_spec.name}'",
                )
        kinds = [name for name in ("embedded", *_RELATIONSHIPS) if name in seen]
        if len(kinds) > 1 or (kinds and seen & {"id", "column"}):
            raise MappingError(
                spec.name, f"Conflicting annotations on field '{field_spec.name}'"
            )

    def _entity_spec(self, owner: EntitySpec, field_spec: FieldSpec) -> EntitySpec:
        target = self._specs.get(field_spec.type_ref.name)
        if target is None:
            raise MappingError(
                owner.name,
                f"Unknown entity type '{field_spec.type_ref.name}' for field '{field_spec.name}'",
            )
        return target

    def _build(self, spec: EntitySpec, building: set[str]) -> type:
        built = self._built.get(spec.name)
        if built is not None:
            return built
        if spec.name in building:
            raise MappingError(spec.name, "Embedded types cannot contain themselves")
        building.add(spec.name)

        definitions: list[tuple[str, Any, Any]] = []
        for field_spec in spec.fields:
            definitions.append(self._field_definition(spec, field_spec, building))

        cls = dataclasses.make_dataclass(spec.name, definitions, kw_only=True)
        cls.__module__ = __name__
        self._built[spec.name] = cls
        building.discard(spec.name)
        return cls

    def _field_definition(
        self, spec: EntitySpec, field_spec: FieldSpec, building: set[str]
    ) -> tuple[str, Any, Any]:
        type_ref = field_spec.type_ref

        embedded = field_spec.annotation("embedded")
        if embedded is not None:
            if type_ref.is_array:
                raise MappingError(spec.name, f"Embedded field '{field_spec.name}' cannot be an array")
            nested = self._build(self._entity_spec(spec, field_spec), building)
            annotation = Optional[nested] if type_ref.nullable else nested
            prefix = embedded.arguments.get("prefix")
            return field_spec.name, annotation, markers.embedded(prefix=prefix)

        for kind in _RELATIONSHIPS:
            relationship = field_spec.annotation(kind)
            if relationship is not None:
                self._entity_spec(spec, field_spec)
                if type_ref.is_array != (kind == "one_to_many"):
                    raise MappingError(
                        spec.name,
                        f"@{kind} field '{field_spec.name}' "
                        + ("must" if kind == "one_to_many" else "cannot")
                        + " be declared as an array",
                    )
                # Real annotation is filled in once every class exists
                return field_spec.name, Any, self._relationship_field(spec, field_spec, relationship)

        kind = SCALAR_KIND_NAMES.get(type_ref.name)
        if kind is None:
            raise MappingError(
                spec.name, f"Unknown type '{type_ref.name}' for field '{field_spec.name}'"
            )
        if type_ref.is_array:
            raise MappingError(spec.name, f"Scalar field '{field_spec.name}' cannot be an array")
        annotation: Any = Annotated[kind.python_type, kind]
        if type_ref.nullable:
            annotation = Optional[annotation]
        column = field_spec.annotation("column")
        return field_spec.name, annotation, markers.column(
            primary_key=field_spec.annotation("id") is not None,
            name=column.arguments.get("name") if column is not None else None,
            default=None if type_ref.nullable else dataclasses.MISSING,
        )

    def _relationship_field(
        self, spec: EntitySpec, field_spec: FieldSpec, annotation: AnnotationSpec
    ) -> Any:
        arguments = annotation.arguments
        try:
            fetch = FetchMode(str(arguments["fetch"]).lower()) if "fetch" in arguments else None
            cascade = Cascade.expand(
                [str(c).lower() for c in _as_list(arguments.get("cascade", []))]
            )
        except ValueError as exc:
            raise MappingError(
                spec.name, f"Invalid @{annotation.name} on field '{field_spec.name}': {exc}"
            ) from exc

        options: dict[str, Any] = {"join_column": arguments.get("join"), "cascade": cascade}
        if fetch is not None:
            options["fetch"] = fetch
        if annotation.name == "many_to_one":
            return markers.many_to_one(nullable=field_spec.type_ref.nullable, **options)
        if annotation.name == "one_to_one":
            return markers.one_to_one(
                mapped_by=arguments.get("mapped_by"), nullable=field_spec.type_ref.nullable, **options
            )
        return markers.one_to_many(mapped_by=arguments.get("mapped_by"), **options)

    def _resolve_relationships(self, spec: EntitySpec) -> None:
        cls = self._built[spec.name]
        resolved: dict[str, Any] = {}
        for field_spec in spec.fields:
            if not any(field_spec.annotation(kind) for kind in _RELATIONSHIPS):
                continue
            target = self._built[field_spec.type_ref.name]
            resolved[field_spec.name] = list[target] if field_spec.type_ref.is_array else Optional[target]
        if not resolved:
            return
        cls.__annotations__ = {**cls.__annotations__, **resolved}
        for declared in dataclasses.fields(cls):
            if declared.name in resolved:
                declared.type = resolved[declared.name]


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else [value]
