from __future__ import annotations

import types
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Flag, auto
from typing import Any, Protocol, Union, cast, get_args, get_origin, get_type_hints, overload


class ModelDefinitionError(ValueError):
    pass


class AttributeConverter(Protocol):
    def to_dynamodb(self, value: Any) -> Any: ...

    def from_dynamodb(self, value: Any) -> Any: ...


class OperatorGroup(Flag):
    EQUALITY = auto()
    ORDERING = auto()
    STRING = auto()
    COLLECTION = auto()
    ALL = EQUALITY | ORDERING | STRING | COLLECTION


_ORDERED_TYPES = (int, float, Decimal, bytes, bytearray, datetime, date)
_COLLECTION_ORIGINS = (list, set, frozenset, tuple)


def operator_groups_for(annotation: Any) -> OperatorGroup:
    """Pick the operator groups a field supports from its declared type."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [a for a in get_args(annotation) if a is not type(None)]
        if len(members) != 1:
            return OperatorGroup.ALL
        return operator_groups_for(members[0])

    if annotation is str:
        return OperatorGroup.EQUALITY | OperatorGroup.ORDERING | OperatorGroup.STRING
    if annotation is bool:
        return OperatorGroup.EQUALITY
    if isinstance(annotation, type) and issubclass(annotation, _ORDERED_TYPES):
        return OperatorGroup.EQUALITY | OperatorGroup.ORDERING
    if annotation in _COLLECTION_ORIGINS or origin in _COLLECTION_ORIGINS:
        return OperatorGroup.EQUALITY | OperatorGroup.COLLECTION
    if annotation is dict or origin is dict:
        return OperatorGroup.EQUALITY
    return OperatorGroup.ALL


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    roles: tuple[str, ...]
    omitempty: bool
    set: bool
    json: bool
    annotation: Any = Any
    operators: OperatorGroup = OperatorGroup.ALL
    converter: AttributeConverter | None = None


@dataclass(frozen=True)
class IndexSpec:
    name: str
    type: str
    partition: str
    sort: str | None = None


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    type: str
    partition: str
    sort: str | None = None


@overload
def dynaquery_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
) -> Any: ...


@overload
def dynaquery_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any,
) -> Any: ...


@overload
def dynaquery_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default_factory: Any,
) -> Any: ...


def dynaquery_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("dynaquery_field: cannot set both default and default_factory")

    opts: dict[str, Any] = {
        "omitempty": omitempty,
        "set": set_,
        "json": json,
        "converter": converter,
        "ignore": ignore,
    }
    if name is not None:
        opts["name"] = name
    if roles is not None:
        opts["roles"] = list(roles)

    return field(default=default, default_factory=default_factory, metadata={"dynaquery": opts})


def gsi(name: str, *, partition: str, sort: str | None = None) -> IndexSpec:
    return IndexSpec(name=name, type="GSI", partition=partition, sort=sort)


def lsi(name: str, *, sort: str) -> IndexSpec:
    return IndexSpec(name=name, type="LSI", partition="__TABLE_PK__", sort=sort)


@dataclass(frozen=True)
class ModelDefinition[T]:
    model_type: type[T]
    table_name: str | None
    pk: AttributeDefinition
    sk: AttributeDefinition | None
    attributes: Mapping[str, AttributeDefinition]
    indexes: tuple[IndexDefinition, ...]
    created_at: AttributeDefinition | None = None
    updated_at: AttributeDefinition | None = None

    @classmethod
    def from_dataclass(
        cls,
        model_type: type[T],
        *,
        table_name: str | None = None,
        indexes: Sequence[IndexSpec] = (),
        timestamps: bool = False,
        created_at: str | None = "created_at",
        updated_at: str | None = "updated_at",
    ) -> ModelDefinition[T]:
        if not is_dataclass(model_type):
            raise ModelDefinitionError("model_type must be a dataclass")

        try:
            hints = get_type_hints(model_type)
        except (NameError, TypeError):
            hints = {}

        attributes: dict[str, AttributeDefinition] = {}
        pk_fields: list[str] = []
        sk_fields: list[str] = []

        for dc_field in fields(model_type):
            opts = cast(dict[str, Any], dc_field.metadata.get("dynaquery", {}))
            if bool(opts.get("ignore", False)):
                continue

            roles = tuple(cast(list[str], opts.get("roles", [])))
            if "pk" in roles:
                pk_fields.append(dc_field.name)
            if "sk" in roles:
                sk_fields.append(dc_field.name)

            annotation = hints.get(dc_field.name, Any)
            attributes[dc_field.name] = AttributeDefinition(
                python_name=dc_field.name,
                attribute_name=cast(str, opts.get("name", dc_field.name)),
                roles=roles,
                omitempty=bool(opts.get("omitempty", False)),
                set=bool(opts.get("set", False)),
                json=bool(opts.get("json", False)),
                annotation=annotation,
                operators=operator_groups_for(annotation),
                converter=cast(AttributeConverter | None, opts.get("converter")),
            )

        if len(pk_fields) != 1:
            raise ModelDefinitionError(f"model must define exactly one pk field (found {len(pk_fields)})")

        if len(sk_fields) > 1:
            raise ModelDefinitionError(f"model must define at most one sk field (found {len(sk_fields)})")

        pk = attributes[pk_fields[0]]
        sk = attributes[sk_fields[0]] if sk_fields else None

        resolved_indexes: list[IndexDefinition] = []
        seen_index_names: set[str] = set()

        for spec in indexes:
            if spec.name in seen_index_names:
                raise ModelDefinitionError(f"duplicate index name: {spec.name}")
            seen_index_names.add(spec.name)

            if spec.type not in {"GSI", "LSI"}:
                raise ModelDefinitionError(f"unsupported index type: {spec.type}")

            partition_field = (
                pk.python_name if spec.type == "LSI" and spec.partition == "__TABLE_PK__" else spec.partition
            )
            if partition_field not in attributes:
                raise ModelDefinitionError(f"index {spec.name}: unknown partition field: {partition_field}")

            if spec.type == "LSI" and partition_field != pk.python_name:
                raise ModelDefinitionError(
                    f"index {spec.name}: LSI partition must be the table pk ({pk.python_name})"
                )

            sort_attr: str | None = None
            if spec.sort is not None:
                if spec.sort not in attributes:
                    raise ModelDefinitionError(f"index {spec.name}: unknown sort field: {spec.sort}")
                sort_attr = attributes[spec.sort].attribute_name

            resolved_indexes.append(
                IndexDefinition(
                    name=spec.name,
                    type=spec.type,
                    partition=attributes[partition_field].attribute_name,
                    sort=sort_attr,
                )
            )

        created_attr: AttributeDefinition | None = None
        updated_attr: AttributeDefinition | None = None
        if timestamps:
            for label, field_name in (("created_at", created_at), ("updated_at", updated_at)):
                if field_name is None:
                    continue
                if field_name not in attributes:
                    raise ModelDefinitionError(f"timestamps enabled but {label} field is missing: {field_name}")
            created_attr = attributes[created_at] if created_at is not None else None
            updated_attr = attributes[updated_at] if updated_at is not None else None

        return cls(
            model_type=model_type,
            table_name=table_name,
            pk=pk,
            sk=sk,
            attributes=attributes,
            indexes=tuple(resolved_indexes),
            created_at=created_attr,
            updated_at=updated_attr,
        )

    def attribute(self, python_name: str) -> AttributeDefinition | None:
        return self.attributes.get(python_name)

    def resolve_index(self, index_name: str | None) -> IndexDefinition | None:
        if index_name is None:
            return None
        for idx in self.indexes:
            if idx.name == index_name:
                return idx
        return None
