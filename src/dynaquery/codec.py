from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import MISSING, fields, is_dataclass, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, cast, get_args, get_origin

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

from .errors import ValidationError
from .expressions import normalize_value
from .model import AttributeConverter, AttributeDefinition, ModelDefinition


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float, Decimal)) and value == 0:
        return True
    if isinstance(value, (str, bytes, bytearray, list, dict, set, tuple)) and len(value) == 0:
        return True
    return False


def _unwrap_optional(annotation: Any) -> Any:
    args = [a for a in get_args(annotation) if a is not type(None)]
    if get_origin(annotation) is not None and len(args) == 1 and type(None) in get_args(annotation):
        return args[0]
    return annotation


def _coerce_value(value: Any, annotation: Any) -> Any:
    if value is None:
        return None

    annotation = _unwrap_optional(annotation)

    if annotation is int and isinstance(value, Decimal):
        return int(value)
    if annotation is float and isinstance(value, Decimal):
        return float(value)
    if annotation is datetime and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if annotation is bytes and isinstance(value, Binary):
        return value.value
    if annotation is date and isinstance(value, str):
        return date.fromisoformat(value)

    origin = get_origin(annotation)
    if origin is set and isinstance(value, set):
        (elem_type,) = get_args(annotation) or (Any,)
        return {_coerce_value(v, elem_type) for v in value}
    if origin is list and isinstance(value, list):
        (elem_type,) = get_args(annotation) or (Any,)
        return [_coerce_value(v, elem_type) for v in value]

    return value


def _serializable(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_serializable(v) for v in value]
    if isinstance(value, dict):
        return {k: _serializable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return {_serializable(v) for v in value}
    return normalize_value(value)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ItemCodec[T]:
    """Converts dataclass items to attribute-value maps and back.

    Raw items coming back from the store are validated by constructing the
    model dataclass; anything that does not fit raises ``ValidationError``.
    """

    def __init__(self, model: ModelDefinition[T], *, clock: Callable[[], datetime] | None = None) -> None:
        self._model = model
        self._clock = clock or _utc_now
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @property
    def model(self) -> ModelDefinition[T]:
        return self._model

    def serialize(self, value: Any) -> dict[str, Any]:
        try:
            return self._serializer.serialize(_serializable(value))
        except TypeError as err:
            raise ValidationError(str(err)) from err

    def serialize_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self.serialize(v) for k, v in values.items()}

    def serialize_attr(self, attr_def: AttributeDefinition, value: Any) -> dict[str, Any]:
        if attr_def.converter is not None and value is not None:
            value = attr_def.converter.to_dynamodb(value)

        if attr_def.set and isinstance(value, (set, frozenset)) and not value:
            return self.serialize(None)

        if attr_def.json and value is not None:
            value = json.dumps(_jsonable(value), separators=(",", ":"), sort_keys=True)

        return self.serialize(value)

    def to_item(self, item: T) -> dict[str, Any]:
        if not is_dataclass(item) or isinstance(item, type):
            raise ValidationError("item must be a dataclass instance")

        out: dict[str, Any] = {}
        for field_name, attr_def in self._model.attributes.items():
            value = getattr(item, field_name)
            if attr_def.omitempty and _is_empty(value):
                continue
            out[attr_def.attribute_name] = self.serialize_attr(attr_def, value)

        if self._model.pk.attribute_name not in out or getattr(item, self._model.pk.python_name) is None:
            raise ValidationError("missing pk")
        if self._model.sk is not None and (
            self._model.sk.attribute_name not in out or getattr(item, self._model.sk.python_name) is None
        ):
            raise ValidationError("missing sk")

        return out

    def to_key(self, pk: Any, sk: Any | None = None) -> dict[str, Any]:
        if pk is None:
            raise ValidationError("pk is required")
        if self._model.sk is None and sk is not None:
            raise ValidationError("model does not define sk")
        if self._model.sk is not None and sk is None:
            raise ValidationError("sk is required")

        key = {self._model.pk.attribute_name: self.serialize_attr(self._model.pk, pk)}
        if self._model.sk is not None:
            key[self._model.sk.attribute_name] = self.serialize_attr(self._model.sk, sk)
        return key

    def key_of(self, key: Any) -> dict[str, Any]:
        """Accept ``pk`` or ``(pk, sk)`` and return the serialized key map."""
        if isinstance(key, tuple):
            if len(key) != 2:
                raise ValidationError("expected key tuple (pk, sk)")
            pk, sk = key
            return self.to_key(pk, sk)
        if self._model.sk is not None:
            raise ValidationError("expected key tuple (pk, sk)")
        return self.to_key(key)

    def serialize_key_mapping(self, key: Mapping[str, Any]) -> dict[str, Any]:
        # Accepts python field names or stored attribute names.
        by_attr = {a.attribute_name: a for a in self._model.attributes.values()}
        out: dict[str, Any] = {}
        for name, value in key.items():
            attr_def = self._model.attributes.get(name) or by_attr.get(name)
            if attr_def is None:
                out[name] = self.serialize(value)
            else:
                out[attr_def.attribute_name] = self.serialize_attr(attr_def, value)
        return out

    def from_item(self, item: Mapping[str, Any]) -> T:
        model_cls = self._model.model_type
        kwargs: dict[str, Any] = {}

        for attr_def in self._model.attributes.values():
            if attr_def.attribute_name not in item:
                continue
            try:
                raw = self._deserializer.deserialize(item[attr_def.attribute_name])
                if attr_def.json and isinstance(raw, str):
                    raw = json.loads(raw)
                if attr_def.converter is not None and raw is not None:
                    raw = _from_converter(attr_def.converter, raw)
                kwargs[attr_def.python_name] = _coerce_value(raw, attr_def.annotation)
            except (TypeError, ValueError) as err:
                raise ValidationError(f"{attr_def.python_name}: {err}") from err

        try:
            return model_cls(**kwargs)
        except (TypeError, ValueError) as err:
            raise ValidationError(str(err)) from err

    def stamp_for_create(self, item: T) -> T:
        stamps: dict[str, Any] = {}
        now = self._clock()
        for attr_def in (self._model.created_at, self._model.updated_at):
            if attr_def is None or not _is_empty(getattr(item, attr_def.python_name)):
                continue
            stamps[attr_def.python_name] = _timestamp_for(attr_def, now)
        if not stamps:
            return item
        return replace(cast(Any, item), **stamps)

    def stamp_for_update(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        out = dict(changes)
        attr_def = self._model.updated_at
        if attr_def is not None and attr_def.python_name not in out and attr_def.attribute_name not in out:
            out[attr_def.python_name] = _timestamp_for(attr_def, self._clock())
        return out

    def required_fields(self) -> set[str]:
        required: set[str] = {self._model.pk.python_name}
        if self._model.sk is not None:
            required.add(self._model.sk.python_name)
        for dc_field in fields(cast(Any, self._model.model_type)):
            if dc_field.name not in self._model.attributes:
                continue
            if dc_field.default is MISSING and dc_field.default_factory is MISSING:
                required.add(dc_field.name)
        return required


def _from_converter(converter: AttributeConverter, raw: Any) -> Any:
    try:
        return converter.from_dynamodb(raw)
    except (TypeError, ValueError):
        raise
    except Exception as err:
        raise ValueError(f"converter failed: {err!r}") from err


def _timestamp_for(attr_def: AttributeDefinition, now: datetime) -> Any:
    annotation = _unwrap_optional(attr_def.annotation)
    if annotation is datetime:
        return now
    if annotation is int:
        return int(now.timestamp())
    return normalize_value(now)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date)):
        return normalize_value(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
