from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .codec import ItemCodec
from .conditions import resolve_field
from .errors import ValidationError
from .placeholders import name_placeholder, value_placeholder


def build_update(
    codec: ItemCodec[Any],
    changes: Mapping[str, Any],
    *,
    used_names: Mapping[str, str] | None = None,
    used_values: Mapping[str, Any] | None = None,
) -> tuple[str, dict[str, str], dict[str, Any]]:
    """Compile ``changes`` into a ``SET``/``REMOVE`` update expression.

    ``None`` removes the attribute; any other value is set. Placeholders are
    allocated against ``used_names``/``used_values`` (typically the write
    condition's), and a field already aliased there keeps its alias.

    Returns the expression and the names and serialized values it added.
    """
    model = codec.model
    key_fields = {model.pk.python_name}
    if model.sk is not None:
        key_fields.add(model.sk.python_name)

    names: dict[str, str] = dict(used_names or {})
    taken_values: set[str] = set(used_values or {})
    new_names: dict[str, str] = {}
    new_values: dict[str, Any] = {}
    set_parts: list[str] = []
    remove_parts: list[str] = []
    seen: set[str] = set()

    for field_name, value in changes.items():
        attr_def = resolve_field(model, field_name)
        if attr_def.python_name in key_fields:
            raise ValidationError(f"cannot update key field: {attr_def.python_name}")
        if attr_def.python_name in seen:
            raise ValidationError(f"duplicate update field: {attr_def.python_name}")
        seen.add(attr_def.python_name)

        name_ref = name_placeholder(attr_def.attribute_name, names)
        names[name_ref] = attr_def.attribute_name
        new_names[name_ref] = attr_def.attribute_name

        if value is None:
            remove_parts.append(name_ref)
            continue

        value_ref = value_placeholder(attr_def.attribute_name, taken_values)
        taken_values.add(value_ref)
        new_values[value_ref] = codec.serialize_attr(attr_def, value)
        set_parts.append(f"{name_ref} = {value_ref}")

    expr_parts: list[str] = []
    if set_parts:
        expr_parts.append("SET " + ", ".join(set_parts))
    if remove_parts:
        expr_parts.append("REMOVE " + ", ".join(remove_parts))
    if not expr_parts:
        raise ValidationError("no updates provided")

    return " ".join(expr_parts), new_names, new_values
