"""
Dataclass schema support: declared defaults, decoding and serialization.

A configuration record is a plain dataclass. Fields may declare a default as
a string with setting(); apply_defaults() coerces it to the field's annotated
type:

    @dataclass
    class ServerConfig:
        Version: int = 0
        Port: int = setting("8080")
        Debug: bool = setting("false")
        DBPassword: str = ""
        DBSecurePassword: str = ""

decode_into() copies parsed file data onto a record, checking that every value
fits the declared field type.
"""

from __future__ import annotations

import dataclasses
import logging
import types
import typing
from collections.abc import Mapping, MutableMapping
from typing import Any

from sealconf.errors import (
    DefaultValueError,
    DeserializationError,
    UnsupportedFieldTypeError,
)

logger = logging.getLogger(__name__)

DEFAULT_METADATA_KEY = "default"

_BOOL_TRUE = {"1", "t", "true"}
_BOOL_FALSE = {"0", "f", "false"}


def setting(default: str, **field_kwargs: Any) -> Any:
    """
    Declare a dataclass field with a string default applied at load time.

    Args:
        default: Default in string form, e.g. "8080" or "true".
        **field_kwargs: Passed on to dataclasses.field(). The field's initial
                        value is None unless default_factory is given.

    Returns:
        A dataclasses.field() carrying the default in its metadata.
    """
    metadata = dict(field_kwargs.pop("metadata", None) or {})
    metadata[DEFAULT_METADATA_KEY] = str(default)
    if "default_factory" not in field_kwargs:
        field_kwargs["default"] = None
    return dataclasses.field(metadata=metadata, **field_kwargs)


def is_dataclass_instance(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        return {f.name: f.type for f in dataclasses.fields(cls)}


def _unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Return (inner type, allows None) for Optional[X] / X | None."""
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        optional = len(args) < len(typing.get_args(tp))
        if len(args) == 1:
            return args[0], optional
        return Any, optional
    return tp, tp is Any


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def coerce_default(raw: str, tp: Any, path: str) -> Any:
    """
    Convert a string default to the given field type.

    Raises:
        DefaultValueError: If the string cannot be parsed as that type.
        UnsupportedFieldTypeError: If the type is not str, int, float or bool.
    """
    if tp is str:
        return raw
    if tp is bool:
        lowered = raw.strip().lower()
        if lowered in _BOOL_TRUE:
            return True
        if lowered in _BOOL_FALSE:
            return False
        raise DefaultValueError(f"Invalid default for {path}: {raw!r} is not a boolean")
    if tp is int or tp is float:
        try:
            return tp(raw)
        except ValueError as e:
            raise DefaultValueError(
                f"Invalid default for {path}: {raw!r} is not {tp.__name__}"
            ) from e
    type_name = getattr(tp, "__name__", repr(tp))
    raise UnsupportedFieldTypeError(
        f"Cannot apply default to {path}: unsupported field type {type_name}"
    )


def apply_defaults(record: Any, path: str = "") -> None:
    """
    Set every field that declares a setting() default, recursively.

    Nested dataclass instances and dataclass elements of lists are visited.
    Mapping records have no declarations and are left alone.

    Raises:
        DefaultValueError: If a default does not parse.
        UnsupportedFieldTypeError: If a default targets an unsupported type.
    """
    if not is_dataclass_instance(record):
        return

    hints = _type_hints(type(record))
    for f in dataclasses.fields(record):
        field_path = _join(path, f.name)
        value = getattr(record, f.name)

        if is_dataclass_instance(value):
            apply_defaults(value, field_path)
        elif isinstance(value, list):
            for index, element in enumerate(value):
                apply_defaults(element, f"{field_path}[{index}]")
        elif DEFAULT_METADATA_KEY in f.metadata:
            tp, _ = _unwrap_optional(hints.get(f.name, Any))
            setattr(record, f.name, coerce_default(f.metadata[DEFAULT_METADATA_KEY], tp, field_path))


def _new_record(tp: type, path: str) -> Any:
    try:
        record = tp()
    except TypeError as e:
        raise DeserializationError(
            f"Cannot construct {tp.__name__} for {path}: every field needs a default"
        ) from e
    apply_defaults(record, path)
    return record


def _mismatch(path: str, expected: str, value: Any) -> DeserializationError:
    return DeserializationError(
        f"Invalid value for {path}: expected {expected}, got {type(value).__name__}"
    )


def _decode_value(current: Any, value: Any, tp: Any, path: str) -> Any:
    tp, optional = _unwrap_optional(tp)

    if value is None:
        if optional or tp is Any:
            return None
        raise _mismatch(path, getattr(tp, "__name__", str(tp)), value)

    if tp is Any or isinstance(tp, (str, typing.TypeVar)):
        return value

    if _is_dataclass_type(tp):
        if not isinstance(value, Mapping):
            raise _mismatch(path, "an object", value)
        target = current if isinstance(current, tp) else _new_record(tp, path)
        decode_into(target, value, path)
        return target

    origin = typing.get_origin(tp)
    if origin is list or tp is list:
        if not isinstance(value, list):
            raise _mismatch(path, "a list", value)
        args = typing.get_args(tp)
        item_tp = args[0] if args else Any
        return [
            _decode_value(None, item, item_tp, f"{path}[{index}]")
            for index, item in enumerate(value)
        ]

    if origin is dict or tp is dict:
        if not isinstance(value, Mapping):
            raise _mismatch(path, "an object", value)
        return dict(value)

    if tp is bool:
        if not isinstance(value, bool):
            raise _mismatch(path, "bool", value)
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _mismatch(path, "int", value)
        return value
    if tp is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _mismatch(path, "float", value)
        return float(value)
    if tp is str:
        if not isinstance(value, str):
            raise _mismatch(path, "str", value)
        return value

    return value


def decode_into(record: Any, data: Any, path: str = "") -> None:
    """
    Copy parsed file data onto a record.

    For dataclass records each key naming a field is assigned after checking
    it against the field's annotation; unknown keys are ignored. Mapping
    records take the data as-is.

    Raises:
        DeserializationError: If the data does not fit the record shape.
    """
    if not isinstance(data, Mapping):
        raise _mismatch(path or "configuration", "an object", data)

    if isinstance(record, MutableMapping):
        record.clear()
        record.update(data)
        return

    hints = _type_hints(type(record))
    names = {f.name for f in dataclasses.fields(record)}
    for key, value in data.items():
        field_path = _join(path, str(key))
        if key not in names:
            logger.debug("Ignoring unknown field %s", field_path)
            continue
        decoded = _decode_value(getattr(record, key), value, hints.get(key, Any), field_path)
        setattr(record, key, decoded)


def to_data(record: Any) -> Any:
    """Convert a record to plain data in declared field order."""
    if is_dataclass_instance(record):
        return dataclasses.asdict(record)
    return dict(record)
