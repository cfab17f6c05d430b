from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict

from chatline.utils.time import EPOCH, from_millis, normalize

R = TypeVar("R", bound="Record")
E = TypeVar("E", bound=Enum)

# Stored as integer milliseconds, so held values never carry finer precision
Timestamp = Annotated[datetime, AfterValidator(normalize)]


class Record(BaseModel):
    """Immutable domain record stored as a camelCase document"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def copy_with(self: R, **changes: Any) -> R:
        """Return a copy with the given fields replaced"""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown fields for {type(self).__name__}: {sorted(unknown)}")
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self).model_validate(values)


def read_str(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    return value if isinstance(value, str) else default


def read_optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def read_bool(data: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key)
    return value if isinstance(value, bool) else default


def read_time(data: Mapping[str, Any], key: str) -> datetime:
    return from_millis(data.get(key)) or EPOCH


def read_optional_time(data: Mapping[str, Any], key: str) -> Optional[datetime]:
    return from_millis(data.get(key))


def read_map(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return dict(value) if isinstance(value, dict) else {}


def read_str_list(data: Mapping[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def read_enum(data: Mapping[str, Any], key: str, enum_class: Type[E], default: E) -> E:
    try:
        return enum_class(data.get(key))
    except ValueError:
        return default
