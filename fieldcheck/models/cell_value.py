from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .field_meta import FieldType

"""Tagged union for raw cell values.

Every payload coming from a data source is classified once into one of the
variants below. The normalizer dispatches on the variant class, so there is
no chain of shape predicates at normalization time.

Classification prefers the column type when the caller knows it; otherwise
it falls back to the payload shape (remote API and embedded SDK shapes are
both recognized).
"""

__all__ = [
    "Empty",
    "Text",
    "Number",
    "Timestamp",
    "Checkbox",
    "SelectOption",
    "SingleSelect",
    "MultiSelect",
    "User",
    "Users",
    "Attachment",
    "Attachments",
    "Segment",
    "Segments",
    "GroupChat",
    "GroupChats",
    "Unsupported",
    "Opaque",
    "CellValue",
    "classify",
]


@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Number:
    value: float | int


@dataclass(frozen=True)
class Timestamp:
    millis: int | float  # epoch milliseconds


@dataclass(frozen=True)
class Checkbox:
    checked: bool


@dataclass(frozen=True)
class SelectOption:
    id: str | None
    text: str


@dataclass(frozen=True)
class SingleSelect:
    option: SelectOption


@dataclass(frozen=True)
class MultiSelect:
    options: tuple[SelectOption, ...]


@dataclass(frozen=True)
class User:
    id: str | None
    name: str


@dataclass(frozen=True)
class Users:
    users: tuple[User, ...]


@dataclass(frozen=True)
class Attachment:
    name: str
    size: int | None = None
    timestamp: int | None = None


@dataclass(frozen=True)
class Attachments:
    items: tuple[Attachment, ...]


@dataclass(frozen=True)
class Segment:
    text: str
    type: str = "text"


@dataclass(frozen=True)
class Segments:
    segments: tuple[Segment, ...]


@dataclass(frozen=True)
class GroupChat:
    id: str
    name: str | None = None


@dataclass(frozen=True)
class GroupChats:
    chats: tuple[GroupChat, ...]


@dataclass(frozen=True)
class Unsupported:
    """Shapes that validation does not look into (link, location, phone, ...)."""
    kind: str


@dataclass(frozen=True)
class Opaque:
    """Anything unrecognized; normalized by JSON serialization."""
    raw: Any


CellValue = Union[
    Empty, Text, Number, Timestamp, Checkbox, SingleSelect, MultiSelect, Users,
    Attachments, Segments, GroupChats, Unsupported, Opaque,
]

_UNSUPPORTED_TYPES = {
    FieldType.URL: "link",
    FieldType.SINGLE_LINK: "link",
    FieldType.DUPLEX_LINK: "link",
    FieldType.LOCATION: "location",
    FieldType.PHONE: "phone",
    FieldType.AUTO_NUMBER: "auto_number",
}

_USER_TYPES = {FieldType.USER, FieldType.CREATED_USER, FieldType.MODIFIED_USER}
_TIME_TYPES = {FieldType.DATETIME, FieldType.CREATED_TIME, FieldType.MODIFIED_TIME}


def _option(item: Any) -> SelectOption:
    if isinstance(item, dict):
        return SelectOption(id=item.get("id"), text=str(item.get("text") or item.get("name") or ""))
    return SelectOption(id=None, text=str(item))


def _user(item: dict[str, Any]) -> User:
    return User(id=item.get("id"), name=str(item.get("name") or ""))


def _attachment(item: dict[str, Any]) -> Attachment:
    return Attachment(
        name=str(item.get("name") or ""),
        size=item.get("size"),
        timestamp=item.get("timestamp"),
    )


def _segment(item: dict[str, Any]) -> Segment:
    return Segment(text=str(item.get("text") or ""), type=str(item.get("type") or "text"))


def _group_chat(item: dict[str, Any]) -> GroupChat:
    return GroupChat(id=str(item.get("id") or ""), name=item.get("name"))


def _is_attachment(item: dict[str, Any]) -> bool:
    return ("file_token" in item or "token" in item) and "name" in item


def _is_user(item: dict[str, Any]) -> bool:
    return "email" in item or "en_name" in item or "enName" in item


def _is_group_chat(item: dict[str, Any]) -> bool:
    return "id" in item and ("avatar_url" in item or "avatarUrl" in item) and not _is_user(item)


def _classify_list(items: list[Any], field_type: FieldType) -> CellValue:
    if not items:
        return Empty()
    if field_type in _USER_TYPES:
        return Users(tuple(_user(i) for i in items if isinstance(i, dict)))
    if field_type == FieldType.GROUP_CHAT:
        return GroupChats(tuple(_group_chat(i) for i in items if isinstance(i, dict)))
    if field_type == FieldType.ATTACHMENT:
        return Attachments(tuple(_attachment(i) for i in items if isinstance(i, dict)))
    if field_type == FieldType.MULTI_SELECT:
        return MultiSelect(tuple(_option(i) for i in items))

    if all(isinstance(i, str) for i in items):
        # remote API returns multi-select cells as plain strings
        return MultiSelect(tuple(_option(i) for i in items))
    if not all(isinstance(i, dict) for i in items):
        return Opaque(items)

    first = items[0]
    if "record_ids" in first or "text_arr" in first:
        return Unsupported("link")
    if _is_attachment(first):
        return Attachments(tuple(_attachment(i) for i in items))
    if _is_user(first):
        return Users(tuple(_user(i) for i in items))
    if _is_group_chat(first):
        return GroupChats(tuple(_group_chat(i) for i in items))
    if "type" in first and "text" in first:
        return Segments(tuple(_segment(i) for i in items))
    if "id" in first and "text" in first:
        return MultiSelect(tuple(_option(i) for i in items))
    if "text" in first:
        return Segments(tuple(_segment(i) for i in items))
    if "name" in first and "id" in first:
        return Users(tuple(_user(i) for i in items))
    return Opaque(items)


def _classify_dict(item: dict[str, Any], field_type: FieldType) -> CellValue:
    if field_type == FieldType.SINGLE_SELECT or ("id" in item and "text" in item and len(item) <= 2):
        return SingleSelect(_option(item))
    if "record_ids" in item or ("link" in item and "text" in item):
        return Unsupported("link")
    if "full_address" in item or "location" in item or ("lng" in item and "lat" in item):
        return Unsupported("location")
    if _is_attachment(item):
        return Unsupported("attachment")
    if "type" in item and "text" in item:
        return Segments((_segment(item),))
    return Opaque(item)


def classify(raw: Any, field_type: FieldType | int | None = None) -> CellValue:
    """Classify a raw payload into a CellValue variant. Never raises."""
    ft = FieldType.from_code(field_type) if field_type is not None else FieldType.UNKNOWN

    if raw is None:
        return Empty()
    if ft in _UNSUPPORTED_TYPES:
        return Unsupported(_UNSUPPORTED_TYPES[ft])
    if isinstance(raw, bool):
        return Checkbox(raw)
    if isinstance(raw, (int, float)):
        if ft in _TIME_TYPES:
            return Timestamp(raw)
        return Number(raw)
    if isinstance(raw, str):
        return Text(raw)
    if isinstance(raw, (list, tuple)):
        return _classify_list(list(raw), ft)
    if isinstance(raw, dict):
        return _classify_dict(raw, ft)
    return Opaque(raw)
