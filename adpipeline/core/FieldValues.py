"""
Resolved values for a node's configuration fields.

A field's value is one of three variants. Media references carry their
companion data (kind, display name, thumbnail) with them instead of
spreading it over extra string keys in the config bag.

    TextValue("Glow serum")               text / textarea fields
    ChoiceValue("Curiosity")              select and model-choice fields
    MediaRef("/uploads/a.png", "image")   image (media) fields

resolve() gives the plain string handed to the operation dispatcher.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class TextValue:
    value: str

    def resolve(self) -> str:
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "text", "value": self.value}


@dataclass(frozen=True)
class ChoiceValue:
    value: str

    def resolve(self) -> str:
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "choice", "value": self.value}


@dataclass(frozen=True)
class MediaRef:
    url: Optional[str]
    kind: str = "image"
    display_name: str = ""
    thumbnail: Optional[str] = None

    def resolve(self) -> str:
        return self.url or ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": "media", "url": self.url, "mediaKind": self.kind}
        if self.display_name:
            data["name"] = self.display_name
        if self.thumbnail:
            data["thumbnail"] = self.thumbnail
        return data


FieldValue = Union[TextValue, ChoiceValue, MediaRef]


def field_value_from_dict(data: Dict[str, Any]) -> FieldValue:
    kind = data.get("kind")
    if kind == "text":
        return TextValue(str(data.get("value", "")))
    if kind == "choice":
        return ChoiceValue(str(data.get("value", "")))
    if kind == "media":
        return MediaRef(
            url=data.get("url"),
            kind=data.get("mediaKind", "image"),
            display_name=data.get("name", ""),
            thumbnail=data.get("thumbnail"),
        )
    raise ValueError(f"Unknown field value kind '{kind}'")
