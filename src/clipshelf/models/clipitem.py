import base64
import hashlib
from datetime import datetime
from typing import Annotated, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from ulid import ULID

DEFAULT_CATEGORY = "Other"


def new_item_id() -> str:
    return f"i_{ULID.from_datetime(datetime.now())}"


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Collapse duplicates and blanks, keeping first-seen order."""
    seen = set()
    result: List[str] = []
    for tag in tags or ():
        cleaned = str(tag).strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
    return result


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    plain: str

    def dedup_key(self) -> str:
        return f"text:{self.plain}"

    def size(self) -> int:
        return len(self.plain)

    def preview(self, limit: int = 60) -> str:
        return self.plain[:limit]


class ImageContent(BaseModel):
    """PNG encoded image. ``data`` travels as base64 in JSON."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["image"] = "image"
    data: bytes
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    @field_validator("data", mode="before")
    @classmethod
    def _decode_base64(cls, value):
        if isinstance(value, str):
            return base64.b64decode(value, validate=True)
        return value

    @field_serializer("data", when_used="json")
    def _encode_base64(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    def dedup_key(self) -> str:
        return f"image:{hashlib.sha256(self.data).hexdigest()}"

    def size(self) -> int:
        return len(self.data)

    def preview(self, limit: int = 60) -> str:
        return f"<image {self.width}x{self.height}, {len(self.data)} bytes>"


ClipContent = Annotated[Union[TextContent, ImageContent], Field(discriminator="kind")]


class Suggestion(BaseModel):
    """Classification result, persisted only once applied to an item."""

    category: str
    tags: List[str] = Field(default_factory=list)
    summary: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _strip_category(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("category must not be blank")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        return normalize_tags(value)

    @field_validator("summary")
    @classmethod
    def _blank_summary(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()


class ClipItem(BaseModel):
    id: str = Field(default_factory=new_item_id)
    content: ClipContent
    created_at: datetime = Field(default_factory=datetime.now)
    category: Optional[str] = None
    summary: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        return normalize_tags(value)

    @property
    def kind(self) -> str:
        return self.content.kind
