from __future__ import annotations
from typing import List, Optional, Tuple, Union
from enum import Enum
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
import math
import uuid

from .errors import DecodeError

# Coordinate system: page-local PDF user space (points, origin bottom-left, y grows upward).
# On disk every field is camelCase (pageIndex, quadrilateralPoints, createdAt, ...).

FORMAT_VERSION = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnnotationType(str, Enum):
    HIGHLIGHT = "highlight"
    UNDERLINE = "underline"
    STRIKETHROUGH = "strikethrough"
    NOTE = "note"


class Point(_Model):
    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)


class Bounds(_Model):
    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)
    width: float = Field(ge=0, allow_inf_nan=False)
    height: float = Field(ge=0, allow_inf_nan=False)

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> 'Bounds':
        x1, x2 = sorted([x1, x2])
        y1, y2 = sorted([y1, y2])
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    def quad_points(self) -> List[Point]:
        """Underline quad for this rectangle: top-left, top-right, bottom-left, bottom-right."""
        top = self.y + self.height
        right = self.x + self.width
        return [
            Point(x=self.x, y=top),
            Point(x=right, y=top),
            Point(x=self.x, y=self.y),
            Point(x=right, y=self.y),
        ]


class AnnotationRecord(_Model):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: AnnotationType
    color: Tuple[float, float, float, float] = (1.0, 1.0, 0.0, 0.5)  # RGBA
    bounds: Bounds
    page_index: int = Field(ge=0)
    text: Optional[str] = None                              # snapshot of the marked text, informational only
    quadrilateral_points: Optional[List[Point]] = None      # exact render geometry for underlines
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator('color')
    @classmethod
    def _finite_channels(cls, value: Tuple[float, float, float, float]):
        if not all(math.isfinite(c) and c >= 0 for c in value):
            raise ValueError("color channels must be finite and non-negative")
        return value

    @field_validator('quadrilateral_points')
    @classmethod
    def _four_points(cls, value: Optional[List[Point]]):
        if value is not None and len(value) != 4:
            raise ValueError(f"quadrilateralPoints needs exactly 4 points, got {len(value)}")
        return value

    @field_validator('created_at')
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken to be UTC so the stored form is never ambiguous.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def underline(cls, bounds: Bounds, page_index: int,
                  color: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.95),
                  text: Optional[str] = None) -> 'AnnotationRecord':
        return cls(type=AnnotationType.UNDERLINE, bounds=bounds, page_index=page_index,
                   color=color, text=text, quadrilateral_points=bounds.quad_points())


class DocumentAnnotations(_Model):
    document_key: str = Field(
        min_length=1,
        validation_alias=AliasChoices('documentKey', 'document_key', 'documentHash', 'hash'),
        serialization_alias='documentKey',
    )
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices('displayName', 'display_name', 'documentName'),
        serialization_alias='displayName',
    )
    version: int = FORMAT_VERSION
    annotations: List[AnnotationRecord] = []  # kept last so a truncated file still carries its header

    def get(self, record_id: str) -> Optional[AnnotationRecord]:
        for record in self.annotations:
            if record.id == record_id:
                return record
        return None

    def upsert(self, record: AnnotationRecord):
        """Replace the record with the same id in place, or append it."""
        for idx, existing in enumerate(self.annotations):
            if existing.id == record.id:
                self.annotations[idx] = record
                return
        self.annotations.append(record)

    def remove(self, record_id: str) -> bool:
        before = len(self.annotations)
        self.annotations = [a for a in self.annotations if a.id != record_id]
        return len(self.annotations) != before

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, by_alias=True, exclude_none=True)

    @staticmethod
    def from_json(data: Union[str, bytes]) -> 'DocumentAnnotations':
        return DocumentAnnotations.model_validate_json(data)


def encode(doc: DocumentAnnotations) -> bytes:
    return doc.to_json().encode('utf-8')


def decode(data: Union[str, bytes]) -> DocumentAnnotations:
    try:
        return DocumentAnnotations.from_json(data)
    except (ValidationError, ValueError) as e:
        raise DecodeError(f"Not a valid annotation collection: {e}") from e


def repair_truncated(text: str) -> Optional[str]:
    """Best-effort repair of a collection cut off mid-write.

    Scans the text (string and escape aware) for the last '}' that closes either an
    annotation record or the root object, drops everything after it and appends the
    closers that are still open at that point. Returns None if there is no such '}'.
    """
    stack: List[str] = []
    in_string = False
    escape = False
    cut: Optional[int] = None
    closers = ""
    for idx, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == '\\':
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in '{[':
            stack.append(ch)
        elif ch in '}]':
            if not stack:
                break
            stack.pop()
            # depth 0 = root closed, depth 2 = record closed inside "annotations": [...]
            if ch == '}' and len(stack) in (0, 2):
                cut = idx + 1
                closers = "".join('}' if c == '{' else ']' for c in reversed(stack))
                if not stack:
                    break
    if cut is None:
        return None
    return text[:cut] + closers
