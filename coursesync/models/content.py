"""
Pydantic models for replicated content.

These models describe the wire format exchanged between master and client
nodes. Each content kind gets its own model so that the transport boundary can
reject unknown or missing fields before anything reaches the sync engine.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from coursesync.errors import ContentTypeMismatch, ValidationError


class ContentKind(str, Enum):
    COURSE = "course"
    LESSON = "lesson"
    TOPIC = "topic"
    QUIZ = "quiz"
    QUESTION = "question"

    @property
    def plural(self) -> str:
        return _PLURALS[self]

    @classmethod
    def from_wire(cls, value: str) -> "ContentKind":
        """Accept singular (``quiz``) or plural (``quizzes``) names."""
        if isinstance(value, ContentKind):
            return value
        name = (value or "").strip().lower()
        for kind in cls:
            if name in (kind.value, _PLURALS[kind]):
                return kind
        raise ContentTypeMismatch(f"Unknown content type: {value!r}")


_PLURALS = {
    ContentKind.COURSE: "courses",
    ContentKind.LESSON: "lessons",
    ContentKind.TOPIC: "topics",
    ContentKind.QUIZ: "quizzes",
    ContentKind.QUESTION: "questions",
}

# Emission order for pulls and for the per-kind toggles
KIND_ORDER = [
    ContentKind.COURSE,
    ContentKind.LESSON,
    ContentKind.TOPIC,
    ContentKind.QUIZ,
    ContentKind.QUESTION,
]

PUBLISHED = "published"
DRAFT = "draft"

Direction = Literal["pull", "push", "update"]
Outcome = Literal["success", "skipped", "error", "info", "debug"]
ItemStatus = Literal["success", "skipped", "error"]


class ContentItemBase(BaseModel):
    """One synchronizable unit as carried on the wire.

    Field aliases follow the wire names (``content``, ``excerpt``...) while
    attributes use the domain names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    stable_id: str = Field(..., alias="id", min_length=1, max_length=64)
    title: str = Field(..., max_length=255)
    body: str = Field("", alias="content")
    summary: str = Field("", alias="excerpt")
    slug: str = Field(..., min_length=1, max_length=200)
    lifecycle_state: str = Field(PUBLISHED, alias="status")
    created: Optional[datetime] = Field(None, alias="date")
    modified: Optional[datetime] = None
    parent_ref: Optional[str] = Field(None, alias="parent")
    ordering_key: int = Field(0, alias="menu_order", ge=0)
    config_metadata: Dict[str, Any] = Field(default_factory=dict, alias="meta")
    featured_media_ref: Optional[str] = Field(None, alias="featured_image")
    attached_taxonomy_terms: Dict[str, List[str]] = Field(
        default_factory=dict, alias="taxonomies"
    )
    # Origin node's own numeric id; lets the structure rebuild translate
    # step keys that still carry the origin's local ids.
    source_id: Optional[int] = None

    @field_validator("stable_id", "parent_ref", "featured_media_ref", mode="before")
    @classmethod
    def _coerce_ref(cls, value):
        # Legacy payloads send numeric ids; 0 means "no reference"
        if value is None or value == 0 or value == "0":
            return None
        return str(value)

    @field_validator("attached_taxonomy_terms", mode="before")
    @classmethod
    def _dedupe_terms(cls, value):
        if not value:
            return {}
        terms = {}
        for taxonomy, slugs in dict(value).items():
            seen: List[str] = []
            for slug in slugs or []:
                if slug not in seen:
                    seen.append(slug)
            terms[taxonomy] = seen
        return terms

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"kind"})


class CourseItem(ContentItemBase):
    kind: Literal["course"] = "course"


class LessonItem(ContentItemBase):
    kind: Literal["lesson"] = "lesson"


class TopicItem(ContentItemBase):
    kind: Literal["topic"] = "topic"


class QuizItem(ContentItemBase):
    kind: Literal["quiz"] = "quiz"


class QuestionItem(ContentItemBase):
    kind: Literal["question"] = "question"


ContentItem = Annotated[
    Union[CourseItem, LessonItem, TopicItem, QuizItem, QuestionItem],
    Field(discriminator="kind"),
]

ITEM_MODELS = {
    ContentKind.COURSE: CourseItem,
    ContentKind.LESSON: LessonItem,
    ContentKind.TOPIC: TopicItem,
    ContentKind.QUIZ: QuizItem,
    ContentKind.QUESTION: QuestionItem,
}

_item_adapter: TypeAdapter = TypeAdapter(ContentItem)


def _validation_summary(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "kind")
        parts.append(f"{location or 'item'}: {error.get('msg')}")
    return "Invalid item: " + "; ".join(parts)


def parse_item(kind: ContentKind, data: Any) -> ContentItemBase:
    """Validate raw ``data`` as an item of ``kind``.

    Raises ValidationError for missing/invalid fields and
    ContentTypeMismatch when ``data`` declares another kind.
    """
    if not isinstance(data, dict):
        raise ContentTypeMismatch("Item data must be an object")
    declared = data.get("kind")
    if declared is not None and ContentKind.from_wire(declared) != kind:
        raise ContentTypeMismatch(
            f"Item declares kind {declared!r} but was sent as {kind.value!r}"
        )
    try:
        return _item_adapter.validate_python({**data, "kind": kind.value})
    except PydanticValidationError as exc:
        raise ValidationError(_validation_summary(exc)) from exc


# Transport envelopes -------------------------------------------------------


class BatchEntry(BaseModel):
    """Loose envelope; ``data`` is validated per item by the engine."""

    type: str
    data: Any = None


class BatchRequest(BaseModel):
    items: List[BatchEntry] = Field(default_factory=list)


class ItemResult(BaseModel):
    status: ItemStatus
    kind: Optional[str] = None
    stable_id: Optional[str] = None
    local_id: Optional[int] = None
    message: str = ""


class BatchResult(BaseModel):
    success: bool = True
    synced: int = 0
    skipped: int = 0
    errors: int = 0
    message: str = ""
    details: List[ItemResult] = Field(default_factory=list)

    def add(self, result: ItemResult) -> None:
        if result.status == "success":
            self.synced += 1
        elif result.status == "skipped":
            self.skipped += 1
        else:
            self.errors += 1
        self.details.append(result)


class ContentPage(BaseModel):
    items: List[Dict[str, Any]]
    total: int
    total_pages: int
    page: int
    per_page: int


class VerifyResponse(BaseModel):
    success: bool = True
    message: str = "Connection verified successfully."
    site_url: str
    site_name: str
    version: str
