"""
Database Schemas for the Form Builder

Form -> "forms" collection, Submission -> "submissions" collection.
Attributes are snake_case in Python and camelCase on the wire and in MongoDB
(`maxFileSize`, `thankYouMessage`, `metadata.submittedAt`, ...).

Fields are a tagged union on `type`: each variant carries only the
configuration its type understands, as listed in `field_types.FIELD_TYPES`.
"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
    StrictBool,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from field_types import configured_attributes, unsupported_attributes

DEFAULT_THANK_YOU_MESSAGE = "Thank you for your submission!"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------- Fields ----------

class TextRules(FrozenCamelModel):
    min_length: Optional[NonNegativeInt] = None
    max_length: Optional[NonNegativeInt] = None
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None


class _FieldBase(FrozenCamelModel):
    id: str = Field(..., min_length=1, description="Stable client-generated identifier")
    label: str
    placeholder: Optional[str] = None
    required: StrictBool = False
    order: NonNegativeInt = 0

    @model_validator(mode="before")
    @classmethod
    def _reject_unsupported(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            return data
        try:
            bad = unsupported_attributes(data["type"], configured_attributes(data))
        except ValueError:
            return data
        if bad:
            raise ValueError(f"{', '.join(bad)} not supported for {data['type']} fields")
        return data

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field label is required")
        return v


class _TextualField(_FieldBase):
    validation: Optional[TextRules] = None


class TextField(_TextualField):
    type: Literal["text"] = "text"


class EmailField(_TextualField):
    type: Literal["email"] = "email"


class TextareaField(_TextualField):
    type: Literal["textarea"] = "textarea"


class _ChoiceField(_FieldBase):
    options: List[str] = Field(..., min_length=1)


class SelectField(_ChoiceField):
    type: Literal["select"] = "select"


class RadioField(_ChoiceField):
    type: Literal["radio"] = "radio"


class CheckboxField(_ChoiceField):
    type: Literal["checkbox"] = "checkbox"


class FileField(_FieldBase):
    type: Literal["file"] = "file"
    file_types: List[str] = Field(default_factory=list, description="Accepted MIME types; empty accepts any")
    max_file_size: Optional[PositiveInt] = Field(None, description="Byte ceiling")


FormField = Annotated[
    Union[TextField, EmailField, TextareaField, SelectField, RadioField, CheckboxField, FileField],
    Field(discriminator="type"),
]


# ---------- Forms ----------

class FormSettings(FrozenCamelModel):
    """Replaced wholesale on every edit; never mutated in place."""

    thank_you_message: str = DEFAULT_THANK_YOU_MESSAGE
    submission_limit: Optional[PositiveInt] = None
    # Advisory only: there is no submitter identity to enforce it against
    allow_multiple_submissions: bool = True
    redirect_url: Optional[str] = None
    is_multi_step: bool = False
    steps: List[str] = Field(default_factory=list)


class FormIn(CamelModel):
    """Authoring payload for create/update. Server-managed fields are ignored."""

    title: str
    description: Optional[str] = None
    fields: List[FormField] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    status: Optional[Literal["draft", "published"]] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def _dense_order(self):
        seen = set()
        for f in self.fields:
            if f.id in seen:
                raise ValueError(f"Duplicate field id: {f.id}")
            seen.add(f.id)
        # List position is authoritative; order is always re-derived from it
        if any(f.order != i for i, f in enumerate(self.fields)):
            self.fields = [f if f.order == i else f.model_copy(update={"order": i}) for i, f in enumerate(self.fields)]
        return self


class Form(FormIn):
    id: str
    status: Literal["draft", "published"] = "draft"
    submissions: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None



# ---------- Submissions ----------

class SubmissionField(CamelModel):
    field_id: str
    value: Any = None
    field_type: str


class SubmissionMetadata(FrozenCamelModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    submitted_at: datetime


class Submission(CamelModel):
    id: Optional[str] = None
    form_id: str
    fields: List[SubmissionField] = Field(default_factory=list)
    metadata: SubmissionMetadata
    status: Literal["pending", "processed", "failed"] = "pending"
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
