"""Transformation rule definition models."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Literal

TransformName = Literal[
    "toUpperCase",
    "toLowerCase",
    "trim",
    "toString",
    "toNumber",
    "toBoolean",
    "formatDate",
    "mapGender",
    "generateUUID",
]


class FieldMapping(BaseModel):
    """Maps one value from the event into the output document."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str = Field(..., description="Path expression into the event, e.g. $.data.name")
    target: str = Field(..., description="Path expression into the output, e.g. $.fullName")
    transform: TransformName | None = Field(default=None, description="Converter to apply")
    default_value: Any = Field(default=None, alias="defaultValue")
    required: bool = False
    description: str | None = None

    @property
    def has_default(self) -> bool:
        """True when defaultValue was given explicitly (even as null)."""
        return "default_value" in self.model_fields_set


class RuleMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str | None = None
    author: str | None = None
    created: str | None = None
    modified: str | None = None
    tags: list[str] = Field(default_factory=list)


class TransformationRule(BaseModel):
    """Named set of field mappings applied to one event type."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1, description="Unique rule name")
    description: str = ""
    event_type: str = Field(..., min_length=1, alias="eventType")
    target_format: str = Field(..., min_length=1, alias="targetFormat")
    enabled: bool = True
    mappings: list[FieldMapping] = Field(..., min_length=1)
    output_schema: dict[str, Any] | str | None = Field(default=None, alias="outputSchema")
    destination: str | None = None
    metadata: RuleMetadata | None = None


class RuleCacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rule: TransformationRule
    loaded_at: float = Field(..., alias="loadedAt")
    file_path: str = Field(default="", alias="filePath")


class RuleLoadResult(BaseModel):
    success: bool
    rules: list[TransformationRule] | None = None
    errors: list[str] | None = None
    # rule name -> file it was read from
    sources: dict[str, str] = Field(default_factory=dict)


class RuleMatchResult(BaseModel):
    matched: bool
    rule: TransformationRule | None = None
    error: str | None = None


class MappingResult(BaseModel):
    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] | None = None


class TransformationMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rule: str
    event_type: str = Field(..., alias="eventType")
    transformed_at: str = Field(..., alias="transformedAt")


class TransformationResult(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    errors: list[str] | None = None
    metadata: TransformationMetadata | None = None
