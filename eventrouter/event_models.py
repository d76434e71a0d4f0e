"""CloudEvents v1.0 envelope model and validation."""
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Any
import structlog

log = structlog.get_logger()

SUPPORTED_SPEC_VERSIONS = ("1.0",)
REQUIRED_FIELDS = ("specversion", "type", "source", "id")
OPTIONAL_FIELDS = ("time", "datacontenttype", "subject", "data")


class CloudEvent(BaseModel):
    """Immutable CloudEvent envelope; extension attributes are kept as extra fields."""
    model_config = ConfigDict(frozen=True, extra="allow")

    specversion: str = Field(..., description="CloudEvents spec version (must be 1.0)")
    type: str = Field(..., min_length=1, description="Event type discriminator")
    source: str = Field(..., min_length=1, description="Origin identifier")
    id: str = Field(..., min_length=1, description="Event identifier")
    time: str | None = None
    datacontenttype: str | None = None
    subject: str | None = None
    data: Any = None

    @field_validator("specversion")
    @classmethod
    def validate_specversion(cls, v: str) -> str:
        if v not in SUPPORTED_SPEC_VERSIONS:
            raise ValueError(f"Unsupported specversion: {v}")
        return v

    @property
    def extensions(self) -> dict[str, Any]:
        """Vendor extension attributes."""
        return dict(self.model_extra or {})

    def to_document(self) -> dict[str, Any]:
        """Plain JSON-like view used as the source tree for path lookups."""
        document = self.model_dump()
        for field in OPTIONAL_FIELDS:
            if document.get(field) is None:
                document.pop(field, None)
        return document


class EventValidationResult(BaseModel):
    valid: bool
    errors: list[str] | None = None
    event: CloudEvent | None = None


class CloudEventValidator:
    """
    Validates raw envelopes before they reach the routing core.

    All missing required fields are reported together.
    """

    def validate(self, raw: Any) -> EventValidationResult:
        if raw is None:
            return EventValidationResult(valid=False, errors=["Event is null or undefined"])

        if not isinstance(raw, dict):
            return EventValidationResult(valid=False, errors=["Event must be an object"])

        errors: list[str] = []
        for field in REQUIRED_FIELDS:
            if not raw.get(field):
                errors.append(f"Missing required field: {field}")

        specversion = raw.get("specversion")
        if specversion and specversion not in SUPPORTED_SPEC_VERSIONS:
            errors.append(f"Unsupported specversion: {specversion}")

        if errors:
            log.debug("cloudevent.invalid", errors=errors, event_id=raw.get("id"))
            return EventValidationResult(valid=False, errors=errors)

        try:
            event = CloudEvent.model_validate(raw)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'event'}: {err['msg']}"
                for err in e.errors()
            ]
            log.debug("cloudevent.invalid", errors=errors, event_id=raw.get("id"))
            return EventValidationResult(valid=False, errors=errors)

        log.debug("cloudevent.validated", event_id=event.id, type=event.type, source=event.source)
        return EventValidationResult(valid=True, event=event)

    @staticmethod
    def extract_correlation_id(event: CloudEvent) -> str:
        """
        Find the correlation ID for tracing.

        Looks in data.metadata.correlationId, then the ``correlationid``
        extension attribute, and falls back to the event id.
        """
        data = event.data
        if isinstance(data, dict):
            metadata = data.get("metadata")
            if isinstance(metadata, dict) and metadata.get("correlationId"):
                return str(metadata["correlationId"])

        correlation_id = event.extensions.get("correlationid")
        if correlation_id:
            return str(correlation_id)

        return event.id
