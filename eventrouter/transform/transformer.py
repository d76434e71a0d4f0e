"""Event transformer - applies a transformation rule to a CloudEvent."""
from datetime import datetime, timezone
import time
import structlog
from ..event_models import CloudEvent
from .mapper import apply_mappings
from .models import TransformationMetadata, TransformationResult, TransformationRule
from .schema import OutputSchemaValidator, SchemaLoadError
from .store import RuleStore

log = structlog.get_logger()


class EventTransformer:
    """
    Reshapes events into destination documents.

    Mapping errors are reported in the result, never raised; whether a
    partially transformed document is delivered is the caller's decision.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        schema_validator: OutputSchemaValidator | None = None,
        default_rule: str | None = None,
        metrics=None,
    ):
        self.rule_store = rule_store
        self.schema_validator = schema_validator or OutputSchemaValidator(rule_store.rules_directory)
        self.default_rule = default_rule
        self._metrics = metrics

    def transform(self, event: CloudEvent, rule_name: str | None = None) -> TransformationResult:
        """
        Transform an event with a named rule, the default rule, or the rule
        registered for its type.
        """
        match = self.rule_store.match_rule(event, rule_name or self.default_rule)
        if not match.matched:
            log.warning("transform.no_rule", event_id=event.id, event_type=event.type, error=match.error)
            return TransformationResult(success=False, errors=[match.error])

        return self.apply_rule(event, match.rule)

    def apply_rule(self, event: CloudEvent, rule: TransformationRule) -> TransformationResult:
        start_time = time.time()
        log.info("transform.started", event_id=event.id, event_type=event.type, rule=rule.name)

        mapping_result = apply_mappings(event.to_document(), rule.mappings)
        errors = list(mapping_result.errors or [])

        if rule.output_schema is not None:
            try:
                errors.extend(
                    f"Schema validation failed at {error}"
                    for error in self.schema_validator.validate(mapping_result.data, rule.output_schema)
                )
            except SchemaLoadError as e:
                errors.append(str(e))

        success = not errors
        duration_ms = round((time.time() - start_time) * 1000, 2)

        if success:
            log.info("transform.completed", event_id=event.id, rule=rule.name, duration_ms=duration_ms)
        else:
            log.warning(
                "transform.completed_with_errors",
                event_id=event.id,
                rule=rule.name,
                errors=errors,
                duration_ms=duration_ms,
            )

        if self._metrics is not None:
            self._metrics.record_transformation(rule.name, "success" if success else "error")

        return TransformationResult(
            success=success,
            data=mapping_result.data,
            errors=errors or None,
            metadata=TransformationMetadata(
                rule=rule.name,
                event_type=event.type,
                transformed_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            ),
        )
