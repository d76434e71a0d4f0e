"""JSON Schema validation of transformed documents."""
from pathlib import Path
from typing import Any
import threading
from jsonschema import Draft202012Validator, validators
from jsonschema.exceptions import SchemaError
from jsonschema.protocols import Validator
import orjson
import structlog
import yaml

log = structlog.get_logger()


class SchemaLoadError(ValueError):
    """Raised when an output schema cannot be read or is not a valid schema."""
    pass


class OutputSchemaValidator:
    """
    Validates output documents against a rule's ``outputSchema``.

    Schemas given as file paths are resolved relative to ``base_directory``
    and their compiled validators are cached by path.
    """

    def __init__(self, base_directory: str | Path | None = None):
        self.base_directory = Path(base_directory) if base_directory else None
        self._cache: dict[str, Validator] = {}
        self._lock = threading.Lock()

    def _resolve(self, schema_path: str) -> Path:
        path = Path(schema_path)
        if not path.is_absolute() and self.base_directory is not None:
            path = self.base_directory / path
        return path

    @staticmethod
    def _compile(schema: dict[str, Any]) -> Validator:
        validator_cls = validators.validator_for(schema, default=Draft202012Validator)
        try:
            validator_cls.check_schema(schema)
        except SchemaError as e:
            raise SchemaLoadError(f"Invalid JSON schema: {e.message}")
        return validator_cls(schema, format_checker=validator_cls.FORMAT_CHECKER)

    def _validator_from_file(self, schema_path: str) -> Validator:
        path = self._resolve(schema_path)
        key = str(path)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            try:
                content = path.read_bytes()
                if path.suffix in (".yaml", ".yml"):
                    schema = yaml.safe_load(content.decode("utf-8"))
                else:
                    schema = orjson.loads(content)
            except (OSError, UnicodeDecodeError, orjson.JSONDecodeError, yaml.YAMLError) as e:
                raise SchemaLoadError(f"Failed to load schema {schema_path}: {e}")

            if not isinstance(schema, dict):
                raise SchemaLoadError(f"Schema {schema_path} must be an object")

            validator = self._compile(schema)
            self._cache[key] = validator
            log.debug("schema.compiled", path=key)
            return validator

    def validate(self, data: Any, schema: dict[str, Any] | str) -> list[str]:
        """
        Validate data against a schema.

        Args:
            data: Document to validate
            schema: Schema object, or path to a JSON / YAML schema file

        Returns:
            List of "<field>: <message>" errors (empty if valid)

        Raises:
            SchemaLoadError: if the schema itself cannot be loaded
        """
        if isinstance(schema, str):
            validator = self._validator_from_file(schema)
        else:
            validator = self._compile(schema)

        errors = []
        for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
            field = "$" + "".join(
                f"[{p}]" if isinstance(p, int) else f".{p}" for p in error.absolute_path
            )
            errors.append(f"{field}: {error.message}")
        return errors

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
