"""Rule loader - reads transformation rules from JSON / YAML files."""
from pathlib import Path
from typing import Any
from pydantic import ValidationError
import orjson
import structlog
import yaml
from .mapper import validate_mapping
from .models import RuleLoadResult, TransformationRule

log = structlog.get_logger()

RULE_FILE_SUFFIXES = (".json", ".yaml", ".yml")
CUSTOM_SUBDIRECTORY = "custom"


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic ValidationError as a compact, field-named message."""
    messages = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        if err["type"] == "missing":
            messages.append(f"Missing required field: {loc}")
        else:
            messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(messages)


def read_rule_file(path: Path) -> list[Any]:
    """
    Parse one rule file into a list of raw rule documents.

    Raises:
        ValueError: if the file is not valid JSON / YAML
    """
    content = path.read_bytes()
    if path.suffix == ".json":
        try:
            parsed = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            raise ValueError(f"invalid JSON: {e}")
    else:
        try:
            parsed = yaml.safe_load(content.decode("utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"invalid YAML: {e}")

    if parsed is None:
        return []
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def parse_rule(raw: Any) -> TransformationRule:
    """
    Validate a raw rule document.

    Raises:
        ValueError: with a human-readable reason when the rule is invalid
    """
    if not isinstance(raw, dict):
        raise ValueError("rule must be an object")

    try:
        rule = TransformationRule.model_validate(raw)
    except ValidationError as e:
        raise ValueError(format_validation_error(e))

    for index, mapping in enumerate(rule.mappings):
        error = validate_mapping(mapping)
        if error:
            raise ValueError(f"Mapping {index}: {error}")

    return rule


def _rule_files(directory: Path) -> list[Path]:
    files = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix in RULE_FILE_SUFFIXES)
    custom = directory / CUSTOM_SUBDIRECTORY
    if custom.is_dir():
        files.extend(sorted(p for p in custom.iterdir() if p.is_file() and p.suffix in RULE_FILE_SUFFIXES))
    return files


def load_rules(directory: str | Path) -> RuleLoadResult:
    """
    Load every rule definition found in a directory.

    Rule names must be unique across all files. Valid rules are returned even
    when other files fail; ``success`` is False whenever any error occurred.

    Args:
        directory: Directory holding *.json / *.yaml rule files (and an
            optional ``custom/`` subdirectory)

    Returns:
        RuleLoadResult with rules, errors and the file each rule came from
    """
    rules_dir = Path(directory)
    if not rules_dir.is_dir():
        log.warning("rules.directory_missing", directory=str(rules_dir))
        return RuleLoadResult(success=False, errors=[f"Rules directory not found: {rules_dir}"])

    rules: list[TransformationRule] = []
    errors: list[str] = []
    sources: dict[str, str] = {}

    try:
        files = _rule_files(rules_dir)
    except OSError as e:
        return RuleLoadResult(success=False, errors=[f"Failed to read directory {rules_dir}: {e}"])

    for path in files:
        try:
            documents = read_rule_file(path)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            errors.append(f"Failed to load {path.name}: {e}")
            continue

        for raw in documents:
            try:
                rule = parse_rule(raw)
            except ValueError as e:
                errors.append(f"Invalid rule in {path.name}: {e}")
                continue

            if rule.name in sources:
                errors.append(
                    f"Invalid rule in {path.name}: duplicate rule name: {rule.name} "
                    f"(already defined in {Path(sources[rule.name]).name})"
                )
                continue

            rules.append(rule)
            sources[rule.name] = str(path)

    log.info(
        "rules.loaded",
        directory=str(rules_dir),
        rule_count=len(rules),
        error_count=len(errors),
    )

    return RuleLoadResult(
        success=not errors,
        rules=rules,
        errors=errors or None,
        sources=sources,
    )
