"""
Path expressions for reading and writing JSON-like trees.

A path starts at the root marker ``$`` and continues with dotted keys and
bracketed list indexes, e.g. ``$.data.patient.names[0].given``. Paths are
parsed once into a tuple of steps (``str`` for object keys, ``int`` for list
indexes) which both the read and the write side walk.
"""
from functools import lru_cache
from typing import Any
import re

ROOT = "$"

_INDEX_RE = re.compile(r"\[(\d+)\]")


class PathSyntaxError(ValueError):
    """Raised when a path expression cannot be parsed."""
    pass


class _Missing:
    """Sentinel for "no value at this path" (distinct from a JSON null)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class PathExpression:
    """Parsed path expression."""

    __slots__ = ("text", "steps")

    def __init__(self, text: str, steps: tuple[str | int, ...]):
        self.text = text
        self.steps = steps

    def __repr__(self) -> str:
        return f"PathExpression({self.text!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PathExpression) and other.steps == self.steps

    def __hash__(self) -> int:
        return hash(self.steps)

    @property
    def is_root(self) -> bool:
        return not self.steps

    def get(self, document: Any) -> Any:
        """Return the value at this path, or MISSING if any step is absent."""
        current = document
        for step in self.steps:
            if isinstance(step, int):
                if not isinstance(current, list) or step >= len(current):
                    return MISSING
                current = current[step]
            else:
                if not isinstance(current, dict) or step not in current:
                    return MISSING
                current = current[step]
        return current

    def set(self, document: dict | list, value: Any) -> None:
        """
        Write value at this path, creating intermediate containers.

        Missing or non-container intermediates are replaced by a dict (next
        step is a key) or a list (next step is an index); short lists are
        padded with None.
        """
        if self.is_root:
            raise PathSyntaxError("Invalid path: cannot assign to the root '$'")

        current = document
        for step, next_step in zip(self.steps, self.steps[1:]):
            child = _read_slot(current, step)
            wanted = list if isinstance(next_step, int) else dict
            if not isinstance(child, wanted):
                child = wanted()
                _write_slot(current, step, child)
            current = child

        _write_slot(current, self.steps[-1], value)


def _read_slot(container: dict | list, step: str | int) -> Any:
    if isinstance(step, int):
        if isinstance(container, list) and step < len(container):
            return container[step]
        return None
    return container.get(step) if isinstance(container, dict) else None


def _write_slot(container: dict | list, step: str | int, value: Any) -> None:
    if isinstance(step, int):
        if not isinstance(container, list):
            raise PathSyntaxError(f"Invalid path: index [{step}] applied to an object")
        if step >= len(container):
            container.extend([None] * (step + 1 - len(container)))
        container[step] = value
    else:
        if not isinstance(container, dict):
            raise PathSyntaxError(f"Invalid path: key '{step}' applied to a list")
        container[step] = value


def _parse_segment(segment: str, text: str) -> list[str | int]:
    """Parse ``name``, ``name[0]``, ``name[0][1]`` or ``[0]`` into steps."""
    bracket = segment.find("[")
    name = segment if bracket < 0 else segment[:bracket]
    rest = "" if bracket < 0 else segment[bracket:]

    steps: list[str | int] = []
    if name:
        if "]" in name:
            raise PathSyntaxError(f"Invalid path {text!r}: unexpected ']' in '{segment}'")
        steps.append(name)

    while rest:
        match = _INDEX_RE.match(rest)
        if not match:
            raise PathSyntaxError(f"Invalid path {text!r}: bad index in '{segment}'")
        steps.append(int(match.group(1)))
        rest = rest[match.end():]

    if not steps:
        raise PathSyntaxError(f"Invalid path {text!r}: empty segment")
    return steps


@lru_cache(maxsize=1024)
def parse_path(text: str) -> PathExpression:
    """
    Parse a path expression.

    Raises:
        PathSyntaxError: if the path is empty, not rooted at ``$`` or malformed
    """
    if not isinstance(text, str) or not text:
        raise PathSyntaxError("Invalid path: path cannot be empty")
    if not text.startswith(ROOT):
        raise PathSyntaxError(f"Invalid path {text!r}: must start with '{ROOT}'")

    body = text[len(ROOT):]
    steps: list[str | int] = []

    if body.startswith("["):
        # $[0].name
        end = body.find(".")
        head, body = (body, "") if end < 0 else (body[:end], body[end:])
        steps.extend(_parse_segment(head, text))

    if body:
        if not body.startswith("."):
            raise PathSyntaxError(f"Invalid path {text!r}: expected '.' after '{ROOT}'")
        for segment in body[1:].split("."):
            steps.extend(_parse_segment(segment, text))

    return PathExpression(text, tuple(steps))


def get_value(document: Any, path: str) -> Any:
    """Read the value at path (MISSING when absent)."""
    return parse_path(path).get(document)


def set_value(document: dict | list, path: str, value: Any) -> None:
    """Write value at path, creating intermediate containers."""
    parse_path(path).set(document, value)
