"""Tool declarations exposed to the model and name-based dispatch."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

#: Uniform tool signature: keyword arguments in, text (or something renderable) out.
ToolHandler = Callable[..., Any | Awaitable[Any]]

_JSON_TYPES = {"string", "integer", "boolean"}
_TRUE = {"true", "1", "yes", "y", "on"}
_FALSE = {"false", "0", "no", "n", "off"}


class ToolError(Exception):
    """Raised by a tool function for a failure the model should see as text."""


@dataclass(frozen=True)
class ToolParameter:
    """One named, typed argument of a tool."""

    name: str
    type: str = "string"
    description: str = ""
    required: bool = True
    default: Any = None
    enum: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.type not in _JSON_TYPES:
            raise ValueError(f"Unsupported parameter type {self.type!r} for {self.name!r}")

    def schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type}
        if self.description:
            prop["description"] = self.description
        if self.enum:
            prop["enum"] = list(self.enum)
        if not self.required and self.default is not None:
            prop["default"] = self.default
        return prop

    def coerce(self, value: Any) -> Any:
        """Convert a model-supplied value to this parameter's declared type.

        Raises:
            ValueError: if the value cannot be represented as the declared type.
        """
        if value is None:
            return None
        if self.type == "string":
            return value if isinstance(value, str) else str(value)
        if self.type == "integer":
            if isinstance(value, bool):
                raise ValueError(f"expected integer, got {value!r}")
            if isinstance(value, int):
                return value
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValueError(f"expected integer, got {value!r}")
                return int(value)
            return int(str(value).strip())
        # boolean
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"expected boolean, got {value!r}")


@dataclass(frozen=True)
class ToolDeclaration:
    """A callable tool: name, description, parameter schema and its handler."""

    name: str
    description: str
    handler: ToolHandler
    parameters: tuple[ToolParameter, ...] = field(default_factory=tuple)

    def to_schema(self) -> dict[str, Any]:
        """Return the Anthropic tool definition for this declaration."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": {p.name: p.schema() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            },
        }

    def bind(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate and coerce raw arguments into handler keyword arguments.

        Raises:
            ToolError: on a missing required argument or an uncoercible value.
        """
        known = {p.name for p in self.parameters}
        extra = sorted(set(arguments) - known)
        if extra:
            logger.debug("tool=%s dropping unknown argument(s): %s", self.name, extra)

        bound: dict[str, Any] = {}
        for param in self.parameters:
            value = arguments.get(param.name)
            if value is None:
                if param.required:
                    raise ToolError(f"Missing required argument '{param.name}'")
                bound[param.name] = param.default
                continue
            try:
                bound[param.name] = param.coerce(value)
            except ValueError as exc:
                raise ToolError(f"Invalid value for '{param.name}': {exc}") from exc
        return bound


@dataclass(frozen=True)
class ToolOutcome:
    """Text produced by a tool call, flagged when it describes a failure."""

    text: str
    is_error: bool = False


def render_result(value: Any) -> str:
    """Turn a tool's return value into the text the model will see."""
    if value is None:
        return "(no output)"
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "\n".join(str(v) for v in value) if value else "(empty)"
    return str(value)


class ToolRegistry:
    """Fixed set of tools offered to the model, keyed by exact name.

    Dispatch never raises: unknown tools, bad arguments and handler failures
    all come back as an error ToolOutcome so the model can react to them.

    Usage::

        registry = ToolRegistry([list_files_tool, mail_tool])
        outcome = await registry.dispatch("ListFiles", {"path": "/tmp"})
    """

    def __init__(self, tools: Iterable[ToolDeclaration] = ()) -> None:
        self._tools: dict[str, ToolDeclaration] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDeclaration) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name!r} is already registered")
        self._tools[tool.name] = tool

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDeclaration]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolDeclaration | None:
        return self._tools.get(name)

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.to_schema() for tool in self._tools.values()]

    async def dispatch(self, name: str, arguments: dict[str, Any]) -> ToolOutcome:
        """Run the named tool with the given arguments and return its text."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool %r", name)
            return ToolOutcome(f"Error: Unknown tool '{name}'", is_error=True)

        logger.info("tool=%s args=%s", name, sorted(arguments))
        try:
            kwargs = tool.bind(arguments)
            result = tool.handler(**kwargs)
            if inspect.isawaitable(result):
                result = await result
        except ToolError as exc:
            logger.info("tool=%s failed: %s", name, exc)
            return ToolOutcome(f"Error: {exc}", is_error=True)
        except Exception as exc:  # noqa: BLE001
            logger.error("tool=%s raised: %s", name, exc, exc_info=True)
            return ToolOutcome(f"Error: {exc}", is_error=True)

        return ToolOutcome(render_result(result))
