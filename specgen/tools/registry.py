"""
Tool registry built on pydantic models.

Every tool declares an input model; ``execute`` validates the payload before
the handler runs and converts every failure into an ``error`` result, so
nothing raised below this layer reaches the caller.
"""

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from specgen.errors import SpecgenError
from specgen.models import ToolInvocationResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[Any]]


def describe_validation_error(error: ValidationError) -> str:
    """Name each violated field with its message."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "input"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def to_payload(value: Any) -> Any:
    """Make handler output JSON-friendly."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_payload(v) for v in value]
    if isinstance(value, dict):
        return {k: to_payload(v) for k, v in value.items()}
    return value


@dataclass
class ToolSpec:
    """Declarative tool: name, description, input model and async handler."""
    name: str
    description: str
    args_schema: Type[BaseModel]
    handler: ToolHandler
    tags: List[str] = field(default_factory=list)

    def openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_schema.model_json_schema(),
            },
        }


class ToolRegistry:
    """Stores tool specs and executes them by name."""

    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def specs(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def openai_tools(self) -> List[Dict[str, Any]]:
        return [spec.openai_schema() for spec in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, payload: Optional[Dict[str, Any]] = None) -> ToolInvocationResult:
        spec = self._tools.get(name)
        if spec is None:
            return ToolInvocationResult.failure(f"Unknown tool: {name}")

        try:
            args = spec.args_schema.model_validate(payload or {})
        except ValidationError as e:
            return ToolInvocationResult.failure(f"Invalid input for {name}: {describe_validation_error(e)}")

        start = perf_counter()
        try:
            output = await spec.handler(args)
        except ValidationError as e:
            message = f"Unexpected response for {name}: {describe_validation_error(e)}"
        except SpecgenError as e:
            message = f"{name} failed: {e}"
        except Exception as e:
            logger.exception(f"Tool {name} raised an unexpected error")
            message = f"{name} failed: {e}"
        else:
            latency_ms = (perf_counter() - start) * 1000.0
            logger.debug(f"Tool {name} completed in {latency_ms:.0f}ms")
            return ToolInvocationResult.success(to_payload(output))

        logger.warning(message)
        return ToolInvocationResult.failure(message)
