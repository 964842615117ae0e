"""
Capability Registry

Maps tool names to (input schema, handler). Tool groups populate it once at
startup; the protocol engine only reads it afterwards.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from .errors import ConfigurationError, DuplicateCapabilityError

logger = logging.getLogger(__name__)


Handler = Callable[[Dict[str, Any], "ToolContext"], Union[Any, Awaitable[Any]]]

EMPTY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {},
    "required": []
}


@dataclass(frozen=True)
class Capability:
    """A named, schema-validated operation a client may invoke."""
    name: str
    handler: Handler
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=lambda: dict(EMPTY_SCHEMA))

    def to_tool(self) -> Dict[str, Any]:
        """MCP tool descriptor for tools/list."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema
        }


class CapabilityRegistry:
    """
    Registry of capabilities keyed by name.

    Duplicate names are rejected unless the registry was built with
    allow_override=True, in which case the later registration wins.
    """

    def __init__(self, allow_override: bool = False):
        self._capabilities: Dict[str, Capability] = {}
        self._validators: Dict[str, Draft7Validator] = {}
        self.allow_override = allow_override

    def register(self, capability: Capability) -> None:
        """Register a capability, compiling its input schema once."""
        name = capability.name
        if name in self._capabilities:
            if not self.allow_override:
                raise DuplicateCapabilityError(name)
            logger.warning(f"Capability {name} re-registered; later registration wins")

        try:
            Draft7Validator.check_schema(capability.input_schema)
        except SchemaError as e:
            raise ConfigurationError(f"Invalid input schema for {name}: {e.message}") from e

        self._capabilities[name] = capability
        self._validators[name] = Draft7Validator(capability.input_schema)
        logger.debug(f"Registered capability: {name}")

    def tool(
        self,
        name: str,
        description: str = "",
        input_schema: Optional[Dict[str, Any]] = None
    ) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""
        def decorator(handler: Handler) -> Handler:
            self.register(Capability(
                name=name,
                handler=handler,
                description=description,
                input_schema=input_schema or dict(EMPTY_SCHEMA)
            ))
            return handler
        return decorator

    def get(self, name: str) -> Optional[Capability]:
        return self._capabilities.get(name)

    def validator(self, name: str) -> Draft7Validator:
        return self._validators[name]

    def __contains__(self, name: str) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._capabilities.values())


def load_tool_modules(registry: CapabilityRegistry, entrypoints: List[str], config: Any) -> None:
    """
    Load tool groups from "package.module:function" entrypoints.

    Each function is called as function(registry, config).
    """
    for entrypoint in entrypoints:
        if ":" not in entrypoint:
            raise ConfigurationError(f"Tool module must be 'module:function', got {entrypoint!r}")

        module_path, func_name = entrypoint.rsplit(":", 1)
        try:
            module = importlib.import_module(module_path)
            register = getattr(module, func_name)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Cannot load tool module {entrypoint}: {e}") from e

        before = len(registry)
        register(registry, config)
        logger.info(f"Loaded {len(registry) - before} tools from {entrypoint}")
