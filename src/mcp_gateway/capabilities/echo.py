"""
Echo tool group: returns its arguments. Handy for checking a client's
wiring before the document tools are installed.
"""

from typing import Any, Dict

from ..core.capability import CapabilityRegistry
from ..core.engine import ToolContext


async def echo(arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
    await context.report_progress(1, 1, "echoed")
    return arguments


def register(registry: CapabilityRegistry, config: Any = None) -> None:
    registry.tool(
        "echo",
        description="Return the arguments unchanged.",
        input_schema={"type": "object", "additionalProperties": True}
    )(echo)
