from __future__ import annotations

from typing import Any, Dict, List

from ..core.errors import TOOL_UPSTREAM_FAILED, ToolExecutionError
from ..services.archive import ArchiveAPIError
from ..services.envelope import ToolOutput
from ..services.registry import ResultShape, ToolDescriptor
from .base import ToolContext

_HEALTHY = {"healthy", "ok"}


def _format_health(info: Dict[str, Any], detailed: bool) -> str:
    status = info.get("status")
    if status in _HEALTHY:
        headline = "**Wiki Status: HEALTHY**"
    elif status == "degraded":
        headline = "**Wiki Status: DEGRADED**"
    else:
        headline = "**Wiki Status: UNHEALTHY**"
    lines: List[str] = [headline, "", f"**Checked at:** {info.get('timestamp')}"]

    checks = info.get("checks")
    if detailed and isinstance(checks, dict) and checks:
        lines += ["", "**Component Status:**"]
        for component, component_status in checks.items():
            mark = "ok" if component_status == "ok" else "FAIL"
            lines.append(f"  [{mark}] {str(component).capitalize()}: {component_status}")
    if info.get("version"):
        lines += ["", f"**API Version:** {info['version']}"]
    return "\n".join(lines)


def _failure_hint(message: str) -> str:
    return "\n".join(
        [
            "**Wiki Health Check Failed**",
            "",
            f"**Error:** {message}",
            "",
            "**Possible Causes:**",
            "- Wiki server is down or unreachable",
            "- Network connectivity issues",
            "- Server is under maintenance",
        ]
    )


async def health_check(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    detailed = bool(arguments.get("detailed", True))
    try:
        if detailed:
            info = await context.archive.health_check()
        else:
            info = await context.archive.ping()
    except ArchiveAPIError as exc:
        raise ToolExecutionError(
            "Wiki health check failed",
            code=TOOL_UPSTREAM_FAILED,
            kind="upstream",
            hint=_failure_hint(exc.message),
            details={"status": exc.status} if exc.status is not None else None,
        ) from exc

    status = info.get("status")
    metadata = {
        "timestamp": info.get("timestamp"),
        "version": info.get("version"),
        "checks": info.get("checks"),
        "detailed": detailed,
    }
    return ToolOutput(
        id="health_check",
        title="Wiki Health Status",
        text=_format_health(info, detailed),
        source=context.archive_config.site_url,
        metadata={key: value for key, value in metadata.items() if value is not None},
        status="healthy" if status in _HEALTHY else (status or "unknown"),
    )


DESCRIPTORS = [
    ToolDescriptor(
        name="health_check",
        description=(
            "Check if the Magi Archive wiki is operational and responsive. "
            "Lightweight check that doesn't require authentication."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "detailed": {
                    "type": "boolean",
                    "description": "Full component check (true) or quick ping (false)",
                    "default": True,
                },
            },
            "required": [],
        },
        handler=health_check,
        shape=ResultShape.STATUS,
        annotations={"readOnlyHint": True, "destructiveHint": False},
    ),
]
