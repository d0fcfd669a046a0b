"""Markdown guidance attached to tool errors so agents can recover on their own."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from ..core import errors
from .archive import (
    ArchiveAPIError,
    ArchiveAuthenticationError,
    ArchiveAuthorizationError,
    ArchiveNotFoundError,
    ArchiveServerError,
    ArchiveValidationError,
)


def not_found(resource_type: str, name: str) -> str:
    short_name = "+" not in name and len(name.split()) <= 3
    lines: List[str] = [
        f"**{resource_type} Not Found**",
        "",
        f"**Searched for:** `{name}`",
        "",
        "**Common Causes:**",
        "",
    ]
    if short_name:
        lines += [
            "1. **Using a short name instead of the full path** (most common):",
            "   - Cards found through search must be addressed by their FULL name",
            f'   - Wrong: `"{name}"`',
            f'   - Correct: `"Parent+Path+To+{name}"`',
            "",
            '2. **Case sensitivity**: `"Main Page"` is not `"main page"`',
            "",
            '3. **Spaces vs underscores**: use `"Main Page"`, not `"Main_Page"`',
        ]
    elif "+" in name:
        lines += [
            "1. **Incorrect compound card path**:",
            "   - Verify each part of the path exists",
            f"   - Parent card must exist: `{name.split('+')[0]}`",
            "",
            "2. **Case sensitivity**: each part is case-sensitive",
            "",
            "3. **Spaces vs underscores**: use spaces in each part",
        ]
    else:
        lines += [
            "1. **Card doesn't exist**: it may not be created yet",
            "",
            "2. **Case sensitivity**: card names are case-sensitive",
            "",
            "3. **Spaces vs underscores**: use spaces, not underscores",
        ]

    search_term = name if short_name else name.split("+")[-1]
    lines += [
        "",
        "**How to Fix:**",
        "",
        "**Step 1: Search for the exact card name**",
        "```",
        f'search_cards(query: "{search_term}", limit: 20)',
        "```",
        "",
        "**Step 2: Use the exact name from the search results**",
        "```",
        'get_card("<exact name from search>")',
        "```",
        "",
        "**Important:** always pass the complete name (including all Parent+ parts)",
        "to get_card, update_card and the other card tools.",
    ]
    return "\n".join(lines)


def authorization_error(
    operation: str,
    resource: str,
    *,
    required_role: Optional[str] = None,
    api_message: Optional[str] = None,
    api_details: Any = None,
) -> str:
    lines: List[str] = [
        "**Permission Denied**",
        "",
        f"**Operation:** {operation.capitalize()} '{resource}'",
    ]
    if required_role:
        lines.append(f"**Required role:** {required_role}")
    if api_message and api_message != "Permission denied":
        lines += ["", f"**API Message:** {api_message}"]
    if isinstance(api_details, dict) and api_details:
        lines += ["", "**API Details:**"]
        lines += [f"- {key}: {value}" for key, value in api_details.items() if value not in (None, "")]

    lines += ["", "**What this means:**"]
    if required_role == "admin":
        lines += [
            "- This operation requires administrator privileges",
            "- Contact a wiki administrator if you need this access",
        ]
    else:
        lines += [
            f"- You don't have permission to {operation} this {resource}",
            "- This may be GM-only or admin-restricted content",
        ]
    lines += [
        "",
        "**Possible solutions:**",
        "- Request the appropriate role from a wiki administrator",
        "- Check that the gateway is authenticated with the correct account",
    ]
    return "\n".join(lines)


def authentication_error(message: str) -> str:
    return "\n".join(
        [
            "**Authentication Error**",
            "",
            message,
            "",
            "**Common causes:**",
            "- The archive API token has expired",
            "- The configured token is invalid or revoked",
            "",
            "**Solution:**",
            "- Retry shortly; the token is refreshed outside the gateway",
            "- If the error persists, check ARCHIVE_API_TOKEN",
        ]
    )


def validation_error(message: str, *, field: Optional[str] = None, valid_values: Iterable[str] = ()) -> str:
    lines: List[str] = ["**Validation Error**", "", message]
    if field:
        lines += ["", f"**Problem field:** `{field}`"]
    values = list(valid_values)
    if values:
        lines += ["", "**Valid values:**"]
        lines += [f"- `{value}`" for value in values]
    lines += [
        "",
        "**Tips:**",
        "- Check the tool's input schema for required parameters",
        "- Verify parameter types match expectations (string, boolean, ...)",
    ]
    return "\n".join(lines)


def server_error(operation: str, message: str) -> str:
    return "\n".join(
        [
            "**Server Error**",
            "",
            f"**Operation:** {operation}",
            f"**Error:** {message}",
            "",
            "**What to try:**",
            "1. Retry the operation (may be a temporary issue)",
            "2. Simplify the request (smaller limit, fewer parameters)",
            "3. If the error persists this may be a server-side bug",
        ]
    )


def generic_error(context: str, message: str) -> str:
    lines: List[str] = [f"**Error: {context}**", "", message, ""]
    lowered = message.lower()
    if "connection" in lowered or "timeout" in lowered or "timed out" in lowered:
        lines += [
            "**Network Issue Detected:**",
            "- The archive may be temporarily unreachable",
            "- Try again in a moment",
        ]
    elif "json" in lowered or "parse" in lowered:
        lines += [
            "**Data Format Issue:**",
            "- The archive returned unexpected data",
            "- Try a simpler query to isolate the issue",
        ]
    else:
        lines += [
            "**Troubleshooting:**",
            "- Try simplifying your request",
            "- Check the tool description for proper usage",
        ]
    return "\n".join(lines)


def to_tool_error(
    exc: ArchiveAPIError,
    *,
    operation: str,
    resource: str,
    resource_type: str = "Card",
    required_role: Optional[str] = None,
) -> errors.ToolExecutionError:
    """Translate an archive API failure into an agent-safe tool error."""
    details: Dict[str, Any] = {}
    if exc.status is not None:
        details["status"] = exc.status

    if isinstance(exc, ArchiveNotFoundError):
        return errors.ToolExecutionError(
            f"{resource_type} '{resource}' not found",
            code=errors.TOOL_NOT_FOUND,
            kind="not_found",
            hint=not_found(resource_type, resource),
            details=details,
        )
    if isinstance(exc, ArchiveAuthorizationError):
        return errors.ToolExecutionError(
            f"Permission denied: cannot {operation} '{resource}'",
            code=errors.TOOL_AUTHORIZATION_FAILED,
            kind="authorization",
            hint=authorization_error(
                operation,
                resource,
                required_role=required_role,
                api_message=exc.message,
                api_details=exc.details,
            ),
            details=details,
        )
    if isinstance(exc, ArchiveAuthenticationError):
        return errors.ToolExecutionError(
            "Authentication with the archive failed",
            code=errors.TOOL_AUTHENTICATION_FAILED,
            kind="authentication",
            hint=authentication_error(exc.message),
            details=details,
        )
    if isinstance(exc, ArchiveValidationError) or exc.status == 400:
        return errors.ToolExecutionError(
            f"Validation failed: {exc.message}",
            code=errors.TOOL_VALIDATION_FAILED,
            kind="validation",
            hint=validation_error(exc.message),
            details=details,
        )
    if isinstance(exc, ArchiveServerError):
        return errors.ToolExecutionError(
            f"Archive error while trying to {operation} '{resource}'",
            code=errors.TOOL_UPSTREAM_FAILED,
            kind="upstream",
            hint=server_error(operation, exc.message),
            details=details,
        )
    return errors.ToolExecutionError(
        f"Failed to {operation} '{resource}': {exc.message}",
        kind="tool_error",
        hint=generic_error(f"{operation} '{resource}'", exc.message),
        details=details,
    )
