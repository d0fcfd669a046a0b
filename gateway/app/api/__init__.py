from . import discovery, mcp

__all__ = [
    "discovery",
    "mcp",
]
