"""
Image Relay MCP Server

Multi-provider image generation behind one interface, with ordered
fail-over across OpenAI-compatible and Doubao configurations.
"""

__version__ = "0.1.0"

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("image-relay-mcp")
except (importlib.metadata.PackageNotFoundError, ImportError):
    # Fallback for development mode
    pass

__all__ = ["__version__"]
