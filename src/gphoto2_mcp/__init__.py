"""gphoto2-mcp: serialized gphoto2 camera sessions exposed as MCP tools."""

__version__ = "0.1.0"
