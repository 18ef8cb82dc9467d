"""Pytest configuration and fixtures for gphoto2-mcp tests.

Every test starts with the default driver factory (digital twin) and an
empty camera registry, so global state left behind by one test never
reaches the next. No test needs gphoto2 installed or a camera attached.
"""

import pytest

from gphoto2_mcp.devices import shutdown_registry
from gphoto2_mcp.drivers.config import reset_factory


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset the driver factory and camera registry around each test.

    Business context:
    The MCP server keeps one factory and one registered camera per
    process. Tests that configure hardware mode or register a camera
    must not leak that into later tests.

    Yields:
        None.
    """
    reset_factory()
    shutdown_registry()
    yield
    shutdown_registry()
    reset_factory()
