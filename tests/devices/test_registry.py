"""Tests for the process-wide camera registry."""

from __future__ import annotations

import pytest

from gphoto2_mcp.devices import get_registry, init_registry, shutdown_registry
from gphoto2_mcp.drivers.config import DriverFactory
from gphoto2_mcp.drivers.errors import DeviceError
from gphoto2_mcp.drivers.twin import DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT


@pytest.fixture(autouse=True)
def empty_registry():
    shutdown_registry()
    yield
    shutdown_registry()


class TestRegistry:
    """Tests for init_registry(), get_registry() and shutdown_registry()."""

    def test_get_before_init(self):
        with pytest.raises(RuntimeError, match="Registry not initialized"):
            get_registry()

    def test_init_and_get(self):
        camera = init_registry(DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT, DriverFactory())

        assert get_registry() is camera
        assert camera.is_initialized

    def test_reinit_closes_previous(self):
        """Verifies a new registration closes the old camera first.

        Arrangement:
        1. One camera registered.

        Action:
        init_registry() again with the same factory.

        Assertion Strategy:
        The first camera is closed; the registry returns the second.
        """
        factory = DriverFactory()
        first = init_registry(DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT, factory)

        second = init_registry(DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT, factory)

        assert first.is_closed
        assert get_registry() is second
        assert not second.is_closed

    def test_failed_init_leaves_registry_empty(self):
        factory = DriverFactory()
        previous = init_registry(DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT, factory)

        with pytest.raises(DeviceError):
            init_registry("Nikon DSC D5100", "usb:002,003", factory)

        assert previous.is_closed
        with pytest.raises(RuntimeError):
            get_registry()

    def test_shutdown_closes_camera(self):
        camera = init_registry(DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT, DriverFactory())

        shutdown_registry()

        assert camera.is_closed
        with pytest.raises(RuntimeError):
            get_registry()

    def test_shutdown_idempotent(self):
        shutdown_registry()
        shutdown_registry()
