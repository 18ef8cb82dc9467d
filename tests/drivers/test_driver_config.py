"""Tests for driver configuration, the factory and the global singleton."""

from __future__ import annotations

import pytest

from gphoto2_mcp.drivers import config as driver_config
from gphoto2_mcp.drivers.config import (
    DriverConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
    reset_factory,
    use_digital_twin,
    use_hardware,
)
from gphoto2_mcp.drivers.process import SubprocessLauncher
from gphoto2_mcp.drivers.session import CommandSession
from gphoto2_mcp.drivers.twin import DigitalTwinConfig, DigitalTwinLauncher


@pytest.fixture(autouse=True)
def clean_factory():
    reset_factory()
    yield
    reset_factory()


class TestDriverConfig:
    """Tests for DriverConfig defaults."""

    def test_defaults(self):
        config = DriverConfig()

        assert config.mode == DriverMode.DIGITAL_TWIN
        assert config.program == "gphoto2"
        assert config.locale == "en_US.UTF-8"
        assert config.quiet is False
        assert config.read_timeout is None
        assert config.close_timeout == 5.0
        assert config.twin is None


class TestDriverFactory:
    """Tests for DriverFactory."""

    def test_twin_launcher_shared(self):
        """One twin launcher serves every session of a factory."""
        factory = DriverFactory()

        first = factory.create_launcher()

        assert isinstance(first, DigitalTwinLauncher)
        assert factory.create_launcher() is first

    def test_twin_config_used(self):
        factory = DriverFactory(
            DriverConfig(twin=DigitalTwinConfig(model="Nikon DSC D5100"))
        )

        launcher = factory.create_launcher()

        assert launcher.camera.config.model == "Nikon DSC D5100"

    def test_hardware_launcher(self):
        factory = DriverFactory(DriverConfig(mode=DriverMode.HARDWARE))

        assert isinstance(factory.create_launcher(), SubprocessLauncher)

    def test_create_session_arguments(self):
        """Verifies sessions carry the configured program and selectors.

        Arrangement:
        1. Twin factory with a custom program name and quiet flag.

        Action:
        Creates a session and runs one command of each kind.

        Assertion Strategy:
        Both launches start with the program and the camera/port/quiet
        standard arguments; the shell adds --shell.
        """
        factory = DriverFactory(DriverConfig(program="gphoto2-test", quiet=True))

        with factory.create_session("Canon EOS 700D", "usb:001,004") as session:
            assert isinstance(session, CommandSession)
            session.execute("--version", interactive=False)
            session.execute("list-config")

        std = ["--camera", "Canon EOS 700D", "--port", "usb:001,004", "--quiet"]
        launches = factory.create_launcher().launches
        assert launches[0] == ["gphoto2-test", *std, "--version"]
        assert launches[1] == ["gphoto2-test", "--shell", *std]

    def test_sessions_get_own_stats(self):
        factory = DriverFactory()

        with factory.create_session() as a, factory.create_session() as b:
            a.execute("list-config")

            assert a.stats is not b.stats
            assert b.stats.get_all_summaries() == {}

    def test_state_shared_across_sessions(self):
        """A value written through one session is read by the next."""
        factory = DriverFactory()

        with factory.create_session() as session:
            session.execute("set-config /main/imgsettings/iso=800")
        with factory.create_session() as session:
            output = session.execute("get-config /main/imgsettings/iso")

        assert "Current: 800" in output


class TestGlobalFactory:
    """Tests for the module-level singleton helpers."""

    def test_default_is_digital_twin(self):
        assert get_factory().config.mode == DriverMode.DIGITAL_TWIN

    def test_get_factory_cached(self):
        assert get_factory() is get_factory()

    def test_configure_replaces_factory(self):
        before = get_factory()

        configure(DriverConfig(read_timeout=2.5))

        assert get_factory() is not before
        assert get_factory().config.read_timeout == 2.5

    def test_use_hardware_resets_config(self):
        configure(DriverConfig(read_timeout=2.5))

        use_hardware()

        assert get_factory().config.mode == DriverMode.HARDWARE
        assert get_factory().config.read_timeout is None

    def test_use_hardware_preserving_config(self):
        configure(DriverConfig(program="/opt/gphoto2", read_timeout=2.5))

        use_hardware(preserve_config=True)

        config = get_factory().config
        assert config.mode == DriverMode.HARDWARE
        assert config.program == "/opt/gphoto2"
        assert config.read_timeout == 2.5

    def test_use_digital_twin_preserving_config(self):
        configure(DriverConfig(mode=DriverMode.HARDWARE, locale="C.UTF-8"))

        use_digital_twin(preserve_config=True)

        config = get_factory().config
        assert config.mode == DriverMode.DIGITAL_TWIN
        assert config.locale == "C.UTF-8"

    def test_use_digital_twin_defaults(self):
        configure(DriverConfig(mode=DriverMode.HARDWARE, locale="C.UTF-8"))

        use_digital_twin()

        assert get_factory().config == DriverConfig()

    def test_reset_factory(self):
        get_factory()

        reset_factory()

        assert driver_config._factory is None
