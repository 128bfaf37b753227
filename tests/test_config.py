"""Tests for link settings and simulator config files."""

import json

import pytest

from canard.config import ACK, LinkSettings, load_sim_config, save_sim_config
from canard.simulation import SimConfig, ThrustCurve

from conftest import PortInfo


class TestLinkSettings:
    """Device recognition."""

    def test_defaults(self) -> None:
        """Test the default line settings and ack byte."""
        settings = LinkSettings()
        assert settings.baudrate == 9600
        assert settings.xonxoff is True
        assert settings.ack == ACK == b"\x06"

    def test_matches_manufacturer(self) -> None:
        """Test ports are matched on the USB manufacturer."""
        settings = LinkSettings()
        assert settings.matches(PortInfo("/dev/ttyACM0", "STMicroelectronics"))
        assert not settings.matches(PortInfo("/dev/ttyUSB0", "FTDI"))
        assert not settings.matches(PortInfo("/dev/ttyS0", None))

    def test_filter_overrides_manufacturer(self) -> None:
        """Test a custom filter replaces the manufacturer match."""
        settings = LinkSettings(device_filter=lambda info: info.device == "COM7")
        assert settings.matches(PortInfo("COM7", None))
        assert not settings.matches(PortInfo("/dev/ttyACM0", "STMicroelectronics"))


class TestSimConfigFiles:
    """JSON persistence of simulator inputs."""

    def test_save_and_load(self, tmp_path) -> None:
        """Test a saved config loads back unchanged."""
        config = SimConfig(
            rho=1.2,
            area=0.007,
            mass=2.2,
            base_cd=0.5,
            canard_cd=0.9,
            thrust_curve=ThrustCurve(times=[0.0, 1.2], forces=[120.0, 0.0], name="H120"),
            control=True,
            start_time=2.0,
            param=400.0,
            p=0.03,
        )
        path = save_sim_config(config, tmp_path / "configs" / "h120.json")

        assert json.loads(path.read_text())["thrustCurveName"] == "H120"
        assert load_sim_config(path) == config

    def test_load_frontend_file(self, tmp_path) -> None:
        """Test optional frontend keys fall back to defaults."""
        path = tmp_path / "sim.json"
        path.write_text(
            json.dumps(
                {"rho": 1.225, "A": 0.008, "mass": 2.5, "baseCd": 0.45, "canardCd": 0.6}
            )
        )

        config = load_sim_config(path)
        assert config.control is False
        assert config.thrust_curve.at_time(0.0) == 0.0

    def test_missing(self, tmp_path) -> None:
        """Test a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_sim_config(tmp_path / "missing.json")
