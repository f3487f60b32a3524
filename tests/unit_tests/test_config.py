"""Tests for identification settings."""

import pytest

from footprintfast.config import IdentificationConfig
from footprintfast.exceptions import ConfigurationError


@pytest.fixture
def config():
    return IdentificationConfig(min_mass=500.0, max_mass=4000.0, rt_from=600.0, rt_to=1800.0)


class TestIdentificationConfig:
    """Test defaults and validation."""

    def test_defaults(self):
        config = IdentificationConfig()
        assert config.ms1_error_ppm == 10
        assert config.ms2_error_da == 0.25
        assert config.min_score == 0.2
        assert config.integration_slack == 180.0
        assert list(config.charge_states()) == [2, 3, 4]

    def test_from_minutes(self):
        config = IdentificationConfig.from_minutes(10, 30, min_charge=1)
        assert config.rt_from == 600.0
        assert config.rt_to == 1800.0
        assert config.min_charge == 1

    def test_valid(self, config):
        assert config.validate() is config

    def test_missing_mass_window(self, config):
        config.max_mass = None
        with pytest.raises(ConfigurationError, match="Mass window"):
            config.validate()

    def test_missing_rt_window(self, config):
        config.rt_from = None
        with pytest.raises(ConfigurationError, match="Retention time window"):
            config.validate()

    def test_empty_charge_range(self, config):
        config.min_charge = 5
        with pytest.raises(ConfigurationError, match="charge range"):
            config.validate()

    @pytest.mark.parametrize("field,value", [
        ("ms1_error_ppm", 0.0),
        ("ms2_error_da", -0.1),
        ("resolution", 0.0),
        ("noise_bin_width", 0.0),
    ])
    def test_non_positive_settings(self, config, field, value):
        setattr(config, field, value)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_configuration_error_is_value_error(self, config):
        config.min_mass = None
        with pytest.raises(ValueError):
            config.validate()
