"""Identification and quantitation settings."""

from dataclasses import dataclass
from typing import Optional

from .constants import (
    DEFAULT_MS1_TOLERANCE_PPM,
    DEFAULT_MS2_TOLERANCE_DA,
    DEFAULT_NOISE_BIN_WIDTH,
    DEFAULT_RESOLUTION,
)
from .exceptions import ConfigurationError


@dataclass
class IdentificationConfig:
    """Parameters of the identification and quantitation run.

    Retention times are in seconds; use :meth:`from_minutes` for windows given
    in minutes.
    """

    # Precursor charge states searched (inclusive)
    min_charge: int = 2
    max_charge: int = 4

    # Tolerances
    ms1_error_ppm: float = DEFAULT_MS1_TOLERANCE_PPM
    ms2_error_da: float = DEFAULT_MS2_TOLERANCE_DA

    min_score: float = 0.2
    integration_slack: float = 180.0  # seconds either side of each RT
    resolution: float = DEFAULT_RESOLUTION
    noise_bin_width: float = DEFAULT_NOISE_BIN_WIDTH

    # Neutral mass window (Da)
    min_mass: Optional[float] = None
    max_mass: Optional[float] = None

    # Retention time window (s)
    rt_from: Optional[float] = None
    rt_to: Optional[float] = None

    @classmethod
    def from_minutes(cls, rt_from: float, rt_to: float, **kwargs) -> 'IdentificationConfig':
        """Config with a retention time window given in minutes."""
        return cls(rt_from=rt_from * 60.0, rt_to=rt_to * 60.0, **kwargs)

    def charge_states(self) -> range:
        return range(self.min_charge, self.max_charge + 1)

    def validate(self) -> 'IdentificationConfig':
        """Raise :class:`ConfigurationError` for incomplete settings."""
        if self.min_mass is None or self.max_mass is None:
            raise ConfigurationError("Mass window is not fully specified. Requires a min and max.")
        if self.rt_from is None or self.rt_to is None:
            raise ConfigurationError("Retention time window is not fully specified. Requires a from and to.")
        if self.min_charge > self.max_charge:
            raise ConfigurationError(f"Empty charge range [{self.min_charge}, {self.max_charge}]")
        if self.ms1_error_ppm <= 0 or self.ms2_error_da <= 0:
            raise ConfigurationError("Mass tolerances must be positive")
        if self.resolution <= 0 or self.noise_bin_width <= 0:
            raise ConfigurationError("Resolution and noise bin width must be positive")
        return self
