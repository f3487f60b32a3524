"""Exception hierarchy for FootprintFast.

Precondition violations (unsorted alignment input, malformed quantization
input, singular quadratic fits, incomplete configuration) and aggregation inconsistencies raise.
Degenerate numeric cases never raise; they return documented fallbacks.
"""


class FootprintError(Exception):
    """Base class for all FootprintFast errors."""


class UnsortedArrayError(FootprintError, ValueError):
    """An alignment input array is not sorted ascending."""


class QuantizationError(FootprintError, ValueError):
    """Invalid input to median binning (length mismatch, bin width <= 0)."""


class QuadraticFitError(FootprintError, ValueError):
    """Quadratic fit input is malformed (no spread or a singular normal system)."""


class ConfigurationError(FootprintError, ValueError):
    """The identification configuration is incomplete or inconsistent."""


class RetentionTimeLookupError(FootprintError, KeyError):
    """A (peptide, spectrum, m/z) triple is not in the retention time database."""

    def __init__(self, peptide: str, spectrum_key: str, mz_key: str):
        self.peptide = peptide
        self.spectrum_key = spectrum_key
        self.mz_key = mz_key
        super().__init__(
            "Request for retention time that is not defined in this pool "
            f"[{peptide},{spectrum_key},{mz_key}]"
        )

    def __str__(self):
        # KeyError would otherwise repr() the message
        return self.args[0]


class MassOffsetConflictError(FootprintError):
    """One peptide + neutral-mass key maps to several modification mass offsets."""
