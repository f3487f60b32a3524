"""Peak filtering applied to MS2 scans before ion alignment.

A scan is cleaned in two steps by the standard chain:

1. Precursor ion removal: peaks within the MS2 tolerance of any of the six
   precursor candidates (isotopes and neutral losses) are dropped
2. Noise modelling: peaks are binned by m/z in fixed-width bins (20 Th by
   default), each bin's median intensity becomes a knot of a piecewise
   linear noise floor, and only peaks above the floor are kept

Filters are pluggable. Each declares whether it needs the precursor list and
tolerance, and :class:`PeakFilterChain` applies them in order.

Examples
--------
>>> chain = StandardPeakFilterChain()
>>> clean = chain.filter(peaks, np.sort(precursors), tolerance=0.25)
"""

from typing import Iterable, List, Optional, Tuple

import numpy as np
import numba

from ..constants import DEFAULT_NOISE_BIN_WIDTH, NOISE_FLOOR_EPSILON
from ..exceptions import QuantizationError
from ..spectra import Peaks
from .alignment import in_range_pairs


# =============================================================================
# Median Quantization
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _median(values: np.ndarray) -> float:
    """Median of values, 0.0 for an empty array."""
    n = values.size
    if n == 0:
        return 0.0
    b = np.sort(values)
    mid = n // 2
    if n % 2 == 1:
        return b[mid]
    return 0.5 * (b[mid - 1] + b[mid])


@numba.jit(nopython=True, cache=True)
def _median_bins(x: np.ndarray, y: np.ndarray, bin_width: float):
    n = len(x)
    x_min = x[0]
    x_max = x[n - 1]
    # Round half up
    n_bins = int(np.floor((x_max - x_min) / bin_width + 0.5)) + 1

    centers = np.zeros(n_bins + 1, dtype=np.float64)
    medians = np.zeros(n_bins + 1, dtype=np.float64)
    buffer = np.empty(n, dtype=np.float64)
    count = 0
    j = 1

    for i in range(n):
        # Bin j is centred at x_min + (j-1)*width and ends half a width later
        while x[i] >= x_min + bin_width / 2 + (j - 1) * bin_width:
            centers[j - 1] = x_min + (j - 1) * bin_width
            medians[j - 1] = _median(buffer[:count])
            count = 0
            j += 1
        buffer[count] = y[i]
        count += 1

    last_center = x_min + (j - 1) * bin_width
    if last_center > x_max:
        last_center = x_max
    centers[j - 1] = last_center
    medians[j - 1] = _median(buffer[:count])

    return centers[:j], medians[:j]


def median_bins(x, y, bin_width: float) -> Tuple[np.ndarray, np.ndarray]:
    """Quantize ``y`` into fixed-width bins of ``x`` using the bin median.

    Parameters
    ----------
    x : array-like
        Ascending positions (m/z)
    y : array-like
        Values to quantize (intensity), parallel to ``x``
    bin_width : float
        Bin width, must be positive

    Returns
    -------
    centers : np.ndarray
        Bin centres ``x[0] + k*bin_width``; the last centre is clamped to
        ``x[-1]``
    medians : np.ndarray
        Median of each bin (0.0 for bins without values)

    Raises
    ------
    QuantizationError
        If ``x`` and ``y`` differ in length or ``bin_width <= 0``
    """
    x = np.ascontiguousarray(x, dtype=np.float64)
    y = np.ascontiguousarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise QuantizationError("dimension mismatch of x and y")
    if bin_width <= 0:
        raise QuantizationError("bin width must be greater than 0")
    if x.size == 0:
        return np.empty(0, dtype=np.float64), np.empty(0, dtype=np.float64)
    return _median_bins(x, y, bin_width)


# =============================================================================
# Piecewise Linear Clipping
# =============================================================================

@numba.jit(nopython=True, cache=True)
def linear_clip(
    x: np.ndarray,
    y: np.ndarray,
    x_observed: np.ndarray,
    y_observed: np.ndarray,
) -> np.ndarray:
    """Indices of observations above the interpolated line through (x, y).

    The segment used for interpolation is advanced lazily as the ascending
    observations pass each knot. Observations past the last knot are
    truncated, not extrapolated.

    Parameters
    ----------
    x, y : np.ndarray
        Interpolation knots, ``x`` ascending
    x_observed, y_observed : np.ndarray
        Observations, ``x_observed`` ascending

    Returns
    -------
    indices : np.ndarray (int64)
        Observations whose value exceeds the interpolation by more than 1e-4.
        Empty when fewer than two knots are given.
    """
    n_knots = len(x)
    indices = np.empty(len(x_observed), dtype=np.int64)
    count = 0
    if n_knots < 2:
        return indices[:0]

    slope = (y[1] - y[0]) / (x[1] - x[0])
    intercept = y[1] - x[1] * slope
    j = 0
    end = False

    for i in range(len(x_observed)):
        while x_observed[i] > x[j + 1]:
            if x[j + 1] < x[n_knots - 1]:
                j += 1
                slope = (y[j + 1] - y[j]) / (x[j + 1] - x[j])
                intercept = y[j + 1] - x[j + 1] * slope
            else:
                end = True
                break
        if end:
            break
        if slope * x_observed[i] + intercept - y_observed[i] < -NOISE_FLOOR_EPSILON:
            indices[count] = i
            count += 1

    return indices[:count]


def noise_floor_filter(mz, intensity, bin_width: float = DEFAULT_NOISE_BIN_WIDTH) -> np.ndarray:
    """Indices of peaks above the median-interpolated noise floor.

    Parameters
    ----------
    mz, intensity : array-like
        Peaks, ascending by m/z
    bin_width : float
        Width of the m/z bins used to estimate the noise floor

    Returns
    -------
    indices : np.ndarray (int64)
        Peaks to keep
    """
    mz = np.ascontiguousarray(mz, dtype=np.float64)
    intensity = np.ascontiguousarray(intensity, dtype=np.float64)
    centers, medians = median_bins(mz, intensity, bin_width)
    return linear_clip(centers, medians, mz, intensity)


# =============================================================================
# Filter Classes
# =============================================================================

class PeakFilter:
    """Base class for scan peak filters.

    Subclasses that set ``needs_precursors`` receive the sorted precursor
    candidates and the MS2 tolerance (Da) in :meth:`apply`.
    """

    needs_precursors = False

    def apply(
        self,
        peaks: Peaks,
        precursors: Optional[np.ndarray] = None,
        tolerance: Optional[float] = None,
    ) -> Peaks:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class PrecursorIonFilter(PeakFilter):
    """Drop peaks within ``tolerance`` of any precursor candidate m/z."""

    needs_precursors = True

    def apply(self, peaks, precursors=None, tolerance=None):
        if precursors is None or tolerance is None:
            raise ValueError("PrecursorIonFilter requires precursors and a tolerance")
        if peaks.mz.size == 0:
            return peaks
        matched, _ = in_range_pairs(peaks.mz, np.sort(np.asarray(precursors, dtype=np.float64)), tolerance)
        keep = np.ones(peaks.mz.size, dtype=bool)
        keep[matched] = False
        return peaks.select(keep)


class NoiseModelingPeakFilter(PeakFilter):
    """Keep peaks above a piecewise-linear noise floor of bin medians."""

    def __init__(self, bin_width: float = DEFAULT_NOISE_BIN_WIDTH):
        self.bin_width = bin_width

    def apply(self, peaks, precursors=None, tolerance=None):
        if peaks.mz.size == 0:
            return peaks
        return peaks.select(noise_floor_filter(peaks.mz, peaks.intensity, self.bin_width))

    def __repr__(self):
        return f"NoiseModelingPeakFilter(bin_width={self.bin_width})"


class PeakFilterChain:
    """Ordered list of peak filters."""

    def __init__(self, filters: Optional[Iterable[PeakFilter]] = None):
        self.filters: List[PeakFilter] = list(filters) if filters is not None else []

    def add(self, peak_filter: PeakFilter) -> 'PeakFilterChain':
        self.filters.append(peak_filter)
        return self

    def filter(self, peaks: Peaks, precursors=None, tolerance: Optional[float] = None) -> Peaks:
        """Apply every filter in order and return the surviving peaks."""
        for peak_filter in self.filters:
            if peak_filter.needs_precursors:
                peaks = peak_filter.apply(peaks, precursors, tolerance)
            else:
                peaks = peak_filter.apply(peaks)
        return peaks

    def __len__(self):
        return len(self.filters)

    def __repr__(self):
        return f"{type(self).__name__}({self.filters!r})"


class StandardPeakFilterChain(PeakFilterChain):
    """Precursor ion removal followed by noise modelling."""

    def __init__(self, bin_width: float = DEFAULT_NOISE_BIN_WIDTH):
        super().__init__([PrecursorIonFilter(), NoiseModelingPeakFilter(bin_width)])
