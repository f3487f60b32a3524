"""MS1 chromatogram extraction with parabolic peak-height confirmation.

For every target (m/z, charge) an m/z window ``target ± target/resolution`` is
registered in a :class:`~footprintfast.xic.range_index.RangeIndex`. Each MS1
scan in the retention time window is then classified in a single pass: the
peaks that fall into a target's window are buffered in m/z order and reduced
to one intensity per target and scan.

Reduction rules
---------------
- Profile scan with more than two buffered peaks and the local maximum not
  at either end of the buffer: fit a parabola through the maximum and its two
  neighbours and use the vertex height, if the vertex m/z is within
  ``accuracy`` ppm of the target (compared as neutral masses).
- Centroid scan with at least one buffered peak: the most intense peak within
  ``accuracy`` ppm of the target.
- Anything else: 0.

Every target receives one sample per scan, so all chromatograms of a spectrum
share the same retention time grid.

Examples
--------
>>> extractor = MS1QuantExtractor(
...     mz_values=[722.3251], charges=[2], accuracy=10, resolution=60000,
...     rt_from=600.0, rt_to=1800.0,
...     spectra=[("0.0000", HDF5SpectrumFile(), "run00.hdf")],
... )
>>> extractor.extract()
>>> extractor.chromatogram("0.0000", 722.3251).integrate(900.0, 1100.0)
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numba as nb
import numpy as np

from ..constants import PROTON_MASS
from ..exceptions import QuadraticFitError
from ..fragments.generator import neutral_mass_from_mz
from .range_index import RangeIndex

logger = logging.getLogger(__name__)


# =============================================================================
# Quadratic Peak Fitting
# =============================================================================

def fit_quadratic(x, y) -> Tuple[float, float, float]:
    """Least-squares fit of ``y = a + b*x + c*x**2``.

    Solves the 3x3 normal equations.

    Returns
    -------
    a, b, c : float
        Polynomial coefficients

    Raises
    ------
    QuadraticFitError
        If the normal equations are singular (fewer than three distinct x)
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise ValueError(f"x ({x.size}) and y ({y.size}) differ in length")

    x2 = x * x
    s1, s2, s3, s4 = x.sum(), x2.sum(), (x2 * x).sum(), (x2 * x2).sum()
    lhs = np.array([
        [x.size, s1, s2],
        [s1, s2, s3],
        [s2, s3, s4],
    ], dtype=np.float64)
    rhs = np.array([y.sum(), (x * y).sum(), (x2 * y).sum()], dtype=np.float64)
    try:
        a, b, c = np.linalg.solve(lhs, rhs)
    except np.linalg.LinAlgError as exc:
        raise QuadraticFitError(f"Singular quadratic fit over {x.size} points") from exc
    return float(a), float(b), float(c)


def parabola_vertex(x, y) -> Optional[Tuple[float, float]]:
    """Vertex of the parabola fitted through (x, y).

    The x values are centred on their mean and scaled by their population
    standard deviation before fitting, since peak m/z values are far from the
    origin and nearly identical.

    Returns
    -------
    vertex : tuple of (float, float) or None
        ``(x_vertex, height)`` in the original x units, or None when the
        fit has no curvature.

    Raises
    ------
    QuadraticFitError
        If the x values have no spread

    Examples
    --------
    >>> parabola_vertex([-1.0, 0.0, 1.0], [1.0, 0.0, 1.0])
    (0.0, 0.0)
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    mean = x.mean()
    sdev = np.sqrt(((x - mean) ** 2).sum() / x.size)
    if sdev == 0.0:
        raise QuadraticFitError("x values have no spread")

    a, b, c = fit_quadratic((x - mean) / sdev, y)
    if c == 0.0:
        return None
    center = -b / (2.0 * c)
    height = a + b * center + c * center * center
    return float(center * sdev + mean), float(height)


def _within_ppm(mz: float, target_mz: float, charge: float, accuracy: float) -> bool:
    target_mass = neutral_mass_from_mz(target_mz, charge, PROTON_MASS)
    mass = neutral_mass_from_mz(mz, charge, PROTON_MASS)
    return abs((target_mass - mass) / target_mass) * 1e6 <= accuracy


def fit_profile_peak(
    mz_buffer: np.ndarray,
    intensity_buffer: np.ndarray,
    l_max: int,
    target_mz: float,
    charge: float,
    accuracy: float,
) -> float:
    """Apex intensity of a profile peak, or 0.0 if it cannot be confirmed.

    Parameters
    ----------
    mz_buffer, intensity_buffer : np.ndarray
        Profile points in the target window, ascending by m/z
    l_max : int
        Index of the local maximum, ``0 < l_max < len(buffer) - 1``
    target_mz : float
        Target m/z
    charge : float
        Target charge
    accuracy : float
        Maximum neutral-mass error of the fitted apex (ppm)

    Raises
    ------
    QuadraticFitError
        If the three points around the maximum share one m/z
    """
    window = slice(l_max - 1, l_max + 2)
    vertex = parabola_vertex(mz_buffer[window], intensity_buffer[window])
    if vertex is None:
        return 0.0
    apex_mz, height = vertex
    if _within_ppm(apex_mz, target_mz, charge, accuracy):
        return height
    return 0.0


def fit_centroid_peak(
    mz_buffer: np.ndarray,
    intensity_buffer: np.ndarray,
    target_mz: float,
    charge: float,
    accuracy: float,
) -> float:
    """Most intense centroid within ``accuracy`` ppm of the target, else 0.0."""
    intensity = 0.0
    for mz, value in zip(mz_buffer, intensity_buffer):
        if _within_ppm(mz, target_mz, charge, accuracy) and value > intensity:
            intensity = float(value)
    return intensity


# =============================================================================
# Chromatogram
# =============================================================================

@nb.njit(cache=True)
def _integrate(retention_times: np.ndarray, intensities: np.ndarray, rt_from: float, rt_to: float) -> float:
    area = 0.0
    for i in range(len(retention_times) - 1):
        if retention_times[i] >= rt_from and retention_times[i + 1] <= rt_to:
            dt = retention_times[i + 1] - retention_times[i]
            # The triangle is negative on a falling edge
            area += dt * intensities[i] + dt * (intensities[i + 1] - intensities[i]) / 2.0
    return area


class Chromatogram:
    """Retention time / intensity trace of one target in one spectrum.

    Samples are appended in scan order, so retention times are ascending.
    Charge, integer mass offset and labeling flag are annotations used for
    ordering and reporting.
    """

    def __init__(self, key: str, charge: int = 0, mass_offset: int = 0, labeling: bool = False):
        self.key = key
        self.charge = charge
        self.mass_offset = mass_offset
        self.labeling = labeling
        self.max_intensity = 0.0
        self._retention_times: List[float] = []
        self._intensities: List[float] = []

    def add(self, retention_time: float, intensity: float) -> None:
        self._retention_times.append(float(retention_time))
        self._intensities.append(float(intensity))
        if intensity > self.max_intensity:
            self.max_intensity = float(intensity)

    def __len__(self):
        return len(self._retention_times)

    def __repr__(self):
        return (
            f"Chromatogram(key={self.key!r}, n_samples={len(self)}, "
            f"max_intensity={self.max_intensity:.1f})"
        )

    @property
    def retention_times(self) -> np.ndarray:
        return np.asarray(self._retention_times, dtype=np.float64)

    @property
    def intensities(self) -> np.ndarray:
        return np.asarray(self._intensities, dtype=np.float64)

    def integrate(self, rt_from: float, rt_to: float) -> float:
        """Trapezoid area over sample pairs lying inside [rt_from, rt_to].

        Examples
        --------
        >>> c = Chromatogram("500.0000")
        >>> c.add(0.0, 0.0)
        >>> c.add(10.0, 20.0)
        >>> c.integrate(0.0, 10.0)
        100.0
        """
        if len(self) < 2:
            return 0.0
        return float(_integrate(self.retention_times, self.intensities, float(rt_from), float(rt_to)))

    def sort_key(self) -> Tuple[int, bool, int]:
        return (self.charge, self.labeling, self.mass_offset)

    def to_record(self) -> dict:
        """Report record with runs of zero intensity collapsed.

        An inner sample is omitted when it and both its neighbours are 0.
        The first and last samples are always kept. Values are truncated to
        integers.
        """
        rts = self._retention_times
        ints = self._intensities
        keep = []
        for i in range(len(ints)):
            inner = 0 < i < len(ints) - 1
            if inner and ints[i - 1] == 0 and ints[i] == 0 and ints[i + 1] == 0:
                continue
            keep.append(i)
        return {
            "key": self.key,
            "maxInt": int(self.max_intensity),
            "int": [int(ints[i]) for i in keep],
            "rt": [int(rts[i]) for i in keep],
        }


# =============================================================================
# Extractor
# =============================================================================

def mz_key(mz: float) -> str:
    """Chromatogram key of an m/z value."""
    return "%.4f" % mz


class MS1QuantExtractor:
    """Extract MS1 chromatograms for many targets over several spectra.

    Parameters
    ----------
    mz_values : array-like
        Target m/z values
    charges : array-like
        Charge of each target
    accuracy : float
        Apex/centroid acceptance window (ppm, neutral mass)
    resolution : float
        Instrument resolution; the peak collection window is
        ``mz / resolution`` on either side of the target
    rt_from, rt_to : float or None
        Retention time window in seconds
    spectra : sequence of (spectrum_key, SpectrumFile, path)
        Spectra to extract from; each reader is connected to its path for
        the duration of its extraction

    Attributes
    ----------
    chromatograms : dict
        ``spectrum_key -> mz_key -> Chromatogram``
    max_intensity : dict
        ``(mz_key, spectrum_key) -> float``, maximum confirmed intensity
    """

    def __init__(
        self,
        mz_values,
        charges,
        accuracy: float,
        resolution: float,
        rt_from: Optional[float],
        rt_to: Optional[float],
        spectra: Sequence[Tuple[str, object, Optional[str]]],
    ):
        self.mz_values = np.asarray(mz_values, dtype=np.float64)
        self.charges = np.asarray(charges, dtype=np.float64)
        if self.mz_values.shape != self.charges.shape:
            raise ValueError(
                f"{self.mz_values.size} m/z values but {self.charges.size} charges"
            )
        self.accuracy = accuracy
        self.resolution = resolution
        self.rt_from = rt_from
        self.rt_to = rt_to
        self.spectra = list(spectra)
        self.index = RangeIndex()
        self.chromatograms: Dict[str, Dict[str, Chromatogram]] = {}
        self.max_intensity: Dict[Tuple[str, str], float] = {}
        self._keys = [mz_key(mz) for mz in self.mz_values]
        self._active = np.zeros(self.mz_values.size, dtype=bool)

    def __repr__(self):
        return (
            f"MS1QuantExtractor(n_targets={self.mz_values.size}, "
            f"n_spectra={len(self.spectra)}, resolution={self.resolution})"
        )

    def _fill_index(self) -> None:
        for i, mz in enumerate(self.mz_values):
            window = mz / self.resolution
            # Targets whose window duplicates an earlier one get no samples
            self._active[i] = self.index.add(mz - window, mz + window, mz, i)

    def _scan_intensities(self, peaks, centroid: bool) -> np.ndarray:
        """One intensity per target for a single scan."""
        values = np.zeros(self.mz_values.size, dtype=np.float64)
        if peaks.size == 0:
            return values

        offsets, ids = self.index.find_many(peaks.mz)
        if ids.size == 0:
            return values

        # Group hits by target, keeping peaks in m/z order within a target
        peak_idx = np.repeat(np.arange(peaks.size), np.diff(offsets))
        order = np.argsort(ids, kind='stable')
        ids = ids[order]
        peak_idx = peak_idx[order]
        targets, starts = np.unique(ids, return_index=True)
        stops = np.append(starts[1:], ids.size)

        for target, start, stop in zip(targets, starts, stops):
            mz_buffer = peaks.mz[peak_idx[start:stop]]
            intensity_buffer = peaks.intensity[peak_idx[start:stop]]
            n_ions = mz_buffer.size
            l_max = int(np.argmax(intensity_buffer)) if intensity_buffer.max() > 0 else 0

            target_mz = self.mz_values[target]
            charge = self.charges[target]
            if not centroid and n_ions > 2 and 0 < l_max < n_ions - 1:
                values[target] = fit_profile_peak(
                    mz_buffer, intensity_buffer, l_max, target_mz, charge, self.accuracy
                )
            elif centroid and n_ions > 0:
                values[target] = fit_centroid_peak(
                    mz_buffer, intensity_buffer, target_mz, charge, self.accuracy
                )
        return values

    def _extract_spectrum(self, spectrum_key: str, reader, path: Optional[str]) -> None:
        chromatograms = self.chromatograms.setdefault(spectrum_key, {})
        for i in np.flatnonzero(self._active):
            key = self._keys[i]
            if key not in chromatograms:
                chromatograms[key] = Chromatogram(key, charge=int(self.charges[i]))
        maxints = np.zeros(self.mz_values.size, dtype=np.float64)

        reader.connect(path)
        try:
            scans = reader.query_retention_time(self.rt_from, self.rt_to, 1)
            logger.info(f"MS1 extract will iterate over {len(scans)} scans in spectrum {spectrum_key}")
            for scan_number in scans:
                scan = reader.scan_properties(scan_number)
                peaks = reader.scan_peaks(scan_number)
                values = self._scan_intensities(peaks, scan.centroid)
                np.maximum(maxints, values, out=maxints)
                for i in np.flatnonzero(self._active):
                    chromatograms[self._keys[i]].add(scan.retention_time, values[i])
        finally:
            reader.disconnect()

        for i in np.flatnonzero(self._active):
            self.max_intensity[(self._keys[i], spectrum_key)] = float(maxints[i])

    def extract(self) -> 'MS1QuantExtractor':
        """Build chromatograms for every target in every spectrum."""
        if len(self.index) == 0:
            self._fill_index()
        for spectrum_key, reader, path in self.spectra:
            self._extract_spectrum(spectrum_key, reader, path)
        return self

    def chromatogram(self, spectrum_key: str, mz: Union[str, float]) -> Chromatogram:
        """Chromatogram of a target, addressed by key string or m/z value."""
        key = mz if isinstance(mz, str) else mz_key(mz)
        return self.chromatograms[spectrum_key][key]

    def annotate(self, rt_database) -> None:
        """Copy charge, mass offset and labeling flag from ``rt_database``."""
        for peptide in rt_database.peptide_keys():
            for spectrum_key in rt_database.spectrum_keys(peptide):
                chromatograms = self.chromatograms.get(spectrum_key, {})
                for key in rt_database.mz_keys(peptide, spectrum_key):
                    if key not in chromatograms:
                        continue
                    chromatogram = chromatograms[key]
                    chromatogram.charge = rt_database.charge_state(peptide, spectrum_key, key)
                    chromatogram.mass_offset = rt_database.mass_offset(peptide, spectrum_key, key)
                    chromatogram.labeling = rt_database.is_labeling(peptide, spectrum_key, key)
