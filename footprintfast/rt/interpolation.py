"""Cross-spectrum retention time interpolation.

A footprinting experiment acquires one spectrum per exposure time. A species
identified by MS/MS in some spectra still has to be quantified in all of
them, so its elution time is transferred between spectra through a shared
landmark, the reference species:

1. Reference selection: among unlabeled identifications, the species
   (peptide + neutral-mass key) seen in the most spectra, ties broken by the
   higher median precursor intensity.
2. Landmarks: per spectrum, the retention time of the most intense
   reference identification.
3. Transfer: an identification at ``rt`` in spectrum S places the species in
   spectrum T at ``ref(T) + (rt - ref(S))``.

The transferred times are widened by an integration slack and merged into
non-overlapping intervals for chromatogram integration.

Examples
--------
>>> reference = select_reference(result)
>>> rt_database = build_retention_time_database(result, reference)
>>> intervals = widen_and_merge(rt_database.retention_times(pep, "0.0000", mz), 180.0)
"""

import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

import numpy as np
from numba import njit

from ..exceptions import MassOffsetConflictError, RetentionTimeLookupError
from ..results import FootprintingResult, Identification, sorted_spectrum_keys
from ..constants import HYDROGEN_MASS

logger = logging.getLogger(__name__)


class ComparableRetentionTime(NamedTuple):
    """Retention time (s) with the precursor intensity and score it came from.

    Orders by retention time first.
    """
    retention_time: float
    intensity: float = 0.0
    score: float = 0.0

    @classmethod
    def from_identification(cls, identification: Identification) -> 'ComparableRetentionTime':
        return cls(
            float(identification.retention_time),
            float(identification.precursor_intensity),
            float(identification.score),
        )


class Interval(NamedTuple):
    """Closed retention time interval in seconds."""
    start: float
    end: float


# =============================================================================
# Retention Times by Spectrum and Mass
# =============================================================================

class RetentionTimes:
    """spectrum key -> neutral-mass key -> retention times, unique by time.

    Attributes
    ----------
    reference_mz : str or None
        Neutral-mass key of the reference species, when this collection
        holds reference landmarks
    """

    def __init__(self):
        self._times: Dict[str, Dict[str, List[ComparableRetentionTime]]] = {}
        self.reference_mz: Optional[str] = None

    def add(self, identification: Identification) -> None:
        by_mass = self._times.setdefault(identification.spectrum_key, {})
        times = by_mass.setdefault(identification.neutral_mass_key, [])
        rt = ComparableRetentionTime.from_identification(identification)
        if all(t.retention_time != rt.retention_time for t in times):
            times.append(rt)

    def add_all(self, identifications: Iterable[Identification]) -> None:
        for identification in identifications:
            self.add(identification)

    def spectrum_keys(self) -> List[str]:
        return sorted_spectrum_keys(self._times)

    def mz_keys(self, spectrum_key: str) -> List[str]:
        return list(self._times[spectrum_key])

    def has_retention_times(self, spectrum_key: str, mz_key: str) -> bool:
        return spectrum_key in self._times and mz_key in self._times[spectrum_key]

    def retention_times(self, spectrum_key: str, mz_key: str) -> Optional[List[ComparableRetentionTime]]:
        if not self.has_retention_times(spectrum_key, mz_key):
            return None
        return self._times[spectrum_key][mz_key]

    def greatest_intensity(self, spectrum_key: str, mz_key: str) -> Optional[ComparableRetentionTime]:
        """Most intense retention time; ties go to the later one."""
        times = self.retention_times(spectrum_key, mz_key)
        if not times:
            return None
        best = None
        for rt in sorted(times):
            if best is None or rt.intensity >= best.intensity:
                best = rt
        return best

    def mz_map(self, mz_key: str) -> Dict[str, float]:
        """Landmark retention time of ``mz_key`` per spectrum that has it."""
        landmarks = {}
        for key in self.spectrum_keys():
            best = self.greatest_intensity(key, mz_key)
            if best is not None:
                landmarks[key] = best.retention_time
        return landmarks

    def __len__(self):
        return sum(len(times) for by_mass in self._times.values() for times in by_mass.values())

    def __repr__(self):
        return f"RetentionTimes(n_spectra={len(self._times)}, reference_mz={self.reference_mz!r})"


# =============================================================================
# Reference Selection
# =============================================================================

def select_reference(result: FootprintingResult) -> RetentionTimes:
    """Retention times of the best unlabeled species, for use as landmarks.

    Returns
    -------
    reference : RetentionTimes
        Identifications of the chosen species with ``reference_mz`` set, or an
        empty collection when there are no unlabeled identifications
    """
    spectra: Dict[str, Set[str]] = {}
    intensities: Dict[str, List[float]] = {}
    identifications: Dict[str, List[Identification]] = {}

    for accession, sequence, key, labeled, mass_key, identification in result.identifications():
        if labeled:
            continue
        species = f"{sequence}_{mass_key}"
        spectra.setdefault(species, set()).add(key)
        intensities.setdefault(species, []).append(identification.precursor_intensity)
        identifications.setdefault(species, []).append(identification)

    reference = RetentionTimes()
    if not spectra:
        logger.warning("No interpolation possible. No unlabeled species detected")
        return reference

    best, max_hits, max_intensity = None, 0, -np.inf
    for species, keys in spectra.items():
        median = float(np.median(intensities[species]))
        if len(keys) > max_hits or (len(keys) == max_hits and median > max_intensity):
            best, max_hits, max_intensity = species, len(keys), median

    logger.info(f"Reference species {best} seen in {max_hits} spectra")
    reference.add_all(identifications[best])
    reference.reference_mz = best.rsplit("_", 1)[1]
    return reference


# =============================================================================
# Retention Time Database
# =============================================================================

class RetentionTimeEntry(NamedTuple):
    labeled: bool
    mass_offset: int
    charge: int
    retention_times: List[ComparableRetentionTime]


class RetentionTimeDatabase:
    """peptide -> spectrum key -> m/z key ("%.4f") -> :class:`RetentionTimeEntry`."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, Dict[str, RetentionTimeEntry]]] = {}
        self.unique_mz: Dict[str, int] = {}

    def add_retention_time(
        self,
        peptide: str,
        spectrum_key: str,
        mz_key: str,
        retention_times: List[ComparableRetentionTime],
        labeling: bool,
        charge: int,
        mass_offset: int,
    ) -> None:
        by_spectrum = self._entries.setdefault(peptide, {})
        by_spectrum.setdefault(spectrum_key, {})[mz_key] = RetentionTimeEntry(
            bool(labeling), int(mass_offset), int(charge), list(retention_times)
        )
        self.unique_mz[mz_key] = int(charge)

    def entry(self, peptide: str, spectrum_key: str, mz_key: str) -> RetentionTimeEntry:
        try:
            return self._entries[peptide][spectrum_key][mz_key]
        except KeyError:
            raise RetentionTimeLookupError(peptide, spectrum_key, mz_key) from None

    def retention_times(self, peptide: str, spectrum_key: str, mz_key: str) -> List[ComparableRetentionTime]:
        return self.entry(peptide, spectrum_key, mz_key).retention_times

    def is_labeling(self, peptide: str, spectrum_key: str, mz_key: str) -> bool:
        return self.entry(peptide, spectrum_key, mz_key).labeled

    def charge_state(self, peptide: str, spectrum_key: str, mz_key: str) -> int:
        return self.entry(peptide, spectrum_key, mz_key).charge

    def mass_offset(self, peptide: str, spectrum_key: str, mz_key: str) -> int:
        return self.entry(peptide, spectrum_key, mz_key).mass_offset

    def contains(self, peptide: str, spectrum_key: str) -> bool:
        return peptide in self._entries and spectrum_key in self._entries[peptide]

    def peptide_keys(self) -> List[str]:
        return sorted(self._entries)

    def spectrum_keys(self, peptide: str) -> List[str]:
        return sorted_spectrum_keys(self._entries[peptide])

    def mz_keys(self, peptide: str, spectrum_key: str) -> List[str]:
        return sorted(self._entries[peptide][spectrum_key], key=float)

    def unique_species(self) -> Tuple[np.ndarray, np.ndarray]:
        """Distinct (m/z, charge) targets for MS1 extraction, ascending by m/z."""
        keys = sorted(self.unique_mz, key=float)
        mz = np.array([float(k) for k in keys], dtype=np.float64)
        charge = np.array([self.unique_mz[k] for k in keys], dtype=np.float64)
        return mz, charge

    def __len__(self):
        return sum(len(by_mz) for by_spectrum in self._entries.values() for by_mz in by_spectrum.values())

    def __repr__(self):
        return f"RetentionTimeDatabase(n_peptides={len(self._entries)}, n_entries={len(self)})"


def _transfer(
    spectrum_key: str,
    mass_key: str,
    landmarks: Dict[str, float],
    times: RetentionTimes,
) -> List[ComparableRetentionTime]:
    """Observed times of ``mass_key`` in every spectrum, moved into ``spectrum_key``."""
    transferred = []
    if spectrum_key not in landmarks:
        return transferred
    for source in times.spectrum_keys():
        if not times.has_retention_times(source, mass_key) or source not in landmarks:
            continue
        for rt in times.retention_times(source, mass_key):
            transferred.append(ComparableRetentionTime(
                landmarks[spectrum_key] + (rt.retention_time - landmarks[source])
            ))
    return transferred


def build_retention_time_database(
    result: FootprintingResult,
    reference: RetentionTimes,
) -> RetentionTimeDatabase:
    """Retention times of every identified species in every spectrum.

    Peptides without both a labeled and an unlabeled identification are left
    out. Each species gets one entry per observed charge state, keyed by its
    m/z at that charge.

    Raises
    ------
    MassOffsetConflictError
        If one peptide + neutral-mass key was identified with different
        integer mass offsets
    """
    landmarks = reference.mz_map(reference.reference_mz) if reference.reference_mz else {}

    spectrum_keys: Set[str] = set()
    sequences: Set[str] = set()
    times: Dict[str, RetentionTimes] = {}
    masses: Dict[str, Set[str]] = {}
    charges: Dict[str, Dict[str, Set[int]]] = {}
    offsets: Dict[str, Dict[str, Set[int]]] = {}
    labeling: Dict[str, Dict[str, bool]] = {}
    has_labeled: Dict[str, bool] = {}
    has_unlabeled: Dict[str, bool] = {}

    # Collect observations per peptide across proteins
    for accession in result.accessions():
        protein = result.proteins[accession]
        for sequence in protein.peptide_keys():
            peptide = protein.peptides[sequence]
            has_labeled.setdefault(sequence, False)
            has_unlabeled.setdefault(sequence, False)
            for key in peptide.spectrum_keys():
                spectrum = peptide.spectrum(key)
                spectrum_keys.add(key)
                if spectrum.is_empty():
                    continue
                sequences.add(sequence)
                if spectrum.unlabeled:
                    has_unlabeled[sequence] = True
                if spectrum.labeled:
                    has_labeled[sequence] = True
                for is_labeled, bucket in ((False, spectrum.unlabeled), (True, spectrum.labeled)):
                    for mass_key, identifications in bucket.items():
                        for identification in identifications:
                            labeling.setdefault(sequence, {})[mass_key] = is_labeled
                            masses.setdefault(sequence, set()).add(mass_key)
                            charges.setdefault(sequence, {}).setdefault(mass_key, set()).add(identification.charge)
                            offsets.setdefault(sequence, {}).setdefault(mass_key, set()).add(int(identification.mass_offset))
                        times.setdefault(sequence, RetentionTimes()).add_all(identifications)

    # Transfer observations into every spectrum
    rt_database = RetentionTimeDatabase()
    for sequence in sorted(sequences):
        if not (has_unlabeled[sequence] and has_labeled[sequence]):
            logger.info(
                f"Removing peptide {sequence} from retention time interpolation because "
                f"it does not have both labeled and unlabeled identifications"
            )
            continue
        for mass_key in sorted(masses[sequence], key=float):
            mass_offsets = offsets[sequence][mass_key]
            if len(mass_offsets) > 1:
                logger.error(f"Peptide {sequence} with MI={mass_key} has multiple mass offsets {sorted(mass_offsets)}")
                raise MassOffsetConflictError(
                    f"Multiple mass offsets associated with peptide {sequence} and mass {mass_key}"
                )
            mass_offset = next(iter(mass_offsets))
            mass = float(mass_key)
            for key in sorted_spectrum_keys(spectrum_keys):
                transferred = _transfer(key, mass_key, landmarks, times[sequence])
                for z in sorted(charges[sequence][mass_key]):
                    mz = (mass + z * HYDROGEN_MASS) / z
                    rt_database.add_retention_time(
                        sequence, key, "%.4f" % mz, transferred,
                        labeling[sequence][mass_key], z, mass_offset,
                    )
    return rt_database


# =============================================================================
# Integration Intervals
# =============================================================================

@njit(cache=True)
def _sweep(starts: np.ndarray, ends: np.ndarray):
    """Merge intervals sorted by start, comparing with the last emitted one.

    Intervals that only touch (start equal to the last end) are merged too.
    """
    n = len(starts)
    out_start = np.empty(n, dtype=np.float64)
    out_end = np.empty(n, dtype=np.float64)
    m = 0
    for i in range(n):
        if m > 0 and starts[i] <= out_end[m - 1]:
            if ends[i] > out_end[m - 1]:
                out_end[m - 1] = ends[i]
        else:
            out_start[m] = starts[i]
            out_end[m] = ends[i]
            m += 1
    return out_start[:m], out_end[:m]


def _to_intervals(starts: np.ndarray, ends: np.ndarray) -> List[Interval]:
    return [Interval(float(s), float(e)) for s, e in zip(starts, ends)]


def widen_and_merge(retention_times, slack: float) -> List[Interval]:
    """Widen each retention time by ``± slack`` and merge touching windows.

    Parameters
    ----------
    retention_times : iterable of float or ComparableRetentionTime
        Retention times in seconds, any order
    slack : float
        Half-width of each window (s)

    Returns
    -------
    intervals : list of Interval
        Non-overlapping intervals, ascending

    Examples
    --------
    >>> widen_and_merge([300.0, 600.0, 500.0], 50.0)
    [Interval(start=250.0, end=350.0), Interval(start=450.0, end=650.0)]
    """
    rts = np.sort(np.array(
        [getattr(rt, "retention_time", rt) for rt in retention_times], dtype=np.float64
    ))
    return _to_intervals(*_sweep(rts - slack, rts + slack))


def merge_intervals(intervals: Iterable[Tuple[float, float]]) -> List[Interval]:
    """Merge intervals with the same sweep; merged lists are returned unchanged."""
    intervals = sorted(Interval(float(s), float(e)) for s, e in intervals)
    starts = np.array([iv.start for iv in intervals], dtype=np.float64)
    ends = np.array([iv.end for iv in intervals], dtype=np.float64)
    return _to_intervals(*_sweep(starts, ends))
