"""Spectrum reader interface and two concrete readers.

The identification and MS1 extraction steps only talk to a spectrum file
through :class:`SpectrumFile`. Parsing vendor or mzXML files is left to
external converters; this module ships:

- :class:`InMemorySpectrumFile` for programmatic use and tests
- :class:`HDF5SpectrumFile`, a lazy reader for a flat HDF5 container

HDF5 layout
-----------
::

    /scans/scan_number          int64   (n_scans,)
    /scans/retention_time       float64 (n_scans,)  seconds
    /scans/ms_level             int8    (n_scans,)
    /scans/centroid             bool    (n_scans,)
    /scans/precursor_mz         float64 (n_scans,)  0 for MS1
    /scans/precursor_intensity  float64 (n_scans,)
    /peaks/offsets              int64   (n_scans + 1,)
    /peaks/mz                   float64 (n_peaks,)  ascending per scan
    /peaks/intensity            float64 (n_peaks,)

Examples
--------
>>> with HDF5SpectrumFile() as sf:
...     sf.connect('run01.hdf')
...     scans = sf.query_retention_time(600.0, 1200.0, 1)
...     peaks = sf.scan_peaks(scans[0])
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, NamedTuple, Optional, Sequence, Tuple

import h5py
import numpy as np


@dataclass(frozen=True)
class Scan:
    """Scan metadata, immutable once read."""

    scan_number: int
    retention_time: float  # seconds
    ms_level: int = 1
    centroid: bool = True
    precursor_mz: float = 0.0
    precursor_intensity: float = 0.0


class Peaks(NamedTuple):
    """Parallel m/z and intensity arrays, ascending by m/z."""
    mz: np.ndarray
    intensity: np.ndarray

    @classmethod
    def from_arrays(cls, mz, intensity) -> 'Peaks':
        mz = np.asarray(mz, dtype=np.float64)
        intensity = np.asarray(intensity, dtype=np.float64)
        if mz.shape != intensity.shape:
            raise ValueError(
                f"m/z ({mz.size}) and intensity ({intensity.size}) arrays differ in length"
            )
        return cls(mz, intensity)

    @classmethod
    def empty(cls) -> 'Peaks':
        return cls(np.empty(0, dtype=np.float64), np.empty(0, dtype=np.float64))

    def select(self, index) -> 'Peaks':
        """Subset by boolean mask or integer index array."""
        return Peaks(self.mz[index], self.intensity[index])

    @property
    def size(self) -> int:
        return int(self.mz.size)


class SpectrumFile(ABC):
    """Query/read interface over one LC-MS/MS run.

    Readers may be reused for several files: ``connect`` opens a run and
    ``disconnect`` releases it. Readers are also context managers that
    disconnect on exit.
    """

    @abstractmethod
    def connect(self, path: Optional[str] = None) -> bool:
        """Open the run at ``path``."""

    @abstractmethod
    def disconnect(self) -> bool:
        """Release the current run."""

    @abstractmethod
    def scan_properties(self, scan_number: int) -> Scan:
        """Metadata of one scan."""

    @abstractmethod
    def scan_peaks(self, scan_number: int) -> Peaks:
        """Peaks of one scan, ascending by m/z."""

    @abstractmethod
    def query_precursor(
        self,
        min_mz: float,
        max_mz: float,
        rt_from: Optional[float] = None,
        rt_to: Optional[float] = None,
    ) -> np.ndarray:
        """MS2 scan numbers with precursor m/z in [min_mz, max_mz]."""

    @abstractmethod
    def query_retention_time(self, rt_from: float, rt_to: float, ms_level: int) -> np.ndarray:
        """Scan numbers of the given MS level with RT in [rt_from, rt_to]."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of scans in the current run."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


class _ScanTableSpectrumFile(SpectrumFile):
    """Shared query logic over columnar scan metadata."""

    def __init__(self):
        self._scan_number = np.empty(0, dtype=np.int64)
        self._retention_time = np.empty(0, dtype=np.float64)
        self._ms_level = np.empty(0, dtype=np.int64)
        self._centroid = np.empty(0, dtype=bool)
        self._precursor_mz = np.empty(0, dtype=np.float64)
        self._precursor_intensity = np.empty(0, dtype=np.float64)
        self._row = {}

    def _set_table(self, scan_number, retention_time, ms_level, centroid,
                   precursor_mz, precursor_intensity):
        self._scan_number = np.asarray(scan_number, dtype=np.int64)
        self._retention_time = np.asarray(retention_time, dtype=np.float64)
        self._ms_level = np.asarray(ms_level, dtype=np.int64)
        self._centroid = np.asarray(centroid, dtype=bool)
        self._precursor_mz = np.asarray(precursor_mz, dtype=np.float64)
        self._precursor_intensity = np.asarray(precursor_intensity, dtype=np.float64)
        self._row = {int(s): i for i, s in enumerate(self._scan_number)}

    def _row_of(self, scan_number: int) -> int:
        try:
            return self._row[int(scan_number)]
        except KeyError:
            raise KeyError(f"Scan {scan_number} is not in the current run") from None

    def scan_properties(self, scan_number: int) -> Scan:
        row = self._row_of(scan_number)
        return Scan(
            scan_number=int(self._scan_number[row]),
            retention_time=float(self._retention_time[row]),
            ms_level=int(self._ms_level[row]),
            centroid=bool(self._centroid[row]),
            precursor_mz=float(self._precursor_mz[row]),
            precursor_intensity=float(self._precursor_intensity[row]),
        )

    def _rt_mask(self, rt_from: Optional[float], rt_to: Optional[float]) -> np.ndarray:
        mask = np.ones(self._scan_number.size, dtype=bool)
        if rt_from is not None:
            mask &= self._retention_time >= rt_from
        if rt_to is not None:
            mask &= self._retention_time <= rt_to
        return mask

    def query_precursor(self, min_mz, max_mz, rt_from=None, rt_to=None) -> np.ndarray:
        mask = self._rt_mask(rt_from, rt_to)
        mask &= self._ms_level == 2
        mask &= (self._precursor_mz >= min_mz) & (self._precursor_mz <= max_mz)
        return np.sort(self._scan_number[mask])

    def query_retention_time(self, rt_from, rt_to, ms_level) -> np.ndarray:
        mask = self._rt_mask(rt_from, rt_to) & (self._ms_level == ms_level)
        return np.sort(self._scan_number[mask])

    def __len__(self) -> int:
        return int(self._scan_number.size)


class InMemorySpectrumFile(_ScanTableSpectrumFile):
    """Spectrum file backed by Python objects.

    Parameters
    ----------
    scans : sequence of (Scan, Peaks)
        Scans of the run in acquisition order
    path : str, optional
        Name reported by :attr:`file`
    """

    def __init__(self, scans: Sequence[Tuple[Scan, Peaks]] = (), path: Optional[str] = None):
        super().__init__()
        self.path = path
        self._peaks = {}
        self._load(scans)

    def _load(self, scans: Iterable[Tuple[Scan, Peaks]]):
        metas = []
        for scan, peaks in scans:
            metas.append(scan)
            self._peaks[scan.scan_number] = Peaks.from_arrays(peaks.mz, peaks.intensity)
        self._set_table(
            [s.scan_number for s in metas],
            [s.retention_time for s in metas],
            [s.ms_level for s in metas],
            [s.centroid for s in metas],
            [s.precursor_mz for s in metas],
            [s.precursor_intensity for s in metas],
        )

    @property
    def file(self) -> Optional[str]:
        return self.path

    def connect(self, path: Optional[str] = None) -> bool:
        if path is not None:
            self.path = path
        return True

    def disconnect(self) -> bool:
        return True

    def scan_peaks(self, scan_number: int) -> Peaks:
        self._row_of(scan_number)
        return self._peaks[int(scan_number)]


class HDF5SpectrumFile(_ScanTableSpectrumFile):
    """Lazy HDF5 spectrum reader.

    Scan metadata is loaded on ``connect``; peak arrays are sliced from the
    open file on demand.
    """

    def __init__(self, path: Optional[Path | str] = None):
        super().__init__()
        self.path = Path(path) if path is not None else None
        self._hdf_handle = None
        self._offsets = np.zeros(1, dtype=np.int64)

    @property
    def file(self) -> Optional[str]:
        return str(self.path) if self.path is not None else None

    def connect(self, path: Optional[Path | str] = None) -> bool:
        if path is not None:
            self.path = Path(path)
        if self.path is None:
            raise ValueError("No spectrum file path given")
        if not self.path.exists():
            raise FileNotFoundError(f"Spectrum file not found: {self.path}")
        self.disconnect()

        self._hdf_handle = h5py.File(self.path, 'r')
        scans = self._hdf_handle['scans']
        self._set_table(
            scans['scan_number'][:],
            scans['retention_time'][:],
            scans['ms_level'][:],
            scans['centroid'][:],
            scans['precursor_mz'][:],
            scans['precursor_intensity'][:],
        )
        self._offsets = self._hdf_handle['peaks']['offsets'][:]
        return True

    def disconnect(self) -> bool:
        if self._hdf_handle is not None:
            self._hdf_handle.close()
            self._hdf_handle = None
        return True

    def scan_peaks(self, scan_number: int) -> Peaks:
        if self._hdf_handle is None:
            raise RuntimeError("HDF5SpectrumFile is not connected")
        row = self._row_of(scan_number)
        start, stop = int(self._offsets[row]), int(self._offsets[row + 1])
        peaks = self._hdf_handle['peaks']
        return Peaks(
            peaks['mz'][start:stop].astype(np.float64),
            peaks['intensity'][start:stop].astype(np.float64),
        )


def write_hdf5_spectrum(path: Path | str, scans: Sequence[Tuple[Scan, Peaks]]) -> Path:
    """Write scans to the HDF5 layout read by :class:`HDF5SpectrumFile`.

    Parameters
    ----------
    path : Path or str
        Output file (overwritten)
    scans : sequence of (Scan, Peaks)
        Scans in acquisition order

    Returns
    -------
    path : Path
        The written file
    """
    path = Path(path)
    counts = np.array([len(peaks.mz) for _, peaks in scans], dtype=np.int64)
    offsets = np.zeros(len(scans) + 1, dtype=np.int64)
    offsets[1:] = np.cumsum(counts)

    if scans:
        mz = np.concatenate([np.asarray(p.mz, dtype=np.float64) for _, p in scans])
        intensity = np.concatenate([np.asarray(p.intensity, dtype=np.float64) for _, p in scans])
    else:
        mz = np.empty(0, dtype=np.float64)
        intensity = np.empty(0, dtype=np.float64)

    with h5py.File(path, 'w') as hdf:
        grp = hdf.create_group('scans')
        grp.create_dataset('scan_number', data=np.array([s.scan_number for s, _ in scans], dtype=np.int64))
        grp.create_dataset('retention_time', data=np.array([s.retention_time for s, _ in scans], dtype=np.float64))
        grp.create_dataset('ms_level', data=np.array([s.ms_level for s, _ in scans], dtype=np.int8))
        grp.create_dataset('centroid', data=np.array([s.centroid for s, _ in scans], dtype=bool))
        grp.create_dataset('precursor_mz', data=np.array([s.precursor_mz for s, _ in scans], dtype=np.float64))
        grp.create_dataset('precursor_intensity', data=np.array([s.precursor_intensity for s, _ in scans], dtype=np.float64))
        grp = hdf.create_group('peaks')
        grp.create_dataset('offsets', data=offsets)
        grp.create_dataset('mz', data=mz)
        grp.create_dataset('intensity', data=intensity)
    return path
