"""Identification records and the nested result store.

The store is filled during the single identification pass and read by
retention time interpolation, quantitation and report writers::

    FootprintingResult
      -> ProteinResult        (accession)
        -> PeptideResult      (peptide sequence)
          -> SpectrumResult   (spectrum key, "%.4f" of the exposure time)
            -> labeled / unlabeled
              -> neutral-mass key ("%.6f") -> [Identification]

Intermediate levels are created on first access through ``protein()``,
``peptide()`` and ``spectrum()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .constants import HYDROGEN_MASS
from .modifications import ModificationSite, Peptide


def spectrum_key(exposure_time: float) -> str:
    return "%.4f" % exposure_time


def neutral_mass_key(precursor_mz: float, charge: int) -> str:
    return "%.6f" % (precursor_mz * charge - charge * HYDROGEN_MASS)


def sorted_spectrum_keys(keys: Iterable[str]) -> List[str]:
    """Spectrum keys in ascending exposure time."""
    return sorted(keys, key=float)


# =============================================================================
# Identification Records
# =============================================================================

@dataclass(eq=False)
class MSMSIons:
    """Aligned MS/MS ions of one identification."""

    mz: np.ndarray
    intensity: np.ndarray
    labels: List[str] = field(default_factory=list)

    def to_record(self) -> dict:
        """Zero-intensity ions dropped, m/z to 0.1, intensity truncated."""
        keep = np.flatnonzero(np.asarray(self.intensity) != 0)
        return {
            "mz": [float("%.1f" % self.mz[i]) for i in keep],
            "I": [int(self.intensity[i]) for i in keep],
            "label": list(self.labels),
        }


@dataclass(frozen=True, eq=False)
class Identification:
    """A scan that confirmed a candidate species."""

    retention_time: float
    scan_number: int
    score: float
    is_significant: bool = False
    charge: int = 0
    precursor_mz: float = 0.0
    precursor_intensity: float = 0.0
    observed_ions: Optional[MSMSIons] = None
    theoretical_ions: Optional[MSMSIons] = None
    modifications: Tuple[ModificationSite, ...] = ()
    exposure_time: float = 0.0

    @property
    def is_labeled(self) -> bool:
        return any(site.modification.labeling for site in self.modifications)

    @property
    def mass_offset(self) -> float:
        return float(sum(site.modification.mass_offset for site in self.modifications))

    @property
    def spectrum_key(self) -> str:
        return spectrum_key(self.exposure_time)

    @property
    def neutral_mass_key(self) -> str:
        return neutral_mass_key(self.precursor_mz, self.charge)

    def to_record(self) -> dict:
        return {
            "mods": "[" + ", ".join(str(site) for site in self.modifications) + "]",
            "rt": self.retention_time,
            "specVar": self.exposure_time,
            "mz": self.precursor_mz,
            "pci": self.precursor_intensity,
            "scan": self.scan_number,
            "score": self.score,
            "z": self.charge,
            "oions": self.observed_ions.to_record() if self.observed_ions is not None else None,
            "tions": self.theoretical_ions.to_record() if self.theoretical_ions is not None else None,
            "sig": self.is_significant,
        }

    def __repr__(self):
        return (
            f"Identification(scan={self.scan_number}, rt={self.retention_time:.2f}, "
            f"z={self.charge}, score={self.score:.4f}, significant={self.is_significant})"
        )


# =============================================================================
# Result Hierarchy
# =============================================================================

class SpectrumResult:
    """Identifications of one peptide in one spectrum, split by labeling."""

    def __init__(self):
        self.labeled: Dict[str, List[Identification]] = {}
        self.unlabeled: Dict[str, List[Identification]] = {}

    def add(self, identification: Identification) -> None:
        bucket = self.labeled if identification.is_labeled else self.unlabeled
        bucket.setdefault(identification.neutral_mass_key, []).append(identification)

    def add_all(self, identifications: Iterable[Identification]) -> None:
        for identification in identifications:
            self.add(identification)

    def labeled_keys(self) -> List[str]:
        return list(self.labeled)

    def unlabeled_keys(self) -> List[str]:
        return list(self.unlabeled)

    def labeled_identifications(self, key: str) -> List[Identification]:
        return self.labeled[key]

    def unlabeled_identifications(self, key: str) -> List[Identification]:
        return self.unlabeled[key]

    def is_empty(self) -> bool:
        return not self.labeled and not self.unlabeled

    def __len__(self):
        return sum(len(v) for v in self.labeled.values()) + sum(len(v) for v in self.unlabeled.values())


class PeptideResult:
    def __init__(self, peptide: Peptide):
        self.peptide = peptide
        self.spectra: Dict[str, SpectrumResult] = {}

    def spectrum(self, key: str) -> SpectrumResult:
        if key not in self.spectra:
            self.spectra[key] = SpectrumResult()
        return self.spectra[key]

    def spectrum_keys(self) -> List[str]:
        return sorted_spectrum_keys(self.spectra)

    def __len__(self):
        return sum(len(s) for s in self.spectra.values())


class ProteinResult:
    def __init__(self, accession: str):
        self.accession = accession
        self.peptides: Dict[str, PeptideResult] = {}

    def peptide(self, peptide: Peptide) -> PeptideResult:
        """Result of ``peptide``, keyed by its sequence."""
        if peptide.sequence not in self.peptides:
            self.peptides[peptide.sequence] = PeptideResult(peptide)
        return self.peptides[peptide.sequence]

    def get_peptide(self, sequence: str) -> Peptide:
        return self.peptides[sequence].peptide

    def peptide_keys(self) -> List[str]:
        return sorted(self.peptides)

    def __len__(self):
        return sum(len(p) for p in self.peptides.values())


class FootprintingResult:
    """All identifications of a run, by protein."""

    def __init__(self):
        self.proteins: Dict[str, ProteinResult] = {}

    def protein(self, accession: str) -> ProteinResult:
        if accession not in self.proteins:
            self.proteins[accession] = ProteinResult(accession)
        return self.proteins[accession]

    def accessions(self) -> List[str]:
        return sorted(self.proteins)

    def __len__(self):
        return sum(len(p) for p in self.proteins.values())

    def __repr__(self):
        return f"FootprintingResult(n_proteins={len(self.proteins)}, n_identifications={len(self)})"

    def identifications(self) -> Iterator[Tuple[str, str, str, bool, str, Identification]]:
        """Iterate ``(accession, peptide, spectrum_key, labeled, mass_key, identification)``.

        Keys are visited in sorted order, unlabeled before labeled.
        """
        for accession in self.accessions():
            protein = self.proteins[accession]
            for sequence in protein.peptide_keys():
                peptide = protein.peptides[sequence]
                for key in peptide.spectrum_keys():
                    spectrum = peptide.spectra[key]
                    for labeled, bucket in ((False, spectrum.unlabeled), (True, spectrum.labeled)):
                        for mass_key in sorted(bucket):
                            for identification in bucket[mass_key]:
                                yield accession, sequence, key, labeled, mass_key, identification

    def to_records(self) -> List[dict]:
        """Flat identification records for report writers."""
        records = []
        for accession, sequence, _, _, _, identification in self.identifications():
            peptide = self.proteins[accession].get_peptide(sequence)
            record = {
                "accession": accession,
                "peptide": sequence,
                "p_start": peptide.start + 1,
                "p_end": peptide.end + 1,
            }
            record.update(identification.to_record())
            records.append(record)
        return records
