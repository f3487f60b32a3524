"""Labeled / unlabeled peak areas per peptide and spectrum.

For every peptide in the retention time database and every spectrum it was
placed in, the chromatogram of each of its m/z keys is integrated over the
merged retention time intervals. Areas of labeling species and of unlabeled
species are summed separately, giving the labeled fraction of the peptide in
that spectrum and its change relative to the previous spectrum (by exposure
time).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from .modifications import Peptide
from .results import FootprintingResult
from .rt.interpolation import RetentionTimeDatabase, widen_and_merge

logger = logging.getLogger(__name__)


def _divide(numerator: float, denominator: float) -> float:
    """IEEE division: 0/0 is NaN and x/0 is ±inf."""
    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.float64(numerator) / np.float64(denominator))


def _number(value: float, fmt: str):
    return "NaN" if math.isnan(value) else float(fmt % value)


@dataclass
class PeakArea:
    """Integrated areas of one peptide in one spectrum."""

    accession: str
    peptide: Peptide
    spectrum_key: str
    labeled_area: float
    unlabeled_area: float
    fraction_labeled: float
    previous_fraction: float = float('nan')
    species: Dict[str, dict] = field(default_factory=dict)

    @property
    def ratio(self) -> float:
        """Labeled fraction relative to the previous spectrum (NaN for the first)."""
        if math.isnan(self.previous_fraction):
            return float('nan')
        return _divide(self.fraction_labeled, self.previous_fraction)

    def to_record(self) -> dict:
        record = {
            "accession": self.accession,
            "peptide": self.peptide.sequence,
            "p_start": self.peptide.start + 1,
            "p_end": self.peptide.end + 1,
            "spectrum": self.spectrum_key,
            "labeled": float("%.4e" % self.labeled_area),
            "unlabeled": float("%.4e" % self.unlabeled_area),
            "ratio": _number(self.fraction_labeled, "%.4f"),
        }
        if not math.isnan(self.previous_fraction):
            record["c-ratio"] = _number(self.ratio, "%.4f")
        record["species"] = self.species
        return record


def compute_peak_areas(
    result: FootprintingResult,
    rt_database: RetentionTimeDatabase,
    extractor,
    integration_slack: float,
) -> List[PeakArea]:
    """Peak areas of every peptide in every spectrum it was placed in.

    Parameters
    ----------
    result : FootprintingResult
        Identifications, for protein and peptide coordinates
    rt_database : RetentionTimeDatabase
        Transferred retention times per peptide, spectrum and m/z key
    extractor : MS1QuantExtractor
        Extractor that has run over all spectra
    integration_slack : float
        Half-width (s) of the integration window around each retention time

    Returns
    -------
    areas : list of PeakArea
        Ordered by accession, peptide and exposure time
    """
    areas = []
    for accession in result.accessions():
        protein = result.proteins[accession]
        for sequence in protein.peptide_keys():
            peptide_result = protein.peptides[sequence]
            last_fraction = float('nan')
            for key in peptide_result.spectrum_keys():
                if not rt_database.contains(sequence, key):
                    continue
                labeled = 0.0
                unlabeled = 0.0
                species = {}
                for mz_key in rt_database.mz_keys(sequence, key):
                    entry = rt_database.entry(sequence, key, mz_key)
                    intervals = widen_and_merge(entry.retention_times, integration_slack)
                    chromatogram = extractor.chromatogram(key, mz_key)
                    for interval in intervals:
                        area = chromatogram.integrate(interval.start, interval.end)
                        if entry.labeled:
                            labeled += area
                        else:
                            unlabeled += area
                    species[mz_key] = {
                        "z": entry.charge,
                        "massOffset": entry.mass_offset,
                        "labeling": entry.labeled,
                        "rti": [[iv.start, iv.end] for iv in intervals],
                    }

                fraction = _divide(labeled, labeled + unlabeled)
                areas.append(PeakArea(
                    accession=accession,
                    peptide=peptide_result.peptide,
                    spectrum_key=key,
                    labeled_area=labeled,
                    unlabeled_area=unlabeled,
                    fraction_labeled=fraction,
                    previous_fraction=last_fraction,
                    species=species,
                ))
                logger.debug(f"{accession} {sequence} {key}: labeled={labeled:.4e} unlabeled={unlabeled:.4e}")
                last_fraction = fraction
    return areas
