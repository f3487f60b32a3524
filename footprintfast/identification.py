"""Identification and quantitation of candidate species across spectra.

Pipeline
--------
1. For every spectrum, candidate and charge state: query MS2 scans whose
   precursor lies within the MS1 tolerance of the species' precursor m/z
2. Confirm each scan: filter its peaks, align the sorted theoretical
   fragment ions onto them and score the alignment by correlation
3. Keep significant identifications scoring at least ``min_score``
4. Select a reference species and transfer retention times between spectra
5. Extract MS1 chromatograms for every species and integrate peak areas

Examples
--------
>>> config = IdentificationConfig.from_minutes(10, 30, min_mass=500, max_mass=4000)
>>> factory = IdentificationFactory(config)
>>> factory.add_spectrum("run00.hdf", exposure_time=0.0)
>>> factory.add_spectrum("run10.hdf", exposure_time=10.0)
>>> result = factory.identify(candidates)
>>> quant = factory.quantify(result)
>>> records = [area.to_record() for area in quant.peak_areas]
"""

import logging
from dataclasses import replace
from typing import Callable, Iterable, List, NamedTuple, Optional

import numpy as np

from .config import IdentificationConfig
from .fragments.generator import calculate_precursor_mz, theoretical_ions
from .modifications import CandidateSpecies
from .quantitation import PeakArea, compute_peak_areas
from .results import FootprintingResult, Identification, MSMSIons, spectrum_key
from .rt.interpolation import (
    RetentionTimeDatabase,
    RetentionTimes,
    build_retention_time_database,
    select_reference,
)
from .scoring.correlation import PearsonCorrelationScoring
from .search.alignment import align_closest_dependent
from .search.filtering import PeakFilterChain, StandardPeakFilterChain
from .spectra import HDF5SpectrumFile, SpectrumFile
from .xic.extraction import MS1QuantExtractor

logger = logging.getLogger(__name__)


class SpectrumSource(NamedTuple):
    """A spectrum file of the experiment and the reader used to open it."""
    key: str
    path: Optional[str]
    exposure_time: float
    reader: SpectrumFile


class QuantitationResult(NamedTuple):
    reference: RetentionTimes
    rt_database: RetentionTimeDatabase
    extractor: MS1QuantExtractor
    peak_areas: List[PeakArea]


class IdentificationFactory:
    """Runs identification and quantitation over the registered spectra.

    Parameters
    ----------
    config : IdentificationConfig, optional
        Run settings (defaults are used when omitted)
    reader_factory : callable, optional
        Builds a :class:`SpectrumFile` for spectra registered without an
        explicit reader; defaults to :class:`HDF5SpectrumFile`
    """

    def __init__(
        self,
        config: Optional[IdentificationConfig] = None,
        reader_factory: Optional[Callable[[], SpectrumFile]] = None,
    ):
        self.config = config if config is not None else IdentificationConfig()
        self.reader_factory = reader_factory if reader_factory is not None else HDF5SpectrumFile
        self.scoring_function = PearsonCorrelationScoring()
        self.peak_filter_chain: PeakFilterChain = StandardPeakFilterChain(self.config.noise_bin_width)
        self.spectra: List[SpectrumSource] = []

    def __repr__(self):
        return f"IdentificationFactory(n_spectra={len(self.spectra)}, config={self.config!r})"

    def add_spectrum(
        self,
        path: Optional[str],
        exposure_time: float,
        reader: Optional[SpectrumFile] = None,
    ) -> 'IdentificationFactory':
        """Register a spectrum file acquired at ``exposure_time``."""
        if reader is None:
            reader = self.reader_factory()
        self.spectra.append(SpectrumSource(spectrum_key(exposure_time), path, float(exposure_time), reader))
        return self

    # -------------------------------------------------------------------------
    # Identification
    # -------------------------------------------------------------------------

    def confirm_identification(
        self,
        species: CandidateSpecies,
        charge: int,
        precursors: np.ndarray,
        reader: SpectrumFile,
        scan_number: int,
        theoretical: np.ndarray,
    ) -> Optional[Identification]:
        """Score one MS2 scan against the sorted theoretical ions.

        Returns None when the scan has no peaks left to align.
        """
        peaks = reader.scan_peaks(scan_number)
        if peaks.size == 0:
            logger.debug(f"Scan {scan_number} has no peaks")
            return None
        scan = reader.scan_properties(scan_number)

        peaks = self.peak_filter_chain.filter(peaks, precursors, self.config.ms2_error_da)
        if peaks.size == 0:
            logger.debug(f"No peaks of scan {scan_number} survived filtering")
            return None

        alignment = align_closest_dependent(peaks.mz, peaks.intensity, theoretical, self.config.ms2_error_da)
        logger.debug(
            f"{theoretical.size} theoretical peaks aligned to {alignment.count} "
            f"of {peaks.size} observed peaks"
        )
        score = self.scoring_function.score(alignment.theoretical_intensity, alignment.observed_intensity)

        return Identification(
            retention_time=scan.retention_time,
            scan_number=scan.scan_number,
            score=score.score,
            is_significant=score.is_significant,
            charge=charge,
            precursor_intensity=scan.precursor_intensity,
            observed_ions=MSMSIons(alignment.observed_mz, alignment.observed_intensity),
            theoretical_ions=MSMSIons(alignment.theoretical_mz, alignment.theoretical_intensity),
            modifications=tuple(species.sites),
        )

    def identify_species(
        self,
        species: CandidateSpecies,
        charge: int,
        reader: SpectrumFile,
        exposure_time: float,
    ) -> List[Identification]:
        """Confirmed identifications of one species at one charge."""
        offsets = species.offsets
        precursors = calculate_precursor_mz(species.sequence, charge, offsets)
        precursor = float(precursors[0])
        window = precursor * self.config.ms1_error_ppm / 1e6

        scans = reader.query_precursor(precursor - window, precursor + window, self.config.rt_from, self.config.rt_to)
        if len(scans) == 0:
            return []

        theoretical = np.sort(theoretical_ions(species.sequence, charge, offsets))
        precursors = np.sort(precursors)

        identifications = []
        for scan_number in scans:
            identification = self.confirm_identification(
                species, charge, precursors, reader, scan_number, theoretical
            )
            if identification is None:
                continue
            identification = replace(identification, precursor_mz=precursor, exposure_time=float(exposure_time))
            if identification.is_significant and identification.score >= self.config.min_score:
                identifications.append(identification)
        return identifications

    def identify(self, candidates: Iterable[CandidateSpecies]) -> FootprintingResult:
        """Search every candidate species in every registered spectrum.

        Raises
        ------
        ConfigurationError
            If the mass or retention time window is incomplete
        """
        self.config.validate()
        candidates = list(candidates)
        result = FootprintingResult()

        for source in self.spectra:
            logger.info(f"Starting process spectrum {source.path or source.key}")
            source.reader.connect(source.path)
            try:
                for species in candidates:
                    mass = species.filter_mass()
                    if mass < self.config.min_mass or mass > self.config.max_mass:
                        logger.debug(
                            f"Skipping {species} with mass {mass:.4f} outside window "
                            f"[{self.config.min_mass}, {self.config.max_mass}]"
                        )
                        continue
                    for charge in self.config.charge_states():
                        spectrum = result.protein(species.accession).peptide(species.peptide).spectrum(source.key)
                        spectrum.add_all(self.identify_species(species, charge, source.reader, source.exposure_time))
            finally:
                source.reader.disconnect()

        logger.info(f"Identified {len(result)} scans across {len(self.spectra)} spectra")
        return result

    # -------------------------------------------------------------------------
    # Quantitation
    # -------------------------------------------------------------------------

    def quantify(self, result: FootprintingResult) -> QuantitationResult:
        """Transfer retention times, extract chromatograms and integrate areas."""
        reference = select_reference(result)
        rt_database = build_retention_time_database(result, reference)
        mz_values, charges = rt_database.unique_species()
        logger.info(f"MS1 extraction of {mz_values.size} species")

        extractor = MS1QuantExtractor(
            mz_values,
            charges,
            self.config.ms1_error_ppm,
            self.config.resolution,
            self.config.rt_from,
            self.config.rt_to,
            [(source.key, source.reader, source.path) for source in self.spectra],
        ).extract()
        extractor.annotate(rt_database)

        peak_areas = compute_peak_areas(result, rt_database, extractor, self.config.integration_slack)
        return QuantitationResult(reference, rt_database, extractor, peak_areas)

    def run(self, candidates: Iterable[CandidateSpecies]):
        """Identify then quantify; returns ``(result, quantitation)``."""
        result = self.identify(candidates)
        return result, self.quantify(result)
