"""Pytest configuration for FootprintFast tests.

Provides a synthetic two-spectrum footprinting experiment: one peptide,
searched unmodified and with a labeling oxidation, identified by MS2 scans
built from its own theoretical fragment ions, and eluting as Gaussian MS1
profiles.
"""

import numpy as np
import pytest

from footprintfast.fragments.generator import calculate_precursor_mz, theoretical_ions
from footprintfast.modifications import OXIDATION, CandidateSpecies, ModificationSite, Peptide
from footprintfast.spectra import InMemorySpectrumFile, Peaks, Scan


PEPTIDE = Peptide("PEPTMIDEK", start=10)

MS2_INTENSITY = 1000.0
CONTAMINANT_INTENSITY = 50.0
NOISE_INTENSITY = 10.0

MS1_AMPLITUDE = 1.0e6
MS1_SIGMA = 20.0


@pytest.fixture
def simple_peptide():
    """Simple peptide for basic tests."""
    return "PEPTIDE"


@pytest.fixture
def unlabeled_species():
    return CandidateSpecies("P00001", PEPTIDE, [])


@pytest.fixture
def labeled_species():
    # M at peptide position 4 (0-based), protein position 14
    return CandidateSpecies("P00001", PEPTIDE, [ModificationSite(PEPTIDE.start + 4, OXIDATION)])


def _min_distance(value, others):
    return np.min(np.abs(np.asarray(others) - value))


def make_ms2_peaks(species, charge):
    """MS2 peaks that confirm ``species``: fragment ions on a flat noise floor.

    Signal peaks sit exactly on well separated theoretical ions, contaminant
    peaks sit well away from any ion, and noise peaks every 0.5 Th set the
    median floor of every 20 Th bin.
    """
    precursors = calculate_precursor_mz(species.sequence, charge, species.offsets)
    ions = np.unique(theoretical_ions(species.sequence, charge, species.offsets))
    ions = ions[(ions > 150.0) & (ions < 1200.0)]

    signal = []
    for ion in ions:
        if _min_distance(ion, precursors) < 1.0:
            continue
        if signal and ion - signal[-1] < 1.0:
            continue
        if _min_distance(ion, ions[ions != ion]) < 1.0:
            continue
        signal.append(ion)
    signal = signal[:10]

    contaminants = []
    for mz in np.arange(160.3, 1200.0, 37.0):
        if _min_distance(mz, ions) > 1.0 and _min_distance(mz, precursors) > 1.0:
            contaminants.append(mz)
    contaminants = contaminants[:8]

    noise = np.arange(100.25, 1250.0, 0.5)
    mz = np.concatenate([signal, contaminants, noise])
    intensity = np.concatenate([
        np.full(len(signal), MS2_INTENSITY),
        np.full(len(contaminants), CONTAMINANT_INTENSITY),
        np.full(noise.size, NOISE_INTENSITY),
    ])
    order = np.argsort(mz, kind='stable')
    return Peaks(mz[order], intensity[order]), np.asarray(signal), np.asarray(contaminants)


@pytest.fixture
def ms2_peaks(unlabeled_species):
    """``(peaks, signal_mz, contaminant_mz)`` confirming the unlabeled species at charge 2."""
    return make_ms2_peaks(unlabeled_species, 2)


def _gaussian(rt, center, amplitude):
    return amplitude * np.exp(-0.5 * ((rt - center) / MS1_SIGMA) ** 2)


def make_scans(unlabeled, labeled, shift=0.0, charge=2):
    """Scans of one run of the experiment, eluting ``shift`` seconds late."""
    unlabeled_mz = float(calculate_precursor_mz(unlabeled.sequence, charge, unlabeled.offsets)[0])
    labeled_mz = float(calculate_precursor_mz(labeled.sequence, charge, labeled.offsets)[0])
    unlabeled_rt = 400.0 + shift
    labeled_rt = 450.0 + shift

    scans = []
    scan_number = 1
    for rt in np.arange(100.0, 910.0, 10.0):
        peaks = Peaks(
            np.array([300.0, unlabeled_mz, labeled_mz, 1500.0]),
            np.array([
                500.0,
                _gaussian(rt, unlabeled_rt, MS1_AMPLITUDE),
                _gaussian(rt, labeled_rt, MS1_AMPLITUDE / 2),
                500.0,
            ]),
        )
        scans.append((Scan(scan_number, float(rt), ms_level=1, centroid=True), peaks))
        scan_number += 1

    for species, rt, mz, intensity in (
        (unlabeled, unlabeled_rt, unlabeled_mz, 2.0e5),
        (labeled, labeled_rt, labeled_mz, 1.0e5),
    ):
        peaks, _, _ = make_ms2_peaks(species, charge)
        scans.append((
            Scan(scan_number, rt, ms_level=2, centroid=True, precursor_mz=mz, precursor_intensity=intensity),
            peaks,
        ))
        scan_number += 1

    return scans


@pytest.fixture
def experiment_scans(unlabeled_species, labeled_species):
    """Scans of two runs at exposure 0 and 10, the second eluting 20 s later."""
    return [
        (0.0, make_scans(unlabeled_species, labeled_species, shift=0.0)),
        (10.0, make_scans(unlabeled_species, labeled_species, shift=20.0)),
    ]


@pytest.fixture
def experiment(experiment_scans):
    """The two runs as in-memory spectrum files."""
    return [
        (exposure, InMemorySpectrumFile(scans, path=f"run{int(exposure):02d}"))
        for exposure, scans in experiment_scans
    ]


# Random seed for reproducibility
@pytest.fixture(autouse=True)
def random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
