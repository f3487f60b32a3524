"""FootprintFast - identification and quantitation for protein footprinting.

Confirms candidate peptide species in LC-MS/MS runs by fragment-ion
correlation, transfers retention times between the spectra of an exposure
series and integrates labeled and unlabeled MS1 peak areas.

Hot loops (fragment ladders, sorted-array alignment, noise modelling,
correlation, interval-tree lookup, integration) are Numba-compiled.
"""

__version__ = "0.1.0"

# Import main submodules for convenient access
from footprintfast import fragments
from footprintfast import search
from footprintfast import scoring
from footprintfast import xic
from footprintfast import rt

from footprintfast.config import IdentificationConfig
from footprintfast.modifications import (
    Modification,
    ModificationSite,
    Peptide,
    CandidateSpecies,
)
from footprintfast.results import FootprintingResult, Identification
from footprintfast.spectra import (
    Scan,
    Peaks,
    SpectrumFile,
    InMemorySpectrumFile,
    HDF5SpectrumFile,
)
from footprintfast.identification import IdentificationFactory, QuantitationResult

__all__ = [
    "fragments",
    "search",
    "scoring",
    "xic",
    "rt",
    "IdentificationConfig",
    "Modification",
    "ModificationSite",
    "Peptide",
    "CandidateSpecies",
    "FootprintingResult",
    "Identification",
    "Scan",
    "Peaks",
    "SpectrumFile",
    "InMemorySpectrumFile",
    "HDF5SpectrumFile",
    "IdentificationFactory",
    "QuantitationResult",
]
