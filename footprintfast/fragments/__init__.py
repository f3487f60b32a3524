"""Ion mass model: precursor candidates and b/y/a fragment ladders.

All functions are pure; the fragment ladder is Numba-compiled.
"""

from .generator import (
    NO_ION,
    encode_peptide_to_ord,
    configure_residue,
    residue_mass,
    probable_water_loss,
    probable_ammonia_loss,
    isotope_offset,
    calculate_ion_mass,
    calculate_isotope_corrected_mass,
    calculate_precursor_mz,
    generate_ion_ladder,
    theoretical_ions,
    theoretical_ion_labels,
    neutral_mass_from_mz,
    ppm_error,
)

__all__ = [
    'NO_ION',
    'encode_peptide_to_ord',
    'configure_residue',
    'residue_mass',
    'probable_water_loss',
    'probable_ammonia_loss',
    'isotope_offset',
    'calculate_ion_mass',
    'calculate_isotope_corrected_mass',
    'calculate_precursor_mz',
    'generate_ion_ladder',
    'theoretical_ions',
    'theoretical_ion_labels',
    'neutral_mass_from_mz',
    'ppm_error',
]
