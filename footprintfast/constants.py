"""Physical constants, residue masses and statistical tables.

This module holds every constant table used by FootprintFast. Tables are
module-level and built once at import time; nothing here is mutated at run
time except through :func:`footprintfast.fragments.configure_residue`, which
writes into the ord()-indexed residue array.

Constants are provided in both dictionary and ord()-indexed array formats
for compatibility with both standard Python and Numba JIT-compiled code.

Key Features
------------
- Atomic masses used to derive water, ammonia and carbon monoxide losses
- Monoisotopic residue masses, including selenocysteine (U)
- Isotope spacing used for precursor and fragment isotope corrections
- Critical t-values for the correlation significance test (p <= 0.001)

Notes
-----
Two "hydrogen" masses appear on purpose. Fragment ions are charged with the
proton mass, while precursor m/z values and neutral-mass keys use the
hydrogen atom mass. Both conventions are kept so that keys computed for the
result hierarchy agree with the ones computed for MS1 extraction.
"""

import numpy as np

# =============================================================================
# Atomic Masses (monoisotopic)
# =============================================================================

PROTON_MASS = 1.007276466812  # Da
HYDROGEN_MASS = 1.007825  # Da (H atom, used for precursor m/z and mass keys)
CARBON_MASS = 12.0
NITROGEN_MASS = 14.003074
OXYGEN_MASS = 15.994915

# Calculated: 2*1.007825 + 15.994915
H2O_MASS = 2 * HYDROGEN_MASS + OXYGEN_MASS

# Calculated: 3*1.007825 + 14.003074
NH3_MASS = 3 * HYDROGEN_MASS + NITROGEN_MASS

# Calculated: 12.0 + 15.994915 (b-ion to a-ion)
CO_MASS = CARBON_MASS + OXYGEN_MASS

# =============================================================================
# Precursor Ion Offsets
# =============================================================================

# Water added to the residue sum to obtain the intact peptide mass
PEPTIDE_WATER_MASS = 18.01056470

# Neutral losses applied to precursor candidates
PRECURSOR_WATER_LOSS = 18.0106
PRECURSOR_AMMONIA_LOSS = 17.0265

# C13 - C12, spacing between first and second precursor isotope
ISOTOPE_MASS_DIFFERENCE = 1.003355  # Da

# =============================================================================
# Isotope Offset Step Function
# =============================================================================

# Averagine-like correction: heavier ions are more likely observed at a
# higher isotope. Mass thresholds (Da) and the unit step (Da).
ISOTOPE_STEP = 1.002
ISOTOPE_STEP_THRESHOLDS = np.array([1800.0, 3300.0, 5000.0, 6500.0, 7500.0])

# =============================================================================
# Amino Acid Monoisotopic Masses (Da)
# =============================================================================

AA_MASSES_DICT = {
    'A': 71.037114,   # Alanine
    'R': 156.101111,  # Arginine
    'N': 114.042927,  # Asparagine
    'D': 115.026943,  # Aspartic acid
    'C': 103.009185,  # Cysteine (unmodified)
    'E': 129.042593,  # Glutamic acid
    'Q': 128.058578,  # Glutamine
    'G': 57.021464,   # Glycine
    'H': 137.058912,  # Histidine
    'I': 113.084064,  # Isoleucine
    'L': 113.084064,  # Leucine
    'K': 128.094963,  # Lysine
    'M': 131.040485,  # Methionine
    'F': 147.068414,  # Phenylalanine
    'P': 97.052764,   # Proline
    'S': 87.032028,   # Serine
    'T': 101.047679,  # Threonine
    'U': 150.95363,   # Selenocysteine
    'W': 186.079313,  # Tryptophan
    'Y': 163.06332,   # Tyrosine
    'V': 99.068414,   # Valine
}

# Residues that make neutral losses probable
WATER_LOSS_RESIDUES = frozenset('ST')
WATER_LOSS_N_TERMINAL = 'E'
AMMONIA_LOSS_RESIDUES = frozenset('RKQN')

# Custom residues may be configured anywhere in the printable ASCII range
MIN_RESIDUE_CODE = 33
MAX_RESIDUE_CODE = 126

# =============================================================================
# ord()-Indexed Arrays for Numba
# =============================================================================

# Access via: AA_MASSES[ord('A')] → 71.037114
# Unknown residues have mass 0.0
AA_MASSES = np.zeros(256, dtype=np.float64)
for aa, mass in AA_MASSES_DICT.items():
    AA_MASSES[ord(aa)] = mass

# =============================================================================
# Critical t-values, two-sided, p <= 0.001
# =============================================================================

# Degrees of freedom and the matching critical t. The last row stands in
# for infinity.
CRITICAL_T_DF = np.array([
    1, 2, 3, 4, 5, 6, 7, 8, 9, 10,
    11, 12, 13, 14, 15, 16, 17, 18, 19, 20,
    21, 22, 23, 24, 25, 26, 27, 28, 29, 30,
    40, 50, 60, 80, 120, 1000000,
], dtype=np.float64)

CRITICAL_T_VALUES = np.array([
    636.6, 31.6, 12.92, 8.61, 6.869, 5.959, 5.408, 5.041, 4.781, 4.587,
    4.437, 4.318, 4.221, 4.140, 4.073, 4.015, 3.965, 3.922, 3.883, 3.850,
    3.819, 3.792, 3.767, 3.745, 3.725, 3.707, 3.690, 3.674, 3.659, 3.646,
    3.551, 3.496, 3.460, 3.416, 3.373, 3.291,
], dtype=np.float64)

# =============================================================================
# Default Tolerance Settings
# =============================================================================

DEFAULT_MS1_TOLERANCE_PPM = 10
DEFAULT_MS2_TOLERANCE_DA = 0.25
DEFAULT_NOISE_BIN_WIDTH = 20.0
DEFAULT_RESOLUTION = 60000.0

# Noise floor comparison tolerance used by the linear clipping filter
NOISE_FLOOR_EPSILON = 1e-4

# Slack when testing |x - y| <= max_distance in range-membership alignment
RANGE_MEMBERSHIP_EPSILON = 1e-9

# |r| within this distance of 1 is reported as perfect correlation
PERFECT_CORRELATION_EPSILON = 1e-12
