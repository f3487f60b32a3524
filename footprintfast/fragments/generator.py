"""Precursor and fragment ion masses for modified peptide species.

This module computes everything the identification step needs to know about
a candidate species before any spectrum is touched: the intact ion mass, the
six precursor m/z candidates used to query MS2 scans, and the b/y/a fragment
ion ladder used for MS2 confirmation.

Every function accepts a per-residue mass-offset array aligned with the
sequence, so fixed, variable and labeling modifications are all handled the
same way.

Key optimizations:
1. Numba JIT compilation for the ion ladder
2. ord() encoding for string-to-array conversion (no string operations in Numba)
3. Pre-allocated output arrays sized Z*6*(length-1)

Ion ladder layout
-----------------
For a sequence of length n and precursor charge Z the ion array holds
``Z*6*(n-1)`` values. The first half contains, for each charge j = 1..Z and
each prefix, the triplet (b, b-H2O, a). The second half contains, for each
charge and each suffix (longest first), the triplet (y, y-H2O, y-NH3).
Neutral losses that are not chemically probable for the sequence are set to
-1.0 so the array keeps a fixed shape.

Examples
--------
>>> precursors = calculate_precursor_mz("PEPTIDEK", 2)
>>> ions = theoretical_ions("PEPTIDEK", 2)
>>> ions.shape
(84,)
>>> theoretical_ion_labels("PEPTIDEK", 1)[:3]
['1 b1', '1 b1-H2O', '1 a1']
"""

import numpy as np
import numba
from typing import List, Optional, Union

from ..constants import (
    PROTON_MASS,
    HYDROGEN_MASS,
    H2O_MASS,
    NH3_MASS,
    CO_MASS,
    AA_MASSES,
    PEPTIDE_WATER_MASS,
    PRECURSOR_WATER_LOSS,
    PRECURSOR_AMMONIA_LOSS,
    ISOTOPE_MASS_DIFFERENCE,
    ISOTOPE_STEP,
    ISOTOPE_STEP_THRESHOLDS,
    WATER_LOSS_RESIDUES,
    WATER_LOSS_N_TERMINAL,
    AMMONIA_LOSS_RESIDUES,
    MIN_RESIDUE_CODE,
    MAX_RESIDUE_CODE,
)

# Sentinel for neutral losses that are not probable
NO_ION = -1.0

ArrayLike = Union[np.ndarray, List[float]]


# =============================================================================
# Helper Functions
# =============================================================================

def encode_peptide_to_ord(peptide: str) -> np.ndarray:
    """Encode peptide string to ord() array for Numba processing.

    Parameters
    ----------
    peptide : str
        Peptide sequence (uppercase one-letter codes)

    Returns
    -------
    peptide_ord : np.ndarray (uint8)
        Array of ord() values for each residue
    """
    return np.array([ord(c) for c in peptide], dtype=np.uint8)


def _as_offsets(sequence: str, offsets: Optional[ArrayLike]) -> np.ndarray:
    if offsets is None:
        return np.zeros(len(sequence), dtype=np.float64)
    offsets = np.asarray(offsets, dtype=np.float64)
    if offsets.shape != (len(sequence),):
        raise ValueError(
            f"Offset array of length {offsets.size} does not match "
            f"sequence {sequence} of length {len(sequence)}"
        )
    return offsets


def configure_residue(symbol: str, mass: float) -> None:
    """Override or add the monoisotopic mass of a residue.

    Parameters
    ----------
    symbol : str
        Single printable ASCII character (codes 33-126)
    mass : float
        Residue mass in Da

    Notes
    -----
    Compiled functions read the residue table as a global. Numba freezes
    globals at compile time, so residue masses are passed to the compiled
    kernels as an argument and configuration changes apply to every later
    call.
    """
    if len(symbol) != 1 or not MIN_RESIDUE_CODE <= ord(symbol) <= MAX_RESIDUE_CODE:
        raise ValueError(f"Residue symbol must be one printable character, got {symbol!r}")
    AA_MASSES[ord(symbol)] = mass


def residue_mass(symbol: str) -> float:
    """Return the configured monoisotopic mass of a residue (0.0 if unknown)."""
    return float(AA_MASSES[ord(symbol)])


# =============================================================================
# Neutral Loss Rules
# =============================================================================

def probable_water_loss(sequence: str) -> bool:
    """Water loss is probable for an N-terminal E or any S/T residue."""
    if not sequence:
        return False
    return sequence[0] == WATER_LOSS_N_TERMINAL or any(
        aa in WATER_LOSS_RESIDUES for aa in sequence
    )


def probable_ammonia_loss(sequence: str) -> bool:
    """Ammonia loss is probable if any residue is R, K, Q or N."""
    return any(aa in AMMONIA_LOSS_RESIDUES for aa in sequence)


# =============================================================================
# Intact Ion Masses
# =============================================================================

@numba.jit(nopython=True, cache=True)
def isotope_offset(mass: float) -> float:
    """Isotope correction for an ion of the given mass.

    Returns a multiple of 1.002 Da that grows in steps with mass (0 below
    1800 Da, 5 steps at 7500 Da and above).
    """
    steps = 0
    for threshold in ISOTOPE_STEP_THRESHOLDS:
        if mass >= threshold:
            steps += 1
    return steps * ISOTOPE_STEP


@numba.jit(nopython=True, cache=True)
def _residue_sum(peptide_ord: np.ndarray, offsets: np.ndarray, aa_masses: np.ndarray) -> float:
    total = 0.0
    for i in range(len(peptide_ord)):
        total += aa_masses[peptide_ord[i]] + offsets[i]
    return total


def calculate_ion_mass(sequence: str, offsets: Optional[ArrayLike] = None) -> float:
    """Neutral mass of the intact peptide (residues + offsets + water).

    Parameters
    ----------
    sequence : str
        Peptide sequence
    offsets : array-like, optional
        Per-residue mass offsets (modifications). Defaults to zeros.

    Returns
    -------
    mass : float
        Monoisotopic neutral mass in Da

    Examples
    --------
    >>> mass = calculate_ion_mass("G")
    >>> # Returns ~75.032 (57.021464 + 18.0105647)
    """
    offsets = _as_offsets(sequence, offsets)
    return _residue_sum(encode_peptide_to_ord(sequence), offsets, AA_MASSES) + PEPTIDE_WATER_MASS


def calculate_isotope_corrected_mass(sequence: str, offsets: Optional[ArrayLike] = None) -> float:
    """Residue + offset mass with the mass-dependent isotope correction added.

    No terminal water is added; this is the mass used for b-ion style
    running sums over the full sequence.
    """
    offsets = _as_offsets(sequence, offsets)
    mass = _residue_sum(encode_peptide_to_ord(sequence), offsets, AA_MASSES)
    return mass + isotope_offset(mass)


def calculate_precursor_mz(
    sequence: str,
    charge: int,
    offsets: Optional[ArrayLike] = None,
) -> np.ndarray:
    """Precursor m/z candidates for a species.

    Parameters
    ----------
    sequence : str
        Peptide sequence
    charge : int
        Precursor charge. 0 returns neutral masses.
    offsets : array-like, optional
        Per-residue mass offsets

    Returns
    -------
    precursors : np.ndarray, shape (6,)
        [M, M-H2O, M-NH3, M+iso, M-H2O+iso, M-NH3+iso] as m/z at ``charge``,
        where M is the intact mass including all offsets and iso is the
        C13 spacing. The first value is the monoisotopic precursor used for
        scan queries.
    """
    offsets = _as_offsets(sequence, offsets)
    mass = calculate_ion_mass(sequence) + float(np.sum(offsets))
    neutral = np.array([
        mass,
        mass - PRECURSOR_WATER_LOSS,
        mass - PRECURSOR_AMMONIA_LOSS,
    ])
    neutral = np.concatenate([neutral, neutral + ISOTOPE_MASS_DIFFERENCE])
    if charge == 0:
        return neutral
    return (neutral + charge * HYDROGEN_MASS) / charge


# =============================================================================
# Fragment Ion Ladder (Numba-Compiled)
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _charge(mass: float, charge: int) -> float:
    return (mass + charge * PROTON_MASS) / charge


@numba.jit(nopython=True, cache=True)
def generate_ion_ladder(
    peptide_ord: np.ndarray,
    offsets: np.ndarray,
    precursor_charge: int,
    water_loss: bool,
    ammonia_loss: bool,
    aa_masses: np.ndarray,
) -> np.ndarray:
    """Generate the b/b-H2O/a and y/y-H2O/y-NH3 ladder (Numba-compiled).

    Parameters
    ----------
    peptide_ord : np.ndarray (uint8)
        Peptide sequence as ord() values
    offsets : np.ndarray (float64)
        Per-residue mass offsets, same length as the sequence
    precursor_charge : int
        Fragments are generated for charges 1..precursor_charge
    water_loss, ammonia_loss : bool
        Whether the neutral losses are probable for the sequence
    aa_masses : np.ndarray
        ord()-indexed residue mass table

    Returns
    -------
    ions : np.ndarray (float64), shape (precursor_charge*6*(n-1),)
        Fragment m/z values in ladder order, -1.0 where a loss is not probable

    Notes
    -----
    b and a ions carry the isotope correction of their running mass;
    y ions do not.
    """
    n = len(peptide_ord)
    n_positions = n - 1
    if n_positions <= 0 or precursor_charge <= 0:
        return np.empty(0, dtype=np.float64)

    ions = np.empty(precursor_charge * 6 * n_positions, dtype=np.float64)
    idx = 0

    # N-terminal block
    for z in range(1, precursor_charge + 1):
        running = 0.0
        for i in range(n_positions):
            running += aa_masses[peptide_ord[i]] + offsets[i]
            ion = running + isotope_offset(running)
            ions[idx] = _charge(ion, z)
            if water_loss:
                ions[idx + 1] = _charge(ion - H2O_MASS, z)
            else:
                ions[idx + 1] = NO_ION
            ions[idx + 2] = _charge(ion - CO_MASS, z)
            idx += 3

    # C-terminal block
    for z in range(1, precursor_charge + 1):
        running = 0.0
        for i in range(n - 1, 0, -1):
            running += aa_masses[peptide_ord[i]] + offsets[i]
            ion = running + H2O_MASS
            ions[idx] = _charge(ion, z)
            if water_loss:
                ions[idx + 1] = _charge(ion - H2O_MASS, z)
            else:
                ions[idx + 1] = NO_ION
            if ammonia_loss:
                ions[idx + 2] = _charge(ion - NH3_MASS, z)
            else:
                ions[idx + 2] = NO_ION
            idx += 3

    return ions


def theoretical_ions(
    sequence: str,
    charge: int,
    offsets: Optional[ArrayLike] = None,
) -> np.ndarray:
    """Theoretical fragment ions for a species (unsorted ladder order).

    Parameters
    ----------
    sequence : str
        Peptide sequence
    charge : int
        Precursor charge; fragments are generated at charges 1..charge
    offsets : array-like, optional
        Per-residue mass offsets

    Returns
    -------
    ions : np.ndarray (float64)
        ``charge*6*(len(sequence)-1)`` m/z values, see module docstring.
        Callers that align against spectra must sort the result.
    """
    offsets = _as_offsets(sequence, offsets)
    return generate_ion_ladder(
        encode_peptide_to_ord(sequence),
        offsets,
        charge,
        probable_water_loss(sequence),
        probable_ammonia_loss(sequence),
        AA_MASSES,
    )


def theoretical_ion_labels(sequence: str, charge: int) -> List[str]:
    """Human readable labels parallel to :func:`theoretical_ions`.

    Labels are ``"<charge> <ion><index>"``; improbable losses are labelled
    ``"---"``.
    """
    n = len(sequence)
    water = probable_water_loss(sequence)
    ammonia = probable_ammonia_loss(sequence)
    labels = []
    for z in range(1, charge + 1):
        for i in range(n - 1):
            labels.append(f"{z} b{i + 1}")
            labels.append(f"{z} b{i + 1}-H2O" if water else "---")
            labels.append(f"{z} a{i + 1}")
    for z in range(1, charge + 1):
        for i in range(n - 1, 0, -1):
            labels.append(f"{z} y{n - i}")
            labels.append(f"{z} y{n - i}-H2O" if water else "---")
            labels.append(f"{z} y{n - i}-NH3" if ammonia else "---")
    return labels


def neutral_mass_from_mz(mz: float, charge: int, charge_carrier: float = HYDROGEN_MASS) -> float:
    """Convert an m/z value back to neutral mass: ``mz*z - z*carrier``."""
    return mz * charge - charge * charge_carrier


def ppm_error(observed: float, theoretical: float) -> float:
    """Relative mass error in parts per million."""
    return (observed - theoretical) / theoretical * 1e6
