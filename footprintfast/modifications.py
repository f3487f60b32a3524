"""Modifications, peptides and candidate species.

Candidate species arrive from an external digestion/enumeration step as a
protein accession, a peptide located in the protein, and the modification
sites applied to it. This module derives what the search needs from them:
the per-residue mass offset vector, the total mass offset and the labeled
flag.

Positions of modification sites are 0-based protein positions; the offset
vector is indexed by ``site.position - peptide.start``.

Examples
--------
>>> peptide = Peptide("LSMCK", start=40)
>>> sites = parse_modification_sites("Oxidation@M;Carbamidomethyl@C", "3;4", peptide)
>>> species = CandidateSpecies("P02769", peptide, sites)
>>> species.labeled
True
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .fragments.generator import calculate_ion_mass


# =============================================================================
# Modification Definitions
# =============================================================================

@dataclass(frozen=True)
class Modification:
    """A residue mass shift.

    Fixed modifications are applied to every matching residue; labeling
    modifications are the footprinting probe and split identifications into
    labeled and unlabeled buckets. A modification cannot be both.
    """

    name: str
    residue: str
    mass_offset: float
    fixed: bool = False
    labeling: bool = False

    def __post_init__(self):
        if self.fixed and self.labeling:
            raise ValueError(
                f"Modification {self.name} {self.residue}+{self.mass_offset:.4f} "
                f"cannot be both labeling and fixed"
            )


CARBAMIDOMETHYL = Modification("Carbamidomethyl", "C", 57.021464, fixed=True)
OXIDATION = Modification("Oxidation", "M", 15.994915, labeling=True)

DEFAULT_MODIFICATIONS: Dict[str, Modification] = {
    CARBAMIDOMETHYL.name: CARBAMIDOMETHYL,
    OXIDATION.name: OXIDATION,
}


@dataclass(frozen=True)
class ModificationSite:
    """A modification applied at a 0-based protein position."""

    position: int
    modification: Modification

    def __str__(self):
        return f"{self.modification.residue}{self.position}+{self.modification.mass_offset:.2f}"


@dataclass(frozen=True)
class Peptide:
    """Peptide located in its protein (0-based, inclusive ``end``)."""

    sequence: str
    start: int = 0

    @property
    def length(self) -> int:
        return len(self.sequence)

    @property
    def end(self) -> int:
        return self.start + len(self.sequence) - 1


def parse_modification_sites(
    mods: str,
    mod_sites: str,
    peptide: Peptide,
    modifications: Optional[Dict[str, Modification]] = None,
) -> List[ModificationSite]:
    """Parse ``"Name@Residue;..."`` with 1-based peptide positions ``"3;7"``.

    Parameters
    ----------
    mods : str
        Modification names, e.g. ``"Carbamidomethyl@C;Oxidation@M"``
    mod_sites : str
        1-based positions within the peptide, e.g. ``"3;7"``
    peptide : Peptide
        Peptide the positions refer to
    modifications : dict, optional
        Known modifications by name (defaults to :data:`DEFAULT_MODIFICATIONS`)

    Returns
    -------
    sites : list of ModificationSite
        Sites with protein positions

    Raises
    ------
    ValueError
        For unknown modification names, positions outside the peptide, or a
        residue that does not match the modification
    """
    if not mods:
        return []
    if modifications is None:
        modifications = DEFAULT_MODIFICATIONS

    sites = []
    for mod, site in zip(mods.split(";"), str(mod_sites).split(";")):
        name = mod.strip().split("@")[0]
        if name not in modifications:
            raise ValueError(f"Unknown modification: {name}")
        modification = modifications[name]
        position = int(site.strip()) - 1
        if not 0 <= position < peptide.length:
            raise ValueError(f"Site {position + 1} outside peptide {peptide.sequence}")
        if peptide.sequence[position] != modification.residue:
            raise ValueError(
                f"{name} modifies {modification.residue}, found "
                f"{peptide.sequence[position]} at site {position + 1}"
            )
        sites.append(ModificationSite(peptide.start + position, modification))
    return sites


# =============================================================================
# Candidate Species
# =============================================================================

@dataclass
class CandidateSpecies:
    """A peptide of a protein with a fixed set of modification sites."""

    accession: str
    peptide: Peptide
    sites: List[ModificationSite] = field(default_factory=list)

    @property
    def sequence(self) -> str:
        return self.peptide.sequence

    @property
    def offsets(self) -> np.ndarray:
        """Per-residue mass offsets; a later site on the same residue wins."""
        offsets = np.zeros(self.peptide.length, dtype=np.float64)
        for site in self.sites:
            index = site.position - self.peptide.start
            if not 0 <= index < self.peptide.length:
                raise ValueError(
                    f"Modification site {site} lies outside peptide "
                    f"{self.peptide.sequence} [{self.peptide.start}, {self.peptide.end}]"
                )
            offsets[index] = site.modification.mass_offset
        return offsets

    @property
    def mass_offset(self) -> float:
        return float(sum(site.modification.mass_offset for site in self.sites))

    @property
    def fixed_mass_offset(self) -> float:
        return float(sum(s.modification.mass_offset for s in self.sites if s.modification.fixed))

    @property
    def labeled(self) -> bool:
        return any(site.modification.labeling for site in self.sites)

    def filter_mass(self) -> float:
        """Neutral mass with fixed modifications only, used for mass windows."""
        return calculate_ion_mass(self.sequence) + self.fixed_mass_offset

    def __str__(self):
        sites = ", ".join(str(site) for site in self.sites)
        return f"{self.accession}:{self.sequence}[{sites}]"
