"""Statistical scoring of theoretical/observed ion alignments.

Key Features
------------
- Numba-accelerated Pearson correlation
- t-statistic significance test at p <= 0.001 against a fixed table
- Guarded degenerate cases (n <= 2, zero variance, |r| = 1)

Examples
--------
>>> from footprintfast.scoring import PearsonCorrelationScoring
>>> s = PearsonCorrelationScoring().score([1, 0, 1, 0], [900, 10, 800, 5])
>>> s.score, s.is_significant
"""

from .correlation import (
    Score,
    pearson_correlation,
    t_statistic,
    critical_t,
    is_significant,
    PearsonCorrelationScoring,
)

__all__ = [
    'Score',
    'pearson_correlation',
    't_statistic',
    'critical_t',
    'is_significant',
    'PearsonCorrelationScoring',
]
