"""Pearson correlation scoring with a t-test significance check.

An identification is scored by correlating the aligned theoretical ion
vector (1.0 where a theoretical ion matched an observed peak, 0.0
elsewhere) with the observed intensities. The correlation is converted to a
t-statistic and compared against the two-sided critical value at
p <= 0.001, linearly interpolated from a fixed table.

Degenerate cases never raise:
- zero variance in either vector → r = 0.0
- n <= 2 → not significant
- r = ±1 → significant (t = ±inf)

Examples
--------
>>> scorer = PearsonCorrelationScoring()
>>> s = scorer.score(alignment.theoretical_intensity, alignment.observed_intensity)
>>> if s.is_significant and s.score >= 0.2:
...     keep(s)
"""

import numpy as np
from numba import njit
from typing import NamedTuple

from ..constants import CRITICAL_T_DF, CRITICAL_T_VALUES, PERFECT_CORRELATION_EPSILON


class Score(NamedTuple):
    """Correlation score and significance flag."""
    score: float
    is_significant: bool


@njit(cache=True)
def _pearson(x: np.ndarray, y: np.ndarray) -> float:
    n = len(x)
    if n == 0:
        return 0.0
    mean_x = 0.0
    mean_y = 0.0
    for i in range(n):
        mean_x += x[i]
        mean_y += y[i]
    mean_x /= n
    mean_y /= n

    sxy = 0.0
    sxx = 0.0
    syy = 0.0
    for i in range(n):
        dx = x[i] - mean_x
        dy = y[i] - mean_y
        sxy += dx * dy
        sxx += dx * dx
        syy += dy * dy

    if sxx == 0.0 or syy == 0.0:
        return 0.0
    r = sxy / (np.sqrt(sxx) * np.sqrt(syy))
    # Rounding leaves perfect correlation marginally off or past 1
    if r >= 1.0 - PERFECT_CORRELATION_EPSILON:
        return 1.0
    if r <= -1.0 + PERFECT_CORRELATION_EPSILON:
        return -1.0
    return r


def pearson_correlation(x, y) -> float:
    """Pearson's r of two equal-length vectors (0.0 for zero variance)."""
    x = np.ascontiguousarray(x, dtype=np.float64)
    y = np.ascontiguousarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise ValueError(f"Vectors differ in length: {x.size} != {y.size}")
    return float(_pearson(x, y))


@njit(cache=True)
def t_statistic(r: float, n: int) -> float:
    """t = r*sqrt(n-2)/sqrt(1-r^2); +inf for r = 1 and -inf for r = -1."""
    if r >= 1.0:
        return np.inf
    if r <= -1.0:
        return -np.inf
    return r * np.sqrt(n - 2.0) / np.sqrt(1.0 - r * r)


@njit(cache=True)
def critical_t(df: float) -> float:
    """Critical t at p <= 0.001 by linear interpolation of the table.

    Degrees of freedom outside the table are clamped to its ends.
    """
    # Beyond the last tabulated df the last critical value is used, not rejected
    if df <= CRITICAL_T_DF[0]:
        return CRITICAL_T_VALUES[0]
    for k in range(len(CRITICAL_T_DF) - 1):
        df1 = CRITICAL_T_DF[k]
        df2 = CRITICAL_T_DF[k + 1]
        if df1 <= df and df <= df2:
            t1 = CRITICAL_T_VALUES[k]
            t2 = CRITICAL_T_VALUES[k + 1]
            return t1 + (t2 - t1) / (df2 - df1) * (df - df1)
    return CRITICAL_T_VALUES[len(CRITICAL_T_VALUES) - 1]


@njit(cache=True)
def is_significant(r: float, n: int) -> bool:
    """Significance of a correlation of ``n`` pairs.

    The table is indexed with the number of pairs rather than n - 2
    degrees of freedom, which makes the test slightly more permissive.
    Perfect correlation of either sign is significant.
    """
    if n <= 2:
        return False
    if r >= 1.0 or r <= -1.0:
        return True
    return t_statistic(r, n) > critical_t(float(n))


class PearsonCorrelationScoring:
    """Scoring function: Pearson correlation + t-test at p <= 0.001."""

    def score(self, theoretical, observed) -> Score:
        """Score aligned theoretical and observed intensity vectors.

        Parameters
        ----------
        theoretical, observed : array-like
            Equal-length intensity vectors

        Returns
        -------
        score : Score
            ``(r, significant)``
        """
        theoretical = np.ascontiguousarray(theoretical, dtype=np.float64)
        observed = np.ascontiguousarray(observed, dtype=np.float64)
        r = pearson_correlation(theoretical, observed)
        return Score(r, bool(is_significant(r, theoretical.size)))

    def __repr__(self):
        return "PearsonCorrelationScoring()"
