"""Two-pointer alignment of ascending m/z arrays.

Three related algorithms match values between two ascending arrays under a
maximum absolute distance (Da):

1. Nearest-pair: mutual nearest neighbours, symmetric in its arguments
2. Dependent-nearest: theoretical → observed ion matching, ties in distance
   resolved towards the most intense observed peak
3. Range-membership: every first-array value within reach of any
   second-array value (used to strip precursor ions)

All functions verify sortedness before aligning. Unsorted input raises
:class:`~footprintfast.exceptions.UnsortedArrayError`; silently aligning
unsorted data would produce wrong matches without any symptom.

Performance targets:
- >1M aligned values/second (Numba-compiled kernels)
"""

import numpy as np
import numba
from typing import NamedTuple, Tuple

from ..constants import RANGE_MEMBERSHIP_EPSILON
from ..exceptions import UnsortedArrayError


class ArrayAlignment(NamedTuple):
    """Positional alignment of theoretical ions onto observed peaks.

    One row per observed peak. Matched rows carry theoretical intensity 1.0
    and theoretical m/z snapped to the observed m/z; unmatched rows carry
    0.0 for both, so the intensity vectors can be correlated directly.

    Attributes
    ----------
    theoretical_mz : np.ndarray
        Observed m/z for matched rows, 0.0 otherwise
    theoretical_intensity : np.ndarray
        1.0 for matched rows, 0.0 otherwise
    observed_mz : np.ndarray
        Observed m/z (all rows)
    observed_intensity : np.ndarray
        Observed intensity (all rows)
    count : int
        Number of matched rows
    max_intensity : float
        Largest observed intensity (0.0 for an empty alignment)
    """
    theoretical_mz: np.ndarray
    theoretical_intensity: np.ndarray
    observed_mz: np.ndarray
    observed_intensity: np.ndarray
    count: int
    max_intensity: float


# =============================================================================
# Precondition Checks
# =============================================================================

@numba.jit(nopython=True, cache=True)
def is_sorted(values: np.ndarray) -> bool:
    """True if ``values`` is non-decreasing."""
    for i in range(len(values) - 1):
        if values[i] > values[i + 1]:
            return False
    return True


def _checked(values, name: str) -> np.ndarray:
    values = np.ascontiguousarray(values, dtype=np.float64)
    if values.ndim != 1:
        raise ValueError(f"Argument array {name} must be one-dimensional")
    if not is_sorted(values):
        raise UnsortedArrayError(f"Argument array {name} is not sorted")
    return values


# =============================================================================
# Binary Search Helpers
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _lower_bound(values: np.ndarray, target: float) -> int:
    """First index with values[index] >= target."""
    left, right = 0, len(values)
    while left < right:
        mid = (left + right) // 2
        if values[mid] < target:
            left = mid + 1
        else:
            right = mid
    return left


@numba.jit(nopython=True, cache=True)
def nearest_index(values: np.ndarray, target: float) -> int:
    """Index of the value closest to ``target`` (ties to the lowest index).

    Parameters
    ----------
    values : np.ndarray
        Non-empty ascending array
    target : float
        Query value

    Returns
    -------
    index : int
        Lowest index among the values at minimal distance
    """
    n = len(values)
    pos = _lower_bound(values, target)
    if pos == 0:
        return 0
    if pos == n:
        return _lower_bound(values, values[n - 1])
    if values[pos] - target < target - values[pos - 1]:
        return pos
    return _lower_bound(values, values[pos - 1])


# =============================================================================
# Nearest-Pair Alignment
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _closest_pairs(x: np.ndarray, y: np.ndarray, max_distance: float):
    n = len(x)
    m = len(y)
    x_idx = np.empty(min(n, m), dtype=np.int64)
    y_idx = np.empty(min(n, m), dtype=np.int64)
    count = 0
    if n == 0 or m == 0:
        return x_idx[:0], y_idx[:0]

    for j in range(m):
        i = nearest_index(x, y[j])
        if abs(x[i] - y[j]) > max_distance:
            continue
        # y[j] must also be the best partner of x[i], otherwise a
        # neighbouring y claims it
        if nearest_index(y, x[i]) != j:
            continue
        x_idx[count] = i
        y_idx[count] = j
        count += 1

    return x_idx[:count], y_idx[:count]


def align_closest_pairs(x, y, max_distance: float) -> Tuple[np.ndarray, np.ndarray]:
    """Pair values that are each other's nearest neighbour within tolerance.

    For each y[j], the closest x[i] is found; the pair is kept when y[j] is
    in turn the closest y to x[i] and ``|x[i] - y[j]| <= max_distance``.
    Ties go to the lower index on both sides, so swapping the arguments
    swaps the outputs.

    Parameters
    ----------
    x, y : array-like
        Ascending arrays
    max_distance : float
        Maximum absolute distance

    Returns
    -------
    x_indices, y_indices : np.ndarray (int64)
        Parallel index arrays, ascending in both

    Examples
    --------
    >>> x = np.array([1.0, 2.0, 3.0])
    >>> y = np.array([1.1, 1.2, 2.9])
    >>> align_closest_pairs(x, y, 0.5)
    >>> # Returns (array([0, 2]), array([0, 2])); 1.2 loses 1.0 to 1.1
    """
    x = _checked(x, "X")
    y = _checked(y, "Y")
    return _closest_pairs(x, y, max_distance)


# =============================================================================
# Dependent-Nearest Alignment
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _closest_dependent_matches(
    x: np.ndarray,
    x_dependent: np.ndarray,
    y: np.ndarray,
    max_distance: float,
) -> np.ndarray:
    """For every x, the index of the y it was assigned to (-1 if none)."""
    n = len(x)
    m = len(y)
    matches = np.full(n, -1, dtype=np.int64)
    last_match = 0

    for j in range(m):
        best = -1
        for i in range(last_match, n):
            diff = y[j] - x[i]
            d1 = abs(diff)
            if d1 > max_distance:
                if diff > 0:
                    continue
                # x is past y[j] by more than the tolerance
                break
            if j + 1 < m:
                d_next = abs(y[j + 1] - x[i])
            else:
                d_next = np.inf
            # Candidates closer to the next y belong to the next y
            if d1 <= d_next and (best == -1 or x_dependent[i] > x_dependent[best]):
                best = i
        if best != -1:
            last_match = best + 1
            matches[best] = j

    return matches


def align_closest_dependent(x, x_dependent, y, max_distance: float) -> ArrayAlignment:
    """Align theoretical values ``y`` onto observed values ``x``.

    For every y[j], the candidates are the x[i] within ``max_distance`` that
    are not closer to y[j+1], scanning from just after the previous match.
    Among them the one with the largest dependent value (intensity) wins.

    Parameters
    ----------
    x : array-like
        Observed m/z, ascending
    x_dependent : array-like
        Observed intensity, parallel to ``x``
    y : array-like
        Theoretical m/z, ascending
    max_distance : float
        Maximum absolute distance (Da)

    Returns
    -------
    alignment : ArrayAlignment
        One row per observed value

    Examples
    --------
    >>> x = np.array([1.1, 1.2, 1.3, 1.4, 1.5, 1.6, 1.7, 1.8, 1.9])
    >>> xd = np.array([100, 100, 200, 300, 800, 500, 600, 700, 10.0])
    >>> alignment = align_closest_dependent(x, xd, [1.35, 1.6], 1.0)
    >>> alignment.theoretical_intensity
    >>> # Returns [0, 0, 0, 1, 1, 0, 0, 0, 0]
    """
    x = _checked(x, "X")
    y = _checked(y, "Y")
    x_dependent = np.ascontiguousarray(x_dependent, dtype=np.float64)
    if x_dependent.shape != x.shape:
        raise ValueError(
            f"Dependent array has {x_dependent.size} values but X has {x.size}"
        )

    matches = _closest_dependent_matches(x, x_dependent, y, max_distance)
    matched = matches >= 0

    return ArrayAlignment(
        theoretical_mz=np.where(matched, x, 0.0),
        theoretical_intensity=matched.astype(np.float64),
        observed_mz=x.copy(),
        observed_intensity=x_dependent.copy(),
        count=int(np.count_nonzero(matched)),
        max_intensity=float(x_dependent.max()) if x_dependent.size else 0.0,
    )


# =============================================================================
# Range-Membership Alignment
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _in_range_matches(x: np.ndarray, y: np.ndarray, max_distance: float) -> np.ndarray:
    n = len(x)
    matches = np.full(n, -1, dtype=np.int64)
    start = 0
    for j in range(len(y)):
        # x values left behind by y[j] are out of reach for later y
        while start < n and y[j] - x[start] > max_distance + RANGE_MEMBERSHIP_EPSILON:
            start += 1
        for i in range(start, n):
            diff = y[j] - x[i]
            d1 = abs(diff)
            if diff < 0 and d1 > max_distance + RANGE_MEMBERSHIP_EPSILON:
                break
            if d1 < max_distance or abs(d1 - max_distance) < RANGE_MEMBERSHIP_EPSILON:
                matches[i] = j
    return matches


def in_range_pairs(x, y, max_distance: float) -> Tuple[np.ndarray, np.ndarray]:
    """Indices of ``x`` within ``max_distance`` of any value of ``y``.

    Parameters
    ----------
    x, y : array-like
        Ascending arrays
    max_distance : float
        Maximum absolute distance, inclusive (1e-9 slack)

    Returns
    -------
    x_indices : np.ndarray (int64)
        Ascending indices of matched x values
    y_indices : np.ndarray (int64)
        For each matched x, the last y within range

    Examples
    --------
    >>> x = np.array([1.1, 1.2, 1.3, 1.4, 1.5, 1.6, 1.7, 1.8, 1.9])
    >>> in_range_pairs(x, [1.35, 1.6], 0.1)[0]
    >>> # Returns [2, 3, 4, 5, 6]
    """
    x = _checked(x, "X")
    y = _checked(y, "Y")
    matches = _in_range_matches(x, y, max_distance)
    x_indices = np.flatnonzero(matches >= 0)
    return x_indices, matches[x_indices]
