"""Sorted-array alignment and MS2 peak filtering.

Core algorithms:
1. Nearest-pair, dependent-nearest and range-membership alignment of
   ascending arrays
2. Median quantization and piecewise-linear noise floor clipping
3. Pluggable peak filter chains (precursor removal, noise modelling)
"""

from .alignment import (
    ArrayAlignment,
    is_sorted,
    nearest_index,
    align_closest_pairs,
    align_closest_dependent,
    in_range_pairs,
)

from .filtering import (
    median_bins,
    linear_clip,
    noise_floor_filter,
    PeakFilter,
    PrecursorIonFilter,
    NoiseModelingPeakFilter,
    PeakFilterChain,
    StandardPeakFilterChain,
)

__all__ = [
    # Alignment
    'ArrayAlignment',
    'is_sorted',
    'nearest_index',
    'align_closest_pairs',
    'align_closest_dependent',
    'in_range_pairs',
    # Filtering
    'median_bins',
    'linear_clip',
    'noise_floor_filter',
    'PeakFilter',
    'PrecursorIonFilter',
    'NoiseModelingPeakFilter',
    'PeakFilterChain',
    'StandardPeakFilterChain',
]
