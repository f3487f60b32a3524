"""MS1 chromatogram extraction.

Key Features
------------
- Interval tree classifying peaks against many overlapping m/z windows
- Parabolic apex fitting for profile scans, best-centroid picking otherwise
- One sample per target and scan, trapezoid integration over RT intervals

Examples
--------
>>> from footprintfast.xic import MS1QuantExtractor
>>> extractor = MS1QuantExtractor(mz, z, 10, 60000, 600.0, 1800.0, spectra).extract()
>>> area = extractor.chromatogram("0.0000", mz[0]).integrate(900.0, 1100.0)
"""

from .range_index import (
    NO_NODE,
    IntervalNode,
    RangeIndex,
)

from .extraction import (
    fit_quadratic,
    parabola_vertex,
    fit_profile_peak,
    fit_centroid_peak,
    mz_key,
    Chromatogram,
    MS1QuantExtractor,
)

__all__ = [
    # Interval tree
    "NO_NODE",
    "IntervalNode",
    "RangeIndex",
    # Extraction
    "fit_quadratic",
    "parabola_vertex",
    "fit_profile_peak",
    "fit_centroid_peak",
    "mz_key",
    "Chromatogram",
    "MS1QuantExtractor",
]
