"""Tests for MS1 chromatogram extraction.

Tests quadratic apex fitting, centroid picking, chromatogram integration and
reporting, and the extractor over in-memory spectrum files.
"""

import numpy as np
import pytest

from footprintfast.exceptions import FootprintError, QuadraticFitError
from footprintfast.rt.interpolation import RetentionTimeDatabase
from footprintfast.spectra import InMemorySpectrumFile, Peaks, Scan
from footprintfast.xic.extraction import (
    Chromatogram,
    MS1QuantExtractor,
    fit_centroid_peak,
    fit_profile_peak,
    fit_quadratic,
    mz_key,
    parabola_vertex,
)


def ms1_run(peaks_by_rt, centroid=True):
    """In-memory run with one MS1 scan per (rt, mz, intensity) entry."""
    scans = []
    for number, (rt, mz, intensity) in enumerate(peaks_by_rt, start=1):
        scans.append((
            Scan(number, rt, ms_level=1, centroid=centroid),
            Peaks(np.asarray(mz, dtype=np.float64), np.asarray(intensity, dtype=np.float64)),
        ))
    return InMemorySpectrumFile(scans)


class TestQuadraticFit:
    """Test least-squares parabola fitting."""

    def test_exact_polynomial(self):
        x = np.array([0.0, 1.0, 2.0, 3.0])
        y = 1.0 + 2.0 * x + 3.0 * x ** 2
        a, b, c = fit_quadratic(x, y)
        assert a == pytest.approx(1.0)
        assert b == pytest.approx(2.0)
        assert c == pytest.approx(3.0)

    @pytest.mark.parametrize("x", [[1.0, 1.0, 1.0], [0.0, 0.0, 1.0]])
    def test_singular_system(self, x):
        """Fewer than three distinct x values cannot be fitted."""
        with pytest.raises(QuadraticFitError, match="Singular"):
            fit_quadratic(x, [1.0, 2.0, 3.0])

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            fit_quadratic([1.0, 2.0], [1.0])

    def test_vertex(self):
        center, height = parabola_vertex([-1.0, 0.0, 1.0], [1.0, 0.0, 1.0])
        assert center == pytest.approx(0.0, abs=1e-9)
        assert height == pytest.approx(0.0, abs=1e-9)

    def test_vertex_far_from_origin(self):
        """Centring keeps the fit stable for m/z-sized values."""
        x = np.array([722.320, 722.325, 722.330])
        y = 1000.0 - 4.0e6 * (x - 722.326) ** 2
        center, height = parabola_vertex(x, y)
        assert center == pytest.approx(722.326, abs=1e-6)
        assert height == pytest.approx(1000.0, rel=1e-6)

    def test_vertex_without_spread(self):
        with pytest.raises(QuadraticFitError, match="no spread"):
            parabola_vertex([2.0, 2.0, 2.0], [1.0, 2.0, 1.0])

    def test_singular_fit_is_a_footprint_error(self):
        with pytest.raises(FootprintError):
            fit_quadratic([1.0, 1.0, 1.0], [1.0, 2.0, 3.0])


class TestPeakConfirmation:
    """Test profile apex and centroid selection."""

    def test_profile_apex(self):
        mz = np.array([499.99, 500.0, 500.01])
        intensity = np.array([900.0, 1000.0, 900.0])
        assert fit_profile_peak(mz, intensity, 1, 500.0, 2, 10.0) == pytest.approx(1000.0, rel=1e-6)

    def test_profile_apex_off_target(self):
        """An apex 200 ppm away from the target is rejected."""
        mz = np.array([499.99, 500.0, 500.01])
        intensity = np.array([900.0, 1000.0, 900.0])
        assert fit_profile_peak(mz, intensity, 1, 500.1, 2, 10.0) == 0.0

    def test_profile_window_without_spread(self):
        """Three profile points at one m/z are malformed input."""
        mz = np.array([500.0, 500.0, 500.0])
        intensity = np.array([900.0, 1000.0, 900.0])
        with pytest.raises(QuadraticFitError):
            fit_profile_peak(mz, intensity, 1, 500.0, 2, 10.0)

    def test_centroid_most_intense_within_accuracy(self):
        mz = np.array([499.999, 500.0, 500.002])
        intensity = np.array([10.0, 30.0, 50.0])
        assert fit_centroid_peak(mz, intensity, 500.0, 2, 10.0) == 50.0
        assert fit_centroid_peak(mz, intensity, 500.0, 2, 1.0) == 30.0

    def test_centroid_nothing_within_accuracy(self):
        assert fit_centroid_peak(np.array([500.05]), np.array([10.0]), 500.0, 2, 10.0) == 0.0


class TestChromatogram:
    """Test chromatogram integration and records."""

    def test_integrate_rising_edge(self):
        chromatogram = Chromatogram("500.0000")
        chromatogram.add(0.0, 0.0)
        chromatogram.add(10.0, 20.0)
        assert chromatogram.integrate(0.0, 10.0) == pytest.approx(100.0)

    def test_integrate_triangle(self):
        """Falling edges contribute a negative triangle over a rectangle."""
        chromatogram = Chromatogram("500.0000")
        for rt, intensity in [(0.0, 0.0), (10.0, 20.0), (20.0, 0.0)]:
            chromatogram.add(rt, intensity)
        assert chromatogram.integrate(0.0, 20.0) == pytest.approx(200.0)
        assert chromatogram.integrate(0.0, 15.0) == pytest.approx(100.0)
        assert chromatogram.integrate(5.0, 20.0) == pytest.approx(100.0)

    def test_integrate_needs_two_samples(self):
        chromatogram = Chromatogram("500.0000")
        assert chromatogram.integrate(0.0, 10.0) == 0.0
        chromatogram.add(5.0, 100.0)
        assert chromatogram.integrate(0.0, 10.0) == 0.0

    def test_max_intensity(self):
        chromatogram = Chromatogram("500.0000", charge=2)
        for rt, intensity in [(0.0, 5.0), (1.0, 50.0), (2.0, 7.0)]:
            chromatogram.add(rt, intensity)
        assert chromatogram.max_intensity == 50.0
        assert len(chromatogram) == 3
        np.testing.assert_array_equal(chromatogram.retention_times, [0.0, 1.0, 2.0])

    def test_record_collapses_zero_runs(self):
        """Inner zeros with zero neighbours are dropped; the ends are kept."""
        chromatogram = Chromatogram("500.0000")
        for i, intensity in enumerate([0, 0, 0, 5.7, 0, 0, 0]):
            chromatogram.add(10.0 * i, intensity)

        record = chromatogram.to_record()
        assert record == {
            "key": "500.0000",
            "maxInt": 5,
            "int": [0, 0, 5, 0, 0],
            "rt": [0, 20, 30, 40, 60],
        }

    def test_sort_key(self):
        chromatogram = Chromatogram("500.0000", charge=3, mass_offset=15, labeling=True)
        assert chromatogram.sort_key() == (3, True, 15)

    def test_mz_key(self):
        assert mz_key(500.0) == "500.0000"
        assert mz_key(722.3251) == "722.3251"


class TestMS1QuantExtractor:
    """Test extraction over in-memory runs."""

    def test_centroid_extraction(self):
        run = ms1_run([
            (10.0, [500.0, 550.0, 600.001], [100.0, 999.0, 10.0]),
            (20.0, [500.001, 600.0], [300.0, 20.0]),
            (30.0, [550.0], [999.0]),
        ])
        extractor = MS1QuantExtractor(
            [500.0, 600.0], [2, 2], 10.0, 60000.0, 0.0, 100.0, [("0.0000", run, None)]
        ).extract()

        first = extractor.chromatogram("0.0000", 500.0)
        np.testing.assert_array_equal(first.retention_times, [10.0, 20.0, 30.0])
        np.testing.assert_array_equal(first.intensities, [100.0, 300.0, 0.0])
        second = extractor.chromatogram("0.0000", "600.0000")
        np.testing.assert_array_equal(second.intensities, [10.0, 20.0, 0.0])
        assert extractor.max_intensity[("500.0000", "0.0000")] == 300.0

    def test_profile_extraction(self):
        """Profile scans are reduced to the fitted apex height."""
        run = ms1_run([
            (10.0, [499.995, 500.0, 500.005], [500.0, 1000.0, 500.0]),
            (20.0, [499.995, 500.0, 500.005], [1000.0, 500.0, 100.0]),
            (30.0, [500.0, 500.005], [1000.0, 500.0]),
        ], centroid=False)
        extractor = MS1QuantExtractor(
            [500.0], [2], 10.0, 60000.0, 0.0, 100.0, [("0.0000", run, None)]
        ).extract()

        intensities = extractor.chromatogram("0.0000", 500.0).intensities
        assert intensities[0] == pytest.approx(1000.0, rel=1e-6)
        # Maximum at the window edge, and too few points
        assert intensities[1] == 0.0
        assert intensities[2] == 0.0

    def test_retention_time_window(self):
        run = ms1_run([(rt, [500.0], [100.0]) for rt in (10.0, 20.0, 30.0, 40.0)])
        extractor = MS1QuantExtractor(
            [500.0], [2], 10.0, 60000.0, 15.0, 35.0, [("0.0000", run, None)]
        ).extract()
        np.testing.assert_array_equal(extractor.chromatogram("0.0000", 500.0).retention_times, [20.0, 30.0])

    def test_every_spectrum_is_extracted(self):
        runs = [
            ("0.0000", ms1_run([(10.0, [500.0], [1.0]), (20.0, [500.0], [2.0])]), None),
            ("10.0000", ms1_run([(10.0, [500.0], [3.0])]), None),
        ]
        extractor = MS1QuantExtractor([500.0], [2], 10.0, 60000.0, 0.0, 100.0, runs).extract()
        assert len(extractor.chromatogram("0.0000", 500.0)) == 2
        assert len(extractor.chromatogram("10.0000", 500.0)) == 1
        assert extractor.max_intensity[("500.0000", "10.0000")] == 3.0

    def test_duplicate_targets_share_one_chromatogram(self):
        run = ms1_run([(10.0, [500.0], [1.0]), (20.0, [500.0], [2.0])])
        extractor = MS1QuantExtractor(
            [500.0, 500.0], [2, 2], 10.0, 60000.0, 0.0, 100.0, [("0.0000", run, None)]
        ).extract()
        assert len(extractor.index) == 1
        assert len(extractor.chromatogram("0.0000", 500.0)) == 2

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            MS1QuantExtractor([500.0, 600.0], [2], 10.0, 60000.0, 0.0, 100.0, [])

    def test_annotate(self):
        run = ms1_run([(10.0, [500.0], [1.0])])
        extractor = MS1QuantExtractor(
            [500.0], [2], 10.0, 60000.0, 0.0, 100.0, [("0.0000", run, None)]
        ).extract()

        rt_database = RetentionTimeDatabase()
        rt_database.add_retention_time("PEPTMIDEK", "0.0000", "500.0000", [], True, 2, 15)
        extractor.annotate(rt_database)

        chromatogram = extractor.chromatogram("0.0000", 500.0)
        assert chromatogram.labeling
        assert chromatogram.mass_offset == 15
        assert chromatogram.charge == 2
