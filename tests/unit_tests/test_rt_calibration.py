"""Tests for cross-spectrum retention time interpolation.

Covers reference species selection, landmark retention times, transfer of
identifications into every spectrum, and integration interval merging.
"""

import numpy as np
import pytest

from footprintfast.exceptions import MassOffsetConflictError, RetentionTimeLookupError
from footprintfast.modifications import OXIDATION, Modification, ModificationSite, Peptide
from footprintfast.results import FootprintingResult, Identification
from footprintfast.rt.interpolation import (
    ComparableRetentionTime,
    Interval,
    RetentionTimeDatabase,
    RetentionTimes,
    build_retention_time_database,
    merge_intervals,
    select_reference,
    widen_and_merge,
)

OXIDIZED_M = (ModificationSite(14, OXIDATION),)


def identification(rt, exposure, intensity=1.0e5, precursor_mz=500.0, charge=2, modifications=()):
    return Identification(
        retention_time=rt,
        scan_number=int(rt),
        score=0.9,
        is_significant=True,
        charge=charge,
        precursor_mz=precursor_mz,
        precursor_intensity=intensity,
        modifications=tuple(modifications),
        exposure_time=exposure,
    )


def add(result, sequence, *identifications, accession="P00001"):
    peptide = result.protein(accession).peptide(Peptide(sequence, start=10))
    for ident in identifications:
        peptide.spectrum(ident.spectrum_key).add(ident)


@pytest.fixture
def footprinting_result():
    """One peptide, unlabeled in both spectra and labeled in the first."""
    result = FootprintingResult()
    add(
        result, "PEPTMIDEK",
        identification(400.0, 0.0),
        identification(420.0, 10.0),
        identification(450.0, 0.0, intensity=5.0e4, precursor_mz=508.0, modifications=OXIDIZED_M),
    )
    return result


class TestWidenAndMerge:
    """Test integration interval construction."""

    def test_separate_and_merged(self):
        intervals = widen_and_merge([300.0, 600.0, 500.0], 50.0)
        assert intervals == [Interval(250.0, 350.0), Interval(450.0, 650.0)]

    def test_everything_merges(self):
        assert widen_and_merge([300.0, 600.0, 500.0], 100.0) == [Interval(200.0, 700.0)]

    def test_touching_windows_merge(self):
        assert widen_and_merge([100.0, 200.0], 50.0) == [Interval(50.0, 250.0)]

    def test_accepts_comparable_retention_times(self):
        rts = [ComparableRetentionTime(300.0, 1.0), ComparableRetentionTime(100.0, 2.0)]
        assert widen_and_merge(rts, 10.0) == [Interval(90.0, 110.0), Interval(290.0, 310.0)]

    def test_empty(self):
        assert widen_and_merge([], 10.0) == []

    def test_merge_is_idempotent(self):
        intervals = widen_and_merge([10.0, 100.0, 120.0, 400.0], 15.0)
        assert merge_intervals(intervals) == intervals

    def test_merge_compares_with_last_interval(self):
        """A short interval inside the running one does not end it."""
        merged = merge_intervals([(0.0, 10.0), (2.0, 5.0), (8.0, 30.0), (40.0, 50.0)])
        assert merged == [Interval(0.0, 30.0), Interval(40.0, 50.0)]

    def test_merge_sorts(self):
        merged = merge_intervals([(40.0, 50.0), (0.0, 10.0)])
        assert merged == [Interval(0.0, 10.0), Interval(40.0, 50.0)]


class TestRetentionTimes:
    """Test the spectrum -> mass -> retention time collection."""

    def test_deduplicates_by_time(self):
        times = RetentionTimes()
        times.add(identification(400.0, 0.0, intensity=1.0))
        times.add(identification(400.0, 0.0, intensity=2.0))
        times.add(identification(410.0, 0.0))
        assert len(times) == 2

    def test_greatest_intensity(self):
        times = RetentionTimes()
        times.add_all([
            identification(400.0, 0.0, intensity=10.0),
            identification(410.0, 0.0, intensity=30.0),
            identification(420.0, 0.0, intensity=20.0),
        ])
        key = identification(0.0, 0.0).neutral_mass_key
        assert times.greatest_intensity("0.0000", key).retention_time == 410.0

    def test_greatest_intensity_tie_goes_later(self):
        times = RetentionTimes()
        times.add_all([
            identification(420.0, 0.0, intensity=10.0),
            identification(400.0, 0.0, intensity=10.0),
        ])
        key = identification(0.0, 0.0).neutral_mass_key
        assert times.greatest_intensity("0.0000", key).retention_time == 420.0

    def test_missing(self):
        times = RetentionTimes()
        assert times.retention_times("0.0000", "1.000000") is None
        assert times.greatest_intensity("0.0000", "1.000000") is None

    def test_mz_map(self):
        times = RetentionTimes()
        times.add_all([identification(400.0, 0.0), identification(420.0, 10.0)])
        key = identification(0.0, 0.0).neutral_mass_key
        assert times.mz_map(key) == {"0.0000": 400.0, "10.0000": 420.0}
        assert times.spectrum_keys() == ["0.0000", "10.0000"]


class TestReferenceSelection:
    """Test the choice of the landmark species."""

    def test_most_spectra_wins(self):
        result = FootprintingResult()
        add(result, "AAAK", *(identification(100.0, e, intensity=10.0) for e in (0.0, 5.0, 10.0)))
        add(result, "GGGK", *(identification(200.0, e, intensity=1.0e6, precursor_mz=600.0) for e in (0.0, 10.0)))

        reference = select_reference(result)
        assert reference.reference_mz == identification(0.0, 0.0).neutral_mass_key
        assert reference.spectrum_keys() == ["0.0000", "5.0000", "10.0000"]

    def test_tie_broken_by_median_intensity(self):
        result = FootprintingResult()
        add(
            result, "AAAK",
            identification(100.0, 0.0, intensity=100.0),
            identification(110.0, 0.0, intensity=105.0),
            identification(100.0, 10.0, intensity=102.0),
        )
        add(
            result, "GGGK",
            identification(200.0, 0.0, intensity=500.0, precursor_mz=600.0),
            identification(210.0, 0.0, intensity=510.0, precursor_mz=600.0),
            identification(200.0, 10.0, intensity=505.0, precursor_mz=600.0),
        )

        reference = select_reference(result)
        assert reference.reference_mz == identification(0.0, 0.0, precursor_mz=600.0).neutral_mass_key
        assert reference.mz_map(reference.reference_mz) == {"0.0000": 210.0, "10.0000": 200.0}

    def test_labeled_identifications_are_ignored(self):
        result = FootprintingResult()
        add(result, "PEPTMIDEK", identification(450.0, 0.0, modifications=OXIDIZED_M))

        reference = select_reference(result)
        assert len(reference) == 0
        assert reference.reference_mz is None


class TestRetentionTimeDatabase:
    """Test transfer of identifications into every spectrum."""

    def test_transfer(self, footprinting_result):
        reference = select_reference(footprinting_result)
        rt_database = build_retention_time_database(footprinting_result, reference)

        assert rt_database.peptide_keys() == ["PEPTMIDEK"]
        assert rt_database.spectrum_keys("PEPTMIDEK") == ["0.0000", "10.0000"]
        assert rt_database.mz_keys("PEPTMIDEK", "0.0000") == ["500.0000", "508.0000"]

        # Unlabeled: 400 s in spectrum 0 and 420 s in spectrum 10 map onto each other
        unlabeled = rt_database.retention_times("PEPTMIDEK", "10.0000", "500.0000")
        assert [rt.retention_time for rt in unlabeled] == [420.0, 420.0]

        # Labeled: 50 s after the landmark in spectrum 0
        labeled = rt_database.retention_times("PEPTMIDEK", "10.0000", "508.0000")
        assert [rt.retention_time for rt in labeled] == [470.0]
        labeled = rt_database.retention_times("PEPTMIDEK", "0.0000", "508.0000")
        assert [rt.retention_time for rt in labeled] == [450.0]

    def test_entry_annotations(self, footprinting_result):
        rt_database = build_retention_time_database(
            footprinting_result, select_reference(footprinting_result)
        )
        assert rt_database.is_labeling("PEPTMIDEK", "0.0000", "508.0000")
        assert not rt_database.is_labeling("PEPTMIDEK", "0.0000", "500.0000")
        assert rt_database.mass_offset("PEPTMIDEK", "0.0000", "508.0000") == 15
        assert rt_database.charge_state("PEPTMIDEK", "0.0000", "500.0000") == 2
        assert rt_database.contains("PEPTMIDEK", "10.0000")
        assert len(rt_database) == 4

    def test_unique_species(self, footprinting_result):
        rt_database = build_retention_time_database(
            footprinting_result, select_reference(footprinting_result)
        )
        mz, charge = rt_database.unique_species()
        np.testing.assert_allclose(mz, [500.0, 508.0])
        np.testing.assert_array_equal(charge, [2.0, 2.0])

    def test_every_observed_charge_gets_an_entry(self, footprinting_result):
        mass = identification(0.0, 0.0).precursor_mz * 2 - 2 * 1.007825
        mz3 = (mass + 3 * 1.007825) / 3
        add(footprinting_result, "PEPTMIDEK", identification(401.0, 0.0, precursor_mz=mz3, charge=3))

        rt_database = build_retention_time_database(
            footprinting_result, select_reference(footprinting_result)
        )
        keys = rt_database.mz_keys("PEPTMIDEK", "0.0000")
        assert len(keys) == 3
        assert {rt_database.charge_state("PEPTMIDEK", "0.0000", k) for k in keys} == {2, 3}
        assert float(keys[0]) == pytest.approx(mz3, abs=1e-4)

    def test_peptides_need_both_labeling_states(self):
        result = FootprintingResult()
        add(result, "AAAK", identification(100.0, 0.0), identification(110.0, 10.0))
        rt_database = build_retention_time_database(result, select_reference(result))
        assert len(rt_database) == 0
        assert not rt_database.contains("AAAK", "0.0000")

    def test_lookup_error(self):
        rt_database = RetentionTimeDatabase()
        with pytest.raises(RetentionTimeLookupError) as excinfo:
            rt_database.entry("NOPE", "0.0000", "1.0000")
        assert str(excinfo.value) == (
            "Request for retention time that is not defined in this pool [NOPE,0.0000,1.0000]"
        )
        assert isinstance(excinfo.value, KeyError)

    def test_mass_offset_conflict(self, footprinting_result):
        """Same peptide and mass key labeled with different offsets."""
        heavy = Modification("Heavy", "M", 31.989829, labeling=True)
        add(
            footprinting_result, "PEPTMIDEK",
            identification(455.0, 0.0, precursor_mz=508.0, modifications=(ModificationSite(14, heavy),)),
        )
        with pytest.raises(MassOffsetConflictError):
            build_retention_time_database(footprinting_result, select_reference(footprinting_result))

    def test_no_reference_gives_no_times(self):
        """Without landmarks nothing can be transferred."""
        result = FootprintingResult()
        add(
            result, "PEPTMIDEK",
            identification(400.0, 0.0),
            identification(450.0, 0.0, precursor_mz=508.0, modifications=OXIDIZED_M),
        )
        rt_database = build_retention_time_database(result, RetentionTimes())
        assert rt_database.retention_times("PEPTMIDEK", "0.0000", "500.0000") == []
