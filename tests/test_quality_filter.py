import pandas as pd
import pytest

from phenoTrend.data_loader import process_dataframe
from phenoTrend.exceptions import EmptyDataError
from phenoTrend.preprocessor import preprocess_data
from phenoTrend.quality_filter import (
    apply_iqr_fence,
    compute_iqr_stats,
    filter_min_years,
    make_group_key,
    quality_filter,
)


# --- Stage a: minimum history ---


def test_filter_min_years_drops_short_histories(first_events_factory):
    df = pd.concat(
        [
            first_events_factory(1, [100, 101, 102, 103, 104]),
            first_events_factory(2, [100, 101, 102, 103]),
        ]
    )
    result = filter_min_years(df)
    assert set(result["individual_id"]) == {1}
    assert (result["n_years"] == 5).all()


def test_filter_min_years_counts_distinct_years(first_events_factory):
    """Duplicate rows in the same year (tied first events) count once."""
    df = first_events_factory(1, [100, 101, 102, 103])
    df = pd.concat([df, df.iloc[[0]]])
    assert filter_min_years(df).empty


def test_filter_min_years_keyed_on_individual_only(first_events_factory):
    """Years of every species and phenophase of an individual count together."""
    df = pd.concat(
        [
            first_events_factory(1, [100, 101, 102], first_year=2011, species_id=82),
            first_events_factory(1, [100, 104], first_year=2014, species_id=83),
        ]
    )
    result = filter_min_years(df)
    assert len(result) == 5


def test_filter_min_years_requires_year(first_events_factory):
    df = first_events_factory(1, [100] * 5).drop(columns=["year"])
    with pytest.raises(ValueError, match="year"):
        filter_min_years(df)


# --- Stage b: outlier fence ---


def test_make_group_key():
    df = pd.DataFrame(
        {"individual_id": [7], "species_id": [82], "phenophase_description": ["Open flowers"]}
    )
    assert make_group_key(df)["group_key"].tolist() == ["7_82_Open flowers"]


def test_make_group_key_empty():
    df = pd.DataFrame(columns=["individual_id", "species_id", "phenophase_description"])
    assert "group_key" in make_group_key(df).columns


def test_compute_iqr_stats_type7_quartiles():
    df = pd.DataFrame({"group_key": ["a"] * 5, "day_of_year": [88, 90, 91, 92, 95]})
    stats = compute_iqr_stats(df)
    assert stats.loc["a", "q1"] == pytest.approx(90.0)
    assert stats.loc["a", "q3"] == pytest.approx(92.0)
    assert stats.loc["a", "iqr"] == pytest.approx(2.0)


def test_compute_iqr_stats_interpolates():
    df = pd.DataFrame({"group_key": ["a"] * 4, "day_of_year": [10, 20, 30, 40]})
    stats = compute_iqr_stats(df)
    assert stats.loc["a", "q1"] == pytest.approx(17.5)
    assert stats.loc["a", "q3"] == pytest.approx(32.5)


def test_apply_iqr_fence_is_strict():
    """Rows exactly on the fence are removed."""
    df = pd.DataFrame({"group_key": ["a"] * 5, "day_of_year": [84, 90, 92, 94, 100]})
    result = apply_iqr_fence(df)
    assert result["day_of_year"].tolist() == [90, 92, 94]


def test_apply_iqr_fence_zero_iqr_removes_group():
    df = pd.DataFrame(
        {"group_key": ["a"] * 5 + ["b"] * 3, "day_of_year": [100] * 5 + [90, 91, 92]}
    )
    result = apply_iqr_fence(df)
    assert set(result["group_key"]) == {"b"}


def test_apply_iqr_fence_groups_are_independent():
    df = pd.DataFrame(
        {"group_key": ["a"] * 4 + ["b"] * 4, "day_of_year": [10, 11, 12, 13, 100, 101, 102, 103]}
    )
    assert len(apply_iqr_fence(df)) == 8


def test_apply_iqr_fence_reuses_carried_stats():
    df = pd.DataFrame(
        {
            "group_key": ["a"] * 3,
            "day_of_year": [90, 100, 110],
            "q1": 99.0,
            "q3": 101.0,
            "iqr": 2.0,
        }
    )
    assert apply_iqr_fence(df)["day_of_year"].tolist() == [100]


# --- Wrapper ---


def test_quality_filter_scenario(first_events_factory):
    """An early outlier-free history keeps all but its fence-boundary year."""
    df = first_events_factory(1, [90, 92, 88, 95, 91])
    result, diagnostics = quality_filter(df)

    assert sorted(result["day_of_year"].tolist()) == [88, 90, 91, 92]
    assert diagnostics["n_input"] == 5
    assert diagnostics["n_after_min_years"] == 5
    assert diagnostics["n_after_fence"] == 4
    assert diagnostics["n_outliers"] == 1
    assert diagnostics["n_groups"] == 1
    assert (result["q1"] == 90).all()
    assert (result["q3"] == 92).all()


def test_cutoff_applies_before_fence_statistics():
    """A late first event is removed by the cutoff, so it never widens the fence."""
    doys = [90, 92, 88, 95, 91, 200]
    years = range(2011, 2017)
    status = pd.DataFrame(
        {
            "individual_id": 1,
            "species_id": 82,
            "phenophase_description": "Open flowers",
            "observation_date": [
                (pd.Timestamp(year=y, month=1, day=1) + pd.Timedelta(days=d - 1)).strftime("%Y-%m-%d")
                for y, d in zip(years, doys)
            ],
            "phenophase_status": 1,
            "day_of_year": doys,
        }
    )

    reduced, _ = preprocess_data(process_dataframe(status))
    assert 200 not in reduced["day_of_year"].tolist()

    result, _ = quality_filter(reduced)
    assert sorted(result["day_of_year"].tolist()) == [88, 90, 91, 92]
    assert (result["n_years"] == 5).all()
    assert (result["q1"] == 90).all()
    assert (result["q3"] == 92).all()


def test_quality_filter_year_counts_reflect_pre_fence_history(first_events_factory):
    """An individual may end with fewer surviving years than the threshold."""
    df = first_events_factory(1, [90, 92, 88, 95, 91])
    result, _ = quality_filter(df)
    assert result["year"].nunique() == 4
    assert (result["n_years"] == 5).all()


def test_quality_filter_is_idempotent(first_events_factory):
    df = pd.concat(
        [
            first_events_factory(1, [90, 92, 88, 95, 91, 93]),
            first_events_factory(2, [120, 118, 150, 121, 119]),
            first_events_factory(3, [100, 101, 102]),
        ]
    )
    once, _ = quality_filter(df)
    twice, diagnostics = quality_filter(once)
    pd.testing.assert_frame_equal(once, twice)
    assert diagnostics["n_outliers"] == 0


def test_quality_filter_removes_outlier(first_events_factory):
    df = first_events_factory(2, [120, 118, 150, 121, 119])
    result, diagnostics = quality_filter(df)
    assert 150 not in result["day_of_year"].tolist()
    assert diagnostics["n_outliers"] >= 1


def test_quality_filter_no_individual_qualifies(first_events_factory):
    df = first_events_factory(1, [100, 101, 102, 103])
    with pytest.raises(EmptyDataError, match="minimum-history"):
        quality_filter(df)


def test_quality_filter_fence_removes_everything(first_events_factory):
    df = first_events_factory(1, [100] * 5)
    with pytest.raises(EmptyDataError, match="IQR outlier fence"):
        quality_filter(df)


def test_quality_filter_warns_on_lost_group(first_events_factory, caplog):
    df = pd.concat(
        [
            first_events_factory(1, [90, 92, 88, 95, 91]),
            first_events_factory(2, [100] * 5),
        ]
    )
    result, diagnostics = quality_filter(df)
    assert set(result["individual_id"]) == {1}
    assert diagnostics["n_groups"] == 1
    assert "removed every row of 1 group(s)" in caplog.text
    assert "2_82_Open flowers" in caplog.text


def test_quality_filter_empty_input():
    with pytest.raises(EmptyDataError):
        quality_filter(pd.DataFrame())


def test_quality_filter_custom_thresholds(first_events_factory):
    df = first_events_factory(1, [90, 92, 88, 95, 91])
    result, diagnostics = quality_filter(df, min_years=2, iqr_multiplier=3.0)
    assert len(result) == 5
    assert diagnostics["min_years"] == 2
