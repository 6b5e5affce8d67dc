import math

import numpy as np
import pandas as pd
import pytest

from reels_utils import derive_metrics, short_url


def test_documented_example():
    raw = pd.DataFrame(
        [{"Reel": "https://x/y/aaa111", "Views": 1000, "Likes": 100, "Comments": 10}]
    )
    row = derive_metrics(raw).iloc[0]

    assert row["EngagementRate"] == pytest.approx(11.0)
    assert row["EngagementScore"] == pytest.approx(13.0)
    assert row["ViralCoefficient"] == pytest.approx(3 * 11.0 / 100)
    assert row["ShortUrl"] == "y"
    assert row["id"] == 1


def test_formulas_hold_for_every_row(make_reels):
    df = make_reels([("A", 1234, 56, 7), ("B", 98765, 4321, 210), ("C", 1, 0, 0)])

    expected_rate = (df["Likes"] + df["Comments"]) / df["Views"] * 100
    expected_score = (df["Likes"] + 3 * df["Comments"]) / df["Views"] * 100
    expected_viral = np.log10(df["Views"]) * expected_rate / 100

    np.testing.assert_allclose(df["EngagementRate"], expected_rate)
    np.testing.assert_allclose(df["EngagementScore"], expected_score)
    np.testing.assert_allclose(df["ViralCoefficient"], expected_viral)


def test_comments_weigh_three_times_likes(make_reels):
    df = make_reels([("LIKES", 1000, 30, 0), ("COMMENTS", 1000, 0, 10)])
    assert df.loc[0, "EngagementScore"] == pytest.approx(df.loc[1, "EngagementScore"])
    assert df.loc[0, "EngagementRate"] > df.loc[1, "EngagementRate"]


def test_zero_views_gives_non_finite_values_without_raising():
    raw = pd.DataFrame([{"Reel": "https://x/y/z", "Views": 0, "Likes": 5, "Comments": 1}])
    row = derive_metrics(raw).iloc[0]
    assert not math.isfinite(row["EngagementRate"])
    assert not math.isfinite(row["ViralCoefficient"])


def test_input_frame_is_not_mutated():
    raw = pd.DataFrame([{"Reel": "https://x/y/z", "Views": 10, "Likes": 1, "Comments": 1}])
    derive_metrics(raw)
    assert list(raw.columns) == ["Reel", "Views", "Likes", "Comments"]


def test_empty_frame_gets_derived_columns():
    raw = pd.DataFrame(columns=["Reel", "Views", "Likes", "Comments"])
    df = derive_metrics(raw)
    assert df.empty
    for col in ["EngagementRate", "EngagementScore", "ViralCoefficient", "ShortUrl", "id"]:
        assert col in df.columns


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://x/y/aaa111", "y"),
        ("https://www.instagram.com/reel/C1aB2cD3eF4/", "C1aB2cD3eF4"),
        ("https://www.instagram.com/p/XYZ/?igsh=abc", "XYZ"),
        ("no-slashes", ""),
        (None, ""),
        (float("nan"), ""),
    ],
)
def test_short_url(url, expected):
    assert short_url(url) == expected
