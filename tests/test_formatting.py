import numpy as np
import plotly.graph_objects as go
import pytest

from reels_utils import (
    create_engagement_vs_views_chart,
    create_top_reels_bar_chart,
    empty_reels_frame,
    format_metric_value,
    format_number,
    get_metric_label,
    rank_top_reels,
)


@pytest.mark.parametrize(
    "num, expected",
    [
        (0, "0"),
        (999, "999"),
        (1000, "1.0K"),
        (15_300, "15.3K"),
        (2_500_000, "2.5M"),
        (3_100_000_000, "3.1B"),
        (np.int64(1234), "1.2K"),
        (12.0, "12"),
        (float("nan"), "N/A"),
        (None, "N/A"),
    ],
)
def test_format_number(num, expected):
    assert format_number(num) == expected


def test_format_metric_value():
    assert format_metric_value("EngagementRate", 11.0) == "11.00%"
    assert format_metric_value("EngagementScore", 13.456) == "13.46"
    assert format_metric_value("ViralCoefficient", 0.333) == "0.33"
    assert format_metric_value("Views", 2_000_000) == "2.0M"
    assert format_metric_value("EngagementRate", float("nan")) == "N/A"
    assert format_metric_value("EngagementScore", float("inf")) == "N/A"


def test_metric_labels():
    assert get_metric_label("EngagementRate") == "Engagement Rate (%)"
    assert get_metric_label("EngagementScore") == "Engagement Score"
    assert get_metric_label("ViralCoefficient") == "Viral Coefficient"
    assert get_metric_label("Views") == "Views"


def test_bar_chart_follows_active_metric(many_reels):
    top = rank_top_reels(many_reels, "Likes")
    fig = create_top_reels_bar_chart(top, "Likes")

    assert isinstance(fig, go.Figure)
    assert fig.layout.title.text == "Top 10 Reels by Likes"
    assert list(fig.data[0].x) == top["DisplayUrl"].tolist()
    assert list(fig.data[0].y) == top["Likes"].tolist()


def test_engagement_vs_views_chart_uses_two_axes(many_reels):
    top = rank_top_reels(many_reels, "Views")
    fig = create_engagement_vs_views_chart(top)

    names = [trace.name for trace in fig.data]
    assert names == ["Engagement Score", "Views"]
    assert fig.data[1].yaxis == "y2"
    assert fig.layout.yaxis2.overlaying == "y"


def test_charts_skip_empty_data():
    top = rank_top_reels(empty_reels_frame(), "Views")
    assert create_top_reels_bar_chart(top, "Views") is None
    assert create_engagement_vs_views_chart(top) is None
