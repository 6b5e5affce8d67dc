import pandas as pd
import pytest

from reels_utils import derive_metrics, parse_reels_frame

SAMPLE_CSV = """Reel,Views,Likes,Comments,Caption
https://www.instagram.com/reel/AAA111/,1000,100,10,first
https://www.instagram.com/reel/BBB222/,5000,200,50,second

https://www.instagram.com/reel/CCC333/,200,40,2,third
https://www.instagram.com/reel/DDD444/,1000,100,10,fourth
"""


@pytest.fixture
def sample_csv(tmp_path):
    path = tmp_path / "reels.csv"
    path.write_text(SAMPLE_CSV)
    return path


@pytest.fixture
def make_reels():
    """Build an enriched frame from (reel_code, views, likes, comments) tuples."""

    def _make(rows):
        raw = pd.DataFrame(
            [
                {
                    "Reel": f"https://www.instagram.com/reel/{code}/",
                    "Views": views,
                    "Likes": likes,
                    "Comments": comments,
                }
                for code, views, likes, comments in rows
            ]
        )
        return derive_metrics(parse_reels_frame(raw))

    return _make


@pytest.fixture
def many_reels(make_reels):
    rows = [(f"CODE{i:03d}", 1000 + i * 100, 50 + i, i) for i in range(23)]
    return make_reels(rows)
