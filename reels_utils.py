import pandas as pd  # type: ignore
import numpy as np  # type: ignore
import plotly.graph_objects as go  # type: ignore
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Optional, Union
import http.client
import logging
import math
import os
import re
import shutil
import urllib.request
import zipfile
import streamlit as st  # type: ignore

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"
REFERENCE_DATA_DIR = BASE_DIR / "reference_data"

REELS_FILENAME = "Pov Husband Reels.csv"
REELS_FALLBACK_PATH = REFERENCE_DATA_DIR / "sample_reels.csv"
REELS_DATA_PATH = DATA_DIR / REELS_FILENAME

REQUEST_TIMEOUT = 10  # seconds
# Corrupt workbooks surface as BadZipFile, truncated downloads as HTTPException.
LOAD_ERRORS = (OSError, ValueError, zipfile.BadZipFile, http.client.HTTPException)
ROWS_PER_PAGE = 10
TOP_N = 10

REQUIRED_COLUMNS = ["Reel", "Views", "Likes", "Comments"]
COUNT_COLUMNS = ["Views", "Likes", "Comments"]
DERIVED_COLUMNS = ["id", "EngagementRate", "EngagementScore", "ViralCoefficient", "ShortUrl"]

RANKING_METRICS = (
    "Views",
    "Likes",
    "Comments",
    "EngagementRate",
    "EngagementScore",
    "ViralCoefficient",
)
DEFAULT_METRIC = "EngagementScore"
SORT_ORDERS = ("desc", "asc")

METRIC_LABELS = {
    "EngagementRate": "Engagement Rate (%)",
    "EngagementScore": "Engagement Score",
    "ViralCoefficient": "Viral Coefficient",
}

Source = Union[str, Path]


@dataclass
class LoadResult:
    """Outcome of loading a Reels export.

    ``records`` always carries the expected columns, so the page can render
    an empty dataset after a failure. ``error`` is set only on failure.
    """

    records: pd.DataFrame
    source: str = ""
    error: Optional[str] = None
    rejected: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TableView:
    rows: pd.DataFrame
    filtered_count: int
    page: int
    page_count: int
    first_row: int
    last_row: int
    has_previous: bool
    has_next: bool
    filtered: pd.DataFrame = field(default_factory=pd.DataFrame, repr=False)


def empty_reels_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=REQUIRED_COLUMNS + DERIVED_COLUMNS)


def get_default_reels_path() -> Path:
    """Default export location; REELS_CSV_PATH overrides it."""
    return Path(os.environ.get("REELS_CSV_PATH") or REELS_DATA_PATH)


def _ensure_dataset(csv_path: Path) -> Path:
    csv_path = Path(csv_path)
    if csv_path.exists():
        return csv_path

    if REELS_FALLBACK_PATH.exists():
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(REELS_FALLBACK_PATH, csv_path)
        logger.info(f"Seeded {csv_path} from {REELS_FALLBACK_PATH.name}")

    return csv_path


# ---------- Remote sources ----------
def parse_google_sheets_url(url: str) -> Optional[dict]:
    """Parse a Google Sheets URL into its sheet ID and GID.

    Returns None when the URL is not a Google Sheets link.
    """
    match = re.search(r"docs\.google\.com/spreadsheets/d/([a-zA-Z0-9-_]+)", url)
    if not match:
        return None

    gid = None
    gid_match = re.search(r"gid=(\d+)", url)
    if gid_match:
        gid = gid_match.group(1)

    return {"sheet_id": match.group(1), "gid": gid}


def get_google_sheets_csv_url(sheet_id: str, gid: Optional[str] = None) -> str:
    base_url = f"https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv"
    if gid:
        base_url += f"&gid={gid}"
    return base_url


def resolve_remote_url(url: str) -> str:
    """Turn a Sheets edit link into its CSV export; other URLs pass through."""
    parsed = parse_google_sheets_url(url)
    if parsed:
        return get_google_sheets_csv_url(parsed["sheet_id"], parsed.get("gid"))
    return url


def is_remote_source(source: Source) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def fetch_remote_bytes(url: str, timeout: float = REQUEST_TIMEOUT) -> bytes:
    csv_url = resolve_remote_url(url)
    logger.info(f"Downloading Reels export from: {csv_url}")
    with urllib.request.urlopen(csv_url, timeout=timeout) as resp:
        content = resp.read()
    logger.info(f"Downloaded {len(content)} bytes")
    return content


# ---------- Parsing ----------
def parse_reels_frame(df_raw: pd.DataFrame) -> pd.DataFrame:
    """Normalize a raw export: strip headers, check columns, coerce counts."""
    df = df_raw.copy()
    df.columns = df.columns.map(lambda c: str(c).strip())
    duplicated = df.columns[df.columns.duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(f"Reels export has duplicated columns: {duplicated}")
    df = df.dropna(how="all")

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(
            f"Reels export is missing required columns: {missing}. Found: {list(df.columns)}"
        )

    for col in COUNT_COLUMNS:
        df[col] = pd.to_numeric(
            df[col].astype(str).str.replace(",", "", regex=False).str.strip(),
            errors="coerce",
        )
    df["Reel"] = df["Reel"].fillna("").astype(str).str.strip()
    df = df.reset_index(drop=True)
    df["id"] = df.index + 1
    return df


def read_reels_bytes(content: bytes, filename: str = "") -> pd.DataFrame:
    if filename.lower().endswith(".xlsx"):
        df_raw = pd.read_excel(BytesIO(content), engine="openpyxl")
    else:
        df_raw = pd.read_csv(BytesIO(content), skip_blank_lines=True)
    return parse_reels_frame(df_raw)


def read_reels_file(csv_path: Path) -> pd.DataFrame:
    csv_path = Path(csv_path)
    if csv_path.suffix.lower() == ".xlsx":
        df_raw = pd.read_excel(csv_path, engine="openpyxl")
    else:
        df_raw = pd.read_csv(csv_path, skip_blank_lines=True)
    return parse_reels_frame(df_raw)


def validate_reels(df: pd.DataFrame) -> tuple[pd.DataFrame, int]:
    """Drop rows the derived formulas cannot handle.

    Views must be a positive number. Likes/Comments must not be negative;
    missing values are filled with 0. Returns the kept rows and the number
    of rejected ones.
    """
    if df.empty:
        return df.copy(), 0

    result = df.copy()
    result["Likes"] = result["Likes"].fillna(0)
    result["Comments"] = result["Comments"].fillna(0)

    valid = (
        result["Views"].notna()
        & (result["Views"] > 0)
        & (result["Likes"] >= 0)
        & (result["Comments"] >= 0)
    )
    rejected = int((~valid).sum())
    if rejected:
        bad_ids = result.loc[~valid, "id"].tolist() if "id" in result.columns else []
        logger.warning(f"Rejected {rejected} row(s) with invalid counts: ids {bad_ids}")
    return result.loc[valid].reset_index(drop=True), rejected


# ---------- Derived metrics ----------
def short_url(url) -> str:
    """Second-to-last path segment, e.g. ``https://x/y/aaa111`` -> ``y``.

    For Instagram links with a trailing slash this is the reel code.
    """
    if not isinstance(url, str):
        return ""
    parts = url.split("/")
    if len(parts) < 2:
        return ""
    return parts[-2]


def derive_metrics(df: pd.DataFrame) -> pd.DataFrame:
    """Add EngagementRate, EngagementScore, ViralCoefficient and ShortUrl.

    Views <= 0 yields inf/NaN instead of raising.
    """
    result = df.copy()
    if result.empty:
        for col in DERIVED_COLUMNS:
            if col not in result.columns:
                result[col] = pd.Series(dtype="float64" if col != "ShortUrl" else "object")
        return result

    views = result["Views"].astype("float64")
    likes = result["Likes"].astype("float64")
    comments = result["Comments"].astype("float64")

    with np.errstate(divide="ignore", invalid="ignore"):
        result["EngagementRate"] = (likes + comments) / views * 100
        # comments weighted 3x
        result["EngagementScore"] = (likes * 1 + comments * 3) / views * 100
        result["ViralCoefficient"] = np.log10(views) * result["EngagementRate"] / 100

    result["ShortUrl"] = result["Reel"].map(short_url)
    if "id" not in result.columns:
        result["id"] = np.arange(1, len(result) + 1)
    return result


# ---------- Loading ----------
def _load_source(source: Source) -> tuple[pd.DataFrame, str]:
    if is_remote_source(source):
        content = fetch_remote_bytes(str(source))
        return read_reels_bytes(content, str(source)), str(source)

    csv_path = Path(source)
    if csv_path == REELS_DATA_PATH:
        csv_path = _ensure_dataset(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"No Reels export found at {csv_path}")
    logger.info(f"Reading Reels export: {csv_path}")
    return read_reels_file(csv_path), str(csv_path)


def _finish_load(parsed: pd.DataFrame, source: str) -> LoadResult:
    valid, rejected = validate_reels(parsed)
    records = derive_metrics(valid)
    logger.info(f"Loaded {len(records)} reel(s) from {source}")
    return LoadResult(records=records, source=source, rejected=rejected)


def load_reels(source: Optional[Source] = None) -> LoadResult:
    """Load, validate and enrich a Reels export from a path or URL."""
    if source is None:
        source = get_default_reels_path()
    try:
        parsed, label = _load_source(source)
    except LOAD_ERRORS as e:
        logger.exception(f"Error reading Reels export from {source}")
        return LoadResult(records=empty_reels_frame(), source=str(source), error=str(e))
    return _finish_load(parsed, label)


def load_reels_from_bytes(content: bytes, filename: str = "upload.csv") -> LoadResult:
    try:
        parsed = read_reels_bytes(content, filename)
    except LOAD_ERRORS as e:
        logger.exception(f"Error parsing uploaded file {filename}")
        return LoadResult(records=empty_reels_frame(), source=filename, error=str(e))
    return _finish_load(parsed, filename)


@st.cache_data(ttl=300)  # Cache for 5 minutes
def load_reels_data(source: str) -> LoadResult:
    return load_reels(source)


@st.cache_data(ttl=300)
def load_uploaded_reels_data(content: bytes, filename: str) -> LoadResult:
    return load_reels_from_bytes(content, filename)


# ---------- Ranking, filtering, pagination ----------
def _check_metric(metric: str) -> None:
    if metric not in RANKING_METRICS:
        raise ValueError(f"Unknown ranking metric: {metric!r}. Expected one of {RANKING_METRICS}")


def _check_order(order: str) -> None:
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order: {order!r}. Expected one of {SORT_ORDERS}")


def rank_top_reels(df: pd.DataFrame, metric: str, n: int = TOP_N) -> pd.DataFrame:
    """Top ``n`` reels by ``metric``, highest first, with a DisplayUrl label."""
    _check_metric(metric)
    if df.empty:
        top = df.copy()
        top["DisplayUrl"] = pd.Series(dtype="object")
        return top

    top = (
        df.sort_values(metric, ascending=False, kind="mergesort", na_position="last")
        .head(n)
        .copy()
    )
    top["DisplayUrl"] = top["ShortUrl"].astype(str).str[-5:]
    return top.reset_index(drop=True)


def filter_reels(df: pd.DataFrame, text: str) -> pd.DataFrame:
    if not text or df.empty:
        return df.copy()
    needle = text.lower()
    mask = df["Reel"].astype(str).str.lower().str.contains(needle, regex=False) | df[
        "ShortUrl"
    ].astype(str).str.lower().str.contains(needle, regex=False)
    return df.loc[mask].copy()


def sort_reels(df: pd.DataFrame, metric: str, order: str = "desc") -> pd.DataFrame:
    _check_metric(metric)
    _check_order(order)
    if df.empty:
        return df.copy()
    return df.sort_values(
        metric, ascending=(order == "asc"), kind="mergesort", na_position="last"
    )


def paginate(df: pd.DataFrame, page: int, rows_per_page: int = ROWS_PER_PAGE) -> pd.DataFrame:
    start = (page - 1) * rows_per_page
    if start < 0:
        return df.iloc[0:0].copy()
    return df.iloc[start : start + rows_per_page].copy()


def page_count(total: int, rows_per_page: int = ROWS_PER_PAGE) -> int:
    return math.ceil(total / rows_per_page)


def has_next_page(page: int, total: int, rows_per_page: int = ROWS_PER_PAGE) -> bool:
    return page * rows_per_page < total


def has_previous_page(page: int) -> bool:
    return page > 1


def build_table_view(df: pd.DataFrame, state, rows_per_page: int = ROWS_PER_PAGE) -> TableView:
    """Filter, sort and slice the records for the current dashboard state."""
    filtered = sort_reels(filter_reels(df, state.filter_text), state.metric, state.sort_order)
    total = len(filtered)
    rows = paginate(filtered, state.page, rows_per_page).drop(columns="Rank", errors="ignore")
    first_row = (state.page - 1) * rows_per_page + 1
    rows.insert(0, "Rank", range(first_row, first_row + len(rows)))
    return TableView(
        rows=rows.reset_index(drop=True),
        filtered_count=total,
        page=state.page,
        page_count=page_count(total, rows_per_page),
        first_row=first_row if total else 0,
        last_row=min(state.page * rows_per_page, total),
        has_previous=has_previous_page(state.page),
        has_next=has_next_page(state.page, total, rows_per_page),
        filtered=filtered,
    )


def find_reel_by_display_url(top_df: pd.DataFrame, label) -> Optional[pd.Series]:
    """Map a chart x-axis label back to its reel; first match wins."""
    if top_df.empty or label is None or "DisplayUrl" not in top_df.columns:
        return None
    matches = top_df[top_df["DisplayUrl"] == str(label)]
    if matches.empty:
        return None
    return matches.iloc[0]


def chart_selection_label(event) -> Optional[str]:
    """x label of the first selected point in a plotly_chart selection event."""
    if not isinstance(event, dict):
        return None
    points = (event.get("selection") or {}).get("points") or []
    if not points:
        return None
    label = points[0].get("x")
    return None if label is None else str(label)


def find_reel_by_id(df: pd.DataFrame, reel_id) -> Optional[pd.Series]:
    if df.empty or reel_id is None:
        return None
    matches = df[df["id"] == reel_id]
    if matches.empty:
        return None
    return matches.iloc[0]


# ---------- Summary + formatting ----------
def compute_summary_stats(df: pd.DataFrame) -> dict:
    """Totals are 0 and averages NaN for an empty dataset."""
    if df.empty:
        return {
            "total_views": 0,
            "total_likes": 0,
            "total_comments": 0,
            "avg_engagement_rate": float("nan"),
            "avg_engagement_score": float("nan"),
        }
    return {
        "total_views": df["Views"].sum(),
        "total_likes": df["Likes"].sum(),
        "total_comments": df["Comments"].sum(),
        "avg_engagement_rate": float(df["EngagementRate"].mean()),
        "avg_engagement_score": float(df["EngagementScore"].mean()),
    }


def _is_missing(value) -> bool:
    try:
        return value is None or not math.isfinite(float(value))
    except (TypeError, ValueError):
        return True


def format_number(num) -> str:
    """Format large counts with K, M, B suffix."""
    if _is_missing(num):
        return "N/A"
    if num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.1f}B"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    if float(num).is_integer():
        return str(int(num))
    return str(num)


def format_metric_value(metric: str, value) -> str:
    if _is_missing(value):
        return "N/A"
    if metric == "EngagementRate":
        return f"{value:.2f}%"
    if metric in ("EngagementScore", "ViralCoefficient"):
        return f"{value:.2f}"
    return format_number(value)


def get_metric_label(metric: str) -> str:
    return METRIC_LABELS.get(metric, metric)


def export_reels_csv(df: pd.DataFrame) -> bytes:
    columns = [c for c in ["Reel", "ShortUrl"] + list(RANKING_METRICS) if c in df.columns]
    return df[columns].to_csv(index=False).encode("utf-8")


# ---------- Charts ----------
def create_top_reels_bar_chart(top_df: pd.DataFrame, metric: str) -> go.Figure | None:
    if top_df.empty:
        return None

    label = get_metric_label(metric)
    if metric in ("EngagementRate", "EngagementScore", "ViralCoefficient"):
        hover_value = "%{y:.2f}"
    else:
        hover_value = "%{y:,.0f}"

    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=top_df["DisplayUrl"],
            y=top_df[metric],
            name=label,
            marker_color="#8884d8",
            customdata=top_df[["ShortUrl"]],
            hovertemplate=f"Reel: %{{customdata[0]}}<br>{label}: {hover_value}<extra></extra>",
        )
    )
    fig.update_layout(
        title=f"Top {len(top_df)} Reels by {label}",
        xaxis=dict(title="Reel", type="category", tickangle=-45),
        yaxis=dict(title=label),
        height=400,
        template="plotly_white",
        clickmode="event+select",
    )
    return fig


def create_engagement_vs_views_chart(top_df: pd.DataFrame) -> go.Figure | None:
    if top_df.empty:
        return None

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=top_df["DisplayUrl"],
            y=top_df["EngagementScore"],
            name="Engagement Score",
            mode="lines+markers",
            line=dict(color="#8884d8"),
            hovertemplate="Reel: %{x}<br>Engagement Score: %{y:.2f}<extra></extra>",
        )
    )
    fig.add_trace(
        go.Scatter(
            x=top_df["DisplayUrl"],
            y=top_df["Views"],
            name="Views",
            mode="lines+markers",
            line=dict(color="#82ca9d"),
            marker=dict(size=8),
            yaxis="y2",
            hovertemplate="Reel: %{x}<br>Views: %{y:,.0f}<extra></extra>",
        )
    )
    fig.update_layout(
        title="Engagement vs. Views",
        xaxis=dict(title="Reel", type="category", tickangle=-45),
        yaxis=dict(title="Engagement Score"),
        yaxis2=dict(
            title="Views",
            overlaying="y",
            side="right",
        ),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
        hovermode="x unified",
        height=400,
        template="plotly_white",
        clickmode="event+select",
    )
    return fig
