"""Dashboard view state and the transitions the controls apply to it.

Every user action maps to one function that takes the current state and
returns a new one; nothing here touches Streamlit.
"""
from dataclasses import dataclass, replace
from typing import Optional

from reels_utils import (
    DEFAULT_METRIC,
    RANKING_METRICS,
    ROWS_PER_PAGE,
    SORT_ORDERS,
    has_next_page,
    page_count,
)


@dataclass(frozen=True)
class DashboardState:
    metric: str = DEFAULT_METRIC
    sort_order: str = "desc"
    filter_text: str = ""
    page: int = 1
    selected_id: Optional[int] = None


def select_metric(state: DashboardState, metric: str) -> DashboardState:
    if metric not in RANKING_METRICS:
        raise ValueError(f"Unknown ranking metric: {metric!r}")
    if metric == state.metric:
        return state
    return replace(state, metric=metric, page=1)


def set_sort_order(state: DashboardState, order: str) -> DashboardState:
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order: {order!r}")
    if order == state.sort_order:
        return state
    return replace(state, sort_order=order, page=1)


def set_filter(state: DashboardState, text: str) -> DashboardState:
    text = text or ""
    if text == state.filter_text:
        return state
    return replace(state, filter_text=text, page=1)


def next_page(
    state: DashboardState, filtered_count: int, rows_per_page: int = ROWS_PER_PAGE
) -> DashboardState:
    if not has_next_page(state.page, filtered_count, rows_per_page):
        return state
    return replace(state, page=state.page + 1)


def previous_page(state: DashboardState) -> DashboardState:
    return replace(state, page=max(1, state.page - 1))


def clamp_page(
    state: DashboardState, filtered_count: int, rows_per_page: int = ROWS_PER_PAGE
) -> DashboardState:
    """Pull the page back into range after the filtered set shrinks."""
    last_page = max(1, page_count(filtered_count, rows_per_page))
    page = min(max(1, state.page), last_page)
    if page == state.page:
        return state
    return replace(state, page=page)


def select_reel(state: DashboardState, reel_id) -> DashboardState:
    if reel_id is not None:
        reel_id = int(reel_id)
    return replace(state, selected_id=reel_id)


def clear_selection(state: DashboardState) -> DashboardState:
    if state.selected_id is None:
        return state
    return replace(state, selected_id=None)
