import logging

import pandas as pd
import streamlit as st

from reels_utils import (
    RANKING_METRICS,
    SORT_ORDERS,
    LoadResult,
    build_table_view,
    chart_selection_label,
    compute_summary_stats,
    create_engagement_vs_views_chart,
    create_top_reels_bar_chart,
    empty_reels_frame,
    export_reels_csv,
    filter_reels,
    find_reel_by_display_url,
    find_reel_by_id,
    format_metric_value,
    format_number,
    get_default_reels_path,
    get_metric_label,
    is_remote_source,
    load_reels_data,
    load_uploaded_reels_data,
    rank_top_reels,
)
from view_state import (
    DashboardState,
    clamp_page,
    clear_selection,
    next_page,
    previous_page,
    select_metric,
    select_reel,
    set_filter,
    set_sort_order,
)

APP_VERSION = "2025-12-14-1"

SORT_ORDER_LABELS = {"desc": "Highest First", "asc": "Lowest First"}

st.set_page_config(
    page_title="Instagram Reels Ranking Dashboard",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded",
)


def get_state() -> DashboardState:
    if "dashboard_state" not in st.session_state:
        st.session_state.dashboard_state = DashboardState()
    return st.session_state.dashboard_state


def dispatch(transition, *args) -> DashboardState:
    """Apply one view-state transition and store the result."""
    st.session_state.dashboard_state = transition(get_state(), *args)
    return st.session_state.dashboard_state


def _on_metric_change():
    dispatch(select_metric, st.session_state.rank_by_select)


def _on_sort_order_change():
    dispatch(set_sort_order, st.session_state.sort_order_select)


def _on_filter_change():
    dispatch(set_filter, st.session_state.filter_input)


def render_data_source_sidebar() -> LoadResult:
    """Sidebar data source picker; returns the loaded dataset."""
    if "reels_file_path" not in st.session_state:
        st.session_state.reels_file_path = str(get_default_reels_path())
    if "reels_remote_url" not in st.session_state:
        st.session_state.reels_remote_url = ""

    with st.sidebar:
        st.header("⚙️ Settings")
        data_source = st.radio(
            "Data Source",
            ["Local File", "Upload File", "Remote URL"],
            key="data_source",
            help="Choose a local CSV, upload an export, or link a published sheet",
        )

        uploaded_file = None
        if data_source == "Local File":
            st.text_input(
                "CSV file path",
                key="reels_file_path",
                help="Path of the Reels export (columns: Reel, Views, Likes, Comments)",
            )
            st.caption(f"💡 Default: `{get_default_reels_path()}`")
        elif data_source == "Upload File":
            uploaded_file = st.file_uploader(
                "Upload Reels export",
                type=["csv", "xlsx"],
                help="CSV or XLSX with Reel, Views, Likes and Comments columns",
            )
        else:
            st.text_input("CSV or Google Sheets URL", key="reels_remote_url")
            if st.session_state.reels_remote_url and not is_remote_source(
                st.session_state.reels_remote_url
            ):
                st.warning("⚠️ URL must start with http:// or https://")

        if st.button("🔄 Refresh Data", use_container_width=True):
            load_reels_data.clear()
            load_uploaded_reels_data.clear()
            st.rerun()

        st.caption(f"Version {APP_VERSION}")

    with st.spinner("Loading..."):
        if data_source == "Upload File":
            if uploaded_file is None:
                return LoadResult(records=empty_reels_frame(), source="")
            return load_uploaded_reels_data(uploaded_file.getvalue(), uploaded_file.name)
        if data_source == "Remote URL":
            if not is_remote_source(st.session_state.reels_remote_url):
                return LoadResult(records=empty_reels_frame(), source="")
            return load_reels_data(st.session_state.reels_remote_url)
        return load_reels_data(st.session_state.reels_file_path)


def render_summary_stats(df: pd.DataFrame):
    stats = compute_summary_stats(df)
    cols = st.columns(5)
    cols[0].metric("Total Views", format_number(stats["total_views"]))
    cols[1].metric("Total Likes", format_number(stats["total_likes"]))
    cols[2].metric("Total Comments", format_number(stats["total_comments"]))
    cols[3].metric(
        "Avg Engagement Rate",
        format_metric_value("EngagementRate", stats["avg_engagement_rate"]),
    )
    cols[4].metric(
        "Avg Engagement Score",
        format_metric_value("EngagementScore", stats["avg_engagement_score"]),
    )


def _handle_chart_selection(event, top_df: pd.DataFrame, chart_key: str):
    """Select the clicked reel once per new click on a chart."""
    label = chart_selection_label(event)
    last_key = f"{chart_key}_last_label"
    if label == st.session_state.get(last_key):
        return
    st.session_state[last_key] = label

    reel = find_reel_by_display_url(top_df, label)
    if reel is not None:
        dispatch(select_reel, reel["id"])


def render_charts(top_df: pd.DataFrame, metric: str):
    chart_col1, chart_col2 = st.columns(2)
    with chart_col1:
        bar_chart = create_top_reels_bar_chart(top_df, metric)
        if bar_chart:
            event = st.plotly_chart(
                bar_chart,
                use_container_width=True,
                on_select="rerun",
                selection_mode="points",
                key="top_reels_chart",
            )
            _handle_chart_selection(event, top_df, "top_reels_chart")
    with chart_col2:
        line_chart = create_engagement_vs_views_chart(top_df)
        if line_chart:
            event = st.plotly_chart(
                line_chart,
                use_container_width=True,
                on_select="rerun",
                selection_mode="points",
                key="engagement_views_chart",
            )
            _handle_chart_selection(event, top_df, "engagement_views_chart")


def render_reel_detail(df: pd.DataFrame, state: DashboardState):
    reel = find_reel_by_id(df, state.selected_id)
    if reel is None:
        return

    with st.container(border=True):
        title_col, close_col = st.columns([6, 1])
        with title_col:
            st.markdown("#### Reel Details")
        with close_col:
            st.button("×", key="close_detail", on_click=dispatch, args=(clear_selection,))

        if reel["Reel"]:
            st.link_button("Open Reel", reel["Reel"], use_container_width=True)

        detail_cols = st.columns(6)
        detail_cols[0].metric("ID", reel["ShortUrl"] or "N/A")
        detail_cols[1].metric("Views", format_number(reel["Views"]))
        detail_cols[2].metric("Likes", format_number(reel["Likes"]))
        detail_cols[3].metric("Comments", format_number(reel["Comments"]))
        detail_cols[4].metric(
            "Engagement Rate", format_metric_value("EngagementRate", reel["EngagementRate"])
        )
        detail_cols[5].metric(
            "Engagement Score", format_metric_value("EngagementScore", reel["EngagementScore"])
        )


def render_controls(state: DashboardState):
    col1, col2, col3 = st.columns(3)
    with col1:
        st.selectbox(
            "Rank By",
            RANKING_METRICS,
            index=RANKING_METRICS.index(state.metric),
            format_func=get_metric_label,
            key="rank_by_select",
            on_change=_on_metric_change,
        )
    with col2:
        st.selectbox(
            "Sort Order",
            SORT_ORDERS,
            index=SORT_ORDERS.index(state.sort_order),
            format_func=SORT_ORDER_LABELS.get,
            key="sort_order_select",
            on_change=_on_sort_order_change,
        )
    with col3:
        st.text_input(
            "Filter",
            value=state.filter_text,
            placeholder="Search by URL...",
            key="filter_input",
            on_change=_on_filter_change,
        )


def _format_table(rows: pd.DataFrame) -> pd.DataFrame:
    table = pd.DataFrame(
        {
            "Rank": rows["Rank"],
            "Reel ID": rows["ShortUrl"],
            "Link": rows["Reel"],
            "Views": rows["Views"].map(format_number),
            "Likes": rows["Likes"].map(format_number),
            "Comments": rows["Comments"].map(format_number),
            "Engagement Rate": rows["EngagementRate"].map(
                lambda v: format_metric_value("EngagementRate", v)
            ),
            "Engagement Score": rows["EngagementScore"].map(
                lambda v: format_metric_value("EngagementScore", v)
            ),
            "Viral Coefficient": rows["ViralCoefficient"].map(
                lambda v: format_metric_value("ViralCoefficient", v)
            ),
        }
    )
    return table


def render_table(df: pd.DataFrame, state: DashboardState):
    view = build_table_view(df, state)

    if view.rows.empty:
        st.caption("No reels match the current filter.")
    else:
        st.dataframe(
            _format_table(view.rows),
            use_container_width=True,
            hide_index=True,
            column_config={
                "Link": st.column_config.LinkColumn("Link", display_text="Open reel"),
            },
        )

    info_col, prev_col, next_col = st.columns([4, 1, 1])
    with info_col:
        st.caption(
            f"Showing {view.first_row} to {view.last_row} of {view.filtered_count} results"
        )
    with prev_col:
        st.button(
            "Previous",
            key="prev_page",
            disabled=not view.has_previous,
            on_click=dispatch,
            args=(previous_page,),
            use_container_width=True,
        )
    with next_col:
        st.button(
            "Next",
            key="next_page",
            disabled=not view.has_next,
            on_click=dispatch,
            args=(next_page, view.filtered_count),
            use_container_width=True,
        )

    st.download_button(
        "⬇️ Download filtered table (CSV)",
        data=export_reels_csv(view.filtered),
        file_name="reels_ranking.csv",
        mime="text/csv",
    )


def render_dashboard():
    st.title("Instagram Reels Ranking Dashboard")

    result = render_data_source_sidebar()
    if not result.ok:
        st.error(f"Could not load Reels data: {result.error}")
    elif result.rejected:
        st.caption(
            f"⚠️ Skipped {result.rejected} row(s) with invalid counts "
            "(missing or non-positive views, negative likes or comments)."
        )

    # Reel ids are row positions, so a selection does not carry over to another dataset.
    previous_source = st.session_state.get("loaded_source")
    st.session_state.loaded_source = result.source
    if previous_source is not None and previous_source != result.source:
        dispatch(clear_selection)

    df = result.records
    render_summary_stats(df)

    if df.empty:
        st.info("📊 No reels to rank. Configure a data source in the sidebar.")
        return

    state = get_state()
    filtered_count = len(filter_reels(df, state.filter_text))
    state = dispatch(clamp_page, filtered_count)

    top_df = rank_top_reels(df, state.metric)

    st.info("Click on any bar or point in the charts to see detailed information and open the Reel.")
    render_charts(top_df, state.metric)
    render_reel_detail(df, get_state())

    render_controls(state)
    render_table(df, get_state())


def main():
    logging.basicConfig(level=logging.INFO)
    render_dashboard()


if __name__ == "__main__":
    main()
