"""
prompt-optimizer-core Result Viewer

Minimal Streamlit dashboard for viewing optimization runs.
Displays per-field accuracy trajectories and initial vs. final accuracy.

Usage:
    pip install -e ".[viewer]"
    streamlit run src/prompt_optimizer_core/viewer.py
    streamlit run src/prompt_optimizer_core/viewer.py -- --results-dir results

Requires the package to be installed (e.g. via ``pip install -e .``).
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from prompt_optimizer_core.domain.entities import FieldState

# -- Colors --
FIELD_COLORS = [
    "#1a73e8", "#e8710a", "#34a853", "#ea4335", "#9334e6",
    "#f538a0", "#00897b", "#6d4c41", "#546e7a", "#d500f9",
]

STATUS_COLORS = {
    FieldState.CONVERGED.value: "#34a853",
    FieldState.EXHAUSTED.value: "#e8710a",
    FieldState.ERRORED.value: "#ea4335",
}


def find_result_pairs(results_dir: Path) -> list[dict]:
    """Find matching summary CSV / run JSON pairs in results_dir, newest first."""
    pairs = []
    for summary_path in sorted(results_dir.glob("summary_*.csv"), reverse=True):
        run_id = summary_path.stem.replace("summary_", "")
        details_path = results_dir / f"run_{run_id}.json"
        pairs.append({
            "run_id": run_id,
            "summary_path": summary_path,
            "details_path": details_path if details_path.exists() else None,
        })
    return pairs


def history_frame(details: dict) -> pd.DataFrame:
    """Flatten per-field iteration histories from a run JSON into one row per step."""
    rows = []
    for result in details.get("results", []):
        for record in result.get("history", []):
            rows.append({
                "field_key": result["field_key"],
                "field_name": result.get("field_name", result["field_key"]),
                "iteration": record["iteration"],
                "accuracy": record["accuracy"],
                "prompt": record["prompt"],
            })
    return pd.DataFrame(rows, columns=["field_key", "field_name", "iteration", "accuracy", "prompt"])


def _load_data(pair: dict) -> tuple[pd.DataFrame, dict | None]:
    summary_df = pd.read_csv(pair["summary_path"])
    details = None
    if pair["details_path"]:
        with open(pair["details_path"], encoding="utf-8") as f:
            details = json.load(f)
    return summary_df, details


def _render_trajectories(history_df: pd.DataFrame, target: float) -> None:
    """Render accuracy per iteration for every optimized field."""
    st.header("Accuracy Trajectories")

    if history_df.empty:
        st.info("No iteration history recorded for this run.")
        return

    fig = go.Figure()
    for i, (field_key, group) in enumerate(history_df.groupby("field_key", sort=False)):
        color = FIELD_COLORS[i % len(FIELD_COLORS)]
        group = group.sort_values("iteration")
        fig.add_trace(go.Scatter(
            x=group["iteration"],
            y=group["accuracy"],
            mode="lines+markers",
            name=group["field_name"].iloc[0],
            line=dict(color=color, width=2),
            marker=dict(color=color, size=8),
            hovertext=[p[:120] for p in group["prompt"]],
        ))

    fig.add_hline(
        y=target,
        line_dash="dash",
        line_color="#5f6368",
        line_width=1,
        annotation_text=f"{target:.0%} target",
        annotation_position="top left",
        annotation_font=dict(size=11, color="#5f6368"),
    )

    fig.update_layout(
        xaxis_title="Iteration",
        yaxis_title="Accuracy",
        yaxis_range=[0, 1.05],
        xaxis_dtick=1,
        legend_title="Field",
        template="plotly_white",
        height=450,
    )

    st.plotly_chart(fig, use_container_width=True)


def _render_before_after(summary_df: pd.DataFrame) -> None:
    """Render initial vs. final accuracy bars per field."""
    st.header("Initial vs. Final Accuracy")

    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=summary_df["field_name"],
        y=summary_df["initial_accuracy"],
        name="Initial",
        marker_color="#9aa0a6",
    ))
    fig.add_trace(go.Bar(
        x=summary_df["field_name"],
        y=summary_df["final_accuracy"],
        name="Final",
        marker_color=[STATUS_COLORS.get(s, "#1a73e8") for s in summary_df["status"]],
    ))
    fig.update_layout(
        barmode="group",
        yaxis_title="Accuracy",
        yaxis_range=[0, 1.05],
        template="plotly_white",
        height=400,
    )

    st.plotly_chart(fig, use_container_width=True)

    errored = summary_df[summary_df["status"] == FieldState.ERRORED.value]
    for _, row in errored.iterrows():
        st.error(f"**{row['field_name']}** (`{row['field_key']}`): {row['error']}")


def _render_results_table(summary_df: pd.DataFrame) -> None:
    st.header("Field Results")

    display_cols = [
        "field_name", "status", "initial_accuracy", "final_accuracy",
        "holdout_accuracy", "iteration_count", "improved", "final_prompt",
    ]
    existing = [c for c in display_cols if c in summary_df.columns]
    styled = summary_df[existing].rename(columns={
        "field_name": "Field",
        "status": "Status",
        "initial_accuracy": "Initial",
        "final_accuracy": "Final",
        "holdout_accuracy": "Holdout",
        "iteration_count": "Iterations",
        "improved": "Improved",
        "final_prompt": "Final Prompt",
    })

    st.dataframe(styled, use_container_width=True, hide_index=True)


def main() -> None:
    # Parse --results-dir from Streamlit args (after --)
    parser = argparse.ArgumentParser()
    parser.add_argument("--results-dir", default="results")
    parser.add_argument("--target", type=float, default=1.0)
    args, _ = parser.parse_known_args()

    results_dir = Path(args.results_dir)

    st.set_page_config(page_title="prompt-optimizer-core", layout="wide")
    st.title("prompt-optimizer-core Runs")

    run_hint = "Run an optimization first:\n```\npython -m prompt_optimizer_core.runner --snapshot snapshot.json --documents-dir docs/\n```"
    if not results_dir.exists():
        st.error(f"Results directory not found: `{results_dir}`")
        st.info(run_hint)
        return

    pairs = find_result_pairs(results_dir)
    if not pairs:
        st.warning(f"No result files found in `{results_dir}/`")
        st.info(run_hint)
        return

    run_ids = [p["run_id"] for p in pairs]
    selected_run_id = st.sidebar.selectbox("Run", run_ids, index=0)
    selected_pair = next(p for p in pairs if p["run_id"] == selected_run_id)

    summary_df, details = _load_data(selected_pair)

    # Sidebar info
    st.sidebar.markdown("---")
    if not summary_df.empty:
        st.sidebar.markdown(f"**Template**: {summary_df['template_key'].iloc[0]}")
        st.sidebar.markdown(f"**Model**: {summary_df['test_model'].iloc[0]}")
    st.sidebar.markdown(f"**Fields**: {len(summary_df)}")
    if details:
        st.sidebar.markdown(f"**Sampled documents**: {len(details.get('sampled_document_ids', []))}")
        st.sidebar.markdown(
            f"**Duration**: {details.get('actual_seconds', 0):.0f}s "
            f"(estimated {details.get('estimated_seconds', 0):.0f}s)"
        )
        uncovered = details.get("uncovered_field_keys") or []
        if uncovered:
            st.sidebar.warning(f"Not covered by the sample: {', '.join(uncovered)}")

    if summary_df.empty:
        st.success("Nothing needed optimizing in this run.")
        return

    if details is None:
        st.warning("Run JSON not found. Showing summary only.")
    else:
        _render_trajectories(history_frame(details), args.target)
    _render_before_after(summary_df)
    _render_results_table(summary_df)


if __name__ == "__main__":
    main()
