from __future__ import annotations

import logging
import time

import plotly.graph_objects as go
import streamlit as st

from pendelsim.sim_session import ConfigError, SimulationSession

logger = logging.getLogger(__name__)


def _ensure_session() -> SimulationSession:
    if "sim" not in st.session_state:
        st.session_state.sim = SimulationSession()
    sim = st.session_state.sim
    # widget values live in session state so callbacks can rewrite them
    st.session_state.setdefault("gravity_input", float(sim.config.gravity))
    st.session_state.setdefault("energy_input", float(sim.state.target_energy))
    st.session_state.setdefault("velocity_input", float(sim.config.initial_angular_velocity))
    return sim


def _now_ms() -> float:
    return time.monotonic() * 1000.0


def _on_gravity_change() -> None:
    sim = st.session_state.sim
    try:
        sim.set_gravity(st.session_state.gravity_input)
    except ConfigError as e:
        logger.warning("rejected input: %s", e)
        st.session_state.config_error = str(e)
        st.session_state.gravity_input = sim.config.gravity
        return
    # gravity resets the motion, so the energy field follows the new target
    st.session_state.energy_input = sim.state.target_energy


def _on_energy_change() -> None:
    sim = st.session_state.sim
    try:
        sim.set_target_energy(st.session_state.energy_input)
    except ConfigError as e:
        logger.warning("rejected input: %s", e)
        st.session_state.config_error = str(e)
        st.session_state.energy_input = sim.state.target_energy


def _on_velocity_change() -> None:
    sim = st.session_state.sim
    try:
        sim.set_initial_angular_velocity(st.session_state.velocity_input)
    except ConfigError as e:
        logger.warning("rejected input: %s", e)
        st.session_state.config_error = str(e)
        st.session_state.velocity_input = sim.config.initial_angular_velocity
        return
    st.session_state.energy_input = sim.state.target_energy


def _on_reset() -> None:
    sim = st.session_state.sim
    sim.reset()
    st.session_state.energy_input = sim.state.target_energy


def _update_params_from_sidebar(sim: SimulationSession) -> None:
    st.sidebar.number_input(
        "Gravity",
        min_value=0.0,
        step=0.1,
        format="%.3f",
        key="gravity_input",
        on_change=_on_gravity_change,
    )
    st.sidebar.number_input(
        "Energy",
        step=0.01,
        format="%.6f",
        key="energy_input",
        on_change=_on_energy_change,
    )
    st.sidebar.number_input(
        "Initial angular velocity (rad/s)",
        step=0.1,
        format="%.4f",
        key="velocity_input",
        on_change=_on_velocity_change,
    )

    # canvas size stands in for the browser window
    width = st.sidebar.slider("Width (px)", min_value=200, max_value=1600, value=int(sim.config.width), step=10)
    height = st.sidebar.slider("Height (px)", min_value=200, max_value=1200, value=int(sim.config.height), step=10)
    sim.set_surface_size(width, height)

    error = st.session_state.pop("config_error", None)
    if error:
        st.sidebar.error(error)


def build_figure(sim: SimulationSession) -> go.Figure:
    """Draw the rod and the ball in screen pixels (origin top-left)."""
    cx, cy = sim.center()
    bx, by = sim.bob_position()
    r = sim.config.ball_radius

    fig = go.Figure()

    # rod
    fig.add_trace(go.Scatter(x=[cx, bx], y=[cy, by], mode="lines", line=dict(color="black", width=1), hoverinfo="skip", showlegend=False))

    # ball
    fig.add_shape(type="circle", x0=bx - r, y0=by - r, x1=bx + r, y1=by + r, line=dict(color="black"), fillcolor="black")

    fig.update_layout(
        template="plotly_white",
        width=sim.config.width,
        height=sim.config.height,
        margin=dict(l=0, r=0, t=0, b=0),
        xaxis=dict(range=[0, sim.config.width], visible=False, fixedrange=True),
        # screen y grows downwards
        yaxis=dict(range=[sim.config.height, 0], visible=False, scaleanchor="x", scaleratio=1.0, fixedrange=True),
        dragmode=False,
    )
    return fig


def _render_frame() -> None:
    sim = st.session_state.sim
    sim.tick(_now_ms())

    st.plotly_chart(build_figure(sim), use_container_width=False, config={"staticPlot": True, "displayModeBar": False})

    col_a, col_b, col_c = st.columns([1, 1, 1])
    col_a.metric("θ (rad)", f"{sim.state.theta:.4f}")
    col_b.metric("Energy", f"{sim.state.energy:.5f}")
    col_c.metric("ΔE/E", f"{sim.energy_drift() * 100.0:.3f}%")


def main() -> None:
    st.set_page_config(page_title="Pendulum", layout="wide")
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    sim = _ensure_session()

    st.title("Pendulum")
    st.caption("Explicit Euler with energy correction, 60 Hz fixed tick")

    _update_params_from_sidebar(sim)

    col_a, col_b = st.columns([1, 1])
    with col_a:
        if not sim.running:
            if st.button("Start", type="primary"):
                sim.start()
                st.rerun()
        else:
            if st.button("Stop", type="secondary"):
                sim.stop()
                st.rerun()
    with col_b:
        st.button("Reset", on_click=_on_reset)

    # one periodic task: tick, then draw
    run_every = sim.config.frame_interval_s if sim.running else None
    st.fragment(run_every=run_every)(_render_frame)()

    with st.expander("Details (State)", expanded=False):
        st.write(sim.snapshot())


if __name__ == "__main__":
    main()
