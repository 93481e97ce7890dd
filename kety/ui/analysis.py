import streamlit as st
import pandas as pd
from kety.io import KetyIO
from kety.errors import KetySchmidtError
from kety.flow import ExponentialRiseCurve
from kety.pipeline import correct_run, flow_for_run, summary_frame
from kety.units import PhysicalConstants

def render_constants_sidebar() -> PhysicalConstants:
    st.header("2. Apparatus")
    st.caption("Volumes in mL")
    v_dead = st.number_input("Dead Space", value=1.2, step=0.1, format="%.3f",
                             help="Catheter + valve dead space (arterial 0.2, venous 1.0)")
    v_rinse = st.number_input("Rinse Volume", value=0.0, step=0.01, format="%.3f")
    v_tube = st.number_input("Tubing", value=10.0, step=1.0)
    v_detect = st.number_input("Detector", value=333.0, step=1.0)

    c1, c2 = st.columns(2)
    with c1:
        temp = st.number_input("T (K)", value=298.0, step=1.0)
    with c2:
        pres = st.number_input("P (Torr)", value=760.0, step=1.0)

    return PhysicalConstants(
        dead_space_volume=v_dead / 1000.0,
        rinse_volume=v_rinse / 1000.0,
        tubing_volume=v_tube / 1000.0,
        detector_volume=v_detect / 1000.0,
        temperature=temp,
        pressure=pres,
    )

def _coefficient_inputs(line: str, key: str):
    st.markdown(f"**{line}**  a·(1 − exp(−b·(t − d))) + c")
    cols = st.columns(4)
    defaults = (40.0, 0.5, -5.0, 0.0) if key == "a" else (35.0, 0.3, -5.0, 0.0)
    vals = []
    for col, name, default in zip(cols, "abcd", defaults):
        with col:
            vals.append(st.number_input(name, value=default, format="%.5f", key=f"{key}_{name}"))
    return ExponentialRiseCurve(*vals)

def render_analysis():
    st.header("Kety-Schmidt Flow")

    with st.sidebar:
        st.header("1. Input Data")
        uploaded_file = st.file_uploader("Upload notebook (.TXT) or .CSV", type=["txt", "TXT", "csv", "CSV"])
        st.divider()
        try:
            constants = render_constants_sidebar()
        except KetySchmidtError as e:
            st.error(f"Invalid apparatus settings: {e}")
            return

    if not uploaded_file:
        st.info("Upload a tab-delimited lab notebook in the sidebar to begin.")
        return

    try:
        try:
            content = uploaded_file.getvalue().decode("utf-8")
        except UnicodeDecodeError:
            content = uploaded_file.getvalue().decode("latin-1")

        if uploaded_file.name.lower().endswith(".csv"):
            runs = KetyIO.parse_csv(content)
        else:
            runs = KetyIO.parse_notebook(content, name=uploaded_file.name.rsplit(".", 1)[0])
    except KetySchmidtError as e:
        st.error(f"Error parsing file: {e}")
        return

    st.success(f"Loaded {len(runs)} runs.")

    if len(runs) > 1:
        run_names = [r.name for r in runs]
        idx = st.selectbox("Select Run", range(len(runs)), format_func=lambda x: run_names[x])
    else:
        idx = 0
    run = runs[idx]

    try:
        art, ven = correct_run(run, constants)
    except KetySchmidtError as e:
        st.error(f"Dead-space correction failed: {e}")
        return

    col_a, col_v = st.columns(2)
    with col_a:
        st.subheader("Arterial")
        st.dataframe(summary_frame(art), hide_index=True)
    with col_v:
        st.subheader("Venous")
        st.dataframe(summary_frame(ven), hide_index=True)

    st.download_button(
        "Download corrected series (CSV)",
        pd.concat({"arterial": summary_frame(art), "venous": summary_frame(ven)}).to_csv(),
        file_name=f"{run.name}_corrected.csv",
    )

    st.divider()
    st.subheader("Flow")
    st.caption("Enter the coefficients fitted to the corrected series above.")
    art_fit = _coefficient_inputs("Arterial fit", "a")
    ven_fit = _coefficient_inputs("Venous fit", "v")
    lam = st.number_input("Partition coefficient (λ)", value=1.0, step=0.05, min_value=0.001)

    try:
        result = flow_for_run(art_fit, ven_fit, lam, run=run.name)
    except KetySchmidtError as e:
        st.error(str(e))
        return

    m1, m2, m3 = st.columns(3)
    m1.metric("Flow", f"{result.flow:.4g}")
    m2.metric("Venous plateau (Torr)", f"{result.plateau:.4g}")
    m3.metric("t∞ (min)", f"{result.t_inf:g}")

    st.dataframe(pd.DataFrame([{
        "t0 arterial": result.t0_arterial,
        "t0 venous": result.t0_venous,
        "∫ arterial": result.integral_arterial,
        "∫ venous": result.integral_venous,
        "A-V difference": result.av_difference,
    }]), hide_index=True)
