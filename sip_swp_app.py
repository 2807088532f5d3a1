import streamlit as st
import matplotlib.pyplot as plt

from sip_swp_helpers import (
    DEFAULTS,
    NUMERIC_KEYS,
    convert_to_words,
    default_settings,
    format_currency,
    normalize_settings,
)
from sip_swp_report import (
    MODE_TITLES,
    make_csv,
    make_pdf_report,
    report_filename,
    yearly_data_frame,
)
from sip_swp_settings import (
    clear_settings,
    load_settings,
    save_settings,
    settings_from_json,
    settings_to_json,
)
from sip_swp_simulation import InvalidParametersError, SimulationError, round_money
from sip_swp_solver import CalculationMode, SolverError, solve_from_settings

st.set_page_config(page_title="SIP → SWP Corpus Planner", layout="wide")


# ======================
# Session state <-> settings
# ======================
def _push_to_session(settings: dict) -> None:
    for k, v in settings.items():
        # numeric fields are edited as free text (commas allowed)
        st.session_state[k] = str(v) if k in NUMERIC_KEYS else v


def collect_settings_from_session() -> dict:
    return normalize_settings({k: st.session_state.get(k, DEFAULTS[k]) for k in DEFAULTS.keys()})


def on_any_change():
    save_settings(collect_settings_from_session())


def on_reset():
    _push_to_session(default_settings())
    save_settings(default_settings())


def on_clear():
    clear_settings()
    _push_to_session(default_settings())


# ----------------------
# Initialize session_state ONCE
# ----------------------
if "___initialized" not in st.session_state:
    _push_to_session(load_settings())
    st.session_state["___initialized"] = True

# ----------------------
# Header
# ----------------------
st.title("SIP → SWP Corpus Planner")
st.caption(
    "Builds a corpus with a monthly SIP that steps up every year until the freeze age, "
    "then draws a monthly income that grows every year from retirement. "
    "Returns are a single fixed annual rate compounded monthly; no taxes."
)


def amount_input(label: str, key: str) -> None:
    st.text_input(label, key=key, on_change=on_any_change)
    words = convert_to_words(normalize_settings({key: st.session_state[key]})[key])
    if words:
        st.caption(words)


# ======================
# Inputs
# ======================
with st.sidebar:
    st.header("Settings Import/Export")

    # --- DOWNLOAD ---
    st.download_button(
        label="Download Current Settings (JSON)",
        data=settings_to_json(collect_settings_from_session()),
        file_name="sip_swp_settings.json",
        mime="application/json",
    )

    # --- UPLOAD ---
    uploaded_file = st.file_uploader("Upload Settings (JSON)", type=["json"])
    if uploaded_file is not None and st.session_state.get("___last_upload") != uploaded_file.name:
        try:
            new_settings = settings_from_json(uploaded_file.getvalue().decode("utf-8"))
            _push_to_session(new_settings)
            save_settings(new_settings)
            st.session_state["___last_upload"] = uploaded_file.name
            st.success("Settings uploaded! Refreshing...")
            st.rerun()
        except (UnicodeDecodeError, TypeError, ValueError) as e:
            st.error(f"Error loading file: {e}")

    st.divider()
    st.header("Calculation")
    st.selectbox(
        "What do you want to calculate?",
        [m.value for m in CalculationMode],
        format_func=lambda v: MODE_TITLES[CalculationMode(v)],
        key="calculation_mode",
        on_change=on_any_change,
    )
    mode = CalculationMode(st.session_state["calculation_mode"])

    if mode is CalculationMode.SIP:
        amount_input("Desired monthly income", "starting_monthly_income")
        amount_input("Target corpus at end age", "target_end_corpus")
    elif mode is CalculationMode.INCOME:
        amount_input("Monthly SIP amount", "starting_sip_amount")
        amount_input("Target corpus at end age", "target_end_corpus")
    else:
        amount_input("Monthly SIP amount", "starting_sip_amount")
        amount_input("Desired monthly income", "starting_monthly_income")

    st.header("Timeline")
    st.text_input("Current age", key="current_age", on_change=on_any_change)
    st.text_input("Planned retirement age", key="retirement_age", on_change=on_any_change)
    st.text_input("Life expectancy (SWP end age)", key="end_age", on_change=on_any_change)
    st.text_input("SIP payment end age", key="sip_payment_end_age", on_change=on_any_change)
    st.text_input("SIP increase freeze age", key="sip_freeze_age", on_change=on_any_change)

    st.header("Return + Growth")
    st.text_input("Expected annual return %", key="expected_return", on_change=on_any_change)
    st.text_input("Annual SIP increase %", key="sip_increase_rate", on_change=on_any_change)
    st.text_input("Annual income increase %", key="yearly_income_increase", on_change=on_any_change)

    st.header("Lump sums")
    amount_input("Current investment value", "added_corpus_now")
    amount_input("Lumpsum at retirement", "added_corpus_retirement")

    st.checkbox("Debug logging", key="enable_debug_logging", on_change=on_any_change)

    cA, cB, cC = st.columns(3)
    if cA.button("Save now"):
        save_settings(collect_settings_from_session())
        st.success("Saved.")
    cB.button("Reset", on_click=on_reset)
    cC.button("Clear saved", on_click=on_clear)

# ======================
# Simulation
# ======================
settings_now = collect_settings_from_session()

try:
    _params, solved = solve_from_settings(settings_now)
except (InvalidParametersError, SimulationError, SolverError) as ex:
    st.error(f"Could not run the projection: {ex}")
    st.stop()

result = solved.result
summary = result.summary
df = yearly_data_frame(result.yearly_data)

# the report shows the solved value in place of the entered one
report_settings = dict(settings_now)
report_settings["starting_sip_amount"] = round_money(solved.sip_amount)
report_settings["starting_monthly_income"] = round_money(solved.monthly_income)

# ======================
# Output
# ======================
c1, c2, c3, c4 = st.columns(4)
if mode is CalculationMode.SIP:
    c1.metric("Required monthly SIP", format_currency(solved.sip_amount))
elif mode is CalculationMode.INCOME:
    c1.metric("Maximum monthly income", format_currency(solved.monthly_income))
else:
    c1.metric("Monthly SIP / income", f"{format_currency(solved.sip_amount)} / {format_currency(solved.monthly_income)}")
c2.metric("Total SIP invested", format_currency(summary.total_sip_invested))
c3.metric("Total withdrawn", format_currency(summary.total_withdrawn))
c4.metric("Final corpus", format_currency(summary.final_corpus), help=convert_to_words(summary.final_corpus) or None)

if mode is not CalculationMode.END_CORPUS and not solved.converged:
    st.warning(
        f"The search stopped after {solved.iterations} iterations without landing on the target; "
        "showing the closest value found."
    )
if not solved.monotonic:
    st.warning("The final corpus does not move in one direction across the search range; treat the result with care.")

if df.empty:
    st.info("No years to project: the end age is before the current age.")
    st.stop()

st.subheader("Visuals")
left, right = st.columns(2)

with left:
    st.write("**Corpus at year end — X axis is age**")
    fig, ax = plt.subplots()
    ax.plot(df["Age"], df["End Corpus"], label="Year-end corpus")
    retirement_age = settings_now["retirement_age"]
    if df["Age"].min() <= retirement_age <= df["Age"].max():
        ax.axvline(retirement_age, linestyle="--", linewidth=1, color="red", label="Retirement")
    ax.set_ylabel("Corpus (₹)")
    ax.set_xlabel("Age")
    ax.legend()
    st.pyplot(fig)

with right:
    st.write("**Yearly SIP vs withdrawals — X axis is age**")
    fig2, ax2 = plt.subplots()
    ax2.bar(df["Age"], df["Yearly SIP"], label="SIP invested")
    ax2.bar(df["Age"], -df["Yearly Withdrawal"], label="Withdrawn")
    ax2.axhline(0, linewidth=0.5, color="black")
    ax2.set_ylabel("₹/year")
    ax2.set_xlabel("Age")
    ax2.legend()
    st.pyplot(fig2)

st.subheader("Year-by-year table")
st.dataframe(df, use_container_width=True)

d1, d2 = st.columns(2)
d1.download_button(
    "Download CSV",
    data=make_csv(result.yearly_data),
    file_name="sip_swp_projection.csv",
    mime="text/csv",
)
d2.download_button(
    "Download PDF report",
    data=make_pdf_report(report_settings, summary, result.yearly_data),
    file_name=report_filename(mode),
    mime="application/pdf",
)
