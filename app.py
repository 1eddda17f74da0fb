import json
from datetime import date

import matplotlib.pyplot as plt
import pandas as pd
import streamlit as st

from config import (
    CONSENT_AGE_THRESHOLD,
    DEMO_SPORTS,
    SYSTEM_NAME,
    SYSTEM_VERSION,
)
from dual_consent.age import age_group_label, calculate_age
from dual_consent.audit import load_consent_events
from dual_consent.compliance import compliance_frame
from dual_consent.consent_requests import effective_status
from dual_consent.errors import PersistenceError, RequestExpiredError
from dual_consent.models import (
    AthleteInput,
    ConsentFlags,
    MinorRegistrationData,
    ParentInput,
)
from dual_consent.records import generate_consent_text
from dual_consent.registration import (
    register_minor,
    request_parental_consent,
    resolve_consent_request,
    revoke_consent,
)
from dual_consent.report import generate_compliance_report
from dual_consent.store import JsonUserStore


st.set_page_config(
    page_title="VigorLog Dual-Consent",
    layout="wide",
)

st.title("VigorLog – GDPR Dual-Consent for Youth Athletes")

store = JsonUserStore()

# Sidebar
st.sidebar.header("System")
st.sidebar.write(f"**System:** {SYSTEM_NAME} v{SYSTEM_VERSION}")
st.sidebar.info(
    f"Athletes under {CONSENT_AGE_THRESHOLD} need parental consent "
    "(GDPR Art. 8 / German transposition)."
)
st.sidebar.write("This demo is **advisory only** – consent checks run client side.")

(
    tab_register,
    tab_compliance,
    tab_requests,
    tab_events,
) = st.tabs(
    [
        "📝 Minor Registration",
        "✅ Compliance Dashboard",
        "📨 Consent Requests",
        "📜 Consent Events",
    ]
)

# Registration tab
with tab_register:
    st.subheader("Register a Youth Athlete")

    col1, col2 = st.columns(2)

    with col1:
        st.markdown("#### Athlete")
        a_first = st.text_input("First name", key="a_first")
        a_last = st.text_input("Last name", key="a_last")
        a_email = st.text_input("Email", key="a_email")
        a_birth = st.date_input(
            "Birth date",
            value=date(2011, 6, 1),
            min_value=date(1990, 1, 1),
            max_value=date.today(),
        )
        a_sport = st.selectbox("Sport", DEMO_SPORTS)

        age = calculate_age(a_birth)
        st.write(f"Age: **{age}** ({age_group_label(a_birth)})")

    with col2:
        st.markdown("#### Parent / Guardian")
        p_first = st.text_input("First name", key="p_first")
        p_last = st.text_input("Last name", key="p_last")
        p_email = st.text_input("Email", key="p_email")
        p_phone = st.text_input("Phone (optional)", key="p_phone")

    st.markdown("#### Consents")
    athlete_name = f"{a_first} {a_last}".strip() or "the athlete"
    c_data = st.checkbox("Data processing", help=generate_consent_text("data_processing", athlete_name, age))
    c_medical = st.checkbox("Health data", help=generate_consent_text("medical_data", athlete_name, age))
    c_access = st.checkbox("Parent access", help=generate_consent_text("parent_access", athlete_name, age))

    if st.button("Register athlete"):
        data = MinorRegistrationData(
            athlete=AthleteInput(a_first, a_last, a_email, a_birth.isoformat(), a_sport),
            parent=ParentInput(p_first, p_last, p_email, p_phone or None),
            consents=ConsentFlags(c_data, c_medical, c_access),
        )
        try:
            result = register_minor(data, store)
        except PersistenceError as e:
            st.error(str(e))
        else:
            if result.success:
                st.success(
                    f"Registered {result.athlete.full_name} with "
                    f"{len(result.consent_records)} consent record(s)."
                )
                if result.consent_records:
                    st.dataframe(
                        pd.DataFrame([r.to_dict() for r in result.consent_records]),
                        use_container_width=True,
                    )
            else:
                for err in result.errors:
                    st.error(err)

# Compliance tab
with tab_compliance:
    st.subheader("Athlete Compliance")

    df = compliance_frame(store)
    if df.empty:
        st.info("No athletes registered yet.")
    else:
        st.dataframe(df, use_container_width=True)

        counts = df["age_group"].value_counts().sort_index()
        fig, ax = plt.subplots()
        ax.bar(counts.index, counts.values)
        ax.set_ylabel("Athletes")
        ax.set_title("Athletes by age group")
        ax.tick_params(axis="x", labelrotation=45)
        st.pyplot(fig)

    st.markdown("---")
    st.markdown("#### Consent Records")
    consents = store.get_consents()
    if consents:
        st.dataframe(pd.DataFrame([c.to_dict() for c in consents]), use_container_width=True)
        active_ids = [c.id for c in consents if c.is_active]
        if active_ids:
            to_revoke = st.selectbox("Revoke consent record", active_ids)
            if st.button("Revoke"):
                revoke_consent(store, to_revoke)
                st.warning(f"Consent record {to_revoke} revoked.")
    else:
        st.info("No consent records yet.")

    st.markdown("---")
    report = generate_compliance_report(store)
    st.download_button(
        label="Download compliance report JSON",
        data=json.dumps(report, indent=2),
        file_name="compliance_report.json",
        mime="application/json",
    )

# Requests tab
with tab_requests:
    st.subheader("Asynchronous Dual-Consent Requests")

    users = store.get_users()
    athletes = {u.id: u.full_name for u in users if getattr(u, "role", None) == "athlete"}
    parents = {u.id: u.email for u in users if getattr(u, "role", None) == "parent"}

    if athletes and parents:
        athlete_id = st.selectbox("Athlete", list(athletes), format_func=athletes.get)
        parent_id = st.selectbox("Parent", list(parents), format_func=parents.get)
        if st.button("Send consent request"):
            req = request_parental_consent(store, athlete_id, parent_id)
            st.success(f"Request {req.id} expires at {req.expires_at}.")
    else:
        st.info("Register an athlete and a parent first.")

    requests = store.get_requests()
    if requests:
        df_req = pd.DataFrame([r.to_dict() for r in requests])
        df_req["effective_status"] = [effective_status(r) for r in requests]
        st.dataframe(df_req, use_container_width=True)

        pending = [r.id for r in requests if effective_status(r) == "pending"]
        if pending:
            req_id = st.selectbox("Pending request", pending)
            col_a, col_b = st.columns(2)
            decision = None
            if col_a.button("Approve"):
                decision = True
            if col_b.button("Reject"):
                decision = False
            if decision is not None:
                try:
                    resolve_consent_request(store, req_id, decision)
                    st.success("Request resolved.")
                except RequestExpiredError as e:
                    st.error(str(e))

# Events tab
with tab_events:
    st.subheader("Consent Event Log")

    events = load_consent_events()
    if events:
        df_events = pd.json_normalize(events[-100:])
        st.dataframe(df_events, use_container_width=True, height=400)
    else:
        st.info("No consent events logged yet.")
