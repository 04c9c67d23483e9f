from __future__ import annotations
import streamlit as st

from himas_core.auth import OtpChallenge
from himas_core.config import load_settings
from himas_core.data.export import export_csv, export_filename
from himas_core.errors import AuthenticationError, ErrorContext, error_boundary, safe_execute
from himas_core.logging import setup_logging
from himas_core.offline import SaveStatus
from himas_core.services import EmailOtpChannel, SmsOtpChannel
from himas_core.state.session import clear_login_flow, get_app_state, init_state

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="Himas Hospital",
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="collapsed",
)

setup_logging()
init_state()
settings = load_settings()
app_state = get_app_state(settings)

STATUS_BADGES = {
    SaveStatus.SAVED: "🟢 Saved",
    SaveStatus.SAVING: "🟡 Saving...",
    SaveStatus.UNSAVED: "🟠 Unsaved changes",
    SaveStatus.ERROR: "🔴 Sync error",
}


# ============================================================================
# LOGIN
# ============================================================================
def render_login() -> None:
    st.title("🏥 Himas Hospital")
    st.caption("Secure Staff Portal Access")

    challenge = st.session_state.get("otp_challenge")
    pending = st.session_state.get("pending_user")

    if challenge is None or pending is None:
        with st.form("login"):
            email = st.text_input("Staff e-mail")
            password = st.text_input("Password", type="password")
            via_email = st.checkbox("Send the code by e-mail instead of SMS")
            submitted = st.form_submit_button("Continue", use_container_width=True)

        if not app_state.is_staff_loaded:
            st.info("Staff directory is still loading...")
        elif not app_state.staff:
            st.warning("No staff accounts yet. Create the first one with `python scripts/create_staff.py`.")

        if submitted:
            try:
                user = app_state.authenticate(email, password)
            except AuthenticationError as e:
                st.error(e.message)
                return
            channel = (
                EmailOtpChannel(settings.sendgrid_api_key, settings.sendgrid_sender)
                if via_email
                else SmsOtpChannel()
            )
            challenge = OtpChallenge(channel, ttl_seconds=settings.otp_ttl_seconds)
            destination = user.email if via_email else user.mobile
            if not safe_execute(challenge.issue, destination, default=False):
                st.error("Could not deliver the access code. Try the other channel.")
                return
            st.session_state["otp_challenge"] = challenge
            st.session_state["pending_user"] = user
            st.rerun()
        return

    st.info(f"An access code was sent to {challenge.destination}")
    with st.form("otp"):
        code = st.text_input("Access code", max_chars=6)
        verified = st.form_submit_button("Verify", use_container_width=True)
    if st.button("Start over"):
        clear_login_flow()
        st.rerun()

    if verified:
        try:
            ok = challenge.verify(code)
        except AuthenticationError as e:
            clear_login_flow()
            st.error(e.message)
            return
        if not ok:
            st.error("Incorrect code")
            return
        clear_login_flow()
        app_state.begin_session(pending.role)
        st.rerun()


# ============================================================================
# SIGNED-IN SHELL
# ============================================================================
def render_sync_bar() -> None:
    status = app_state.save_status
    cols = st.columns([3, 2, 1, 1])
    with cols[0]:
        st.markdown(f"**{app_state.role.value.replace('_', ' ').title()}**")
    with cols[1]:
        st.caption(STATUS_BADGES.get(status, "⚪ Not synced"))
        if app_state.last_synced_at:
            st.caption(f"Last synced {app_state.last_synced_at:%H:%M:%S}")
    with cols[2]:
        if st.button("🔄 Refresh"):
            with ErrorContext("Refreshing patients"):
                app_state.refresh()
            st.rerun()
    with cols[3]:
        if st.button("Logout"):
            app_state.end_session()
            st.rerun()

    if app_state.is_loading and st.button("Stop loading"):
        app_state.force_stop_loading()
        st.rerun()
    if app_state.last_error:
        st.warning(f"Working from local data: {app_state.last_error}")


def render_patient_list() -> None:
    patients = app_state.patients
    st.subheader(f"Patients ({len(patients)})")
    if not patients:
        st.info("No patients registered yet.")
        return

    st.dataframe(
        [
            {
                "File No": p.id,
                "Name": p.name,
                "Age": p.age,
                "Condition": p.condition.value,
                "Assessment": p.doctor_assessment.quick_code.value if p.doctor_assessment else "Pending",
                "Proposal": p.package_proposal.status.value if p.package_proposal else "",
            }
            for p in patients
        ],
        use_container_width=True,
        hide_index=True,
    )
    render_export(patients)


@error_boundary(error_message="Export is unavailable right now")
def render_export(patients) -> None:
    st.download_button(
        "Export CSV",
        export_csv(patients),
        file_name=export_filename(),
        mime="text/csv",
    )


if app_state.role is None:
    render_login()
else:
    render_sync_bar()
    render_patient_list()
