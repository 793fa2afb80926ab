"""pages.login

Email/password sign in and sign up. Every attempt, success and failure is
recorded by the interaction tracker under the "authentication" category.
"""

import logging

import streamlit as st

from eventscope.auth import is_logged_in, sign_in, sign_up
from eventscope.tracking_widgets import track

logger = logging.getLogger(__name__)

if is_logged_in():
    st.success("✅ You are signed in.")
    st.stop()

st.title("🔑 Welcome to EventScope")

mode = st.radio("Mode", ["Sign in", "Create account"], horizontal=True, label_visibility="collapsed",
                key="login_mode")
is_sign_up = mode == "Create account"

with st.form("login_form"):
    name = st.text_input("Name (optional)") if is_sign_up else ""
    email = st.text_input("Email")
    password = st.text_input("Password", type="password")
    submitted = st.form_submit_button("Create account" if is_sign_up else "Sign in", type="primary",
                                      use_container_width=True)

if submitted:
    if not email or not password:
        st.error("Please enter your email and password.")
        st.stop()

    action = "signup" if is_sign_up else "login"
    attempt_metadata = {"email": email}
    if is_sign_up:
        attempt_metadata["has_name"] = bool(name)
    track(f"{action}_attempt", "authentication", metadata=attempt_metadata)

    try:
        with st.spinner("Signing in..." if not is_sign_up else "Creating account..."):
            if is_sign_up:
                _, signed_in = sign_up(email, password, name or None)
            else:
                sign_in(email, password)
                signed_in = True
    except Exception as e:
        error_message = str(e) or "An error occurred"
        logger.warning(f"{action} failed for {email}: {error_message}")
        track(f"{action}_failed", "authentication", metadata={"email": email, "error": error_message})
        st.error(f"❌ {error_message}")
        st.stop()

    track(f"{action}_success", "authentication", metadata={"email": email})

    if signed_in:
        st.switch_page("pages/home.py")
    else:
        st.info("📧 Check your inbox to confirm your email, then sign in.")
