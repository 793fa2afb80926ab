"""
================================================================================
AUTHENTICATION MODULE
================================================================================

Purpose: Email/password authentication with Supabase Auth for the Streamlit
app. The signed-in user lives in ``st.session_state`` and every change of the
auth state is forwarded to the interaction tracker so anonymous events can be
re-attributed after sign-in.
================================================================================
"""

import logging

import streamlit as st

from eventscope import db

logger = logging.getLogger(__name__)

AUTH_USER_KEY = "auth_user"
AUTH_CLIENT_KEY = "_supabase_auth_client"

# =============================================================================
# AUTHENTICATION STATUS
# =============================================================================
# PURPOSE: Check who is currently logged in


def get_current_user():
    """Return the signed-in user as ``{"id", "email", "name"}`` or None."""
    return st.session_state.get(AUTH_USER_KEY)


def is_logged_in():
    """Check if a user is currently logged in."""
    user = get_current_user()
    return bool(user and user.get("id"))


def get_current_user_id():
    user = get_current_user()
    return user.get("id") if user else None


def get_user_email():
    user = get_current_user()
    return user.get("email") if user else None


def is_admin():
    """Check whether the current user is listed under ``[admin] emails`` in secrets.

    Returns:
        bool: True for admin accounts, False otherwise (also when the
        secrets section is missing).
    """
    email = get_user_email()
    if not email:
        return False
    try:
        admin_emails = st.secrets.get("admin", {}).get("emails", [])
    except Exception as e:
        logger.warning(f"Could not read admin list from secrets: {e}")
        return False
    return email.lower() in {str(entry).lower() for entry in admin_emails}


# =============================================================================
# SIGN IN / SIGN UP
# =============================================================================
# PURPOSE: Talk to Supabase Auth and keep session state in sync


def get_auth_client():
    """Return the Supabase client that holds this browser session's auth state.

    The shared ``db.get_client()`` connection stays anonymous. Signing in on
    it would hand one user's session to every other visitor.
    """
    client = st.session_state.get(AUTH_CLIENT_KEY)
    if client is None:
        client = db.create_auth_client()
        st.session_state[AUTH_CLIENT_KEY] = client
    return client


def _user_to_dict(user):
    metadata = getattr(user, "user_metadata", None) or {}
    return {
        "id": user.id,
        "email": user.email,
        "name": metadata.get("name"),
    }


def _set_current_user(user_dict):
    st.session_state[AUTH_USER_KEY] = user_dict

    from eventscope.tracking_widgets import get_tracker
    tracker = get_tracker()
    if tracker is not None:
        tracker.on_signed_in(user_dict["id"])


def sign_in(email, password):
    """Sign in with email and password.

    Returns:
        dict: The signed-in user.

    Raises:
        Exception: Whatever Supabase Auth raises for bad credentials or
            network problems. The login page turns it into a message.
    """
    response = get_auth_client().auth.sign_in_with_password({"email": email, "password": password})
    if response.user is None:
        raise ValueError("Sign in failed: no user returned")

    user = _user_to_dict(response.user)
    profile = db.get_user_profile(user["id"])
    if profile and profile.get("name"):
        user["name"] = profile["name"]

    _set_current_user(user)
    logger.info(f"User {user['id']} signed in")
    return user


def sign_up(email, password, name=None):
    """Create an account and its ``user_profiles`` row.

    When email confirmation is enabled Supabase returns a user without a
    session. The profile is still created, but the user is only signed in
    when a session exists.

    Returns:
        tuple: ``(user dict, signed_in)``
    """
    options = {"data": {"name": name}} if name else {}
    response = get_auth_client().auth.sign_up({"email": email, "password": password, "options": options})
    if response.user is None:
        raise ValueError("Sign up failed: no user returned")

    user = _user_to_dict(response.user)
    user["name"] = name or user.get("name")
    if db.create_user_profile(user["id"], email, name) is None:
        st.warning("⚠️ Account created, but the profile could not be saved")

    signed_in = response.session is not None
    if signed_in:
        _set_current_user(user)
    logger.info(f"User {user['id']} signed up (signed_in={signed_in})")
    return user, signed_in


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================
# PURPOSE: Functions for managing user session state


def clear_user_session():
    """Remove all user-related data from session state and the data caches.

    Without this the next user of the same browser session could see the
    previous user's filters and ratings.
    """
    from eventscope.filters import get_filter_session_keys

    for key in get_filter_session_keys():
        if key in st.session_state:
            del st.session_state[key]

    for key in (AUTH_USER_KEY, AUTH_CLIENT_KEY, "selected_event_id", "admin_delete_pending"):
        if key in st.session_state:
            del st.session_state[key]

    st.cache_data.clear()


def sign_out():
    """Sign out of Supabase and reset the tracker to a new anonymous id."""
    from eventscope.tracking_widgets import get_tracker

    client = st.session_state.get(AUTH_CLIENT_KEY)
    if client is not None:
        try:
            client.auth.sign_out()
        except Exception as e:
            logger.warning(f"Supabase sign out failed: {e}")

    tracker = get_tracker()
    if tracker is not None:
        tracker.on_signed_out()
        tracker.flush()

    clear_user_session()


def handle_logout():
    """Perform a complete logout and restart the script in anonymous state."""
    sign_out()
    st.rerun()
