from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

import streamlit as st
from ui_theme import inject_ui_theme, render_hero, render_info_cards, render_sidebar_nav, rendered_html, section_heading

from markdown_render import render_html
from menu_chat_core import (
    BackendSetupError,
    ClientConfig,
    MenuCriticClient,
    MenuFile,
    Sender,
    SessionStatus,
    load_config,
)
from session_controller import SessionController

logger = logging.getLogger(__name__)

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

st.set_page_config(page_title="Menu Critic", page_icon="🍽️", layout="wide")

STATUS_LABELS = {
    SessionStatus.IDLE: "Waiting for a menu",
    SessionStatus.UPLOADING: "Uploading",
    SessionStatus.ACTIVE: "Conversation open",
    SessionStatus.AWAITING_REPLY: "Waiting for reply",
    SessionStatus.FINALIZING: "Writing final report",
    SessionStatus.FINALIZED: "Report ready",
}


def _read_secrets() -> dict[str, Any]:
    try:
        return dict(st.secrets)
    except Exception:
        logger.info("No Streamlit secrets available; falling back to environment.")
        return {}


def _init_state(config: ClientConfig) -> SessionController:
    controller = st.session_state.get("controller")
    if controller is None or controller.client.config != config:
        logger.info("Creating session controller: backend=%s auth=%s", config.backend_url, config.auth_enabled)
        controller = SessionController(MenuCriticClient(config))
        st.session_state["controller"] = controller
    st.session_state.setdefault("selected_upload_id", None)
    return controller


def _run(action: Coroutine[Any, Any, Any], what: str) -> Any:
    try:
        return asyncio.run(action)
    except Exception as exc:
        logger.exception("Unexpected error during %s.", what)
        st.error(f"Unexpected error: {exc}")
        return None


def _handle_login_handoff(controller: SessionController) -> None:
    params = st.query_params
    if "token" in params:
        controller.login(params["token"])
        del st.query_params["token"]
    if "error" in params:
        logger.warning("Login handoff returned error: %s", params["error"])
        st.error(f"Login failed: {params['error']}")
        del st.query_params["error"]


def _render_auth_sidebar(controller: SessionController) -> None:
    with st.sidebar:
        st.divider()
        if not controller.credential:
            st.link_button("Sign in with Google", controller.client.config.login_url, use_container_width=True)
            return
        if not controller.user_lookup_attempted:
            _run(controller.fetch_current_user(), "current user lookup")
        if controller.current_user is not None:
            st.caption(f"Signed in as {controller.current_user.email}")
        if st.button("Log out", use_container_width=True):
            controller.logout()
            st.rerun()


def _sync_selected_file(controller: SessionController, uploaded: Any) -> None:
    upload_id = getattr(uploaded, "file_id", None) if uploaded is not None else None
    if upload_id == st.session_state["selected_upload_id"]:
        return
    st.session_state["selected_upload_id"] = upload_id
    controller.select_file(MenuFile.from_upload(uploaded) if uploaded is not None else None)


def _upload(controller: SessionController) -> bool | None:
    progress_bar = st.progress(0, text="Uploading menu...")
    unsubscribe = controller.tracker.subscribe(
        lambda percent: progress_bar.progress(percent, text=f"Uploading menu... {percent}%")
    )
    try:
        with st.spinner("Uploading and waiting for the first critique..."):
            return _run(controller.start_upload(), "upload")
    finally:
        unsubscribe()
        progress_bar.empty()


def _render_transcript(controller: SessionController) -> None:
    if not len(controller.messages):
        st.caption("Upload a menu to start the conversation.")
        return
    for message in controller.messages:
        if message.sender is Sender.USER:
            with st.chat_message("user"):
                # User text is shown as typed, never interpreted.
                st.text(message.content)
        else:
            with st.chat_message("assistant", avatar="🍽️"):
                rendered_html(render_html(message.content))


def _render_final_report(report: str) -> None:
    section_heading("Final Report")
    rendered_html(render_html(report), card=True)
    st.download_button(
        label="Download report",
        data=report,
        file_name="menu_critic_report.md",
        mime="text/markdown",
        use_container_width=True,
    )


inject_ui_theme()
render_sidebar_nav("menu_critic")

render_hero(
    title="Menu Critic",
    kicker="AI menu review, in conversation",
    description=(
        "Upload your menu for an initial critique, push back or ask follow-ups until it fits your "
        "restaurant, then generate one consolidated report."
    ),
)
render_info_cards(
    [
        ("1. Upload", "JPG, PNG, PDF or text menu. Large photos are resized first."),
        ("2. Discuss", "Ask for changes, more detail, or a different angle."),
        ("3. Finalize", "Get a single report that sums up the conversation."),
    ]
)

try:
    config = load_config(_read_secrets())
except BackendSetupError:
    st.warning(
        "Missing `MENU_CRITIC_BACKEND_URL`. Add it to `.streamlit/secrets.toml` (local) or set it as "
        "an environment variable, then refresh."
    )
    st.code('MENU_CRITIC_BACKEND_URL = "http://localhost:3001"', language="toml")
    st.stop()

controller = _init_state(config)
if config.auth_enabled:
    _handle_login_handoff(controller)
    _render_auth_sidebar(controller)
    if not controller.credential:
        st.info("Sign in from the sidebar to analyze a menu.")

left, right = st.columns([1.2, 0.8], vertical_alignment="top")

with left:
    uploaded = st.file_uploader(
        "Menu file",
        type=["jpg", "jpeg", "png", "pdf", "txt"],
        accept_multiple_files=False,
        key=f"menu_file_{controller.upload_generation}",
        disabled=controller.in_flight,
        help="Uploading a new menu starts a fresh conversation.",
    )
    _sync_selected_file(controller, uploaded)
    upload_clicked = st.button(
        "Upload & analyze",
        type="primary",
        use_container_width=True,
        disabled=controller.in_flight,
    )

with right:
    st.metric("Status", STATUS_LABELS[controller.status])
    finalize_clicked = st.button(
        "Generate final report",
        use_container_width=True,
        disabled=not controller.can_finalize,
    )

prompt = st.chat_input(
    "Ask a follow-up about the critique...",
    disabled=not controller.can_chat,
)

outcome = None
if upload_clicked:
    logger.info("Upload requested.")
    outcome = _upload(controller)
elif finalize_clicked:
    logger.info("Finalize requested.")
    with st.spinner("Writing the final report..."):
        outcome = _run(controller.finalize(), "finalize")
elif prompt is not None:
    logger.info("Chat message submitted. chars=%s", len(prompt))
    with st.spinner("Waiting for a reply..."):
        outcome = _run(controller.send_message(prompt), "send")

# Rerun so buttons and inputs pick up the new status.
if outcome is not None:
    st.rerun()

if controller.errors:
    st.error(controller.errors.message)

section_heading("Conversation")
_render_transcript(controller)

if controller.session.final_report:
    _render_final_report(controller.session.final_report)
