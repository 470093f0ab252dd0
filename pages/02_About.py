import streamlit as st

from ui_theme import inject_ui_theme, render_hero, render_info_cards, render_sidebar_nav, section_heading


st.set_page_config(page_title="About | Menu Critic", page_icon="ℹ️", layout="wide")

inject_ui_theme()
render_sidebar_nav("about")

render_hero(
    title="About Menu Critic",
    kicker="How the conversation works",
    description=(
        "Menu Critic is a Streamlit front end for a menu analysis service. You upload a menu, get a "
        "first critique, refine it over a few messages, and finish with one consolidated report."
    ),
)

render_info_cards(
    [
        ("One request at a time", "While a reply or report is on its way, new actions wait."),
        ("Transcript you can trust", "Your messages stay in the log even if delivery fails."),
        ("Safe formatting", "AI replies are escaped before any formatting is applied."),
    ]
)

section_heading("Flow")
st.markdown(
    """
    <div class="mc-card">
      <ol class="mc-list">
        <li>Uploading a menu starts a new conversation and clears the previous one.</li>
        <li>The service answers with an initial critique of the menu.</li>
        <li>Follow-up messages refine the critique. Sending another message after a report clears the report.</li>
        <li>Generating the final report sums up everything discussed so far.</li>
      </ol>
    </div>
    """,
    unsafe_allow_html=True,
)

section_heading("Configuration")
st.markdown(
    """
    <div class="mc-card">
      <ul class="mc-list">
        <li><code>MENU_CRITIC_BACKEND_URL</code>: base URL of the analysis service (Streamlit secrets or environment).</li>
        <li><code>MENU_CRITIC_AUTH_ENABLED</code>: set to <code>true</code> to require Google sign-in and send a bearer token.</li>
        <li>Menus above 10 MB are rejected; large JPG/PNG photos are resized and recompressed before upload.</li>
      </ul>
    </div>
    """,
    unsafe_allow_html=True,
)
