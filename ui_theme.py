import streamlit as st


def inject_ui_theme() -> None:
    st.markdown(
        """
        <style>
        :root {
          --mc-bg: #f7f4ee;
          --mc-ink: #1f2a2e;
          --mc-card: #ffffff;
          --mc-accent: #d96941;
          --mc-muted: #667085;
          --mc-border: rgba(31, 42, 46, 0.08);
          --mc-shadow: 0 14px 30px rgba(31,42,46,0.08);
          --mc-code-bg: #f2efe8;
        }
        .stApp {
          background:
            radial-gradient(circle at 8% 8%, rgba(217,105,65,0.10), transparent 35%),
            radial-gradient(circle at 92% 14%, rgba(31,122,106,0.10), transparent 38%),
            linear-gradient(180deg, #fbfaf7 0%, var(--mc-bg) 100%);
        }
        section[data-testid="stSidebar"] div[data-testid="stSidebarNav"] ul li:first-child {
          display: none;
        }
        .mc-hero {
          background: linear-gradient(135deg, #fff, #fff7ef 55%, #eefaf7);
          border: 1px solid var(--mc-border);
          border-radius: 18px;
          padding: 1.1rem 1.2rem;
          box-shadow: var(--mc-shadow);
          margin-bottom: 1rem;
        }
        .mc-kicker {
          display: inline-block;
          background: rgba(217,105,65,0.12);
          color: #a34728;
          border-radius: 999px;
          padding: 0.2rem 0.65rem;
          font-size: 0.78rem;
          font-weight: 700;
          margin-bottom: 0.4rem;
        }
        .mc-hero h1 { margin: 0; font-size: 2rem; color: var(--mc-ink); }
        .mc-hero p { margin: 0.5rem 0 0; color: var(--mc-muted); }
        .mc-card {
          background: var(--mc-card);
          border: 1px solid var(--mc-border);
          border-radius: 16px;
          padding: 0.9rem 1rem;
          box-shadow: var(--mc-shadow);
          margin-bottom: 0.8rem;
        }
        .mc-card h3 { margin: 0 0 0.35rem; font-size: 1rem; color: var(--mc-ink); }
        .mc-card p { margin: 0; color: var(--mc-muted); font-size: 0.92rem; }
        .mc-section {
          margin-top: 0.75rem;
          margin-bottom: 0.4rem;
          font-size: 1.05rem;
          font-weight: 700;
          color: var(--mc-ink);
        }
        .mc-rendered pre {
          background: var(--mc-code-bg);
          border-radius: 10px;
          padding: 0.6rem 0.8rem;
          white-space: pre-wrap;
        }
        .mc-rendered code { background: var(--mc-code-bg); border-radius: 4px; padding: 0 0.2rem; }
        .mc-rendered ul { margin: 0.3rem 0; padding-left: 1.1rem; }
        .mc-rendered h1, .mc-rendered h2, .mc-rendered h3 { color: var(--mc-ink); margin: 0.4rem 0; }
        .mc-list { margin: 0; padding-left: 1.05rem; color: var(--mc-ink); line-height: 1.55; }
        .mc-list li { margin-bottom: 0.35rem; }
        .mc-muted { color: var(--mc-muted); }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_hero(title: str, description: str, kicker: str) -> None:
    st.markdown(
        f"""
        <div class="mc-hero">
          <div class="mc-kicker">{kicker}</div>
          <h1>{title}</h1>
          <p>{description}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_info_cards(cards: list[tuple[str, str]]) -> None:
    cols = st.columns(len(cards))
    for col, (title, desc) in zip(cols, cards):
        with col:
            st.markdown(
                f'<div class="mc-card"><h3>{title}</h3><p>{desc}</p></div>',
                unsafe_allow_html=True,
            )


def section_heading(title: str) -> None:
    st.markdown(f'<div class="mc-section">{title}</div>', unsafe_allow_html=True)


def rendered_html(html: str, card: bool = False) -> None:
    """Show renderer output. ``html`` must come from ``markdown_render.render_html``."""
    classes = "mc-rendered mc-card" if card else "mc-rendered"
    st.markdown(f'<div class="{classes}">{html}</div>', unsafe_allow_html=True)


def render_sidebar_nav(active_page: str) -> None:
    with st.sidebar:
        st.markdown("### Menu Critic")
        st.caption("Upload, discuss, and finalize a menu review")
        st.page_link(
            "pages/01_Menu_Critic.py",
            label="Menu Critic",
            icon="🍽️",
            disabled=active_page == "menu_critic",
        )
        st.page_link(
            "pages/02_About.py",
            label="About",
            icon="ℹ️",
            disabled=active_page == "about",
        )
