"""Chat page for the site assistant using Streamlit."""

import asyncio

import streamlit as st

from siterag import ChatSession, format_message
from siterag.config import config
from siterag.models import IndexStatus

config.setup_logging()
logger = config.get_logger(__name__)

STATUS_LABELS = {
    IndexStatus.NOT_LOADED: "Not loaded",
    IndexStatus.ARTIFACT: "Site index",
    IndexStatus.LIVE_PAGE: "Current page only",
    IndexStatus.EMPTY: "Unavailable",
}

WELCOME_MESSAGE = (
    "Hi! Ask me about the research on this site: compounds, mechanisms, "
    "health effects, safety, or FDA regulations."
)


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "chat_session": None,
            "event_loop": None,
            "last_sources": (),
            "pending_question": None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def run(coroutine):  # noqa: ANN001, ANN205
        """Run a coroutine on the session's own event loop.

        Clients created by the chat session stay bound to one loop across
        Streamlit reruns.
        """  # noqa: DOC201
        loop = st.session_state.event_loop
        if loop is None or loop.is_closed():
            loop = asyncio.new_event_loop()
            st.session_state.event_loop = loop
        return loop.run_until_complete(coroutine)

    @staticmethod
    def is_system_ready() -> bool:
        """Check if the chat session is initialized.

        Returns:
            bool: True if a chat session exists, False otherwise.
        """
        return st.session_state.get("chat_session") is not None


def validate_configuration() -> bool:
    """Validate application configuration and show user feedback.

    Returns:
        bool: True if configuration is valid, False otherwise.
    """
    try:
        config.validate()
    except ValueError as e:
        st.error(f"Configuration Error: {e}")
        return False
    else:
        return True


def initialize_session() -> bool:
    """Create the chat session and load the site index.

    Returns:
        bool: True if initialization succeeds, False otherwise.
    """
    try:
        with st.spinner("Loading site index..."):
            session = ChatSession.from_config()
            SessionState.run(session.start())
            st.session_state.chat_session = session
    except (ValueError, RuntimeError) as e:
        logger.exception("Failed to initialize chat session")
        st.error(f"Failed to initialize assistant: {e}")
        return False

    logger.info("Chat session initialized (%s)", session.retriever.status.value)
    return True


def render_sidebar(session: ChatSession) -> None:
    """Render the sidebar with index status and conversation controls."""
    with st.sidebar:
        st.header("Assistant Status")
        st.write(f"**Knowledge base:** {STATUS_LABELS[session.retriever.status]}")
        index = session.retriever.index
        if index is not None and not index.is_empty:
            st.write(f"**Pages:** {index.metadata.total_pages}")
            st.write(f"**Chunks:** {len(index.chunks)}")
            if index.metadata.build_date:
                st.write(f"**Built:** {index.metadata.build_date}")
        st.write(f"**Scoring:** {session.retriever.scorer.name}")

        st.divider()
        st.subheader("Conversation")
        if st.button("Clear History", use_container_width=True):
            session.clear()
            st.session_state.last_sources = ()
            st.success("Conversation cleared!")
            st.rerun()


def render_history(session: ChatSession) -> None:
    """Render the stored conversation as chat bubbles."""
    with st.chat_message("assistant"):
        st.markdown(format_message(WELCOME_MESSAGE), unsafe_allow_html=True)

    for message in session.history:
        with st.chat_message(message.role):
            st.markdown(format_message(message.text), unsafe_allow_html=True)


def render_chat_input(session: ChatSession) -> None:
    """Read a question, then answer it on the following rerun.

    The question is queued in session state and the page reruns, so the input
    is rendered disabled while the answer is being produced.
    """
    pending = st.session_state.pending_question
    question = st.chat_input("Ask about this site...", disabled=pending is not None)
    if pending is None:
        if question and question.strip():
            st.session_state.pending_question = question.strip()
            st.rerun()
        return

    with st.chat_message("user"):
        st.markdown(format_message(pending), unsafe_allow_html=True)

    with st.chat_message("assistant"), st.spinner("Thinking..."):
        try:
            reply = SessionState.run(session.ask(pending))
        finally:
            st.session_state.pending_question = None
    if not reply.superseded:
        st.session_state.last_sources = reply.sources
    st.rerun()


def main() -> None:
    """Main entry point for the Streamlit chat page.

    Sets up the page, creates the chat session on first run, and renders the
    status notice, conversation history and chat input.
    """
    st.set_page_config(page_title="Site Assistant", layout="centered")

    SessionState.initialize()

    st.title("Site Assistant")

    if not SessionState.is_system_ready() and not (
        validate_configuration() and initialize_session()
    ):
        return

    session: ChatSession = st.session_state.chat_session
    render_sidebar(session)

    notice = session.status_notice
    if notice:
        st.warning(notice)

    render_history(session)
    render_chat_input(session)

    if st.session_state.last_sources:
        st.caption("Sources: " + ", ".join(st.session_state.last_sources))


if __name__ == "__main__":
    main()
