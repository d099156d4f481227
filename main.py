"""Command-line entry point: build the site index, ask a question, or launch the UI."""

from __future__ import annotations

import argparse
import asyncio
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from siterag.config import config
from siterag.conversation import ChatSession
from siterag.embeddings import EmbeddingService
from siterag.pipeline import IndexBuildPipeline

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_APP = PROJECT_ROOT / "app.py"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Site assistant: index builder, one-shot questions and chat UI.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build the index from site HTML.")
    build.add_argument(
        "site_root",
        type=Path,
        nargs="?",
        default=config.SITE_ROOT,
        help="Directory holding the site's HTML pages (default: SITE_ROOT).",
    )
    build.add_argument(
        "--json",
        dest="json_path",
        type=Path,
        default=None,
        help="Write the JSON index here (default: INDEX_PATH).",
    )
    build.add_argument(
        "--sqlite",
        dest="sqlite_path",
        type=Path,
        default=None,
        help="Also write the SQLite index here.",
    )
    build.add_argument(
        "--pattern",
        dest="patterns",
        action="append",
        default=None,
        help="Glob pattern of pages to index; repeatable "
        "(default: *.html and compounds/*.html).",
    )
    build.add_argument(
        "--embed",
        action="store_true",
        help="Store OpenAI embeddings for semantic scoring.",
    )

    ask = subparsers.add_parser("ask", help="Answer one question and exit.")
    ask.add_argument("question", help="The question to ask.")

    ui = subparsers.add_parser("ui", help="Launch the Streamlit chat page.")
    ui.add_argument(
        "--app",
        type=Path,
        default=DEFAULT_APP,
        help="Path to the Streamlit script (default: app.py).",
    )
    ui.add_argument(
        "--port",
        type=int,
        default=8501,
        help="Port for the Streamlit server (default: 8501).",
    )
    ui.add_argument(
        "--address",
        default="localhost",
        help="Bind address for the Streamlit server (default: localhost).",
    )
    ui.add_argument(
        "--show",
        dest="headless",
        action="store_false",
        help="Open Streamlit in a browser window instead of headless mode.",
    )
    ui.set_defaults(headless=True)
    return parser.parse_args(argv)


def build_index(args: argparse.Namespace, logger: Logger) -> int:
    """Build and write the index artifacts."""  # noqa: DOC201
    site_root: Path = args.site_root
    if not site_root.is_dir():
        logger.error("Site root not found: %s", site_root)
        return 1
    if args.embed and not config.get_openai_api_key():
        logger.error("OPENAI_API_KEY is required for --embed")
        return 1

    pipeline = IndexBuildPipeline(
        embedding_service=EmbeddingService() if args.embed else None,
    )
    index = pipeline.build(site_root, patterns=args.patterns)
    if index.is_empty:
        logger.warning("No chunks were produced from %s", site_root)

    json_path = args.json_path or Path(config.INDEX_PATH)
    try:
        pipeline.write_json(index, json_path)
        if args.sqlite_path is not None:
            pipeline.write_sqlite(index, args.sqlite_path)
    except OSError:
        logger.exception("Failed to write index")
        return 1

    print(  # noqa: T201
        f"Indexed {index.metadata.total_pages} pages into "
        f"{index.metadata.total_chunks} chunks"
    )
    return 0


async def answer_question(question: str) -> int:
    """Answer a single question through the full pipeline."""  # noqa: DOC201
    session = ChatSession.from_config()
    session.store = None
    await session.start()
    if session.status_notice:
        print(session.status_notice, file=sys.stderr)  # noqa: T201

    reply = await session.ask(question)
    print(reply.text)  # noqa: T201
    return 0


def build_streamlit_command(
    script_path: Path,
    *,
    port: int,
    headless: bool,
    address: str,
) -> list[str]:
    """Construct the streamlit CLI invocation."""  # noqa: DOC201
    return [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(script_path),
        "--server.port",
        str(port),
        "--server.address",
        address,
        "--server.headless",
        "true" if headless else "false",
    ]


def run_streamlit(command: Sequence[str], logger: Logger) -> int:
    """Execute the configured streamlit command and return its exit code."""  # noqa: DOC201
    try:
        result = subprocess.run(
            command,
            check=False,
            cwd=PROJECT_ROOT,
        )
    except KeyboardInterrupt:
        logger.info("Site assistant stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch Streamlit")
        return 1
    return result.returncode


def launch_ui(args: argparse.Namespace, logger: Logger) -> int:
    """Launch the Streamlit chat page."""  # noqa: DOC201
    script_path = (
        args.app if args.app.is_absolute() else (PROJECT_ROOT / args.app)
    ).resolve()
    if not script_path.exists():
        logger.error("Streamlit script not found: %s", script_path)
        return 1

    logger.info(
        "Starting site assistant at http://%s:%s (headless=%s)",
        args.address,
        args.port,
        args.headless,
    )

    command = build_streamlit_command(
        script_path,
        port=args.port,
        headless=args.headless,
        address=args.address,
    )

    return_code = run_streamlit(command, logger)
    if return_code != 0:
        logger.error("Streamlit exited with status %s", return_code)
    return return_code


def main(argv: Sequence[str] | None = None) -> int:
    """Dispatch the selected subcommand."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    if args.command == "build":
        return build_index(args, logger)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    if args.command == "ask":
        return asyncio.run(answer_question(args.question))
    return launch_ui(args, logger)


if __name__ == "__main__":
    sys.exit(main())
