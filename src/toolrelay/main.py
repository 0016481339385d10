"""
toolrelay command-line entry point.

Asks a single question and prints the final answer::

    toolrelay "What changed in the latest Python release?" --browse -v

Configuration comes from ``TOOLRELAY_*`` environment variables (see
``toolrelay.config.Settings``); flags override them for one invocation.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from toolrelay.config import get_settings
from toolrelay.conversation import Conversation, Message
from toolrelay.errors import ToolRelayError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolrelay",
        description="Ask a tool-augmented chat model a question.",
    )
    parser.add_argument("question", help="Question to ask")
    parser.add_argument("--system", help="System prompt")
    parser.add_argument("--model", help="Model identifier")
    parser.add_argument("--temperature", type=float, help="Sampling temperature")
    parser.add_argument("--max-tokens", type=int, help="Completion token limit")
    parser.add_argument(
        "--max-calls", type=int, help="Maximum completion requests for this run"
    )
    parser.add_argument(
        "--browse", action="store_true", help="Enable web search and page fetching"
    )
    parser.add_argument(
        "--search-only",
        action="store_true",
        help="Enable web search without page fetching",
    )
    parser.add_argument(
        "--knowledge-url", help="Page to load as reference knowledge before asking"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        conversation = Conversation(settings=settings)
        if args.system:
            conversation.add_system_message(args.system)
        if args.browse or args.search_only:
            conversation.enable_browsing(search_only=args.search_only)
        if args.knowledge_url:
            conversation.set_knowledge_url(args.knowledge_url)
        conversation.add_user_message(args.question)

        result = conversation.run(
            model=args.model,
            temperature=args.temperature,
            max_tokens=args.max_tokens,
            call_ceiling=args.max_calls,
        )
    except ToolRelayError as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if isinstance(result, Message):
        print(result.content or "")
    else:
        print(json.dumps(result, indent=2))
    logger.debug("Completed with %d request(s)", conversation.call_count)
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
