"""Launch the restaurant chat relay."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

import uvicorn

from chat_relay.api import create_app
from chat_relay.config import load_config
from chat_relay.errors import MissingAPIKeyError
from chat_relay.utils import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the restaurant chat relay in front of a chat-completions API.")
    parser.add_argument("--host", default="0.0.0.0", help="Host interface to bind.")
    parser.add_argument("--port", type=int, help="Port to bind (default: $PORT from the environment or .env, else 5000).")
    parser.add_argument("--log_dir", help="Directory for application logs.")
    parser.add_argument("--env_file", help="Optional .env file holding OPENAI_API_KEY.")
    parser.add_argument("--llm_endpoint", help="Upstream chat-completions endpoint.")
    parser.add_argument("--llm_model", help="Default model when a request names none.")
    parser.add_argument("--request_timeout", type=float, help="Timeout for upstream calls (seconds); none by default.")
    parser.add_argument("--max_history_messages", type=int, help="Max messages kept per conversation.")
    parser.add_argument("--api_prefix", help="Path prefix for every route, e.g. /api.")
    parser.add_argument("--uploads_dir", help="Directory served under /uploads when it exists.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_dir, logging.INFO)

    config = load_config(
        args.env_file,
        endpoint=args.llm_endpoint,
        default_model=args.llm_model,
        request_timeout=args.request_timeout,
        max_history_messages=args.max_history_messages,
        api_prefix=args.api_prefix,
        uploads_dir=args.uploads_dir,
    )
    try:
        app = create_app(config)
    except MissingAPIKeyError as exc:
        logger.error("%s. Add OPENAI_API_KEY=your_key_here to the environment or a .env file.", exc)
        raise SystemExit(1) from exc

    port = args.port if args.port is not None else _port_from_env()
    logger.info("Upstream API key loaded; conversation storage is in-memory")
    logger.info("Starting chat relay on %s:%d", args.host, port)
    uvicorn.run(app, host=args.host, port=port)


def _port_from_env(default: int = 5000) -> int:
    value = os.environ.get("PORT")
    if not value or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.error("PORT must be an integer, got %r", value)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
