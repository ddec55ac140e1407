"""Terminal chat client for the relay."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Optional, TextIO

from .client import RelayClient
from .errors import ErrorCode, RelayClientError
from .restaurants import load_restaurants
from .utils import setup_logging

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    ErrorCode.UPSTREAM_AUTH: "The relay's API key was rejected. Check OPENAI_API_KEY on the server.",
    ErrorCode.UPSTREAM_RATE_LIMITED: "The API rate limit was exceeded. Please try again later.",
    ErrorCode.UPSTREAM_UNREACHABLE: "The relay could not reach the API.",
    ErrorCode.BACKEND_UNREACHABLE: "Cannot connect to the relay. Make sure the server is running.",
    ErrorCode.MISSING_API_KEY: "The relay has no API key loaded.",
}


def describe_error(error: RelayClientError) -> str:
    """Pick the user-facing message for an error from its code."""
    message = ERROR_MESSAGES.get(error.code)
    if message:
        return message
    return f"API error: {error.message}"


def run_repl(
    client: RelayClient,
    *,
    read: Callable[[str], str] = input,
    out: TextIO = sys.stdout,
    stream: bool = True,
) -> None:
    """Read messages until EOF or ``/quit``; tokens are printed as they arrive."""
    out.write("Commands: /clear resets the conversation, /history shows it, /quit exits.\n")
    while True:
        try:
            line = read("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            out.write("\n")
            return
        if not line:
            continue
        if line == "/quit":
            return
        try:
            if line == "/clear":
                client.clear()
                out.write("Conversation cleared.\n")
            elif line == "/history":
                for message in client.history():
                    out.write(f"{message['role']}: {message['content']}\n")
            else:
                out.write("bot> ")
                for token in client.send(line, stream=stream):
                    out.write(token)
                    out.flush()
                out.write("\n")
        except RelayClientError as exc:
            logger.debug("Request failed: %s (%s)", exc.message, exc.details)
            out.write(f"\n[error] {describe_error(exc)}\n")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with the restaurant relay from a terminal.")
    parser.add_argument("--url", default="http://localhost:5000", help="Base URL of the relay.")
    parser.add_argument("--api_prefix", default="", help="Route prefix the relay was started with.")
    parser.add_argument("--data", default="download.csv", help="Restaurant CSV attached to every message.")
    parser.add_argument("--model", default="gpt-4o-mini", help="Model requested from the relay.")
    parser.add_argument("--max_tokens", type=int, default=1024, help="Completion token limit.")
    parser.add_argument("--temperature", type=float, default=0.7, help="Sampling temperature.")
    parser.add_argument("--health_attempts", type=int, default=10, help="Health checks before giving up.")
    parser.add_argument("--no_stream", action="store_true", help="Wait for whole replies instead of streaming.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(None, logging.DEBUG if args.verbose else logging.WARNING)

    try:
        restaurants = load_restaurants(args.data)
    except (OSError, ValueError) as exc:
        print(f"Cannot read restaurant data from {args.data}: {exc}", file=sys.stderr)
        return 1

    client = RelayClient(
        args.url,
        api_prefix=args.api_prefix,
        restaurants=restaurants,
        model=args.model,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
    )
    try:
        client.wait_until_ready(attempts=args.health_attempts)
    except RelayClientError as exc:
        print(describe_error(exc), file=sys.stderr)
        return 1

    print(f"Connected. {len(restaurants)} restaurants loaded.")
    run_repl(client, stream=not args.no_stream)
    return 0


if __name__ == "__main__":
    sys.exit(main())
