"""
Command-line entry point: one chat turn through the background service and a
console viewer.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from chat_relay.config import Configuration
from chat_relay.llm.models import HttpClientSettings
from chat_relay.logging_utils import CANCELLED_MESSAGE, configure_logging
from chat_relay.relay.background import BackgroundService
from chat_relay.relay.messages import ChatRequest, ValidateApiKeyRequest, to_wire
from chat_relay.viewer.chat_view import ChatViewer, Message

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)

EXIT_ERROR = 1
EXIT_CANCELLED = 130


class ConsolePrinter:
    """Prints the visible answer of assistant turns as it grows."""

    def __init__(self, show_thoughts: bool = False) -> None:
        self.show_thoughts = show_thoughts
        self._printed: dict[str, str] = {}
        self._thoughts: dict[str, str] = {}

    def __call__(self, message: Message) -> None:
        if message.role != "assistant":
            return
        if self.show_thoughts:
            self._write(self._thoughts, message.id, message.thought_text, sys.stderr)
        self._write(self._printed, message.id, message.content, sys.stdout)

    @staticmethod
    def _write(seen: dict[str, str], key: str, text: str, stream) -> None:
        previous = seen.get(key, "")
        if text == previous:
            return
        if text.startswith(previous):
            stream.write(text[len(previous):])
        else:
            # The split moved a marker out of the answer; reprint from scratch
            stream.write("\n" + text)
        stream.flush()
        seen[key] = text


def build_service(config: Configuration) -> BackgroundService:
    provider = config.get_provider_config()
    streaming = config.get_streaming_config()
    return BackgroundService(
        principal=provider["principal"],
        task_id_header=streaming["task_id_header"],
        report_parse_failures=streaming["report_parse_failures"],
        http_settings=HttpClientSettings.from_config(config.get_http_client_config()),
    )


async def run_stream(
    service: BackgroundService,
    config: Configuration,
    message: str,
    endpoint: str,
    api_key: str,
    show_thoughts: bool = False,
    action: str | None = None,
) -> int:
    viewer_config = config.get_viewer_config()
    viewer = ChatViewer(
        service.handle_request,
        name="console",
        open_marker=viewer_config["think_start"],
        close_marker=viewer_config["think_end"],
        on_update=ConsolePrinter(show_thoughts),
    )
    viewer.attach(service.relay)

    loop = asyncio.get_running_loop()
    cancel_requested = False

    def request_cancel() -> None:
        nonlocal cancel_requested
        if not cancel_requested:
            cancel_requested = True
            logging.info("Received interrupt, cancelling stream...")
            loop.create_task(viewer.cancel())

    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, request_cancel)

    try:
        if action:
            stream_id = await viewer.process_selected_text(action, message, endpoint, api_key)
        else:
            stream_id = await viewer.send_message(message, endpoint, api_key)
        await service.join()
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        viewer.detach()
    sys.stdout.write("\n")

    if cancel_requested:
        return EXIT_CANCELLED
    assistant = viewer.messages[-1] if viewer.messages else None
    if stream_id is None or assistant is None or assistant.error:
        error = assistant.error if assistant else "no response"
        logging.error(f"Stream failed: {error}")
        return EXIT_CANCELLED if error == CANCELLED_MESSAGE else EXIT_ERROR
    return 0


async def run_blocking(service: BackgroundService, message: str, endpoint: str, api_key: str) -> int:
    ack = await service.handle_request(
        to_wire(ChatRequest(endpoint=endpoint, api_key=api_key, message=message))
    )
    if not ack["success"]:
        logging.error(f"Request failed ({ack['status']}): {ack['message']}")
        return EXIT_ERROR
    print(ack["answer"])
    return 0


async def run_validate(service: BackgroundService, endpoint: str, api_key: str) -> int:
    ack = await service.handle_request(
        to_wire(ValidateApiKeyRequest(endpoint=endpoint, api_key=api_key))
    )
    print(ack["message"])
    return 0 if ack["valid"] else EXIT_ERROR


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chat-relay", description="Stream a chat reply from a chat-messages API."
    )
    parser.add_argument("message", nargs="?", default="", help="message to send")
    parser.add_argument("--endpoint", help="API base URL (overrides config.yaml)")
    parser.add_argument("--config", help="path to an alternative config.yaml")
    parser.add_argument("--blocking", action="store_true", help="use response_mode=blocking")
    parser.add_argument("--validate", action="store_true", help="only check the API key")
    parser.add_argument("--thoughts", action="store_true", help="print thinking text to stderr")
    parser.add_argument(
        "--action",
        choices=("summary", "chat", "translate"),
        help="treat the message as selected text and run this action on it",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = Configuration(args.config)
    configure_logging(config.get_logging_config().get("level", "INFO"))

    endpoint = args.endpoint or config.get_provider_config()["endpoint"]
    api_key = config.api_key

    async with build_service(config) as service:
        if args.validate:
            return await run_validate(service, endpoint, api_key)
        if not args.message.strip():
            logging.error("A message is required unless --validate is given")
            return EXIT_ERROR
        if args.blocking:
            return await run_blocking(service, args.message, endpoint, api_key)
        return await run_stream(
            service, config, args.message, endpoint, api_key, args.thoughts, args.action
        )


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except ValueError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    run()
