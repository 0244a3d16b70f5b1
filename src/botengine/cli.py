"""Interactive REPL against one bot from a local data file."""

import argparse
import uuid
from concurrent.futures import ThreadPoolExecutor

from .config import EngineSettings, configure_logging
from .errors import EngineError
from .factory import build_router
from .loader import load_bot_store
from .router import ResponseRouter
from .types import ConversationMessage, Resolution


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat with a bot from the command line.")
    parser.add_argument("--config", default=None, help="Path to a JSON/YAML config file.")
    parser.add_argument("--data", required=True, help="Path to bots JSON/JSONL file.")
    parser.add_argument("--bot", default=None, help="Bot id (defaults to the first bot in the file).")
    args = parser.parse_args()

    settings = EngineSettings.from_file(args.config)
    configure_logging(settings.log_level)

    store = load_bot_store(args.data)
    bot_id = args.bot or next(iter(store.bot_ids()), None)
    if bot_id is None:
        print(f"No bots found in {args.data}")
        return

    session_id = uuid.uuid4().hex
    with ThreadPoolExecutor(max_workers=1) as executor:
        router = build_router(settings, store, executor=executor)
        print(f"Chatting with {bot_id}. Type 'exit' to quit.")
        chat(router, bot_id, session_id)


def chat(router: ResponseRouter, bot_id: str, session_id: str) -> None:
    conversations = router.conversation_store
    while True:
        try:
            user_input = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not user_input or user_input.lower() in {"exit", "quit"}:
            break
        try:
            result = router.resolve(bot_id, user_input, session_id)
        except EngineError as exc:
            print(f"error> {exc}")
            continue
        print(f"bot> {result.response_text}")
        print(f"     [{result.source.value} {result.confidence:.2f}{' ' + result.intent if result.intent else ''}]")
        conversations.append(bot_id, session_id, ConversationMessage(sender="user", text=user_input))
        conversations.append(
            bot_id,
            session_id,
            ConversationMessage(
                sender="bot",
                text=result.response_text,
                resolution=Resolution(result.intent, result.confidence, result.source.value),
            ),
        )


if __name__ == "__main__":
    main()
