"""Minimal demonstration of the reply engine with the mock provider."""

import threading

from character_core.domain.models import LLMProvider
from character_core.providers import build_registry
from character_core.agents.reply_engine import ReplyEngine

if __name__ == "__main__":
    engine = ReplyEngine(build_registry(providers=[LLMProvider.MOCK]))
    persona = "You are a pirate"
    question = "Hello"

    print("User:", question)
    print("Character:", engine.generate_reply(persona, "", question, LLMProvider.MOCK))

    done = threading.Event()
    print("Character (stream): ", end="")
    engine.generate_reply_stream(
        persona,
        "",
        question,
        LLMProvider.MOCK,
        on_chunk=lambda text: print(text, end="", flush=True),
        on_error=lambda exc: print("\n[error]", exc),
        on_complete=done.set,
    )
    done.wait(10)
    print()
    engine.shutdown()
