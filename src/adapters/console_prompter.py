"""Console prompt adapter for operator input."""

from __future__ import annotations

import asyncio
import threading
from getpass import getpass
from typing import Callable


async def _read_in_thread(read: Callable[[str], str], question: str) -> str:
    """Run a blocking terminal read without stalling the event loop.

    A daemon thread is used instead of the default executor: a read that is
    still waiting on stdin must not keep the process alive after Ctrl+C.
    """

    loop = asyncio.get_running_loop()
    answer: asyncio.Future = loop.create_future()

    def _resolve(value, error) -> None:
        if answer.done():
            return
        if error is not None:
            answer.set_exception(error)
        else:
            answer.set_result(value)

    def _read() -> None:
        value, error = None, None
        try:
            value = read(question)
        except Exception as exc:
            error = exc
        try:
            loop.call_soon_threadsafe(_resolve, value, error)
        except RuntimeError:
            # Loop already closed; nobody is waiting for this answer.
            return

    threading.Thread(target=_read, name="console-prompt", daemon=True).start()
    return await answer


class ConsolePrompter:
    """PrompterPort that reads from stdin and prints to stdout."""

    async def ask(self, question: str) -> str:
        return (await _read_in_thread(input, question)).strip()

    async def ask_secret(self, question: str) -> str:
        return await _read_in_thread(getpass, question)

    def tell(self, text: str) -> None:
        print(text)
