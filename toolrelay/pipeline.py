"""Inbound/outbound workers between the terminal and the conversation.

The input loop hands one message at a time to the inbound worker, which runs
the turn and queues its output; the outbound worker renders that output and
signals the input loop when the turn is complete.
"""

import asyncio
import sys
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TextIO

from .conversation import ConversationManager, ErrorLine
from .logging_config import get_logger

EXIT_COMMANDS = frozenset({"exit", "quit", "bye"})

_TURN_END = object()

Reader = Callable[[], Awaitable[str | None]]
Command = Callable[[], Awaitable[str]]


class ConsoleRenderer:
    """Writes replies, notices and errors to a text stream."""

    def __init__(self, stream: TextIO | None = None, prefix: str = "🤖 Assistant: ") -> None:
        self.stream = stream or sys.stdout
        self.prefix = prefix
        self._open = False

    def write(self, chunk: str) -> None:
        if not self._open:
            self.stream.write(self.prefix)
            self._open = True
        self.stream.write(chunk)
        self.stream.flush()

    def end_reply(self) -> None:
        if self._open:
            self.stream.write("\n")
            self.stream.flush()
            self._open = False

    def error(self, text: str) -> None:
        self.end_reply()
        self.stream.write(f"❌ {text}\n")
        self.stream.flush()

    def notice(self, text: str) -> None:
        self.end_reply()
        self.stream.write(f"{text}\n")
        self.stream.flush()


async def read_stdin_line(prompt: str = "\nYou: ") -> str | None:
    """Read one line from the terminal without blocking the event loop."""
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


class ChannelPipeline:
    """Runs a conversation behind an inbound and an outbound worker.

    Only one turn is in flight at a time. Exiting stops the inbound worker
    first, lets the outbound worker drain, then stops it; both are children of
    one task group, so neither outlives ``run()``.
    """

    def __init__(
        self,
        conversation: ConversationManager,
        renderer: ConsoleRenderer | None = None,
        reader: Reader | None = None,
        commands: Mapping[str, Command] | None = None,
    ) -> None:
        self.conversation = conversation
        self.renderer = renderer or ConsoleRenderer()
        self.reader = reader or read_stdin_line
        self.commands = dict(commands or {})
        self.inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.outbound: asyncio.Queue[Any] = asyncio.Queue()
        self.turn_done = asyncio.Event()
        self.cancelled = asyncio.Event()
        self._turn: asyncio.Task[None] | None = None
        self.logger = get_logger(__name__)

    async def run(self) -> None:
        """Read user input until an exit command, EOF or cancellation."""
        async with asyncio.TaskGroup() as tg:
            tg.create_task(self._inbound_worker(), name="inbound")
            tg.create_task(self._outbound_worker(), name="outbound")
            try:
                await self._input_loop()
            finally:
                self.cancel()
        self.logger.info("Chat pipeline stopped")

    def cancel(self) -> None:
        """Signal both workers to stop; the inbound queue is closed with None.

        A turn still in flight is cancelled.
        """
        if not self.cancelled.is_set():
            self.cancelled.set()
            self.inbound.put_nowait(None)
            if self._turn is not None:
                self._turn.cancel()

    async def _input_loop(self) -> None:
        while not self.cancelled.is_set():
            line = await self.reader()
            if line is None:
                self.logger.info("Input closed")
                return

            message = line.strip()
            if not message:
                self.renderer.notice("Please type your message")
                continue
            if message in EXIT_COMMANDS:
                self.renderer.notice("Bye. Thanks for chatting with me.")
                self.logger.info("Chat explicitly stopped by user")
                return
            if message in self.commands:
                self.renderer.notice(await self.commands[message]())
                continue

            self.turn_done.clear()
            await self.inbound.put(message)
            self.logger.debug("Message dispatched to inbound worker")
            await self._wait_for_turn()

    async def _wait_for_turn(self) -> None:
        done = asyncio.create_task(self.turn_done.wait())
        cancelled = asyncio.create_task(self.cancelled.wait())
        try:
            await asyncio.wait({done, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            done.cancel()
            cancelled.cancel()

    async def _inbound_worker(self) -> None:
        try:
            while True:
                message = await self.inbound.get()
                if message is None:
                    return
                self._turn = asyncio.create_task(self._run_turn(message), name="turn")
                try:
                    await self._turn
                except asyncio.CancelledError:
                    current = asyncio.current_task()
                    if current is not None and current.cancelling():
                        raise
                    self.logger.info("Turn cancelled")
                finally:
                    self._turn = None
                await self.outbound.put(_TURN_END)
        finally:
            # Outbound closes only once the producer has stopped.
            self.outbound.put_nowait(None)

    async def _run_turn(self, message: str) -> None:
        turn = self.conversation.process_message(message)
        try:
            async for chunk in turn:
                if self.cancelled.is_set():
                    break
                await self.outbound.put(chunk)
        finally:
            await turn.aclose()

    async def _outbound_worker(self) -> None:
        while True:
            item = await self.outbound.get()
            if item is None:
                return
            if self.cancelled.is_set():
                continue
            if item is _TURN_END:
                self.renderer.end_reply()
                self.turn_done.set()
            elif isinstance(item, ErrorLine):
                self.renderer.error(item)
            else:
                self.renderer.write(item)
