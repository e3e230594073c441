"""Shared fixtures: a scripted stand-in for the generation API client."""

import asyncio
import json
import re
from contextlib import asynccontextmanager
from typing import Dict, List, Union

import pytest


FILE_NAME_PATTERN = re.compile(r"File `([^`]+)`")

DONE = b"data: [DONE]\n"


def content_event(text: str) -> bytes:
    body = json.dumps({"choices": [{"delta": {"content": text}}]})
    return f"data: {body}\n".encode()


def summary_lines(name: str) -> List[bytes]:
    return [content_event(f"# {name}\n"), content_event("Summary body."), DONE]


Behavior = Union[Exception, List[Union[bytes, float]]]


class ScriptedClient:
    """Answers each request according to a per-file script.

    script maps a file name to a list of behaviors consumed one per
    attempt: an exception is raised before streaming, a list of lines is
    streamed, and a number inside that list pauses for that many
    seconds. Files without a script (or past its end) get a normal
    summary stream.
    """

    def __init__(self, script: Dict[str, List[Behavior]] = None, line_delay: float = 0.0):
        self.script = {name: list(steps) for name, steps in (script or {}).items()}
        self.line_delay = line_delay
        self.requests_sent = 0
        self.requests_by_file: Dict[str, int] = {}
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, *exc_info):
        return None

    @staticmethod
    def file_name(payload: bytes) -> str:
        match = FILE_NAME_PATTERN.search(payload.decode("utf-8"))
        return match.group(1) if match else "unknown"

    @asynccontextmanager
    async def open_stream(self, payload: bytes):
        self.requests_sent += 1
        name = self.file_name(payload)
        self.requests_by_file[name] = self.requests_by_file.get(name, 0) + 1

        steps = self.script.get(name)
        behavior = steps.pop(0) if steps else summary_lines(name)
        if isinstance(behavior, Exception):
            raise behavior
        yield self._lines(behavior)

    async def _lines(self, lines: List[Union[bytes, float]]):
        for line in lines:
            if isinstance(line, (int, float)):
                await asyncio.sleep(line)
                continue
            if self.line_delay:
                await asyncio.sleep(self.line_delay)
            yield line


@pytest.fixture
def scripted_client():
    """Factory for ScriptedClient instances."""
    return ScriptedClient
