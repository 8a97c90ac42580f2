"""Shared fixtures for Nomorize tests."""

from datetime import datetime, timedelta

import pytest

from nomorize.ai.gateway import Completion, CompletionGateway, CompletionRequest
from nomorize.models import Memory, MemoryKind


class FakeProvider:
    """Scripted CompletionProvider that records every request.

    Each response is a Completion, a plain string (the completion text)
    or an exception to raise. Once the script runs out an empty
    completion is returned.
    """

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> Completion:
        self.requests.append(request)
        if not self.responses:
            return Completion()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return Completion(text=response)
        return response


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def gateway(provider: FakeProvider) -> CompletionGateway:
    return CompletionGateway(provider, default_api_key="default-key")


def make_memory(
    content: str = "A memory",
    memory_id: str | None = None,
    minutes_ago: int = 0,
    **kwargs,
) -> Memory:
    """Build a memory created some minutes before 2025-03-01 12:00."""
    if memory_id is not None:
        kwargs["id"] = memory_id
    return Memory(
        kind=kwargs.pop("kind", MemoryKind.TEXT),
        content=content,
        created_at=datetime(2025, 3, 1, 12, 0) - timedelta(minutes=minutes_ago),
        **kwargs,
    )
