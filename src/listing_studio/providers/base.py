from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class InlineImage:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class ResearchResult:
    text: str
    # (title, uri) pairs lifted from grounding metadata.
    sources: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class GeneratedImage:
    image: InlineImage
    provider: str
    model: str


class GenerativeProvider(Protocol):
    name: str

    async def research(self, prompt: str) -> ResearchResult: ...

    async def structure(
        self,
        prompt: str,
        images: list[InlineImage],
        response_schema: dict[str, Any] | None = None,
    ) -> str: ...

    async def render(
        self,
        prompt: str,
        images: list[InlineImage],
    ) -> list[GeneratedImage]: ...
