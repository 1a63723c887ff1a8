from __future__ import annotations

import base64
from io import BytesIO
from typing import Any

from PIL import Image

from listing_studio.config import settings
from listing_studio.providers.base import GeneratedImage, InlineImage, ResearchResult


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        text_model: str | None = None,
        image_model: str | None = None,
        aspect_ratio: str | None = None,
    ) -> None:
        # Imported lazily so the app can start without the dependency installed.
        from google import genai  # type: ignore

        self.client = genai.Client(api_key=api_key)
        self.text_model = text_model or settings.gemini_text_model
        self.image_model = image_model or settings.gemini_image_model
        self.aspect_ratio = aspect_ratio or settings.image_aspect_ratio

    async def research(self, prompt: str) -> ResearchResult:
        """
        Grounded research: the Google Search tool is enabled so the response
        carries grounding chunks we can surface as provenance.
        """
        from google.genai import types  # type: ignore

        resp = await self.client.aio.models.generate_content(
            model=self.text_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())],
            ),
        )
        return ResearchResult(
            text=getattr(resp, "text", None) or "",
            sources=_extract_grounding_sources(resp),
        )

    async def structure(
        self,
        prompt: str,
        images: list[InlineImage],
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        from google.genai import types  # type: ignore

        contents: list[Any] = [prompt]
        for img in images:
            contents.append(types.Part.from_bytes(data=img.data, mime_type=img.mime_type))

        resp = await self.client.aio.models.generate_content(
            model=self.text_model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
            ),
        )
        return getattr(resp, "text", None) or ""

    async def render(
        self,
        prompt: str,
        images: list[InlineImage],
    ) -> list[GeneratedImage]:
        """
        Image-preview models answer through generate_content with an image
        response modality; reference/edit inputs go first, the prompt last.
        """
        from google.genai import types  # type: ignore

        contents: list[Any] = [types.Part.from_bytes(data=img.data, mime_type=img.mime_type) for img in images]
        contents.append(prompt)

        resp = await self.client.aio.models.generate_content(
            model=self.image_model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
                image_config=types.ImageConfig(aspect_ratio=self.aspect_ratio),
            ),
        )

        return [
            GeneratedImage(image=image, provider=self.name, model=self.image_model)
            for image in _extract_images_from_generate_content(resp)
        ]


def _extract_grounding_sources(resp: Any) -> list[tuple[str, str]]:
    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    out: list[tuple[str, str]] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if not uri:
            continue
        out.append((getattr(web, "title", None) or "Source", uri))
    return out


def _extract_images_from_generate_content(resp: Any) -> list[InlineImage]:
    out: list[InlineImage] = []
    for cand in getattr(resp, "candidates", []) or []:
        content = getattr(cand, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            mime = getattr(inline, "mime_type", None) or ""
            data = getattr(inline, "data", None)
            if not data:
                continue
            if mime and not mime.startswith("image/"):
                continue
            if isinstance(data, str):
                data = base64.b64decode(data)
            try:
                with Image.open(BytesIO(data)) as img:
                    fmt = img.format
            except Exception:
                continue
            if not mime:
                mime = Image.MIME.get(fmt or "", "image/png")
            out.append(InlineImage(data=data, mime_type=mime))
    return out
