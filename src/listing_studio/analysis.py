"""
Two-phase product analysis.

Phase 1 (only when there is source text) asks a search-grounded model to
research the product; phase 2 always runs and turns the research plus the
optional product photo into a ProductAnalysis record.
"""
from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from listing_studio.decoding import decode
from listing_studio.errors import MalformedResponse, ResearchFailed, StructuringFailed
from listing_studio.imagery import is_data_uri, parse_data_uri
from listing_studio.models import GroundingSource, ProductAnalysis
from listing_studio.providers.base import GenerativeProvider, InlineImage

logger = logging.getLogger(__name__)

NO_RESEARCH_PLACEHOLDER = "No web data provided."

REQUIRED_FIELDS = ("category", "useCase", "targetCustomer", "keyBenefits", "brandTone", "visualDescription")

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "category": {"type": "STRING"},
        "useCase": {"type": "STRING"},
        "targetCustomer": {"type": "STRING"},
        "keyBenefits": {"type": "ARRAY", "items": {"type": "STRING"}},
        "materials": {"type": "STRING"},
        "dimensions": {"type": "STRING"},
        "colorPalette": {"type": "ARRAY", "items": {"type": "STRING"}},
        "brandTone": {"type": "STRING"},
        "competitorInsights": {"type": "STRING"},
        "suggestedAesthetics": {"type": "STRING"},
        "visualDescription": {"type": "STRING"},
        "extractedImageUrls": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": list(REQUIRED_FIELDS),
}


def build_research_prompt(source_text: str) -> str:
    return (
        f'Research this Amazon product or category: "{source_text}".\n'
        "Find technical specs, competitor weaknesses, and typical customer complaints.\n"
        "Provide a detailed summary.\n"
    )


def build_structuring_prompt(research_text: str, has_image: bool) -> str:
    prompt = (
        "You are an Amazon Listing Strategist. Convert the following research and product image "
        "into a structured analysis.\n"
        f"\nRESEARCH DATA: {research_text or NO_RESEARCH_PLACEHOLDER}\n"
    )
    if has_image:
        prompt += "IMAGE ATTACHED: Use the visual details of the product image for the 'visualDescription'.\n"
    prompt += (
        "\nReturn a JSON object exactly matching this schema:\n"
        "{\n"
        '  "category": "String",\n'
        '  "useCase": "String",\n'
        '  "targetCustomer": "String",\n'
        '  "keyBenefits": ["String", "String", "String", "String", "String"],\n'
        '  "materials": "String",\n'
        '  "dimensions": "String",\n'
        '  "colorPalette": ["#HexCode", "#HexCode"],\n'
        '  "brandTone": "String",\n'
        '  "competitorInsights": "String",\n'
        '  "suggestedAesthetics": "String",\n'
        '  "visualDescription": "Detailed 3-sentence description of the physical product.",\n'
        '  "extractedImageUrls": []\n'
        "}\n"
        "- keyBenefits: exactly 5 entries, most important first.\n"
        "- colorPalette: hex codes only.\n"
        "- visualDescription: pin down shape, color, texture and visible branding; it is used to keep "
        "every generated image consistent with the real product.\n"
    )
    return prompt


def parse_analysis(payload: Any) -> ProductAnalysis:
    """Schema-checked construction of a ProductAnalysis from decoded JSON."""
    if not isinstance(payload, dict):
        raise StructuringFailed("Analysis response was not a JSON object")
    missing = [key for key in REQUIRED_FIELDS if payload.get(key) is None]
    if missing:
        raise StructuringFailed(f"Analysis response is missing required fields: {', '.join(missing)}")
    if not isinstance(payload.get("keyBenefits"), list):
        raise StructuringFailed("Analysis response has a non-list keyBenefits")

    data = dict(payload)
    # Provenance only ever comes from the research phase.
    data.pop("groundingSources", None)
    try:
        return ProductAnalysis.model_validate(data)
    except ValidationError as exc:
        raise StructuringFailed(f"Analysis response failed validation: {exc.error_count()} error(s)") from exc


class AnalysisEngine:
    def __init__(self, provider: GenerativeProvider) -> None:
        self.provider = provider

    async def analyze(self, source_text: str | None = None, source_image: str | None = None) -> ProductAnalysis:
        text = (source_text or "").strip()

        research_text = ""
        sources: list[GroundingSource] = []
        if text:
            research_text, sources = await self._research(text)

        images: list[InlineImage] = []
        if source_image:
            if is_data_uri(source_image):
                try:
                    images.append(parse_data_uri(source_image))
                except ValueError as exc:
                    raise StructuringFailed(f"Reference image could not be read: {exc}") from exc
            else:
                logger.info("analysis.remote_image_skipped", extra={"image": source_image[:200]})

        analysis = await self._structure(research_text, images)
        analysis.grounding_sources = sources
        return analysis

    async def _research(self, text: str) -> tuple[str, list[GroundingSource]]:
        try:
            result = await self.provider.research(build_research_prompt(text))
        except Exception as exc:
            logger.warning("analysis.research_failed", extra={"error": str(exc)})
            raise ResearchFailed(f"Product research failed: {exc}") from exc

        sources = [GroundingSource(title=title or "Source", uri=uri) for title, uri in result.sources if uri]
        return result.text or "", sources

    async def _structure(self, research_text: str, images: list[InlineImage]) -> ProductAnalysis:
        prompt = build_structuring_prompt(research_text, has_image=bool(images))
        try:
            raw = await self.provider.structure(prompt, images, ANALYSIS_SCHEMA)
        except Exception as exc:
            logger.warning("analysis.structuring_request_failed", extra={"error": str(exc)})
            raise StructuringFailed(f"Product structuring failed: {exc}") from exc

        try:
            payload = decode(raw)
        except MalformedResponse as exc:
            logger.warning(
                "analysis.structuring_malformed",
                extra={"raw_excerpt": exc.raw_excerpt, "raw_length": exc.raw_length},
            )
            raise StructuringFailed(str(exc)) from exc

        try:
            return parse_analysis(payload)
        except StructuringFailed as exc:
            logger.warning("analysis.structuring_invalid", extra={"error": str(exc)})
            raise
