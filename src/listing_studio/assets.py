from __future__ import annotations

import logging

from listing_studio.errors import EditFailed, GenerationFailed
from listing_studio.imagery import is_data_uri, parse_data_uri, to_data_uri
from listing_studio.models import ListingImage
from listing_studio.providers.base import GeneratedImage, GenerativeProvider, InlineImage

logger = logging.getLogger(__name__)

REFERENCE_LOCK = (
    "THE PRODUCT IN THE GENERATED IMAGE MUST BE IDENTICAL IN SHAPE, COLOR, AND LOGO TO THIS REFERENCE IMAGE."
)
EDIT_CONSTRAINT = "Maintain the integrity of the product while changing the environment or style."


def build_generation_prompt(brief: ListingImage, visual_description: str, has_reference: bool) -> str:
    prompt = (
        "COMMERCIAL STUDIO PHOTOGRAPHY.\n"
        f"PRODUCT: {visual_description or 'Professional retail product'}.\n"
        f"SCENE: {brief.visual_prompt}.\n"
        f"BRIEF: {brief.creative_brief}.\n"
        f'COMPOSITION: Centered, 8k resolution, leave space for text overlay "{brief.headline}".\n'
    )
    if has_reference:
        prompt += REFERENCE_LOCK + "\n"
    return prompt


def build_edit_prompt(instruction: str) -> str:
    return f"Smart Edit: {instruction}. {EDIT_CONSTRAINT}"


def _first_image(images: list[GeneratedImage]) -> GeneratedImage | None:
    for generated in images:
        if generated.image.data:
            return generated
    return None


class AssetGenerator:
    """
    Renders and edits single listing images.

    Callers own version bookkeeping: on success they append the returned URI
    to the brief's versions and select it.
    """

    def __init__(self, provider: GenerativeProvider) -> None:
        self.provider = provider

    async def generate(
        self,
        brief: ListingImage,
        reference_image: str | None,
        visual_description: str,
    ) -> str:
        images: list[InlineImage] = []
        if reference_image:
            # Remote URLs cannot be sent as generation input.
            if is_data_uri(reference_image):
                try:
                    images.append(parse_data_uri(reference_image))
                except ValueError as exc:
                    logger.warning("assets.reference_unreadable", extra={"brief_id": brief.id, "error": str(exc)})
            else:
                logger.info("assets.remote_reference_skipped", extra={"brief_id": brief.id})

        prompt = build_generation_prompt(brief, visual_description, has_reference=bool(images))
        try:
            generated = await self.provider.render(prompt, images)
        except Exception as exc:
            logger.warning("assets.generate_request_failed", extra={"brief_id": brief.id, "error": str(exc)})
            raise GenerationFailed(f"Image generation failed: {exc}") from exc

        result = _first_image(generated)
        if result is None:
            raise GenerationFailed("Image generation engine failed to return a visual.")
        logger.info(
            "assets.generated",
            extra={"brief_id": brief.id, "provider": result.provider, "model": result.model},
        )
        return to_data_uri(result.image)

    async def edit(self, current_image_uri: str, instruction: str) -> str:
        instruction = (instruction or "").strip()
        if not instruction:
            raise EditFailed("Describe the change you want to make.")
        if not is_data_uri(current_image_uri):
            raise EditFailed("Only locally generated images can be edited.")
        try:
            current = parse_data_uri(current_image_uri)
        except ValueError as exc:
            raise EditFailed(f"Current image could not be read: {exc}") from exc

        try:
            generated = await self.provider.render(build_edit_prompt(instruction), [current])
        except Exception as exc:
            logger.warning("assets.edit_request_failed", extra={"error": str(exc)})
            raise EditFailed(f"Image edit failed: {exc}") from exc

        result = _first_image(generated)
        if result is None:
            raise EditFailed("Magic edit failed.")
        logger.info("assets.edited", extra={"provider": result.provider, "model": result.model})
        return to_data_uri(result.image)
