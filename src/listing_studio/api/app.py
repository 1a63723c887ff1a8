from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from listing_studio.analysis import AnalysisEngine
from listing_studio.assets import AssetGenerator
from listing_studio.briefs import BriefPlanner
from listing_studio.config import settings
from listing_studio.errors import InvalidTransition
from listing_studio.exporting import export_project
from listing_studio.imagery import sniff_mime_type, to_data_uri
from listing_studio.models import InputDescriptor, ListingImage, User
from listing_studio.providers.base import InlineImage
from listing_studio.providers.gemini_provider import GeminiProvider
from listing_studio.session import SessionStore, history_summary
from listing_studio.storage import FileKeyValueStore

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="listing_studio")

_studio: SessionStore | None = None


def _get_gemini() -> GeminiProvider:
    if not settings.gemini_api_key:
        raise HTTPException(status_code=400, detail="GEMINI_API_KEY is not set")
    return GeminiProvider(api_key=settings.gemini_api_key)


def get_studio() -> SessionStore:
    global _studio
    if _studio is None:
        provider = _get_gemini()
        _studio = SessionStore(
            storage=FileKeyValueStore(),
            analysis_engine=AnalysisEngine(provider),
            brief_planner=BriefPlanner(provider),
            asset_generator=AssetGenerator(provider),
        )
    return _studio


class LoginRequest(BaseModel):
    email: str
    brandName: str


class BriefFieldUpdate(BaseModel):
    field: str
    value: str


class EditRequest(BaseModel):
    instruction: str


class VersionRequest(BaseModel):
    uri: str


async def _upload_to_data_uri(upload: UploadFile | None) -> str | None:
    if upload is None:
        return None
    content = await upload.read()
    if not content:
        return None
    mime = upload.content_type or ""
    if not mime.startswith("image/"):
        mime = sniff_mime_type(content)
    return to_data_uri(InlineImage(data=content, mime_type=mime))


def _conflict(exc: InvalidTransition) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


def _image_at(studio: SessionStore, index: int) -> ListingImage:
    images = studio.images
    if not 0 <= index < len(images):
        raise HTTPException(status_code=409, detail=f"asset index {index} is out of range")
    return images[index]


@app.get("/state")
def get_state(studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    return studio.snapshot()


@app.post("/login")
def login(payload: LoginRequest, studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    if not payload.email.strip() or not payload.brandName.strip():
        raise HTTPException(status_code=400, detail="email and brandName are required")
    try:
        studio.login(User.from_credentials(payload.email, payload.brandName))
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return studio.snapshot()


@app.post("/logout")
def logout(studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    try:
        studio.logout()
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return studio.snapshot()


@app.post("/reset")
def reset(studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    try:
        studio.reset()
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return studio.snapshot()


@app.post("/analyze")
async def analyze(
    text: str = Form(""),
    image: UploadFile | None = File(None),
    studio: SessionStore = Depends(get_studio),
) -> dict[str, Any]:
    try:
        descriptor = InputDescriptor.from_submission(text=text, image=await _upload_to_data_uri(image))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        await studio.submit_analysis(descriptor)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return studio.snapshot()


@app.get("/history")
def list_history(q: str = "", studio: SessionStore = Depends(get_studio)) -> list[dict[str, Any]]:
    return [history_summary(h) for h in studio.search_history(q)]


@app.post("/history/{project_id}/select")
def select_history(project_id: str, studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    try:
        studio.select_history_item(project_id)
    except InvalidTransition as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return studio.snapshot()


@app.patch("/briefs/{image_id}")
def update_brief(image_id: str, payload: BriefFieldUpdate, studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    try:
        image = studio.update_brief_field(image_id, payload.field, payload.value)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return image.view()


@app.post("/assets/{index}/generate")
async def generate_asset(index: int, studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    image = _image_at(studio, index)
    try:
        await studio.generate_asset(index)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return image.view()


@app.post("/assets/{index}/edit")
async def edit_asset(index: int, payload: EditRequest, studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    image = _image_at(studio, index)
    try:
        await studio.edit_asset(index, payload.instruction)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return image.view()


@app.post("/assets/{index}/version")
def switch_version(index: int, payload: VersionRequest, studio: SessionStore = Depends(get_studio)) -> dict[str, Any]:
    try:
        image = studio.switch_asset_version(index, payload.uri)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return image.view()


@app.post("/reference")
async def update_reference(
    image: UploadFile | None = File(None),
    uri: str = Form(""),
    studio: SessionStore = Depends(get_studio),
) -> dict[str, Any]:
    new_ref = await _upload_to_data_uri(image) or uri.strip() or None
    try:
        studio.update_reference_image(new_ref)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return {"referenceImage": studio.reference_image}


@app.get("/projects/{project_id}/export")
def export(project_id: str, studio: SessionStore = Depends(get_studio)) -> Response:
    project = next((h for h in studio.visible_history if h.id == project_id), None)
    if project is None:
        raise HTTPException(status_code=404, detail="project not found")
    try:
        content = export_project(project)
    except ValueError as exc:
        logger.warning("api.export_failed", extra={"project_id": project_id, "error": str(exc)})
        raise HTTPException(status_code=422, detail=f"project assets could not be exported: {exc}") from exc
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="listing_{project_id}.zip"'},
    )
