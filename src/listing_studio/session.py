"""
Application state owner.

SessionStore is the only component that holds or mutates studio state. The
active project's working copy is the HistoryItem record inside the history
list itself; ``analysis``/``images``/``reference_image`` are read-through views
of it, so the displayed project and its durable entry cannot drift apart.
Every mutation ends with a write of the history list to the key-value store.
A quota failure evicts the oldest entry; if that is the open project it stays
on screen as an unsaved working copy until another project is opened.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from listing_studio.analysis import AnalysisEngine
from listing_studio.assets import AssetGenerator
from listing_studio.briefs import BriefPlanner
from listing_studio.config import settings
from listing_studio.errors import (
    EditFailed,
    GenerationFailed,
    InvalidTransition,
    RehydrationFailed,
    StorageQuotaExceeded,
)
from listing_studio.models import (
    HistoryItem,
    InputDescriptor,
    InputType,
    ListingImage,
    ProductAnalysis,
    User,
)
from listing_studio.storage import KeyValueStore

logger = logging.getLogger(__name__)

ANALYSIS_ERROR_MESSAGE = "Analysis failed. Please try a different product or verify your API key."

# Accepts wire (camelCase) and attribute (snake_case) spellings.
EDITABLE_FIELDS = {
    "title": "title",
    "headline": "headline",
    "subCopy": "sub_copy",
    "sub_copy": "sub_copy",
    "visualPrompt": "visual_prompt",
    "visual_prompt": "visual_prompt",
    "creativeBrief": "creative_brief",
    "creative_brief": "creative_brief",
}


class Step(str, Enum):
    LOGIN = "login"
    INPUT = "input"
    ANALYZING = "analyzing"
    RESULTS = "results"


@dataclass
class AppState:
    step: Step
    user: User | None = None
    active_project_id: str | None = None
    history: list[HistoryItem] = field(default_factory=list)
    error: str | None = None
    input_source: InputDescriptor | None = None
    pending_reference_image: str | None = None
    # Open project after quota eviction pushed it out of the stored history.
    detached_project: HistoryItem | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(
        self,
        storage: KeyValueStore,
        analysis_engine: AnalysisEngine,
        brief_planner: BriefPlanner,
        asset_generator: AssetGenerator,
        *,
        history_limit: int | None = None,
        require_login: bool | None = None,
        history_key: str | None = None,
        session_key: str | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._storage = storage
        self._engine = analysis_engine
        self._planner = brief_planner
        self._assets = asset_generator
        self._history_limit = max(1, history_limit if history_limit is not None else settings.history_limit)
        self._require_login = settings.require_login if require_login is None else require_login
        self._history_key = history_key or settings.history_key
        self._session_key = session_key or settings.session_key
        self._clock = clock
        self._state = self._rehydrate()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def step(self) -> Step:
        return self._state.step

    @property
    def user(self) -> User | None:
        return self._state.user

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def input_source(self) -> InputDescriptor | None:
        return self._state.input_source

    @property
    def active_project_id(self) -> str | None:
        return self._state.active_project_id

    @property
    def history(self) -> tuple[HistoryItem, ...]:
        return tuple(self._state.history)

    @property
    def visible_history(self) -> list[HistoryItem]:
        user = self._state.user
        if user is None:
            return [] if self._require_login else list(self._state.history)
        return [h for h in self._state.history if h.user_id == user.id]

    @property
    def active_project(self) -> HistoryItem | None:
        project = self._find(self._state.active_project_id)
        detached = self._state.detached_project
        if project is None and detached is not None and detached.id == self._state.active_project_id:
            return detached
        return project

    @property
    def analysis(self) -> ProductAnalysis | None:
        project = self.active_project
        return project.analysis if project else None

    @property
    def images(self) -> tuple[ListingImage, ...]:
        project = self.active_project
        return tuple(project.images) if project else ()

    @property
    def reference_image(self) -> str | None:
        project = self.active_project
        if project is not None:
            return project.reference_image
        return self._state.pending_reference_image

    def search_history(self, query: str | None) -> list[HistoryItem]:
        visible = self.visible_history
        q = (query or "").strip().lower()
        if not q:
            return visible
        return [h for h in visible if q in h.search_text()]

    def snapshot(self) -> dict[str, Any]:
        project = self.active_project
        source = self._state.input_source
        return {
            "step": self._state.step.value,
            "user": self._state.user.to_json_dict() if self._state.user else None,
            "error": self._state.error,
            "activeProjectId": self._state.active_project_id,
            "inputSource": {"type": source.type.value, "value": source.value} if source else None,
            "analysis": project.analysis.to_json_dict() if project else None,
            "referenceImage": self.reference_image,
            "images": [img.view() for img in project.images] if project else [],
            "history": [history_summary(h) for h in self.visible_history],
        }

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def login(self, user: User) -> None:
        if self._state.step not in (Step.LOGIN, Step.INPUT):
            raise InvalidTransition(f"cannot log in during '{self._state.step.value}'")
        self._state.user = user
        self._state.step = Step.INPUT
        self._clear_working_state()
        self._persist_session()

    def logout(self) -> None:
        if self._state.step is Step.ANALYZING:
            raise InvalidTransition("cannot log out while an analysis is running")
        self._state.user = None
        self._clear_working_state()
        self._state.step = self._signed_out_step()
        self._storage.remove(self._session_key)

    # ------------------------------------------------------------------
    # Project lifecycle
    # ------------------------------------------------------------------

    async def submit_analysis(self, descriptor: InputDescriptor) -> HistoryItem | None:
        if self._state.step is not Step.INPUT:
            raise InvalidTransition(f"cannot start an analysis during '{self._state.step.value}'")
        if self._require_login and self._state.user is None:
            raise InvalidTransition("log in before starting an analysis")

        self._state.step = Step.ANALYZING
        self._state.error = None
        self._state.input_source = descriptor
        self._state.pending_reference_image = descriptor.image

        try:
            analysis = await self._engine.analyze(descriptor.text, descriptor.image)
            briefs = await self._planner.plan(analysis)
        except Exception as exc:
            logger.warning(
                "session.analysis_failed",
                extra={"input_type": descriptor.type.value, "error_type": type(exc).__name__, "error": str(exc)},
            )
            self._state.step = Step.INPUT
            self._state.error = ANALYSIS_ERROR_MESSAGE
            self._state.pending_reference_image = None
            return None

        reference = descriptor.image or next(iter(analysis.extracted_image_urls), None)
        now = self._clock()
        item = HistoryItem(
            id=self._new_project_id(now),
            user_id=self._state.user.id if self._state.user else None,
            timestamp=now,
            input=descriptor.value,
            type=descriptor.type,
            analysis=analysis,
            reference_image=reference,
            images=briefs,
        )

        self._state.history.insert(0, item)
        del self._state.history[self._history_limit :]
        self._state.active_project_id = item.id
        self._state.pending_reference_image = None
        self._state.detached_project = None
        self._state.step = Step.RESULTS
        self._persist_history()
        return item

    def select_history_item(self, project_id: str) -> HistoryItem:
        if self._state.step not in (Step.INPUT, Step.RESULTS):
            raise InvalidTransition(f"cannot open a project during '{self._state.step.value}'")
        item = next((h for h in self.visible_history if h.id == project_id), None)
        if item is None:
            raise InvalidTransition(f"project '{project_id}' not found")

        if item.type is InputType.IMAGE:
            source = InputDescriptor(image=item.input, type=item.type)
        else:
            source = InputDescriptor(text=item.input, type=item.type)
        self._state.active_project_id = item.id
        self._state.input_source = source
        self._state.detached_project = None
        self._state.error = None
        self._state.step = Step.RESULTS
        return item

    def reset(self) -> None:
        if self._state.step not in (Step.INPUT, Step.RESULTS):
            raise InvalidTransition(f"cannot reset during '{self._state.step.value}'")
        self._clear_working_state()
        self._state.step = Step.INPUT

    # ------------------------------------------------------------------
    # Results-step mutations
    # ------------------------------------------------------------------

    def update_brief_field(self, image_id: str, field_name: str, value: str) -> ListingImage:
        project = self._require_results()
        attr = EDITABLE_FIELDS.get(field_name)
        if attr is None:
            raise InvalidTransition(f"field '{field_name}' is not editable")
        image = next((img for img in project.images if img.id == image_id), None)
        if image is None:
            raise InvalidTransition(f"brief '{image_id}' not found")

        setattr(image, attr, value)
        self._persist_history()
        return image

    async def generate_asset(self, index: int) -> str | None:
        project = self._require_results()
        image = self._image_at(project, index)

        image.is_loading = True
        image.error = None
        try:
            uri = await self._assets.generate(image, project.reference_image, project.analysis.visual_description)
        except GenerationFailed as exc:
            logger.warning(
                "session.generate_failed",
                extra={"project_id": project.id, "brief_id": image.id, "error": str(exc)},
            )
            image.is_loading = False
            image.error = str(exc)
            return None

        # Recorded on the issuing project even if another one is active now.
        image.is_loading = False
        image.record_version(uri)
        self._persist_history()
        return uri

    async def edit_asset(self, index: int, instruction: str) -> str | None:
        project = self._require_results()
        image = self._image_at(project, index)
        if not image.generated_image_url:
            raise InvalidTransition(f"brief '{image.id}' has no image to edit")

        image.is_loading = True
        image.error = None
        try:
            uri = await self._assets.edit(image.generated_image_url, instruction)
        except EditFailed as exc:
            logger.warning(
                "session.edit_failed",
                extra={"project_id": project.id, "brief_id": image.id, "error": str(exc)},
            )
            image.is_loading = False
            image.error = str(exc)
            return None

        image.is_loading = False
        image.record_version(uri)
        self._persist_history()
        return uri

    def switch_asset_version(self, index: int, version_uri: str) -> ListingImage:
        project = self._require_results()
        image = self._image_at(project, index)
        try:
            image.select_version(version_uri)
        except ValueError as exc:
            raise InvalidTransition(str(exc)) from exc
        self._persist_history()
        return image

    def update_reference_image(self, uri: str | None) -> None:
        project = self._require_results()
        project.reference_image = (uri or "").strip() or None
        self._persist_history()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _signed_out_step(self) -> Step:
        return Step.LOGIN if self._require_login else Step.INPUT

    def _clear_working_state(self) -> None:
        self._state.active_project_id = None
        self._state.error = None
        self._state.input_source = None
        self._state.pending_reference_image = None
        self._state.detached_project = None

    def _find(self, project_id: str | None) -> HistoryItem | None:
        if project_id is None:
            return None
        return next((h for h in self._state.history if h.id == project_id), None)

    def _require_results(self) -> HistoryItem:
        project = self.active_project
        if self._state.step is not Step.RESULTS or project is None:
            raise InvalidTransition("no project is open")
        return project

    @staticmethod
    def _image_at(project: HistoryItem, index: int) -> ListingImage:
        if not 0 <= index < len(project.images):
            raise InvalidTransition(f"asset index {index} is out of range")
        return project.images[index]

    def _new_project_id(self, now: int) -> str:
        base = str(now)
        candidate, n = base, 1
        while self._find(candidate) is not None:
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    def _write_history(self) -> None:
        payload = json.dumps([h.to_json_dict() for h in self._state.history])
        self._storage.set(self._history_key, payload)

    def _persist_history(self) -> None:
        try:
            self._write_history()
            return
        except StorageQuotaExceeded as exc:
            if not self._state.history:
                logger.error("session.history_persist_failed", extra={"error": str(exc), "evicted": None})
                return
            victim = self._state.history.pop()
            if victim.id == self._state.active_project_id:
                self._state.detached_project = victim
            logger.warning("session.history_evicted", extra={"project_id": victim.id, "error": str(exc)})

        try:
            self._write_history()
        except StorageQuotaExceeded as exc:
            logger.error("session.history_persist_failed", extra={"error": str(exc), "evicted": victim.id})

    def _persist_session(self) -> None:
        user = self._state.user
        if user is None:
            self._storage.remove(self._session_key)
            return
        try:
            self._storage.set(self._session_key, json.dumps(user.to_json_dict()))
        except StorageQuotaExceeded as exc:
            logger.error("session.session_persist_failed", extra={"error": str(exc)})

    def _load_json(self, key: str) -> Any:
        try:
            raw = self._storage.get(key)
        except (OSError, UnicodeDecodeError) as exc:
            raise RehydrationFailed(f"could not read '{key}': {exc}") from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (ValueError, RecursionError) as exc:
            raise RehydrationFailed(f"'{key}' does not hold valid JSON") from exc

    def _load_user(self) -> User | None:
        data = self._load_json(self._session_key)
        if data is None:
            return None
        try:
            return User.model_validate(data)
        except ValidationError as exc:
            raise RehydrationFailed(f"stored session is invalid: {exc.error_count()} error(s)") from exc

    def _load_history(self) -> list[HistoryItem]:
        data = self._load_json(self._history_key)
        if data is None:
            return []
        if not isinstance(data, list):
            raise RehydrationFailed("stored history is not a list")
        try:
            return [HistoryItem.model_validate(item) for item in data]
        except ValidationError as exc:
            raise RehydrationFailed(f"stored history is invalid: {exc.error_count()} error(s)") from exc

    def _rehydrate(self) -> AppState:
        try:
            user = self._load_user()
            history = self._load_history()
        except RehydrationFailed as exc:
            logger.warning("session.rehydration_failed", extra={"error": str(exc)})
            return AppState(step=self._signed_out_step())

        step = Step.INPUT if (user is not None or not self._require_login) else Step.LOGIN
        return AppState(step=step, user=user, history=history[: self._history_limit])


def history_summary(item: HistoryItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "timestamp": item.timestamp,
        "input": "(product photo)" if item.input.startswith("data:") else item.input,
        "type": item.type.value,
        "category": item.analysis.category,
        "renderedCount": sum(1 for img in item.images if img.generated_image_url),
    }
