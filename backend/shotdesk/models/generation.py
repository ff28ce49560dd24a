"""
Generation Request and Job Models
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shotdesk.config.constants import (
    DEFAULT_MODEL_ID,
    DEFAULT_RESOLUTION,
    MODEL_ALIASES,
    PENDING_PROMPT_PLACEHOLDER,
    TEMP_JOB_PREFIX,
)


def resolve_model_id(name: str) -> str:
    """Map a display model name to the generation service model id"""
    if not name:
        return DEFAULT_MODEL_ID
    if name in MODEL_ALIASES.values():
        return name
    return MODEL_ALIASES.get(name, DEFAULT_MODEL_ID)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationStatus(str, Enum):
    """Generation job lifecycle states"""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Reference snapshot (what the generation service stores as ref_data)


class ReferenceImage(BaseModel):
    """A reference image by URL"""

    name: str = "reference.png"
    url: str
    type: str = "image/png"


class CharacterReference(BaseModel):
    name: str
    url: str


class AutoRefs(BaseModel):
    storyboard: Optional[str] = None
    lighting: Optional[str] = None
    background: Optional[str] = None
    characters: List[CharacterReference] = Field(default_factory=list)
    angles_anchor: Optional[str] = None
    angles_target: Optional[str] = None


class AnglesInputs(BaseModel):
    angle: Optional[str] = None
    length: Optional[str] = None
    focus: Optional[str] = None
    background: Optional[str] = None


class RefSnapshot(BaseModel):
    """
    Inputs a job was generated from, enough to rebuild an equivalent request
    """

    model_config = ConfigDict(extra="ignore")

    mode: str = "manual"
    error: Optional[str] = None
    manual_refs: List[ReferenceImage] = Field(default_factory=list)
    auto_refs: AutoRefs = Field(default_factory=AutoRefs)
    angles_inputs: Optional[AnglesInputs] = None


# Requests (tagged union on ``mode``)


class _GenerationBase(BaseModel):
    shot_id: str
    prompt: str = ""
    model: str = DEFAULT_MODEL_ID
    aspect_ratio: str = "16:9"
    resolution: str = DEFAULT_RESOLUTION
    user_email: str = ""

    @property
    def model_id(self) -> str:
        return resolve_model_id(self.model)

    def placeholder_prompt(self) -> str:
        """Prompt shown on the optimistic entry before the server answers"""
        return self.prompt or PENDING_PROMPT_PLACEHOLDER

    def to_ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(mode=self.mode)


class ManualGeneration(_GenerationBase):
    """Prompt plus free-form reference images"""

    mode: Literal["manual"] = "manual"
    ref_images: List[ReferenceImage] = Field(default_factory=list)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v):
        if not v or not v.strip():
            raise ValueError("prompt is required in manual mode")
        return v

    def to_ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(mode=self.mode, manual_refs=list(self.ref_images))


class AutomaticGeneration(_GenerationBase):
    """Prompt assembled server-side from the shot's storyboard, lighting, background and characters"""

    mode: Literal["automatic"] = "automatic"
    storyboard_url: Optional[str] = None
    lighting_url: Optional[str] = None
    background_url: Optional[str] = None
    characters: List[CharacterReference] = Field(default_factory=list)

    def to_ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(
            mode=self.mode,
            auto_refs=AutoRefs(
                storyboard=self.storyboard_url,
                lighting=self.lighting_url,
                background=self.background_url,
                characters=list(self.characters),
            ),
        )


class EnhancerGeneration(_GenerationBase):
    """Turns a rough storyboard into a detailed digital sketch"""

    mode: Literal["storyboard_enhancer"] = "storyboard_enhancer"
    storyboard_url: Optional[str] = None

    def to_ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(mode=self.mode, auto_refs=AutoRefs(storyboard=self.storyboard_url))


class AnglesGeneration(_GenerationBase):
    """Re-frames an anchor image from a different camera angle; every input is optional"""

    mode: Literal["angles"] = "angles"
    angle: Optional[str] = None
    length: Optional[str] = None
    focus: Optional[str] = None
    background: Optional[str] = None
    anchor_url: Optional[str] = None
    target_url: Optional[str] = None

    def placeholder_prompt(self) -> str:
        if self.prompt:
            return self.prompt
        return f"Angle: {self.angle}" if self.angle else PENDING_PROMPT_PLACEHOLDER

    def to_ref_snapshot(self) -> RefSnapshot:
        return RefSnapshot(
            mode=self.mode,
            auto_refs=AutoRefs(angles_anchor=self.anchor_url, angles_target=self.target_url),
            angles_inputs=AnglesInputs(
                angle=self.angle,
                length=self.length,
                focus=self.focus,
                background=self.background,
            ),
        )


class BackgroundGridGeneration(_GenerationBase):
    """
    Expands one background into a grid of variations

    Answered synchronously with image URLs; never tracked as a job.
    """

    mode: Literal["background_grid"] = "background_grid"
    background_url: str

    @field_validator("background_url")
    @classmethod
    def validate_background_url(cls, v):
        if not v or not v.strip():
            raise ValueError("background_url is required in background_grid mode")
        return v


GenerationRequest = Annotated[
    Union[
        ManualGeneration,
        AutomaticGeneration,
        EnhancerGeneration,
        AnglesGeneration,
        BackgroundGridGeneration,
    ],
    Field(discriminator="mode"),
]


class DispatchResult(BaseModel):
    """Answer of the generation service to a dispatch call"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = False
    job_id: Optional[str] = Field(default=None, alias="generation_id")
    urls: List[str] = Field(default_factory=list)
    detail: Optional[str] = None


# Jobs


class GenerationJob(BaseModel):
    """
    One generation job as presented in the merged list

    Server records arrive with ``ref_data``; the optimistic local entry is
    built from the request with :meth:`pending_from_request`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    shot_id: str
    status: GenerationStatus = GenerationStatus.COMPLETED
    prompt: str = ""
    model: str = ""
    image_url: Optional[str] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    user_email: Optional[str] = None
    error_message: Optional[str] = None
    ref_snapshot: Optional[RefSnapshot] = Field(default=None, alias="ref_data")
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v):
        # Rows written before status tracking existed are finished jobs
        return GenerationStatus.COMPLETED if v is None else v

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def lift_error_message(self):
        if self.error_message is None and self.ref_snapshot is not None and self.ref_snapshot.error:
            self.error_message = self.ref_snapshot.error
        return self

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_JOB_PREFIX)

    @property
    def is_pending(self) -> bool:
        return self.status == GenerationStatus.PENDING

    @classmethod
    def pending_from_request(
        cls,
        request: _GenerationBase,
        created_at: Optional[datetime] = None,
    ) -> "GenerationJob":
        """Build the optimistic entry shown while the dispatch is in flight"""
        return cls(
            id=f"{TEMP_JOB_PREFIX}{uuid.uuid4().hex}",
            shot_id=request.shot_id,
            status=GenerationStatus.PENDING,
            prompt=request.placeholder_prompt(),
            model=request.model,
            image_url=None,
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution,
            user_email=request.user_email or None,
            ref_snapshot=request.to_ref_snapshot(),
            created_at=created_at or utcnow(),
        )

    def to_dict(self) -> Dict:
        return self.model_dump(mode="json")


def request_from_job(job: GenerationJob, user_email: str = "") -> _GenerationBase:
    """
    Rebuild a fresh request from a job's snapshot ("restore settings and retry")

    Args:
        job: Job whose settings are restored (typically a failed one)
        user_email: Email of the user re-submitting

    Returns:
        A new request of the same mode; dispatching it creates a new job id

    Raises:
        ValueError: If the snapshot cannot be turned into a valid request
    """
    snapshot = job.ref_snapshot or RefSnapshot()
    common = {
        "shot_id": job.shot_id,
        "prompt": "" if job.prompt == PENDING_PROMPT_PLACEHOLDER else job.prompt,
        "model": job.model or DEFAULT_MODEL_ID,
        "aspect_ratio": job.aspect_ratio or "16:9",
        "resolution": job.resolution or DEFAULT_RESOLUTION,
        "user_email": user_email or job.user_email or "",
    }
    refs = snapshot.auto_refs

    if snapshot.mode == "automatic":
        return AutomaticGeneration(
            storyboard_url=refs.storyboard,
            lighting_url=refs.lighting,
            background_url=refs.background,
            characters=list(refs.characters),
            **common,
        )
    if snapshot.mode == "storyboard_enhancer":
        return EnhancerGeneration(storyboard_url=refs.storyboard, **common)
    if snapshot.mode == "angles":
        inputs = snapshot.angles_inputs or AnglesInputs()
        if common["prompt"].startswith("Angle: "):
            common["prompt"] = ""
        return AnglesGeneration(
            angle=inputs.angle,
            length=inputs.length,
            focus=inputs.focus,
            background=inputs.background,
            anchor_url=refs.angles_anchor,
            target_url=refs.angles_target,
            **common,
        )
    return ManualGeneration(ref_images=list(snapshot.manual_refs), **common)
