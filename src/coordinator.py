"""
Generation Coordinator Module

Orchestrates career-content generation: owns the stage dependency graph,
allows at most one in-flight request per stage, merges results into session
state and schedules debounced persistence through the cache store.

Example Usage:
    coordinator = GenerationCoordinator(
        owner_id="user-123",
        client=ContentServiceClient.from_params(params, api_key=key),
        cache_store=CacheStore(FileStorage("data/storage")),
        params=params,
    )

    if not coordinator.restore_session():
        coordinator.start_session(profile, analysis=analysis_text)

    await coordinator.generate(StageId.RECOMMENDATIONS)
    await coordinator.generate(StageId.ROADMAP)  # eligible once recommendations are ready
"""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from src.models.config import SystemParams
from src.models.profile import UserProfile
from src.models.stage import (
    ROOT_STAGE,
    STAGE_SPECS,
    CareerRecommendation,
    GeneratedArtifact,
    StageId,
    StageSpec,
    StageStatus,
    dependents_of,
    get_stage_spec,
    has_content,
)
from src.utils.cache_store import CacheStore, Clock, Namespace, utc_now
from src.utils.content_client import ContentServiceError
from src.utils.debounce import DebouncedTimer
from src.utils.logger import get_logger
from src.utils.progress_tracker import ProgressTracker
from src.utils.prompt_loader import PromptLoader, get_default_loader
from src.utils.response_normalizer import normalize


PLACEHOLDER_CAREER_TITLE = "Recommended Career"


class ContentClient(Protocol):
    """What the coordinator needs from the content service client."""

    async def send(
        self,
        stage_id: str,
        prompt_text: str,
        output_budget: int,
        correlation_id: Optional[str] = None,
    ) -> str: ...


class SessionNotStartedError(RuntimeError):
    """Raised when generation is requested before a profile is available."""

    pass


class GenerationCoordinator:
    """
    Per-session orchestrator for the generation stages.

    Stage status: idle -> generating -> ready | failed. A failed stage returns
    to idle on retry; a ready stage may be regenerated, replacing its artifact.
    """

    def __init__(
        self,
        owner_id: str,
        client: ContentClient,
        cache_store: CacheStore,
        params: Optional[SystemParams] = None,
        autosave_timer: Optional[DebouncedTimer] = None,
        prompt_loader: Optional[PromptLoader] = None,
        correlation_id: Optional[str] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize GenerationCoordinator.

        Args:
            owner_id: Id of the current user; every cache read/write is scoped to it
            client: Content service client
            cache_store: Persistence for autosave and session restore
            params: System parameters (defaults used when None)
            autosave_timer: Debounce timer (built from params.autosave when None)
            prompt_loader: Template loader (default prompts/ loader when None)
            correlation_id: Correlation ID for logging (auto-generated if None)
            clock: Returns the current timezone-aware time
        """
        if not owner_id:
            raise ValueError("owner_id must be a non-empty string")

        self.owner_id = owner_id
        self.client = client
        self.cache_store = cache_store
        self.params = params or SystemParams()
        self.autosave_timer = autosave_timer or DebouncedTimer(
            self.params.autosave.debounce_ms / 1000
        )
        self.prompt_loader = prompt_loader or get_default_loader()
        self.clock = clock

        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.logger = get_logger(
            correlation_id=self.correlation_id,
            phase="generation",
            component="generation_coordinator",
        )

        self.profile: Optional[UserProfile] = None
        self.analysis: str = ""
        self._status: dict[StageId, StageStatus] = {
            stage_id: StageStatus.IDLE for stage_id in STAGE_SPECS
        }
        self._artifacts: dict[StageId, GeneratedArtifact] = {}
        self._errors: dict[StageId, Exception] = {}
        # Bumped whenever session state is discarded; in-flight results from
        # an older epoch are dropped.
        self._epoch = 0

        self.logger.info(
            "Generation coordinator initialized",
            owner_id=owner_id,
            debounce_seconds=self.autosave_timer.delay_seconds,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(
        self,
        profile: UserProfile,
        analysis: str = "",
        form_data: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Begin a session with a fresh intake profile.

        Discards any in-memory artifacts, persists the profile/analysis and
        form-data records immediately and schedules an autosave.

        Args:
            profile: Intake profile (not mutated)
            analysis: Primary analysis text produced by the intake flow
            form_data: Raw intake answers (defaults to the profile fields)
        """
        self._discard_state()
        self.profile = profile
        self.analysis = analysis

        profile_data = profile.model_dump(mode="json")
        self.cache_store.put(
            Namespace.ANALYSIS,
            self.owner_id,
            {
                "profile": profile_data,
                "analysis": analysis,
                "timestamp": self.clock().isoformat(),
            },
        )
        self.cache_store.put(
            Namespace.FORM_DATA,
            self.owner_id,
            form_data if form_data is not None else profile_data,
        )

        self.logger.info("Session started", profile_name=profile.name)
        self._schedule_autosave()

    def restore_session(self) -> bool:
        """
        Restore profile, analysis and artifacts from the cache store.

        Records owned by another user or past their lifetime are purged by the
        cache store and treated as absent.

        Returns:
            True if at least one artifact was restored
        """
        analysis_record = self.cache_store.get(Namespace.ANALYSIS, self.owner_id)
        if isinstance(analysis_record, dict):
            profile = self._load_profile(analysis_record.get("profile"))
            if profile is not None:
                self.profile = profile
                self.analysis = str(analysis_record.get("analysis") or "")
                self.logger.info("Restored profile and analysis from cache")

        content_record = self.cache_store.get(Namespace.CONTENT, self.owner_id)
        if not isinstance(content_record, dict):
            return False

        if self.profile is None:
            self.profile = self._load_profile(content_record.get("profile"))

        restored: list[str] = []
        for key, data in (content_record.get("artifacts") or {}).items():
            try:
                artifact = GeneratedArtifact.model_validate(data)
            except ValidationError as e:
                self.logger.warning(
                    "Skipping unreadable cached artifact", stage=key, error=str(e)
                )
                continue

            if artifact.payload is None:
                continue

            self._artifacts[artifact.stage_id] = artifact
            self._status[artifact.stage_id] = StageStatus.READY
            restored.append(artifact.stage_id.value)

        self.logger.info("Restored generated content from cache", stages=restored)
        return bool(restored)

    def clear_all_data(self) -> None:
        """Cancel pending autosave, clear every cache namespace and reset all stages."""
        self.autosave_timer.cancel()
        self.cache_store.clear_all()
        self._discard_state()
        self.profile = None
        self.analysis = ""
        self.logger.info("All user data cleared")

    def _discard_state(self) -> None:
        self._epoch += 1
        self._artifacts.clear()
        self._errors.clear()
        for stage_id in self._status:
            self._status[stage_id] = StageStatus.IDLE

    def _load_profile(self, data: Any) -> Optional[UserProfile]:
        if not isinstance(data, dict):
            return None
        try:
            return UserProfile.model_validate(data)
        except ValidationError as e:
            self.logger.warning("Cached profile unreadable", error=str(e))
            return None

    # ------------------------------------------------------------------
    # Stage state
    # ------------------------------------------------------------------

    def status(self, stage_id: StageId | str) -> StageStatus:
        return self._status[get_stage_spec(stage_id).stage_id]

    def statuses(self) -> dict[StageId, StageStatus]:
        """Status of every stage, in registry order."""
        return dict(self._status)

    def artifact(self, stage_id: StageId | str) -> Optional[GeneratedArtifact]:
        """Current (or retained) artifact of a stage, regardless of status."""
        return self._artifacts.get(get_stage_spec(stage_id).stage_id)

    def last_error(self, stage_id: StageId | str) -> Optional[Exception]:
        return self._errors.get(get_stage_spec(stage_id).stage_id)

    def is_eligible(self, stage_id: StageId | str) -> bool:
        """
        Whether a stage's dependency is satisfied.

        A dependent stage is eligible only while its dependency is ready with a
        non-empty artifact.
        """
        spec = get_stage_spec(stage_id)
        if spec.depends_on is None:
            return True

        dependency = self._artifacts.get(spec.depends_on)
        return (
            self._status[spec.depends_on] is StageStatus.READY
            and dependency is not None
            and has_content(dependency.payload)
        )

    def snapshot(self) -> dict[StageId, GeneratedArtifact]:
        """Read-only copy of every ready artifact, keyed by stage."""
        return {
            stage_id: artifact.model_copy(deep=True)
            for stage_id, artifact in self._artifacts.items()
            if self._status[stage_id] is StageStatus.READY
        }

    def _set_status(self, stage_id: StageId, status: StageStatus) -> None:
        previous = self._status[stage_id]
        self._status[stage_id] = status
        self.logger.info(
            "Stage status changed",
            stage=stage_id.value,
            from_status=previous.value,
            to_status=status.value,
        )

    def reset(self, stage_id: StageId | str) -> bool:
        """
        Return a stage to idle, keeping any retained artifact.

        Returns:
            False if the stage is generating (left untouched), True otherwise
        """
        spec = get_stage_spec(stage_id)
        if self._status[spec.stage_id] is StageStatus.GENERATING:
            return False
        self._errors.pop(spec.stage_id, None)
        self._set_status(spec.stage_id, StageStatus.IDLE)
        return True

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _top_recommendation(self) -> Optional[CareerRecommendation]:
        recommendations = self._artifacts.get(ROOT_STAGE)
        if recommendations is None or not has_content(recommendations.payload):
            return None

        first = (
            recommendations.payload[0]
            if isinstance(recommendations.payload, list)
            else recommendations.payload
        )
        if isinstance(first, str) and first.strip():
            return CareerRecommendation(title=first.strip())

        try:
            return CareerRecommendation.model_validate(first)
        except ValidationError:
            pass

        title = first.get("title") if isinstance(first, dict) else None
        if isinstance(title, str) and title.strip():
            return CareerRecommendation(title=title.strip())

        self.logger.warning(
            "Top recommendation has no title, using placeholder",
            item=str(first)[:200],
        )
        return CareerRecommendation(title=PLACEHOLDER_CAREER_TITLE)

    def build_prompt(self, stage_id: StageId | str) -> str:
        """
        Render the prompt for a stage from the current profile.

        Raises:
            SessionNotStartedError: If no profile has been set
        """
        spec = get_stage_spec(stage_id)
        if self.profile is None:
            raise SessionNotStartedError(
                "No user profile loaded; call start_session() or restore_session() first"
            )

        return self.prompt_loader.render(
            spec.template,
            correlation_id=self.correlation_id,
            profile=self.profile,
            top_career=self._top_recommendation(),
            today=self.clock().date().isoformat(),
        )

    def _to_artifact(self, spec: StageSpec, text: str) -> GeneratedArtifact:
        fallback = spec.shape.fallback()
        outcome = normalize(text, fallback, correlation_id=self.correlation_id)
        payload = outcome.value
        degraded = outcome.is_degraded

        if not degraded and not spec.shape.matches(payload):
            self.logger.warning(
                "Response has wrong top-level shape, using fallback",
                stage=spec.stage_id.value,
                expected=spec.shape.value,
                received=type(payload).__name__,
            )
            payload = fallback
            degraded = True

        return GeneratedArtifact(
            stage_id=spec.stage_id,
            payload=payload,
            degraded=degraded,
            generated_at=self.clock(),
        )

    async def generate(self, stage_id: StageId | str) -> Optional[GeneratedArtifact]:
        """
        Generate (or regenerate) one stage.

        No-op when the stage is already generating or its dependency is not
        ready with a non-empty artifact. Unparseable responses are not errors:
        the stage becomes ready with the fallback default.

        Args:
            stage_id: Stage to generate

        Returns:
            The new artifact, or None if the call was a no-op

        Raises:
            TransportError: Content service unreachable or non-success status
            EnvelopeFormatError: Content service response had no recognized shape
            SessionNotStartedError: No profile loaded
        """
        spec = get_stage_spec(stage_id)
        sid = spec.stage_id

        if self._status[sid] is StageStatus.GENERATING:
            self.logger.debug("Stage already generating, skipping", stage=sid.value)
            return None

        if not self.is_eligible(sid):
            self.logger.info(
                "Stage dependency not ready, skipping",
                stage=sid.value,
                depends_on=spec.depends_on.value if spec.depends_on else None,
            )
            return None

        if self.profile is None:
            raise SessionNotStartedError(
                "No user profile loaded; call start_session() or restore_session() first"
            )

        epoch = self._epoch
        self._errors.pop(sid, None)
        self._set_status(sid, StageStatus.GENERATING)

        try:
            prompt = self.build_prompt(sid)
            text = await self.client.send(
                sid.value,
                prompt,
                spec.output_budget,
                correlation_id=self.correlation_id,
            )
        except asyncio.CancelledError:
            if epoch == self._epoch:
                self._set_status(sid, StageStatus.IDLE)
            raise
        except Exception as e:
            if epoch == self._epoch:
                self._errors[sid] = e
                self._set_status(sid, StageStatus.FAILED)
            self.logger.error(
                "Stage generation failed",
                stage=sid.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        if epoch != self._epoch:
            self.logger.info("Session reset during generation, dropping result", stage=sid.value)
            return None

        artifact = self._to_artifact(spec, text)
        self._artifacts[sid] = artifact
        self._set_status(sid, StageStatus.READY)

        if sid is ROOT_STAGE and has_content(artifact.payload):
            self.logger.info(
                "Dependent stages eligible",
                stages=[s.value for s in dependents_of(ROOT_STAGE)],
            )

        self._schedule_autosave()
        return artifact

    async def retry(self, stage_id: StageId | str) -> Optional[GeneratedArtifact]:
        """Explicit user retry: failed -> idle, then generate."""
        spec = get_stage_spec(stage_id)
        if self._status[spec.stage_id] is StageStatus.FAILED:
            self.reset(spec.stage_id)
        return await self.generate(spec.stage_id)

    async def generate_all(
        self, progress: Optional[ProgressTracker] = None
    ) -> dict[StageId, StageStatus]:
        """
        Generate the root stage, then every dependent stage concurrently.

        Content service failures are recorded per stage (see last_error) rather
        than raised.

        Args:
            progress: Optional progress display

        Returns:
            Final status of every stage
        """
        dependents = dependents_of(ROOT_STAGE)
        if progress is not None:
            progress.start_phase("Career content generation", total_items=len(STAGE_SPECS))

        async def run(stage_id: StageId) -> None:
            try:
                await self.generate(stage_id)
            except ContentServiceError:
                self.logger.warning("Continuing after stage failure", stage=stage_id.value)
            finally:
                if progress is not None:
                    progress.stage_finished(stage_id.value, self._status[stage_id].value)

        await run(ROOT_STAGE)

        if self.is_eligible(dependents[0]):
            await asyncio.gather(*(run(stage_id) for stage_id in dependents))
        else:
            self.logger.warning(
                "Recommendations unavailable, dependent stages not requested",
                root_status=self._status[ROOT_STAGE].value,
            )

        if progress is not None:
            progress.complete_phase()

        return self.statuses()

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    def _schedule_autosave(self) -> None:
        self.autosave_timer.schedule(self._write_snapshot)

    def flush_autosave(self) -> bool:
        """Write a pending autosave now. Returns True if one was pending."""
        return self.autosave_timer.flush()

    def _write_snapshot(self) -> bool:
        """Persist profile plus every ready artifact as one content record."""
        if self.profile is None:
            return False

        artifacts = self.snapshot()
        payload = {
            "profile": self.profile.model_dump(mode="json"),
            "artifacts": {
                stage_id.value: artifact.model_dump(mode="json")
                for stage_id, artifact in artifacts.items()
            },
            "last_generated": self._last_generated(artifacts),
        }

        saved = self.cache_store.put(Namespace.CONTENT, self.owner_id, payload)
        if saved:
            self.logger.info("Autosave written", stages=list(payload["artifacts"].keys()))
        else:
            self.logger.warning("Autosave failed, continuing with in-memory state only")
        return saved

    @staticmethod
    def _last_generated(artifacts: dict[StageId, GeneratedArtifact]) -> Optional[str]:
        if not artifacts:
            return None
        latest: datetime = max(a.generated_at for a in artifacts.values())
        return latest.isoformat()
