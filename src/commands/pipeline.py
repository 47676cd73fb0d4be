"""Transcript-to-result pipeline.

Stages run strictly in order:

    Start -> Classified -> Extracted -> Resolved -> Executed -> Formatted

Any stage may end the run in `Aborted`, which still yields a `CommandResult(success=False)`.
`process_transcript` never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date
from time import monotonic

from src.commands.executor import CommandAbort, CommandExecutor
from src.commands.formatter import format_result
from src.commands.resolver import EntityResolver
from src.commands.store import Store, StoreError
from src.intent.classifier import IntentClassifier
from src.intent.dates import today_utc
from src.intent.llm import LLMClient
from src.intent.schema import (
    CommandResult,
    ErrorKind,
    Intent,
    MatchStrategy,
    ResolvedReference,
    SlotSet,
    Snapshot,
    TaskFilter,
    failure,
    intent_from_name,
)
from src.intent.slots import SlotExtractor

logger = logging.getLogger(__name__)

_PROJECT_SCOPED = frozenset({Intent.search_task, Intent.count_tasks})


class CommandPipeline:
    """Wires the interpretation stages to the executor.

    Collaborators are injected; the pipeline keeps no state between calls.
    """

    def __init__(
            self,
            store: Store,
            *,
            llm: LLMClient | None = None,
            llm_timeout_s: float = 10.0,
            store_timeout_s: float = 5.0,
            search_result_limit: int = 10,
            default_due_days: int = 7,
            clock: Callable[[], date] = today_utc,
    ) -> None:
        self._store = store
        self._store_timeout_s = store_timeout_s
        self._clock = clock
        self._classifier = IntentClassifier(llm, llm_timeout_s=llm_timeout_s)
        self._extractor = SlotExtractor(llm, llm_timeout_s=llm_timeout_s, default_due_days=default_due_days)
        self._resolver = EntityResolver()
        self._executor = CommandExecutor(
            store,
            llm=llm,
            store_timeout_s=store_timeout_s,
            llm_timeout_s=llm_timeout_s,
            search_result_limit=search_result_limit,
        )

    async def process_transcript(
            self,
            text: str,
            *,
            intent_hint: Intent | str | None = None,
            project_id_hint: int | None = None,
            snapshot: Snapshot | None = None,
    ) -> CommandResult:
        """Interpret `text` and run it against the store."""

        started = monotonic()
        intent = Intent.assistance
        stage = "start"

        # noinspection PyBroadException
        try:
            intent = await self._classify(text, intent_hint)
            stage = self._advance(stage, "classified", intent)

            today = self._clock()
            slots = await self._extractor.extract(intent, text, today=today)
            if project_id_hint is not None:
                slots = slots.model_copy(update={"project_id": project_id_hint})
            stage = self._advance(stage, "extracted", intent, slots=",".join(slots.present()))

            if snapshot is None:
                snapshot = await self._load_snapshot(project_id_hint)
            reference = self._resolve(intent, slots, text, snapshot)
            slots = self._extractor.apply_create_defaults(
                intent,
                slots,
                today=today,
                project_title=reference.title if reference is not None else None,
            )
            stage = self._advance(
                stage,
                "resolved",
                intent,
                strategy=reference.match_strategy if reference is not None else None,
            )

            result = await self._executor.execute(intent, slots, reference, snapshot, today=today, text=text)
            stage = self._advance(stage, "executed", intent, success=result.success)
        except CommandAbort as abort:
            result = abort.to_result(intent)
        except Exception:
            logger.exception("pipeline failed stage=%s intent=%s", stage, intent)
            result = failure(intent, ErrorKind.external_service_failure, payload={"reason": "unexpected"})

        if not result.success:
            self._advance(stage, "aborted", intent, error_kind=result.error_kind)

        result = result.model_copy(update={"message": format_result(result)})
        latency_ms = int((monotonic() - started) * 1000)
        logger.info(
            "processed intent=%s action=%s success=%s error_kind=%s latency_ms=%d",
            result.intent,
            result.action,
            result.success,
            result.error_kind,
            latency_ms,
        )
        return result

    @staticmethod
    def _advance(current: str, target: str, intent: Intent, **details: object) -> str:
        extra = " ".join(f"{key}={value}" for key, value in details.items())
        logger.debug("transition %s -> %s intent=%s %s", current, target, intent, extra)
        return target

    async def _classify(self, text: str, intent_hint: Intent | str | None) -> Intent:
        if intent_hint is not None:
            hinted = intent_hint if isinstance(intent_hint, Intent) else intent_from_name(intent_hint)
            if hinted is not None:
                return hinted
            logger.info("ignoring unknown intent hint=%r", intent_hint)
        return await self._classifier.classify(text)

    async def _load_snapshot(self, project_id_hint: int | None) -> Snapshot:
        try:
            projects, tasks = await asyncio.wait_for(
                asyncio.gather(
                    self._store.find_projects(),
                    self._store.find_tasks(TaskFilter(project_id=project_id_hint)),
                ),
                timeout=self._store_timeout_s,
            )
        except (TimeoutError, StoreError) as exc:
            logger.warning("snapshot unavailable error=%r", exc)
            raise CommandAbort(ErrorKind.external_service_failure, "snapshot_unavailable") from exc
        return Snapshot(projects=tuple(projects), tasks=tuple(tasks))

    def _project_by_id(self, project_id: int, snapshot: Snapshot) -> ResolvedReference:
        title = next((p.title for p in snapshot.projects if p.id == project_id), f"#{project_id}")
        return ResolvedReference(
            kind="project",
            id=project_id,
            title=title,
            match_strategy=MatchStrategy.exact,
            confidence=1.0,
        )

    def _resolve(self, intent: Intent, slots: SlotSet, text: str, snapshot: Snapshot) -> ResolvedReference | None:
        # Only a missing target name may fall back; the executor rejects the guess.
        guess_allowed = not slots.reference_text
        if intent == Intent.update_task:
            return self._resolver.resolve(
                slots.reference_text, snapshot.tasks, kind="task", allow_fallback=guess_allowed
            )
        if intent == Intent.update_project:
            return self._resolver.resolve(
                slots.reference_text, snapshot.projects, kind="project", allow_fallback=guess_allowed
            )

        if intent == Intent.create_task:
            if slots.project_id is not None:
                return self._project_by_id(slots.project_id, snapshot)
            if slots.project_reference:
                return self._resolver.resolve(slots.project_reference, snapshot.projects, kind="project")
            return self._resolver.find_mentioned(text, snapshot.projects) or self._resolver.resolve(
                None, snapshot.projects, kind="project"
            )

        if intent in _PROJECT_SCOPED:
            if slots.project_id is not None:
                return self._project_by_id(slots.project_id, snapshot)
            if slots.project_reference:
                reference = self._resolver.resolve(
                    slots.project_reference, snapshot.projects, kind="project", allow_fallback=False
                )
                if reference is None:
                    raise CommandAbort(
                        ErrorKind.entity_not_found,
                        "project_not_found",
                        payload={"reference_text": slots.project_reference},
                    )
                return reference
        return None
