import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..catalog import ProviderCatalog
from ..config import ProviderDescriptor
from ..costs import estimate_generation_cost, tokens_for
from ..domain import (
    ComparisonError,
    Failure,
    GenerationRequest,
    InvalidTransition,
    StoryMetadata,
    Variant,
    VariantEvent,
    VariantStatus,
    generate_id,
    utc_now_iso,
)
from .orchestrator import GenerationOrchestrator


logger = logging.getLogger(__name__)

MIN_VARIANTS = 2
MAX_VARIANTS = 3
COMPARISON_TEMPERATURE = 0.72

Listener = Callable[["ComparisonRun", VariantEvent], None]


class ComparisonRun:
    """
    A fixed set of variant slots resolved concurrently.

    Slots are created pending and each is written exactly once, by the
    aggregator applying that slot's single completion event. Readers may
    take a consistent snapshot at any time; the winner is only ever set by
    an explicit `mark_winner` call.
    """

    def __init__(
        self,
        prompt: str,
        variants: Sequence[Variant],
        summary: Optional[str] = None,
        run_id: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> None:
        self.id = run_id or generate_id("ab")
        self.created_at = created_at or utc_now_iso()
        self.prompt = prompt
        self.summary = summary
        self._slots: List[Variant] = list(variants)
        self._winner_id: Optional[str] = None
        self._lock = threading.Lock()
        self._complete = threading.Event()
        self._listeners: List[Listener] = []
        if all(v.is_terminal for v in self._slots):
            self._complete.set()

    # --- reads ------------------------------------------------------------

    @property
    def variants(self) -> Tuple[Variant, ...]:
        with self._lock:
            return tuple(self._slots)

    @property
    def winner_id(self) -> Optional[str]:
        with self._lock:
            return self._winner_id

    @property
    def is_complete(self) -> bool:
        return self._complete.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._complete.wait(timeout)

    def successes(self) -> List[Variant]:
        return [v for v in self.variants if v.status is VariantStatus.SUCCESS]

    def failures(self) -> List[Variant]:
        return [v for v in self.variants if v.status is VariantStatus.ERROR]

    def get_variant(self, variant_id: str) -> Variant:
        for v in self.variants:
            if v.id == variant_id:
                return v
        raise KeyError(variant_id)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            variants = list(self._slots)
            winner_id = self._winner_id
        return {
            "id": self.id,
            "created_at": self.created_at,
            "prompt": self.prompt,
            "summary": self.summary,
            "winner_id": winner_id,
            "complete": all(v.is_terminal for v in variants),
            "variants": [v.to_dict() for v in variants],
        }

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot()

    # --- writes -----------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def apply(self, event: VariantEvent) -> None:
        """Replace one pending slot with its terminal state and notify listeners."""
        if event.run_id != self.id:
            raise ValueError(f"event for run {event.run_id} applied to run {self.id}")
        with self._lock:
            current = self._slots[event.index]
            if current.id != event.variant.id:
                raise ValueError(f"slot {event.index} holds variant {current.id}, not {event.variant.id}")
            if current.is_terminal:
                raise InvalidTransition(f"variant {current.id} already resolved as {current.status.value}")
            if not event.variant.is_terminal:
                raise InvalidTransition(f"variant {current.id} cannot be resolved to pending")
            self._slots[event.index] = event.variant
            done = all(v.is_terminal for v in self._slots)
        logger.debug(
            "variant_resolved run_id=%s index=%s provider=%s status=%s",
            self.id,
            event.index,
            event.variant.provider_id,
            event.variant.status.value,
        )
        if done:
            self._complete.set()
        for listener in list(self._listeners):
            try:
                listener(self, event)
            except Exception:
                logger.exception("comparison_listener_failed run_id=%s", self.id)

    def mark_winner(self, variant_id: str) -> None:
        with self._lock:
            variant = next((v for v in self._slots if v.id == variant_id), None)
            if variant is None:
                raise KeyError(variant_id)
            if variant.status is not VariantStatus.SUCCESS:
                raise ComparisonError(f"variant {variant_id} has not succeeded and cannot win")
            if self._winner_id == variant_id:
                return
            self._winner_id = variant_id
        logger.info("winner_marked run_id=%s variant_id=%s provider=%s", self.id, variant_id, variant.provider_id)

    def adopt(self, variant_id: str) -> str:
        """Return a successful variant's content; the run itself is unchanged."""
        variant = self.get_variant(variant_id)
        if variant.status is not VariantStatus.SUCCESS or not variant.content:
            raise ComparisonError(f"variant {variant_id} has no content to adopt")
        logger.info("variant_adopted run_id=%s variant_id=%s provider=%s", self.id, variant_id, variant.provider_id)
        return variant.content


class ComparisonRunner:
    """
    Fans one prompt out to 2-3 (provider, model) pairs at once.

    Each variant runs in its own worker and reports back with exactly one
    event on a queue; a single aggregator thread applies the events to the
    run, so every slot has one writer.
    """

    def __init__(self, orchestrator: GenerationOrchestrator, catalog: Optional[ProviderCatalog] = None) -> None:
        self.orchestrator = orchestrator
        self.catalog = catalog or ProviderCatalog()
        self.logger = logging.getLogger(__name__)

    def _resolve_selection(self, selection: Iterable[Tuple[str, Optional[str]]]) -> List[Tuple[ProviderDescriptor, str]]:
        resolved = []
        for provider_id, model in selection:
            provider = self.catalog.get(provider_id)
            if provider is None:
                self.logger.warning("comparison_unknown_provider provider=%s", provider_id)
                continue
            resolved.append((provider, self.catalog.resolve_model(provider_id, model)))
        return resolved

    def prepare(
        self,
        prompt: str,
        selection: Iterable[Tuple[str, Optional[str]]],
        credentials: Mapping[str, str],
        metadata: Optional[StoryMetadata] = None,
        summary: Optional[str] = None,
    ) -> Tuple[ComparisonRun, List[GenerationRequest]]:
        """Validate the selection and build the pending run; no I/O happens here."""
        metadata = metadata or StoryMetadata()
        resolved = self._resolve_selection(selection)
        if len({p.id for p, _ in resolved}) < MIN_VARIANTS:
            raise ComparisonError("Select at least two supported providers to compare.")
        if len(resolved) > MAX_VARIANTS:
            raise ComparisonError(f"Select at most {MAX_VARIANTS} provider/model pairs to compare.")
        for provider, _ in resolved:
            if not (credentials.get(provider.id) or "").strip():
                raise ComparisonError(f"Add an API key for {provider.label} before running the comparison.")

        tokens_estimate = tokens_for(metadata)
        timestamp = utc_now_iso()
        variants = [
            Variant(
                id=generate_id("variant"),
                provider_id=provider.id,
                provider_label=provider.label,
                model=model,
                cost_estimate=estimate_generation_cost(provider.id, tokens_estimate),
                estimated_tokens=tokens_estimate,
                created_at=timestamp,
            )
            for provider, model in resolved
        ]
        requests = [
            GenerationRequest(
                provider=provider,
                api_key=credentials[provider.id].strip(),
                metadata=metadata,
                prompt=prompt,
                temperature=COMPARISON_TEMPERATURE,
                model=model,
                max_output_tokens=tokens_estimate,
            )
            for provider, model in resolved
        ]
        run = ComparisonRun(prompt=prompt, variants=variants, summary=summary, created_at=timestamp)
        return run, requests

    def launch(
        self,
        prompt: str,
        selection: Iterable[Tuple[str, Optional[str]]],
        credentials: Mapping[str, str],
        metadata: Optional[StoryMetadata] = None,
        summary: Optional[str] = None,
        listeners: Iterable[Listener] = (),
    ) -> ComparisonRun:
        """Start a comparison and return the live run immediately."""
        run, requests = self.prepare(prompt, selection, credentials, metadata, summary)
        return self.start(run, requests, listeners)

    def start(
        self,
        run: ComparisonRun,
        requests: Sequence[GenerationRequest],
        listeners: Iterable[Listener] = (),
    ) -> ComparisonRun:
        """Dispatch a prepared run: one worker per variant plus one aggregator."""
        if len(requests) != len(run.variants):
            raise ComparisonError(
                f"run {run.id} has {len(run.variants)} variants but {len(requests)} requests were given"
            )
        for listener in listeners:
            run.add_listener(listener)
        events: "queue.Queue[VariantEvent]" = queue.Queue()
        pending = run.variants
        self.logger.info(
            "comparison_start run_id=%s variants=%s",
            run.id,
            ",".join(f"{v.provider_id}:{v.model}" for v in pending),
        )

        aggregator = threading.Thread(
            target=self._aggregate,
            args=(run, events, len(pending)),
            name=f"comparison-{run.id}",
            daemon=True,
        )
        aggregator.start()
        pool = ThreadPoolExecutor(max_workers=len(pending), thread_name_prefix=f"variant-{run.id}")
        try:
            for index, (variant, request) in enumerate(zip(pending, requests)):
                pool.submit(self._work, run.id, index, variant, request, events)
        finally:
            pool.shutdown(wait=False)
        return run

    def run(
        self,
        prompt: str,
        selection: Iterable[Tuple[str, Optional[str]]],
        credentials: Mapping[str, str],
        metadata: Optional[StoryMetadata] = None,
        summary: Optional[str] = None,
        listeners: Iterable[Listener] = (),
    ) -> ComparisonRun:
        """Run a comparison to completion and return the finished run."""
        run = self.launch(prompt, selection, credentials, metadata, summary, listeners)
        run.wait()
        return run

    # --- workers ----------------------------------------------------------

    def _work(
        self,
        run_id: str,
        index: int,
        variant: Variant,
        request: GenerationRequest,
        events: "queue.Queue[VariantEvent]",
    ) -> None:
        started = time.perf_counter()
        self.logger.info("variant_request run_id=%s provider=%s model=%s", run_id, variant.provider_id, variant.model)
        try:
            result = self.orchestrator.generate_story(request)
        except Exception as e:
            self.logger.exception("variant_crashed run_id=%s provider=%s", run_id, variant.provider_id)
            result = Failure(message=f"Failed to generate with {variant.provider_label}: {e}")
        duration_ms = (time.perf_counter() - started) * 1000
        resolved = variant.resolve(result, duration_ms)
        if resolved.status is VariantStatus.ERROR:
            self.logger.warning(
                "variant_error run_id=%s provider=%s model=%s error=%s",
                run_id,
                variant.provider_id,
                variant.model,
                resolved.error,
            )
        else:
            self.logger.info(
                "variant_ok run_id=%s provider=%s model=%s tokens=%s duration_ms=%.0f",
                run_id,
                variant.provider_id,
                variant.model,
                resolved.tokens_used,
                duration_ms,
            )
        events.put(VariantEvent(run_id=run_id, index=index, variant=resolved))

    def _aggregate(self, run: ComparisonRun, events: "queue.Queue[VariantEvent]", expected: int) -> None:
        for _ in range(expected):
            event = events.get()
            try:
                run.apply(event)
            except (InvalidTransition, ValueError):
                self.logger.exception("comparison_event_rejected run_id=%s index=%s", run.id, event.index)
        self.logger.info(
            "comparison_complete run_id=%s successes=%s failures=%s",
            run.id,
            len(run.successes()),
            len(run.failures()),
        )
