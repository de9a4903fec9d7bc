import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Mapping, Optional, TypeVar, Union

from ..config import EngineConfig, ProviderFamily
from ..domain import (
    Failure,
    FailureKind,
    FeedbackRequest,
    GenerationRequest,
    GenerationResult,
)
from ..interfaces import TransportClient
from ..providers import default_transports
from ..providers.base import timeout_failure


R = TypeVar("R", GenerationRequest, FeedbackRequest)


class GenerationOrchestrator:
    """
    Runs a single generation or feedback call against the right transport.

    Lifecycle of one call:
    - attempt the requested model
    - on a model-unavailable HTTP failure, when the requested model is not
      the provider default, attempt the default model exactly once
    - the whole thing, retry included, is bounded by `request_timeout`;
      a late transport result is discarded and the caller gets a timeout
      Failure instead
    """

    def __init__(
        self,
        transports: Optional[Mapping[ProviderFamily, TransportClient]] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.transports = dict(transports) if transports is not None else default_transports(self.config)
        missing = [f.value for f in ProviderFamily if f not in self.transports]
        if missing:
            raise ValueError(f"no transport registered for provider families: {', '.join(missing)}")
        self.logger = logging.getLogger(__name__)

    # --- classification ---------------------------------------------------

    def is_model_unavailable(self, failure: Failure) -> bool:
        if failure.kind is not FailureKind.HTTP:
            return False
        if failure.status == 404:
            return True
        markers = [m.lower() for m in self.config.model_error_markers]
        message = failure.message.lower()
        payload_text = json.dumps(failure.payload, default=str).lower() if failure.payload else ""
        return any(m in message or m in payload_text for m in markers)

    # --- public API -------------------------------------------------------

    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        return self._run(request, lambda client, req: client.generate_story(req), "story")

    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        return self._run(request, lambda client, req: client.request_feedback(req), "feedback")

    # --- internal helpers -------------------------------------------------

    def _preflight(self, request: Union[GenerationRequest, FeedbackRequest]) -> Optional[Failure]:
        provider = request.provider
        if provider.is_custom:
            return Failure(
                message="Custom providers require a user-supplied connector.",
                kind=FailureKind.UNSUPPORTED_PROVIDER,
            )
        if not (request.api_key or "").strip():
            return Failure(message=f"Missing API key for {provider.label}", kind=FailureKind.MISSING_CREDENTIAL)
        return None

    def _run(
        self,
        request: R,
        call: Callable[[TransportClient, R], GenerationResult],
        kind: str,
    ) -> GenerationResult:
        rejected = self._preflight(request)
        if rejected is not None:
            self.logger.info("request_rejected provider=%s kind=%s reason=%s", request.provider.id, kind, rejected.kind.value)
            return rejected
        client = self.transports[request.provider.family]
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{kind}-{request.provider.id}")
        try:
            future = pool.submit(self._attempt_with_fallback, client, call, request, kind)
        finally:
            # Never wait on the worker: a timed-out call keeps running but its result is dropped.
            pool.shutdown(wait=False)
        try:
            return future.result(timeout=self.config.request_timeout)
        except FutureTimeout:
            self.logger.warning(
                "request_timeout provider=%s model=%s kind=%s timeout=%s",
                request.provider.id,
                request.model or request.provider.default_model,
                kind,
                self.config.request_timeout,
            )
            return timeout_failure()

    def _attempt_with_fallback(
        self,
        client: TransportClient,
        call: Callable[[TransportClient, R], GenerationResult],
        request: R,
        kind: str,
    ) -> GenerationResult:
        provider = request.provider
        requested = request.model or provider.default_model
        self.logger.info("attempt provider=%s model=%s kind=%s", provider.id, requested, kind)
        result = call(client, request)
        if not isinstance(result, Failure):
            return result
        if requested != provider.default_model and self.is_model_unavailable(result):
            self.logger.info(
                "model_fallback provider=%s from=%s to=%s reason=%s",
                provider.id,
                requested,
                provider.default_model,
                result.message,
            )
            return call(client, request.with_model(provider.default_model))
        return result
