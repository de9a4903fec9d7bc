from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
import uuid

from .config import ProviderDescriptor


def generate_id(prefix: str = "id") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StoryMetadata:
    title: str = "Untitled story"
    genre: str = "Fantasy"
    tone: str = "Whimsical"
    perspective: str = "Third person"
    # "short" | "medium" | "long"
    target_length: str = "medium"
    # Optional override: if set, generation uses this exact token budget
    target_tokens: Optional[int] = None


@dataclass(frozen=True)
class GenerationRequest:
    provider: ProviderDescriptor
    api_key: str
    metadata: StoryMetadata
    prompt: str
    temperature: Optional[float] = None
    model: Optional[str] = None
    max_output_tokens: Optional[int] = None

    def with_model(self, model: str) -> "GenerationRequest":
        return replace(self, model=model)


@dataclass(frozen=True)
class FeedbackRequest:
    provider: ProviderDescriptor
    api_key: str
    metadata: StoryMetadata
    draft: str
    instruction: str
    # "grammar" | "dialogue" | "flow" | "custom"
    focus: str = "custom"
    model: Optional[str] = None

    def with_model(self, model: str) -> "FeedbackRequest":
        return replace(self, model=model)


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    HTTP = "http"
    EMPTY_RESPONSE = "empty_response"
    NO_MODEL = "no_model"
    TIMEOUT = "timeout"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    MISSING_CREDENTIAL = "missing_credential"


@dataclass(frozen=True)
class Success:
    content: str
    tokens_used: Optional[int] = None
    raw: Any = None
    model: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    message: str
    kind: FailureKind = FailureKind.HTTP
    status: Optional[int] = None
    payload: Any = None

    @property
    def ok(self) -> bool:
        return False


GenerationResult = Union[Success, Failure]


def describe_failure(failure: Failure) -> str:
    """
    Human-readable message for a failure, adding the most specific upstream
    detail found in the payload (message, detail, type or code) unless the
    message already carries it.
    """
    payload = failure.payload
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        for key in ("message", "detail", "type", "code"):
            extra = error.get(key)
            if extra:
                if str(extra).strip() in failure.message:
                    return failure.message
                return f"{failure.message}: {extra}"
    return failure.message


class VariantStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Variant:
    """
    One (provider, model) slot of a comparison run.

    Instances are immutable: resolving a variant produces a new object via
    `resolve()`, which only ever moves a pending variant to a terminal state.
    """

    id: str
    provider_id: str
    provider_label: str
    model: str
    cost_estimate: float
    estimated_tokens: int
    created_at: str
    status: VariantStatus = VariantStatus.PENDING
    tokens_used: Optional[int] = None
    content: Optional[str] = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not VariantStatus.PENDING

    def resolve(self, result: GenerationResult, duration_ms: float) -> "Variant":
        if self.is_terminal:
            raise InvalidTransition(f"variant {self.id} already resolved as {self.status.value}")
        if isinstance(result, Success):
            return replace(
                self,
                status=VariantStatus.SUCCESS,
                content=result.content,
                tokens_used=result.tokens_used,
                duration_ms=duration_ms,
            )
        return replace(
            self,
            status=VariantStatus.ERROR,
            error=result.message,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "provider_label": self.provider_label,
            "model": self.model,
            "status": self.status.value,
            "cost_estimate": self.cost_estimate,
            "estimated_tokens": self.estimated_tokens,
            "tokens_used": self.tokens_used,
            "content": self.content,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class VariantEvent:
    """Emitted once per variant when its generation call finishes."""

    run_id: str
    index: int
    variant: Variant
    emitted_at: str = field(default_factory=utc_now_iso)


class InvalidTransition(RuntimeError):
    pass


class ComparisonError(ValueError):
    pass
