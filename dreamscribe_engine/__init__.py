from .catalog import ProviderCatalog
from .config import EngineConfig, ProviderDescriptor, ProviderFamily, load_api_keys
from .costs import estimate_generation_cost, tokens_for
from .domain import (
    ComparisonError,
    Failure,
    FailureKind,
    FeedbackRequest,
    GenerationRequest,
    InvalidTransition,
    StoryMetadata,
    Success,
    Variant,
    VariantEvent,
    VariantStatus,
)
from .runner.comparison import ComparisonRun, ComparisonRunner
from .runner.orchestrator import GenerationOrchestrator

__version__ = "0.1.0"
