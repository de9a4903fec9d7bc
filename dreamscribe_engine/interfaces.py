from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .domain import FeedbackRequest, GenerationRequest, GenerationResult


class TransportClient(ABC):
    """
    One provider family's wire protocol.

    Implementations perform the HTTP exchange(s) for a single call and
    normalise every outcome into a `Success` or `Failure`; they do not raise
    for upstream problems.
    """

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        ...

    @abstractmethod
    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        ...


class StorageRepository(ABC):
    @abstractmethod
    def save_rows(self, rows: List[Dict[str, Any]], table: str, partition: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def load_rows(self, table: str, partition: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def exists(self, table: str, partition: Optional[str] = None) -> bool:
        ...
