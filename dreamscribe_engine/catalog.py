from typing import Iterable, Iterator, List, Optional, Sequence

from .config import BUILTIN_PROVIDERS, ProviderDescriptor
from .domain import generate_id


class ProviderCatalog:
    """
    Read-only registry of provider descriptors.

    Registering a custom provider returns a new catalog; existing instances
    never change, so a catalog can be shared freely between threads.
    """

    def __init__(self, providers: Iterable[ProviderDescriptor] = BUILTIN_PROVIDERS) -> None:
        self._providers = tuple(providers)
        self._by_id = {p.id: p for p in self._providers}
        if len(self._by_id) != len(self._providers):
            raise ValueError("duplicate provider ids in catalog")

    def get(self, provider_id: str) -> Optional[ProviderDescriptor]:
        return self._by_id.get(provider_id)

    def list(self) -> List[ProviderDescriptor]:
        return list(self._providers)

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._by_id

    def resolve_model(self, provider_id: str, model: Optional[str]) -> str:
        provider = self._by_id[provider_id]
        if model and model in provider.models:
            return model
        return provider.default_model

    def register_custom(
        self,
        label: str,
        models: Optional[Sequence[str]] = None,
        docs_url: str = "",
    ) -> "ProviderCatalog":
        models = tuple(models) if models else ("text-generation",)
        descriptor = ProviderDescriptor(
            id=f"custom:{generate_id('prov')}",
            label=label,
            models=models,
            default_model=models[0],
            docs_url=docs_url,
        )
        return ProviderCatalog(self._providers + (descriptor,))

