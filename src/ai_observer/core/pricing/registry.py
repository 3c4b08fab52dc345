"""Pricing registry: per-provider model rate tables with alias resolution.

Rate tables are bundled JSON documents with rates per million tokens.
They are validated and converted to per-token rates once, at load time,
into immutable values that are safe to share between concurrent readers.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from importlib import resources
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field

_PER_MILLION = 1e-6

# Suffixes that mark a deployment variant of a canonical model id.
_VARIANT_SUFFIXES = ("[1m]", "-latest")


class Provider(StrEnum):
    """Model vendors with a bundled rate table."""

    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


_VENDOR_PREFIXES: dict[Provider, tuple[str, ...]] = {
    Provider.CLAUDE: ("anthropic/",),
    Provider.CODEX: ("openai/",),
    Provider.GEMINI: ("google/", "models/"),
}


class _RateEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    aliases: list[str] = Field(default_factory=list)
    input_cost_per_million: float = Field(alias="inputCostPerMillion", ge=0)
    output_cost_per_million: float = Field(alias="outputCostPerMillion", ge=0)
    cache_read_cost_per_million: float = Field(
        default=0.0, alias="cacheReadCostPerMillion", ge=0
    )
    cache_write_cost_per_million: float = Field(
        default=0.0, alias="cacheWriteCostPerMillion", ge=0
    )
    deprecated: bool = False


class _RateTable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str
    last_updated: str = Field(default="", alias="lastUpdated")
    models: dict[str, _RateEntry]


@dataclass(frozen=True)
class ModelPricing:
    """Per-token rates for one canonical model.

    Attributes:
        model_id: Canonical model id.
        provider: Vendor name from the rate table.
        input_cost_per_token: USD per uncached input token.
        output_cost_per_token: USD per output token.
        cache_read_cost_per_token: USD per cached input token.
        cache_write_cost_per_token: USD per cache-creation token.
        deprecated: True when the vendor has retired the model.
    """

    model_id: str
    provider: str
    input_cost_per_token: float
    output_cost_per_token: float
    cache_read_cost_per_token: float = 0.0
    cache_write_cost_per_token: float = 0.0
    deprecated: bool = False


@dataclass(frozen=True)
class ProviderPricing:
    """Rate table of one provider, addressable by canonical id or alias."""

    provider: Provider
    vendor: str
    last_updated: str
    models: Mapping[str, ModelPricing]
    aliases: Mapping[str, str]

    def normalize(self, model: str) -> str:
        """Trim whitespace and strip the vendor prefix from a model id."""
        normalized = model.strip()
        for prefix in _VENDOR_PREFIXES[self.provider]:
            if normalized.startswith(prefix):
                normalized = normalized[len(prefix) :]
                break
        return normalized.strip()

    def resolve(self, model: str) -> str | None:
        """Return the canonical id for model, or None if it is unknown.

        Lookup order is exact canonical id, then alias. When neither
        matches, a trailing variant suffix (``[1m]``, ``-latest``, or an
        ``@version`` pin) is stripped and the lookup retried once.
        """
        normalized = self.normalize(model)
        if not normalized:
            return None
        found = self._exact_or_alias(normalized)
        if found is not None:
            return found
        stripped = _strip_variant(normalized)
        if stripped != normalized:
            return self._exact_or_alias(stripped)
        return None

    def lookup(self, model: str) -> ModelPricing | None:
        """Return pricing for model, or None when there is no pricing data."""
        canonical = self.resolve(model)
        if canonical is None:
            return None
        return self.models[canonical]

    def _exact_or_alias(self, model: str) -> str | None:
        if model in self.models:
            return model
        return self.aliases.get(model)


def _strip_variant(model: str) -> str:
    if "@" in model:
        model = model.split("@", 1)[0]
    for suffix in _VARIANT_SUFFIXES:
        if model.endswith(suffix):
            return model[: -len(suffix)]
    return model


def load_rate_table(provider: Provider, document: str | bytes) -> ProviderPricing:
    """Build a provider rate table from a JSON document.

    Args:
        provider: Provider the table belongs to (selects normalization rules).
        document: JSON text in the bundled rate-table schema.

    Raises:
        pydantic.ValidationError: If the document does not match the schema.
    """
    table = _RateTable.model_validate(json.loads(document))
    models: dict[str, ModelPricing] = {}
    aliases: dict[str, str] = {}
    for model_id, entry in table.models.items():
        models[model_id] = ModelPricing(
            model_id=model_id,
            provider=table.provider,
            input_cost_per_token=entry.input_cost_per_million * _PER_MILLION,
            output_cost_per_token=entry.output_cost_per_million * _PER_MILLION,
            cache_read_cost_per_token=entry.cache_read_cost_per_million * _PER_MILLION,
            cache_write_cost_per_token=entry.cache_write_cost_per_million
            * _PER_MILLION,
            deprecated=entry.deprecated,
        )
        for alias in entry.aliases:
            aliases[alias] = model_id
    return ProviderPricing(
        provider=provider,
        vendor=table.provider,
        last_updated=table.last_updated,
        models=MappingProxyType(models),
        aliases=MappingProxyType(aliases),
    )


@dataclass(frozen=True)
class PricingRegistry:
    """Immutable set of provider rate tables.

    Build once with load_registry() and pass the instance to every consumer.
    """

    providers: Mapping[Provider, ProviderPricing] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def for_provider(self, provider: Provider) -> ProviderPricing | None:
        return self.providers.get(provider)

    def lookup(self, provider: Provider, model: str) -> ModelPricing | None:
        """Resolve model under provider; None means no pricing data."""
        table = self.providers.get(provider)
        if table is None:
            return None
        return table.lookup(model)


def load_registry() -> PricingRegistry:
    """Load the rate tables bundled with the package."""
    data = resources.files("ai_observer.core.pricing") / "data"
    providers = {
        provider: load_rate_table(
            provider, (data / f"{provider.value}.json").read_text(encoding="utf-8")
        )
        for provider in Provider
    }
    return PricingRegistry(providers=MappingProxyType(providers))
