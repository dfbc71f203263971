# app/core/relay/fallback.py
"""
Provider fallback chain.

Providers are tried once each, in list order. The first one that returns a
URL for the requested kind wins; later providers are never consulted and
results are never compared. A provider that raises ProviderError, or that
answers without the requested media field, is skipped. Any other
exception from a provider is logged with its traceback and skipped too.
When the list is exhausted the chain raises ProviderChainExhausted.

There is no retry, backoff or circuit breaking here: "retry" only means
"ask the next provider".
"""
from __future__ import annotations

from typing import Sequence

from app.core.relay.domain import MediaKind, ResolvedMedia
from app.core.relay.errors import ProviderChainExhausted, ProviderError
from app.core.relay.ports import MediaProvider
from app.infra.logging_config import get_logger
from app.infra.metrics import inc_counter

logger = get_logger(__name__)


async def resolve_with_fallback(
    providers: Sequence[MediaProvider],
    source_url: str,
    kind: MediaKind,
    user_agent: str,
) -> ResolvedMedia:
    """Return the first usable ResolvedMedia from ``providers``."""
    for provider in providers:
        try:
            resolved = await provider.resolve(source_url, kind, user_agent)
        except ProviderError as e:
            logger.warning("Provider skipped: %s", e.detail)
            inc_counter("provider_failures_total", provider=provider.name)
            continue
        except Exception as e:
            logger.error(
                "Provider skipped: %s failed unexpectedly: %s", provider.name, e, exc_info=True,
            )
            inc_counter("provider_failures_total", provider=provider.name)
            continue

        if not resolved.url_for(kind):
            logger.warning(
                "Provider skipped: %s returned no %s URL", provider.name, kind.leg,
            )
            inc_counter("provider_failures_total", provider=provider.name)
            continue

        resolved.provider = resolved.provider or provider.name
        logger.info("Media URL resolved by %s (kind=%s)", provider.name, kind.value)
        inc_counter("provider_success_total", provider=provider.name)
        return resolved

    raise ProviderChainExhausted()
