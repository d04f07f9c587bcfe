"""bePaid configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import optional_float_env, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy, ShouldCacheHook

BEPAID_BASE_URL = "https://api.bepaid.by"
BEPAID_TIMEOUT_SECONDS = 15.0
DEFAULT_CALL_DELAY_SECONDS = 0.08
DEFAULT_CACHE_TTL_SECONDS = 900.0


@dataclass(frozen=True, slots=True)
class BePaidConfig:
    """Credentials and transport settings for the bePaid gateway API."""

    shop_id: str
    secret_key: str
    resilience: ResilienceConfig
    call_delay_seconds: float = DEFAULT_CALL_DELAY_SECONDS


def get_bepaid_config(
    *,
    resilience: ResilienceConfig | None = None,
    cache_predicate: ShouldCacheHook | None = None,
) -> BePaidConfig:
    values = require_env_vars(("BEPAID_SHOP_ID", "BEPAID_SECRET_KEY"))
    base_url = os.getenv("BEPAID_BASE_URL") or BEPAID_BASE_URL
    return BePaidConfig(
        shop_id=values["BEPAID_SHOP_ID"],
        secret_key=values["BEPAID_SECRET_KEY"],
        resilience=resilience
        or ResilienceConfig(
            name="bepaid",
            base_url=base_url,
            timeout_seconds=optional_float_env("BEPAID_TIMEOUT_SECONDS", BEPAID_TIMEOUT_SECONDS),
            retry=RetryPolicy(total=3),
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            cache=CacheConfig(
                backend="sqlite",
                default_ttl_seconds=DEFAULT_CACHE_TTL_SECONDS,
                should_cache=cache_predicate,
            ),
            default_headers={"Accept": "application/json"},
        ),
        call_delay_seconds=optional_float_env(
            "BEPAID_CALL_DELAY_SECONDS", DEFAULT_CALL_DELAY_SECONDS
        ),
    )
