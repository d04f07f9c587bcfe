"""HTTP client for the bePaid gateway transaction API."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from payrecon.adapters.http_resilience import ResilientClient
from payrecon.config.bepaid import BePaidConfig, get_bepaid_config
from payrecon.domain.ports.fetching import FetchedTransaction, TransactionFetcher

from .schema import TransactionEnvelope
from .translator import parse_transaction

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)

# transactions in these states no longer change on the provider side
SETTLED_STATUSES: Final[frozenset[str]] = frozenset({"successful", "failed", "expired"})


@dataclass(frozen=True, slots=True)
class EndpointDescriptor:
    """One transaction-lookup endpoint shape, tried in order until one answers."""

    name: str
    path_template: str

    def path_for(self, uid: str) -> str:
        return self.path_template.format(uid=quote(uid, safe=""))


DEFAULT_ENDPOINTS: Final[tuple[EndpointDescriptor, ...]] = (
    EndpointDescriptor(name="beyag", path_template="beyag/transactions/{uid}"),
    EndpointDescriptor(name="v2", path_template="v2/transactions/{uid}"),
)


class BePaidAPIError(RuntimeError):
    """Raised when bePaid answers with a status other than success or 404."""

    def __init__(self, message: str, *, status: int, endpoint: str) -> None:
        super().__init__(message)
        self.status = status
        self.endpoint = endpoint


def should_cache_payload(payload: object) -> bool:
    """Only settled transactions are safe to serve from the response cache."""

    try:
        envelope = TransactionEnvelope.model_validate(payload)
    except ValidationError:
        return False
    transaction = envelope.transaction
    return transaction is not None and (transaction.status or "").lower() in SETTLED_STATUSES


def _default_config() -> BePaidConfig:
    return get_bepaid_config(cache_predicate=should_cache_payload)


def _default_client_factory(config: BePaidConfig) -> ResilientClient:
    return ResilientClient(
        config.resilience,
        auth=httpx.BasicAuth(config.shop_id, config.secret_key),
    )


@dataclass(slots=True)
class BePaidTransactionFetcher:
    """Fetch a transaction by uid, walking ``endpoints`` until one answers."""

    config: BePaidConfig = field(default_factory=_default_config)
    endpoints: tuple[EndpointDescriptor, ...] = DEFAULT_ENDPOINTS
    client_factory: Callable[[BePaidConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    def __call__(self, uid: str) -> FetchedTransaction | None:
        return asyncio.run(self.fetch(uid))

    async def fetch(self, uid: str) -> FetchedTransaction | None:
        async with self.client_factory(self.config) as client:
            for endpoint in self.endpoints:
                response = await client.get(endpoint.path_for(uid))
                if response.status_code == httpx.codes.NOT_FOUND:
                    log.debug("bePaid %s has no transaction %s", endpoint.name, uid)
                    continue
                if not response.is_success:
                    message = (
                        f"bePaid API error {response.status_code} for {endpoint.name}: "
                        f"{response.text[:200]}"
                    )
                    log.error(message)
                    raise BePaidAPIError(
                        message, status=response.status_code, endpoint=endpoint.name
                    )
                return self._parse(response, endpoint)
        return None

    def _parse(
        self,
        response: httpx.Response,
        endpoint: EndpointDescriptor,
    ) -> FetchedTransaction | None:
        envelope = TransactionEnvelope.model_validate(response.json())
        if envelope.transaction is None:
            return None
        return FetchedTransaction(
            transaction=parse_transaction(envelope.transaction),
            endpoint=endpoint.name,
            http_status=response.status_code,
        )


if TYPE_CHECKING:
    _fetcher_check: TransactionFetcher = BePaidTransactionFetcher()
