"""Full node reader with bounded timeouts, retries and a circuit breaker"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp
import structlog
from pydantic import ValidationError

from arena_indexer.config.models import NodeConfig
from arena_indexer.events.models import USER_TRANSACTION, RawTransaction
from arena_indexer.monitoring import metrics

logger = structlog.get_logger()


class ChainFetchError(Exception):
    """The node could not be read; the current cycle must abort"""


class CircuitState(Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failures detected, stop calling
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreaker:
    """Circuit breaker for the node endpoint"""

    failure_threshold: int = 5
    timeout_seconds: int = 60
    failure_count: int = 0
    state: CircuitState = CircuitState.CLOSED
    last_failure_time: float = 0.0

    def record_success(self) -> None:
        """Record successful call"""
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            logger.info("circuit_breaker_closed", state=self.state.value)

    def record_failure(self) -> None:
        """Record failed call"""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning("circuit_breaker_reopened", state=self.state.value)
        elif self.failure_count >= self.failure_threshold and self.state == CircuitState.CLOSED:
            self.state = CircuitState.OPEN
            logger.warning(
                "circuit_breaker_opened",
                state=self.state.value,
                failure_count=self.failure_count,
            )

    def can_attempt(self) -> bool:
        """Check if call can be attempted"""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if time.time() - self.last_failure_time >= self.timeout_seconds:
                self.state = CircuitState.HALF_OPEN
                logger.info("circuit_breaker_half_open", state=self.state.value)
                return True
            return False

        # HALF_OPEN state - allow one attempt
        return True


class ChainReader:
    """
    Reads the contract account's transactions from a full node REST API.

    Pure I/O boundary: returns parsed transactions in ascending version
    order and raises ChainFetchError when the node cannot be read.
    """

    def __init__(
        self,
        config: NodeConfig,
        session: Optional[aiohttp.ClientSession] = None,
        retry_base_delay: float = 1.0,
    ):
        """
        Initialize chain reader.

        Args:
            config: Node connection settings
            session: Optional externally managed aiohttp session
            retry_base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.config = config
        self.session = session
        self.retry_base_delay = retry_base_delay
        self.circuit_breaker = CircuitBreaker()
        self._owns_session = session is None
        self._logger = logger.bind(component="chain_reader", node_url=config.node_url)

    async def connect(self) -> None:
        """Create the HTTP session with a bounded total timeout"""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
            self._logger.info(
                "chain_reader_connected",
                timeout_seconds=self.config.request_timeout_seconds,
            )

    async def close(self) -> None:
        """Close the HTTP session if this reader created it"""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
            self._logger.info("chain_reader_closed")

    async def _request_json(self, url: str, params: Dict[str, Any]) -> Any:
        """Single GET returning decoded JSON"""
        if self.session is None:
            await self.connect()

        async with self.session.get(url, params=params) as response:
            if response.status != 200:
                body = await response.text()
                raise ChainFetchError(
                    f"Node returned HTTP {response.status}: {body[:200]}"
                )
            return await response.json(content_type=None)

    async def _retry(self, operation: str, func, *args, **kwargs) -> Any:
        """Execute operation with retry, exponential backoff and circuit breaker"""
        max_retries = self.config.max_retries
        last_error: Optional[Exception] = None

        for attempt in range(max_retries):
            if not self.circuit_breaker.can_attempt():
                self._logger.warning("chain_circuit_breaker_blocking", operation=operation)
                raise ChainFetchError("Node circuit breaker is open")

            start_time = time.time()
            try:
                result = await func(*args, **kwargs)

                metrics.chain_fetch_latency.labels(method=operation).observe(
                    time.time() - start_time
                )
                self.circuit_breaker.record_success()
                return result

            except (aiohttp.ClientError, asyncio.TimeoutError, ChainFetchError, ValueError) as e:
                last_error = e
                self.circuit_breaker.record_failure()
                metrics.chain_fetch_errors.labels(error_type=type(e).__name__).inc()

                self._logger.warning(
                    "chain_request_failed",
                    operation=operation,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=str(e) or type(e).__name__,
                )

                if attempt < max_retries - 1:
                    await asyncio.sleep(self.retry_base_delay * (2**attempt))

        self._logger.error(
            "chain_request_failed_all_retries",
            operation=operation,
            max_retries=max_retries,
            error=str(last_error) or type(last_error).__name__,
        )
        if isinstance(last_error, ChainFetchError):
            raise last_error
        raise ChainFetchError(str(last_error) or type(last_error).__name__) from last_error

    async def get_account_transactions(self, limit: Optional[int] = None) -> List[RawTransaction]:
        """
        Fetch one page of the contract account's transactions.

        Args:
            limit: Page size (defaults to the configured page size)

        Returns:
            Transactions sorted by ascending version

        Raises:
            ChainFetchError: If the node cannot be read after all retries
        """
        limit = limit or self.config.page_size
        payload = await self._retry(
            "get_account_transactions",
            self._request_json,
            self.config.transactions_url,
            {"limit": limit},
        )
        transactions = self.normalize_transactions(payload)

        self._logger.debug(
            "account_transactions_fetched",
            count=len(transactions),
            limit=limit,
        )
        return transactions

    def normalize_transactions(self, payload: Any) -> List[RawTransaction]:
        """
        Parse a node response and sort it by ascending version.

        A malformed non-user transaction is dropped. A malformed user
        transaction ends the page just below its version, so the watermark
        can never move past events it failed to read.
        """
        if not isinstance(payload, list):
            raise ChainFetchError(
                f"Unexpected transactions payload type: {type(payload).__name__}"
            )

        transactions = []
        cutoff: Optional[int] = None
        for position, item in enumerate(payload):
            try:
                transactions.append(RawTransaction.model_validate(item))
            except ValidationError as e:
                tx_type = item.get("type") if isinstance(item, dict) else None
                if tx_type is not None and tx_type != USER_TRANSACTION:
                    self._logger.warning(
                        "transaction_skipped_invalid",
                        tx_hash=item.get("hash"),
                        tx_type=tx_type,
                        error_count=e.error_count(),
                    )
                    continue

                self._logger.error(
                    "transaction_invalid_page_truncated",
                    tx_hash=item.get("hash") if isinstance(item, dict) else None,
                    version=item.get("version") if isinstance(item, dict) else None,
                    position=position,
                    error_count=e.error_count(),
                )
                # The node lists account transactions in ascending order
                cutoff = self._parse_version(item)
                break

        if cutoff is not None:
            transactions = [tx for tx in transactions if tx.version < cutoff]

        transactions.sort(key=lambda tx: tx.version)
        return transactions

    @staticmethod
    def _parse_version(item: Any) -> Optional[int]:
        if not isinstance(item, dict):
            return None
        try:
            return int(item.get("version"))
        except (TypeError, ValueError):
            return None
