"""
ORACLE RELAY — Error Taxonomy

Provider-level errors (RateLimited, AuthFailed, NetworkError, NotFound) are
retried inside the source client via key rotation. Aggregation and ledger
errors propagate to the caller.
"""
from typing import Dict, Optional


class OracleRelayError(Exception):
    """Base class for all relay errors."""


# ─── Provider level ─────────────────────────────────────────────

class ProviderError(OracleRelayError):
    """A single provider request failed."""

    def __init__(self, provider: str, detail: str = "", status: Optional[int] = None):
        self.provider = provider
        self.detail = detail
        self.status = status
        msg = f"{provider}: {detail}" if detail else provider
        super().__init__(msg)


class RateLimited(ProviderError):
    pass


class AuthFailed(ProviderError):
    pass


class NetworkError(ProviderError):
    pass


class NotFound(ProviderError):
    pass


def classify_status(provider: str, status: int) -> ProviderError:
    """Map a non-2xx HTTP status into the provider error taxonomy."""
    if status == 429:
        return RateLimited(provider, "rate limit exceeded", status)
    if status in (401, 403):
        return AuthFailed(provider, f"auth rejected ({status})", status)
    if status == 404:
        return NotFound(provider, "resource not found", status)
    return NetworkError(provider, f"http {status}", status)


# ─── Aggregation level ──────────────────────────────────────────

class AggregationFailed(OracleRelayError):
    """No reading could be produced for a symbol."""


class NoProviderAvailable(AggregationFailed):
    """Every enabled provider was skipped or failed."""

    def __init__(self, symbol: str, errors: Optional[Dict[str, str]] = None):
        self.symbol = symbol
        self.errors = errors or {}
        detail = "; ".join(f"{k}: {v}" for k, v in self.errors.items()) or "no provider supports symbol"
        super().__init__(f"No price source available for {symbol}. Errors: {detail}")


# ─── Ledger level ───────────────────────────────────────────────

class LedgerError(OracleRelayError):
    """Ledger call failed."""


class LedgerSubmitFailed(LedgerError):
    pass


class LedgerUnavailable(LedgerError):
    pass


class SchemaAlreadyRegistered(LedgerError):
    """Raised by ledgers that report duplicate registration as an error."""


class NotificationError(OracleRelayError):
    """Notification sink failed. Never fatal."""
