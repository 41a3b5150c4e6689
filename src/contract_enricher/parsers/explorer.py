"""Parser for Etherscan getsourcecode payloads."""

from typing import Any

from ..errors import ConfigurationError
from ..fetchers.base import Outcome, TransientKind
from ..logging_config import get_logger

logger = get_logger(__name__)

ERROR_MESSAGE = "NOTOK"
# Lower-cased fragments of the `result` text that accompanies NOTOK
THROTTLE_HINTS = ("rate limit", "timeout", "too many")
API_KEY_HINTS = ("api key", "apikey")
PLACEHOLDER_SOURCES = {"", "0x"}
NO_SOURCE_REASON = "no contract source"


def classify_source_payload(address: str, payload: Any) -> Outcome[str]:
    """
    Turn a decoded getsourcecode response into an outcome.

    Args:
        address: Contract address that was looked up
        payload: Decoded JSON body

    Returns:
        SUCCESS with the source text, EMPTY when no verified source exists,
        TRANSIENT when the explorer signals throttling, or FAILURE for any
        other error the explorer reports

    Raises:
        ConfigurationError: If the explorer rejects the API key
    """
    if not isinstance(payload, dict):
        logger.warning(f"Unexpected response body for {address}: {payload!r}")
        return Outcome.empty("malformed response")

    if payload.get("message") == ERROR_MESSAGE:
        return _classify_error(address, str(payload.get("result") or ""))

    result = payload.get("result")
    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        logger.warning(f"Unexpected result format for {address}: {payload!r}")
        return Outcome.empty("malformed response")

    source = str(result[0].get("SourceCode") or "").strip()
    if source in PLACEHOLDER_SOURCES:
        return Outcome.empty(NO_SOURCE_REASON)

    return Outcome.success(source)


def _classify_error(address: str, detail: str) -> Outcome[str]:
    lowered = detail.lower()
    if any(hint in lowered for hint in THROTTLE_HINTS):
        return Outcome.transient(TransientKind.THROTTLED, f"Rate limit reached: {detail}")
    if any(hint in lowered for hint in API_KEY_HINTS):
        raise ConfigurationError(f"Etherscan rejected the API key: {detail}")

    # Invalid address and similar: asking again gives the same answer
    logger.error(f"Etherscan error for {address}: {detail}")
    return Outcome.failure(f"explorer error: {detail}")
