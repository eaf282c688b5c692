"""
Exchange Bridge - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Request logging for exchange clients with:
- Credential masking (API keys, secrets, signatures)
- Request/response correlation IDs
- Latency reporting

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw API keys or secrets
2. Mask sensitive headers (X-MBX-APIKEY, Key, Sign, ...)
3. Mask signature and nonce-bearing parameters

============================================================
"""

import logging
import re
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

SENSITIVE_HEADERS = {
    "authorization",
    "x-mbx-apikey",
    "key",
    "sign",
    "api-key",
    "secret",
    "signature",
}

SENSITIVE_PARAMS = {
    "apikey",
    "api_key",
    "secret",
    "secret_key",
    "signature",
    "sign",
    "token",
}

# Long hex/alnum runs inside free-text values (keys, HMACs)
SENSITIVE_PATTERN = re.compile(r"[A-Za-z0-9]{32,}")


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only the first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Mask sensitive headers."""
    if not headers:
        return {}

    return {
        key: mask_value(str(value)) if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def mask_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Mask sensitive request parameters, recursing into nested dicts."""
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        elif isinstance(value, str):
            masked[key] = SENSITIVE_PATTERN.sub("***KEY***", value)
        else:
            masked[key] = value
    return masked


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """
    Secure request logger for one exchange client.

    Everything goes out at DEBUG; failures at WARNING.
    """

    def __init__(self, exchange_id: str, logger_name: str = None):
        """
        Initialize adapter logger.

        Args:
            exchange_id: Exchange identifier
            logger_name: Logger name (default: exchange_bridge.http.<exchange>)
        """
        self._exchange_id = exchange_id
        self._logger = logging.getLogger(logger_name or f"exchange_bridge.http.{exchange_id}")
        self._request_counter = 0

    def log_request(
        self,
        method: str,
        endpoint: str,
        headers: Dict[str, str] = None,
        params: Dict[str, Any] = None,
    ) -> str:
        """
        Log an outgoing request.

        Returns:
            Request ID for correlating the response
        """
        self._request_counter += 1
        request_id = f"{self._exchange_id}-{self._request_counter}"

        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(
                f"[{request_id}] {method} {endpoint} "
                f"params={mask_params(params)} headers={mask_headers(headers)}"
            )
        return request_id

    def log_response(
        self,
        request_id: str,
        status_code: Optional[int],
        latency_ms: float,
        error: str = None,
    ) -> None:
        """Log a response or a transport failure."""
        if error:
            self._logger.warning(
                f"[{request_id}] failed after {latency_ms:.0f}ms "
                f"(status={status_code}): {error}"
            )
        else:
            self._logger.debug(f"[{request_id}] {status_code} in {latency_ms:.0f}ms")
