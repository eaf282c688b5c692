"""
Exchange Bridge - HTTP Transport.

============================================================
PURPOSE
============================================================
aiohttp session handling shared by the REST clients.

Failures below the API level are normalized into TransportError
messages carrying stable signature tokens:

    total timeout               -> ETIMEDOUT
    socket read timeout         -> ESOCKETTIMEDOUT
    connect timeout             -> ECONNTIMEDOUT
    DNS failure                 -> ENOTFOUND
    connection refused          -> ECONNREFUSED
    connection dropped          -> ECONNRESET
    error status (>= 400)       -> Response code <status>[: <body error>]

Total and read timeouts may fire after the request was written, so
placement treats ETIMEDOUT and ESOCKETTIMEDOUT as ambiguous. A
connect timeout never reached the exchange and is safe to retry.

============================================================
"""

import asyncio
import json
import logging
import socket
import time
from typing import Any, Dict, Optional

import aiohttp

from ..classifier import HTML_MARKER, extract_body_error
from ..config import TimeoutConfig
from ..errors import TransportError
from ..logging_utils import AdapterLogger
from .base import ExchangeClient


logger = logging.getLogger(__name__)


class HttpExchangeClient(ExchangeClient):
    """
    Base class for REST exchange clients.

    Owns one aiohttp session per instance.
    """

    def __init__(self, timeout_config: Optional[TimeoutConfig] = None):
        """
        Initialize HTTP client.

        Args:
            timeout_config: Timeout configuration
        """
        self._timeout_config = timeout_config or TimeoutConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._http_log = AdapterLogger(self.exchange_id)

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self.is_connected:
            return

        timeout = aiohttp.ClientTimeout(
            total=self._timeout_config.total_timeout_seconds,
            connect=self._timeout_config.connection_timeout_seconds,
            sock_read=self._timeout_config.read_timeout_seconds,
        )
        self._session = aiohttp.ClientSession(timeout=timeout)
        logger.info(f"HTTP session opened for {self.exchange_id}")

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None
            logger.info(f"HTTP session closed for {self.exchange_id}")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # --------------------------------------------------------
    # REQUESTS
    # --------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform one HTTP request.

        Returns:
            Decoded JSON body, or the text body if it is not JSON.
            API-level errors delivered with a 2xx status are returned,
            not raised; the classifier inspects them.

        Raises:
            TransportError: On network failures and error statuses; the
                decoded body is kept on the error
        """
        if not self.is_connected:
            await self.connect()

        request_id = self._http_log.log_request(method, url, headers, params or data)
        started = time.monotonic()
        status = None

        try:
            async with self._session.request(
                method,
                url,
                params=params,
                data=data,
                headers=headers,
            ) as response:
                status = response.status
                text = await response.text()

        except aiohttp.ConnectionTimeoutError as e:
            raise self._fail(request_id, started, status, f"ECONNTIMEDOUT: {e}", e)
        except aiohttp.ServerTimeoutError as e:
            raise self._fail(request_id, started, status, f"ESOCKETTIMEDOUT: {e}", e)
        except asyncio.TimeoutError as e:
            raise self._fail(request_id, started, status, "ETIMEDOUT: request timed out", e)
        except aiohttp.ClientConnectorError as e:
            raise self._fail(request_id, started, status, _connector_message(e), e)
        except (aiohttp.ServerDisconnectedError, aiohttp.ClientOSError) as e:
            raise self._fail(request_id, started, status, f"ECONNRESET: {e}", e)
        except aiohttp.ClientError as e:
            raise self._fail(request_id, started, status, f"Network error: {e}", e)

        latency_ms = (time.monotonic() - started) * 1000
        body = _decode(text)

        if status >= 400:
            message = _status_message(status, body)
            self._http_log.log_response(request_id, status, latency_ms, message)
            raise TransportError(message, status=status, body=body)

        self._http_log.log_response(request_id, status, latency_ms)
        return body

    def _fail(
        self,
        request_id: str,
        started: float,
        status: Optional[int],
        message: str,
        cause: Exception,
    ) -> TransportError:
        latency_ms = (time.monotonic() - started) * 1000
        self._http_log.log_response(request_id, status, latency_ms, message)
        error = TransportError(message, status=status)
        error.__cause__ = cause
        return error


def _connector_message(error: aiohttp.ClientConnectorError) -> str:
    os_error = error.os_error
    if isinstance(os_error, socket.gaierror):
        return f"ENOTFOUND: {error}"
    if isinstance(os_error, ConnectionRefusedError):
        return f"ECONNREFUSED: {error}"
    if isinstance(os_error, (TimeoutError, asyncio.TimeoutError)):
        return f"ECONNTIMEDOUT: {error}"
    return f"ECONNRESET: {error}"


def _status_message(status: int, body: Any) -> str:
    """Status token plus the body's own error, if it names one."""
    message = f"Response code {status}"
    if isinstance(body, str) and HTML_MARKER.search(body):
        return message
    if isinstance(body, (dict, str)):
        detail = extract_body_error(body)
        if detail:
            return f"{message}: {detail}"
    return message


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text
