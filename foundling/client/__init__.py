"""
foundling client.

    AsyncClient  — async/await API over HTTP (httpx)
"""

from foundling.client.async_client import (
    AsyncClient,
    ClientError,
    ConnectionError,
    ServerError,
    TimeoutError,
)

__all__ = [
    "AsyncClient",
    "ClientError", "ServerError", "ConnectionError", "TimeoutError",
]
