"""
HTTP stash backend.
Talks to the stash service over its three endpoints:

  POST   /enstash          body = wire JSON  -> {"id": "<uuid>"}
  GET    /destash/<id>     -> wire JSON (consumes the stash)
  DELETE /unstash/<id>     -> {"id": "<uuid>"}

404 means unknown. 410 means gone, with {"error": "Expired"} telling an
expired stash apart from one already consumed. Every call goes through
the RetryingTransport.
"""

import logging

import requests

from stasher.backends.base import StashBackend
from stasher.cancel import CancelToken
from stasher.config import StashConfig
from stasher.errors import RemoteError, StashGone, StashNotFound
from stasher.transport import RetryingTransport

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class HttpBackend(StashBackend):
    """
    Stash service client.

    Args:
        base_url: Service root, e.g. https://api.stasher.dev
        transport: RetryingTransport to send requests through. Built from
            `config` when omitted.
        config: Retry and timeout settings for the default transport.
    """

    def __init__(self, base_url: str, transport: RetryingTransport = None, config: StashConfig = None):
        self.base_url = base_url.rstrip("/")
        if transport is None:
            config = config or StashConfig(api_base_url=self.base_url)
            transport = RetryingTransport(
                max_retries=config.max_retries,
                base_delay=config.base_delay,
                attempt_timeout=config.attempt_timeout,
                max_delay=config.max_delay,
            )
        self.transport = transport

    @classmethod
    def from_config(cls, config: StashConfig) -> "HttpBackend":
        return cls(config.api_base_url, config=config)

    def _send(self, method: str, path: str, signal: CancelToken, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.transport.send(method, url, signal=signal, **kwargs)
        except requests.RequestException as e:
            raise RemoteError(f"Request to {url} failed: {e}") from e

    @staticmethod
    def _check_gone(response: requests.Response) -> None:
        if response.status_code == 404:
            raise StashNotFound()
        if response.status_code == 410:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = body.get("error") if isinstance(body, dict) else None
            raise StashGone(expired=error == "Expired")

    @staticmethod
    def _read_id(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or not isinstance(body.get("id"), str):
            raise RemoteError("Server returned invalid response format.", status=response.status_code)
        return body["id"]

    def store(self, body: str, signal: CancelToken = None) -> str:
        response = self._send("POST", "/enstash", signal, data=body.encode("utf-8"), headers=JSON_HEADERS)
        if not response.ok:
            raise RemoteError(f"Failed to create stash: HTTP {response.status_code}", status=response.status_code)

        stash_id = self._read_id(response)
        logger.info("Created stash %s", stash_id)
        return stash_id

    def fetch(self, stash_id: str, signal: CancelToken = None) -> str:
        response = self._send("GET", f"/destash/{stash_id}", signal)
        self._check_gone(response)
        if not response.ok:
            raise RemoteError(f"Failed to fetch stash: HTTP {response.status_code}", status=response.status_code)

        logger.info("Retrieved stash %s", stash_id)
        return response.text

    def delete(self, stash_id: str, signal: CancelToken = None) -> str:
        response = self._send("DELETE", f"/unstash/{stash_id}", signal)
        self._check_gone(response)
        if not response.ok:
            raise RemoteError(f"Failed to delete stash: HTTP {response.status_code}", status=response.status_code)

        deleted = self._read_id(response)
        logger.info("Deleted stash %s", deleted)
        return deleted

    def get_info(self) -> dict:
        return {
            "backend": "http",
            "base_url": self.base_url,
            "max_retries": self.transport.max_retries,
            "attempt_timeout": self.transport.attempt_timeout,
        }
