"""Elasticsearch index client over the document REST API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from cdc_search_sync.config.models import IndexConfig, RetryConfig
from cdc_search_sync.errors import IndexRejectedError

logger = structlog.get_logger()

# Statuses that mean "this document will never be accepted as sent".
_REJECTION_STATUSES = frozenset({400, 413})


def is_transient(exc: BaseException) -> bool:
    """Transport failures, throttling and server errors are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class ElasticsearchIndex:
    """Writes normalized documents with ``PUT _doc/{id}`` and ``DELETE _doc/{id}``.

    ``PUT`` replaces the whole source of an existing document, so replaying
    the same event any number of times converges on the same state.
    """

    def __init__(
        self, config: IndexConfig, retry_config: RetryConfig | None = None
    ) -> None:
        self._config = config
        self._retry = retry_config or RetryConfig()
        self._client: httpx.AsyncClient | None = None

    @property
    def index_name(self) -> str:
        return self._config.index_name

    async def start(self) -> None:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        auth: tuple[str, str] | None = None
        if self._config.api_key is not None:
            api_key = self._config.api_key.get_secret_value()
            headers["Authorization"] = f"ApiKey {api_key}"
        elif self._config.username is not None and self._config.password is not None:
            auth = (self._config.username, self._config.password.get_secret_value())
        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            headers=headers,
            auth=auth,
            verify=self._config.verify_certs,
            timeout=httpx.Timeout(self._config.request_timeout_seconds),
        )
        logger.info(
            "elasticsearch.started",
            url=self._config.url,
            index=self._config.index_name,
        )

    def _doc_path(self, doc_id: str) -> str:
        index = quote(self._config.index_name, safe="")
        return f"/{index}/_doc/{quote(doc_id, safe='')}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        if self._client is None:
            msg = "ElasticsearchIndex not started; call start() first"
            raise RuntimeError(msg)
        client = self._client
        retry_cfg = self._retry
        params = {"refresh": self._config.refresh}

        @retry(
            stop=stop_after_attempt(retry_cfg.max_attempts),
            wait=wait_exponential_jitter(
                initial=retry_cfg.initial_wait_seconds,
                max=retry_cfg.max_wait_seconds,
                exp_base=retry_cfg.multiplier,
                jitter=retry_cfg.initial_wait_seconds if retry_cfg.jitter else 0,
            ),
            retry=retry_if_exception(is_transient),
            reraise=True,
        )
        async def _request() -> httpx.Response:
            response = await client.request(method, path, json=json, params=params)
            if response.status_code == 404 and allow_not_found:
                return response
            if response.status_code in _REJECTION_STATUSES:
                raise _rejection(response)
            response.raise_for_status()
            return response

        return await _request()

    async def upsert(self, doc_id: str, body: dict[str, Any]) -> None:
        response = await self._send("PUT", self._doc_path(doc_id), json=body)
        logger.debug(
            "elasticsearch.upsert",
            index=self.index_name,
            doc_id=doc_id,
            result=_result(response),
        )

    async def delete(self, doc_id: str) -> bool:
        response = await self._send(
            "DELETE", self._doc_path(doc_id), allow_not_found=True
        )
        existed = response.status_code != 404
        logger.debug(
            "elasticsearch.delete",
            index=self.index_name,
            doc_id=doc_id,
            existed=existed,
        )
        return existed

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("elasticsearch.stopped", index=self.index_name)

    async def health(self) -> dict[str, Any]:
        base = {"index": self.index_name, "type": "elasticsearch"}
        if self._client is None:
            return {**base, "status": "stopped"}
        try:
            response = await self._client.get("/_cluster/health")
            response.raise_for_status()
            cluster = response.json().get("status", "unknown")
        except Exception as exc:
            return {**base, "status": "error", "error": str(exc)}
        status = "error" if cluster == "red" else "running"
        return {**base, "status": status, "cluster_status": cluster}


def _result(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("result") if isinstance(data, dict) else None


def _rejection(response: httpx.Response) -> IndexRejectedError:
    error_type, reason = "unknown", response.text
    try:
        data = response.json()
    except ValueError:
        data = None
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        error_type = str(error.get("type", error_type))
        reason = str(error.get("reason", reason))
    elif isinstance(error, str):
        reason = error
    return IndexRejectedError(response.status_code, error_type, reason)
