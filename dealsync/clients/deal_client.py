"""
Pipedrive Deal Client

Rate-limited HTTP client for reading and updating Pipedrive deals. Every
failure (network, timeout, non-2xx, ``success: false``) is logged and
returned as None/False so callers can treat it as data.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
BATCH_UPDATE_DELAY_SECONDS = 0.2


class RateLimiter:
    """
    Enforces a minimum interval between requests with progressive backoff.

    Instance-local only; separate processes talking to the same account do
    not share state.
    """

    def __init__(
        self,
        min_interval_ms: int = 100,
        soft_limit: int = 30,
        soft_penalty_ms: int = 200,
        hard_limit: int = 50,
        hard_penalty_ms: int = 500
    ):
        self.min_interval_ms = min_interval_ms
        self.soft_limit = soft_limit
        self.soft_penalty_ms = soft_penalty_ms
        self.hard_limit = hard_limit
        self.hard_penalty_ms = hard_penalty_ms

        self._lock = threading.Lock()
        self.request_count = 0
        self.last_request_time: Optional[float] = None

    def wait(self) -> None:
        """Block until the next request may be sent."""
        with self._lock:
            now = time.monotonic()
            if self.last_request_time is not None:
                elapsed_ms = (now - self.last_request_time) * 1000
                if elapsed_ms < self.min_interval_ms:
                    time.sleep((self.min_interval_ms - elapsed_ms) / 1000)

            self.request_count += 1

            if self.request_count > self.hard_limit:
                time.sleep(self.hard_penalty_ms / 1000)
            elif self.request_count > self.soft_limit:
                time.sleep(self.soft_penalty_ms / 1000)

            self.last_request_time = time.monotonic()

    def reset(self) -> None:
        with self._lock:
            self.request_count = 0
            self.last_request_time = None
        logger.debug("Rate limiter reset")

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "request_count": self.request_count,
                "last_request_time": self.last_request_time,
                "min_interval_ms": self.min_interval_ms,
            }


class PipedriveDealClient:
    """
    Client for the Pipedrive deals API.

    Reads go through API v2; writes go through API v1, which is what the
    update endpoints accept.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            timeout: Seconds before any single request is abandoned
            rate_limiter: Shared limiter (a new one is created when omitted)
            session: requests session to reuse
        """
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    @staticmethod
    def build_url(company_domain: str, endpoint: str, version: str = "v1") -> str:
        return f"https://{company_domain}.pipedrive.com/api/{version}/{endpoint.lstrip('/')}"

    def _request(
        self,
        method: str,
        company_domain: str,
        endpoint: str,
        api_key: str,
        version: str = "v1",
        payload: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Send one rate-limited request and unwrap the ``data`` envelope.

        Returns:
            The response ``data`` object, or None on any failure
        """
        self.rate_limiter.wait()
        url = self.build_url(company_domain, endpoint, version)

        try:
            response = self.session.request(
                method,
                url,
                params={"api_token": api_key},
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except requests.Timeout:
            logger.error(f"{method} {endpoint} timed out after {self.timeout}s")
            return None
        except requests.RequestException as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            return None
        except ValueError as e:
            logger.error(f"{method} {endpoint} returned invalid JSON: {e}")
            return None

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else body
            logger.error(f"{method} {endpoint} was rejected: {error}")
            return None

        return body.get("data")

    def get_deal(self, deal_id: int, api_key: str, company_domain: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a deal.

        API v2 returns the deal title as ``name``; the result always carries
        ``title`` as well.

        Returns:
            Deal dictionary, or None if it could not be fetched
        """
        deal = self._request("GET", company_domain, f"deals/{deal_id}", api_key, version="v2")
        if deal is None:
            return None

        if "title" not in deal and "name" in deal:
            deal = dict(deal, title=deal["name"])
        return deal

    def update_deal(
        self,
        deal_id: int,
        fields: Dict[str, Any],
        api_key: str,
        company_domain: str
    ) -> bool:
        """
        Update arbitrary fields on a deal.

        Returns:
            True if Pipedrive accepted the update
        """
        data = self._request("PUT", company_domain, f"deals/{deal_id}", api_key, payload=fields)
        if data is None:
            return False

        logger.info(f"Updated deal {deal_id}: {sorted(fields)}")
        return True

    def update_deal_title(
        self,
        deal_id: int,
        new_title: str,
        api_key: str,
        company_domain: str
    ) -> bool:
        return self.update_deal(deal_id, {"title": new_title}, api_key, company_domain)

    def batch_update_deals(
        self,
        updates: List[Dict[str, Any]],
        api_key: str,
        company_domain: str
    ) -> Dict[str, List[Any]]:
        """
        Apply a list of title updates one after another.

        Args:
            updates: Items of the form ``{"deal_id": ..., "title": ...}``

        Returns:
            ``{"successful": [deal ids], "failed": [deal ids]}``
        """
        results: Dict[str, List[Any]] = {"successful": [], "failed": []}

        for index, update in enumerate(updates):
            if index > 0:
                time.sleep(BATCH_UPDATE_DELAY_SECONDS)

            deal_id = update["deal_id"]
            if self.update_deal_title(deal_id, update["title"], api_key, company_domain):
                results["successful"].append(deal_id)
            else:
                results["failed"].append(deal_id)

        logger.info(
            f"Batch update finished: {len(results['successful'])} successful, "
            f"{len(results['failed'])} failed"
        )
        return results

    def reset_rate_limiting(self) -> None:
        self.rate_limiter.reset()

    def get_rate_limit_status(self) -> Dict[str, Any]:
        return self.rate_limiter.status()

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
