"""
Job-search API client.

GET {base}/search?query=...&page=...[&location=...] with the API key in
the x-api-key header. A 429 raises JobSearchRateLimited so the ingest
worker can stop the whole run; any other non-2xx raises JobSearchError.
"""
import logging
from typing import Any, Dict

import httpx

from niena.core.config import get_settings
from niena.core.errors import JobSearchError, JobSearchRateLimited

settings = get_settings()
logger = logging.getLogger(__name__)


class JobSearchClient:

    def __init__(self, base_url: str = None, api_key: str = None, http_client: httpx.Client = None):
        self.base_url = (base_url or settings.jsearch_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.jsearch_api_key
        self.http_client = http_client or httpx.Client(timeout=settings.jsearch_timeout_seconds)

    def fetch_jobs(self, query: str, location: str = "", page: int = 1) -> Dict[str, Any]:
        """
        Fetch one page of job postings.

        Returns:
            {"data": [...], "num_pages": int or None, "page": page}
        """
        params = {"query": query, "page": page}
        if location:
            params["location"] = location

        try:
            response = self.http_client.get(
                f"{self.base_url}/search",
                params=params,
                headers={"x-api-key": str(self.api_key)}
            )
        except httpx.HTTPError as e:
            raise JobSearchError(f"Job search request failed: {e}") from e

        if response.status_code == 429:
            raise JobSearchRateLimited("Job search rate limited (429)", status=429)
        if not response.is_success:
            raise JobSearchError(
                f"Job search error {response.status_code}: {response.text}",
                status=response.status_code
            )

        payload = response.json() or {}
        data = payload.get("data") or []
        logger.info("Fetched %d job(s) for '%s' page %d", len(data), query, page)
        return {"data": data, "num_pages": payload.get("num_pages"), "page": page}

    def close(self):
        self.http_client.close()
