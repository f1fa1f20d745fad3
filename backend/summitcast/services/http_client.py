"""
HTTP Client - Shared upstream request helper

Every provider call goes through fetch_json()/fetch_text() so that:
- each call carries the per-call timeout and the service User-Agent
- the HTTP status is checked before any body parsing
- transport failures are translated into the UpstreamError taxonomy

Open-Meteo endpoints switch to the commercial hosts when an API key is
configured (same convention the weather service has always used).
"""
import logging
from typing import Any, Dict, Optional

import requests

from summitcast.config import settings
from summitcast.errors import UpstreamHTTPError, UpstreamMalformed, UpstreamTimeout

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0

_OPEN_METEO_HOSTS = {
    "forecast": ("https://api.open-meteo.com/v1/forecast", "https://customer-api.open-meteo.com/v1/forecast"),
    "archive": ("https://archive-api.open-meteo.com/v1/archive", "https://customer-archive-api.open-meteo.com/v1/archive"),
    "air_quality": (
        "https://air-quality-api.open-meteo.com/v1/air-quality",
        "https://customer-air-quality-api.open-meteo.com/v1/air-quality",
    ),
}


def open_meteo_url(endpoint: str) -> str:
    """Public or commercial Open-Meteo URL for an endpoint name."""
    public_url, commercial_url = _OPEN_METEO_HOSTS[endpoint]
    return commercial_url if settings.OPEN_METEO_API_KEY else public_url


def open_meteo_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the API key for commercial endpoints (removes rate limits)."""
    if settings.OPEN_METEO_API_KEY:
        return dict(params, apikey=settings.OPEN_METEO_API_KEY)
    return params


def _get(url: str, params: Optional[Dict[str, Any]], timeout: Optional[float], accept: str) -> requests.Response:
    headers = {"User-Agent": settings.HTTP_USER_AGENT, "Accept": accept}
    try:
        response = requests.get(url, params=params, headers=headers, timeout=timeout or DEFAULT_TIMEOUT_SECONDS)
    except requests.exceptions.Timeout as exc:
        raise UpstreamTimeout(f"Timed out calling {url}: {exc}", url=url)
    except requests.exceptions.RequestException as exc:
        raise UpstreamHTTPError(f"Request to {url} failed: {exc}", url=url)

    # Status is checked before the body is touched
    if not 200 <= response.status_code < 300:
        raise UpstreamHTTPError(
            f"{url} answered HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )
    return response


def fetch_json(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
    accept: str = "application/geo+json, application/json",
) -> Any:
    """
    GET a JSON document.

    Args:
        url: Endpoint URL
        params: Query parameters
        timeout: Per-call timeout in seconds

    Returns:
        Decoded JSON body

    Raises:
        UpstreamTimeout: Call exceeded the timeout
        UpstreamHTTPError: Transport failure or non-2xx status
        UpstreamMalformed: 2xx body is not valid JSON
    """
    response = _get(url, params, timeout, accept)
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamMalformed(f"Invalid JSON from {url}: {exc}", url=url)


def fetch_text(url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> str:
    """GET an HTML/text document (status checked first)."""
    response = _get(url, params, timeout, "text/html, application/xhtml+xml, */*")
    return response.text or ""
