"""
Base HTTP client for collaborating services.

Every outbound call goes through one requests.Session with a bounded
retry policy for idempotent methods and an explicit timeout.
"""

from typing import Any, Dict, Optional
import logging
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from .exceptions import CollaboratorError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5


class ServiceClient:
    """Shared session handling for identity, trip, vehicle and notification calls"""

    service_name = 'service'

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.request_timeout = timeout

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=2,
                backoff_factor=0.5,
                status_forcelist=[429, 502, 503, 504],
                allowed_methods=["HEAD", "GET", "PUT", "OPTIONS"]  # PUT bodies here are absolute values
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session
        self.session.headers.update({
            'User-Agent': 'fleet-hiring/1.0',
            'Content-Type': 'application/json'
        })

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Make a request to the collaborating service.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH)
            endpoint: Path below the service base URL
            **kwargs: Additional arguments for requests

        Returns:
            Dict: decoded JSON body, empty for bodiless responses

        Raises:
            CollaboratorError: on transport errors, non-2xx responses or undecodable bodies
        """
        url = f"{self.base_url}{endpoint}"
        if 'timeout' not in kwargs:
            kwargs['timeout'] = self.request_timeout

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise CollaboratorError(self.service_name, f"Request error: {str(e)}")

        if response.status_code not in (200, 201, 202, 204):
            raise CollaboratorError(
                self.service_name,
                f"{method} {endpoint} failed: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise CollaboratorError(self.service_name, f"{method} {endpoint} returned invalid JSON")
