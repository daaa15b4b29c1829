"""
HTTP Client: Talk to the mission control backend over its REST API

Fetches telemetry history for the chart poll, posts commands for the
command issuer and stores screen documents on the server. Every failure is
reported as TransportError; there is no retry, the poll simply fires again
on its next tick.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from mission_control.command_validator import CommandRequest
from mission_control.errors import TransportError
from mission_control.telemetry import TelemetrySample, parse_samples

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:8080"
DEFAULT_STREAM_URL = "ws://localhost:8080/ws/telemetry"


def _rfc3339(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def _error_text(response) -> str:
    """Pull the backend's error message out of a failed response."""
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:100]}"
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if message:
            return str(message)
    return f"HTTP {response.status_code}: {response.reason}"


class HTTPClient:
    """HTTP client for the telemetry backend"""

    def __init__(self, base_url: str = DEFAULT_BACKEND_URL, timeout: int = 10):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def health_check(self) -> bool:
        """
        Check if the backend is reachable.
        Returns True if it responds with 200, False otherwise.
        """
        try:
            response = requests.get(f"{self.base_url}/", timeout=3)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def get_telemetry(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        signal: Optional[str] = None,
    ) -> List[TelemetrySample]:
        """
        Fetch recent telemetry samples.

        Args:
            start: Only samples at or after this time (sent only together with end)
            end: Only samples at or before this time
            signal: Restrict to one signal ("temp", "pressure", "voltage")

        Returns:
            List of samples in raw device units

        Raises:
            TransportError: On connection failure, HTTP error or bad payload
        """
        params = {}
        if start is not None and end is not None:
            params["start"] = _rfc3339(start)
            params["end"] = _rfc3339(end)
        if signal:
            params["signal"] = signal

        data = self._request("GET", "/api/telemetry", params=params)
        if data is None:
            # Backend encodes an empty result as null
            return []
        if not isinstance(data, list):
            raise TransportError("Telemetry response is not a list")
        return parse_samples(data)

    def post_command(self, request: CommandRequest) -> Dict[str, Any]:
        """
        Send a validated command to the device.

        Returns:
            The stored command record as returned by the backend

        Raises:
            TransportError: On connection failure or when the backend rejects the command
        """
        payload = {
            "name": request.command.strip(),
            "code": request.two_factor_code if request.is_hazardous else "",
            "hazardous": request.is_hazardous,
            "params": [{"key": p.key, "value": p.value} for p in request.parameters],
        }
        data = self._request("POST", "/api/command", json=payload)
        return data if isinstance(data, dict) else {}

    def save_dashboard(self, name: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store a screen document on the backend under a name.

        Raises:
            TransportError: On connection failure or rejection
        """
        payload = {"name": name, "jsonConfig": json.dumps(document)}
        data = self._request("POST", "/api/dashboard", json=payload)
        return data if isinstance(data, dict) else {}

    def list_dashboards(self) -> List[Dict[str, Any]]:
        """List screen documents stored on the backend."""
        data = self._request("GET", "/api/dashboard")
        return data if isinstance(data, list) else []

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            raise TransportError(f"{method} {path}: request timeout")
        except requests.ConnectionError:
            raise TransportError(f"{method} {path}: cannot reach backend")
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}")

        if not response.ok:
            raise TransportError(_error_text(response))
        try:
            return response.json()
        except ValueError:
            raise TransportError(f"{method} {path}: response is not JSON")
