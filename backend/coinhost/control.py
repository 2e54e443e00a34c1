"""HTTP client for the remote pairing/session-control service."""

from collections import namedtuple
from urllib.parse import quote

import requests

from coinhost.errors import ExternalServiceError


PairingResult = namedtuple('PairingResult', ['pairing_code', 'session_reference'])


class ResourceControlClient:
    def __init__(self, base_url, timeout=10.0, http=None):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()

    def start(self, phone_number: str) -> PairingResult:
        data = self._call('GET', f"/pair/{quote(str(phone_number), safe='')}")
        code = data.get('code')
        if not code:
            raise ExternalServiceError('Pairing service returned no code')
        return PairingResult(pairing_code=code, session_reference=data.get('sessionId'))

    def stop(self, session_reference: str) -> dict:
        return self._call('POST', f"/stop/{quote(str(session_reference), safe='')}")

    def _call(self, method, path):
        if not self.base_url:
            raise ExternalServiceError('Resource-control service is not configured')
        try:
            response = self.http.request(method, self.base_url + path, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Resource-control request failed: {exc}") from exc
        if response.status_code >= 400:
            message = 'Resource-control request failed'
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get('message'):
                message = payload['message']
            raise ExternalServiceError(message, upstream_status=response.status_code)
        try:
            data = response.json()
        except ValueError:
            return {}
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ExternalServiceError('Resource-control service returned an unexpected payload')
        return data
