from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

ENDPOINTS_URL = "https://graph.api.smartthings.com/api/smartapps/endpoints"


class SmartThingsError(RuntimeError):
    pass


class UpstreamUnavailable(SmartThingsError):
    pass


class InvalidToken(SmartThingsError):
    pass


@dataclass
class Device:
    device_id: str
    display_name: str
    attributes: Dict[str, Any] = field(default_factory=dict)


def load_token(path: str) -> str:
    """Read the access token from an OAuth token file in JSON form."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise InvalidToken(f"cannot read token file {path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidToken(f"token file {path}: root must be an object")
    token = str(data.get("access_token") or "").strip()
    if not token:
        raise InvalidToken(f"token file {path}: missing access_token")
    return token


def device_from_json(item: Any) -> Device:
    if not isinstance(item, dict) or item.get("id") is None:
        raise UpstreamUnavailable(f"malformed device record: {item!r}")

    attrs = item.get("attributes") or {}
    if not isinstance(attrs, dict):
        raise UpstreamUnavailable(f"device {item['id']}: attributes must be an object")

    name = item.get("displayName") or item.get("name") or ""
    return Device(device_id=str(item["id"]), display_name=str(name), attributes=dict(attrs))


class SmartThingsClient:
    def __init__(
        self,
        token: str,
        timeout_seconds: float = 10.0,
        endpoints_url: str = ENDPOINTS_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self.endpoints_url = endpoints_url
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})
        self._endpoint: Optional[str] = None

    def _get_json(self, url: str) -> Any:
        try:
            resp = self.session.get(url, timeout=self.timeout_seconds)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"GET {url}: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(f"GET {url}: invalid JSON: {e}") from e

    def endpoint_uri(self) -> str:
        if self._endpoint is not None:
            return self._endpoint

        data = self._get_json(self.endpoints_url)
        if not isinstance(data, list) or not data or not isinstance(data[0], dict) or not data[0].get("uri"):
            raise UpstreamUnavailable(f"no endpoint returned by {self.endpoints_url}")

        self._endpoint = str(data[0]["uri"]).rstrip("/")
        logging.debug("endpoint=%s", self._endpoint)
        return self._endpoint

    def list_devices(self) -> List[Device]:
        url = self.endpoint_uri() + "/all"
        data = self._get_json(url)
        if not isinstance(data, list):
            raise UpstreamUnavailable(f"GET {url}: expected a list of devices")

        devices: List[Device] = []
        for item in data:
            try:
                devices.append(device_from_json(item))
            except UpstreamUnavailable as e:
                logging.warning("skipping device: %s", e)
        return devices
