# pocketplan/services/functions.py
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class FunctionsClient:
    """Calls hosted functions (e.g. generate-financial-plan) over HTTP."""

    def __init__(self, base_url: Optional[str], api_key: str = "", *, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def invoke(self, name: str, payload: dict) -> dict:
        if not self.configured:
            raise RuntimeError("FUNCTIONS_URL not configured")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        r = self.session.post(f"{self.base_url}/{name}", json=payload, headers=headers, timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ValueError(f"Function {name} returned {type(data).__name__}, expected an object")
        return data
