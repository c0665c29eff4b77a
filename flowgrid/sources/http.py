from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from ..config import HTTP_TIMEOUT_S

logger = logging.getLogger(__name__)


@dataclass
class HttpResult:
    url: str
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def http_get(url: str, *, timeout_s: int = HTTP_TIMEOUT_S) -> HttpResult:
    logger.debug("[http] GET %s", url)
    r = requests.get(url, timeout=timeout_s, headers={"User-Agent": "Mozilla/5.0"})
    r.encoding = r.encoding or "utf-8"
    return HttpResult(url=r.url, status_code=r.status_code, text=r.text)
