"""Cache de respostas em memória usado pelo transporte."""

import threading

import httpx

from ..models import CachedResponse


class ResponseCache:
    """
    Armazena respostas completas por (método, URL).

    Não há política de expiração nem de remoção automática; entradas só saem
    por ``remove`` ou ``clear``.
    """

    def __init__(self):
        self._entries: dict[tuple[str, str], CachedResponse] = {}
        self._lock = threading.Lock()

    @staticmethod
    def is_cacheable(request: httpx.Request, response: httpx.Response) -> bool:
        """Somente GET 200 sem ``Cache-Control: no-store``."""
        if request.method != "GET" or response.status_code != 200:
            return False
        cache_control = response.headers.get("Cache-Control", "").lower()
        return "no-store" not in cache_control

    def store(self, method: str, cached: CachedResponse) -> None:
        with self._lock:
            self._entries[(method, cached.url)] = cached

    def get(self, method: str, url: str) -> CachedResponse | None:
        with self._lock:
            return self._entries.get((method, url))

    def remove(self, method: str, url: str) -> None:
        with self._lock:
            self._entries.pop((method, url), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
