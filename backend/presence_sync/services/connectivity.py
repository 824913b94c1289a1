"""
Détection de connectivité réseau, interrogée avant chaque tentative de synchronisation.
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class ConnectivityChecker:
    def is_connected(self) -> bool:
        raise NotImplementedError


class HttpConnectivityChecker(ConnectivityChecker):
    """Considère le réseau disponible si l'URL répond (quel que soit le code HTTP)."""

    def __init__(self, url: str, timeout: float = 3.0):
        self.url = url
        self.timeout = timeout

    def is_connected(self) -> bool:
        try:
            httpx.head(self.url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.debug("Pas de connectivité (%s) : %s", self.url, exc)
            return False
        return True
