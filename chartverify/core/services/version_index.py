"""
Version index — resolve release aliases to concrete chart versions.

Chart repositories can publish an ``info.json`` next to their index:

    {"jupyterhub": {"stable": "1.2.3", "dev": "1.2.3-n012.h1234abc"}}

Upgrade scenarios name their baseline by alias (``stable``, ``dev``);
the alias is resolved once, before the scenario descriptor is built.
"""

from __future__ import annotations

import json
import logging
import re
import urllib.request
from typing import Any, Callable

from chartverify.core.errors import PackageNotFound

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^v?\d+\.\d+\.\d+([-+].*)?$")


def fetch_json(url: str, timeout: float = 15.0) -> Any:
    """GET ``url`` and decode it as JSON."""
    req = urllib.request.Request(url, headers={"User-Agent": "chartverify/1.0"})
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode("utf-8"))


def looks_like_version(value: str) -> bool:
    return bool(_VERSION_RE.match(value))


class VersionIndex:
    """Lazy, per-run cache of one info.json document."""

    def __init__(self, url: str | None, *, fetch: Callable[[str], Any] = fetch_json):
        self.url = url
        self._fetch = fetch
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            if not self.url:
                raise PackageNotFound("No version index configured to resolve aliases")
            try:
                data = self._fetch(self.url)
            except (OSError, ValueError) as e:
                raise PackageNotFound(
                    f"Cannot load version index {self.url}: {e}",
                    context={"url": self.url},
                ) from e
            if not isinstance(data, dict):
                raise PackageNotFound(f"Version index {self.url} is not a JSON object")
            self._data = data
        return self._data

    def resolve(self, chart: str, alias: str) -> str:
        """Map ``alias`` to a version; literal versions pass through.

        Raises:
            PackageNotFound: the index or the alias is unknown.
        """
        if looks_like_version(alias):
            return alias

        entry = self._load().get(chart)
        if not isinstance(entry, dict):
            raise PackageNotFound(
                f"Chart '{chart}' not listed in version index {self.url}",
                context={"chart": chart, "url": self.url},
            )
        version = entry.get(alias)
        if not version:
            raise PackageNotFound(
                f"Alias '{alias}' not found for chart '{chart}' in {self.url}",
                context={"chart": chart, "alias": alias, "known": sorted(entry)},
            )
        logger.info("Resolved %s %s → %s", chart, alias, version)
        return str(version)
