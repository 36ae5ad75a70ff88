"""Fetch and parse the document behind a reference.

References come in three forms:

- an http(s) URL pointing at a map zip,
- a BeatSaver map key (e.g. ``"1a2b"``), resolved through the BeatSaver API
  to the download URL of the latest published version,
- a local path to a map zip or an unpacked map directory.

Whatever goes wrong surfaces as ``ParseError``; the pipeline does not
look at the cause.
"""
from __future__ import annotations

import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .beatmap_parser import parse_map_archive, parse_map_directory
from .config_struct import FetchConfig
from .document import Document
from .errors import ParseError

logger = logging.getLogger(__name__)

_MAP_KEY = re.compile(r"^[0-9a-fA-F]{1,8}$")
_RETRY_STATUS = {429, 500, 502, 503, 504}


class DocumentSource:
    """Callable parse collaborator: ``source.parse(reference) -> Document``."""

    def __init__(self, config: Optional[FetchConfig] = None) -> None:
        self.config = config or FetchConfig()
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = self.config.user_agent
            self._local.session = session
        return session

    def _get(self, url: str, reference: str) -> requests.Response:
        attempts = int(self.config.retries) + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._session().get(url, timeout=self.config.timeout_s)
            except (requests.ConnectionError, requests.Timeout) as exc:
                if attempt == attempts:
                    raise ParseError(reference, f"Can't fetch {url}: {exc}") from exc
                logger.info("Fetch of %s failed (%s), retry %d/%d", url, exc, attempt, attempts - 1)
            except requests.RequestException as exc:
                raise ParseError(reference, f"Can't fetch {url}: {exc}") from exc
            else:
                if response.status_code not in _RETRY_STATUS or attempt == attempts:
                    try:
                        response.raise_for_status()
                    except requests.HTTPError as exc:
                        raise ParseError(reference, f"Can't fetch {url}: {exc}") from exc
                    return response
                logger.info("Fetch of %s returned %d, retry %d/%d", url, response.status_code, attempt, attempts - 1)
            time.sleep(self.config.retry_backoff_s * attempt)
        raise ParseError(reference, f"Can't fetch {url}")

    def resolve_key(self, key: str) -> str:
        """Return the download URL of the latest version of a BeatSaver map (versions are newest first)."""
        url = f"{self.config.api_base.rstrip('/')}/maps/id/{key}"
        response = self._get(url, key)
        try:
            payload: Dict[str, Any] = response.json()
            versions = payload["versions"]
            published = [v for v in versions if v.get("state", "Published") == "Published"] or versions
            return published[0]["downloadURL"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ParseError(key, f"Unexpected BeatSaver response for map {key}: {exc}") from exc

    def download(self, url: str, reference: str) -> bytes:
        return self._get(url, reference).content

    def parse(self, reference: str) -> Document:
        if reference.startswith(("http://", "https://")):
            return parse_map_archive(self.download(reference, reference), reference)

        path = Path(reference).expanduser()
        if path.is_dir():
            return parse_map_directory(path, reference)
        if path.is_file():
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise ParseError(reference, f"Can't read {path}: {exc}") from exc
            return parse_map_archive(data, reference)

        if _MAP_KEY.match(reference):
            url = self.resolve_key(reference)
            return parse_map_archive(self.download(url, reference), reference)

        raise ParseError(reference, "not a URL, map key, or existing path")

    __call__ = parse
