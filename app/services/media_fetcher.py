import logging
import os
import threading
from typing import Callable, Dict, Iterable, Optional

import certifi
import requests

from app.core import config
from app.core.exceptions import FetchError, JobCancelled

logger = logging.getLogger("compiler.fetcher")

CHUNK_SIZE = 1024 * 1024


class MediaFetcher:
    """Downloads source videos into a job's scratch directory.

    Sessions are never shared between jobs: each ``fetch_sources`` call opens
    its own from ``session_factory`` and closes it when the job's downloads
    are done.
    """

    def __init__(
        self,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.timeout = timeout
        self.session_factory = session_factory

    def fetch(
        self,
        url: str,
        dest_path: str,
        cancel: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
    ) -> str:
        """Stream ``url`` to ``dest_path``. Raises FetchError on any failure."""
        if session is None:
            with self.session_factory() as own_session:
                return self.fetch(url, dest_path, cancel, own_session)

        try:
            with session.get(url, stream=True, timeout=self.timeout, verify=certifi.where()) as response:
                if not response.ok:
                    raise FetchError(f"Failed to download video: {response.status_code}")
                with open(dest_path, "wb") as dst:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if cancel is not None and cancel.is_set():
                            raise JobCancelled("Download cancelled")
                        if chunk:
                            dst.write(chunk)
        except requests.RequestException as exc:
            raise FetchError(f"Failed to download video: {exc}") from exc
        except OSError as exc:
            raise FetchError(f"Failed to write downloaded video to {dest_path}: {exc}") from exc

        if not os.path.exists(dest_path):
            raise FetchError(f"Download produced no file for {url}")
        return dest_path

    def fetch_sources(
        self,
        urls: Iterable[str],
        workspace: str,
        cancel: Optional[threading.Event] = None,
        job_id: str = "-",
    ) -> Dict[str, str]:
        """Download each distinct URL once, in first-seen order.

        Returns a mapping of source URL to local path. The mapping belongs to
        one job and is never shared.
        """
        unique_urls = list(dict.fromkeys(urls))
        local_paths: Dict[str, str] = {}
        with self.session_factory() as session:
            for idx, url in enumerate(unique_urls):
                if cancel is not None and cancel.is_set():
                    raise JobCancelled("Compilation cancelled before download")
                dest_path = os.path.join(workspace, f"source-{idx}.mp4")
                logger.info("[%s] Downloading source video %d/%d...", job_id, idx + 1, len(unique_urls))
                local_paths[url] = self.fetch(url, dest_path, cancel, session)
        return local_paths
