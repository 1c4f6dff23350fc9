"""
HTTP helpers for fetching remote datasets.

Shared by every download in the pipeline (currently the WorldClim
archives). Responses are streamed to disk so multi-gigabyte archives
never sit in memory.
"""

import os

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from treeclimate import config
from treeclimate.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def make_session(
    max_retries: int = config.DOWNLOAD_MAX_RETRIES,
    backoff_factor: float = 0.5,
    status_forcelist: tuple = (429, 500, 502, 503, 504),
    user_agent: str = config.USER_AGENT,
) -> requests.Session:
    """Create a requests.Session with a configurable retry policy.

    Parameters
    ----------
    max_retries : int
        Total retry attempts per request. 0 disables retries.
    backoff_factor : float
        Exponential backoff multiplier (0.5 → 0.5s, 1s, 2s, ...).
    status_forcelist : tuple
        HTTP status codes that trigger a retry.
    user_agent : str
        User-Agent header value.

    Returns
    -------
    requests.Session
    """
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})

    retry = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=list(status_forcelist),
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def download_file(url, dest_path, session=None,
                  timeout=config.DOWNLOAD_TIMEOUT_SECONDS,
                  chunk_size=config.DOWNLOAD_CHUNK_BYTES):
    """Stream *url* into *dest_path*.

    A partially written file is removed when the transfer fails, so a
    later run never mistakes it for a complete download.

    Raises
    ------
    requests.HTTPError
        On a non-2xx response.
    requests.RequestException
        On connection problems or timeouts.
    """
    session = session or make_session()
    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

    log.info("Downloading %s", url)
    try:
        with session.get(url, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            written = 0
            with open(dest_path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=chunk_size):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
    except requests.RequestException:
        if os.path.exists(dest_path):
            os.remove(dest_path)
        raise

    log.info("Saved %s (%.1f MB)", dest_path, written / 1e6)
    return dest_path
