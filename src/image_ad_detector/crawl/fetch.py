"""Retrieval of pages, media and reference assets over HTTP, a browser or disk."""

from __future__ import annotations

import atexit
import logging
from pathlib import Path
from threading import Lock
from urllib.parse import urljoin, urlparse

import requests
from tenacity import (  # type: ignore[import-untyped]
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

try:
    from playwright.sync_api import (  # type: ignore[import-untyped]
        TimeoutError as PlaywrightTimeoutError,
        sync_playwright,
    )
except ImportError:  # pragma: no cover - rendering is optional
    sync_playwright = None  # type: ignore[assignment]
    PlaywrightTimeoutError = Exception  # type: ignore[assignment]


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_ATTEMPTS = 3
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
MEDIA_ACCEPT = "image/*,video/*,application/json;q=0.9,*/*;q=0.8"


class RetryableHTTPStatusError(Exception):
    """A 5xx answer; the request is worth repeating."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Server returned status {status_code}")
        self.status_code = status_code


class HttpClient:
    """A requests session with bounded exponential-backoff retries.

    Timeouts, connection errors and 5xx responses are retried; other HTTP
    errors fail immediately. The public helpers never raise for network
    problems, they log and return ``None``.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        attempts: int = DEFAULT_ATTEMPTS,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": user_agent, "Accept-Language": "en-US,en;q=0.5"}
        )
        self._retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=5),
            retry=retry_if_exception_type(
                (requests.Timeout, requests.ConnectionError, RetryableHTTPStatusError)
            ),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    def get(self, url: str, accept: str = MEDIA_ACCEPT) -> requests.Response:
        """GET *url* with retries; raise the last error once attempts run out."""
        return self._retryer(self._get_once, url, accept)

    def _get_once(self, url: str, accept: str) -> requests.Response:
        response = self.session.get(
            url, headers={"Accept": accept}, timeout=self.timeout, allow_redirects=True
        )
        if 500 <= response.status_code < 600:
            raise RetryableHTTPStatusError(response.status_code)
        response.raise_for_status()
        return response

    def page(self, url: str) -> tuple[str | None, str | None]:
        """Return ``(final_url, html)`` for *url*, or ``(None, None)`` on failure."""
        target = ensure_http_scheme(url)
        try:
            response = self.get(target, HTML_ACCEPT)
        except (RetryableHTTPStatusError, requests.RequestException) as exc:
            logger.warning("Could not fetch page %s: %s", url, exc)
            return None, None
        if not response.encoding:
            response.encoding = response.apparent_encoding or "utf-8"
        return response.url, response.text

    def content(self, url: str) -> bytes | None:
        """Return the body of *url*, or ``None`` on failure."""
        if not url:
            return None
        try:
            return self.get(url).content
        except (RetryableHTTPStatusError, requests.RequestException) as exc:
            logger.warning("Could not download %s: %s", url, exc)
            return None

    def close(self) -> None:
        self.session.close()


class PageRenderer:
    """Headless Chromium renderer for pages whose media is injected by scripts.

    The browser starts on first use and is shared until :meth:`close`. Only
    usable from synchronous code outside a running event loop.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, user_agent: str = USER_AGENT) -> None:
        self.timeout_ms = int(timeout * 1000)
        self.user_agent = user_agent
        self._lock = Lock()
        self._playwright = None
        self._browser = None
        self._context = None

    def _ensure_context(self):
        if sync_playwright is None:
            logger.error("Playwright is not installed; cannot render pages.")
            return None
        with self._lock:
            if self._context is None:
                self._playwright = sync_playwright().start()
                self._browser = self._playwright.chromium.launch(headless=True)
                self._context = self._browser.new_context(user_agent=self.user_agent)
                self._context.set_default_timeout(self.timeout_ms)
            return self._context

    def render(
        self, url: str, wait_selector: str | None = None
    ) -> tuple[str | None, str | None]:
        """Return ``(final_url, html)`` after rendering *url*, or ``(None, None)``."""
        context = self._ensure_context()
        if context is None:
            return None, None
        page = context.new_page()
        try:
            page.goto(ensure_http_scheme(url), wait_until="domcontentloaded")
            if wait_selector:
                page.wait_for_selector(wait_selector)
            return page.url, page.content()
        except PlaywrightTimeoutError as exc:  # type: ignore[misc]
            logger.warning("Render timeout for %s: %s", url, exc)
        except Exception:  # noqa: BLE001 - browser errors must not escape
            logger.exception("Render failed for %s", url)
        finally:
            try:
                page.close()
            except Exception:  # pragma: no cover - best-effort cleanup
                logger.debug("Failed to close page for %s", url, exc_info=True)
        return None, None

    def close(self) -> None:
        with self._lock:
            for resource, closer in (
                (self._context, "close"),
                (self._browser, "close"),
                (self._playwright, "stop"),
            ):
                if resource is None:
                    continue
                try:
                    getattr(resource, closer)()
                except Exception:  # pragma: no cover - best-effort cleanup
                    logger.debug("Failed to shut down %r", resource, exc_info=True)
            self._context = self._browser = self._playwright = None


_defaults_lock = Lock()
_client: HttpClient | None = None
_renderer: PageRenderer | None = None


def default_client() -> HttpClient:
    """Return the process-wide :class:`HttpClient`."""
    global _client
    with _defaults_lock:
        if _client is None:
            _client = HttpClient()
        return _client


def default_renderer() -> PageRenderer:
    """Return the process-wide :class:`PageRenderer`, closed at exit."""
    global _renderer
    with _defaults_lock:
        if _renderer is None:
            _renderer = PageRenderer()
            atexit.register(_renderer.close)
        return _renderer


def ensure_http_scheme(url: str) -> str:
    """Qualify *url* with a scheme, defaulting to https."""
    cleaned = url.strip()
    if not cleaned or urlparse(cleaned).scheme:
        return cleaned
    if cleaned.startswith("//"):
        return f"https:{cleaned}"
    return f"https://{cleaned}"


def is_remote(location: str) -> bool:
    """Return ``True`` when *location* is an http(s) URL."""
    return urlparse(location).scheme in {"http", "https"}


def normalize_url(url: str, base: str) -> str:
    """Return an absolute URL by resolving *url* against *base*."""
    return urljoin(base, url)


def fetch_html(url: str, client: HttpClient | None = None) -> tuple[str | None, str | None]:
    return (client or default_client()).page(url)


def fetch_bytes(url: str, client: HttpClient | None = None) -> bytes | None:
    return (client or default_client()).content(url)


def render_page(url: str, wait_selector: str | None = None) -> tuple[str | None, str | None]:
    return default_renderer().render(url, wait_selector)


def read_resource(location: str, client: HttpClient | None = None) -> bytes | None:
    """Return the bytes at *location*, an http(s) URL or a local path.

    Remote failures are logged and yield ``None``; local read errors raise
    :class:`OSError`.
    """
    if is_remote(location):
        return fetch_bytes(location, client)
    return Path(location).read_bytes()
