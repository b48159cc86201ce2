"""@web augmentation: search DuckDuckGo, read the top pages, and wrap them around the question."""

from __future__ import annotations

import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, urlparse

import requests
from bs4 import BeautifulSoup

from .errors import WebSearchError

try:
    from ddgs import DDGS
    HAS_DDG = True
except ImportError:
    try:
        from duckduckgo_search import DDGS
        HAS_DDG = True
    except ImportError:
        HAS_DDG = False

log = logging.getLogger(__name__)

AUGMENT_TEMPLATE = (
    "Based on the following web search results, please answer the question: '{query}'"
    "\n\nSearch Results:\n{results}"
)
MAX_SNIPPET_CHARS = 500
# per-page text kept in the cache; the prompt carries a shorter excerpt
MAX_CONTENT_LENGTH = 20000
MAX_EXCERPT_CHARS = 2000
FETCH_BATCH = 4
CACHE_DIR = Path.home() / ".cache" / "abot"

_STRIP_TAGS = ["script", "style", "meta", "link", "noscript", "iframe", "svg"]
_TEXT_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "article", "section", "main"]
_MULTI_NEWLINE_RE = re.compile(r"\n{3,}")

# ── Query cleaning for better search results ──
_ZH_FILLER_RE = re.compile(
    r"(请问|请帮我|帮我|我想知道|我想了解|能不能|可以吗|是什么|有哪些|怎么样|"
    r"如何|怎么|什么是|告诉我|介绍一下|解释一下|说一下|讲一下|"
    r"吗|呢|吧|啊|哦|嘛|了|的|地|得|着|过)"
)
_EN_FILLER_WORDS = {
    "please", "help", "me", "i", "want", "to", "know", "about",
    "what", "is", "are", "how", "do", "does", "can", "you",
    "tell", "explain", "describe", "the", "a", "an",
}
_MULTI_SPACE_RE = re.compile(r"\s{2,}")


def extract_query(message: str) -> str:
    """Words of the message that are not ``#tags`` or ``@markers``."""
    return " ".join(word for word in message.split()
                    if not word.startswith("#") and not word.startswith("@"))


def clean_search_query(query: str) -> str:
    """Reduce a natural-language question to search keywords.

    Returns the original query if cleaning would leave fewer than 2 words.
    """
    cleaned = query.strip()
    if not cleaned:
        return query

    cleaned = _ZH_FILLER_RE.sub(" ", cleaned)
    words = cleaned.split()
    filtered = [w for w in words if w.lower().strip("?!.,") not in _EN_FILLER_WORDS]
    if len(filtered) < 2:
        filtered = words

    cleaned = _MULTI_SPACE_RE.sub(" ", " ".join(filtered)).strip()
    return cleaned if cleaned else query


def html_to_text(html: str) -> str:
    """Readable text of a page: paragraphs, headings and article bodies."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_STRIP_TAGS):
        if not tag.decomposed:
            tag.decompose()
    blocks = []
    for element in soup.find_all(_TEXT_TAGS):
        # outermost matches only; nested ones are already part of their parent's text
        if element.find_parent(_TEXT_TAGS) is not None:
            continue
        text = element.get_text(" ", strip=True)
        if text:
            blocks.append(_MULTI_SPACE_RE.sub(" ", text))
    if not blocks:
        body = soup.body or soup
        return _MULTI_NEWLINE_RE.sub("\n\n", body.get_text("\n", strip=True))
    return "\n\n".join(blocks)


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def format_results(results: List[dict], documents: Optional[List[str]] = None) -> str:
    """Numbered results; a fetched page excerpt replaces the search snippet."""
    if not results:
        return "No results found."
    lines = []
    for i, r in enumerate(results, 1):
        title = r.get("title", "")
        url = r.get("href", "") or r.get("url", "")
        document = documents[i - 1] if documents and i <= len(documents) else ""
        if document:
            body = _clip(document, MAX_EXCERPT_CHARS)
        else:
            body = _clip(r.get("body", ""), MAX_SNIPPET_CHARS)
        lines.append(f"{i}. [{title}]({url})")
        if body:
            lines.append(f"   {body}\n")
    return "\n".join(lines)


class PageCache:
    """Fetched pages of one conversation, one JSON file per URL."""

    def __init__(self, conversation_id: str, root: Optional[Path] = None):
        self.dir = (root or CACHE_DIR) / conversation_id / "web_cache"

    def path(self, url: str) -> Path:
        return self.dir / quote(url, safe="")

    def get(self, url: str) -> Optional[str]:
        path = self.path(url)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.debug("Unreadable cache entry %s: %s", path, e)
            return None
        return data.get("document") or None

    def put(self, url: str, snippet: str, document: str) -> None:
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
            with open(self.path(url), "w", encoding="utf-8") as f:
                json.dump({"url": url, "snippet": snippet, "document": document,
                           "timestamp": int(time.time())}, f, ensure_ascii=False)
        except OSError as e:
            log.warning("Could not cache %s: %s", url, e)


class WebAugmenter:
    """``augment(message_text) -> enriched_text``; runs on the stream worker."""

    TIMEOUT = 10
    _RETRYABLE_STATUS = {429, 500, 502, 503}

    def __init__(self, max_results: int = 10, retries: int = 3, fetch_pages: bool = True,
                 cache_root: Optional[Path] = None):
        self.max_results = max_results
        self.retries = max(1, retries)
        self.fetch_pages = fetch_pages
        self.cache_root = cache_root
        self._session = None

    @property
    def available(self) -> bool:
        return HAS_DDG

    def search(self, query: str) -> List[dict]:
        if not HAS_DDG:
            raise WebSearchError("No search backend. Install: pip install ddgs")
        last_exc: Optional[Exception] = None
        for attempt in range(self.retries):
            try:
                return list(DDGS().text(query, max_results=self.max_results))
            except Exception as e:
                last_exc = e
                log.debug("Search attempt %d failed: %s", attempt + 1, e)
                if attempt < self.retries - 1:
                    time.sleep(2 ** attempt)
        raise WebSearchError(f"DuckDuckGo search failed: {last_exc}")

    # ── Page fetch ──

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                "User-Agent": "Mozilla/5.0 (compatible; abot)",
                "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            })
        return self._session

    def _request_with_retry(self, url: str, *, max_retries: int = 1) -> requests.Response:
        """GET with exponential backoff on transient errors."""
        session = self._get_session()
        for attempt in range(1 + max_retries):
            try:
                resp = session.get(url, timeout=self.TIMEOUT)
                if resp.status_code not in self._RETRYABLE_STATUS or attempt == max_retries:
                    resp.raise_for_status()
                    return resp
            except (requests.ConnectionError, requests.Timeout):
                if attempt == max_retries:
                    raise
            time.sleep(2 ** attempt)
        raise WebSearchError(f"Fetch failed: {url}")

    def fetch_page(self, url: str) -> str:
        """Text of the page at ``url``, at most MAX_CONTENT_LENGTH chars. Raises WebSearchError."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise WebSearchError(f"Invalid URL scheme: {parsed.scheme}")
        try:
            resp = self._request_with_retry(url)
        except requests.RequestException as e:
            raise WebSearchError(f"Fetch failed: {e}")

        if "html" in resp.headers.get("Content-Type", "html"):
            text = html_to_text(resp.text)
        else:
            text = _MULTI_NEWLINE_RE.sub("\n\n", resp.text.strip())
        return text[:MAX_CONTENT_LENGTH]

    def _document(self, result: dict, cache: Optional[PageCache]) -> str:
        url = result.get("href", "") or result.get("url", "")
        if not url:
            return ""
        if cache is not None:
            cached = cache.get(url)
            if cached:
                log.debug("Cache hit: %s", url)
                return cached
        try:
            document = self.fetch_page(url)
        except WebSearchError as e:
            log.debug("Skipping %s: %s", url, e)
            return ""
        if cache is not None and document:
            cache.put(url, result.get("body", ""), document)
        return document

    def fetch_documents(self, results: List[dict],
                        conversation_id: Optional[str] = None) -> List[str]:
        """Page text per result, fetched FETCH_BATCH at a time; ``""`` where a fetch failed."""
        cache = PageCache(conversation_id, self.cache_root) if conversation_id else None
        documents: List[str] = []
        with ThreadPoolExecutor(max_workers=FETCH_BATCH, thread_name_prefix="fetch") as pool:
            for start in range(0, len(results), FETCH_BATCH):
                batch = results[start:start + FETCH_BATCH]
                documents.extend(pool.map(lambda r: self._document(r, cache), batch))
        log.debug("Fetched %d of %d pages", sum(1 for d in documents if d), len(results))
        return documents

    def augment(self, message_text: str, conversation_id: Optional[str] = None) -> str:
        """Return the prompt to send in place of ``message_text``. Raises WebSearchError."""
        query = extract_query(message_text)
        if not query:
            raise WebSearchError("Nothing to search for.")
        log.info("Performing a web search for: '%s'", query)
        results = self.search(clean_search_query(query))
        log.debug("Web search returned %d results", len(results))
        documents = self.fetch_documents(results, conversation_id) if self.fetch_pages else None
        return AUGMENT_TEMPLATE.format(query=query, results=format_results(results, documents))
