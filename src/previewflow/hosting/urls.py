"""Extract preview URLs from deployment command output.

Deploy output changes shape between hosting CLI versions, so URLs are found
through an ordered list of parser families. The first family that matches
anything wins and the rest are not tried. Matched URLs are then assigned to
sites by looking for the site label inside the URL.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

import aiofiles

logger = logging.getLogger(__name__)

URLS_FILENAME = "preview-urls.json"
_TRAILING = ".,;:)]}>'\"`"


@dataclass(frozen=True)
class UrlPattern:
    """One parser family: a regex and the handler that turns a match into a URL."""

    name: str
    regex: re.Pattern[str]
    handler: Callable[[re.Match[str]], str | None] = lambda m: m.group(1)

    def parse(self, text: str) -> list[str]:
        found = []
        for match in self.regex.finditer(text):
            url = self.handler(match)
            if url:
                found.append(url.rstrip(_TRAILING))
        return found


URL_PATTERNS: tuple[UrlPattern, ...] = (
    UrlPattern(
        name="dash",
        regex=re.compile(r"(?:^|\s)-\s+(https://\S+)", re.MULTILINE),
    ),
    UrlPattern(
        name="labeled",
        regex=re.compile(
            r"(?:Channel|Hosting|Live|Preview) URL(?:\s*\([^)]*\))?:\s+(https://\S+)",
            re.IGNORECASE,
        ),
    ),
    UrlPattern(
        name="bare",
        regex=re.compile(r"(https://[\w.-]+\.(?:web\.app|firebaseapp\.com)\S*)"),
    ),
)


def first_match(patterns: Sequence[UrlPattern], text: str) -> tuple[str, list[str]] | None:
    """Run parser families in order and return the first non-empty result.

    Returns:
        (family name, URLs in first-seen order without duplicates), or None.
    """
    for pattern in patterns:
        urls = list(dict.fromkeys(pattern.parse(text)))
        if urls:
            return pattern.name, urls
    return None


@dataclass
class UrlExtraction:
    """URLs assigned to sites, plus any that had no slot left."""

    urls: dict[str, str]
    overflow: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"urls": self.urls, "overflow": self.overflow}

    @classmethod
    def from_dict(cls, data: dict) -> "UrlExtraction":
        urls = data.get("urls") if isinstance(data.get("urls"), dict) else {}
        overflow = data.get("overflow") if isinstance(data.get("overflow"), list) else []
        return cls(
            urls={str(k): str(v) for k, v in urls.items()},
            overflow=[str(u) for u in overflow],
        )


def _site_for(url: str, sites: Sequence[str]) -> str | None:
    lowered = url.lower()
    for site in sites:
        if site.lower() in lowered:
            return site
    return None


def assign_urls(urls: Iterable[str], sites: Sequence[str]) -> UrlExtraction | None:
    """Assign URLs to site slots.

    A URL naming a site goes to that site. Anything else, including a second
    URL for an already filled site, takes the next empty slot in site order;
    when every slot is filled it goes to overflow.
    """
    urls = list(urls)
    if not urls:
        return None

    assigned: dict[str, str] = {}
    pending: list[str] = []
    for url in urls:
        site = _site_for(url, sites)
        if site is not None and site not in assigned:
            assigned[site] = url
        else:
            pending.append(url)

    overflow: list[str] = []
    for url in pending:
        empty = next((site for site in sites if site not in assigned), None)
        if empty is None:
            overflow.append(url)
        else:
            assigned[empty] = url

    ordered = {site: assigned[site] for site in sites if site in assigned}
    return UrlExtraction(urls=ordered, overflow=overflow)


def extract_urls(
    text: str,
    sites: Sequence[str],
    patterns: Sequence[UrlPattern] = URL_PATTERNS,
) -> UrlExtraction | None:
    """Extract site URLs from one text blob. Never raises on odd input."""
    found = first_match(patterns, text or "")
    if found is None:
        return None
    family, urls = found
    logger.debug("Matched %d URL(s) with %s parser", len(urls), family)
    return assign_urls(urls, sites)


def newest_first(paths: Iterable[Path]) -> list[Path]:
    """Existing files sorted by modification time, most recent first."""
    existing = [p for p in paths if p.is_file()]
    return sorted(existing, key=lambda p: p.stat().st_mtime, reverse=True)


class UrlExtractor:
    """Per-run URL extractor with an in-memory cache and a JSON copy on disk."""

    def __init__(
        self,
        sites: Sequence[str],
        cache_path: Path | None = None,
        patterns: Sequence[UrlPattern] = URL_PATTERNS,
    ) -> None:
        self.sites = list(sites)
        self.cache_path = cache_path
        self.patterns = patterns
        self._by_text: dict[str, UrlExtraction | None] = {}
        self._result: UrlExtraction | None = None

    @property
    def result(self) -> UrlExtraction | None:
        """Last successful extraction of this run."""
        return self._result

    def extract(self, text: str) -> UrlExtraction | None:
        if text not in self._by_text:
            self._by_text[text] = extract_urls(text, self.sites, self.patterns)
        extraction = self._by_text[text]
        if extraction is not None:
            self._result = extraction
        return extraction

    async def extract_from_files(self, paths: Iterable[Path]) -> UrlExtraction | None:
        """Try log files most-recently-modified first; stop at the first match.

        The result is written to ``cache_path`` when one is configured.
        """
        if self._result is not None:
            return self._result

        for path in newest_first(paths):
            try:
                async with aiofiles.open(path, errors="replace") as f:
                    text = await f.read()
            except OSError as e:
                logger.warning("Could not read %s: %s", path, e)
                continue
            extraction = self.extract(text)
            if extraction is not None:
                logger.info("Found %d preview URL(s) in %s", len(extraction.urls), path.name)
                await self.save(extraction)
                return extraction

        logger.debug("No preview URLs found in log files")
        return None

    async def extract_from_joined(self, paths: Iterable[Path]) -> UrlExtraction | None:
        """Read the existing files as one text, for logs split per site."""
        parts = []
        for path in paths:
            if not path.is_file():
                continue
            try:
                async with aiofiles.open(path, errors="replace") as f:
                    parts.append(await f.read())
            except OSError as e:
                logger.warning("Could not read %s: %s", path, e)
        if not parts:
            return None
        extraction = self.extract("\n".join(parts))
        if extraction is not None:
            await self.save(extraction)
        return extraction

    async def save(self, extraction: UrlExtraction) -> Path | None:
        if self.cache_path is None:
            return None
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.cache_path, "w") as f:
            await f.write(json.dumps(extraction.to_dict(), indent=2))
        return self.cache_path


async def load_saved_urls(path: Path) -> UrlExtraction | None:
    """Load a previously saved extraction, or None if missing or corrupt."""
    if not path.exists():
        return None
    try:
        async with aiofiles.open(path) as f:
            data = json.loads(await f.read())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None
    return UrlExtraction.from_dict(data) if isinstance(data, dict) else None


def channel_id_from_url(url: str) -> str | None:
    """Recover the channel id from a preview URL.

    Preview hosts look like ``<site>--<channel>-<hash>.web.app``.
    """
    host = urlparse(url).hostname or ""
    label = host.split(".", 1)[0]
    if "--" not in label:
        return None
    channel = label.split("--", 1)[1]
    channel = re.sub(r"-[a-z0-9]{8}$", "", channel)
    return channel or None


OutputFormat = Literal["plain", "markdown", "html"]


def format_urls(urls: dict[str, str], fmt: OutputFormat = "plain") -> str:
    """Render site URLs as plain text, a markdown list or an HTML list."""
    if not urls:
        return ""
    match fmt:
        case "markdown":
            return "\n".join(f"- **{site}**: {url}" for site, url in urls.items())
        case "html":
            items = "".join(
                f'<li><strong>{site}</strong>: <a href="{url}">{url}</a></li>'
                for site, url in urls.items()
            )
            return f"<ul>{items}</ul>"
        case _:
            return "\n".join(f"{site}: {url}" for site, url in urls.items())


def format_pr_comment(
    urls: dict[str, str],
    *,
    channel_id: str | None = None,
    branch: str | None = None,
) -> str:
    """Markdown comment announcing the preview deployment on a pull request."""
    if channel_id is None and urls:
        channel_id = channel_id_from_url(next(iter(urls.values())))

    lines = ["## 🚀 Preview deployment", ""]
    if branch:
        lines.append(f"Branch: `{branch}`")
    if channel_id:
        lines.append(f"Channel: `{channel_id}`")
    if branch or channel_id:
        lines.append("")

    if urls:
        lines.extend(["| Site | URL |", "| --- | --- |"])
        lines.extend(f"| {site} | {url} |" for site, url in urls.items())
    else:
        lines.append("_No preview URLs were found in the deployment output._")
    return "\n".join(lines)
