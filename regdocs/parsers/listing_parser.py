"""Listing page parser producing document references."""

import re
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterator, List, Optional, Sequence, Union
from urllib.parse import urljoin, urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from bs4 import BeautifulSoup, Tag

from ..core.errors import ParseError
from ..core.logging import get_logger
from ..models.document import Category, DocumentReference
from ..models.source import ListingSelectors, ListingSource

logger = get_logger(__name__)

# dd.mm.yy[yy] with an optional HH:MM, e.g. "07.12.25 14:25"
_DOTTED_DATE = re.compile(
    r"(?P<day>\d{1,2})\.(?P<month>\d{1,2})\.(?P<year>\d{4}|\d{2})"
    r"(?:\s+(?P<hour>\d{1,2}):(?P<minute>\d{2}))?"
)


def _clean(text: Optional[str]) -> str:
    return " ".join((text or "").split())


def _resolve_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown source timezone, using UTC", timezone=name)
        return timezone.utc


def parse_published(
    text: str,
    tz: tzinfo = timezone.utc,
    formats: Sequence[str] = (),
) -> Optional[datetime]:
    """Parse a listing timestamp. Naive values are interpreted in ``tz``."""
    text = _clean(text)
    if not text:
        return None

    parsed: Optional[datetime] = None
    for fmt in formats:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        match = _DOTTED_DATE.search(text)
        if match:
            year = int(match.group("year"))
            if year < 100:
                year += 2000
            try:
                parsed = datetime(
                    year,
                    int(match.group("month")),
                    int(match.group("day")),
                    int(match.group("hour") or 0),
                    int(match.group("minute") or 0),
                )
            except ValueError:
                return None

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(timezone.utc)


class ParsedListing:
    """Lazy, restartable sequence of references found on one listing page.

    Every iteration walks the parsed page again from the top, so ``skipped``
    and ``errors`` describe the most recent pass.
    """

    def __init__(
        self,
        soup: BeautifulSoup,
        base_url: str,
        selectors: ListingSelectors,
        tz: tzinfo,
        date_formats: Sequence[str] = (),
        source_name: Optional[str] = None,
    ):
        self._soup = soup
        self.base_url = base_url
        self.selectors = selectors
        self.tz = tz
        self.date_formats = tuple(date_formats)
        self.source_name = source_name
        self.skipped = 0
        self.errors: List[ParseError] = []

    def __iter__(self) -> Iterator[DocumentReference]:
        self.skipped = 0
        self.errors = []
        events = self._event_titles()

        for position, entry in enumerate(self._soup.select(self.selectors.entry)):
            try:
                reference = self._parse_entry(entry, position, events.get(id(entry)))
            except ParseError as e:
                self.skipped += 1
                self.errors.append(e)
                logger.warning(
                    "Skipping malformed listing entry",
                    base_url=self.base_url,
                    position=e.position,
                    error=str(e),
                )
                continue
            yield reference

    def references(self) -> List[DocumentReference]:
        return list(self)

    def _event_titles(self) -> Dict[int, str]:
        """Map each entry to the heading of the event group containing it."""
        selectors = self.selectors
        if not selectors.event_container or not selectors.event_title:
            return {}

        events: Dict[int, str] = {}
        for container in self._soup.select(selectors.event_container):
            heading = container.select_one(selectors.event_title)
            title = _clean(heading.get_text()) if heading else ""
            if not title:
                continue
            for entry in container.select(selectors.entry):
                events.setdefault(id(entry), title)
        return events

    def _parse_entry(self, entry: Tag, position: int, event: Optional[str]) -> DocumentReference:
        selectors = self.selectors
        snippet = _clean(entry.get_text())[:120]

        link = entry if entry.name == "a" and entry.has_attr("href") else entry.select_one(selectors.link)
        href = (link.get("href") or "").strip() if link else ""
        if not href:
            raise ParseError("missing document link", position, snippet)

        source_url = urljoin(self.base_url, href)
        if urlsplit(source_url).scheme not in ("http", "https"):
            raise ParseError(f"unsupported link {href!r}", position, snippet)

        title_node = entry.select_one(selectors.title)
        title = _clean(title_node.get_text()) if title_node else _clean(link.get_text())
        if not title:
            raise ParseError("missing title", position, snippet)

        published_at = self._published_at(entry)
        if published_at is None:
            raise ParseError("missing or unparseable publish date", position, snippet)

        label = entry.get("data-category")
        if not label and selectors.category:
            category_node = entry.select_one(selectors.category)
            label = _clean(category_node.get_text()) if category_node else None

        return DocumentReference(
            title=title,
            category=Category.classify(label, title),
            published_at=published_at,
            source_url=source_url,
            event=event,
            source_name=self.source_name,
        )

    def _published_at(self, entry: Tag) -> Optional[datetime]:
        time_node = entry.select_one("time[datetime]")
        if time_node is not None:
            parsed = parse_published(time_node["datetime"], self.tz)
            if parsed is not None:
                return parsed

        node = entry.select_one(self.selectors.published)
        if node is None:
            return None
        return parse_published(node.get_text(), self.tz, self.date_formats)


class ListingParser:
    """Parses listing page HTML into document references.

    Pure function of its input: no network access and no state kept between
    pages.
    """

    def parse(
        self,
        html: Union[bytes, str],
        base_url: str,
        source: Optional[ListingSource] = None,
    ) -> ParsedListing:
        soup = BeautifulSoup(html, "lxml")
        if source is not None:
            return ParsedListing(
                soup,
                base_url,
                source.selectors,
                _resolve_timezone(source.timezone),
                source.date_formats,
                source_name=source.name,
            )
        return ParsedListing(soup, base_url, ListingSelectors(), timezone.utc)
