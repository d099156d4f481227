"""Page content extraction from raw HTML markup."""

import re
from pathlib import Path

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag

from .config import config
from .models import Heading, PageRecord, Section

logger = config.get_logger(__name__)

HEADING_TAGS = ("h1", "h2", "h3", "h4")
UNSEARCHABLE_TAGS = ("script", "style", "nav", "footer", "noscript", "template")
CONTENT_CONTAINERS = ("article", "main")
MIN_SECTION_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim the ends.

    Returns:
        The normalized text.
    """
    return _WHITESPACE.sub(" ", text).strip()


def humanize_stem(path: str) -> str:
    """Turn ``compounds/alpha-pinene.html`` into ``alpha pinene``.

    Returns:
        A display name derived from the file name.
    """
    stem = Path(path).stem
    return normalize_whitespace(re.sub(r"[-_]+", " ", stem)) or path


class ContentExtractor:
    """Turns page markup into a :class:`PageRecord`."""

    def __init__(self, min_section_length: int = MIN_SECTION_LENGTH) -> None:
        """Initialize the extractor.

        Args:
            min_section_length: Sections whose text is not longer than this
                are discarded as non-substantive.
        """
        self.min_section_length = min_section_length

    def extract(self, html: str, *, url: str, title: str | None = None) -> PageRecord:
        """Extract title, headings, text and sections from page markup.

        Malformed markup degrades to best-effort extraction; a page without
        content yields an empty record rather than an error.

        Args:
            html: Raw page markup.
            url: Relative path identifying the page.
            title: Display title; resolved from the markup when omitted.

        Returns:
            The extracted page record.
        """
        soup = BeautifulSoup(html or "", "html.parser")
        document_title = self._document_title(soup)

        for element in soup(list(UNSEARCHABLE_TAGS)):
            element.decompose()

        region = self._content_region(soup)
        headings = self._collect_headings(region)
        full_text = normalize_whitespace(region.get_text(" "))
        sections = self._split_sections(region)

        resolved_title = (
            title
            or document_title
            or next((h.text for h in headings if h.level == 1), None)
            or humanize_stem(url)
        )

        if not full_text:
            logger.warning("No extractable content in %s", url)

        return PageRecord(
            title=resolved_title,
            url=url,
            headings=tuple(h.text for h in headings),
            full_text=full_text,
            sections=tuple(sections),
        )

    def extract_file(
        self,
        file_path: Path,
        *,
        site_root: Path | None = None,
        title: str | None = None,
    ) -> PageRecord:
        """Read and extract an HTML file.

        Returns:
            The extracted page record; its url is the path relative to
            ``site_root`` when given.
        """
        try:
            html = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            logger.exception("Error reading page %s", file_path)
            raise

        if site_root is not None:
            url = file_path.relative_to(site_root).as_posix()
        else:
            url = file_path.as_posix()
        return self.extract(html, url=url, title=title)

    @staticmethod
    def _document_title(soup: BeautifulSoup) -> str | None:
        if soup.title is None:
            return None
        return normalize_whitespace(soup.title.get_text(" ")) or None

    @staticmethod
    def _content_region(soup: BeautifulSoup) -> Tag:
        for name in CONTENT_CONTAINERS:
            container = soup.find(name)
            if isinstance(container, Tag):
                return container
        body = soup.body
        return body if body is not None else soup

    @staticmethod
    def _collect_headings(region: Tag) -> list[Heading]:
        headings = []
        for tag in region.find_all(list(HEADING_TAGS)):
            text = normalize_whitespace(tag.get_text(" "))
            if text:
                headings.append(Heading(level=int(tag.name[1]), text=text))
        return headings

    def _split_sections(self, region: Tag) -> list[Section]:
        """Split the region at every heading; text before the first is dropped.

        Returns:
            Sections long enough to be retained, in document order.
        """
        sections: list[Section] = []
        heading: str | None = None
        parts: list[str] = []
        started = False

        def flush() -> None:
            text = normalize_whitespace(" ".join(parts))
            if started and len(text) > self.min_section_length:
                sections.append(Section(heading=heading, text=text))

        for node in region.descendants:
            if isinstance(node, Tag) and node.name in HEADING_TAGS:
                flush()
                heading = normalize_whitespace(node.get_text(" ")) or None
                parts = []
                started = True
                continue
            if not isinstance(node, NavigableString) or isinstance(
                node, (Comment, Doctype)
            ):
                continue
            if started and node.find_parent(list(HEADING_TAGS)) is None:
                parts.append(str(node))

        flush()
        return sections
