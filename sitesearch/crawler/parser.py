"""
HTML parser that extracts the title, visible text and outgoing links of a page.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse, urlunparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment


SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.ico', '.woff', '.woff2', '.ttf', '.eot', '.xml'
)


@dataclass
class ParsedContent:
    """Container for parsed web page content."""
    url: str
    title: str = ""
    text: str = ""
    links: List[str] = field(default_factory=list)


class ContentParser:
    """
    Parses HTML content into title, plain text and absolute links.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content.

        Args:
            url: The URL of the page, used to resolve relative links
            html_content: Raw HTML content

        Returns:
            ParsedContent object with extracted data
        """
        soup = BeautifulSoup(html_content or "", 'lxml')

        for script in soup(["script", "style", "noscript", "template"]):
            script.decompose()

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        parsed_content = ParsedContent(url=url)

        title_tag = soup.find('title')
        if title_tag:
            parsed_content.title = self._clean_text(title_tag.get_text())

        # Links are collected before the text so that removed chrome elements
        # (navigation menus) still contribute to discovery.
        parsed_content.links = self._extract_links(soup, url)

        body = soup.find('body') or soup
        if title_tag:
            title_tag.decompose()
        parsed_content.text = self._clean_text(body.get_text(separator=' ', strip=True))

        self.logger.debug(f"Parsed {url}: {len(parsed_content.text)} chars, "
                          f"{len(parsed_content.links)} links")
        return parsed_content

    def extract_text(self, html_content: str) -> str:
        return self.parse("", html_content).text

    def extract_links(self, url: str, html_content: str) -> List[str]:
        return self.parse(url, html_content).links

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        links = set()

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith(('#', 'mailto:', 'tel:', 'javascript:')):
                continue

            normalized_url = self.normalize_url(urljoin(base_url, href))
            if normalized_url and self._is_valid_url(normalized_url):
                links.add(normalized_url)

        return sorted(links)

    @staticmethod
    def normalize_url(url: str) -> Optional[str]:
        """Lower-case the host and drop the fragment."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        return urlunparse((
            parsed.scheme,
            parsed.netloc.lower(),
            parsed.path,
            parsed.params,
            parsed.query,
            ''
        ))

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL points at something worth fetching."""
        parsed = urlparse(url)

        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return False

        return not parsed.path.lower().endswith(SKIP_EXTENSIONS)

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
