"""DOM extraction for makers, listing and phone detail pages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urljoin, urlparse

from selectolax.parser import HTMLParser


@dataclass
class PhoneRecord:
    """Structured representation of one phone detail page."""

    model_name: str
    brand: str
    release_date: str
    url: str
    specs: dict[str, str] = field(default_factory=dict)
    crawled_at: str = ""

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ListingPage:
    detail_urls: list[str]
    next_page: str | None = None


def brand_from_url(url: str) -> str:
    """Infer the brand from a URL such as ``/apple-phones-48.php``.

    Detail URLs (``/apple_iphone_15-12559.php``) fall back to their first
    underscore-separated token.
    """

    last_part = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    if not last_part:
        return "Unknown"
    if "-phones-" in last_part:
        brand = last_part.split("-phones-", 1)[0]
    else:
        brand = last_part.split("_", 1)[0].rsplit(".", 1)[0]
    brand = brand.replace("-", " ").strip()
    return brand.title() if brand else "Unknown"


class Parser:
    """Parse the three page stages of the catalogue site."""

    def parse_makers(self, html: str, base_url: str) -> list[str]:
        parser = HTMLParser(html)
        brands: list[str] = []
        seen: set[str] = set()
        for node in parser.css(".st-text a"):
            full_url = self._absolute(node.attributes.get("href"), base_url)
            if not full_url or ".php" not in full_url:
                continue
            if full_url not in seen:
                seen.add(full_url)
                brands.append(full_url)
        return brands

    def parse_listing(self, html: str, base_url: str) -> ListingPage:
        parser = HTMLParser(html)
        details: list[str] = []
        seen: set[str] = set()
        for node in parser.css(".makers li a"):
            full_url = self._absolute(node.attributes.get("href"), base_url)
            if full_url and full_url not in seen:
                seen.add(full_url)
                details.append(full_url)
        next_page = None
        for node in parser.css(".nav-pages a"):
            label = " ".join(
                filter(None, (node.text(strip=True), node.attributes.get("title") or ""))
            ).lower()
            if "next" in label:
                next_page = self._absolute(node.attributes.get("href"), base_url)
                if next_page:
                    break
        return ListingPage(detail_urls=details, next_page=next_page)

    def parse_detail(self, html: str, url: str, brand: str | None = None) -> PhoneRecord | None:
        """Return a record, or ``None`` when the page carries no spec table."""

        parser = HTMLParser(html)
        specs_node = parser.css_first("#specs-list")
        if specs_node is None:
            return None
        title_node = parser.css_first(".specs-phone-name-title")
        model_name = title_node.text(strip=True) if title_node else ""
        specs: dict[str, str] = {}
        for row in specs_node.css("table tr"):
            key_node = row.css_first(".ttl")
            value_node = row.css_first(".nfo")
            key = key_node.text(separator=" ", strip=True) if key_node else ""
            if not key:
                continue
            specs[key] = value_node.text(separator=" ", strip=True) if value_node else ""
        return PhoneRecord(
            model_name=model_name,
            brand=brand or brand_from_url(url),
            release_date=specs.get("Released") or "Unknown",
            url=url,
            specs=specs,
            crawled_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

    @staticmethod
    def _absolute(href: str | None, base_url: str) -> str | None:
        if not href:
            return None
        href = href.strip()
        if not href or href.startswith(("javascript:", "#")):
            return None
        return urljoin(base_url, href)


__all__ = ["ListingPage", "Parser", "PhoneRecord", "brand_from_url"]
