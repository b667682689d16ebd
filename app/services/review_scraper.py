"""
Review extraction from scraped listing pages.

The parsing here is regex over page markdown and breaks whenever the source
site changes its layout. Callers depend only on ``ReviewSource``, so a
structured reviews API can replace the scraper without touching them.
"""
import re
from typing import List, Optional, Protocol

import httpx

from app.core.config import settings
from app.core.errors import ServiceUnavailableError, UpstreamError, ValidationError
from app.core.logging import get_logger
from app.models.schemas import Review, ScrapedReviews

logger = get_logger("SCRAPE-REVIEWS")

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"

MAX_PARSED_REVIEWS = 10
MAX_RETURNED_REVIEWS = 5
MIN_COMMENT_LENGTH = 20
MAX_COMMENT_LENGTH = 500

_NAME = r"[A-Z][a-z]+(?:\s+[A-Z]\.)?"
_MONTH_YEAR = r"[A-Za-z]+\s+\d{4}"

REVIEW_PATTERNS = [
    # Name / Month Year / text, up to the next name or a rule
    re.compile(rf"({_NAME})\n({_MONTH_YEAR})\n([\s\S]*?)(?=\n{_NAME}|\n---|\n\*\*\*|\Z)"),
    # Name and date lines with trailing decoration (stars, badges)
    re.compile(rf"({_NAME})[^\n]*\n({_MONTH_YEAR})[^\n]*\n((?:(?!(?:{_NAME}[^\n]*\n{_MONTH_YEAR})).)+)"),
]
QUOTED_REVIEW = re.compile(r'"([^"]{50,500})"')
RATING_PATTERN = re.compile(
    r"(\d+\.?\d*)\s*★|★\s*(\d+\.?\d*)|(\d+\.?\d*)\s*out of 5|rating[:\s]+(\d+\.?\d*)",
    re.IGNORECASE,
)


def _clean(comment: str) -> str:
    return re.sub(r"\s+", " ", comment.strip())[:MAX_COMMENT_LENGTH]


def parse_reviews(markdown: str) -> List[Review]:
    reviews: List[Review] = []
    seen = set()

    for pattern in REVIEW_PATTERNS:
        for match in pattern.finditer(markdown):
            name, date, comment = match.group(1), match.group(2), match.group(3)
            cleaned = _clean(comment or "")
            key = (name.strip(), date.strip(), cleaned)
            if len(cleaned) > MIN_COMMENT_LENGTH and key not in seen:
                seen.add(key)
                reviews.append(Review(reviewer_name=key[0], date=key[1], comment=cleaned))
            if len(reviews) >= MAX_PARSED_REVIEWS:
                break
        if len(reviews) >= MAX_RETURNED_REVIEWS:
            break

    if not reviews:
        for index, quote in enumerate(QUOTED_REVIEW.findall(markdown)[:MAX_RETURNED_REVIEWS]):
            reviews.append(Review(reviewer_name=f"Guest {index + 1}", date="Recent", comment=quote.strip()))

    return reviews[:MAX_PARSED_REVIEWS]


def extract_rating(markdown: str) -> Optional[float]:
    match = RATING_PATTERN.search(markdown)
    if not match:
        return None
    value = next(g for g in match.groups() if g)
    return float(value)


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValidationError("Listing URL is required")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class ReviewSource(Protocol):
    def fetch_reviews(self, url: str) -> ScrapedReviews: ...


class FirecrawlReviewSource:
    def __init__(self, api_key: Optional[str] = None, timeout: float = 60.0):
        self.api_key = api_key or settings.FIRECRAWL_API_KEY
        self.timeout = timeout

    def scrape_markdown(self, url: str) -> str:
        if not self.api_key:
            logger.error("FIRECRAWL_API_KEY not configured")
            raise ServiceUnavailableError("Scraping service not configured")

        client = httpx.Client(timeout=self.timeout)
        try:
            response = client.post(
                FIRECRAWL_SCRAPE_URL,
                json={
                    "url": url,
                    "formats": ["markdown", "html"],
                    "onlyMainContent": True,
                    "waitFor": 3000,  # ms, lets client-rendered reviews load
                },
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Firecrawl API error", status=e.response.status_code, body=e.response.text)
            raise UpstreamError("Failed to scrape page")
        except Exception as e:
            logger.error("Firecrawl request failed", error=str(e))
            raise UpstreamError("Failed to scrape page")
        finally:
            client.close()

        return (data.get("data") or {}).get("markdown") or data.get("markdown") or ""

    def fetch_reviews(self, url: str) -> ScrapedReviews:
        url = normalize_url(url)
        logger.info("Scraping listing", url=url)
        markdown = self.scrape_markdown(url)
        reviews = parse_reviews(markdown)
        rating = extract_rating(markdown)
        logger.info("Parsed reviews", count=len(reviews), rating=rating)
        return ScrapedReviews(reviews=reviews[:MAX_RETURNED_REVIEWS], rating=rating, url=url)


def get_review_source() -> ReviewSource:
    return FirecrawlReviewSource()
