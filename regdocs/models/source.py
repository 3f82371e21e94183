"""Listing source configuration models."""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class ListingSelectors(BaseModel):
    """CSS selectors locating document entries on a listing page."""
    model_config = ConfigDict(frozen=True)

    entry: str = "li.document-row"
    title: str = ".title"
    published: str = ".published"
    link: str = "a[href]"
    category: Optional[str] = ".category"
    event_container: Optional[str] = "ul.event-wrapper > li"
    event_title: Optional[str] = ".event-title"


class ListingSource(BaseModel):
    """A listing page that is polled for newly published documents."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=200)
    listing_url: HttpUrl
    description: Optional[str] = None
    is_active: bool = True
    timezone: str = "UTC"
    date_formats: Tuple[str, ...] = ()
    selectors: ListingSelectors = Field(default_factory=ListingSelectors)

    @property
    def url(self) -> str:
        return str(self.listing_url)
