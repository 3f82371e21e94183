from datetime import datetime, timezone

from conftest import LISTING_URL, listing_html

from regdocs.models.document import Category
from regdocs.models.source import ListingSource
from regdocs.parsers import ListingParser, parse_published

WELL_FORMED = [
    ("/files/decision-car-4.pdf", "Offence - Car 4 - Unsafe release", "07.12.25 14:25"),
    ("https://docs.example.test/files/entry-list.pdf", "Entry List", "06.12.25 09:00"),
    ("files/technical-report.pdf", "Technical Delegate Report", "05.12.2025 18:10"),
]


def parse(html, source=None):
    return ListingParser().parse(html, LISTING_URL, source)


def test_returns_references_in_page_order():
    refs = parse(listing_html(WELL_FORMED)).references()

    assert [ref.title for ref in refs] == [title for _, title, _ in WELL_FORMED]
    assert refs[0].source_url == "https://docs.example.test/files/decision-car-4.pdf"
    assert refs[2].source_url == "https://docs.example.test/documents/files/technical-report.pdf"


def test_malformed_entries_are_skipped_and_counted():
    entries = [
        WELL_FORMED[0],
        ("/files/undated.pdf", "Undated document", "soon"),
        WELL_FORMED[1],
        ("javascript:void(0)", "Script link", "07.12.25 10:00"),
        WELL_FORMED[2],
    ]
    unlinked = (
        '<li class="document-row"><span class="title">No link</span>'
        '<span class="published">07.12.25 10:00</span></li>'
    )
    html = listing_html(entries).replace("</ul></li></ul>", unlinked + "</ul></li></ul>")

    listing = parse(html)
    refs = listing.references()

    assert len(refs) == 3
    assert [ref.title for ref in refs] == [title for _, title, _ in WELL_FORMED]
    assert listing.skipped == 3
    assert len(listing.errors) == 3


def test_listing_is_restartable():
    listing = parse(listing_html(WELL_FORMED + [("/x.pdf", "Bad", "")]))

    first = list(listing)
    second = list(listing)

    assert first == second
    assert listing.skipped == 1


def test_empty_page_yields_nothing():
    listing = parse("<html><body><p>No documents yet</p></body></html>")
    assert listing.references() == []
    assert listing.skipped == 0


def test_categories_and_event_are_extracted():
    refs = parse(listing_html(WELL_FORMED, event="Abu Dhabi Grand Prix")).references()

    assert [ref.category for ref in refs] == [
        Category.DECISION,
        Category.BULLETIN,
        Category.REGULATION,
    ]
    assert all(ref.event == "Abu Dhabi Grand Prix" for ref in refs)


def test_unrecognised_category_is_other():
    refs = parse(listing_html([("/a.pdf", "Stewards Biographies", "07.12.25 14:25")])).references()
    assert refs[0].category == Category.OTHER


def test_dates_are_interpreted_in_source_timezone():
    source = ListingSource(name="paris", listing_url=LISTING_URL, timezone="Europe/Paris")
    refs = parse(listing_html(WELL_FORMED[:1]), source).references()

    assert refs[0].published_at == datetime(2025, 12, 7, 13, 25, tzinfo=timezone.utc)
    assert refs[0].source_name == "paris"


def test_time_element_takes_precedence():
    html = (
        '<ul><li class="document-row"><a href="/a.pdf"><span class="title">Bulletin</span></a>'
        '<span class="published"><time datetime="2025-03-14T10:00:00+02:00">Friday</time></span>'
        "</li></ul>"
    )
    refs = parse(html).references()
    assert refs[0].published_at == datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc)


def test_parse_published_formats():
    assert parse_published("07.12.25 14:25") == datetime(2025, 12, 7, 14, 25, tzinfo=timezone.utc)
    assert parse_published("07.12.2025") == datetime(2025, 12, 7, tzinfo=timezone.utc)
    assert parse_published("2025-03-14T10:00:00Z") == datetime(2025, 3, 14, 10, tzinfo=timezone.utc)
    assert parse_published("14/03/2025", formats=("%d/%m/%Y",)) == datetime(
        2025, 3, 14, tzinfo=timezone.utc
    )


def test_parse_published_rejects_garbage():
    assert parse_published("") is None
    assert parse_published("tomorrow") is None
    assert parse_published("31.02.25 10:00") is None
