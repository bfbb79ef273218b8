"""Test chapter fetching and verse extraction."""
import httpx
import pytest

from ingestion.fetcher import (
    ChapterFetcher,
    FetchError,
    build_source_url,
    chapter_filename,
    load_chapter_for,
    parse_verses,
)


def make_fetcher(handler, tmp_path):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ChapterFetcher(client=client, output_dir=tmp_path / "scraped")


def test_source_url_convention():
    """Test that URLs follow the site's slug and prefix table."""
    assert build_source_url("bala_kanda", 7) == (
        "https://www.valmikiramayan.net/utf8/baala/sarga7/bala_7_frame.htm"
    )
    assert build_source_url("sundara_kanda", 2).endswith("/sundara/sarga2/sundara_2_frame.htm")


def test_unknown_kanda_rejected():
    """Test that a book outside the lookup table is a fetch error."""
    with pytest.raises(FetchError):
        build_source_url("lanka_kanda", 1)


def test_parse_sample_page(sample_page):
    """Test that the sample page yields its three numbered verses."""
    assert len(sample_page.splitlines()) == 21

    verses = parse_verses(sample_page)

    assert [verse.number for verse in verses] == [1, 2, 3]
    assert "नारदं" in verses[0].sanskrit
    assert verses[0].translation.startswith("The ascetic Valmiki")
    assert verses[2].translation.endswith("welfare of all beings?")
    assert all(verse.is_usable for verse in verses)


def test_incomplete_verses_dropped():
    """Test that a verse missing its translation is dropped."""
    html = "\n".join([
        "<p>1. तपःस्वाध्यायनिरतं तपस्वी वाग्विदां वरम्</p>",
        "<p>2. कोन्वस्मिन् साम्प्रतं लोके गुणवान् कश्च वीर्यवान्</p>",
        "<p>Who is there in this world today who is virtuous?</p>",
    ])

    verses = parse_verses(html)

    assert len(verses) == 1
    assert verses[0].number == 2


def test_fetch_follows_frame(tmp_path, sample_page):
    """Test that a frameset page triggers a second request for the inner page."""
    requested = []

    def handler(request):
        requested.append(str(request.url))
        if request.url.path.endswith("_frame.htm"):
            return httpx.Response(200, text='<frameset><frame src="bala_1_content.htm"></frameset>')
        return httpx.Response(200, text=sample_page)

    fetcher = make_fetcher(handler, tmp_path)
    source = fetcher.fetch_and_save("bala_kanda", 1)

    assert len(requested) == 2
    assert requested[1] == "https://www.valmikiramayan.net/utf8/baala/sarga1/bala_1_content.htm"
    assert source.total_verses == 3
    assert source.title == "Bala Kanda - Sarga 1"
    assert (tmp_path / "scraped" / chapter_filename("bala_kanda", 1)).exists()

    reloaded = load_chapter_for("bala_kanda", 1, tmp_path / "scraped")
    assert reloaded.verses == source.verses


def test_http_error_writes_nothing(tmp_path):
    """Test that a non-2xx response aborts the fetch without a file."""
    fetcher = make_fetcher(lambda request: httpx.Response(404), tmp_path)

    with pytest.raises(FetchError, match="404"):
        fetcher.fetch_and_save("bala_kanda", 99)

    assert list((tmp_path / "scraped").iterdir()) == []


def test_network_error_is_fetch_error(tmp_path):
    """Test that connection failures surface as FetchError."""
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = make_fetcher(handler, tmp_path)

    with pytest.raises(FetchError, match="Network error"):
        fetcher.fetch("bala_kanda", 1)


def test_empty_page_still_written(tmp_path):
    """Test that zero verses is a warning, not a failure."""
    fetcher = make_fetcher(lambda request: httpx.Response(200, text="<html><body></body></html>"), tmp_path)

    source = fetcher.fetch_and_save("bala_kanda", 5)

    assert source.total_verses == 0
    assert source.usable_verses == []
    assert (tmp_path / "scraped" / "bala_kanda_sarga_5.json").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
