import httpx
import pytest

from catalog_sync.errors import FetchError
from catalog_sync.services.fetcher import ContentFetcher
from catalog_sync.services.text_normalizer import text_for_hashing
from catalog_sync.utils.content_hash import compute_content_hash
from tests.fakes import RecordingSleeper

pytestmark = pytest.mark.unit

URL = "https://university.example.edu/"
HTML = "<html><body><h1>University</h1><p>Founded 1934</p></body></html>"


def _fetcher(settings, handler, sleeper=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentFetcher(settings, client=client, sleep=sleeper or RecordingSleeper())


@pytest.mark.asyncio
async def test_fetch_returns_html_and_hash(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["user_agent"] = request.headers.get("user-agent")
        seen["accept_language"] = request.headers.get("accept-language")
        return httpx.Response(200, text=HTML)

    result = await _fetcher(settings, handler).fetch(URL)

    assert result.html == HTML
    assert result.content_length == len(HTML)
    assert result.content_hash == compute_content_hash(text_for_hashing(HTML))
    assert seen["user_agent"] == settings.FETCH_USER_AGENT
    assert seen["accept_language"] == settings.FETCH_ACCEPT_LANGUAGE


@pytest.mark.asyncio
async def test_non_2xx_fails_without_retry(settings):
    calls = []
    sleeper = RecordingSleeper()

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(503, text="maintenance")

    with pytest.raises(FetchError) as exc_info:
        await _fetcher(settings, handler, sleeper).fetch(URL)

    assert exc_info.value.status_code == 503
    assert exc_info.value.url == URL
    assert len(calls) == 1
    assert sleeper.calls == []


@pytest.mark.asyncio
async def test_transport_errors_are_retried_with_linear_backoff(settings):
    calls = []
    sleeper = RecordingSleeper()

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text=HTML)

    result = await _fetcher(settings, handler, sleeper).fetch(URL)

    assert result.html == HTML
    assert len(calls) == 3
    assert sleeper.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_timeout_on_final_attempt_is_fetch_error(settings):
    sleeper = RecordingSleeper()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(FetchError) as exc_info:
        await _fetcher(settings, handler, sleeper).fetch(URL)

    assert "timed out" in str(exc_info.value)
    assert exc_info.value.status_code is None
    assert len(sleeper.calls) == settings.FETCH_MAX_ATTEMPTS - 1


def test_find_related_links():
    html = """
    <body>
      <a href="/admissions">Admissions 2025</a>
      <a href="https://other.example.com/tour">Virtual tour</a>
      <a href="#top">Top</a>
      <a href="/admissions">Apply</a>
      <iframe src="https://maps.example.com/embed?pano=1" title="Campus panorama"></iframe>
      <a href="/news">News</a>
    </body>
    """

    links = ContentFetcher.find_related_links(html, "https://university.example.edu/about/", ["admission", "tour", "panorama"])

    assert [link.url for link in links] == [
        "https://university.example.edu/admissions",
        "https://other.example.com/tour",
        "https://maps.example.com/embed?pano=1",
    ]
    assert links[2].tag == "iframe"


@pytest.mark.asyncio
async def test_redirect_loop_is_fetch_error_without_retry(settings):
    calls = []
    sleeper = RecordingSleeper()

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(302, headers={"Location": URL})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    fetcher = ContentFetcher(settings, client=client, sleep=sleeper)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.url == URL
    assert "Failed to fetch" in exc_info.value.message
    assert sleeper.calls == []
    assert len(calls) > 1

