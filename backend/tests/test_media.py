import httpx
import pytest
from yt_dlp.utils import DownloadError

from jamroom.services import media
from jamroom.services.media import (
    MediaService,
    TrackUnavailable,
    extract_video_id,
    guess_mime,
    is_direct_link,
)

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.mark.parametrize("locator", [
    VIDEO_ID,
    f"https://www.youtube.com/watch?v={VIDEO_ID}",
    f"https://www.youtube.com/watch?list=PL1&v={VIDEO_ID}&t=3",
    f"https://youtu.be/{VIDEO_ID}",
    f"https://youtube.com/shorts/{VIDEO_ID}",
])
def test_extract_video_id(locator):
    assert extract_video_id(locator) == VIDEO_ID


@pytest.mark.parametrize("locator", [None, "", "hello", "https://example.com/song.mp3"])
def test_extract_video_id_rejects_others(locator):
    assert extract_video_id(locator) is None


def test_is_direct_link():
    assert is_direct_link("https://files.example.com/a/song.mp3")
    assert is_direct_link("http://files.example.com/song.M4A?sig=1")
    assert not is_direct_link(f"https://www.youtube.com/watch?v={VIDEO_ID}")
    assert not is_direct_link("https://soundcloud.com/artist/track")
    assert not is_direct_link("song.mp3")


def test_guess_mime():
    assert guess_mime("mp3") == "audio/mpeg"
    assert guess_mime("m4a") == "audio/mp4"
    assert guess_mime("WEBM") == "audio/webm"
    assert guess_mime("xyz") == "application/octet-stream"
    assert guess_mime(None) == "application/octet-stream"


@pytest.fixture
def extracted(monkeypatch):
    """Replace yt-dlp extraction; records the URLs it was asked for."""
    calls = []
    info = {"id": VIDEO_ID, "title": "Song", "url": "https://rr1.googlevideo.test/audio", "ext": "m4a"}

    def fake_extract(url, ydl_opts):
        calls.append(url)
        return info

    monkeypatch.setattr(media, "_extract_info", fake_extract)
    return calls


def service(**kwargs):
    kwargs.setdefault("cookies_path", None)
    kwargs.setdefault("stream_proxy_path", None)
    return MediaService(**kwargs)


async def test_resolve_youtube_locator(extracted):
    stream = await service().resolve(f"https://youtu.be/{VIDEO_ID}")

    assert stream.url == "https://rr1.googlevideo.test/audio"
    assert stream.mime_type == "audio/mp4"
    assert extracted == [f"https://www.youtube.com/watch?v={VIDEO_ID}"]


async def test_availability_check_warms_cache(extracted):
    svc = service()

    await svc.check_available(VIDEO_ID)
    await svc.resolve(f"https://www.youtube.com/watch?v={VIDEO_ID}")

    assert len(extracted) == 1


async def test_cache_expires(extracted):
    now = [0.0]
    svc = service(info_ttl=300, clock=lambda: now[0])

    await svc.resolve(VIDEO_ID)
    now[0] = 301
    await svc.resolve(VIDEO_ID)

    assert len(extracted) == 2


async def test_extraction_failure_is_unavailable(monkeypatch):
    def fail(url, ydl_opts):
        raise DownloadError("Video unavailable")

    monkeypatch.setattr(media, "_extract_info", fail)

    with pytest.raises(TrackUnavailable):
        await service().resolve(VIDEO_ID)


async def test_missing_stream_url_is_unavailable(monkeypatch):
    monkeypatch.setattr(media, "_extract_info", lambda url, ydl_opts: {"id": VIDEO_ID, "title": "Song"})

    with pytest.raises(TrackUnavailable):
        await service().resolve(VIDEO_ID)


async def test_requested_formats_fallback(monkeypatch):
    info = {
        "id": VIDEO_ID,
        "requested_formats": [
            {"url": "https://video.test", "ext": "mp4", "acodec": "none"},
            {"url": "https://audio.test", "ext": "webm", "acodec": "opus"},
        ],
    }
    monkeypatch.setattr(media, "_extract_info", lambda url, ydl_opts: info)

    stream = await service().resolve(VIDEO_ID)

    assert stream.url == "https://audio.test"
    assert stream.mime_type == "audio/webm"


async def test_unsupported_locator():
    with pytest.raises(TrackUnavailable):
        await service().check_available("just some words")


async def test_stream_proxy_path(extracted):
    stream = await service(stream_proxy_path="/stream").resolve(VIDEO_ID)

    assert stream.url == f"/stream?url={VIDEO_ID}"


async def test_direct_link_resolves_without_extraction(extracted):
    stream = await service().resolve("https://files.example.com/song.mp3")

    assert stream.url == "https://files.example.com/song.mp3"
    assert stream.mime_type == "audio/mpeg"
    assert extracted == []


async def test_direct_link_availability():
    def handler(request):
        assert request.method == "HEAD"
        if request.url.path == "/missing.mp3":
            return httpx.Response(404)
        return httpx.Response(200, headers={"content-type": "audio/mpeg"})

    svc = service(transport=httpx.MockTransport(handler))

    await svc.check_available("https://files.example.com/song.mp3")
    with pytest.raises(TrackUnavailable):
        await svc.check_available("https://files.example.com/missing.mp3")


async def test_direct_link_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    svc = service(transport=httpx.MockTransport(handler))

    with pytest.raises(TrackUnavailable):
        await svc.check_available("https://files.example.com/song.mp3")


async def test_search_maps_entries(monkeypatch):
    entries = [
        {"id": VIDEO_ID, "title": "Song", "url": f"https://www.youtube.com/watch?v={VIDEO_ID}",
         "thumbnails": [{"url": "https://img.test/small.jpg"}, {"url": "https://img.test/big.jpg"}]},
        {"id": "abcdefghijk", "title": "Other", "thumbnail": "https://img.test/other.jpg"},
        {"id": None, "title": "Channel"},
    ]
    seen = {}

    def fake_search(query, limit, ydl_opts):
        seen.update(query=query, limit=limit, flat=ydl_opts.get("extract_flat"))
        return entries

    monkeypatch.setattr(media, "_search", fake_search)

    results = await service().search("never gonna", limit=5)

    assert seen == {"query": "never gonna", "limit": 5, "flat": "in_playlist"}
    assert [(r.title, r.thumbnail) for r in results] == [
        ("Song", "https://img.test/big.jpg"),
        ("Other", "https://img.test/other.jpg"),
    ]
    assert results[1].url == "https://www.youtube.com/watch?v=abcdefghijk"


async def test_search_failure_returns_empty(monkeypatch):
    def fail(query, limit, ydl_opts):
        raise DownloadError("network down")

    monkeypatch.setattr(media, "_search", fail)

    assert await service().search("anything") == []


async def test_requested_format_without_url_is_unavailable(monkeypatch):
    info = {"id": VIDEO_ID, "requested_formats": [{"acodec": "opus", "ext": "webm"}]}
    monkeypatch.setattr(media, "_extract_info", lambda url, ydl_opts: info)

    with pytest.raises(TrackUnavailable):
        await service().resolve(VIDEO_ID)


async def test_expired_cache_entries_are_evicted(extracted):
    now = [0.0]
    svc = service(info_ttl=300, clock=lambda: now[0])

    await svc.resolve(VIDEO_ID)
    now[0] = 301
    await svc.resolve("abcdefghijk")

    assert VIDEO_ID not in svc._info_cache
    assert "abcdefghijk" in svc._info_cache
