import asyncio

import httpx
import pytest

from karaoke.exceptions import ExternalServiceException
from karaoke.services.search_service import YouTubeSearchService

API_URL = "https://youtube.test/v3/search"

SAMPLE = {
    "nextPageToken": "NEXT",
    "items": [
        {
            "id": {"kind": "youtube#video", "videoId": "abc"},
            "snippet": {
                "title": "Rock &amp; Roll",
                "channelTitle": "Band",
                "thumbnails": {"medium": {"url": "https://img.test/abc.jpg"}},
            },
        },
        {
            "id": {"kind": "youtube#playlist", "playlistId": "PL1"},
            "snippet": {"title": "Mix", "channelTitle": "DJ", "thumbnails": {}},
        },
        {
            "id": {"kind": "youtube#channel", "channelId": "UC1"},
            "snippet": {"title": "A channel"},
        },
    ],
}


def make_service(handler, api_key="secret") -> YouTubeSearchService:
    return YouTubeSearchService(api_key, API_URL, max_results=10, transport=httpx.MockTransport(handler))


def test_results_are_normalized():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json=SAMPLE)

    result = asyncio.run(make_service(handler).search("rock", page_token="P2"))

    assert seen["q"] == "rock"
    assert seen["pageToken"] == "P2"
    assert seen["maxResults"] == "10"
    assert seen["type"] == "video,playlist"

    data = result.dump()
    assert data["nextPageToken"] == "NEXT"
    assert data["prevPageToken"] is None
    assert data["items"] == [
        {
            "id": "abc",
            "title": "Rock & Roll",
            "channelTitle": "Band",
            "isPlaylist": False,
            "thumbnail": "https://img.test/abc.jpg",
        },
        {"id": "PL1", "title": "Mix", "channelTitle": "DJ", "isPlaylist": True, "thumbnail": None},
    ]


def test_upstream_error_is_reported():
    def handler(request):
        return httpx.Response(403, json={"error": "quota"})

    with pytest.raises(ExternalServiceException) as exc_info:
        asyncio.run(make_service(handler).search("rock"))
    assert exc_info.value.status_code == 502


def test_network_error_is_reported():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(ExternalServiceException):
        asyncio.run(make_service(handler).search("rock"))


def test_missing_api_key():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(ExternalServiceException) as exc_info:
        asyncio.run(make_service(handler, api_key="").search("rock"))
    assert exc_info.value.status_code == 503
