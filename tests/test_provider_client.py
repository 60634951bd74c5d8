from __future__ import annotations

import asyncio

import httpx
import pytest

from video_relay.core.exceptions import DownloadError, UpstreamError
from video_relay.provider.client import ProviderClient
from video_relay.provider.models import ProviderTaskInput, ProviderTaskRequest

from tests.conftest import PROVIDER_BASE_URL


def _request(**input_kwargs) -> ProviderTaskRequest:
    data = dict(prompt="a sunset", aspect_ratio="landscape", n_frames="10")
    data.update(input_kwargs)
    return ProviderTaskRequest(
        model="sora-2-text-to-video",
        callback_url="https://relay.test/api/callback",
        input=ProviderTaskInput(**data),
    )


def test_create_task_sends_bearer_and_payload(provider, fake_provider):
    provider_task_id = asyncio.run(provider.create_task(_request()))

    assert provider_task_id == "prov-1"
    assert fake_provider.create_headers[0]["authorization"] == "Bearer provider-key"
    assert fake_provider.create_calls[0] == {
        "model": "sora-2-text-to-video",
        "callBackUrl": "https://relay.test/api/callback",
        "input": {
            "prompt": "a sunset",
            "aspect_ratio": "landscape",
            "n_frames": "10",
            "remove_watermark": True,
        },
    }


def test_create_task_forwards_images_and_characters(provider, fake_provider):
    asyncio.run(
        provider.create_task(
            _request(image_urls=["https://img.test/a.png"], character_id_list=["c1"])
        )
    )
    sent = fake_provider.create_calls[0]["input"]
    assert sent["image_urls"] == ["https://img.test/a.png"]
    assert sent["character_id_list"] == ["c1"]


def test_http_error_status_is_upstream_error(provider, fake_provider):
    fake_provider.create_response = lambda payload: httpx.Response(500, text="boom")

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(provider.create_task(_request()))

    assert exc.value.status_code == 502
    assert exc.value.upstream_status == 500
    assert "boom" in exc.value.message


def test_provider_code_other_than_200_is_upstream_error(provider, fake_provider):
    fake_provider.create_response = lambda payload: httpx.Response(
        200, json={"code": 422, "msg": "prompt rejected", "data": None}
    )

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(provider.create_task(_request()))

    assert exc.value.detail == "prompt rejected"
    assert exc.value.upstream_status == 422


def test_missing_task_id_is_upstream_error(provider, fake_provider):
    fake_provider.create_response = lambda payload: httpx.Response(200, json={"code": 200, "data": {}})

    with pytest.raises(UpstreamError, match="Provider API error"):
        asyncio.run(provider.create_task(_request()))


def test_non_json_body_is_upstream_error(provider, fake_provider):
    fake_provider.create_response = lambda payload: httpx.Response(200, text="<html>")

    with pytest.raises(UpstreamError):
        asyncio.run(provider.create_task(_request()))


def test_unreachable_provider_is_upstream_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ProviderClient(
        api_key="k", base_url=PROVIDER_BASE_URL, transport=httpx.MockTransport(refuse)
    )
    with pytest.raises(UpstreamError, match="unreachable"):
        asyncio.run(client.create_task(_request()))


def test_download_writes_destination(provider, fake_provider, tmp_path):
    url = "https://cdn.test/video.mp4"
    fake_provider.files[url] = b"\x00\x01mp4-bytes"
    destination = tmp_path / "out" / "task_1.mp4"

    written = asyncio.run(provider.download_artifact(url, destination))

    assert written == destination
    assert destination.read_bytes() == b"\x00\x01mp4-bytes"
    assert not (tmp_path / "out" / "task_1.mp4.part").exists()


def test_download_failure_leaves_no_file(provider, tmp_path):
    destination = tmp_path / "task_1.mp4"

    with pytest.raises(DownloadError, match="status 404"):
        asyncio.run(provider.download_artifact("https://cdn.test/missing.mp4", destination))

    assert list(tmp_path.iterdir()) == []
