from __future__ import annotations

import base64
import json
from urllib.error import HTTPError

import pytest

from models.errors import AudioFetchError, TaskQueryError, TaskSubmissionError
from models.task import TaskResult
from repositories import acestep_repository
from repositories.acestep_repository import AceStepClient


class FakeHTTPResponse:
    def __init__(self, body: bytes, *, status: int = 200, headers: dict[str, str] | None = None):
        self._body = body
        self.status = status
        self.headers = headers or {}

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeHTTPResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


def _json_response(body: object) -> FakeHTTPResponse:
    return FakeHTTPResponse(json.dumps(body).encode("utf-8"))


class TestServerUrl:
    def test_defaults_to_local_loopback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ACESTEP_SERVER_URL", raising=False)
        monkeypatch.delenv("ACESTEP_API_URL", raising=False)

        assert acestep_repository.get_server_url() == "http://localhost:8001"

    def test_reads_environment_and_strips_trailing_slash(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACESTEP_SERVER_URL", "http://gpu-box:9000/")

        assert acestep_repository.get_server_url() == "http://gpu-box:9000"
        assert AceStepClient().base_url == "http://gpu-box:9000"

    def test_explicit_base_url_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACESTEP_SERVER_URL", "http://gpu-box:9000")

        assert AceStepClient("http://other:1234/").base_url == "http://other:1234"


class TestRequestSong:
    def test_request_song_posts_only_provided_fields(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen_requests: list[dict[str, object]] = []

        def fake_urlopen(request, timeout=30):  # noqa: ANN001, ARG001
            seen_requests.append(
                {
                    "url": request.full_url,
                    "method": request.get_method(),
                    "payload": json.loads(request.data.decode("utf-8")),
                }
            )
            return _json_response(
                {
                    "code": 200,
                    "error": None,
                    "data": {"task_id": "task-123", "status": "queued", "queue_position": 2},
                }
            )

        monkeypatch.setattr(acestep_repository, "urlopen", fake_urlopen)

        result = AceStepClient("http://localhost:9000").request_song(
            "warm lofi hip-hop",
            duration=45,
            lyrics="",
            bpm=95,
            key="",
            seed=None,
            thinking=False,
        )

        assert result.task_id == "task-123"
        assert result.status == "queued"
        assert result.queue_position == 2
        assert seen_requests == [
            {
                "url": "http://localhost:9000/release_task",
                "method": "POST",
                "payload": {
                    "caption": "warm lofi hip-hop",
                    "duration": 45,
                    "bpm": 95,
                    "thinking": False,
                },
            }
        ]

    def test_request_song_defaults_duration_to_thirty_seconds(self) -> None:
        payload = acestep_repository.build_release_payload("ambient pads", None, {})

        assert payload == {"caption": "ambient pads", "duration": 30}

    def test_request_song_rejects_unknown_options(self) -> None:
        with pytest.raises(TypeError, match="Unsupported song options: mood"):
            acestep_repository.build_release_payload("ambient pads", 30, {"mood": "calm"})

    def test_request_song_accepts_unwrapped_response(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            acestep_repository,
            "urlopen",
            lambda request, timeout=30: _json_response({"task_id": "task-9"}),  # noqa: ARG005
        )

        assert AceStepClient("http://localhost:9000").request_song("drums").task_id == "task-9"

    def test_request_song_raises_backend_error_without_task_id(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            acestep_repository,
            "urlopen",
            lambda request, timeout=30: _json_response(  # noqa: ARG005
                {"code": 500, "error": "model not loaded", "data": None}
            ),
        )

        with pytest.raises(TaskSubmissionError, match="model not loaded"):
            AceStepClient("http://localhost:9000").request_song("drums")


class TestQueryResult:
    def test_query_result_decodes_result_string(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen_payloads: list[dict[str, object]] = []
        outcomes = [
            {"file": "/v1/audio?path=a.mp3", "wave": "", "status": 1, "metas": {"bpm": "N/A"}},
            {"file": "/v1/audio?path=b.mp3", "wave": "", "status": 1},
        ]

        def fake_urlopen(request, timeout=30):  # noqa: ANN001, ARG001
            seen_payloads.append(json.loads(request.data.decode("utf-8")))
            return _json_response(
                {
                    "code": 200,
                    "data": [
                        {
                            "task_id": "task-123",
                            "result": json.dumps(outcomes),
                            "status": 1,
                            "progress_text": "Done",
                        }
                    ],
                }
            )

        monkeypatch.setattr(acestep_repository, "urlopen", fake_urlopen)

        results = AceStepClient("http://localhost:9000").query_result(["task-123"])

        assert seen_payloads == [{"task_id_list": ["task-123"]}]
        assert len(results) == 1
        assert results[0].status == 1
        assert results[0].progress_text == "Done"
        assert [outcome.file for outcome in results[0].result] == [
            "/v1/audio?path=a.mp3",
            "/v1/audio?path=b.mp3",
        ]
        assert results[0].first_file == "/v1/audio?path=a.mp3"

    def test_query_result_yields_empty_list_for_undecodable_result(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            acestep_repository,
            "urlopen",
            lambda request, timeout=30: _json_response(  # noqa: ARG005
                {"data": [{"task_id": "task-123", "result": "not json{", "status": 0}]}
            ),
        )

        results = AceStepClient("http://localhost:9000").query_result(["task-123"])

        assert results[0].result == []
        assert results[0].first_file is None

    def test_decode_outcomes_handles_single_object_and_junk(self) -> None:
        assert [o.file for o in acestep_repository.decode_outcomes(json.dumps({"file": "x.mp3"}))] == ["x.mp3"]
        assert acestep_repository.decode_outcomes(json.dumps(42)) == []
        assert acestep_repository.decode_outcomes(None) == []
        assert [o.file for o in acestep_repository.decode_outcomes(json.dumps(["junk", {"file": ""}]))] == [None, None]

    def test_first_file_comes_from_first_outcome_even_when_it_has_none(self) -> None:
        outcomes = acestep_repository.decode_outcomes(
            json.dumps([{"file": None, "status": 2}, {"file": "/v1/audio?path=b.mp3", "status": 1}])
        )

        assert [outcome.file for outcome in outcomes] == [None, "/v1/audio?path=b.mp3"]
        assert TaskResult(status=1, result=outcomes).first_file is None

    def test_odd_field_types_do_not_drop_the_outcome(self) -> None:
        outcomes = acestep_repository.decode_outcomes(json.dumps([{"file": 7, "status": "done"}]))

        assert len(outcomes) == 1
        assert outcomes[0].file is None
        assert outcomes[0].status is None

    def test_query_result_raises_on_malformed_envelope(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            acestep_repository,
            "urlopen",
            lambda request, timeout=30: _json_response({"data": "oops"}),  # noqa: ARG005
        )

        with pytest.raises(TaskQueryError):
            AceStepClient("http://localhost:9000").query_result(["task-123"])


class TestGetSongFromUrl:
    def test_fetches_relative_url_and_encodes_body(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen_requests: list[dict[str, str]] = []

        def fake_urlopen(request, timeout=30):  # noqa: ANN001, ARG001
            seen_requests.append({"url": request.full_url, "method": request.get_method()})
            return FakeHTTPResponse(b"ID3-BYTES", headers={"Content-Type": "audio/wav"})

        monkeypatch.setattr(acestep_repository, "urlopen", fake_urlopen)

        audio = AceStepClient("http://localhost:9000").get_song_from_url("/v1/audio?path=out.wav")

        assert audio == {"base64": base64.b64encode(b"ID3-BYTES").decode("ascii"), "mimeType": "audio/wav"}
        assert seen_requests == [{"url": "http://localhost:9000/v1/audio?path=out.wav", "method": "GET"}]

    def test_defaults_mime_type_to_mpeg(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            acestep_repository,
            "urlopen",
            lambda request, timeout=30: FakeHTTPResponse(b"ID3"),  # noqa: ARG005
        )

        audio = AceStepClient("http://localhost:9000").get_song_from_url("/v1/audio?path=out.mp3")

        assert audio["mimeType"] == "audio/mpeg"

    def test_raises_fetch_error_on_http_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_urlopen(request, timeout=30):  # noqa: ANN001, ARG001
            raise HTTPError(request.full_url, 404, "Not Found", None, None)

        monkeypatch.setattr(acestep_repository, "urlopen", fake_urlopen)

        with pytest.raises(AudioFetchError, match="Failed to fetch audio"):
            AceStepClient("http://localhost:9000").get_song_from_url("/v1/audio?path=missing.mp3")

    def test_absolute_url_is_fetched_from_configured_server(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen_urls: list[str] = []

        def fake_urlopen(request, timeout=30):  # noqa: ANN001, ARG001
            seen_urls.append(request.full_url)
            return FakeHTTPResponse(b"ID3")

        monkeypatch.setattr(acestep_repository, "urlopen", fake_urlopen)

        AceStepClient("http://localhost:9000").get_song_from_url("http://elsewhere.example:8080/v1/audio?path=x.mp3")

        assert seen_urls == ["http://localhost:9000/v1/audio?path=x.mp3"]
