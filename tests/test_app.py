from __future__ import annotations

import json
import logging

import httpx
import pytest

import app


@pytest.fixture
def config_file(tmp_path):
    config = {
        "ci_root_url": "https://ci.example.com/",
        "global": {"bitbucket_root_url": "https://bitbucket.example.com/", "credentials_id": "basic"},
        "credentials": [
            {"id": "basic", "type": "username_password", "username": "ci", "password_env": "BB_TEST_PASSWORD"},
            {"id": "ssh", "type": "ssh_key"},
        ],
        "logging": {"enabled": False},
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return str(path)


@pytest.fixture
def sent_requests(monkeypatch):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, request=request)

    monkeypatch.setattr(app, "build_http_client", lambda config: httpx.Client(transport=httpx.MockTransport(handler)))
    return requests


@pytest.fixture
def jenkins_env(monkeypatch):
    monkeypatch.setenv("JOB_NAME", "team/api")
    monkeypatch.setenv("BUILD_NUMBER", "9")
    monkeypatch.setenv("GIT_COMMIT", "abc123")
    monkeypatch.setenv("BB_TEST_PASSWORD", "pw")
    for name in ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy"):
        monkeypatch.delenv(name, raising=False)


def test_perform_posts_final_state(config_file, sent_requests, jenkins_env) -> None:
    assert app.main(["--config", config_file, "perform", "--result", "SUCCESS"]) == 0

    assert len(sent_requests) == 1
    request = sent_requests[0]
    assert str(request.url) == "https://bitbucket.example.com/commit/abc123/statuses/build"
    assert request.headers["Authorization"].startswith("Basic ")
    body = json.loads(request.content)
    assert body["state"] == "SUCCESSFUL"
    assert body["name"] == "team / api #9"


def test_prebuild_respects_disable_flag(config_file, sent_requests, jenkins_env) -> None:
    assert app.main(["--config", config_file, "prebuild", "--disable-inprogress"]) == 0
    assert not sent_requests

    assert app.main(["--config", config_file, "prebuild", "--revision", "m1:h1"]) == 0
    assert sorted(str(request.url).split("/")[-3] for request in sent_requests) == ["h1", "m1"]


def test_notify_never_fails_on_server_error(config_file, monkeypatch, jenkins_env) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="bad request", request=request)

    monkeypatch.setattr(app, "build_http_client", lambda config: httpx.Client(transport=httpx.MockTransport(handler)))
    assert app.main(["--config", config_file, "notify", "--state", "FAILED"]) == 0


def test_check_accepts_valid_configuration(config_file, caplog) -> None:
    caplog.set_level(logging.INFO)
    assert app.main(["--config", config_file, "check"]) == 0
    assert "Configuration OK" in caplog.text


def test_check_rejects_bad_url_and_credentials(config_file, caplog) -> None:
    caplog.set_level(logging.INFO)
    assert app.main(["--config", config_file, "check", "--base-url", "ftp://nope", "--credentials-id", "ssh"]) == 1
    assert "Please specify a valid URL" in caplog.text
    assert "not a username/password or certificate entry" in caplog.text


def test_credentials_lists_only_supported_kinds(config_file, capsys) -> None:
    assert app.main(["--config", config_file, "credentials"]) == 0
    assert capsys.readouterr().out.split() == ["basic"]


def test_missing_explicit_config_file_fails(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        app.main(["--config", str(tmp_path / "absent.json"), "check"])
