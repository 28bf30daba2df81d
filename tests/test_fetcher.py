import pytest
import requests

from fetcher import JsonFetcher

API = "https://api.github.com"


@pytest.fixture
def http_session(mocker):
    return mocker.create_autospec(requests.Session, instance=True)


def _response(mocker, status=200, json_data=None, text="", reason="OK", json_error=None):
    resp = mocker.Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = reason
    resp.text = text
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = json_data
    return resp


def test_successful_fetch_returns_decoded_json(mocker, http_session):
    # 1. ARRANGE
    http_session.get.return_value = _response(mocker, json_data={"name": "storefront"})
    fetcher = JsonFetcher(session=http_session, timeout=5, github_api=API, github_token=None)

    # 2. ACT
    result = fetcher(f"{API}/repos/acme/storefront")

    # 3. ASSERT
    assert result.ok is True
    assert result.status == 200
    assert result.data == {"name": "storefront"}
    _, kwargs = http_session.get.call_args
    assert kwargs["timeout"] == 5
    assert kwargs["headers"]["Accept"] == "application/vnd.github+json"
    assert "Authorization" not in kwargs["headers"]


def test_token_is_sent_only_to_metadata_provider(mocker, http_session):
    http_session.get.return_value = _response(mocker, json_data={})
    fetcher = JsonFetcher(session=http_session, github_api=API, github_token="ghp_example")

    fetcher(f"{API}/repos/acme/storefront")
    github_headers = http_session.get.call_args.kwargs["headers"]
    fetcher("https://shop.example.org/wp-json/")
    site_headers = http_session.get.call_args.kwargs["headers"]

    assert github_headers["Authorization"] == "Bearer ghp_example"
    assert "Authorization" not in site_headers
    assert site_headers["Accept"] == "application/json"


def test_transport_failure_is_a_network_error(http_session):
    http_session.get.side_effect = requests.exceptions.ConnectionError("Connection refused")

    result = JsonFetcher(session=http_session).fetch("https://shop.example.org/wp-json/")

    assert result.ok is False
    assert result.error_kind == "network"
    assert result.error == "Connection refused"


@pytest.mark.parametrize("status, kind", [(403, "rate_limited"), (429, "rate_limited"), (404, "http_error"), (500, "http_error")])
def test_non_2xx_status_is_classified(mocker, http_session, status, kind):
    http_session.get.return_value = _response(mocker, status=status, reason="Nope", text="x" * 300)

    result = JsonFetcher(session=http_session).fetch(f"{API}/repos/acme/private")

    assert result.ok is False
    assert result.status == status
    assert result.error_kind == kind
    assert result.error == f"HTTP Error: {status} Nope"
    assert len(result.text) == 100


def test_undecodable_body_is_invalid_json(mocker, http_session):
    http_session.get.return_value = _response(mocker, json_error=ValueError("Expecting value"))

    result = JsonFetcher(session=http_session).fetch("https://shop.example.org/wp-json/")

    assert result.ok is False
    assert result.error_kind == "invalid_json"
    assert "Expecting value" in result.error
