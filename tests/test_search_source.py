from unittest.mock import Mock, patch

import pytest
import requests

from acgn_relay.source.search import SearchSource


def mock_response(payload):
    resp = Mock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


@patch("acgn_relay.source.search.requests.get")
def test_fetch_page_sends_search_params_and_parses_posts(mock_get):
    mock_get.return_value = mock_response({"data": [
        {"id": 1, "channel_id": 1, "channel_name": "acgn", "size": 10, "text": "new release out",
         "file_suffix": "mkv", "msg_id": 11, "supports_streaming": True, "link": "L1", "date": 200},
        {"id": 2, "text": "older", "link": "L2", "date": 100},
    ]})
    source = SearchSource(page_size=24)

    posts = source.fetch_page(3)

    _, kwargs = mock_get.call_args
    assert kwargs["params"] == {
        "cid": 1, "page": 3, "limit": 24, "word": "*", "sort": "time", "file_suffix": "",
    }
    assert [p.link for p in posts] == ["L1", "L2"]
    assert posts[0].supports_streaming is True
    assert posts[0].date == 200


@patch("acgn_relay.source.search.requests.get")
def test_missing_or_null_data_is_an_empty_page(mock_get):
    source = SearchSource()

    mock_get.return_value = mock_response({"data": None})
    assert source.fetch_page(0) == []

    mock_get.return_value = mock_response({})
    assert source.fetch_page(0) == []


@patch("acgn_relay.source.search.requests.get")
def test_http_errors_propagate(mock_get):
    resp = mock_response({})
    resp.raise_for_status.side_effect = requests.HTTPError("502")
    mock_get.return_value = resp

    with pytest.raises(requests.HTTPError):
        SearchSource().fetch_page(0)


@patch("acgn_relay.source.search.requests.get")
def test_non_object_response_is_rejected(mock_get):
    mock_get.return_value = mock_response(["not", "an", "object"])

    with pytest.raises(ValueError):
        SearchSource().fetch_page(0)
