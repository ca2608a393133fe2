"""Tests for catalogue_source.py — file and HTTP catalogue reads."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

import catalogue_source
from catalogue import BadCatalogueFormat
from mr_trace import TraceContext, clear_trace, set_trace


def _response(status=200, payload=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status
    if json_error:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


class TestReadFile:
    def test_reads_json(self, tmp_path):
        path = tmp_path / "programs.json"
        path.write_text(json.dumps({"features": []}))
        assert catalogue_source.read_file(str(path)) == {"features": []}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "programs.json"
        path.write_text("{not json")
        with pytest.raises(BadCatalogueFormat):
            catalogue_source.read_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            catalogue_source.read_file(str(tmp_path / "absent.json"))


class TestFetchUrl:
    def test_success_records_fetch(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"features": [1]})
        ctx = TraceContext(trace_id="t")
        set_trace(ctx)
        try:
            data = catalogue_source.fetch_url("https://example.org/q", session=session)
        finally:
            clear_trace()
        assert data == {"features": [1]}
        assert ctx.fetches[0].service == "arcgis"
        assert ctx.fetches[0].status_code == 200
        _, kwargs = session.get.call_args
        assert kwargs["timeout"] == 20

    def test_http_error_propagates(self):
        session = MagicMock()
        session.get.return_value = _response(status=502)
        with pytest.raises(requests.HTTPError):
            catalogue_source.fetch_url("https://example.org/q", session=session)

    def test_non_json(self):
        session = MagicMock()
        session.get.return_value = _response(json_error=True)
        with pytest.raises(BadCatalogueFormat):
            catalogue_source.fetch_url("https://example.org/q", session=session)


class TestReadFeatureCollection:
    def test_prefers_url(self, monkeypatch):
        monkeypatch.setenv("MINDROUTE_CATALOGUE_URL", "https://example.org/q")
        with patch("catalogue_source.fetch_url", return_value={"features": []}) as fetch:
            assert catalogue_source.read_feature_collection() == {"features": []}
        fetch.assert_called_once_with("https://example.org/q")

    def test_falls_back_to_path(self, monkeypatch, tmp_path):
        path = tmp_path / "programs.json"
        path.write_text(json.dumps([{"attributes": {}}]))
        monkeypatch.delenv("MINDROUTE_CATALOGUE_URL", raising=False)
        monkeypatch.setenv("MINDROUTE_CATALOGUE_PATH", str(path))
        assert catalogue_source.read_feature_collection() == [{"attributes": {}}]

    def test_default_path(self, monkeypatch):
        monkeypatch.delenv("MINDROUTE_CATALOGUE_PATH", raising=False)
        assert catalogue_source.catalogue_path() == catalogue_source.DEFAULT_CATALOGUE_PATH
