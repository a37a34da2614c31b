"""
Tests for the Supabase REST client (requests are mocked)
"""

import sys
from pathlib import Path
from unittest import mock

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rehab_roster.supabase_client import SupabaseClient


def response(payload, status=200):
    resp = mock.Mock()
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


@pytest.fixture
def client():
    return SupabaseClient("https://demo.supabase.co/", "secret-key", timeout=5)


class TestSupabaseClient:

    def test_session_headers(self, client):
        assert client.base_url == "https://demo.supabase.co"
        assert client.session.headers["apikey"] == "secret-key"
        assert client.session.headers["Authorization"] == "Bearer secret-key"

    def test_get_staff_request(self, client):
        with mock.patch.object(client.session, "get", return_value=response([{"id": "r1"}])) as get:
            rows = client.get_staff()
        assert rows == [{"id": "r1"}]
        get.assert_called_once_with(
            "https://demo.supabase.co/rest/v1/staff",
            params={"select": "*", "order": "rank.asc,name.asc"},
            timeout=5,
        )

    def test_http_error_is_raised(self, client):
        with mock.patch.object(client.session, "get", return_value=response(None, status=500)):
            with pytest.raises(requests.exceptions.HTTPError):
                client.get_special_programs()

    def test_fetch_planning_inputs_splits_staff(self, client):
        payloads = {
            "staff": [
                {"id": "a", "status": "active"},
                {"id": "b", "status": "buffer"},
                {"id": "c", "status": "inactive"},
                {"id": "d"},
            ],
            "special_programs": [{"id": "p1"}],
            "spt_allocations": [{"staff_id": "spt-1"}],
        }

        def fake_get(url, params=None, timeout=None):
            return response(payloads[url.rsplit("/", 1)[-1]])

        with mock.patch.object(client.session, "get", side_effect=fake_get):
            inputs = client.fetch_planning_inputs()

        assert [s["id"] for s in inputs["staff"]] == ["a", "d"]
        assert [s["id"] for s in inputs["buffer_staff"]] == ["b"]
        assert inputs["special_programs"] == [{"id": "p1"}]
        assert inputs["spt_allocations"] == [{"staff_id": "spt-1"}]

    def test_connection(self, client):
        with mock.patch.object(client.session, "get", return_value=response([{"id": "a"}])) as get:
            assert client.test_connection() is True
        assert get.call_args.kwargs["params"] == {"select": "id", "limit": "1"}

        with mock.patch.object(client.session, "get",
                               side_effect=requests.exceptions.ConnectionError("down")):
            assert client.test_connection() is False
