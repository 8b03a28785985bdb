"""Unit tests for the monitor router."""

import io

import pytest
from fastapi import status
from PIL import Image

from .conftest import make_definition, make_snapshot


def _assert_no_cache(response):
    assert response.headers["cache-control"] == "no-cache, no-store"
    assert response.headers["pragma"] == "no-cache"


@pytest.mark.unit
class TestChartAction:
    """action=chart"""

    def test_returns_png(self, client):
        response = client.get(
            "/monitor",
            params=[("action", "chart"), ("c", "eeeeee"), ("c", "0000ff"), ("l", "100"), ("l", "37"), ("d", "10")],
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "image/png"
        _assert_no_cache(response)
        image = Image.open(io.BytesIO(response.content)).convert("RGB")
        assert image.size == (300, 5)
        assert image.getpixel((50, 1)) == (0, 0, 255)

    def test_huge_length_is_clipped(self, client):
        response = client.get(
            "/monitor",
            params=[("action", "chart"), ("c", "eeeeee"), ("c", "0000ff"), ("l", "1"), ("l", str(10**20)), ("d", "10")],
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "image/png"
        image = Image.open(io.BytesIO(response.content)).convert("RGB")
        assert image.getpixel((299, 1)) == (0, 0, 255)

    def test_divisions_beyond_width(self, client):
        response = client.get(
            "/monitor",
            params=[("action", "chart"), ("c", "eeeeee"), ("l", "100"), ("d", "3000000")],
        )

        assert response.status_code == status.HTTP_200_OK
        image = Image.open(io.BytesIO(response.content)).convert("RGB")
        assert image.getpixel((151, 4)) == (0x66, 0x66, 0x66)

    @pytest.mark.parametrize(
        "params, reason",
        [
            ([("action", "chart"), ("c", "eeeeee"), ("l", "0"), ("d", "10")], "zero_denominator"),
            ([("action", "chart"), ("c", "eeeeee"), ("l", "100"), ("d", "0")], "zero_divisions"),
            ([("action", "chart"), ("c", "eeeeee"), ("l", "x"), ("d", "10")], "bad_length"),
            ([("action", "chart"), ("d", "10")], "missing_segments"),
        ],
    )
    def test_invalid_spec_is_client_error(self, client, params, reason):
        response = client.get("/monitor", params=params)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        _assert_no_cache(response)
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_chart_spec"
        assert detail["reason"] == reason

    def test_post_is_treated_like_get(self, client):
        response = client.post(
            "/monitor?action=chart",
            data={"c": ["eeeeee", "ff0000"], "l": ["10", "5"], "d": "2"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "image/png"


@pytest.mark.unit
class TestHtmlActions:
    """action=list and action=stats"""

    def test_defaults_to_list_with_several_pools(self, client):
        response = client.get("/monitor")

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/html")
        _assert_no_cache(response)
        assert "<b>Choose</b> a pool" in response.text
        assert 'href="/monitor?alias=db1"' in response.text
        assert 'href="/monitor?alias=db2"' in response.text

    def test_list_highlights_selected_pool(self, client):
        response = client.get("/monitor", params={"action": "list", "alias": "db2"})

        assert response.text.count('class="selected"') == 1
        assert '<tr class="selected">\n      <td><a href="/monitor?alias=db2">' in response.text

    def test_stats_page(self, client):
        response = client.get("/monitor", params={"alias": "db1"})
        html = response.text

        assert response.status_code == status.HTTP_200_OK
        assert "<b>Definition</b> for db1" in html
        assert "<b>Snapshot</b> at 14:30:15" in html
        assert "<b>Statistics</b> from 14:29:00 to 14:30:00" in html
        assert "2 (min), 10 (max)" in html
        assert '<span style="color: #ff0000">active</span>' in html
        assert 'src="/monitor?action=chart&amp;c=eeeeee&amp;c=ff0000&amp;c=00ff00' in html
        assert 'src="/monitor?action=chart&amp;c=eeeeee&amp;c=0000ff&amp;l=100&amp;l=25&amp;d=10"' in html
        # Prototyping is disabled in the fixture definition
        assert '<td class="no-data">off</td>' in html

    def test_unknown_alias_falls_back_to_list(self, client):
        response = client.get("/monitor", params={"alias": "missing"})

        assert response.status_code == status.HTTP_200_OK
        assert "<b>Choose</b> a pool" in response.text
        assert 'class="selected"' not in response.text

    def test_single_pool_goes_straight_to_stats(self, client, stub_facade):
        del stub_facade.definitions["db2"]

        response = client.get("/monitor")

        assert "<b>Definition</b> for db1" in response.text

    def test_values_are_escaped(self, client, stub_facade):
        stub_facade.definitions["db1"] = make_definition("db1", house_keeping_test_sql="SELECT '<b>'")
        stub_facade.snapshots["db1"] = make_snapshot()

        response = client.get("/monitor", params={"alias": "db1"})

        assert "SELECT &#39;&lt;b&gt;&#39;" in response.text

    def test_unrecognized_action_is_client_error(self, client):
        response = client.get("/monitor", params={"action": "restart", "alias": "db1"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        _assert_no_cache(response)
        assert response.json()["detail"]["error"] == "unrecognized_action"

    def test_facade_failure_renders_error_page(self, client, stub_facade):
        stub_facade.fail = True

        response = client.get("/monitor", params={"alias": "db1"})

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        _assert_no_cache(response)
        assert "currently unavailable" in response.text
        assert "<b>Definition</b>" not in response.text
