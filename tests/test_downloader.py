"""
Tests for the tour downloader (HTTP layer replaced by a fake opener).
"""

import email
import io
import json
import urllib.error
import urllib.request
import urllib.response
from unittest.mock import MagicMock

import pytest

from tour_export.downloader import (
    SIGNIN_HOST,
    SIGNIN_URL,
    DownloadConfig,
    KomootClient,
    Tour,
    download_tours,
    read_credentials,
    sanitize_filename,
    tour_dir_name,
)
from tour_export.errors import CredentialsError, DownloadError


class FakeOpener:
    """Answers requests by URL prefix; records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def open(self, req, timeout=None):
        self.requests.append(req)
        url = req.full_url
        for prefix, answer in self.routes.items():
            if url.startswith(prefix):
                if isinstance(answer, Exception):
                    raise answer
                if isinstance(answer, (dict, list)):
                    answer = json.dumps(answer).encode("utf-8")
                return io.BytesIO(answer)
        raise urllib.error.HTTPError(url, 404, "Not Found", None, None)


class ScriptedHttps(urllib.request.HTTPSHandler):
    """Stands in for the network: answers each URL with a fixed status and headers."""

    def __init__(self, answers):
        super().__init__()
        self.answers = answers
        self.sent = []

    def https_open(self, req):
        self.sent.append((req.full_url, req.get_header("Cookie")))
        status, headers = self.answers[req.full_url]
        info = email.message_from_string(headers + "\n")
        resp = urllib.response.addinfourl(io.BytesIO(b""), info, req.full_url, status)
        resp.msg = "Found" if status == 302 else "OK"
        return resp


TOURS_URL = "https://www.komoot.com/api/v007/users/u1/tours/"
LISTING = {
    "_embedded": {
        "tours": [
            {"id": 111.0, "name": "Alps: Day 1!", "vector_map_image": {"src": "https://img/map111.jpg"}},
            {"id": 222, "name": "Lake loop"},
        ]
    }
}


@pytest.fixture
def creds_file(tmp_path):
    p = tmp_path / "creds.yaml"
    p.write_text('user_id: "u1"\ncookie: "kmt_session=abc; other=1"\n', encoding="utf-8")
    return p


@pytest.fixture
def opener():
    return FakeOpener(
        {
            SIGNIN_URL: b"",
            TOURS_URL: LISTING,
            "https://www.komoot.com/api/v007/tours/111/cover_images/": {
                "_embedded": {"items": [{"src": "https://img/c1.jpg?w=100"}, {"src": "https://img/c2.jpg"}]}
            },
            "https://www.komoot.com/api/v007/tours/222/cover_images/": urllib.error.URLError("timeout"),
            "https://www.komoot.com/tour/": b"<gpx/>",
            "https://img/": b"\xff\xd8jpeg",
        }
    )


class TestCredentials:
    """Tests for read_credentials."""

    def test_valid(self, creds_file):
        creds = read_credentials(creds_file)

        assert creds.user_id == "u1"
        assert creds.cookie == "kmt_session=abc; other=1"

    def test_missing_key(self, tmp_path):
        p = tmp_path / "creds.yaml"
        p.write_text("user_id: u1\n")

        with pytest.raises(CredentialsError, match="cookie"):
            read_credentials(p)

    def test_not_a_mapping(self, tmp_path):
        p = tmp_path / "creds.yaml"
        p.write_text("- a\n- b\n")

        with pytest.raises(CredentialsError):
            read_credentials(p)

    def test_missing_file(self, tmp_path):
        with pytest.raises(CredentialsError):
            read_credentials(tmp_path / "nope.yaml")


class TestNaming:
    """Tour directory names."""

    def test_sanitize(self):
        assert sanitize_filename("  Alps: Day 1!  ") == "Alps_ Day 1_"

    def test_dir_name(self):
        tour = Tour(tour_id="111", title="Alps/Day 1", gpx_url="")

        assert tour_dir_name(tour, include_title=False) == "111"
        assert tour_dir_name(tour, include_title=True) == "111 Alps_Day 1"

    def test_dir_name_without_title(self):
        assert tour_dir_name(Tour(tour_id="5", title="", gpx_url=""), include_title=True) == "5"


class TestKomootClient:
    """Tests for KomootClient."""

    def test_login_seeds_cookie_jar(self, opener, creds_file):
        """The stored cookie goes into the jar for the account host, not into a raw header."""
        client = KomootClient(opener=opener)

        client.login(read_credentials(creds_file))

        assert client.user_id == "u1"
        assert {(c.name, c.value, c.domain) for c in client.cookies} == {
            ("kmt_session", "abc", SIGNIN_HOST),
            ("other", "1", SIGNIN_HOST),
        }
        assert opener.requests[0].get_header("Cookie") is None

    def test_login_keeps_redirect_cookies(self, creds_file):
        """Cookies set by a sign-in redirect are sent on the redirected request."""
        landing = f"https://{SIGNIN_HOST}/landing"
        https = ScriptedHttps(
            {
                SIGNIN_URL: (302, f"Set-Cookie: transfer_token=xyz; Path=/\nLocation: {landing}\n"),
                landing: (200, ""),
            }
        )
        client = KomootClient()
        client._opener = urllib.request.build_opener(urllib.request.HTTPCookieProcessor(client.cookies), https)

        client.login(read_credentials(creds_file))

        (first_url, first_cookie), (second_url, second_cookie) = https.sent
        assert (first_url, second_url) == (SIGNIN_URL, landing)
        assert "kmt_session=abc" in first_cookie
        assert "transfer_token" not in first_cookie
        assert "kmt_session=abc" in second_cookie
        assert "transfer_token=xyz" in second_cookie
        assert "transfer_token" in {c.name for c in client.cookies}

    def test_login_empty_cookie(self, opener, tmp_path):
        p = tmp_path / "creds.yaml"
        p.write_text('user_id: "u1"\ncookie: ";;"\n', encoding="utf-8")

        with pytest.raises(CredentialsError, match="no name=value"):
            KomootClient(opener=opener).login(read_credentials(p))
        assert opener.requests == []
    def test_fetch_tours(self, opener):
        client = KomootClient(opener=opener)
        client.user_id = "u1"

        tours = client.fetch_tours("tour_recorded")

        assert [t.tour_id for t in tours] == ["111", "222"]
        assert tours[0].gpx_url == "https://www.komoot.com/tour/111/download"
        assert tours[0].vector_map_image == "https://img/map111.jpg"
        assert tours[0].cover_images == ("https://img/c1.jpg", "https://img/c2.jpg")
        # cover image failure is not fatal
        assert tours[1].cover_images == ()
        assert "type=tour_recorded" in opener.requests[0].full_url

    def test_malformed_listing(self):
        client = KomootClient(opener=FakeOpener({TOURS_URL: {"unexpected": 1}}))
        client.user_id = "u1"

        with pytest.raises(DownloadError):
            client.fetch_tours("tour_recorded")

    def test_http_error(self):
        client = KomootClient(opener=FakeOpener({}))

        with pytest.raises(DownloadError, match="404"):
            client.get_json("https://www.komoot.com/api/v007/whatever")

    def test_download_tour_files(self, opener, tmp_path):
        client = KomootClient(opener=opener)
        tour = Tour(
            tour_id="111",
            title="",
            gpx_url="https://www.komoot.com/tour/111/download",
            vector_map_image="https://img/map111.jpg",
            cover_images=("https://img/c1.jpg", "https://img/c2.jpg"),
        )

        client.download_tour(tour, tmp_path)

        assert sorted(p.name for p in tmp_path.iterdir()) == ["0.jpg", "1.jpg", "map.jpg", "tour.gpx"]
        assert (tmp_path / "tour.gpx").read_bytes() == b"<gpx/>"

    def test_download_errors_collected(self, tmp_path):
        """All files are attempted; failures are reported together."""
        client = KomootClient(opener=FakeOpener({"https://img/ok": b"x"}))
        tour = Tour(
            tour_id="9",
            title="",
            gpx_url="https://www.komoot.com/tour/9/download",
            cover_images=("https://img/ok.jpg", "https://img/missing.jpg"),
        )

        with pytest.raises(DownloadError) as info:
            client.download_tour(tour, tmp_path)

        assert "tour.gpx" in str(info.value)
        assert "1.jpg" in str(info.value)
        assert (tmp_path / "0.jpg").exists()


class TestDownloadTours:
    """Tests for download_tours."""

    def test_downloads_and_skips_existing(self, opener, creds_file, tmp_path):
        tours_dir = tmp_path / "tours"
        (tours_dir / "222").mkdir(parents=True)
        config = DownloadConfig(tours_dir=tours_dir, creds_path=creds_file, pause_seconds=0)

        n = download_tours(config, client=KomootClient(opener=opener))

        assert n == 1
        assert (tours_dir / "111" / "tour.gpx").exists()
        assert (tours_dir / "111" / "map.jpg").exists()
        assert list((tours_dir / "222").iterdir()) == []

    def test_title_in_dir(self, opener, creds_file, tmp_path):
        config = DownloadConfig(
            tours_dir=tmp_path, creds_path=creds_file, include_title_in_dir=True, pause_seconds=0
        )

        download_tours(config, client=KomootClient(opener=opener))

        assert (tmp_path / "111 Alps_ Day 1_" / "tour.gpx").exists()
        assert (tmp_path / "222 Lake loop" / "tour.gpx").exists()

    def test_pause_between_tours(self, opener, creds_file, tmp_path, monkeypatch):
        sleep = MagicMock()
        monkeypatch.setattr("tour_export.downloader.time.sleep", sleep)
        config = DownloadConfig(tours_dir=tmp_path, creds_path=creds_file, pause_seconds=2.0)

        download_tours(config, client=KomootClient(opener=opener))

        assert sleep.call_count == 2
        sleep.assert_called_with(2.0)

    def test_unknown_tour_type(self, creds_file, tmp_path):
        config = DownloadConfig(tours_dir=tmp_path, creds_path=creds_file, tour_type="tour_all")

        with pytest.raises(DownloadError, match="tour_all"):
            download_tours(config, client=KomootClient(opener=FakeOpener({})))
