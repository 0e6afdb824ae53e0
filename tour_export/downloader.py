"""Download recorded or planned tours from komoot.

This module uses only the Python standard library for HTTP, like the rest of the
package. Credentials are a YAML file holding the user id and a browser session
cookie; no password login is performed.

Important:
    - Tours are downloaded one at a time with a pause between them.
    - A tour whose directory already exists is treated as saved and skipped.
"""

from __future__ import annotations

import http.cookiejar
import http.cookies
import json
import logging
import re
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from tour_export.errors import CredentialsError, DownloadError

logger = logging.getLogger(__name__)

SIGNIN_HOST: Final[str] = "account.komoot.com"
SIGNIN_URL: Final[str] = f"https://{SIGNIN_HOST}/actions/transfer?type=signin"
API_BASE: Final[str] = "https://www.komoot.com/api/v007"
TOUR_DOWNLOAD_URL: Final[str] = "https://www.komoot.com/tour/{tour_id}/download"
TOUR_TYPES: Final[tuple[str, ...]] = ("tour_recorded", "tour_planned")
PAGE_LIMIT: Final[int] = 10000

_UNSAFE_CHARS: Final[re.Pattern[str]] = re.compile(r"[^a-zA-Z0-9\-_\s]")


@dataclass(frozen=True, slots=True)
class DownloadConfig:
    """Parameters of one download run."""

    tours_dir: Path = Path("tours")
    creds_path: Path = Path("creds.yaml")
    tour_type: str = "tour_recorded"
    include_title_in_dir: bool = False
    pause_seconds: float = 2.0
    timeout_seconds: float = 60.0


@dataclass(frozen=True, slots=True)
class Credentials:
    user_id: str
    cookie: str


@dataclass(frozen=True, slots=True)
class Tour:
    """One tour as listed by the API."""

    tour_id: str
    title: str
    gpx_url: str
    vector_map_image: str = ""
    cover_images: tuple[str, ...] = ()


def read_credentials(path: str | Path) -> Credentials:
    """Load credentials from a YAML file with keys user_id and cookie.

    Raises:
        CredentialsError: If the file is missing, malformed or incomplete.
    """

    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CredentialsError(f"cannot read credentials file {p}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise CredentialsError(f"malformed credentials file {p}: {exc}") from exc

    if not isinstance(data, dict):
        raise CredentialsError(f"credentials file {p} must be a mapping with user_id and cookie")
    missing = [k for k in ("user_id", "cookie") if not str(data.get(k) or "").strip()]
    if missing:
        raise CredentialsError(f"credentials file {p} is missing: {', '.join(missing)}")
    return Credentials(user_id=str(data["user_id"]).strip(), cookie=str(data["cookie"]).strip())


def sanitize_filename(name: str) -> str:
    """Replace anything but letters, digits, '-', '_' and whitespace with '_'."""

    return _UNSAFE_CHARS.sub("_", name).strip()


def tour_dir_name(tour: Tour, include_title: bool) -> str:
    if include_title and tour.title:
        return f"{tour.tour_id} {sanitize_filename(tour.title)}"
    return tour.tour_id


def _strip_query(url: str) -> str:
    return url.split("?", 1)[0]


class KomootClient:
    """Cookie-session client for the komoot web API."""

    def __init__(self, timeout_seconds: float = 60.0, opener: urllib.request.OpenerDirector | None = None) -> None:
        self._timeout = timeout_seconds
        self.cookies = http.cookiejar.CookieJar()
        self._opener = opener or urllib.request.build_opener(urllib.request.HTTPCookieProcessor(self.cookies))
        self.user_id = ""

    def _open(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        req = urllib.request.Request(url, headers=headers or {}, method="GET")
        try:
            with self._opener.open(req, timeout=self._timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            raise DownloadError(f"GET {url} returned HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise DownloadError(f"GET {url} failed: {exc}") from exc

    def get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        body = self._open(url, headers={"Accept": "application/json"})
        try:
            data = json.loads(body.decode("utf-8", errors="replace"))
        except json.JSONDecodeError as exc:
            raise DownloadError(f"GET {url} did not return JSON") from exc
        if not isinstance(data, dict):
            raise DownloadError(f"GET {url} returned unexpected JSON")
        return data

    def _seed_cookies(self, raw: str, domain: str) -> int:
        """Put the cookies of a "name=value; name2=value2" string into the jar for one host."""

        parsed = http.cookies.SimpleCookie()
        parsed.load(raw)
        for name, morsel in parsed.items():
            self.cookies.set_cookie(
                http.cookiejar.Cookie(
                    version=0,
                    name=name,
                    value=morsel.value,
                    port=None,
                    port_specified=False,
                    domain=domain,
                    domain_specified=False,
                    domain_initial_dot=False,
                    path="/",
                    path_specified=True,
                    secure=False,
                    expires=None,
                    discard=True,
                    comment=None,
                    comment_url=None,
                    rest={},
                )
            )
        return len(parsed)

    def login(self, creds: Credentials) -> None:
        """Exchange the stored session cookie for API cookies.

        The stored cookie is seeded into self.cookies for the account host, so
        cookies set anywhere along the sign-in redirect chain are kept and sent on.

        Raises:
            CredentialsError: If the stored cookie string holds no cookies.
            DownloadError: If the request fails.
        """

        if not self._seed_cookies(creds.cookie, SIGNIN_HOST):
            raise CredentialsError("cookie in credentials file contains no name=value pairs")
        self.user_id = creds.user_id
        self._open(SIGNIN_URL)
        logger.debug("Signed in as user %s (%s cookie(s))", creds.user_id, len(self.cookies))

    def fetch_cover_images(self, tour_id: str) -> tuple[str, ...]:
        """List cover image URLs of a tour. Failures are logged and yield no images."""

        try:
            data = self.get_json(f"{API_BASE}/tours/{tour_id}/cover_images/", {"page": 0, "limit": PAGE_LIMIT})
        except DownloadError as exc:
            logger.warning("Cover images of tour %s unavailable: %s", tour_id, exc)
            return ()
        items = (data.get("_embedded") or {}).get("items") or []
        return tuple(_strip_query(str(it["src"])) for it in items if isinstance(it, dict) and it.get("src"))

    def fetch_tours(self, tour_type: str) -> list[Tour]:
        """List all tours of the signed-in user, newest first.

        Raises:
            DownloadError: If the listing request fails or the payload is malformed.
        """

        data = self.get_json(
            f"{API_BASE}/users/{self.user_id}/tours/",
            {
                "type": tour_type,
                "sort_field": "date",
                "sort_direction": "desc",
                "status": "private",
                "page": 0,
                "limit": PAGE_LIMIT,
            },
        )
        try:
            items = data["_embedded"]["tours"]
        except (KeyError, TypeError) as exc:
            raise DownloadError("tour listing has no _embedded.tours") from exc

        tours: list[Tour] = []
        for item in items:
            try:
                tour_id = f"{float(item['id']):.0f}"
                title = str(item.get("name") or "")
            except (KeyError, TypeError, ValueError) as exc:
                raise DownloadError(f"malformed tour entry: {item!r}") from exc
            vector = item.get("vector_map_image")
            tours.append(
                Tour(
                    tour_id=tour_id,
                    title=title,
                    gpx_url=TOUR_DOWNLOAD_URL.format(tour_id=tour_id),
                    vector_map_image=str(vector.get("src") or "") if isinstance(vector, dict) else "",
                    cover_images=self.fetch_cover_images(tour_id),
                )
            )
        return tours

    def download_file(self, url: str, dest: Path) -> None:
        dest.write_bytes(self._open(url))

    def download_tour(self, tour: Tour, dest_dir: str | Path) -> None:
        """Save tour.gpx, map.jpg and numbered cover images into dest_dir.

        Every file is attempted even if an earlier one failed.

        Raises:
            DownloadError: Listing every file that could not be saved.
        """

        d = Path(dest_dir)
        jobs = [(tour.gpx_url, d / "tour.gpx")]
        if tour.vector_map_image:
            jobs.append((tour.vector_map_image, d / "map.jpg"))
        jobs.extend((url, d / f"{i}.jpg") for i, url in enumerate(tour.cover_images))

        errors: list[str] = []
        for url, dest in jobs:
            try:
                self.download_file(url, dest)
            except (DownloadError, OSError) as exc:
                errors.append(f"{dest.name}: {exc}")
        if errors:
            raise DownloadError(f"tour {tour.tour_id}: " + "; ".join(errors))


def download_tours(config: DownloadConfig, client: KomootClient | None = None) -> int:
    """Download every tour not yet present under config.tours_dir.

    Args:
        config: Download parameters.
        client: Optional preconfigured client (tests inject one).

    Returns:
        Number of tours downloaded in this run.

    Raises:
        CredentialsError: If credentials cannot be loaded.
        DownloadError: If signing in, listing, or downloading a tour fails.
        OSError: If a tour directory cannot be created.
    """

    if config.tour_type not in TOUR_TYPES:
        raise DownloadError(f"unknown tour type {config.tour_type!r}, expected one of {', '.join(TOUR_TYPES)}")

    creds = read_credentials(config.creds_path)
    client = client or KomootClient(timeout_seconds=config.timeout_seconds)
    client.login(creds)

    tours = client.fetch_tours(config.tour_type)
    logger.info("Found %s tours", len(tours))

    downloaded = 0
    for tour in tours:
        tour_dir = Path(config.tours_dir) / tour_dir_name(tour, config.include_title_in_dir)
        if tour_dir.exists():
            logger.info("%s already saved", tour.tour_id)
            continue
        logger.info("Downloading tour %s", tour.tour_id)
        tour_dir.mkdir(parents=True, exist_ok=True)
        client.download_tour(tour, tour_dir)
        downloaded += 1
        if config.pause_seconds > 0:
            time.sleep(config.pause_seconds)
    return downloaded
