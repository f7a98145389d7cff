"""
Synology Photos API client.
Resolves albums and tags and lists photo items from a Synology Photos server.

Network work is kept small and bounded for always-on devices:
- Item listings are paginated and capped at a configured maximum
- Per-tag and per-album listings run concurrently and are joined before use
- Every failure is logged and turned into an empty result for that stage
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from .config import SynologyConfig


@dataclass
class PhotoItem:
    """Represents a single photo from the remote library."""
    path: str                        # Display name, used for sorting and shown-tracking
    url: Optional[str]               # Thumbnail download URL (None for local-only items)
    created: int                     # Epoch milliseconds
    modified: int                    # Epoch milliseconds
    source_id: Optional[int] = None  # Numeric id on the Synology server
    space_id: Optional[int] = None   # 0 = personal, 1 = shared, None = no space context
    id: Optional[Union[int, str]] = None  # Raw id, "<space>_<id>" when a space is known

    @property
    def dedupe_key(self) -> Tuple[Any, Any]:
        """Key identifying the same remote photo across listings."""
        if self.source_id is not None:
            return (self.source_id, self.space_id)
        return (self.id, self.space_id)


def _now_ms() -> int:
    return int(time.time() * 1000)


def remove_duplicate_photos(photos: List[PhotoItem]) -> List[PhotoItem]:
    """Drop repeated photos, keeping the first occurrence in order."""
    seen = set()
    unique = []
    for photo in photos:
        key = photo.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(photo)
    return unique


class SynologyPhotosClient:
    """
    Talks to the Synology Photos web API.

    Supports two access modes:
    - Account login: a session id (sid) is obtained once and reused
    - Shared album: a share passphrase is sent instead and login is skipped

    Selection priority for fetch_photos(): tags, then shared album,
    then albums (all photos when no album matched a name filter).
    """

    AUTH_API_PATH = "/webapi/auth.cgi"
    PHOTOS_API_PATH = "/webapi/entry.cgi"

    PERSONAL_SPACE = 0
    SHARED_SPACE = 1

    # (space id, name, tag listing API)
    SPACES = [
        (PERSONAL_SPACE, "personal", "SYNO.Foto.Browse.GeneralTag"),
        (SHARED_SPACE, "shared", "SYNO.FotoTeam.Browse.GeneralTag"),
    ]

    ALBUM_PAGE_SIZE = 100
    TAG_LIST_LIMIT = 500
    DOWNLOAD_TIMEOUT = 30
    LOGOUT_TIMEOUT = 5

    PHOTO_TYPES = ("photo", "live_photo")

    ITEM_ADDITIONAL = (
        '["thumbnail","resolution","orientation","video_convert","video_meta","provider_user_id"]'
    )

    def __init__(
        self,
        config: SynologyConfig,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
        max_workers: int = 4
    ):
        """
        Initialize the client.

        Args:
            config: Synology connection and selection settings.
            session: HTTP session to use. A new one is created if None.
            logger: Logger to report through.
            max_workers: Upper bound on concurrent listing requests.
        """
        self.base_url = config.url.rstrip("/")
        self.account = config.account
        self.password = config.password
        self.album_name = config.album_name
        self.share_token = config.share_token
        self.tag_names = list(config.tag_names or [])
        self.max_photos = config.max_photos or 1000
        self.page_size = max(1, config.page_size or 100)
        self.request_timeout = config.request_timeout_seconds
        self.list_timeout = config.list_timeout_seconds
        self.use_shared_album = bool(self.share_token)
        self.max_workers = max(1, max_workers)

        self._session = session or requests.Session()
        self._log = logger or logging.getLogger(__name__)

        self.sid: Optional[str] = None
        self.folder_ids: List[int] = []
        # space id -> matching tag ids (None key = shared album passphrase mode)
        self.tag_ids: Dict[Optional[int], List[int]] = {}

    def _api_get(self, path: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """Perform a GET against the API and return the decoded JSON body."""
        response = self._session.get(f"{self.base_url}{path}", params=params, timeout=timeout)
        response.raise_for_status()
        return response.json()

    def _auth_params(self) -> Dict[str, Any]:
        """Credential parameter for item and thumbnail calls."""
        if self.use_shared_album:
            return {"passphrase": self.share_token}
        return {"_sid": self.sid}

    def authenticate(self) -> bool:
        """
        Log in and store the session id.

        Returns:
            True on success, or immediately when a share token is configured.
        """
        if self.use_shared_album:
            self._log.info("Using shared album token, skipping authentication")
            return True

        try:
            data = self._api_get(
                self.AUTH_API_PATH,
                {
                    "api": "SYNO.API.Auth",
                    "version": "3",
                    "method": "login",
                    "account": self.account,
                    "passwd": self.password,
                    "session": "FileStation",
                    "format": "sid",
                },
                self.request_timeout,
            )
        except (requests.RequestException, ValueError) as e:
            self._log.error(f"Synology authentication error: {e}")
            return False

        if data.get("success"):
            self.sid = data.get("data", {}).get("sid")
            self._log.info("Successfully authenticated with Synology")
            return True

        self._log.error(f"Synology authentication failed: {data.get('error', data)}")
        return False

    def logout(self) -> None:
        """End the session. No-op in shared album mode or when not logged in."""
        if self.use_shared_album or not self.sid:
            return

        try:
            self._api_get(
                self.AUTH_API_PATH,
                {
                    "api": "SYNO.API.Auth",
                    "version": "3",
                    "method": "logout",
                    "session": "FileStation",
                    "_sid": self.sid,
                },
                self.LOGOUT_TIMEOUT,
            )
            self._log.info("Logged out from Synology")
        except (requests.RequestException, ValueError) as e:
            self._log.error(f"Error logging out: {e}")
        finally:
            self.sid = None

    def _list_albums(self) -> Optional[List[Dict[str, Any]]]:
        """List every album page by page. Returns None on API failure."""
        albums: List[Dict[str, Any]] = []
        offset = 0
        while True:
            data = self._api_get(
                self.PHOTOS_API_PATH,
                {
                    "api": "SYNO.Foto.Browse.Album",
                    "version": "1",
                    "method": "list",
                    "offset": offset,
                    "limit": self.ALBUM_PAGE_SIZE,
                    "_sid": self.sid,
                },
                self.request_timeout,
            )
            if not data.get("success"):
                self._log.error(f"Failed to list albums: {data.get('error', data)}")
                return None

            page = data.get("data", {}).get("list", [])
            albums.extend(page)
            if len(page) < self.ALBUM_PAGE_SIZE:
                return albums
            offset += len(page)

    def find_album(self) -> bool:
        """
        Resolve the configured album name to album ids.

        With no album name, every album found is selected.

        Returns:
            True if at least one album id was resolved (or in shared album mode).
        """
        if self.use_shared_album:
            self._log.info("Using shared album, skipping album search")
            return True

        try:
            albums = self._list_albums()
        except (requests.RequestException, ValueError) as e:
            self._log.error(f"Error listing albums: {e}")
            return False

        if albums is None:
            return False

        if not self.album_name:
            self._log.info(f"Found {len(albums)} albums, will fetch from all")
            self.folder_ids = [album["id"] for album in albums]
            return True

        wanted = self.album_name.lower()
        for album in albums:
            if str(album.get("name", "")).lower() == wanted:
                self._log.info(f"Found album: {album['name']}")
                self.folder_ids = [album["id"]]
                return True

        available = ", ".join(str(a.get("name", "")) for a in albums)
        self._log.warning(f'Album "{self.album_name}" not found. Available albums: {available}')
        return False

    def _filter_matching_tags(self, all_tags: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Keep tags whose name matches a configured tag name (case-insensitive)."""
        wanted = {name.lower() for name in self.tag_names}
        return [tag for tag in all_tags if str(tag.get("name", "")).lower() in wanted]

    def _find_tags_in_shared_album(self) -> bool:
        self._log.info("Fetching tags from shared album")
        data = self._api_get(
            self.PHOTOS_API_PATH,
            {
                "api": "SYNO.Foto.Browse.GeneralTag",
                "version": "1",
                "method": "list",
                "offset": 0,
                "limit": self.TAG_LIST_LIMIT,
                "passphrase": self.share_token,
            },
            self.request_timeout,
        )
        if not data.get("success"):
            self._log.error(f"Failed to list tags: {data.get('error', data)}")
            return False

        matched = self._filter_matching_tags(data.get("data", {}).get("list", []))
        if not matched:
            self._log.warning(f"No matching tags found for: {', '.join(self.tag_names)}")
            return False

        self.tag_ids[None] = [tag["id"] for tag in matched]
        names = ", ".join(tag["name"] for tag in matched)
        self._log.info(f"Found {len(matched)} matching tags in shared album: {names}")
        return True

    def _find_tags_in_space(self, space_id: int, space_name: str, api: str) -> bool:
        params: Dict[str, Any] = {
            "api": api,
            "version": "1",
            "method": "list",
            "offset": 0,
            "limit": self.TAG_LIST_LIMIT,
            "_sid": self.sid,
        }
        if space_id == self.PERSONAL_SPACE:
            params["space_id"] = space_id

        data = self._api_get(self.PHOTOS_API_PATH, params, self.request_timeout)
        if not data.get("success"):
            self._log.warning(f"Failed to list tags in {space_name} space")
            return False

        matched = self._filter_matching_tags(data.get("data", {}).get("list", []))
        if not matched:
            return False

        self.tag_ids[space_id] = [tag["id"] for tag in matched]
        described = ", ".join(f"{tag['name']}({tag['id']})" for tag in matched)
        self._log.info(f"Found {len(matched)} tag(s) in {space_name} space: {described}")
        return True

    def find_tags(self) -> bool:
        """
        Resolve configured tag names to tag ids in every space.

        A failure in one space does not stop the search in the others.

        Returns:
            True if no tags are configured or at least one space matched.
        """
        if not self.tag_names:
            return True

        self.tag_ids = {}

        if self.use_shared_album:
            try:
                return self._find_tags_in_shared_album()
            except (requests.RequestException, ValueError) as e:
                self._log.error(f"Error listing tags: {e}")
                return False

        found_any = False
        for space_id, space_name, api in self.SPACES:
            try:
                if self._find_tags_in_space(space_id, space_name, api):
                    found_any = True
            except (requests.RequestException, ValueError) as e:
                self._log.warning(f"Error fetching tags from {space_name} space: {e}")

        if not found_any:
            self._log.warning(f"No matching tags found for: {', '.join(self.tag_names)}")
            return False

        return True

    def _list_items(
        self,
        params: Dict[str, Any],
        space_id: Optional[int],
        description: str
    ) -> List[PhotoItem]:
        """
        Page through an item listing until a short page or max_photos.

        Returns:
            Processed photo items, or [] if any page fails.
        """
        raw_items: List[Dict[str, Any]] = []
        offset = 0

        try:
            while len(raw_items) < self.max_photos:
                limit = min(self.page_size, self.max_photos - len(raw_items))
                page_params = dict(params)
                page_params.update({
                    "version": "1",
                    "method": "list",
                    "offset": offset,
                    "limit": limit,
                    "additional": self.ITEM_ADDITIONAL,
                })
                data = self._api_get(self.PHOTOS_API_PATH, page_params, self.list_timeout)

                if not data.get("success"):
                    self._log.warning(f"Failed to fetch {description}: {data.get('error', data)}")
                    return []

                page = (data.get("data") or {}).get("list") or []
                raw_items.extend(page)
                if len(page) < limit:
                    break
                offset += len(page)

            self._log.debug(f"API returned {len(raw_items)} items for {description}")
            return self._process_photo_list(raw_items, space_id)
        except Exception as e:
            # One bad listing only empties its own tag or album
            self._log.error(f"Error fetching {description}: {e}")
            return []

    def _fetch_all_photos(self) -> List[PhotoItem]:
        params = {"api": "SYNO.Foto.Browse.Item"}
        params.update(self._auth_params())
        return self._list_items(params, None, "all photos")

    def _fetch_shared_album_photos(self) -> List[PhotoItem]:
        params = {"api": "SYNO.Foto.Browse.Item", "passphrase": self.share_token}
        return self._list_items(params, None, "shared album photos")

    def _fetch_album_photos(self, album_id: int) -> List[PhotoItem]:
        params = {"api": "SYNO.Foto.Browse.Item", "album_id": album_id, "_sid": self.sid}
        return self._list_items(params, None, f"album {album_id} photos")

    def _fetch_photos_by_tag_in_space(self, tag_id: int, space_id: Optional[int]) -> List[PhotoItem]:
        api = "SYNO.FotoTeam.Browse.Item" if space_id == self.SHARED_SPACE else "SYNO.Foto.Browse.Item"
        params: Dict[str, Any] = {"api": api, "general_tag_id": tag_id}
        if self.use_shared_album:
            params["passphrase"] = self.share_token
        else:
            params["_sid"] = self.sid
            if space_id == self.PERSONAL_SPACE:
                params["space_id"] = space_id

        self._log.info(f"Fetching photos for tag {tag_id} in space {space_id} with API: {api}")
        return self._list_items(params, space_id, f"tag {tag_id} in space {space_id}")

    def _run_concurrently(self, func, tasks: List[tuple]) -> List[List[PhotoItem]]:
        """Run func(*task) for every task on a thread pool, keeping task order."""
        if not tasks:
            return []
        workers = min(self.max_workers, len(tasks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="synology-fetch") as pool:
            return list(pool.map(lambda task: func(*task), tasks))

    def _fetch_photos_by_tags(self) -> List[PhotoItem]:
        tasks = [
            (tag_id, space_id)
            for space_id, tag_ids in self.tag_ids.items()
            for tag_id in tag_ids
        ]
        self._log.info(f"Fetching photos for {len(tasks)} tag/space pair(s)")

        photo_lists = self._run_concurrently(self._fetch_photos_by_tag_in_space, tasks)
        self._log.info(
            f"Received {len(photo_lists)} photo lists: "
            f"{', '.join(str(len(photos)) for photos in photo_lists)} photos each"
        )

        photos = [photo for photo_list in photo_lists for photo in photo_list]
        self._log.info(f"Total photos before deduplication: {len(photos)}")
        unique = remove_duplicate_photos(photos)
        self._log.info(f"Total photos after deduplication: {len(unique)}")
        return unique

    def _fetch_photos_from_albums(self) -> List[PhotoItem]:
        if not self.folder_ids:
            return self._fetch_all_photos()

        photo_lists = self._run_concurrently(
            self._fetch_album_photos,
            [(folder_id,) for folder_id in self.folder_ids]
        )
        return [photo for photo_list in photo_lists for photo in photo_list]

    def fetch_photos(self) -> List[PhotoItem]:
        """
        Fetch photos using the resolved selection.

        Returns:
            List of PhotoItem objects; empty on any failure.
        """
        try:
            if self.tag_ids:
                photos = self._fetch_photos_by_tags()
            elif self.use_shared_album:
                photos = self._fetch_shared_album_photos()
            else:
                photos = self._fetch_photos_from_albums()

            self._log.info(f"Fetched {len(photos)} photos from Synology Photos")
            return photos
        except Exception as e:
            self._log.error(f"Error fetching photos: {e}")
            return []

    def _process_photo_list(
        self,
        raw_items: List[Dict[str, Any]],
        space_id: Optional[int] = None
    ) -> List[PhotoItem]:
        """Convert raw API records into PhotoItems, skipping videos."""
        photos = []
        for raw in raw_items:
            if raw.get("type") not in self.PHOTO_TYPES:
                continue

            photo_id = raw.get("id")
            cache_key = (raw.get("additional") or {}).get("thumbnail", {}).get("cache_key")
            now = _now_ms()

            photos.append(PhotoItem(
                path=raw.get("filename") or f"photo_{photo_id}",
                url=self.get_photo_url(photo_id, cache_key, space_id),
                created=raw["time"] * 1000 if raw.get("time") else now,
                modified=raw["indexed_time"] * 1000 if raw.get("indexed_time") else now,
                source_id=photo_id,
                space_id=space_id,
                id=photo_id if space_id is None else f"{space_id}_{photo_id}",
            ))
        return photos

    def get_photo_url(
        self,
        photo_id: int,
        cache_key: Optional[str],
        space_id: Optional[int] = None
    ) -> str:
        """
        Build the thumbnail download URL for a photo.

        Args:
            photo_id: Synology item id.
            cache_key: Thumbnail cache key from the listing.
            space_id: Space the item was listed from.

        Returns:
            Absolute URL for the "xl" thumbnail.
        """
        base = f"{self.base_url}{self.PHOTOS_API_PATH}"
        common = f'version=2&method=get&id={photo_id}&cache_key="{cache_key}"&type="unit"&size="xl"'

        if self.use_shared_album:
            return f"{base}?api=SYNO.Foto.Thumbnail&{common}&passphrase={self.share_token}"

        api = "SYNO.FotoTeam.Thumbnail" if space_id == self.SHARED_SPACE else "SYNO.Foto.Thumbnail"
        url = f"{base}?api={api}&{common}&_sid={self.sid}"
        if space_id == self.PERSONAL_SPACE:
            url += f"&space_id={space_id}"
        return url

    def download_photo(self, photo_url: str) -> Optional[bytes]:
        """
        Download raw photo bytes.

        Returns:
            Bytes, or None on any failure.
        """
        try:
            response = self._session.get(photo_url, timeout=self.DOWNLOAD_TIMEOUT)
            response.raise_for_status()
            return response.content
        except Exception as e:
            self._log.error(f"Error downloading photo: {e}")
            return None
