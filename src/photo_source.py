# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Photo source for SynFrame.
Owns the Synology client lifecycle and turns every failure into an empty list.
"""

import logging
from typing import Callable, List, Optional

import requests

from .config import SynFrameConfig
from .photo_client import PhotoItem, SynologyPhotosClient

ClientFactory = Callable[..., SynologyPhotosClient]


class PhotoSource:
    """
    Fetches the photo list from Synology Photos.

    A fresh client is built for every fetch so album, tag and credential
    changes are always picked up. The previous client is logged out first.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        client_factory: Optional[ClientFactory] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            logger: Logger to report through.
            client_factory: Builds a client from (config, session=..., logger=...).
            session: Shared HTTP session handed to every client.
        """
        self._log = logger or logging.getLogger(__name__)
        self._client_factory = client_factory or SynologyPhotosClient
        self._session = session
        self._client: Optional[SynologyPhotosClient] = None
        self._photos: List[PhotoItem] = []

    def fetch_photos(self, config: SynFrameConfig) -> List[PhotoItem]:
        """
        Authenticate, resolve the selection and fetch photos.

        Args:
            config: Full configuration; only the synology section is used.

        Returns:
            List of PhotoItem objects. Never raises; [] on any failure.
        """
        synology = config.synology
        try:
            self._log.info("Initializing Synology Photos client...")

            if self._client is not None:
                self._client.logout()

            self._client = self._client_factory(
                synology,
                session=self._session,
                logger=self._log.getChild("client")
            )

            authenticated = self._client.authenticate()
            if not authenticated and not synology.share_token:
                self._log.error("Failed to authenticate with Synology")
                return []

            if synology.tag_names:
                if not self._client.find_tags():
                    self._log.error("Failed to find Synology tags")
                    return []
            elif synology.album_name and not synology.share_token:
                if not self._client.find_album():
                    self._log.error("Failed to find Synology album")
                    return []

            photos = self._client.fetch_photos()
            if photos:
                self._log.info(f"Retrieved {len(photos)} photos from Synology")
                self._photos = photos
                return photos

            self._log.warning("No photos found in Synology")
            return []

        except Exception as e:
            self._log.error(f"Error fetching Synology photos: {e}")
            return []

    def get_client(self) -> Optional[SynologyPhotosClient]:
        """Get the client built by the most recent fetch."""
        return self._client

    def get_photos(self) -> List[PhotoItem]:
        """Get the last non-empty fetch result."""
        return self._photos

    def is_ready(self) -> bool:
        """True once a client exists, whether or not it authenticated."""
        return self._client is not None

    def close(self) -> None:
        """Log out the current client, if any."""
        if self._client is not None:
            self._client.logout()
