#!/usr/bin/env python3
"""Download client repositories: list torrents and remove them."""

import logging
from datetime import datetime, timezone
from typing import Any, Collection, List, Optional, Protocol
from urllib.parse import urlsplit

import qbittorrentapi
import transmission_rpc
import urllib3

from .config import Connection
from .constants import DEFAULT_TIMEOUT, NEVER_COMPLETED, ClientKind, QbtState, TorrentStatus
from .models import TorrentSnapshot

# Suppress SSL warnings when SSL verification is disabled
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)


class TorrentRepository(Protocol):
    """What a poller needs from a download client.

    Failures are logged by the repository and reported as ``None`` or
    ``False``; callers never see client-library exceptions.
    """

    def list_torrents(self) -> Optional[List[TorrentSnapshot]]:
        """Fetch all torrents, or None if the client could not be queried."""

    def remove(self, ids: Collection[str], delete_data: bool) -> bool:
        """Remove torrents by id, optionally with their data. True on success."""


def _epoch_to_datetime(epoch: Optional[int]) -> Optional[datetime]:
    """Map a completion epoch to a date; 0 is the never-completed sentinel."""
    if epoch is None or epoch < 0:
        return None
    if epoch == 0:
        return NEVER_COMPLETED
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


class TransmissionRepository:
    """Torrent repository backed by the Transmission RPC."""

    FIELDS = [
        "id", "hashString", "name", "status", "doneDate", "uploadRatio",
        "uploadedEver", "totalSize", "files", "trackers",
    ]

    def __init__(self, connection: Connection):
        """
        Initialize repository.

        Args:
            connection: Connection configuration
        """
        self.connection = connection
        self._client: Optional[transmission_rpc.Client] = None

    @property
    def client(self) -> transmission_rpc.Client:
        """Get the underlying client, connecting if needed."""
        if self._client is None:
            url = urlsplit(self.connection.url)
            self._client = transmission_rpc.Client(
                protocol=url.scheme or "http",
                host=url.hostname or "localhost",
                port=url.port or (443 if url.scheme == "https" else 9091),
                path=url.path or "/transmission/rpc",
                username=self.connection.user,
                password=self.connection.password,
                timeout=DEFAULT_TIMEOUT,
            )
            logger.debug(f"Connected to Transmission at {self.connection}")
        return self._client

    def list_torrents(self) -> Optional[List[TorrentSnapshot]]:
        """
        Get all torrents.

        Returns:
            List of torrent snapshots, or None on API failure
        """
        try:
            torrents = self.client.get_torrents(arguments=self.FIELDS)
            return [self.process_torrent(t.fields) for t in torrents]
        except transmission_rpc.TransmissionError as e:
            logger.error(f"Transmission error fetching torrents from {self.connection}: {e}")
        except (KeyError, ValueError) as e:
            logger.error(f"Malformed torrent from {self.connection}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error fetching torrents from {self.connection}: {e}")
        self._client = None
        return None

    def remove(self, ids: Collection[str], delete_data: bool) -> bool:
        """
        Remove torrents.

        Args:
            ids: Torrent hashes to remove
            delete_data: Whether to delete downloaded data

        Returns:
            True if successful
        """
        if not ids:
            return True

        try:
            self.client.remove_torrent(sorted(ids), delete_data=delete_data)
            return True
        except transmission_rpc.TransmissionError as e:
            logger.error(f"Transmission error removing torrents: {e}")
        except Exception as e:
            logger.error(f"Unexpected error removing torrents: {e}")
        self._client = None
        return False

    @staticmethod
    def process_torrent(fields: dict) -> TorrentSnapshot:
        """
        Convert raw RPC torrent fields into a snapshot.

        Args:
            fields: Torrent fields as returned by ``torrent-get``

        Returns:
            Torrent snapshot

        Raises:
            KeyError: If a required field is missing
            ValueError: If the status code is unknown
        """
        return TorrentSnapshot(
            id=fields["hashString"],
            name=fields["name"],
            status=TorrentStatus(fields["status"]),
            done_date=_epoch_to_datetime(fields.get("doneDate")),
            upload_ratio=float(fields["uploadRatio"]),
            uploaded_bytes=int(fields.get("uploadedEver", 0)),
            num_files=len(fields["files"]),
            total_size=int(fields["totalSize"]),
            trackers=tuple(t["announce"] for t in fields["trackers"]),
        )


class QBittorrentRepository:
    """Torrent repository backed by the qBittorrent WebUI API."""

    _STATUS = {
        QbtState.UPLOADING: TorrentStatus.SEEDING,
        QbtState.FORCED_UP: TorrentStatus.SEEDING,
        QbtState.STALLED_UP: TorrentStatus.SEEDING,
        QbtState.QUEUED_UP: TorrentStatus.QUEUED_TO_SEED,
        QbtState.QUEUED_DL: TorrentStatus.QUEUED_TO_DOWNLOAD,
        QbtState.QUEUED_CHECK: TorrentStatus.QUEUED_TO_CHECK,
    }

    def __init__(self, connection: Connection):
        """
        Initialize repository.

        Args:
            connection: Connection configuration
        """
        self.connection = connection
        self._client: Optional[qbittorrentapi.Client] = None

    @property
    def client(self) -> qbittorrentapi.Client:
        """Get the underlying client, connecting if needed."""
        if self._client is None:
            self._client = self.connect()
        return self._client

    def connect(self) -> qbittorrentapi.Client:
        """
        Log in to qBittorrent.

        Returns:
            Authenticated client

        Raises:
            qbittorrentapi.LoginFailed: On bad credentials
            qbittorrentapi.APIConnectionError: If the WebUI is unreachable
        """
        client = qbittorrentapi.Client(
            host=self.connection.url,
            username=self.connection.user,
            password=self.connection.password,
            VERIFY_WEBUI_CERTIFICATE=self.connection.verify_ssl,
            REQUESTS_ARGS={'timeout': DEFAULT_TIMEOUT},
        )

        # Suppress SSL logging for connection
        original_level = logging.getLogger("urllib3.connectionpool").level
        logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)
        try:
            client.auth_log_in()
        finally:
            logging.getLogger("urllib3.connectionpool").setLevel(original_level)

        ssl_status = "enabled" if self.connection.verify_ssl else "disabled"
        logger.debug(
            f"Connected to qBittorrent {client.app.version} at {self.connection} "
            f"(API: {client.app.web_api_version}, SSL: {ssl_status})"
        )
        return client

    def list_torrents(self) -> Optional[List[TorrentSnapshot]]:
        """
        Get all torrents.

        Trackers and file counts need one request each per torrent, so they
        are only fetched for seeding torrents; no policy governs the rest.

        Returns:
            List of torrent snapshots, or None on API failure
        """
        try:
            return [self.process_torrent(t) for t in self.client.torrents.info()]
        except qbittorrentapi.LoginFailed as e:
            logger.error(f"Login to {self.connection} failed: {e}")
        except qbittorrentapi.APIConnectionError as e:
            logger.error(f"API connection error fetching torrents from {self.connection}: {e}")
        except qbittorrentapi.Forbidden403Error as e:
            logger.error(f"Authentication error fetching torrents from {self.connection}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error fetching torrents from {self.connection}: {e}")
        self._client = None
        return None

    def remove(self, ids: Collection[str], delete_data: bool) -> bool:
        """
        Remove torrents.

        Args:
            ids: Torrent hashes to remove
            delete_data: Whether to delete downloaded files

        Returns:
            True if successful
        """
        if not ids:
            return True

        try:
            self.client.torrents.delete(delete_files=delete_data, torrent_hashes=sorted(ids))
            return True
        except qbittorrentapi.APIConnectionError as e:
            logger.error(f"API connection error deleting torrents: {e}")
        except qbittorrentapi.Forbidden403Error as e:
            logger.error(f"Permission denied deleting torrents: {e}")
        except qbittorrentapi.Conflict409Error as e:
            logger.error(f"Conflict error deleting torrents: {e}")
        except Exception as e:
            logger.error(f"Unexpected error deleting torrents: {e}")
        self._client = None
        return False

    @classmethod
    def status_of(cls, state: str) -> TorrentStatus:
        """Map a qBittorrent state string onto the lifecycle status."""
        try:
            qbt_state = QbtState(state)
        except ValueError:
            return TorrentStatus.STOPPED
        if qbt_state in cls._STATUS:
            return cls._STATUS[qbt_state]
        if qbt_state in QbtState.downloading_states():
            return TorrentStatus.DOWNLOADING
        if qbt_state in QbtState.checking_states():
            return TorrentStatus.CHECKING
        return TorrentStatus.STOPPED

    def process_torrent(self, torrent: Any) -> TorrentSnapshot:
        """
        Process raw torrent into a snapshot.

        Args:
            torrent: Raw torrent object

        Returns:
            Torrent snapshot
        """
        status = self.status_of(torrent.state)
        trackers: tuple = ()
        num_files = 0
        if status == TorrentStatus.SEEDING:
            trackers = tuple(
                t.url for t in self.client.torrents.trackers(torrent_hash=torrent.hash)
                if "://" in t.url
            )
            num_files = len(self.client.torrents.files(torrent_hash=torrent.hash))

        return TorrentSnapshot(
            id=torrent.hash,
            name=torrent.name,
            status=status,
            done_date=_epoch_to_datetime(torrent.completion_on),
            upload_ratio=float(torrent.ratio),
            uploaded_bytes=int(torrent.uploaded),
            num_files=num_files,
            total_size=int(torrent.total_size),
            trackers=trackers,
        )


def repository_for(connection: Connection) -> TorrentRepository:
    """Create the repository matching a connection's client kind."""
    if connection.kind == ClientKind.QBITTORRENT:
        return QBittorrentRepository(connection)
    return TransmissionRepository(connection)
