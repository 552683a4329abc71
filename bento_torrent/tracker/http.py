import asyncio
import urllib.parse

import aiohttp
import async_timeout
from yarl import URL

from bento_torrent.errors import BencodeDecodeError, SchemaError, TrackerError
from bento_torrent.tracker.base import TrackerFailure, TrackerRequestParameters, TrackerResponse, \
    parse_tracker_response_bytes
from bento_torrent.ui import console

ANNOUNCE_TIMEOUT = 10


class TrackerHTTP:
    def __init__(self, announce_url: str, timeout: float = ANNOUNCE_TIMEOUT):
        self.address = urllib.parse.urlparse(announce_url)
        if self.address.scheme not in ("http", "https"):
            raise TrackerError(f"Unsupported tracker scheme '{self.address.scheme}'", {"url": announce_url})
        self.timeout = timeout
        self.connected = False
        self._session = None

    def __str__(self):
        return self.address.geturl()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None

    def get_announce_url(self, params: TrackerRequestParameters) -> str:
        separator = "&" if self.address.query else "?"
        return self.address.geturl() + separator + params.get_url_query()

    async def announce(self, params: TrackerRequestParameters) -> TrackerResponse | TrackerFailure:
        if not self._session:
            self._session = aiohttp.ClientSession()
        # already percent-encoded, the info hash must reach the tracker byte for byte
        url = URL(self.get_announce_url(params), encoded=True)
        console.log(f"Sending announce to HTTP tracker {self}...")
        try:
            async with async_timeout.timeout(self.timeout):
                async with self._session.get(url) as response:
                    if response.status != 200:
                        raise TrackerError(f"Tracker replied with HTTP status {response.status}",
                                           {"url": str(self)})
                    body = await response.read()
        except asyncio.TimeoutError as e:
            raise TrackerError(f"Announce timed out after {self.timeout}s", {"url": str(self)}) from e
        except aiohttp.ClientError as e:
            raise TrackerError(f"Announce failed: {e}", {"url": str(self)}) from e

        try:
            res = parse_tracker_response_bytes(body)
        except (BencodeDecodeError, SchemaError):
            console.log(f"[red]Invalid announce response from {self}")
            raise
        self.connected = True
        match res:
            case TrackerFailure(reason=reason):
                console.log(f"[yellow]{self} refused the announce: {reason}")
            case TrackerResponse(peers=peers, interval=interval):
                console.log(f"{self} returned {len(peers)} peers, next announce in {interval}s")
        return res
