"""Music sources: the local filesystem and WebDAV servers.

Both variants expose the same three coroutines/functions (``list``,
``resolve_uri``, ``read_text``) and never raise past their own boundary:
transport, HTTP and XML failures become an empty listing or ``None`` and
are reported through an optional error callback.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import asyncio
import os
import threading
from base64 import b64encode
from datetime import timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Union
from urllib.parse import unquote, urlsplit
from xml.etree import ElementTree as ET

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
import httpx  # >=0.24

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from folderplayer.events import EventBus
from folderplayer.exceptions import AuthenticationError, SourceError
from folderplayer.logging import get_logger
from folderplayer.models import Credentials, Entry, SourceDescriptor, SourceKind

logger = get_logger(__name__)

ErrorCallback = Callable[[str, Exception], None]

PROPFIND_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<propfind xmlns="DAV:">
  <prop>
    <displayname/>
    <getcontentlength/>
    <getlastmodified/>
    <resourcetype/>
  </prop>
</propfind>"""

DAV_NS = {"d": "DAV:"}


class MusicSource(Protocol):
    async def list(self, path: str) -> List[Entry]: ...

    def resolve_uri(self, path: str) -> str: ...

    async def read_text(self, path: str) -> Optional[str]: ...


# ============================================================================
# Local filesystem
# ============================================================================

def local_path(path_or_uri: str) -> str:
    """Filesystem path for a plain path or a ``file://`` URI."""
    if path_or_uri.startswith("file://"):
        return unquote(urlsplit(path_or_uri).path)
    return path_or_uri


class LocalSource:
    """Direct filesystem access; blocking calls run in a worker thread."""

    kind = SourceKind.LOCAL

    def _list_sync(self, path: str) -> List[Entry]:
        directory = Path(local_path(path))
        if not directory.is_dir():
            return []
        entries = []
        try:
            with os.scandir(directory) as it:
                for item in it:
                    try:
                        st = item.stat()
                        entries.append(Entry(
                            name=item.name,
                            path=str(directory / item.name),
                            is_directory=item.is_dir(),
                            size=0 if item.is_dir() else st.st_size,
                            last_modified=int(st.st_mtime * 1000),
                        ))
                    except OSError as e:
                        logger.debug("Skipping unreadable entry %s: %s", item.path, e)
        except OSError as e:
            logger.warning("Cannot list %s: %s", directory, e)
            return []
        return entries

    async def list(self, path: str) -> List[Entry]:
        return await asyncio.to_thread(self._list_sync, path)

    def resolve_uri(self, path: str) -> str:
        if path.startswith("file://"):
            return path
        return Path(os.path.abspath(path)).as_uri()

    def _read_sync(self, path: str) -> Optional[str]:
        file_path = Path(local_path(path))
        if not file_path.is_file():
            return None
        try:
            return file_path.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            logger.warning("Cannot read %s: %s", file_path, e)
            return None

    async def read_text(self, path: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_sync, path)


# ============================================================================
# WebDAV
# ============================================================================

class BasicAuthFlow(httpx.Auth):
    """
    HTTP Basic credentials sent only in answer to a challenge.

    A 401 is answered only when the challenged request went to the
    configured host; after ``max_attempts`` answered challenges the last
    401 is returned as-is.
    """

    def __init__(self, credentials: Credentials, allowed_host: str, max_attempts: int = 3):
        token = b64encode(f"{credentials.username}:{credentials.password}".encode("utf-8"))
        self._header = "Basic " + token.decode("ascii")
        self.allowed_host = allowed_host
        self.max_attempts = max_attempts

    def auth_flow(self, request: httpx.Request):
        response = yield request
        attempts = 0
        while response.status_code == 401:
            challenged = response.request
            if challenged.url.host != self.allowed_host:
                logger.warning("Refusing to send credentials to %s", challenged.url.host)
                return
            if attempts >= self.max_attempts:
                logger.warning("Giving up after %d authentication attempts", attempts)
                return
            attempts += 1
            challenged.headers["Authorization"] = self._header
            response = yield challenged


def _parse_http_date(value: Optional[str]) -> int:
    """RFC 1123 date to epoch ms, 0 when unparseable."""
    if not value:
        return 0
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return 0
    if parsed is None:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _decoded_path(value: str) -> str:
    """Percent-decoded path of a URL or href, without a trailing slash."""
    # Split first: a decoded "#" or "?" would otherwise cut the path short
    if value.startswith("http"):
        value = urlsplit(value).path
    return unquote(value).rstrip('/')


def _origin(base_url: str) -> str:
    if "://" not in base_url:
        return ""
    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}"


def parse_multistatus(xml: Union[str, bytes], current_path: str, base_url: str) -> List[Entry]:
    """
    Turn a PROPFIND multi-status document into entries.

    The response describing ``current_path`` itself is dropped. Relative
    hrefs are made absolute against the scheme and authority of
    ``base_url``. A malformed document yields an empty list; a malformed
    ``<response>`` block is skipped.
    """
    try:
        root = ET.fromstring(xml)
    except (ET.ParseError, ValueError) as e:
        logger.warning("Malformed multi-status for %s: %s", current_path, e)
        return []

    current = _decoded_path(current_path)
    origin = _origin(base_url)
    entries: List[Entry] = []

    for response in root.findall(".//d:response", DAV_NS):
        href = response.findtext("d:href", default="", namespaces=DAV_NS).strip()
        if not href:
            continue
        decoded = _decoded_path(href)
        if decoded.lower() == current.lower():
            continue

        name = response.findtext(".//d:displayname", default=None, namespaces=DAV_NS)
        if not name:
            name = decoded.rsplit('/', 1)[-1]
        if not name:
            continue

        size_text = response.findtext(".//d:getcontentlength", default="", namespaces=DAV_NS)
        try:
            size = int(size_text.strip()) if size_text.strip() else 0
        except ValueError:
            size = 0

        if href.startswith("http"):
            full_path = href
        elif href.startswith('/'):
            full_path = origin + href
        else:
            full_path = f"{origin}/{href}"

        entries.append(Entry(
            name=name,
            path=full_path,
            is_directory=response.find(".//d:collection", DAV_NS) is not None,
            size=size,
            last_modified=_parse_http_date(
                response.findtext(".//d:getlastmodified", default=None, namespaces=DAV_NS)
            ),
        ))

    return entries


class WebDavSource:
    """
    WebDAV client bound to one configured base URL and its credentials.

    Paths handed to ``list``/``read_text`` are absolute URLs, as produced by
    ``parse_multistatus`` or ``SourceDescriptor.effective_root``.
    """

    kind = SourceKind.WEBDAV

    def __init__(self, base_url: str, credentials: Optional[Credentials] = None,
                 timeout: float = 30.0, max_auth_attempts: int = 3,
                 on_error: Optional[ErrorCallback] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = base_url
        self.host = urlsplit(base_url).hostname or ""
        self.on_error = on_error
        auth = BasicAuthFlow(credentials, self.host, max_auth_attempts) if credentials else None
        self.client = httpx.AsyncClient(
            auth=auth,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _report(self, path: str, error: Exception) -> None:
        logger.warning("WebDAV request for %s failed: %s", path, error)
        if self.on_error is not None:
            self.on_error(path, error)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise SourceError(str(e)) from e
        if response.status_code == 401:
            raise AuthenticationError(f"{method} {path}: authentication failed")
        if not response.is_success:
            raise SourceError(f"{method} {path}: HTTP {response.status_code}")
        return response

    async def list(self, path: str) -> List[Entry]:
        try:
            response = await self._request(
                "PROPFIND", path,
                content=PROPFIND_BODY.encode('utf-8'),
                headers={"Depth": "1", "Content-Type": "text/xml; charset=utf-8"},
            )
        except SourceError as e:
            self._report(path, e)
            return []
        return parse_multistatus(response.content, path, self.base_url)

    def resolve_uri(self, path: str) -> str:
        return path

    async def read_text(self, path: str) -> Optional[str]:
        try:
            response = await self._request("GET", path)
        except SourceError as e:
            self._report(path, e)
            return None
        return response.text

    async def aclose(self) -> None:
        await self.client.aclose()


class SourceRegistry:
    """
    Hands out source clients for descriptors.

    Local descriptors share one LocalSource; every WebDAV descriptor gets its
    own client carrying that descriptor's credentials.
    """

    def __init__(self, event_bus: Optional[EventBus] = None, timeout: float = 30.0,
                 max_auth_attempts: int = 3,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.event_bus = event_bus
        self.timeout = timeout
        self.max_auth_attempts = max_auth_attempts
        self.transport = transport
        self.local = LocalSource()
        self._remote: Dict[str, WebDavSource] = {}
        self._retired: List[WebDavSource] = []
        self._lock = threading.Lock()

    def _on_error(self, descriptor: SourceDescriptor) -> ErrorCallback:
        def report(path: str, error: Exception) -> None:
            if self.event_bus is not None:
                self.event_bus.publish(EventBus.SOURCE_ERROR, {
                    "source": descriptor.id,
                    "path": path,
                    "error": str(error),
                })
        return report

    def get(self, descriptor: SourceDescriptor):
        if descriptor.kind == SourceKind.LOCAL:
            return self.local
        with self._lock:
            source = self._remote.get(descriptor.id)
            if source is None:
                source = WebDavSource(
                    descriptor.effective_root(),
                    credentials=descriptor.credentials,
                    timeout=self.timeout,
                    max_auth_attempts=self.max_auth_attempts,
                    on_error=self._on_error(descriptor),
                    transport=self.transport,
                )
                self._remote[descriptor.id] = source
            return source

    def forget(self, source_id: str) -> None:
        """Drop a cached client so the next ``get`` sees edited settings."""
        with self._lock:
            source = self._remote.pop(source_id, None)
        if source is not None:
            self._retired.append(source)
            logger.debug("Dropped WebDAV client for source %s", source_id)

    async def aclose(self) -> None:
        with self._lock:
            remote = list(self._remote.values()) + self._retired
            self._remote.clear()
            self._retired = []
        for source in remote:
            await source.aclose()
