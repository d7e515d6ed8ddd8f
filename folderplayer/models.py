"""Value types shared by sources, the queue builder and the playback engine."""

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Entry:
    """One filesystem-like entry as reported by a music source.

    ``path`` is the identity of the entry within its source: an absolute
    filesystem path for local sources, an absolute URL for WebDAV.
    """

    name: str
    path: str
    is_directory: bool
    size: int = 0
    last_modified: int = 0  # epoch ms

    @property
    def extension(self) -> str:
        if '.' not in self.name:
            return ''
        return self.name.rsplit('.', 1)[1].lower()

    @property
    def stem(self) -> str:
        return self.name.rsplit('.', 1)[0] if '.' in self.name else self.name


class SourceKind(str, Enum):
    LOCAL = "LOCAL"
    WEBDAV = "WEBDAV"


@dataclass(frozen=True)
class Credentials:
    username: str = ""
    password: str = ""

    def __bool__(self) -> bool:
        return bool(self.username or self.password)


@dataclass(frozen=True)
class SourceDescriptor:
    """A user-configured (or discovered) place to browse music from."""

    name: str
    kind: SourceKind
    url: str
    sub_path: Optional[str] = None
    credentials: Optional[Credentials] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def effective_root(self) -> str:
        """
        Path or URL that listing starts from.

        WebDAV roots always end with ``/`` because most servers only list a
        collection when addressed that way.
        """
        if self.kind == SourceKind.LOCAL:
            return self.url

        if self.sub_path:
            root = self.url.rstrip('/') + '/' + self.sub_path.lstrip('/')
        else:
            root = self.url
        if not root.endswith('/'):
            root += '/'
        if ' ' in root and '%20' not in root:
            root = root.replace(' ', '%20')
        return root

    def copy_as_duplicate(self) -> 'SourceDescriptor':
        return replace(self, id=str(uuid.uuid4()), name=f"{self.name} (Copy)")

    def to_dict(self) -> Dict[str, Any]:
        creds = self.credentials or Credentials()
        return {
            'id': self.id,
            'name': self.name,
            'type': self.kind.value,
            'url': self.url,
            'path': self.sub_path,
            'username': creds.username,
            'password': creds.password,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceDescriptor':
        """Build a descriptor from its stored form; raises on missing keys."""
        username = data.get('username') or ''
        password = data.get('password') or ''
        return cls(
            id=data['id'],
            name=data['name'],
            kind=SourceKind(data.get('type', SourceKind.LOCAL.value)),
            url=data.get('url', ''),
            sub_path=data.get('path'),
            credentials=Credentials(username, password) if (username or password) else None,
        )


@dataclass(frozen=True)
class Clipping:
    start_ms: int
    end_ms: Optional[int] = None

    def __post_init__(self):
        if self.end_ms is not None and self.end_ms <= self.start_ms:
            raise ValueError(
                f"clipping end {self.end_ms} must be after start {self.start_ms}"
            )


@dataclass(frozen=True)
class Track:
    """One addressable queue item.

    CUE-derived tracks share ``source_uri`` with their siblings and carry a
    ``clipping`` range plus a synthesized ``media_identity``.
    """

    title: str
    source_uri: str
    media_identity: str
    extension: str = ''
    file_size: int = 0
    artwork_uri: Optional[str] = None
    lyrics_uri: Optional[str] = None
    artist: Optional[str] = None
    clipping: Optional[Clipping] = None
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class CueTrack:
    number: int
    title: str
    performer: Optional[str]
    start_ms: int
    end_ms: Optional[int] = None


@dataclass(frozen=True)
class LyricLine:
    time_ms: int
    text: str
