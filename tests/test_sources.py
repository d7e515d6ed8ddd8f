"""Tests for local and WebDAV sources."""

import asyncio

import httpx
import pytest

from conftest import dav_response, multistatus
from folderplayer.events import EventBus
from folderplayer.models import Credentials, SourceDescriptor, SourceKind
from folderplayer.sources import (
    BasicAuthFlow,
    LocalSource,
    SourceRegistry,
    WebDavSource,
    local_path,
    parse_multistatus,
)

BASE = "http://nas.local/music/"


class TestLocalSource:
    """Test LocalSource."""

    def test_list(self, music_dir):
        entries = asyncio.run(LocalSource().list(str(music_dir / 'AlbumA')))
        by_name = {e.name: e for e in entries}
        assert set(by_name) == {'01.mp3', '02.mp3', 'cover.jpg'}
        assert by_name['01.mp3'].size == len(b'not really audio')
        assert by_name['01.mp3'].last_modified > 0
        assert not by_name['01.mp3'].is_directory

    def test_list_directories_have_no_size(self, music_dir):
        entries = asyncio.run(LocalSource().list(str(music_dir)))
        assert all(e.is_directory and e.size == 0 for e in entries)

    def test_list_missing_path(self, temp_dir):
        assert asyncio.run(LocalSource().list(str(temp_dir / 'nope'))) == []

    def test_list_accepts_file_uri(self, music_dir):
        uri = (music_dir / 'AlbumB').as_uri()
        entries = asyncio.run(LocalSource().list(uri))
        assert [e.name for e in entries] == ['01.mp3']

    def test_resolve_uri(self, music_dir):
        path = music_dir / 'AlbumA' / '01.mp3'
        source = LocalSource()
        assert source.resolve_uri(str(path)) == path.as_uri()
        assert source.resolve_uri(path.as_uri()) == path.as_uri()
        assert local_path(path.as_uri()) == str(path)

    def test_read_text(self, temp_dir):
        (temp_dir / 'a.lrc').write_text('[00:01.00]hello', encoding='utf-8')
        source = LocalSource()
        assert asyncio.run(source.read_text(str(temp_dir / 'a.lrc'))) == '[00:01.00]hello'
        assert asyncio.run(source.read_text(str(temp_dir / 'missing.lrc'))) is None


class TestParseMultistatus:
    """Test PROPFIND response parsing."""

    def test_self_entry_is_removed(self):
        xml = multistatus(
            dav_response('/music/', directory=True),
            dav_response('/music/Album%20One/', directory=True),
            dav_response('/music/track.mp3', size=1234),
        )
        entries = parse_multistatus(xml, BASE, BASE)
        assert [e.name for e in entries] == ['Album One', 'track.mp3']

    def test_self_entry_compare_ignores_case_and_encoding(self):
        xml = multistatus(
            dav_response('/Music/My%20Files/', directory=True),
            dav_response('/Music/My%20Files/a.flac'),
        )
        entries = parse_multistatus(xml, 'http://nas.local/music/My Files', BASE)
        assert [e.name for e in entries] == ['a.flac']

    def test_self_entry_with_encoded_hash(self):
        """Test folder names containing characters that are special in URLs."""
        xml = multistatus(
            dav_response('/music/Album%20%231/', directory=True),
            dav_response('/music/Album%20%231/a.mp3'),
        )
        entries = parse_multistatus(xml, 'http://nas.local/music/Album%20%231/', BASE)
        assert [e.name for e in entries] == ['a.mp3']
        assert entries[0].path == 'http://nas.local/music/Album%20%231/a.mp3'

    def test_absolute_self_href_with_encoded_query_mark(self):
        xml = multistatus(
            dav_response('http://nas.local/music/Why%3F/', directory=True),
            dav_response('http://nas.local/music/Why%3F/b.flac'),
        )
        entries = parse_multistatus(xml, 'http://nas.local/music/Why%3F/', BASE)
        assert [e.name for e in entries] == ['b.flac']

    def test_paths_are_absolute(self):
        xml = multistatus(dav_response('/music/Album/', directory=True))
        entries = parse_multistatus(xml, 'http://nas.local:8080/other/', 'http://nas.local:8080/')
        assert entries[0].path == 'http://nas.local:8080/music/Album/'
        assert entries[0].is_directory

    def test_displayname_wins(self):
        xml = multistatus(dav_response('/music/x1.mp3', displayname='Nice Name.mp3'))
        assert parse_multistatus(xml, BASE, BASE)[0].name == 'Nice Name.mp3'

    def test_size_and_date(self):
        xml = multistatus(dav_response('/music/a.mp3', size=4096,
                                       modified='Sun, 06 Nov 1994 08:49:37 GMT'))
        entry = parse_multistatus(xml, BASE, BASE)[0]
        assert entry.size == 4096
        assert entry.last_modified == 784111777000

    def test_bad_date_is_zero(self):
        xml = multistatus(dav_response('/music/a.mp3', modified='yesterday'))
        assert parse_multistatus(xml, BASE, BASE)[0].last_modified == 0

    def test_malformed_document(self):
        assert parse_multistatus('<d:multistatus xmlns:d="DAV:"><d:resp', BASE, BASE) == []

    def test_response_without_href_is_skipped(self):
        xml = multistatus('<d:response><d:propstat/></d:response>',
                          dav_response('/music/a.mp3'))
        assert [e.name for e in parse_multistatus(xml, BASE, BASE)] == ['a.mp3']


class TestWebDavSource:
    """Test WebDavSource over a mock transport."""

    def test_list_sends_propfind(self, dav_server):
        server = dav_server({'/music/': multistatus(
            dav_response('/music/', directory=True),
            dav_response('/music/a.mp3', size=10),
        )})

        async def run():
            source = WebDavSource(BASE, transport=server.transport)
            try:
                return await source.list(BASE)
            finally:
                await source.aclose()

        entries = asyncio.run(run())
        assert [e.path for e in entries] == ['http://nas.local/music/a.mp3']
        request = server.requests[0]
        assert request.method == 'PROPFIND'
        assert request.headers['Depth'] == '1'
        assert b'getlastmodified' in request.content

    def test_http_error_becomes_empty_listing(self, dav_server):
        errors = []
        server = dav_server({})

        async def run():
            source = WebDavSource(BASE, transport=server.transport,
                                  on_error=lambda path, e: errors.append(path))
            try:
                return await source.list(BASE + 'missing/')
            finally:
                await source.aclose()

        assert asyncio.run(run()) == []
        assert errors == [BASE + 'missing/']

    def test_read_text(self):
        def handler(request):
            return httpx.Response(200, text='[00:01.00]la')

        async def run():
            source = WebDavSource(BASE, transport=httpx.MockTransport(handler))
            try:
                return await source.read_text(BASE + 'a.lrc')
            finally:
                await source.aclose()

        assert asyncio.run(run()) == '[00:01.00]la'


class TestBasicAuthFlow:
    """Test challenge handling."""

    def test_credentials_sent_after_challenge(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get('Authorization'))
            if 'Authorization' not in request.headers:
                return httpx.Response(401)
            return httpx.Response(207, text=multistatus())

        async def run():
            source = WebDavSource(BASE, credentials=Credentials('user', 'pass'),
                                  transport=httpx.MockTransport(handler))
            try:
                return await source.list(BASE)
            finally:
                await source.aclose()

        assert asyncio.run(run()) == []
        assert seen == [None, 'Basic dXNlcjpwYXNz']

    def test_gives_up_after_attempt_cap(self):
        count = []

        def handler(request):
            count.append(request)
            return httpx.Response(401)

        async def run():
            source = WebDavSource(BASE, credentials=Credentials('user', 'wrong'),
                                  max_auth_attempts=3, transport=httpx.MockTransport(handler))
            try:
                return await source.list(BASE)
            finally:
                await source.aclose()

        assert asyncio.run(run()) == []
        assert len(count) == 4

    def test_no_credentials_for_foreign_host(self):
        seen = []

        def handler(request):
            seen.append((request.url.host, request.headers.get('Authorization')))
            if request.url.host == 'nas.local':
                return httpx.Response(302, headers={'Location': 'http://evil.example/steal'})
            return httpx.Response(401)

        async def run():
            source = WebDavSource(BASE, credentials=Credentials('user', 'pass'),
                                  transport=httpx.MockTransport(handler))
            try:
                return await source.list(BASE)
            finally:
                await source.aclose()

        assert asyncio.run(run()) == []
        assert ('evil.example', None) in seen
        assert all(auth is None for host, auth in seen if host == 'evil.example')

    def test_auth_flow_refuses_other_host_directly(self):
        flow = BasicAuthFlow(Credentials('u', 'p'), 'nas.local')
        request = httpx.Request('GET', 'http://other.example/')
        gen = flow.auth_flow(request)
        sent = next(gen)
        assert 'Authorization' not in sent.headers
        with pytest.raises(StopIteration):
            gen.send(httpx.Response(401, request=request))


class TestSourceRegistry:
    """Test SourceRegistry."""

    def test_local_is_shared(self):
        registry = SourceRegistry()
        a = SourceDescriptor('A', SourceKind.LOCAL, '/a')
        b = SourceDescriptor('B', SourceKind.LOCAL, '/b')
        assert registry.get(a) is registry.get(b) is registry.local

    def test_one_client_per_webdav_descriptor(self):
        async def run():
            registry = SourceRegistry()
            nas = SourceDescriptor('NAS', SourceKind.WEBDAV, 'http://nas.local', id='nas')
            first = registry.get(nas)
            assert registry.get(nas) is first
            registry.forget('nas')
            assert registry.get(nas) is not first
            await registry.aclose()

        asyncio.run(run())

    def test_errors_are_published(self, dav_server):
        bus = EventBus()
        errors = []
        bus.subscribe(EventBus.SOURCE_ERROR, errors.append)
        server = dav_server({})

        async def run():
            registry = SourceRegistry(bus, transport=server.transport)
            nas = SourceDescriptor('NAS', SourceKind.WEBDAV, 'http://nas.local', id='nas')
            try:
                return await registry.get(nas).list('http://nas.local/x/')
            finally:
                await registry.aclose()

        assert asyncio.run(run()) == []
        assert errors[0]['source'] == 'nas'
        assert errors[0]['path'] == 'http://nas.local/x/'
