import copy
import struct
import sqlite3

import pytest

from boxer.config import BoxerConfig
from boxer.database.schema import init_schema
from boxer.database.ops import CheckpointStore, StateOperations
from boxer.exceptions import MetadataConflict, RemoteError
from boxer.remote.retry import RetryPolicy

# --- EXIF byte builders ---

POINTER_TARGETS = {0x8769: 'Exif', 0x8825: 'GPS'}


def _pack_value(typ, value, e):
    """Returns (count, raw bytes) for one directory entry."""
    if typ == 2:
        raw = value.encode('utf-8') + b'\x00'
        return len(raw), raw
    if typ == 7:
        raw = bytes(value)
        return len(raw), raw
    values = value if isinstance(value, (list, tuple)) else [value]
    if typ in (5, 10):
        code = 'I' if typ == 5 else 'i'
        raw = b''.join(struct.pack(e + code * 2, n, d) for n, d in values)
        return len(values), raw
    code = {1: 'B', 3: 'H', 4: 'I', 8: 'h', 9: 'l'}[typ]
    return len(values), struct.pack(f"{e}{len(values)}{code}", *values)


def build_tiff(ifd0, exif=None, gps=None, endian='<'):
    """
    Serializes a TIFF block. Each directory is a list of (tag, type, value);
    rationals are (numerator, denominator) pairs.
    """
    e = endian
    dirs = {'IFD0': list(ifd0)}
    order = ['IFD0']
    if exif is not None:
        dirs['Exif'] = list(exif)
        order.append('Exif')
        dirs['IFD0'].append((0x8769, 4, 0))
    if gps is not None:
        dirs['GPS'] = list(gps)
        order.append('GPS')
        dirs['IFD0'].append((0x8825, 4, 0))
    for name in order:
        dirs[name].sort(key=lambda entry: entry[0])

    offsets = {}
    pos = 8
    for name in order:
        offsets[name] = pos
        data_len = 0
        for tag, typ, value in dirs[name]:
            _, raw = _pack_value(typ, value, e)
            if len(raw) > 4:
                data_len += len(raw) + (len(raw) & 1)
        pos += 2 + 12 * len(dirs[name]) + 4 + data_len

    out = bytearray(b'II*\x00' if e == '<' else b'MM\x00*')
    out += struct.pack(e + 'I', 8)
    for name in order:
        entries = dirs[name]
        data_start = offsets[name] + 2 + 12 * len(entries) + 4
        table = bytearray(struct.pack(e + 'H', len(entries)))
        data = bytearray()
        for tag, typ, value in entries:
            if name == 'IFD0' and tag in POINTER_TARGETS and POINTER_TARGETS[tag] in offsets:
                value = offsets[POINTER_TARGETS[tag]]
            count, raw = _pack_value(typ, value, e)
            if len(raw) <= 4:
                field = raw.ljust(4, b'\x00')
            else:
                field = struct.pack(e + 'I', data_start + len(data))
                data += raw
                if len(raw) & 1:
                    data += b'\x00'
            table += struct.pack(e + 'HHI', tag, typ, count) + field
        table += struct.pack(e + 'I', 0)
        out += table + data
    return bytes(out)


def wrap_jpeg(tiff=None, width=None, height=None):
    """Minimal JPEG marker stream: SOI, optional Exif APP1, optional SOF0, SOS, EOI."""
    out = bytearray(b'\xff\xd8')
    if tiff is not None:
        app1 = b'Exif\x00\x00' + tiff
        out += b'\xff\xe1' + struct.pack('>H', len(app1) + 2) + app1
    if width is not None:
        sof = struct.pack('>BHHB', 8, height, width, 3) + b'\x01\x11\x00\x02\x11\x00\x03\x11\x00'
        out += b'\xff\xc0' + struct.pack('>H', len(sof) + 2) + sof
    out += b'\xff\xda\x00\x02\xff\xd9'
    return bytes(out)


@pytest.fixture
def tiff_builder():
    return build_tiff


@pytest.fixture
def jpeg_wrapper():
    return wrap_jpeg


# --- Remote fakes ---

class FakeMetadataStore:
    """
    In-memory stand-in for the remote metadata store. `failures` maps a
    method name to a list of exceptions raised on successive calls.
    """

    def __init__(self):
        self.records = {}
        self.calls = []
        self.failures = {}

    def _maybe_fail(self, method):
        planned = self.failures.get(method)
        if planned:
            raise planned.pop(0)

    def get_metadata(self, file_id):
        self.calls.append(('get', file_id))
        self._maybe_fail('get')
        record = self.records.get(file_id)
        if record is None:
            return None
        return dict(copy.deepcopy(record), **{'$id': f"inst-{file_id}", '$type': 'template-1'})

    def create_metadata(self, file_id, payload):
        self.calls.append(('create', file_id))
        self._maybe_fail('create')
        if file_id in self.records:
            raise MetadataConflict()
        self.records[file_id] = copy.deepcopy(payload)
        return dict(payload)

    def patch_metadata(self, file_id, operations):
        self.calls.append(('patch', file_id, copy.deepcopy(operations)))
        self._maybe_fail('patch')
        record = self.records[file_id]
        for op in operations:
            record[op['path'].lstrip('/')] = op['value']
        return dict(record)

    def count(self, kind):
        return sum(1 for call in self.calls if call[0] == kind)


class FakeByteSource:
    def __init__(self, files=None):
        self.files = files or {}
        self.downloads = []
        self.on_download = None

    def download(self, file_id):
        self.downloads.append(file_id)
        if self.on_download is not None:
            self.on_download(file_id)
        if file_id not in self.files:
            raise RemoteError(404, 'not found')
        return self.files[file_id]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b'', headers=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = headers or {}
        self.text = text if text is not None else ('' if payload is None else str(payload))
        self.reason = ''

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """
    Replays queued responses. A queued exception instance is raised instead
    of returned.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.headers = {}

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self.request('POST', url, **kwargs)


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# --- Fixtures ---

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the state schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def state_ops(conn):
    return StateOperations(conn)


@pytest.fixture
def checkpoints(state_ops):
    return CheckpointStore(state_ops)


@pytest.fixture
def store():
    return FakeMetadataStore()


@pytest.fixture
def byte_source():
    return FakeByteSource()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Collects requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def retry(sleeps):
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=8.0, sleep=sleeps.append)


@pytest.fixture
def cfg(tmp_path):
    return BoxerConfig(
        box_token='test-token',
        file_delay=0,
        geocode_delay=0,
        budget_seconds=60,
        budget_check_interval=5,
        max_files_per_run=1000,
        processing_version='v-test',
        build_number='20240101.001',
        state_db=tmp_path / 'state.db',
    )
