import pytest

from boxer.exceptions import RemoteError, SchedulerFatal, VisionError
from boxer.models import FileCandidate, GeocodeResult, SyncOutcome
from boxer.pipeline import FilePipeline, declared_format

GPS = [
    (0x0001, 2, 'N'), (0x0002, 5, [(40, 1), (26, 1), (46, 1)]),
    (0x0003, 2, 'W'), (0x0004, 5, [(79, 1), (58, 1), (56, 1)]),
]


class BrokenVision:
    def analyze(self, data, file_format=None):
        raise VisionError('HTTP_ERROR', 'HTTP 403: quota')


class StaticGeocoder:
    def __init__(self, place=None):
        self.place = place
        self.calls = []

    def reverse(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        return self.place


@pytest.fixture
def camera_jpeg(tiff_builder, jpeg_wrapper):
    tiff = tiff_builder(
        [(0x010F, 2, 'Canon'), (0x0110, 2, 'Canon EOS R5')],
        exif=[(0x9003, 2, '2023:06:15 14:30:00'), (0xA002, 4, 4000), (0xA003, 4, 3000)],
        gps=GPS,
    )
    return jpeg_wrapper(tiff)


@pytest.fixture
def candidate():
    return FileCandidate('42', 'portrait_jane.jpg', path='Marketing/Portraits', size=2 * 1024 * 1024,
                         created_at='2024-02-01T00:00:00Z')


def test_full_pipeline_creates_then_noops(cfg, store, byte_source, retry, candidate, camera_jpeg):
    byte_source.files['42'] = camera_jpeg
    pipeline = FilePipeline(cfg, byte_source, store, retry=retry)

    first = pipeline.process(candidate)
    assert first.status == 'processed'
    assert first.sync_outcome == SyncOutcome.CREATED

    record = store.records['42']
    assert record['originalFilename'] == 'portrait_jane.jpg'
    assert record['folderPath'] == 'Marketing/Portraits'
    assert record['processingStage'] == 'exif_extracted'
    assert record['cameraModel'] == 'Canon EOS R5'
    assert record['dateTaken'] == '2023-06-15T14:30:00.000Z'
    assert (record['imageWidth'], record['imageHeight']) == (4000.0, 3000.0)
    assert record['aspectRatio'] == '4:3'
    assert record['gpsLatitude'] == pytest.approx(40.4461, abs=1e-4)
    assert record['gpsLongitude'] < 0
    assert record['processingVersion'] == 'v-test'

    second = pipeline.process(candidate, store.get_metadata('42'))
    assert second.sync_outcome == SyncOutcome.UPDATED_NOOP
    assert store.count('patch') == 0


def test_vision_failure_becomes_a_note(cfg, store, byte_source, retry, candidate, jpeg_wrapper):
    byte_source.files['42'] = jpeg_wrapper(width=10, height=10)
    pipeline = FilePipeline(cfg, byte_source, store, vision=BrokenVision(), retry=retry)

    outcome = pipeline.process(candidate)

    assert outcome.status == 'processed'
    notes = store.records['42']['notes']
    assert 'Vision analysis skipped: HTTP_ERROR' in notes
    assert 'No EXIF data found' in notes
    assert store.records['42']['processingStage'] == 'basic_extracted'


def test_geocoding_enriches_or_notes(cfg, store, byte_source, retry, candidate, camera_jpeg):
    byte_source.files['42'] = camera_jpeg
    geocoder = StaticGeocoder(GeocodeResult(formatted_address='State College, PA', city='State College'))
    FilePipeline(cfg, byte_source, store, geocoder=geocoder, retry=retry).process(candidate)

    assert len(geocoder.calls) == 1
    assert store.records['42']['gpsCity'] == 'State College'

    store.records.clear()
    FilePipeline(cfg, byte_source, store, geocoder=StaticGeocoder(None), retry=retry).process(candidate)
    assert 'Geocoding unavailable' in store.records['42']['notes']
    assert 'gpsCity' not in store.records['42']


def test_download_failure_still_syncs_basic_record(cfg, store, byte_source, retry, candidate):
    outcome = FilePipeline(cfg, byte_source, store, retry=retry).process(candidate)

    assert outcome.status == 'processed'
    record = store.records['42']
    assert record['processingStage'] == 'basic_extracted'
    assert 'Download failed' in record['notes']
    assert record['contentType'] == 'team_portrait'


def test_sync_failure_is_a_file_error(cfg, store, byte_source, retry, candidate, jpeg_wrapper):
    byte_source.files['42'] = jpeg_wrapper(width=10, height=10)
    store.failures['create'] = [RemoteError(403, 'forbidden')]

    outcome = FilePipeline(cfg, byte_source, store, retry=retry).process(candidate)

    assert outcome.status == 'error'
    assert outcome.stage == 'sync'
    assert outcome.sync_outcome == SyncOutcome.FAILED


def test_unexpected_errors_are_contained(cfg, store, retry, candidate):
    class ExplodingSource:
        def download(self, file_id):
            raise RuntimeError('disk on fire')

    outcome = FilePipeline(cfg, ExplodingSource(), store, retry=retry).process(candidate)
    assert outcome.status == 'error'
    assert outcome.stage == 'fetch'
    assert 'disk on fire' in outcome.message


def test_scheduler_fatal_propagates(cfg, store, retry, candidate):
    class DeadSource:
        def download(self, file_id):
            raise SchedulerFatal('state store gone')

    with pytest.raises(SchedulerFatal):
        FilePipeline(cfg, DeadSource(), store, retry=retry).process(candidate)


@pytest.mark.parametrize("name,fmt", [
    ('a.JPG', 'jpeg'), ('b.tif', 'tiff'), ('c.heif', 'heic'), ('README', None), ('d.xyz', None),
])
def test_declared_format(name, fmt):
    assert declared_format(name) == fmt
