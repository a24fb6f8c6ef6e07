import pytest

from boxer.enrichment.vision import VisionAdapter, color_name, describe_scene
from boxer.exceptions import VisionError
from boxer.models import VisionLabel, VisionObject
from conftest import FakeResponse, FakeSession

VISION_RESPONSE = {
    'responses': [{
        'localizedObjectAnnotations': [
            {'name': 'Person', 'score': 0.9312},
            {'name': 'Chair', 'score': 0.7049},
        ],
        'labelAnnotations': [
            {'description': 'Furniture', 'score': 0.91},
            {'description': 'Interior design', 'score': 0.8},
            {'description': 'Indoor', 'score': 0.75},
        ],
        'textAnnotations': [{'description': 'OPEN\n  STUDIO\tDAY'}],
        'imagePropertiesAnnotation': {'dominantColors': {'colors': [
            {'color': {'red': 200, 'green': 30, 'blue': 40}, 'score': 0.456, 'pixelFraction': 0.12345},
            {'color': {'red': 10, 'green': 10, 'blue': 10}, 'score': 0.2, 'pixelFraction': 0.3},
        ]}},
        'faceAnnotations': [{}, {}],
        'safeSearchAnnotation': {'adult': 'VERY_UNLIKELY', 'violence': 'UNLIKELY'},
    }]
}


@pytest.fixture
def vision_cfg(cfg):
    cfg.vision_api_key = 'vision-key'
    cfg.vision_max_bytes = 1024
    return cfg


def test_rejects_empty_oversize_and_tiff_without_calling_backend(vision_cfg, retry):
    session = FakeSession()
    adapter = VisionAdapter(vision_cfg, session=session, retry=retry)

    with pytest.raises(VisionError) as empty:
        adapter.analyze(b'', 'jpeg')
    with pytest.raises(VisionError) as big:
        adapter.analyze(b'x' * 2048, 'jpeg')
    with pytest.raises(VisionError) as tiff:
        adapter.analyze(b'II*\x00', 'TIFF')

    assert (empty.value.code, big.value.code, tiff.value.code) == ('FILE_EMPTY', 'FILE_TOO_LARGE', 'UNSUPPORTED_FORMAT')
    assert session.requests == []


def test_parses_full_response(vision_cfg, retry):
    session = FakeSession(FakeResponse(200, VISION_RESPONSE))
    analysis = VisionAdapter(vision_cfg, session=session, retry=retry).analyze(b'\xff\xd8data', 'jpeg')

    assert [(o.name, o.confidence) for o in analysis.objects] == [('Person', 0.93), ('Chair', 0.7)]
    assert analysis.text == 'OPEN STUDIO DAY'
    assert analysis.face_count == 2
    assert analysis.confidence_score == 0.82
    assert analysis.safe_search['adult'] == 'VERY_UNLIKELY'

    red = analysis.colors[0]
    assert red.rgb == 'rgb(200, 30, 40)'
    assert (red.score, red.pixel_fraction, red.name) == (0.46, 0.123, 'Red')
    assert analysis.colors[1].name == 'Dark'

    assert analysis.scene_description.startswith('Image contains: people (Person, Human faces detected)')
    assert 'setting (Indoor)' in analysis.scene_description

    method, url, kwargs = session.requests[0]
    assert method == 'POST'
    assert kwargs['params'] == {'key': 'vision-key'}
    assert kwargs['json']['requests'][0]['image']['content']


def test_transient_errors_are_retried(vision_cfg, retry, sleeps):
    session = FakeSession(FakeResponse(503, text='busy'), FakeResponse(200, VISION_RESPONSE))
    analysis = VisionAdapter(vision_cfg, session=session, retry=retry).analyze(b'img', 'jpeg')
    assert analysis.face_count == 2
    assert sleeps == [1.0]


@pytest.mark.parametrize("reply,code", [
    (FakeResponse(403, text='forbidden'), 'HTTP_ERROR'),
    (FakeResponse(200, {'responses': []}), 'EMPTY_RESPONSE'),
    (FakeResponse(200, {'responses': [{'error': {'message': 'bad image'}}]}), 'API_ERROR'),
    (FakeResponse(200, None, text='<html>'), 'API_ERROR'),
])
def test_backend_failures_map_to_codes(vision_cfg, retry, reply, code):
    adapter = VisionAdapter(vision_cfg, session=FakeSession(reply), retry=retry)
    with pytest.raises(VisionError) as exc:
        adapter.analyze(b'img', 'png')
    assert exc.value.code == code


@pytest.mark.parametrize("rgb,name", [
    ((20, 20, 20), 'Dark'),
    ((240, 240, 240), 'Light'),
    ((30, 160, 40), 'Green'),
    ((20, 40, 180), 'Blue'),
    ((180, 180, 60), 'Yellow'),
    ((120, 120, 120), 'Mixed'),
])
def test_color_name(rgb, name):
    assert color_name(*rgb) == name


def test_scene_description_falls_back_to_labels():
    assert describe_scene([], []) is None
    text = describe_scene([VisionObject('Lamp', 0.8)], [VisionLabel('Lighting', 0.9)])
    assert text == 'Image contains: objects (Lamp); concepts (Lighting)'
