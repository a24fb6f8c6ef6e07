import pytest
import requests

from boxer.enrichment.geocode import GeocodingAdapter, parse_place
from conftest import FakeResponse, FakeSession


def comp(name, *types):
    return {'long_name': name, 'short_name': name, 'types': list(types)}


def test_parse_place_prefers_street_address():
    place = parse_place({
        'formatted_address': '100 Main St, Springfield, IL 62701, USA',
        'address_components': [
            comp('100', 'street_number'),
            comp('Main Street', 'route'),
            comp('Downtown', 'neighborhood', 'political'),
            comp('Springfield', 'locality', 'political'),
            comp('Illinois', 'administrative_area_level_1', 'political'),
            comp('United States', 'country', 'political'),
        ],
    })
    assert place.venue == '100 Main Street'
    assert place.neighborhood == 'Downtown'
    assert place.city == 'Springfield'
    assert place.region == 'Illinois'
    assert place.country == 'United States'
    assert place.formatted_address.startswith('100 Main St')


def test_parse_place_fallbacks():
    place = parse_place({'address_components': [
        comp('Tate Modern', 'establishment', 'point_of_interest'),
        comp('Bankside', 'sublocality', 'political'),
        comp('London', 'postal_town'),
        comp('United Kingdom', 'country'),
    ]})
    assert place.venue == 'Tate Modern'
    assert place.neighborhood == 'Bankside'
    assert place.city == 'London'
    assert place.region is None


def test_reverse_returns_first_result(cfg, retry):
    cfg.geocode_api_key = 'geo-key'
    session = FakeSession(FakeResponse(200, {'status': 'OK', 'results': [
        {'formatted_address': 'Somewhere', 'address_components': [comp('Oslo', 'locality')]},
        {'formatted_address': 'Elsewhere', 'address_components': []},
    ]}))
    place = GeocodingAdapter(cfg, session=session, retry=retry).reverse(59.91, 10.75)

    assert place.city == 'Oslo'
    assert session.requests[0][2]['params']['latlng'] == '59.91,10.75'


@pytest.mark.parametrize("reply", [
    FakeResponse(200, {'status': 'ZERO_RESULTS', 'results': []}),
    FakeResponse(200, {'status': 'OK', 'results': []}),
    FakeResponse(200, {'status': 'REQUEST_DENIED', 'error_message': 'bad key'}),
    FakeResponse(400, text='bad request'),
    FakeResponse(200, None, text='not json'),
    requests.exceptions.InvalidURL('bad endpoint'),
])
def test_reverse_failures_return_none(cfg, retry, reply):
    adapter = GeocodingAdapter(cfg, session=FakeSession(reply), retry=retry)
    assert adapter.reverse(1.0, 2.0) is None


def test_reverse_paces_every_call(cfg, retry):
    cfg.geocode_delay = 0.5
    pauses = []
    adapter = GeocodingAdapter(cfg, session=FakeSession(FakeResponse(500, text='oops')),
                               retry=retry, sleep=pauses.append)
    retry.max_attempts = 1
    assert adapter.reverse(1.0, 2.0) is None
    assert pauses == [0.5]
