import pytest

from boxer.metadata.heuristics import ContentAnalyzer, clean_name, dimensions_from_name, extract_keywords


def test_sculpture_scenario():
    result = ContentAnalyzer().analyze('Artwork/Studio1', 'sculpture_3000x2000_studio1.jpg')

    assert result.content_type == 'artwork'
    assert result.department == 'design'
    assert result.importance == 'high'
    assert result.facility_location == 'studio_1'
    for word in ('sculpture', 'studio1', 'artwork'):
        assert word in result.keywords
    assert (result.width, result.height) == (3000, 2000)


@pytest.mark.parametrize("path,name,content_type,extra", [
    ('Marketing/Brand', 'hero.jpg', 'marketing_material', {'usage_rights': 'marketing_approved'}),
    ('Team', 'jane.jpg', 'team_portrait', {'department': 'administration'}),
    ('Photos', 'grand_opening_event.jpg', 'event_photo', {'importance': 'high'}),
    ('Fabrication', 'weld.jpg', 'fabrication_process', {'facility_location': 'fabrication_workshop'}),
    ('Misc', 'IMG_0001.jpg', 'other', {'department': 'general'}),
])
def test_content_rules(path, name, content_type, extra):
    result = ContentAnalyzer().analyze(path, name)
    assert result.content_type == content_type
    for attr, value in extra.items():
        assert getattr(result, attr) == value


def test_first_matching_rule_wins():
    # Logo beats the artwork folder
    result = ContentAnalyzer().analyze('Artwork', 'logo_final.png')
    assert result.content_type == 'marketing_material'


@pytest.mark.parametrize("path,location", [
    ('Building/Lobby', 'main_lobby'),
    ('Shop/Metal Shop', 'metal_shop'),
    ('Site/Loading Dock', 'loading_dock'),
    ('Archive', 'unknown'),
])
def test_location_map(path, location):
    assert ContentAnalyzer().analyze(path, 'photo.jpg').facility_location == location


def test_keywords_drop_filler_and_dedupe():
    keywords = extract_keywords('All Files/Projects/Bridge', 'Bridge-night_view 1920x1080.jpg')
    assert keywords == ['projects', 'bridge', 'night', 'view']


def test_clean_name():
    assert clean_name('sculpture_3000x2000_studio1.jpg') == 'sculpture studio1'


@pytest.mark.parametrize("name,expected", [
    ('banner_1200x628.png', (1200, 628)),
    ('photo_1920X1080.jpg', (1920, 1080)),
    ('plain.jpg', (None, None)),
    ('bad_0x100.jpg', (None, None)),
])
def test_dimensions_from_name(name, expected):
    assert dimensions_from_name(name) == expected


def test_location_keyword_overrides_rule_location():
    result = ContentAnalyzer().analyze('Fabrication/Lobby', 'install.jpg')
    assert result.content_type == 'fabrication_process'
    assert result.facility_location == 'main_lobby'


def test_rule_location_kept_without_keyword_hit():
    assert ContentAnalyzer().analyze('Projects', 'wip_frame.jpg').facility_location == 'fabrication_workshop'
