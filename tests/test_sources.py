import json

import pytest

from boxer.exceptions import RemoteError
from boxer.scanning.sources import BoxFolderSource, FallbackSource, ManifestSource, is_image


class FakeFolderClient:
    def __init__(self, tree):
        self.tree = tree
        self.listed = []

    def list_folder(self, folder_id):
        self.listed.append(folder_id)
        return iter(self.tree.get(folder_id, []))


class StaticSource:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error

    def iter_candidates(self):
        if self.error:
            raise self.error
        return iter(self.items)


def _item(file_id, name, kind='file', **extra):
    return dict({'id': file_id, 'name': name, 'type': kind}, **extra)


def test_manifest_accepts_list_and_wrapped_forms(tmp_path):
    as_list = tmp_path / 'list.json'
    as_list.write_text(json.dumps([
        {'id': '1', 'name': 'a.jpg', 'path': 'Events/Gala', 'size': 10, 'created_at': '2024-01-01'},
        {'id': '2', 'name': 'notes.txt'},
        {'name': 'orphan.png'},
    ]))
    wrapped = tmp_path / 'wrapped.json'
    wrapped.write_text(json.dumps({'files': [{'file_id': '9', 'name': 'b.HEIC'}]}))

    listed = list(ManifestSource(as_list).iter_candidates())
    assert [(c.file_id, c.path, c.size) for c in listed] == [('1', 'Events/Gala', 10)]
    assert [c.file_id for c in ManifestSource(wrapped).iter_candidates()] == ['9']


def test_folder_walk_is_breadth_first_and_filters_images():
    client = FakeFolderClient({
        '0': [_item('10', 'Clients', 'folder'), _item('1', 'root.jpg'), _item('2', 'doc.pdf')],
        '10': [_item('3', 'deep.png', path_collection={'entries': [{'name': 'All Files'}, {'name': 'Clients'}]})],
    })
    candidates = list(BoxFolderSource(client).iter_candidates())

    assert [c.file_id for c in candidates] == ['1', '3']
    assert candidates[1].path == 'Clients'
    assert client.listed == ['0', '10']


def test_folder_walk_non_recursive():
    client = FakeFolderClient({'0': [_item('10', 'Sub', 'folder'), _item('1', 'a.gif')]})
    assert [c.file_id for c in BoxFolderSource(client, recursive=False).iter_candidates()] == ['1']
    assert client.listed == ['0']


@pytest.mark.parametrize("primary", [
    StaticSource(error=FileNotFoundError('manifest.json')),
    StaticSource(error=ValueError('Expecting value')),
    StaticSource(error=RemoteError(500, 'down')),
    StaticSource([]),
])
def test_fallback_used_when_primary_unusable(primary):
    live = StaticSource([object()])
    assert len(list(FallbackSource(primary, live).iter_candidates())) == 1


def test_fallback_not_queried_when_primary_has_candidates():
    live = StaticSource(error=AssertionError('live listing should not run'))
    assert list(FallbackSource(StaticSource(['x']), live).iter_candidates()) == ['x']


def test_missing_manifest_file_falls_back(tmp_path):
    live = StaticSource(['live'])
    source = FallbackSource(ManifestSource(tmp_path / 'absent.json'), live)
    assert list(source.iter_candidates()) == ['live']


@pytest.mark.parametrize("name,expected", [
    ('a.JPG', True), ('b.webp', True), ('c.tif', True), ('d.mov', False), ('noext', False),
])
def test_is_image(name, expected):
    assert is_image(name) is expected
