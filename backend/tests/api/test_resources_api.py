"""Tests for the resource editor HTTP API."""

import base64
import codecs

import pytest
from fastapi.testclient import TestClient

from config.editor_settings import EditorSettings
from fastapi_core.session_registry import reset_resource_session
from fastapi_server import app
from services.resource_session import ResourceSession

SPEC_ITEM_TEXT = (
    "//dwID\tszName\tdwItemKind1\tdwDestParam1\tnAdjParamVal1\r\n"
    "II_WEA_AXE_RODNEY\tIDS_PROPITEM_TXT_000124\t2\tDST_STR\t5\r\n"
    "II_WEA_SWO_WOODEN\tIDS_PROPITEM_TXT_000126\t2\t=\t=\r\n"
    "II_ARM_M_CLO_BODY\tIDS_PROPITEM_TXT_000999\t4\t=\t=\r\n"
)

PROP_ITEM_TEXT = (
    'IDS_PROPITEM_TXT_000124\t"Rodney Axe"\r\n'
    'IDS_PROPITEM_TXT_000125\t"A heavy cutting weapon..."\r\n'
    'IDS_PROPITEM_TXT_000126\t"Wooden Sword"\r\n'
)

DEFINE_ITEM_TEXT = "#define II_WEA_AXE_RODNEY 21\n#define II_ARM_M_CLO_BODY 500\n"

MDL_DYNA_TEXT = (
    "{\n"
    "\"Item_WeaAxeRodney\" II_WEA_AXE_RODNEY MODELTYPE_MESH \"\" 0\n"
    "\"Item_ArmCloth\" II_ARM_M_CLO_BODY MODELTYPE_MESH \"Part_mCloth\" 0\n"
    "}\n"
)

UPLOAD = {
    'files': [
        {'kind': 'spec_item', 'content': SPEC_ITEM_TEXT},
        {'kind': 'prop_item', 'content': PROP_ITEM_TEXT},
        {'kind': 'define_item', 'content': DEFINE_ITEM_TEXT},
        {'kind': 'mdl_dyna', 'content': MDL_DYNA_TEXT},
    ]
}


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / 'out'


@pytest.fixture
def settings(tmp_path, out_dir, monkeypatch):
    for name in ('FLYFF_RESOURCE_DIR', 'FLYFF_SAVE_DIRS', 'FLYFF_SAVE_ENCODING', 'FLYFF_LEGACY_ENCODING',
                 'FLYFF_CREATE_BACKUPS', 'FLYFF_PARSE_BATCH_SIZE', 'FLYFF_MODEL_OVERRIDES'):
        monkeypatch.delenv(name, raising=False)
    settings = EditorSettings(settings_path=tmp_path / 'settings.json')
    settings.set_save_folders([str(out_dir)])
    return settings


@pytest.fixture
def client(settings):
    reset_resource_session(ResourceSession(settings))
    yield TestClient(app)
    reset_resource_session()


@pytest.fixture
def loaded_client(client):
    response = client.post('/api/resources/upload', json=UPLOAD)
    assert response.status_code == 200
    return client


@pytest.fixture
def blocked_dir(tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('in the way')
    return blocker / 'out'


class TestSystemEndpoints:

    def test_health(self, client):
        response = client.get('/api/health/')
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    def test_info_reports_save_folders(self, client, out_dir):
        data = client.get('/api/info/').json()
        assert data['resources_loaded'] is False
        assert data['save_folders'] == [str(out_dir)]

    def test_request_id_header(self, client):
        assert 'X-Request-ID' in client.get('/api/health/').headers


class TestLoading:

    def test_requests_before_load_are_conflicts(self, client):
        response = client.get('/api/items')
        assert response.status_code == 409
        assert response.json()['error'] == 'resources_not_loaded'

    def test_status_before_load(self, client):
        data = client.get('/api/resources/status').json()
        assert data['loaded'] is False
        assert data['item_count'] == 0

    def test_upload(self, client):
        response = client.post('/api/resources/upload', json=UPLOAD)
        data = response.json()

        assert response.status_code == 200
        assert data['item_count'] == 3
        assert data['string_count'] == 2
        assert data['define_count'] == 2
        assert data['model_count'] == 2
        assert data['files']['spec_item']['origin'] == 'upload'

    def test_upload_base64_utf16(self, client):
        payload = codecs.BOM_UTF16_LE + PROP_ITEM_TEXT.encode('utf-16-le')
        response = client.post('/api/resources/upload', json={'files': [
            {'kind': 'spec_item', 'content': SPEC_ITEM_TEXT},
            {'kind': 'prop_item', 'content': base64.b64encode(payload).decode('ascii'), 'encoding': 'base64'},
        ]})

        assert response.status_code == 200
        assert response.json()['files']['prop_item']['encoding'] == 'utf-16-le'
        assert response.json()['files']['define_item']['present'] is False
        item = client.get('/api/items/II_WEA_AXE_RODNEY').json()
        assert item['display_name'] == 'Rodney Axe'

    def test_upload_without_files(self, client):
        response = client.post('/api/resources/upload', json={'files': []})
        assert response.status_code == 400
        assert response.json()['error'] == 'http_error'

    def test_upload_bad_base64(self, client):
        response = client.post('/api/resources/upload', json={'files': [
            {'kind': 'spec_item', 'content': '***', 'encoding': 'base64'},
        ]})
        assert response.status_code == 400

    def test_upload_unknown_kind(self, client):
        response = client.post('/api/resources/upload', json={'files': [{'kind': 'other', 'content': ''}]})
        assert response.status_code == 422
        assert response.json()['error'] == 'validation_error'

    def test_load_from_directory(self, client, tmp_path):
        resource_dir = tmp_path / 'resource'
        resource_dir.mkdir()
        (resource_dir / 'Spec_Item.txt').write_bytes(SPEC_ITEM_TEXT.encode('cp1252'))
        (resource_dir / 'propItem.txt.txt').write_bytes(PROP_ITEM_TEXT.encode('cp1252'))

        response = client.post('/api/resources/load', json={'directory': str(resource_dir)})
        data = response.json()

        assert response.status_code == 200
        assert data['item_count'] == 3
        assert data['files']['spec_item']['origin'] == str(resource_dir)
        assert data['files']['mdl_dyna']['present'] is False
        assert any(d['source'] == 'mdlDyna.inc' for d in data['diagnostics'])

    def test_load_from_empty_directory(self, client, tmp_path):
        response = client.post('/api/resources/load', json={'directory': str(tmp_path)})
        assert response.status_code == 404


class TestItems:

    def test_list_and_search(self, loaded_client):
        data = loaded_client.get('/api/items').json()
        assert data['total'] == 3
        assert [i['id'] for i in data['items']] == ['II_WEA_AXE_RODNEY', 'II_WEA_SWO_WOODEN', 'II_ARM_M_CLO_BODY']

        data = loaded_client.get('/api/items', params={'search': 'rodney'}).json()
        assert data['total'] == 1
        assert data['items'][0]['define_id'] == '21'

    def test_pagination_bounds(self, loaded_client):
        assert loaded_client.get('/api/items', params={'limit': 0}).status_code == 422
        data = loaded_client.get('/api/items', params={'offset': 2, 'limit': 5}).json()
        assert [i['id'] for i in data['items']] == ['II_ARM_M_CLO_BODY']

    def test_get_item(self, loaded_client):
        item = loaded_client.get('/api/items/II_ARM_M_CLO_BODY').json()
        assert item['display_name'] == 'IDS_PROPITEM_TXT_000999'
        assert item['define_id'] == '500'
        assert item['model_file_name'] == 'Item_ArmCloth'
        assert item['mesh_name'] == 'Part_mCloth'

        rodney = loaded_client.get('/api/items/II_WEA_AXE_RODNEY').json()
        assert rodney['effects'] == [{'type': 'DST_STR', 'value': 5}]

    def test_unknown_item(self, loaded_client):
        response = loaded_client.get('/api/items/II_NOPE')
        assert response.status_code == 404
        assert response.json()['error'] == 'item_not_found'


class TestEditing:

    def test_edit_display_name(self, loaded_client):
        response = loaded_client.patch('/api/items/II_WEA_AXE_RODNEY',
                                       json={'field': 'display_name', 'value': 'Rodney Great Axe'})
        data = response.json()

        assert response.status_code == 200
        assert data['edit']['old_value'] == 'Rodney Axe'
        assert data['edit']['resource'] == 'prop_item'
        assert data['item']['display_name'] == 'Rodney Great Axe'
        assert data['dirty'] == ['prop_item']

    def test_edit_row_field(self, loaded_client):
        data = loaded_client.patch('/api/items/II_WEA_AXE_RODNEY',
                                   json={'field': 'nAdjParamVal1', 'value': '9'}).json()
        assert data['item']['effects'] == [{'type': 'DST_STR', 'value': 9}]
        assert data['dirty'] == ['spec_item']

    def test_rejected_edit(self, loaded_client):
        response = loaded_client.patch('/api/items/II_WEA_AXE_RODNEY', json={'field': 'szNope', 'value': 'x'})
        assert response.status_code == 400
        assert response.json()['error'] == 'edit_rejected'
        assert response.json()['field'] == 'szNope'
        assert loaded_client.get('/api/resources/status').json()['dirty'] == []

    def test_edit_history(self, loaded_client):
        loaded_client.patch('/api/items/II_WEA_AXE_RODNEY', json={'field': 'dwItemKind1', 'value': '3'})
        loaded_client.patch('/api/items/II_ARM_M_CLO_BODY', json={'field': 'mesh_name', 'value': 'Part_mNew'})

        data = loaded_client.get('/api/edits').json()
        assert data['total'] == 2
        assert [e['resource'] for e in data['edits']] == ['spec_item', 'mdl_dyna']


class TestSaving:

    def test_save_session(self, loaded_client, out_dir):
        loaded_client.patch('/api/items/II_WEA_AXE_RODNEY', json={'field': 'dwItemKind1', 'value': '3'})

        response = loaded_client.post('/api/resources/save')
        data = response.json()

        assert response.status_code == 200
        assert data['success'] is True
        assert [r['file_name'] for r in data['results']] == ['Spec_Item.txt']
        saved = (out_dir / 'Spec_Item.txt').read_bytes().decode('cp1252')
        assert "II_WEA_AXE_RODNEY\tIDS_PROPITEM_TXT_000124\t3\tDST_STR\t5\r\n" in saved
        assert loaded_client.get('/api/resources/status').json()['dirty'] == []

    def test_nothing_to_save(self, loaded_client):
        data = loaded_client.post('/api/resources/save').json()
        assert data == {'success': True, 'message': 'Nothing to save', 'results': []}

    def test_save_single_file(self, client, out_dir):
        response = client.post('/api/save-resource', json={'fileName': 'Spec_Item.txt', 'content': 'dwID\n'})
        assert response.status_code == 200
        assert response.json()['success'] is True
        assert (out_dir / 'Spec_Item.txt').read_bytes() == b'dwID\n'

    def test_save_single_file_missing_content(self, client):
        response = client.post('/api/save-resource', json={'fileName': 'Spec_Item.txt'})
        assert response.status_code == 400
        assert response.json()['detail'] == 'Missing fileName or content'

    def test_save_rejects_paths(self, client):
        response = client.post('/api/save-resource', json={'fileName': '../Spec_Item.txt', 'content': 'x'})
        assert response.status_code == 400
        assert response.json()['error'] == 'invalid_file_name'

    def test_save_rejects_unknown_encoding(self, client):
        response = client.post('/api/save-resource',
                               json={'fileName': 'Spec_Item.txt', 'content': 'x', 'encoding': 'ebcdic'})
        assert response.status_code == 400

    def test_save_multiple_files(self, client, out_dir):
        response = client.post('/api/save-resource', json={'files': [
            {'name': 'Spec_Item.txt', 'content': 'a'},
            {'name': '../evil.txt', 'content': 'b'},
            {'content': 'c'},
        ]})
        data = response.json()

        assert response.status_code == 200
        assert data['success'] is False
        assert [r['success'] for r in data['results']] == [True, False, False]
        assert data['results'][2]['message'] == 'Missing filename or content'
        assert (out_dir / 'Spec_Item.txt').read_bytes() == b'a'

    def test_save_empty_file_list(self, client):
        response = client.post('/api/save-resource', json={'files': []})
        assert response.status_code == 400
        assert response.json()['detail'] == 'No files provided'

    def test_failed_save_offers_download(self, client, blocked_dir):
        client.patch('/api/settings', json={'save_folders': [str(blocked_dir)]})

        response = client.post('/api/save-resource', json={'fileName': 'Spec_Item.txt', 'content': 'payload'})
        data = response.json()

        assert response.status_code == 500
        assert data['error'] == 'save_failed'
        assert data['download_url'] == '/api/resources/download/Spec_Item.txt'
        assert len(data['attempts']) == 1
        assert client.get('/api/resources/status').json()['pending_downloads'] == {'Spec_Item.txt': 7}

        download = client.get(data['download_url'])
        assert download.status_code == 200
        assert download.content == b'payload'
        assert 'attachment' in download.headers['content-disposition']
        assert client.get(data['download_url']).status_code == 404

    def test_download_of_unsaved_edits(self, loaded_client):
        loaded_client.patch('/api/items/II_WEA_AXE_RODNEY',
                            json={'field': 'display_name', 'value': 'Rodney Great Axe'})
        download = loaded_client.get('/api/resources/download/propItem.txt.txt')
        assert download.status_code == 200
        assert download.content.startswith(b'IDS_PROPITEM_TXT_000124\t"Rodney Great Axe"\r\n')


class TestSettings:

    def test_get_settings(self, client, out_dir):
        data = client.get('/api/settings').json()
        assert data['save_candidates'] == [str(out_dir)]
        assert data['save_encoding'] == 'cp1252'

    def test_update_settings(self, client):
        data = client.patch('/api/settings', json={'save_encoding': 'cp949', 'create_backups': True}).json()
        assert data['save_encoding'] == 'cp949'
        assert data['create_backups'] is True

    def test_invalid_settings(self, client, tmp_path):
        assert client.patch('/api/settings', json={'save_encoding': 'ebcdic'}).status_code == 400
        assert client.patch('/api/settings', json={'resource_folder': str(tmp_path / 'no')}).status_code == 400
