import os
import tempfile

import pytest

from app import create_app


@pytest.fixture
def client(monkeypatch):
    # Create a temporary file to isolate the database for each test
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    monkeypatch.setenv('TRAIT_DB_PATH', db_path)

    app = create_app({
        'TESTING': True,
        'WTF_CSRF_ENABLED': False,
        'SECRET_KEY': 'dev-key-for-testing'
    })

    with app.test_client() as client:
        yield client

    # Cleanup
    os.close(db_fd)
    for path in (db_path, db_path + '-wal', db_path + '-shm'):
        try:
            os.unlink(path)
        except (FileNotFoundError, PermissionError):
            pass


def _seeded_plant_id(client):
    return client.get('/plants/').get_json()['plants'][0]['id']


def test_overview_loads(client):
    rv = client.get('/')
    assert rv.status_code == 200
    data = rv.get_json()
    assert data['success'] is True
    assert data['areas'] == 7
    assert data['plants'] == 1
    assert data['custom_traits'] == 0


def test_merged_schema(client):
    rv = client.get('/traits/')
    assert rv.status_code == 200
    areas = rv.get_json()['areas']
    assert areas[0]['name'] == '1. Basic Identifiers'


def test_trait_label_fallback(client):
    assert client.get('/traits/label/scape_height').get_json()['label'] == 'Scape Height (inches)'
    assert client.get('/traits/label/old_trait').get_json()['label'] == 'Old Trait'


def test_season_filter(client):
    rv = client.get('/traits/season?season=Summer')
    assert rv.status_code == 200
    fields = [t['field'] for a in rv.get_json()['areas'] for g in a['groups'] for t in g['traits']]
    assert 'scape_height' in fields
    assert 'variety_name' not in fields

    assert client.get('/traits/season?season=Monsoon').status_code == 400


def test_add_custom_trait_to_existing_group(client):
    rv = client.post('/traits/custom/add', json={
        'location': {'kind': 'existing', 'area': '2. Plant Architecture', 'group': 'Bud Traits'},
        'trait': {'label': 'Bud Blast', 'type': 'rating'},
    })
    assert rv.status_code == 200
    data = rv.get_json()
    assert data['field'] == 'custom_bud_blast'
    assert 'custom_bud_blast' in [t['field'] for t in data['custom_traits']['custom_traits']['2. Plant Architecture::Bud Traits']]

    fields = client.get('/traits/fields').get_json()['fields']
    added = next(f for f in fields if f['field'] == 'custom_bud_blast')
    assert added['is_custom'] is True
    assert added['group'] == 'Bud Traits'

    assert client.get('/traits/field-name', query_string={'label': 'Bud Blast'}).get_json()['field'] == 'custom_bud_blast_1'


def test_add_custom_trait_in_new_area(client):
    rv = client.post('/traits/custom/add', json={
        'location': {'kind': 'new-area', 'area': 'Garden Notes', 'group': 'General'},
        'trait': {'label': 'Vigor', 'type': 'select', 'options': ['Low', 'High']},
    })
    assert rv.status_code == 200

    areas = client.get('/traits/').get_json()['areas']
    assert areas[-1]['name'] == 'Garden Notes'
    assert areas[-1]['is_custom'] is True

    rv = client.post('/traits/custom/edit', json={
        'area': 'Garden Notes', 'group': 'General', 'field': 'custom_vigor',
        'updates': {'label': 'Plant Vigor'},
    })
    assert rv.status_code == 200
    assert client.get('/traits/label/custom_vigor').get_json()['label'] == 'Plant Vigor'

    rv = client.post('/traits/custom/area/delete', json={'area': 'Garden Notes'})
    assert rv.status_code == 200
    assert client.get('/traits/').get_json()['areas'][-1]['name'] != 'Garden Notes'


def test_custom_trait_rejections(client):
    rv = client.post('/traits/custom/add', json={
        'location': {'kind': 'existing', 'area': '2. Plant Architecture', 'group': 'Bud Traits'},
        'trait': {'label': 'Height', 'field': 'scape_height'},
    })
    assert rv.status_code == 400
    assert 'scape_height' in rv.get_json()['error']

    rv = client.post('/traits/custom/add', json={
        'location': {'kind': 'sideways', 'area': 'A', 'group': 'B'},
        'trait': {'label': ''},
    })
    assert rv.status_code == 400
    assert len(rv.get_json()['errors']) == 2

    rv = client.post('/traits/custom/area/add', json={'area': '6. Inventory', 'group': 'Extra'})
    assert rv.status_code == 400


def test_plant_observations_grouped(client):
    plant_id = _seeded_plant_id(client)
    rv = client.get(f'/plants/{plant_id}/observations')
    assert rv.status_code == 200
    data = rv.get_json()

    by_field = {t['field']: t for a in data['areas'] for t in a['traits']}
    assert by_field['scape_height']['value_type'] == 'mean'
    assert by_field['scape_height']['current_value'] == 39.5
    assert by_field['ploidy']['value_type'] == 'single'
    assert 'fragrance' not in by_field
    assert data['observed_count'] == len(by_field)


def test_field_detail(client):
    plant_id = _seeded_plant_id(client)
    rv = client.get(f'/plants/{plant_id}/observations/bud_count_per_scape')
    assert rv.status_code == 200
    data = rv.get_json()
    assert data['aggregate']['current_value'] == 17.5
    assert data['aggregate']['range'] == {'min': 16, 'max': 19}
    assert data['aggregate']['observations'][0]['observation_date'] == '2024-07-15'

    assert client.get(f'/plants/{plant_id}/observations/fragrance').status_code == 404


def test_record_observation_and_cycle(client):
    rv = client.post('/plants/add', json={'name': 'Test Lily', 'static_values': {'ploidy': 'Tetraploid'}})
    plant_id = rv.get_json()['plant_id']

    rv = client.post(f'/plants/{plant_id}/observations/add', json={
        'field': 'substance', 'value': 'Good', 'observation_date': '2024-07-01',
    })
    assert rv.status_code == 200

    rv = client.post(f'/plants/{plant_id}/cycles/add', json={
        'cycle_name': 'Summer Bloom', 'start_date': '2024-07-10',
        'observations': {'substance': 'Excellent'},
    })
    assert rv.status_code == 200

    detail = client.get(f'/plants/{plant_id}/observations/substance').get_json()['aggregate']
    assert detail['value_type'] == 'mode'
    assert detail['has_conflicts'] is True
    assert detail['value_count'] == {'Good': 1, 'Excellent': 1}

    rv = client.post(f'/plants/{plant_id}/observations/add', json={'field': 'substance', 'value': 'Good'})
    assert rv.status_code == 400


def test_summary(client):
    plant_id = _seeded_plant_id(client)
    rv = client.get(f'/plants/{plant_id}/summary?fields=scape_height,substance,fragrance')
    summary = {s['field']: s for s in rv.get_json()['summary']}
    assert summary['scape_height']['display_value'] == '40"'
    assert summary['substance']['value'] == 'Good'
    assert summary['fragrance']['display_value'] == '—'


def test_missing_plant(client):
    assert client.get('/plants/999/observations').status_code == 404
    assert client.post('/plants/delete', json={'plant_id': 999}).status_code == 404


def test_custom_group_requires_known_area(client):
    rv = client.post('/traits/custom/group/add', json={'area': 'Nowhere', 'group': 'Extra'})
    assert rv.status_code == 400

    rv = client.post('/traits/custom/group/add', json={'area': '6. Inventory', 'group': 'Storage'})
    assert rv.status_code == 200
    groups = rv.get_json()['custom_traits']['custom_groups']['6. Inventory']
    assert [g['name'] for g in groups] == ['Storage']


def test_custom_trait_edit_rejects_non_object_updates(client):
    client.post('/traits/custom/add', json={
        'location': {'kind': 'new-area', 'area': 'Garden Notes', 'group': 'General'},
        'trait': {'label': 'Vigor'},
    })
    rv = client.post('/traits/custom/edit', json={
        'area': 'Garden Notes', 'group': 'General', 'field': 'custom_vigor',
        'updates': ['label'],
    })
    assert rv.status_code == 400
    assert rv.get_json()['success'] is False
