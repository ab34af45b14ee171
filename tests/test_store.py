from datetime import datetime

from agent_crm.storage import CLIENTS_KEY, OPPORTUNITIES_KEY, MemoryStorage
from agent_crm.store import Collection, DataStore


def snapshot(storage, key):
    return Collection(storage, key).load()


def test_add_assigns_id_and_created_at(store):
    c = store.clients.add({'full_name': 'Ana Silva', 'status': 'Novo'})
    assert c['id']
    assert isinstance(c['created_at'], datetime)
    assert store.clients.get(c['id']) == c


def test_ids_are_unique_for_fast_adds(store):
    ids = {store.clients.add({'full_name': f'Cliente {i}'})['id'] for i in range(50)}
    assert len(ids) == 50


def test_snapshot_matches_memory_after_each_mutation(storage, store):
    a = store.clients.add({'full_name': 'Ana Silva', 'status': 'Novo', 'potential_value': 1000})
    assert snapshot(storage, CLIENTS_KEY) == store.clients.items

    b = store.clients.add({'full_name': 'Bruno Costa', 'status': 'Em Contato'})
    assert snapshot(storage, CLIENTS_KEY) == store.clients.items

    store.clients.update({**a, 'status': 'Qualificado'})
    assert snapshot(storage, CLIENTS_KEY) == store.clients.items

    store.clients.delete(b['id'])
    assert snapshot(storage, CLIENTS_KEY) == store.clients.items
    assert [c['full_name'] for c in store.clients.items] == ['Ana Silva']


def test_update_unknown_id_is_noop(storage, store):
    store.clients.add({'full_name': 'Ana Silva'})
    before = storage.documents[CLIENTS_KEY]
    assert store.clients.update({'id': 'missing', 'full_name': 'X'}) is None
    assert storage.documents[CLIENTS_KEY] == before


def test_delete_reports_whether_removed(store):
    c = store.clients.add({'full_name': 'Ana Silva'})
    assert store.clients.delete(c['id']) is True
    assert store.clients.delete(c['id']) is False


def test_load_restores_timestamps(storage):
    DataStore(storage).opportunities.add({'name': 'Deal A', 'stage': 'proposta'})
    reloaded = DataStore(storage)
    assert isinstance(reloaded.opportunities.items[0]['created_at'], datetime)


def test_load_accepts_js_style_timestamps():
    storage = MemoryStorage()
    storage.set(OPPORTUNITIES_KEY, [{'id': '1', 'name': 'Deal', 'created_at': '2024-03-05T12:30:00.000Z'}])
    opp = DataStore(storage).opportunities.items[0]
    assert opp['created_at'].year == 2024
    assert opp['created_at'].tzinfo is None
    assert opp['created_at'] < DataStore(storage).opportunities.add({'name': 'Novo'})['created_at']


def test_corrupt_snapshot_yields_empty_collection(caplog):
    storage = MemoryStorage()
    storage.documents[CLIENTS_KEY] = '{not json'
    storage.set(OPPORTUNITIES_KEY, {'unexpected': 'shape'})
    store = DataStore(storage)
    assert store.clients.items == []
    assert store.opportunities.items == []
    assert 'Failed to load crm_clients' in caplog.text


def test_rows_without_id_are_skipped(caplog):
    storage = MemoryStorage()
    storage.set(CLIENTS_KEY, [{'full_name': 'Sem id'}, 'lixo', {'id': '7', 'full_name': 'Ana Silva'}])
    store = DataStore(storage)
    assert [c['full_name'] for c in store.clients.all()] == ['Ana Silva']
    assert store.clients.get('123') is None
    assert store.clients.update({'id': '123', 'full_name': 'X'}) is None
    assert store.clients.delete('123') is False
    assert 'Skipping 2 malformed rows in crm_clients' in caplog.text


def test_find_duplicate_client_ignores_case_and_spaces(store):
    c = store.clients.add({'full_name': 'Ana  Silva'})
    assert store.find_duplicate_client(' ana silva ')['id'] == c['id']
    assert store.find_duplicate_client('Ana Souza') is None
    assert store.find_duplicate_client('') is None


def test_link_client_fills_id_from_name(store):
    c = store.clients.add({'full_name': 'Ana Silva'})
    opp = store.link_client({'name': 'Deal A', 'client_name': 'Ana Silva'})
    assert opp['client_id'] == c['id']


def test_link_client_unknown_name_left_unlinked(store):
    opp = store.link_client({'name': 'Deal A', 'client_name': 'Ninguém'})
    assert opp.get('client_id') is None


def test_update_client_renames_linked_opportunities(store):
    c = store.clients.add({'full_name': 'Ana Silva'})
    opp = store.opportunities.add(store.link_client({'name': 'Deal A', 'client_name': 'Ana Silva'}))
    store.update_client({**c, 'full_name': 'Ana Silva Souza'})
    assert store.opportunities.get(opp['id'])['client_name'] == 'Ana Silva Souza'


def test_opportunities_for_client_by_id_and_legacy_name(store):
    ana = store.clients.add({'full_name': 'Ana Silva'})
    other = store.clients.add({'full_name': 'Bruno Costa'})
    linked = store.opportunities.add({'name': 'A', 'client_name': 'Ana Silva', 'client_id': ana['id']})
    legacy = store.opportunities.add({'name': 'B', 'client_name': 'Ana Silva'})
    store.opportunities.add({'name': 'C', 'client_name': 'Ana Silva', 'client_id': other['id']})
    found = store.opportunities_for_client(ana)
    assert [o['id'] for o in found] == [linked['id'], legacy['id']]


def test_tasks_for_client_matches_name_or_description(store):
    ana = store.clients.add({'full_name': 'Ana Silva'})
    t1 = store.tasks.add({'name': 'Ligar para Ana Silva', 'description': ''})
    t2 = store.tasks.add({'name': 'Reunião', 'description': 'Proposta de Ana Silva'})
    store.tasks.add({'name': 'Outra tarefa', 'description': ''})
    assert [t['id'] for t in store.tasks_for_client(ana)] == [t1['id'], t2['id']]
