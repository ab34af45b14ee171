# Flask front end: opportunity board, client list and the JSON API.
# Run:  python -m agent_crm  (then open http://127.0.0.1:4500)

import logging
from datetime import datetime

from flask import Flask, request, redirect, url_for, render_template_string, jsonify, abort
from flask.json.provider import DefaultJSONProvider

from .agents import AgentDirectory
from .chat import ChatHistoryManager
from .config import Config
from .conversation import ChatSession
from .dashboard import summary, monthly_sales, won_opportunities, client_heatmap, sales_report
from .gateway import GeminiGateway
from .models import (
    STAGES, CLIENT_STATUSES, client_payload, opportunity_payload, task_payload, agent_payload,
)
from .pipeline import Pipeline
from .storage import JsonFileStorage
from .store import DataStore

logger = logging.getLogger(__name__)


class CrmJSONProvider(DefaultJSONProvider):
    ensure_ascii = False
    sort_keys = False

    @staticmethod
    def default(o):
        if isinstance(o, datetime):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


class CrmState:
    """Everything the routes share: stores, pipeline, gateway and open chat sessions."""

    def __init__(self, storage, gateway):
        self.store = DataStore(storage)
        self.pipeline = Pipeline(self.store)
        self.agents = AgentDirectory(storage)
        self.history = ChatHistoryManager(storage)
        self.gateway = gateway
        self.sessions = {}

    def session_for(self, agent):
        session = self.sessions.get(agent['id'])
        if session is None:
            session = ChatSession(agent, self.history, self.gateway, self.agents)
            session.open()
            self.sessions[agent['id']] = session
        return session


# ------------------------ Templates ------------------------

BASE_HTML = """
<!doctype html>
<html lang="pt-br">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{{ title or 'Agent CRM' }}</title>
    <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css" rel="stylesheet">
    <script src="https://cdn.jsdelivr.net/npm/sortablejs@1.15.3/Sortable.min.js"></script>
    <style>
      body { background:#f8f9fa; }
      .kanban { display:flex; gap:1rem; overflow-x:auto; padding-bottom:1rem; }
      .kanban-column { flex:0 0 18rem; background:#fff; border-radius:.75rem; box-shadow:0 2px 12px rgba(0,0,0,.05); padding:.75rem; }
      .kanban-header { font-weight:700; font-size:1rem; margin-bottom:.25rem; display:flex; justify-content:space-between; align-items:center; }
      .kanban-list { min-height:20rem; }
      .card { cursor:grab; }
    </style>
  </head>
  <body>
    <nav class="navbar navbar-expand-lg bg-body-tertiary mb-3">
      <div class="container-fluid">
        <a class="navbar-brand" href="{{ url_for('board') }}">Agent CRM</a>
        <div class="d-flex gap-2">
          <a class="btn btn-outline-secondary" href="{{ url_for('board') }}">Pipeline</a>
          <a class="btn btn-outline-secondary" href="{{ url_for('list_view') }}">Clientes</a>
        </div>
      </div>
    </nav>
    <div class="container-fluid">
      {{ body|safe }}
    </div>
  </body>
</html>
"""

BOARD_HTML = """
<div class="d-flex justify-content-between align-items-center mb-2">
  <h1 class="h4 mb-0">Pipeline de Oportunidades</h1>
  <input id="boardSearch" class="form-control" placeholder="Buscar oportunidade ou cliente..." style="max-width:320px">
</div>
<div class="kanban">
  {% for stage_id, stage_name in stages %}
  <div class="kanban-column">
    <div class="kanban-header">{{ stage_name }} <span class="badge text-bg-light">{{ columns[stage_id]|length }}</span></div>
    <div class="small text-muted mb-2">Total: R$ {{ '{:,.2f}'.format(totals[stage_id]) }}</div>
    <div class="kanban-list" data-stage="{{ stage_id }}">
      {% for o in columns[stage_id] %}
      <div class="card mb-2 crm-card" data-id="{{ o['id'] }}" data-name="{{ (o.get('name') or '')|lower }}" data-client="{{ (o.get('client_name') or '')|lower }}">
        <div class="card-body py-2">
          <div class="fw-semibold small">{{ o.get('name') }}</div>
          <div class="small text-muted">{{ o.get('client_name') or '-' }}</div>
          <div class="small">R$ {{ '{:,.2f}'.format(o.get('value') or 0) }}</div>
          {% if o.get('expected_close_date') %}<div class="small text-muted">{{ o['expected_close_date'] }}</div>{% endif %}
          {% if o.get('next_action') %}<div class="small bg-light rounded p-1 mt-1"><strong>Próxima ação:</strong> {{ o['next_action'] }}</div>{% endif %}
        </div>
      </div>
      {% endfor %}
    </div>
  </div>
  {% endfor %}
</div>
<script>
  document.getElementById('boardSearch').addEventListener('input', function(){
    const q = (this.value || '').toLowerCase();
    document.querySelectorAll('.crm-card').forEach(card => {
      const hay = [card.dataset.name, card.dataset.client].join(' ');
      card.style.display = hay.includes(q) ? '' : 'none';
    });
  });
  document.querySelectorAll('.kanban-list').forEach(function(list){
    new Sortable(list, {
      group: 'kanban', animation: 150,
      onAdd: function (evt) {
        const card = evt.item; const id = card.getAttribute('data-id'); const stage = evt.to.getAttribute('data-stage');
        fetch('/api/opportunities/' + id + '/stage', { method:'POST', headers:{'Content-Type':'application/json'}, body: JSON.stringify({ stage })})
          .then(r => r.json()).then(j => {
            if(!j.ok){ alert('Falha ao atualizar: ' + (j.error || 'desconhecido')); evt.from.insertBefore(card, evt.from.children[evt.oldIndex]); }
            else { window.location.reload(); }
          })
          .catch(() => { alert('Erro de rede'); evt.from.insertBefore(card, evt.from.children[evt.oldIndex]); });
      }
    });
  });
</script>
"""

LIST_HTML = """
<div class='d-flex justify-content-between align-items-center mb-3'>
  <h1 class='h4 mb-0'>Clientes</h1>
  <form class='d-flex gap-2' method='get'>
    <input class='form-control' type='search' name='q' value='{{ q }}' placeholder='Buscar nome, email, telefone...'>
    <select class='form-select' name='sort'>
      <option value='created' {% if sort=='created' %}selected{% endif %}>Mais recentes</option>
      <option value='name' {% if sort=='name' %}selected{% endif %}>Nome</option>
    </select>
    <button class='btn btn-outline-secondary' type='submit'>Aplicar</button>
  </form>
</div>
<table class='table table-hover align-middle'>
  <thead><tr><th>Nome</th><th>Status</th><th>Origem</th><th>Email</th><th>Telefone</th><th>Valor potencial</th><th>Criado em</th></tr></thead>
  <tbody>
    {% for c in clients %}
    <tr>
      <td>{{ c.get('full_name') }}</td>
      <td>{% if c.get('status') in statuses %}{{ c['status'] }}{% else %}<span class='text-muted'>{{ c.get('status') }}</span>{% endif %}</td>
      <td>{{ c.get('source') or '-' }}</td>
      <td>{{ c.get('email') or '' }}</td>
      <td>{{ c.get('phone') or '' }}</td>
      <td>R$ {{ '{:,.2f}'.format(c.get('potential_value') or 0) }}</td>
      <td>{{ c['created_at'].strftime('%d/%m/%Y %H:%M') if c.get('created_at') else '' }}</td>
    </tr>
    {% endfor %}
  </tbody>
</table>
"""


def search_clients(clients, q='', sort='created'):
    q = (q or '').strip().lower()
    items = list(clients)
    if q:
        def match(c):
            hay = ' '.join([
                (c.get('full_name') or '').lower(),
                (c.get('email') or '').lower(),
                (c.get('phone') or '').lower(),
                (c.get('source') or '').lower(),
            ])
            return q in hay
        items = [c for c in items if match(c)]
    if sort == 'name':
        return sorted(items, key=lambda x: (x.get('full_name') or '').lower())
    return sorted(items, key=lambda x: x.get('created_at') or datetime.min, reverse=True)


def create_app(config=None, storage=None, gateway=None):
    config = config or Config
    app = Flask(__name__)
    app.config.from_object(config)
    app.secret_key = app.config['SECRET_KEY']
    app.json = CrmJSONProvider(app)

    if storage is None:
        storage = JsonFileStorage(app.config['DATA_DIR'])
        logger.info("Storing data in %s", app.config['DATA_DIR'])
    if gateway is None:
        gateway = GeminiGateway.from_config(config)
    state = CrmState(storage, gateway)
    app.extensions['crm'] = state
    store = state.store

    def payload():
        data = request.get_json(force=True, silent=True)
        return data if isinstance(data, dict) else {}

    def found(entity):
        if entity is None:
            abort(404)
        return entity

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"ok": False, "error": str(e)}), 400

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return jsonify({"ok": False, "error": "Not found"}), 404
        return render_template_string(BASE_HTML, title='Não encontrado',
                                      body='<div class="alert alert-warning">Não encontrado.</div>'), 404

    # ------------------------ Pages ------------------------

    @app.route('/')
    def home():
        return redirect(url_for('board'))

    @app.route('/board')
    def board():
        body = render_template_string(BOARD_HTML, stages=STAGES,
                                      columns=state.pipeline.columns(),
                                      totals=state.pipeline.column_totals())
        return render_template_string(BASE_HTML, title='Pipeline', body=body)

    @app.route('/clients')
    def list_view():
        q = request.args.get('q') or ''
        sort = request.args.get('sort') or 'created'
        clients = search_clients(store.clients.all(), q, sort)
        body = render_template_string(LIST_HTML, clients=clients, q=q, sort=sort,
                                      statuses=CLIENT_STATUSES)
        return render_template_string(BASE_HTML, title='Clientes', body=body)

    # ------------------------ Clients ------------------------

    @app.route('/api/clients')
    def api_clients():
        clients = search_clients(store.clients.all(), request.args.get('q'),
                                 request.args.get('sort') or 'created')
        return jsonify(clients)

    @app.route('/api/clients', methods=['POST'])
    def api_add_client():
        data = payload()
        client = client_payload(data)
        dup = store.find_duplicate_client(client['full_name'])
        if dup and not data.get('force'):
            return jsonify({"ok": False, "error": "Duplicate client", "id": dup['id']}), 409
        return jsonify(store.clients.add(client)), 201

    @app.route('/api/clients/<cid>')
    def api_client(cid):
        return jsonify(found(store.clients.get(cid)))

    @app.route('/api/clients/<cid>', methods=['PUT'])
    def api_update_client(cid):
        client = found(store.clients.get(cid))
        return jsonify(store.update_client(client_payload(payload(), existing=client)))

    @app.route('/api/clients/<cid>', methods=['DELETE'])
    def api_delete_client(cid):
        if not store.clients.delete(cid):
            abort(404)
        return jsonify({"ok": True})

    @app.route('/api/clients/<cid>/related')
    def api_client_related(cid):
        client = found(store.clients.get(cid))
        return jsonify({
            "opportunities": store.opportunities_for_client(client),
            "tasks": store.tasks_for_client(client),
        })

    @app.route('/api/check_duplicate')
    def api_check_duplicate():
        dup = store.find_duplicate_client(request.args.get('name', ''))
        if dup:
            return jsonify({'duplicate': True, 'id': dup['id']})
        return jsonify({'duplicate': False})

    # ------------------------ Opportunities ------------------------

    @app.route('/api/opportunities')
    def api_opportunities():
        return jsonify(store.opportunities.all())

    @app.route('/api/opportunities', methods=['POST'])
    def api_add_opportunity():
        opp = store.link_client(opportunity_payload(payload()))
        return jsonify(store.opportunities.add(opp)), 201

    @app.route('/api/opportunities/<oid>', methods=['PUT'])
    def api_update_opportunity(oid):
        opp = found(store.opportunities.get(oid))
        updated = store.link_client(opportunity_payload(payload(), existing=opp))
        return jsonify(store.opportunities.update(updated))

    @app.route('/api/opportunities/<oid>/stage', methods=['POST'])
    def api_move_opportunity(oid):
        opp = state.pipeline.move_to_stage(oid, payload().get('stage'))
        if opp is None:
            abort(404)
        return jsonify({"ok": True, "opportunity": opp, "client": store.linked_client(opp)})

    # ------------------------ Tasks ------------------------

    @app.route('/api/tasks')
    def api_tasks():
        return jsonify(store.tasks.all())

    @app.route('/api/tasks', methods=['POST'])
    def api_add_task():
        return jsonify(store.tasks.add(task_payload(payload()))), 201

    @app.route('/api/tasks/<tid>', methods=['PUT'])
    def api_update_task(tid):
        task = found(store.tasks.get(tid))
        return jsonify(store.tasks.update(task_payload(payload(), existing=task)))

    @app.route('/api/tasks/<tid>', methods=['DELETE'])
    def api_delete_task(tid):
        if not store.tasks.delete(tid):
            abort(404)
        return jsonify({"ok": True})

    # ------------------------ Agents & chat ------------------------

    @app.route('/api/agents')
    def api_agents():
        agents = state.agents.active() if request.args.get('active') else state.agents.all()
        return jsonify([{**a, 'stats': state.history.get_stats(a['id'])} for a in agents])

    @app.route('/api/agents', methods=['POST'])
    def api_add_agent():
        return jsonify(state.agents.add(agent_payload(payload()))), 201

    @app.route('/api/agents/<aid>', methods=['PUT'])
    def api_update_agent(aid):
        agent = found(state.agents.get(aid))
        updated = state.agents.update(agent_payload(payload(), existing=agent))
        state.sessions.pop(aid, None)
        return jsonify(updated)

    @app.route('/api/agents/<aid>', methods=['DELETE'])
    def api_delete_agent(aid):
        if not state.agents.delete(aid):
            abort(404)
        state.sessions.pop(aid, None)
        return jsonify({"ok": True})

    @app.route('/api/agents/<aid>/toggle', methods=['POST'])
    def api_toggle_agent(aid):
        return jsonify(found(state.agents.toggle_active(aid)))

    @app.route('/api/agents/<aid>/chat/open', methods=['POST'])
    def api_open_chat(aid):
        agent = found(state.agents.get(aid))
        session = ChatSession(agent, state.history, state.gateway, state.agents)
        messages = session.open()
        state.sessions[aid] = session
        return jsonify({"connected": session.connected, "messages": messages})

    @app.route('/api/agents/<aid>/chat')
    def api_chat_history(aid):
        found(state.agents.get(aid))
        return jsonify(state.history.get_history(aid))

    @app.route('/api/agents/<aid>/chat', methods=['DELETE'])
    def api_clear_chat(aid):
        found(state.agents.get(aid))
        state.history.clear_history(aid)
        return jsonify({"ok": True})

    @app.route('/api/agents/<aid>/chat', methods=['POST'])
    def api_send_chat(aid):
        agent = found(state.agents.get(aid))
        text = (payload().get('message') or '').strip()
        if not text:
            raise ValueError('message is required')
        session = state.session_for(agent)
        if session.busy:
            return jsonify({"ok": False, "error": "A reply is already pending"}), 409
        reply = session.send(text)
        return jsonify({"ok": True, "reply": reply, "connected": session.connected})

    # ------------------------ Dashboard ------------------------

    @app.route('/api/dashboard')
    def api_dashboard():
        clients = store.clients.all()
        opportunities = store.opportunities.all()
        year = request.args.get('year', type=int) or datetime.now().year
        return jsonify({
            "summary": summary(clients, opportunities, store.tasks.all()),
            "monthly_sales": monthly_sales(opportunities, year),
            "won_opportunities": won_opportunities(opportunities),
            "heatmap": client_heatmap(clients),
        })

    @app.route('/api/reports/sales')
    def api_sales_report():
        now = datetime.now()
        month = request.args.get('month', type=int) or now.month
        year = request.args.get('year', type=int) or now.year
        return jsonify(sales_report(store.clients.all(), store.opportunities.all(), month, year))

    return app
