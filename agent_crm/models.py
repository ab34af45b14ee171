# Entity constants and payload builders.
# Entities are plain dicts, the same shape that is written to storage.

STAGES = [
    ('novo-lead', 'Novo Lead'),
    ('contato-inicial', 'Contato Inicial'),
    ('qualificacao', 'Qualificação'),
    ('proposta', 'Proposta'),
    ('negociacao', 'Negociação'),
    ('fechado-ganhou', 'Fechado (Ganhou)'),
    ('fechado-perdeu', 'Fechado (Perdeu)'),
]
STAGE_IDS = [s for s, _ in STAGES]
STAGE_WON = 'fechado-ganhou'
STAGE_LOST = 'fechado-perdeu'

CLIENT_STATUSES = ['Novo', 'Em Contato', 'Qualificado', 'Proposta Enviada', 'Negociação',
                   'Fechado (Ganhou)', 'Fechado (Perdeu)', 'Inativo']
CLIENT_STATUS_NEW = 'Novo'
CLIENT_STATUS_WON = 'Fechado (Ganhou)'
CLIENT_SOURCES = ['Indicação', 'Anúncio Online', 'Mídias Sociais', 'Evento', 'Site',
                  'Prospecção Ativa', 'Outros']

TASK_PRIORITIES = ['Alta', 'Média', 'Baixa']
TASK_STATUSES = ['Pendente', 'Em Andamento', 'Concluída']
TASK_DONE = 'Concluída'

SENDERS = ('user', 'agent')


def norm_text(s):
    return ' '.join((s or '').split()).lower()


def _text(payload, key, default=''):
    value = payload[key] if key in payload else default
    return str(value or '').strip()


def _number(payload, key, default=0):
    value = payload[key] if key in payload else default
    if value in (None, ''):
        return default
    return float(value)


def client_payload(payload, existing=None):
    """Build a client dict from submitted fields, keeping identity from ``existing``."""
    client = dict(existing or {})
    potential = _number(payload, 'potential_value', client.get('potential_value', 0))
    if potential < 0:
        raise ValueError('potential_value must be non-negative')
    client.update({
        'full_name': _text(payload, 'full_name', client.get('full_name', '')),
        'email': _text(payload, 'email', client.get('email', '')),
        'phone': _text(payload, 'phone', client.get('phone', '')),
        'source': _text(payload, 'source', client.get('source', '')),
        'status': _text(payload, 'status', client.get('status')) or CLIENT_STATUS_NEW,
        'potential_value': potential,
        'notes': _text(payload, 'notes', client.get('notes', '')),
    })
    for key in ('created_by', 'city', 'state'):
        if payload.get(key):
            client[key] = _text(payload, key)
    if not client['full_name']:
        raise ValueError('full_name is required')
    return client


def opportunity_payload(payload, existing=None):
    opp = dict(existing or {})
    stage = _text(payload, 'stage', opp.get('stage')) or STAGE_IDS[0]
    if stage not in STAGE_IDS:
        raise ValueError(f'Unknown stage: {stage}')
    client_name = _text(payload, 'client_name', opp.get('client_name', ''))
    client_id = payload.get('client_id') or opp.get('client_id')
    if 'client_id' not in payload and client_name != opp.get('client_name', client_name):
        # client changed by name only; the old id no longer applies
        client_id = None
    opp.update({
        'name': _text(payload, 'name', opp.get('name', '')),
        'client_name': client_name,
        'client_id': client_id,
        'value': _number(payload, 'value', opp.get('value', 0)),
        'stage': stage,
        'next_action': _text(payload, 'next_action', opp.get('next_action', '')),
        'description': _text(payload, 'description', opp.get('description', '')),
        'expected_close_date': payload.get('expected_close_date') or opp.get('expected_close_date'),
    })
    if not opp['name']:
        raise ValueError('name is required')
    return opp


def task_payload(payload, existing=None):
    task = dict(existing or {})
    priority = _text(payload, 'priority', task.get('priority')) or 'Média'
    status = _text(payload, 'status', task.get('status')) or TASK_STATUSES[0]
    if priority not in TASK_PRIORITIES:
        raise ValueError(f'Unknown priority: {priority}')
    if status not in TASK_STATUSES:
        raise ValueError(f'Unknown task status: {status}')
    task.update({
        'name': _text(payload, 'name', task.get('name', '')),
        'description': _text(payload, 'description', task.get('description', '')),
        'due_date': _text(payload, 'due_date', task.get('due_date', '')),
        'due_time': _text(payload, 'due_time', task.get('due_time', '')),
        'priority': priority,
        'status': status,
        'assigned_to': _text(payload, 'assigned_to', task.get('assigned_to', '')),
    })
    if not task['name']:
        raise ValueError('name is required')
    return task


def agent_payload(payload, existing=None):
    agent = dict(existing or {})
    triggers = payload.get('trigger_events', agent.get('trigger_events', []))
    if isinstance(triggers, str):
        triggers = [t.strip() for t in triggers.split(',') if t.strip()]
    agent.update({
        'name': _text(payload, 'name', agent.get('name', '')),
        'description': _text(payload, 'description', agent.get('description', '')),
        'model': _text(payload, 'model', agent.get('model') or 'gemini-pro'),
        'temperature': _number(payload, 'temperature', agent.get('temperature', 0.7)),
        'max_tokens': int(_number(payload, 'max_tokens', agent.get('max_tokens', 1024))),
        'system_prompt': _text(payload, 'system_prompt', agent.get('system_prompt', '')),
        'is_active': bool(payload.get('is_active', agent.get('is_active', True))),
        'trigger_events': list(triggers),
    })
    if not agent['name']:
        raise ValueError('name is required')
    return agent
