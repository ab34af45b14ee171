# Dashboard metrics and the monthly sales report dataset.

from collections import Counter
from datetime import datetime

from .models import CLIENT_STATUS_NEW, STAGE_WON, STAGE_LOST, TASK_DONE, STAGES

MONTHS = ['jan', 'fev', 'mar', 'abr', 'mai', 'jun', 'jul', 'ago', 'set', 'out', 'nov', 'dez']
STAGE_NAMES = dict(STAGES)


def won_opportunities(opportunities):
    return [o for o in opportunities if o.get('stage') == STAGE_WON]


def summary(clients, opportunities, tasks):
    won = won_opportunities(opportunities)
    total = len(opportunities)
    latest = max(clients, key=lambda c: c.get('created_at') or datetime.min, default=None)
    return {
        'new_clients': sum(1 for c in clients if c.get('status') == CLIENT_STATUS_NEW),
        'total_opportunities': total,
        'pending_tasks': sum(1 for t in tasks if t.get('status') != TASK_DONE),
        'won_count': len(won),
        'conversion_rate': round(len(won) / total * 100) if total else 0,
        'revenue': sum(o.get('value') or 0 for o in won),
        'last_client_created_by': latest.get('created_by') if latest else None,
    }


def monthly_sales(opportunities, year):
    totals = [0] * 12
    for o in won_opportunities(opportunities):
        created = o.get('created_at')
        if created and created.year == year:
            totals[created.month - 1] += o.get('value') or 0
    return [{'month': MONTHS[i], 'sales': round(v)} for i, v in enumerate(totals)]


def client_heatmap(clients):
    """Client counts per state and per (city, state); clients without a state are skipped."""
    by_state = Counter()
    by_city = Counter()
    for c in clients:
        state = (c.get('state') or '').strip().upper()
        if not state:
            continue
        by_state[state] += 1
        city = (c.get('city') or '').strip()
        if city:
            by_city[(city, state)] += 1
    return {
        'states': dict(by_state),
        'cities': [{'city': city, 'state': state, 'count': n}
                   for (city, state), n in by_city.most_common()],
    }


def sales_report(clients, opportunities, month, year):
    """Rows and summary lines for the monthly report; month is 1-12."""
    if not 1 <= month <= 12:
        raise ValueError('month must be between 1 and 12')
    in_month = [o for o in opportunities
                if o.get('created_at') and o['created_at'].year == year
                and o['created_at'].month == month]
    won = won_opportunities(in_month)
    lost = [o for o in in_month if o.get('stage') == STAGE_LOST]
    new_clients = [c for c in clients
                   if c.get('created_at') and c['created_at'].year == year
                   and c['created_at'].month == month]
    revenue = sum(o.get('value') or 0 for o in won)
    return {
        'title': f'Relatório de Vendas - {month:02d}/{year}',
        'summary': [
            f'Novos clientes: {len(new_clients)}',
            f'Oportunidades criadas: {len(in_month)}',
            f'Vendas fechadas: {len(won)} (perdidas: {len(lost)})',
            f'Receita total: R$ {revenue:,.2f}',
        ],
        'rows': [{
            'name': o.get('name'),
            'client_name': o.get('client_name'),
            'stage': STAGE_NAMES.get(o.get('stage'), o.get('stage')),
            'value': o.get('value') or 0,
            'created_at': o['created_at'].strftime('%d/%m/%Y'),
        } for o in sorted(in_month, key=lambda o: o['created_at'])],
    }
