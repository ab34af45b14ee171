# Opportunity pipeline (kanban columns).
# Any stage may move to any other stage. Winning a deal marks the linked
# client as won; leaving the won stage does not undo that.

import logging

from .models import STAGE_IDS, STAGE_WON, CLIENT_STATUS_WON

logger = logging.getLogger(__name__)


class InvalidStage(ValueError):
    pass


class Pipeline:
    def __init__(self, store):
        self.store = store

    def move_to_stage(self, opportunity_id, new_stage):
        """Move an opportunity to ``new_stage``; returns the updated opportunity or None."""
        if new_stage not in STAGE_IDS:
            raise InvalidStage(f"Unknown stage: {new_stage}")
        opp = self.store.opportunities.get(opportunity_id)
        if opp is None:
            return None
        updated = self.store.opportunities.update({**opp, 'stage': new_stage})
        if new_stage == STAGE_WON:
            self._mark_client_won(updated)
        return updated

    def _mark_client_won(self, opportunity):
        client = self.store.linked_client(opportunity)
        if client is None:
            logger.info("No client named %r for opportunity %s",
                        opportunity.get('client_name'), opportunity['id'])
            return
        self.store.clients.update({**client, 'status': CLIENT_STATUS_WON})

    def columns(self):
        cols = {stage: [] for stage in STAGE_IDS}
        for o in self.store.opportunities.items:
            if o.get('stage') in cols:
                cols[o['stage']].append(o)
        return cols

    def column_totals(self):
        return {stage: sum(o.get('value') or 0 for o in opps)
                for stage, opps in self.columns().items()}
