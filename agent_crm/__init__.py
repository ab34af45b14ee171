# agent_crm: small business CRM with an opportunity kanban and AI agent chat
# Data lives in JSON documents under DATA_DIR; see agent_crm.storage.

__version__ = "0.1.0"
