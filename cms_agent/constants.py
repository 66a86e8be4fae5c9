"""Project-wide constants shared by persistence, migrations and the engine."""

DB_SCHEMA = "cms_agent"

# Hard cap on provider turns per chat request.
MAX_TURNS = 4

# Conversation history loaded per request.
HISTORY_LIMIT = 50
