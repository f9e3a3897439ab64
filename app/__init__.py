"""
ScoreMate application package.

Layers:

  app/models.py   : ``Match`` and ``Frame`` records and their JSON shape.
  app/services/   : business logic: persistence rules, statistics, AI
                  extraction, score checks, CSV export and photo import.

Persistence itself lives in the top-level ``database`` module; services get
it injected (``MatchService(database)``) so tests can swap in an in-memory
SQLite engine.  ``scoremate_web.py`` builds the services once at import time
and route handlers call them directly, keeping HTTP concerns out of the
domain.
"""
