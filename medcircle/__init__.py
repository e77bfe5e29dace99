"""
MedCircle — Reputation & Trust Core for a Verified Medical Community
=====================================================================
Records karma for community activity, derives ranks, moderates
user-generated content with escalating penalties, and scores credential
verification attempts that gate signup.

Package layout::

    medcircle/
    ├── __main__.py        # python -m medcircle → uvicorn
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Rank colours, leaderboard badges
    ├── errors.py          # Unauthenticated / ValidationFailure
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (profiles, karma, offenses, audit)
    ├── engine/
    │   ├── activities.py  # Activity types, point table, categories
    │   ├── ranks.py       # Rank bands + classifier
    │   ├── moderation.py  # Denylist scan + offense state machine
    │   └── verification.py # Check set → confidence score
    ├── services/
    │   ├── karma_service.py        # Karma ledger
    │   ├── moderation_service.py   # Moderation + escalation
    │   ├── verification_service.py # Concurrent external checks
    │   ├── admin_service.py        # Audit-log helpers
    │   └── notifications.py        # Per-user notification buffer
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + service wiring
        └── routes/        # Karma, moderation, verification endpoints
"""

__version__ = "0.1.0"
