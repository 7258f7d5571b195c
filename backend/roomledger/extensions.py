"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy, marshmallow and the rate limiter as module-level
objects so they can be imported anywhere without circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in roomledger/__init__.py.
    3. Import `db`, `ma` or `limiter` from here wherever needed.

    from roomledger.extensions import db, limiter

Do not pass the app object to the constructors at import time — that would
prevent running tests with a separate test app instance.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from roomledger.utils.rate_limit import RateLimiter

db = SQLAlchemy()

# Marshmallow instance — available for model serialization helpers.
#
# IMPORTANT — schema inheritance rule:
#   All validation Schema classes (in roomledger/schemas/) inherit from
#   marshmallow.Schema directly, NOT from ma.Schema. ma.Schema requires an
#   active Flask application context, and the settlement service loads
#   schemas from unit tests that run without one.
ma = Marshmallow()

# Per-actor fixed-window limiter. The backend (memory or database) is chosen
# from RATE_LIMIT_BACKEND when init_app runs.
limiter = RateLimiter()
