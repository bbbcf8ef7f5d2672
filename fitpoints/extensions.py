"""
Flask extensions initialization.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .utils.locks import KeyedLock

# Database
db = SQLAlchemy()

# Migrations
migrate = Migrate()

# Rate limiting (staff code lookups)
limiter = Limiter(key_func=get_remote_address)

# Per-member mutation locks shared by the ledger and the redemption store
member_locks = KeyedLock()
