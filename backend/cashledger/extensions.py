# Overview: Flask extension instances for database, migrations and the replay cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.replay_cache import ReplayCache

db = SQLAlchemy()
migrate = Migrate()
replay_cache = ReplayCache()
