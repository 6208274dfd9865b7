# Overview: Flask extension instances shared by models, services and migrations.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
# SQLite (the default DATABASE_URL) needs batch mode for ALTER TABLE
migrate = Migrate(render_as_batch=True)
