# Overview: Shared Flask-SQLAlchemy and Flask-Migrate instances, bound to the app in create_app().

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# `flask db init|migrate|upgrade` generates and applies schema migrations
migrate = Migrate()
