# Overview: Shared Flask extension singletons; bound to the app in create_app().

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# `flask db init/migrate/upgrade` for schema changes outside tests
migrate = Migrate()
