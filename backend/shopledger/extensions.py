# Overview: Extension singletons bound to the app in create_app().

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# All services share db.session; run_with_retry owns commit and rollback.
db = SQLAlchemy()
# Points at backend/migrations (see shopledger.MIGRATIONS_DIR).
migrate = Migrate()
