"""
QA Hub
Model package.

Exposes the shared Flask-SQLAlchemy handle. Domain models live in the
sub-modules and are imported by the application factory so that
``db.create_all()`` and Alembic see every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
