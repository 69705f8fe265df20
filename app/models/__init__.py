"""
Demande Lifecycle Platform
Model package — shared SQLAlchemy handle.

Domain models live in sibling modules and import ``db`` from here:

    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
