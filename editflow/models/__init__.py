"""
Editing Process Engine
SQLAlchemy models.

All model modules import the shared ``db`` instance from here:

    from editflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
