"""
QC Inspection Platform
Database models package.

The shared Flask-SQLAlchemy handle lives here so every model module and the
repository layer import the same ``db`` object.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
