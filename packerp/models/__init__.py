"""
PackERP Manufacturing Backend
Model package — shared SQLAlchemy handle.

Usage:
    from packerp.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
