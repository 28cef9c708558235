"""
SQLAlchemy model package.

The shared ``db`` handle is created here and bound to the Flask app in
``assessment_platform.create_app``. Model modules import it as::

    from assessment_platform.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
