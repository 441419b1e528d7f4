"""
fieldsync
Database models package.

The SQLAlchemy handle is created here unbound and attached to the app by
``create_app()`` via ``db.init_app(app)``; its engine and connection pool
live for the lifetime of the process and are disposed on shutdown.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
