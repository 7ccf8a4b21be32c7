# factopay_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import text



db = SQLAlchemy()
migrate = Migrate()

def init_extensions(app):
    # DB/Migrate
    db.init_app(app)
    migrate.init_app(app, db)

def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Creates the tables (DEV/MVP). For production use: flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            print("Tables created.")

    @app.cli.command("create-admin")
    @click.option("--email", required=True)
    @click.option("--name", default="Admin")
    def create_admin_cmd(email, name):
        """Creates (or promotes) an admin account used by the activation/refund endpoints."""
        from .models.user import User
        with app.app_context():
            u = User.query.filter_by(email=email).first()
            if not u:
                u = User(name=name, email=email)
            u.is_admin = True
            u.active = True
            db.session.add(u)
            db.session.commit()
            print(f"Admin ready: {u.email} (id={u.id})")
