"""Flask extension instances.

Created unbound here and attached to the application in `app.create_app`, so
models and services can import them without importing the app.
"""
from flask_bcrypt import Bcrypt
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
bcrypt = Bcrypt()
mail = Mail()
