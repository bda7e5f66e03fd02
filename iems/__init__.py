import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from iems.config import DevelopmentConfig, ProductionConfig, TestingConfig
from werkzeug.security import generate_password_hash

logger = logging.getLogger(__name__)

app = Flask(__name__, instance_relative_config=True)

# Select config based on FLASK_ENV
env = os.environ.get("FLASK_ENV", "development").lower()
if env == "production":
    app.config.from_object(ProductionConfig)
elif env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

# Compute DB URI for development using instance path
if env not in ("production", "testing"):
    os.makedirs(app.instance_path, exist_ok=True)
    app.config['SQLALCHEMY_DATABASE_URI'] = DevelopmentConfig.database_uri(app.instance_path)

db = SQLAlchemy(app)

origins = [o.strip() for o in app.config.get('ALLOWED_ORIGINS', '*').split(',') if o.strip()]
CORS(app, resources={r"/api/*": {"origins": origins or "*"}}, supports_credentials=True)

limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[app.config.get('RATE_LIMIT_DEFAULT', '100 per minute')],
    storage_uri="memory://",
)

def bootstrap_admin():
    """Create the admin account named by ADMIN_EMAIL/ADMIN_PASSWORD if it is missing."""
    from iems.models import User
    admin_email = os.environ.get("ADMIN_EMAIL")
    admin_pw_hash = os.environ.get("ADMIN_PASSWORD_HASH")
    admin_pw_plain = os.environ.get("ADMIN_PASSWORD")
    if not admin_email:
        return None
    existing = User.query.filter_by(email=admin_email).first()
    if existing:
        return existing
    if not admin_pw_hash and not admin_pw_plain:
        logger.warning("ADMIN_EMAIL is set without ADMIN_PASSWORD or ADMIN_PASSWORD_HASH; skipping admin bootstrap")
        return None
    pw_hash = admin_pw_hash or generate_password_hash(admin_pw_plain)
    user = User(email=admin_email, password_hash=pw_hash, name=os.environ.get("ADMIN_NAME", "Administrator"), role="admin")
    db.session.add(user)
    db.session.commit()
    logger.info(f"Bootstrapped admin account {admin_email}")
    return user

from iems import models

with app.app_context():
    db.create_all()
    if env != "testing":
        bootstrap_admin()

from iems import routes
