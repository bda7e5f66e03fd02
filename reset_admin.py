from iems import app, db
from iems.models import User
from werkzeug.security import generate_password_hash
import os
import secrets
import string


def generate_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


if __name__ == "__main__":
    email = os.environ.get('ADMIN_EMAIL', 'admin@iems.edu')
    new_pw = generate_password()
    with app.app_context():
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email, password_hash=generate_password_hash(new_pw), name='Administrator', role='admin')
            db.session.add(user)
        else:
            user.password_hash = generate_password_hash(new_pw)
            user.role = 'admin'
        db.session.commit()
    # Print only the password for easy copying
    print(new_pw)
