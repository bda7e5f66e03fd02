from iems import app, db, bootstrap_admin

with app.app_context():
    db.create_all()
    user = bootstrap_admin()
    if user:
        print(f"Admin account ready: {user.email}")
