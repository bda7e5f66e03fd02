import unittest
import sys
import os
from datetime import datetime, timedelta, timezone

import jwt

os.environ['FLASK_ENV'] = 'testing'

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from iems import app, db
from iems.auth import create_token, verify_token
from iems.models import User, Student
from werkzeug.security import generate_password_hash

class AuthTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

        self.admin = User(email='admin@iems.edu', password_hash=generate_password_hash('admin123'),
                          name='Admin', role='admin')
        self.student_user = User(email='riya@student.iems.edu', password_hash=generate_password_hash('student123'),
                                 name='Riya Das', role='student')
        db.session.add_all([self.admin, self.student_user])
        db.session.flush()
        self.student = Student(enrollment_no='EN2024001', name='Riya Das', department='Computer Science',
                               semester=3, user_id=self.student_user.id)
        db.session.add(self.student)
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _auth(self, user):
        return {'Authorization': f'Bearer {create_token(user)}'}

    def test_login_returns_token_and_sets_cookie(self):
        resp = self.client.post('/api/auth/login', json={'email': 'admin@iems.edu', 'password': 'admin123'})
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body['user']['role'], 'admin')
        self.assertEqual(verify_token(body['token'])['email'], 'admin@iems.edu')
        cookie = resp.headers.get('Set-Cookie', '')
        self.assertIn('token=', cookie)
        self.assertIn('HttpOnly', cookie)

    def test_login_student_includes_student_id(self):
        resp = self.client.post('/api/auth/login', json={'email': 'riya@student.iems.edu', 'password': 'student123'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['user']['student_id'], self.student.id)

    def test_login_rejects_bad_credentials(self):
        resp = self.client.post('/api/auth/login', json={'email': 'admin@iems.edu', 'password': 'wrong'})
        self.assertEqual(resp.status_code, 401)
        resp = self.client.post('/api/auth/login', json={'email': 'admin@iems.edu'})
        self.assertEqual(resp.status_code, 400)

    def test_register_and_duplicate(self):
        payload = {'email': 'new@iems.edu', 'password': 'secret1', 'name': 'New User'}
        resp = self.client.post('/api/auth/register', json=payload)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()['user']['role'], 'student')
        resp = self.client.post('/api/auth/register', json=payload)
        self.assertEqual(resp.status_code, 409)

    def test_register_validation(self):
        resp = self.client.post('/api/auth/register', json={'email': 'x@iems.edu', 'password': 'secret1'})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/auth/register', json={'email': 'x@iems.edu', 'password': '123', 'name': 'X'})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/auth/register', json={'email': 'not-an-email', 'password': 'secret1', 'name': 'X'})
        self.assertEqual(resp.status_code, 400)

    def test_only_admin_can_register_admin(self):
        payload = {'email': 'boss@iems.edu', 'password': 'secret1', 'name': 'Boss', 'role': 'admin'}
        resp = self.client.post('/api/auth/register', json=payload)
        self.assertEqual(resp.status_code, 403)
        resp = self.client.post('/api/auth/register', json=payload, headers=self._auth(self.admin))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(User.query.filter_by(email='boss@iems.edu').first().role, 'admin')
        # The admin keeps their own session
        self.assertNotIn('Set-Cookie', resp.headers)
        self.assertNotIn('token', resp.get_json())

    def test_admin_creating_teacher_keeps_admin_session(self):
        payload = {'email': 't@iems.edu', 'password': 'secret1', 'name': 'Teacher', 'role': 'teacher'}
        resp = self.client.post('/api/auth/register', json=payload, headers=self._auth(self.admin))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()['user']['email'], 't@iems.edu')
        self.assertNotIn('Set-Cookie', resp.headers)

    def test_self_registration_sets_cookie(self):
        payload = {'email': 'self@iems.edu', 'password': 'secret1', 'name': 'Self'}
        resp = self.client.post('/api/auth/register', json=payload)
        self.assertEqual(resp.status_code, 201)
        self.assertIn('token=', resp.headers.get('Set-Cookie', ''))
        self.assertEqual(verify_token(resp.get_json()['token'])['email'], 'self@iems.edu')

    def test_me_requires_token(self):
        resp = self.client.get('/api/auth/me')
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()['error'], 'Authentication required')
        resp = self.client.get('/api/auth/me', headers={'Authorization': 'Bearer garbage'})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()['error'], 'Invalid or expired token')
        resp = self.client.get('/api/auth/me', headers=self._auth(self.admin))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['user']['email'], 'admin@iems.edu')

    def test_expired_token_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(days=8)
        token = jwt.encode({'id': self.admin.id, 'email': self.admin.email, 'role': 'admin', 'name': 'Admin',
                            'iat': past, 'exp': past + timedelta(days=7)},
                           app.config['JWT_SECRET'], algorithm='HS256')
        self.assertIsNone(verify_token(token))
        resp = self.client.get('/api/students', headers={'Authorization': f'Bearer {token}'})
        self.assertEqual(resp.status_code, 401)

    def test_api_requires_token(self):
        for path in ('/api/students', '/api/dashboard', '/api/agents/risk', '/api/timetable'):
            self.assertEqual(self.client.get(path).status_code, 401, path)

    def test_dashboard_page_redirects_anonymous_to_login(self):
        resp = self.client.get('/dashboard')
        self.assertEqual(resp.status_code, 302)
        self.assertIn('/login', resp.headers['Location'])

    def test_student_cannot_open_admin_pages(self):
        resp = self.client.get('/dashboard/risk-alerts', headers=self._auth(self.student_user))
        self.assertEqual(resp.status_code, 302)
        self.assertNotIn('/dashboard', resp.headers['Location'])

    def test_admin_cannot_open_student_portal_page(self):
        resp = self.client.get('/student', headers=self._auth(self.admin))
        self.assertEqual(resp.status_code, 302)

    def test_admin_dashboard_page(self):
        resp = self.client.get('/dashboard', headers=self._auth(self.admin))
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Dashboard', resp.data)

    def test_student_portal_page(self):
        resp = self.client.get('/student', headers=self._auth(self.student_user))
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'EN2024001', resp.data)

    def test_index_redirects_by_role(self):
        resp = self.client.get('/', headers=self._auth(self.student_user))
        self.assertTrue(resp.headers['Location'].endswith('/student'))
        resp = self.client.get('/', headers=self._auth(self.admin))
        self.assertTrue(resp.headers['Location'].endswith('/dashboard'))

    def test_login_form_sets_cookie_and_redirects(self):
        resp = self.client.post('/login', data={'email': 'admin@iems.edu', 'password': 'admin123'})
        self.assertEqual(resp.status_code, 302)
        self.assertTrue(resp.headers['Location'].endswith('/dashboard'))
        self.assertIn('token=', resp.headers.get('Set-Cookie', ''))

    def test_login_form_follows_local_next(self):
        resp = self.client.post('/login?next=/dashboard/students', data={'email': 'admin@iems.edu', 'password': 'admin123'})
        self.assertEqual(resp.status_code, 302)
        self.assertTrue(resp.headers['Location'].endswith('/dashboard/students'))

    def test_login_form_ignores_external_next(self):
        for target in ('//evil.example', '/\\evil.example', 'https://evil.example'):
            resp = self.client.post('/login', query_string={'next': target},
                                    data={'email': 'admin@iems.edu', 'password': 'admin123'})
            self.assertEqual(resp.status_code, 302)
            self.assertNotIn('evil.example', resp.headers['Location'], target)
            self.assertTrue(resp.headers['Location'].endswith('/dashboard'), target)

    def test_login_form_rejects_bad_password(self):
        resp = self.client.post('/login', data={'email': 'admin@iems.edu', 'password': 'nope'})
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Invalid email or password', resp.data)

    def test_logout_clears_cookie(self):
        resp = self.client.post('/api/auth/logout')
        self.assertEqual(resp.status_code, 200)
        self.assertIn('token=;', resp.headers.get('Set-Cookie', ''))

if __name__ == "__main__":
    unittest.main()
