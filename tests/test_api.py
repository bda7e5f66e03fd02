import unittest
import sys
import os
from datetime import date

os.environ['FLASK_ENV'] = 'testing'

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from iems import app, db
from iems.auth import create_token
from iems.models import User, Student, Teacher, Subject, Attendance, Mark, Fee, Assignment, AssignmentSubmission, Alert

class ApiTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

        self.admin = User(email='admin@iems.edu', password_hash='x', name='Admin', role='admin')
        self.student_user = User(email='riya@student.iems.edu', password_hash='x', name='Riya Das', role='student')
        db.session.add_all([self.admin, self.student_user])
        db.session.flush()
        self.teacher = Teacher(employee_id='T001', name='Prof. Anita Sharma', email='anita@iems.edu')
        db.session.add(self.teacher)
        db.session.flush()
        self.subject = Subject(code='CS101', name='Data Structures', department='Computer Science',
                               semester=3, teacher_id=self.teacher.id)
        self.student = Student(enrollment_no='EN2024001', name='Riya Das', department='Computer Science',
                               semester=3, user_id=self.student_user.id)
        db.session.add_all([self.subject, self.student])
        db.session.commit()
        self.headers = {'Authorization': f'Bearer {create_token(self.admin)}'}
        self.student_headers = {'Authorization': f'Bearer {create_token(self.student_user)}'}

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    # Students

    def test_create_student_and_conflict(self):
        payload = {'enrollment_no': 'EN2024002', 'name': 'Kabir Rao', 'department': 'Electronics', 'semester': '5'}
        resp = self.client.post('/api/students', json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 201)
        created = db.session.get(Student, resp.get_json()['id'])
        self.assertEqual(created.semester, 5)
        self.assertEqual(created.status, 'active')
        resp = self.client.post('/api/students', json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 409)

    def test_create_student_validation(self):
        resp = self.client.post('/api/students', json={'enrollment_no': 'EN1'}, headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/students', json={'enrollment_no': 'EN1', 'name': 'X', 'email': 'bad'},
                                headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/students', data='not json', headers=self.headers)
        self.assertEqual(resp.status_code, 400)

    def test_list_students_with_filters(self):
        for i in range(3):
            db.session.add(Student(enrollment_no=f'EN30{i}', name=f'Mech {i}', department='Mechanical', semester=1))
        db.session.commit()
        resp = self.client.get('/api/students?department=Mechanical&limit=2', headers=self.headers)
        body = resp.get_json()
        self.assertEqual(body['total'], 3)
        self.assertEqual(len(body['students']), 2)
        resp = self.client.get('/api/students?search=riya', headers=self.headers)
        self.assertEqual([s['enrollment_no'] for s in resp.get_json()['students']], ['EN2024001'])

    def test_student_detail(self):
        db.session.add(Attendance(student_id=self.student.id, subject_id=self.subject.id,
                                  date=date.today(), status='present'))
        db.session.commit()
        resp = self.client.get(f'/api/students/{self.student.id}', headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body['student']['name'], 'Riya Das')
        self.assertEqual(body['attendance']['percentage'], 100.0)
        self.assertEqual(body['subject_attendance'][0]['subject_code'], 'CS101')

    def test_student_not_found(self):
        resp = self.client.get('/api/students/999', headers=self.headers)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['error'], 'Student not found')

    def test_update_and_delete_student(self):
        resp = self.client.put(f'/api/students/{self.student.id}', json={'semester': 4, 'phone': '9800000000'},
                               headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['student']['semester'], 4)
        self.assertEqual(resp.get_json()['student']['name'], 'Riya Das')
        resp = self.client.delete(f'/api/students/{self.student.id}', headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get(f'/api/students/{self.student.id}', headers=self.headers)
        self.assertEqual(resp.status_code, 404)

    def test_update_rejects_blank_required_fields(self):
        for payload in ({'status': ''}, {'name': '  '}, {'enrollment_no': None}):
            resp = self.client.put(f'/api/students/{self.student.id}', json=payload, headers=self.headers)
            self.assertEqual(resp.status_code, 400, payload)
        for payload in ({'name': ''}, {'employee_id': ''}, {'status': ' '}):
            resp = self.client.put(f'/api/teachers/{self.teacher.id}', json=payload, headers=self.headers)
            self.assertEqual(resp.status_code, 400, payload)
        for payload in ({'type': ''}, {'name': ''}, {'code': ''}):
            resp = self.client.put(f'/api/subjects/{self.subject.id}', json=payload, headers=self.headers)
            self.assertEqual(resp.status_code, 400, payload)
        self.assertEqual(db.session.get(Student, self.student.id).status, 'active')
        self.assertEqual(db.session.get(Teacher, self.teacher.id).name, 'Prof. Anita Sharma')
        self.assertEqual(db.session.get(Subject, self.subject.id).type, 'theory')

    # Teachers & subjects

    def test_teachers(self):
        resp = self.client.get('/api/teachers', headers=self.headers)
        self.assertEqual(resp.get_json()['teachers'][0]['subject_count'], 1)
        resp = self.client.post('/api/teachers', json={'employee_id': 'T001', 'name': 'Dup'}, headers=self.headers)
        self.assertEqual(resp.status_code, 409)
        resp = self.client.post('/api/teachers', json={'employee_id': 'T002', 'name': 'Prof. Vikram Singh',
                                                       'experience_years': 8}, headers=self.headers)
        self.assertEqual(resp.status_code, 201)

    def test_subjects(self):
        resp = self.client.post('/api/subjects', json={'code': 'CS102', 'name': 'Databases', 'teacher_id': 999},
                                headers=self.headers)
        self.assertEqual(resp.status_code, 404)
        resp = self.client.post('/api/subjects', json={'code': 'CS102', 'name': 'Databases', 'type': 'lecture'},
                                headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post('/api/subjects', json={'code': 'CS102', 'name': 'Databases', 'semester': 4,
                                                       'department': 'Computer Science'}, headers=self.headers)
        self.assertEqual(resp.status_code, 201)
        resp = self.client.get('/api/subjects?semester=4', headers=self.headers)
        self.assertEqual([s['code'] for s in resp.get_json()['subjects']], ['CS102'])

    def test_subject_with_records_cannot_be_deleted(self):
        db.session.add(Mark(student_id=self.student.id, subject_id=self.subject.id, exam_type='internal_1',
                            max_marks=50, obtained_marks=30))
        db.session.commit()
        resp = self.client.delete(f'/api/subjects/{self.subject.id}', headers=self.headers)
        self.assertEqual(resp.status_code, 409)

    # Attendance

    def test_attendance_batch_upsert(self):
        records = [
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'date': '2026-01-05', 'status': 'present'},
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'date': '2026-01-06', 'status': 'absent'},
        ]
        resp = self.client.post('/api/attendance', json={'records': records}, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Attendance.query.count(), 2)
        records[1]['status'] = 'present'
        self.client.post('/api/attendance', json={'records': records}, headers=self.headers)
        self.assertEqual(Attendance.query.count(), 2)
        self.assertEqual(Attendance.query.filter_by(status='present').count(), 2)

    def test_attendance_batch_is_atomic(self):
        records = [
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'date': '2026-01-05', 'status': 'present'},
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'date': '2026-01-06', 'status': 'sleeping'},
        ]
        resp = self.client.post('/api/attendance', json={'records': records}, headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(Attendance.query.count(), 0)

    def test_attendance_stats(self):
        for day, status in (('2026-01-05', 'present'), ('2026-01-06', 'absent'), ('2026-02-02', 'present')):
            self.client.post('/api/attendance', json={'student_id': self.student.id, 'subject_id': self.subject.id,
                                                      'date': day, 'status': status}, headers=self.headers)
        resp = self.client.get('/api/attendance?month=2026-01', headers=self.headers)
        stats = resp.get_json()['stats']
        self.assertEqual(stats['total_days'], 2)
        self.assertEqual(stats['avg_attendance'], 50.0)
        resp = self.client.get('/api/attendance?month=January', headers=self.headers)
        self.assertEqual(resp.status_code, 400)

    # Marks & fees

    def test_marks_validation(self):
        payload = {'student_id': self.student.id, 'subject_id': self.subject.id, 'exam_type': 'internal_1',
                   'max_marks': 50, 'obtained_marks': 60}
        resp = self.client.post('/api/marks', json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        payload['obtained_marks'] = 40
        resp = self.client.post('/api/marks', json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 201)
        resp = self.client.get(f'/api/marks?student_id={self.student.id}', headers=self.headers)
        self.assertEqual(resp.get_json()['marks'][0]['percentage'], 80.0)

    def test_marks_batch(self):
        records = [
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'exam_type': 'internal_1',
             'max_marks': 50, 'obtained_marks': 35},
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'exam_type': 'midterm',
             'max_marks': 100, 'obtained_marks': 62},
        ]
        resp = self.client.post('/api/marks', json={'records': records}, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Mark.query.count(), 2)

    def test_marks_batch_is_atomic(self):
        records = [
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'exam_type': 'internal_1',
             'max_marks': 50, 'obtained_marks': 35},
            {'student_id': self.student.id, 'subject_id': self.subject.id, 'exam_type': 'quiz',
             'max_marks': 50, 'obtained_marks': 20},
        ]
        resp = self.client.post('/api/marks', json={'records': records}, headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(Mark.query.count(), 0)
        records[1] = {'student_id': 999, 'subject_id': self.subject.id, 'exam_type': 'final',
                      'max_marks': 100, 'obtained_marks': 50}
        resp = self.client.post('/api/marks', json={'records': records}, headers=self.headers)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(Mark.query.count(), 0)

    def test_fee_payment_updates_status(self):
        fee = Fee(student_id=self.student.id, fee_type='tuition', amount=50000, paid=0, status='overdue')
        db.session.add(fee)
        db.session.commit()
        resp = self.client.put('/api/fees', json={'id': fee.id, 'paid': 20000}, headers=self.headers)
        self.assertEqual(resp.get_json()['fee']['status'], 'partial')
        resp = self.client.put('/api/fees', json={'id': fee.id, 'paid': 50000}, headers=self.headers)
        self.assertEqual(resp.get_json()['fee']['status'], 'paid')
        resp = self.client.put('/api/fees', json={'id': fee.id, 'paid': 60000}, headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.get('/api/fees', headers=self.headers)
        self.assertEqual(resp.get_json()['stats']['paid_count'], 1)

    # Assignments

    def test_assignment_flow(self):
        resp = self.client.post('/api/assignments', json={'title': 'Stack Implementation', 'subject_id': self.subject.id,
                                                          'due_date': '2026-02-20', 'max_marks': 50}, headers=self.headers)
        self.assertEqual(resp.status_code, 201)
        assignment_id = resp.get_json()['id']
        resp = self.client.post('/api/assignments', json={'type': 'submission', 'assignment_id': assignment_id,
                                                          'student_id': self.student.id, 'submission_text': 'v1'},
                                headers=self.headers)
        self.assertEqual(resp.status_code, 201)
        submission_id = resp.get_json()['id']
        # Resubmitting updates the same row
        self.client.post('/api/assignments', json={'type': 'submission', 'assignment_id': assignment_id,
                                                   'student_id': self.student.id, 'submission_text': 'v2'},
                         headers=self.headers)
        self.assertEqual(AssignmentSubmission.query.count(), 1)
        resp = self.client.post('/api/assignments', json={'type': 'evaluate', 'submission_id': submission_id,
                                                          'marks_obtained': 45}, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.get_json()['feedback'].startswith('Excellent'))
        resp = self.client.get('/api/assignments', headers=self.headers)
        self.assertEqual(resp.get_json()['assignments'][0]['submission_count'], 1)

    def test_closed_assignment_rejects_submission(self):
        a = Assignment(title='Old', subject_id=self.subject.id, status='closed')
        db.session.add(a)
        db.session.commit()
        resp = self.client.post('/api/assignments', json={'type': 'submission', 'assignment_id': a.id,
                                                          'student_id': self.student.id}, headers=self.headers)
        self.assertEqual(resp.status_code, 409)

    # Alerts, dashboard, portal

    def test_alerts(self):
        resp = self.client.post('/api/alerts', json={'student_id': self.student.id, 'type': 'fee', 'severity': 'high',
                                                     'title': 'Fee Pending'}, headers=self.headers)
        self.assertEqual(resp.status_code, 201)
        alert_id = resp.get_json()['id']
        resp = self.client.get('/api/alerts?unread=1', headers=self.headers)
        self.assertEqual(len(resp.get_json()['alerts']), 1)
        self.client.put(f'/api/alerts/{alert_id}', json={'is_read': True}, headers=self.headers)
        resp = self.client.get('/api/alerts?unread=1', headers=self.headers)
        self.assertEqual(resp.get_json()['alerts'], [])
        resp = self.client.post('/api/alerts', json={'type': 'fee', 'severity': 'urgent', 'title': 'X'},
                                headers=self.headers)
        self.assertEqual(resp.status_code, 400)

    def test_dashboard(self):
        db.session.add(Alert(student_id=self.student.id, type='fee', severity='high', title='Fee Pending'))
        db.session.commit()
        resp = self.client.get('/api/dashboard', headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        stats = resp.get_json()['stats']
        self.assertEqual(stats['total_students'], 1)
        self.assertEqual(stats['total_teachers'], 1)
        self.assertEqual(stats['active_alerts'], 1)

    def test_student_portal_access(self):
        resp = self.client.get('/api/student-portal', headers=self.headers)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.get(f'/api/student-portal?student_id={self.student.id}', headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertIn('risk_analysis', resp.get_json())
        resp = self.client.get('/api/student-portal', headers=self.student_headers)
        self.assertEqual(resp.get_json()['student']['id'], self.student.id)
        other = Student(enrollment_no='EN2024099', name='Someone Else')
        db.session.add(other)
        db.session.commit()
        resp = self.client.get(f'/api/student-portal?student_id={other.id}', headers=self.student_headers)
        self.assertEqual(resp.status_code, 403)

    def test_management_pages(self):
        for path in ('/dashboard/students', '/dashboard/attendance', '/dashboard/marks',
                     '/dashboard/fees', '/dashboard/assignments'):
            resp = self.client.get(path, headers=self.headers)
            self.assertEqual(resp.status_code, 200, path)

if __name__ == "__main__":
    unittest.main()
