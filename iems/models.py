from iems import db
from datetime import datetime, date, time

def _serialize(value):
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value

class SerializerMixin:
    """Column-wise dict conversion used by the JSON endpoints."""

    def to_dict(self, **extra):
        data = {c.name: _serialize(getattr(self, c.name)) for c in self.__table__.columns}
        data.update(extra)
        return data

class User(SerializerMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='admin')  # admin, teacher, student
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self, **extra):
        data = super().to_dict(**extra)
        data.pop('password_hash', None)
        return data

    def __repr__(self):
        return f"User('{self.email}', role='{self.role}')"

class Student(SerializerMixin, db.Model):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    enrollment_no = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(20))
    department = db.Column(db.String(100))
    semester = db.Column(db.Integer)
    batch = db.Column(db.String(20))
    gender = db.Column(db.String(10))
    guardian_name = db.Column(db.String(100))
    guardian_phone = db.Column(db.String(20))
    address = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='active')
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('student', uselist=False), lazy=True)
    attendances = db.relationship('Attendance', backref='student', lazy=True, cascade="all, delete-orphan")
    marks = db.relationship('Mark', backref='student', lazy=True, cascade="all, delete-orphan")
    fees = db.relationship('Fee', backref='student', lazy=True, cascade="all, delete-orphan")
    submissions = db.relationship('AssignmentSubmission', backref='student', lazy=True, cascade="all, delete-orphan")
    alerts = db.relationship('Alert', backref='student', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"Student('{self.name}', enrollment_no='{self.enrollment_no}')"

class Teacher(SerializerMixin, db.Model):
    __tablename__ = 'teachers'
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True)
    phone = db.Column(db.String(20))
    department = db.Column(db.String(100))
    specialization = db.Column(db.String(200))
    qualification = db.Column(db.String(100))
    experience_years = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default='active')
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    subjects = db.relationship('Subject', backref='teacher', lazy=True)

    def __repr__(self):
        return f"Teacher('{self.name}', employee_id='{self.employee_id}')"

class Subject(SerializerMixin, db.Model):
    __tablename__ = 'subjects'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100))
    semester = db.Column(db.Integer)
    credits = db.Column(db.Integer)
    type = db.Column(db.String(20), nullable=False, default='theory')  # theory, practical
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id'))

    def __repr__(self):
        return f"Subject('{self.code}', name='{self.name}')"

class Attendance(SerializerMixin, db.Model):
    __tablename__ = 'attendance'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False)  # present, absent, late
    subject = db.relationship('Subject', lazy=True)
    __table_args__ = (db.UniqueConstraint('student_id', 'subject_id', 'date', name='uix_attendance_student_subject_date'),)

    def __repr__(self):
        return f"Attendance(student_id={self.student_id}, subject_id={self.subject_id}, date='{self.date}', status='{self.status}')"

class Mark(SerializerMixin, db.Model):
    __tablename__ = 'marks'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    exam_type = db.Column(db.String(20), nullable=False)  # internal_1, internal_2, midterm, final
    max_marks = db.Column(db.Float, nullable=False)
    obtained_marks = db.Column(db.Float, nullable=False)
    semester = db.Column(db.Integer)
    remarks = db.Column(db.Text)
    subject = db.relationship('Subject', lazy=True)

    @property
    def percentage(self):
        return self.obtained_marks / self.max_marks * 100 if self.max_marks else 0.0

    def __repr__(self):
        return f"Mark(student_id={self.student_id}, subject_id={self.subject_id}, exam='{self.exam_type}', {self.obtained_marks}/{self.max_marks})"

class Fee(SerializerMixin, db.Model):
    __tablename__ = 'fees'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    fee_type = db.Column(db.String(50), nullable=False)  # tuition, exam, library...
    amount = db.Column(db.Float, nullable=False)
    paid = db.Column(db.Float, nullable=False, default=0.0)
    due_date = db.Column(db.Date)
    paid_date = db.Column(db.Date)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, partial, paid, overdue
    semester = db.Column(db.Integer)
    academic_year = db.Column(db.String(20))

    @property
    def pending(self):
        return max((self.amount or 0.0) - (self.paid or 0.0), 0.0)

    def __repr__(self):
        return f"Fee(student_id={self.student_id}, type='{self.fee_type}', amount={self.amount}, paid={self.paid})"

class Assignment(SerializerMixin, db.Model):
    __tablename__ = 'assignments'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    due_date = db.Column(db.Date)
    max_marks = db.Column(db.Float)
    status = db.Column(db.String(20), nullable=False, default='active')  # active, graded, closed
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    subject = db.relationship('Subject', lazy=True)
    submissions = db.relationship('AssignmentSubmission', backref='assignment', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"Assignment('{self.title}', status='{self.status}')"

class AssignmentSubmission(SerializerMixin, db.Model):
    __tablename__ = 'assignment_submissions'
    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey('assignments.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    submission_text = db.Column(db.Text)
    submitted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    marks_obtained = db.Column(db.Float)
    feedback = db.Column(db.Text)
    plagiarism_score = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default='submitted')  # submitted, evaluated
    __table_args__ = (db.UniqueConstraint('assignment_id', 'student_id', name='uix_submission_assignment_student'),)

    def __repr__(self):
        return f"AssignmentSubmission(assignment_id={self.assignment_id}, student_id={self.student_id}, status='{self.status}')"

class Alert(SerializerMixin, db.Model):
    __tablename__ = 'alerts'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'))
    type = db.Column(db.String(20), nullable=False)  # attendance, academic, assignment, fee
    severity = db.Column(db.String(20), nullable=False)  # critical, high, medium, low
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"Alert(student_id={self.student_id}, type='{self.type}', severity='{self.severity}')"

class TimetableSlot(SerializerMixin, db.Model):
    __tablename__ = 'timetable'
    id = db.Column(db.Integer, primary_key=True)
    day = db.Column(db.String(10), nullable=False)
    period = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.String(5))
    end_time = db.Column(db.String(5))
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'))
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id'))
    room = db.Column(db.String(20))
    department = db.Column(db.String(100))
    semester = db.Column(db.Integer)
    section = db.Column(db.String(5), default='A')

    subject = db.relationship('Subject', lazy=True)
    teacher = db.relationship('Teacher', lazy=True)
    __table_args__ = (db.UniqueConstraint('teacher_id', 'day', 'period', name='uix_timetable_teacher_day_period'),)

    def __repr__(self):
        return f"TimetableSlot({self.day} P{self.period}, subject_id={self.subject_id}, teacher_id={self.teacher_id})"

# Convenience display helpers
def student_display_name(student: Student) -> str:
    if getattr(student, 'enrollment_no', None):
        return f"{student.name} ({student.enrollment_no})"
    return student.name
