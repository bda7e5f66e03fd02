from iems import app, db
from iems.models import Student, Teacher, Subject, User, Attendance, Mark, Fee, Assignment, AssignmentSubmission, Alert
from werkzeug.security import generate_password_hash
from datetime import datetime, timedelta, date
import random

USERS = [
    ('admin@iems.edu', 'admin123', 'Dr. Rajesh Kumar', 'admin'),
]

TEACHERS = [
    ('T001', 'Prof. Anita Sharma', 'Computer Science', 'Data Structures', 'M.Tech', 12),
    ('T002', 'Prof. Vikram Singh', 'Computer Science', 'Machine Learning', 'PhD', 8),
    ('T003', 'Dr. Priya Patel', 'Electronics', 'Signal Processing', 'PhD', 15),
    ('T004', 'Prof. Suresh Reddy', 'Mechanical', 'Thermodynamics', 'M.Tech', 10),
    ('T005', 'Dr. Meena Iyer', 'Mathematics', 'Applied Mathematics', 'PhD', 20),
    ('T006', 'Prof. Arjun Nair', 'Computer Science', 'Databases', 'M.Tech', 7),
    ('T007', 'Dr. Kavitha Menon', 'Electronics', 'VLSI Design', 'PhD', 11),
    ('T008', 'Prof. Rahul Gupta', 'Civil', 'Structural Engineering', 'M.Tech', 9),
    ('T009', 'Dr. Sunita Desai', 'Computer Science', 'Networks', 'PhD', 14),
    ('T010', 'Prof. Amit Joshi', 'Mathematics', 'Statistics', 'M.Sc', 6),
]

# code, name, department, semester, credits, type, teacher index (1-based)
SUBJECTS = [
    ('CS101', 'Data Structures & Algorithms', 'Computer Science', 3, 4, 'theory', 1),
    ('CS102', 'Database Management Systems', 'Computer Science', 4, 4, 'theory', 6),
    ('CS103', 'Operating Systems', 'Computer Science', 5, 3, 'theory', 9),
    ('CS104', 'Machine Learning', 'Computer Science', 6, 4, 'theory', 2),
    ('CS105', 'Computer Networks', 'Computer Science', 5, 3, 'theory', 9),
    ('CS106', 'Web Technologies Lab', 'Computer Science', 4, 2, 'practical', 1),
    ('EC201', 'Digital Signal Processing', 'Electronics', 5, 4, 'theory', 3),
    ('EC202', 'VLSI Design', 'Electronics', 6, 3, 'theory', 7),
    ('ME301', 'Thermodynamics', 'Mechanical', 3, 4, 'theory', 4),
    ('CE401', 'Structural Analysis', 'Civil', 5, 4, 'theory', 8),
    ('MA101', 'Engineering Mathematics I', 'Mathematics', 1, 4, 'theory', 5),
    ('MA102', 'Engineering Mathematics II', 'Mathematics', 2, 4, 'theory', 5),
    ('MA201', 'Probability & Statistics', 'Mathematics', 3, 3, 'theory', 10),
    ('CS107', 'Artificial Intelligence', 'Computer Science', 7, 4, 'theory', 2),
    ('CS108', 'Software Engineering', 'Computer Science', 6, 3, 'theory', 6),
]

# title, description, subject code, due date, max marks, status
ASSIGNMENTS = [
    ('Stack Implementation', 'Implement a stack using linked list in C++', 'CS101', date(2026, 2, 20), 50, 'graded'),
    ('Binary Tree Traversal', 'Write programs for all tree traversal methods', 'CS101', date(2026, 3, 1), 50, 'active'),
    ('ER Diagram Design', 'Design ER diagram for a hospital management system', 'CS102', date(2026, 2, 25), 40, 'graded'),
    ('SQL Queries', 'Write complex SQL queries for given scenarios', 'CS102', date(2026, 3, 5), 50, 'active'),
    ('Process Scheduling', 'Simulate CPU scheduling algorithms', 'CS103', date(2026, 2, 28), 60, 'active'),
    ('Linear Algebra Problems', 'Solve matrix operations problems (set A)', 'MA101', date(2026, 2, 15), 30, 'graded'),
    ('Calculus Assignment', 'Integration and differentiation problems', 'MA101', date(2026, 3, 10), 40, 'active'),
    ('ML Model Training', 'Train a classification model on given dataset', 'CS104', date(2026, 3, 15), 100, 'active'),
]

# student index (1-based), type, severity, title, message
ALERTS = [
    (1, 'attendance', 'critical', 'Very Low Attendance', 'Attendance has dropped below 55% in Data Structures. Immediate intervention required.'),
    (2, 'attendance', 'high', 'Low Attendance Warning', 'Attendance is below 60% in multiple subjects.'),
    (3, 'academic', 'critical', 'Academic Failure Risk', 'Student is at high risk of failing based on combined attendance and marks analysis.'),
    (4, 'fee', 'high', 'Fee Payment Overdue', 'Tuition fee partially paid. Balance amount pending.'),
    (5, 'assignment', 'medium', 'Missing Assignments', 'Multiple assignment submissions pending.'),
    (6, 'attendance', 'high', 'Attendance Declining', 'Attendance trend shows consistent decline over past 3 weeks.'),
    (7, 'academic', 'medium', 'Below Average Performance', 'Internal exam scores below class average.'),
]

FIRST_NAMES = ['Aarav', 'Vivaan', 'Aditya', 'Vihaan', 'Arjun', 'Reyansh', 'Sai', 'Arnav', 'Dhruv', 'Kabir',
               'Ananya', 'Saanvi', 'Ishita', 'Kavya', 'Riya', 'Pooja', 'Neha', 'Shreya', 'Tanvi', 'Diya',
               'Rohan', 'Karan', 'Nikhil', 'Prateek', 'Siddharth', 'Manish', 'Ravi', 'Deepak', 'Aakash', 'Vishal',
               'Priya', 'Sneha', 'Divya', 'Nisha', 'Ankita', 'Sakshi', 'Megha', 'Swati', 'Ritika', 'Komal',
               'Harsh', 'Dev', 'Om', 'Yash', 'Varun', 'Gaurav', 'Rohit', 'Rajat', 'Tarun', 'Mohit']
LAST_NAMES = ['Sharma', 'Verma', 'Patel', 'Singh', 'Kumar', 'Gupta', 'Reddy', 'Nair', 'Joshi', 'Desai',
              'Iyer', 'Menon', 'Rao', 'Das', 'Mishra', 'Chauhan', 'Malhotra', 'Kapoor', 'Bhat', 'Pillai']
STUDENT_DEPARTMENTS = ['Computer Science', 'Computer Science', 'Computer Science', 'Electronics', 'Mechanical']
EXAM_TYPES = ['internal_1', 'internal_2', 'midterm']
TRACKED_SUBJECTS = ['CS101', 'CS102', 'CS103', 'MA101']
STUDENT_COUNT = 50

def attendance_rate(n):
    if n <= 5:
        return 0.55
    if n <= 10:
        return 0.65
    if n > 40:
        return 0.95
    return 0.85

def marks_base(n):
    if n <= 5:
        return 0.35
    if n <= 10:
        return 0.50
    if n > 40:
        return 0.88
    return 0.70

def seed(rng=None):
    rng = rng or random.Random(42)
    with app.app_context():
        if Student.query.first():
            print("Database already has students; skipping seed.")
            return
        print("Seeding database...")

        for email, password, name, role in USERS:
            if not User.query.filter_by(email=email).first():
                db.session.add(User(email=email, password_hash=generate_password_hash(password), name=name, role=role))
        db.session.commit()
        print("Created admin user.")

        teachers = []
        for i, (emp_id, name, dept, specialization, qual, years) in enumerate(TEACHERS, start=1):
            email = f"teacher{i}@iems.edu"
            user = User(email=email, password_hash=generate_password_hash('teacher123'), name=name, role='teacher')
            db.session.add(user)
            db.session.flush()
            t = Teacher(employee_id=emp_id, name=name, email=email, phone=f"98765432{i - 1:02d}", department=dept,
                        specialization=specialization, qualification=qual, experience_years=years, user_id=user.id)
            db.session.add(t)
            teachers.append(t)
        db.session.commit()
        print(f"Created {len(teachers)} teachers.")

        subjects = {}
        for code, name, dept, sem, credits, kind, teacher_idx in SUBJECTS:
            s = Subject(code=code, name=name, department=dept, semester=sem, credits=credits, type=kind,
                        teacher_id=teachers[teacher_idx - 1].id)
            db.session.add(s)
            subjects[code] = s
        db.session.commit()
        print(f"Created {len(subjects)} subjects.")

        students = []
        student_pw = generate_password_hash('student123')
        for i in range(STUDENT_COUNT):
            first = FIRST_NAMES[i % len(FIRST_NAMES)]
            last = LAST_NAMES[i % len(LAST_NAMES)]
            name = f"{first} {last}"
            email = f"{first.lower()}.{last.lower()}@student.iems.edu"
            user = User(email=email, password_hash=student_pw, name=name, role='student')
            db.session.add(user)
            db.session.flush()
            if i < 20:
                gender = 'M'
            elif i < 40:
                gender = 'F'
            else:
                gender = rng.choice(['M', 'F'])
            s = Student(
                enrollment_no=f"EN{2024001 + i}",
                name=name,
                email=email,
                phone=f"98{rng.randint(0, 99999999):08d}",
                department=STUDENT_DEPARTMENTS[i % len(STUDENT_DEPARTMENTS)],
                semester=rng.randint(1, 6),
                batch='2024-28',
                gender=gender,
                guardian_name=f"Mr. {last}",
                guardian_phone=f"97{rng.randint(0, 99999999):08d}",
                status='active',
                user_id=user.id,
            )
            db.session.add(s)
            students.append(s)
        db.session.commit()
        print(f"Created {len(students)} students.")

        tracked = [subjects[c] for c in TRACKED_SUBJECTS]
        today = date.today()
        count = 0
        for d in range(60):
            day = today - timedelta(days=d)
            if day.weekday() == 6:  # Sunday
                continue
            for n, s in enumerate(students, start=1):
                rate = attendance_rate(n)
                for subj in tracked:
                    if rng.random() <= 0.3:
                        continue
                    status = 'present' if rng.random() < rate else 'absent'
                    db.session.add(Attendance(student_id=s.id, subject_id=subj.id, date=day, status=status))
                    count += 1
        db.session.commit()
        print(f"Created {count} attendance records.")

        for n, s in enumerate(students, start=1):
            base = marks_base(n)
            for subj in tracked:
                for exam in EXAM_TYPES:
                    max_marks = 100 if exam == 'midterm' else 50
                    score = max(0, min(max_marks, round(max_marks * (base + (rng.random() - 0.5) * 0.2))))
                    db.session.add(Mark(student_id=s.id, subject_id=subj.id, exam_type=exam,
                                        max_marks=max_marks, obtained_marks=score, semester=3))
        db.session.commit()
        print("Created marks.")

        admin = User.query.filter_by(role='admin').first()
        assignments = []
        for title, desc, code, due, max_marks, status in ASSIGNMENTS:
            a = Assignment(title=title, description=desc, subject_id=subjects[code].id, due_date=due,
                           max_marks=max_marks, status=status, created_by=admin.id if admin else None)
            db.session.add(a)
            assignments.append(a)
        db.session.commit()

        for a in assignments[:3]:
            for n, s in enumerate(students, start=1):
                if rng.random() <= (0.5 if n <= 5 else 0.15):
                    continue
                if n <= 5:
                    score = round(rng.random() * 20 + 5)
                elif n > 40:
                    score = round(rng.random() * 15 + 35)
                else:
                    score = round(rng.random() * 40 + 10)
                db.session.add(AssignmentSubmission(
                    assignment_id=a.id, student_id=s.id, submission_text='Solution submitted',
                    submitted_at=datetime(2026, 2, 20, 10, 0), marks_obtained=score,
                    feedback='Good work!' if score > 30 else 'Needs improvement',
                    plagiarism_score=round(rng.random() * (40 if n <= 5 else 15)), status='evaluated',
                ))
        db.session.commit()
        print(f"Created {len(assignments)} assignments with submissions.")

        for n, s in enumerate(students, start=1):
            paid, status = 50000.0, 'paid'
            if n <= 5:
                paid, status = 20000.0, 'partial'
            elif n <= 10:
                paid, status = 0.0, 'overdue'
            db.session.add(Fee(student_id=s.id, fee_type='tuition', amount=50000.0, paid=paid,
                               due_date=date(2026, 1, 15), paid_date=date(2026, 1, 10) if paid > 0 else None,
                               status=status, semester=3, academic_year='2025-26'))
            db.session.add(Fee(student_id=s.id, fee_type='exam', amount=2000.0, paid=2000.0, due_date=date(2026, 2, 1),
                               paid_date=date(2026, 1, 28), status='paid', semester=3, academic_year='2025-26'))
            db.session.add(Fee(student_id=s.id, fee_type='library', amount=1000.0, paid=1000.0, due_date=date(2026, 1, 1),
                               paid_date=date(2025, 12, 28), status='paid', semester=3, academic_year='2025-26'))
        db.session.commit()
        print("Created fee records.")

        for idx, kind, severity, title, message in ALERTS:
            db.session.add(Alert(student_id=students[idx - 1].id, type=kind, severity=severity, title=title, message=message))
        db.session.commit()
        print("Created sample alerts.")

        print("Seeding complete.")

if __name__ == "__main__":
    seed()
