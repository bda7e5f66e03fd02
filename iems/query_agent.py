"""Keyword-pattern query dispatcher for the command center.

Queries are matched against an ordered list of keyword patterns; the first
pattern with a keyword contained in the (lower-cased) query wins and runs a
single fixed aggregate. Unmatched queries fall back to a student search.
"""
import re
import logging

from sqlalchemy import func, case, or_

from iems import app, db
from iems.models import Student, Teacher, Subject, Attendance, Mark, Fee, Assignment, AssignmentSubmission

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3
SEARCH_LIMIT = 20

EXAMPLE_QUERIES = [
    'Show students with attendance below 70%',
    'Show students likely to fail this semester',
    'Show the 10 top performers',
    'Show fee defaulters',
    'How many students are there?',
    'Show department wise statistics',
    'Show pending assignments',
    'Show faculty list',
    'Show semester 3 students',
]

class QueryError(ValueError):
    pass

def extract_number(text):
    match = re.search(r'(\d+)', text)
    return int(match.group(1)) if match else None

def _pct(value):
    return 'N/A' if value is None else f'{round(value, 1)}%'

def _money(value):
    currency = app.config.get('DEFAULT_CURRENCY', 'INR')
    return f'{currency} {value or 0:,.2f}'

def _rounded(rows, *fields):
    out = []
    for row in rows:
        item = row._asdict()
        for f in fields:
            if item.get(f) is not None:
                item[f] = round(float(item[f]), 1)
        out.append(item)
    return out

def _table(title, description, columns, data, raw, sql):
    return {'type': 'table', 'title': title, 'description': description, 'columns': columns,
            'data': data, 'raw_data': raw, 'sql': sql}

def default_response(query):
    return {
        'type': 'info',
        'title': 'Query Processed',
        'description': f'I couldn\'t find specific data for "{query}". Try queries like:',
        'suggestions': list(EXAMPLE_QUERIES),
    }

# --- Shared aggregates ---

def attendance_pct_expr():
    return func.sum(case((Attendance.status == 'present', 1.0), else_=0.0)) * 100.0 / func.count(Attendance.id)

def marks_pct_expr():
    return func.avg(Mark.obtained_marks * 100.0 / Mark.max_marks)

def attendance_subquery():
    return db.session.query(
        Attendance.student_id.label('student_id'),
        attendance_pct_expr().label('attendance_pct'),
    ).group_by(Attendance.student_id).subquery()

def marks_subquery():
    return db.session.query(
        Mark.student_id.label('student_id'),
        marks_pct_expr().label('avg_marks'),
    ).filter(Mark.max_marks > 0).group_by(Mark.student_id).subquery()

# --- Handlers ---

def low_attendance(query):
    threshold = extract_number(query) or 75
    pct = attendance_pct_expr()
    rows = db.session.query(
        Student.id, Student.name, Student.enrollment_no, Student.department, Student.semester,
        pct.label('attendance_pct'),
    ).join(Attendance, Attendance.student_id == Student.id)\
        .filter(Student.status == 'active')\
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department, Student.semester)\
        .having(func.round(pct, 1) < threshold)\
        .order_by(pct.asc(), Student.id.asc()).all()
    raw = _rounded(rows, 'attendance_pct')
    return _table(
        f'Students with attendance below {threshold}%',
        f'Found {len(raw)} students with attendance less than {threshold}%',
        ['Name', 'Enrollment', 'Department', 'Semester', 'Attendance %'],
        [[r['name'], r['enrollment_no'], r['department'], r['semester'], _pct(r['attendance_pct'])] for r in raw],
        raw,
        f'SELECT name, enrollment_no, department, attendance_percentage FROM students WHERE attendance < {threshold}%',
    )

def likely_to_fail(query):
    att = attendance_subquery()
    mk = marks_subquery()
    rows = db.session.query(
        Student.id, Student.name, Student.enrollment_no, Student.department,
        att.c.attendance_pct, mk.c.avg_marks,
    ).join(att, att.c.student_id == Student.id)\
        .outerjoin(mk, mk.c.student_id == Student.id)\
        .filter(Student.status == 'active')\
        .filter(or_(func.round(att.c.attendance_pct, 1) < 70, func.round(mk.c.avg_marks, 1) < 40))\
        .order_by(mk.c.avg_marks.asc().nullslast(), Student.id.asc()).all()
    raw = _rounded(rows, 'attendance_pct', 'avg_marks')
    return _table(
        'Students Likely to Fail This Semester',
        f'Found {len(raw)} students at risk of academic failure (attendance < 70% or marks < 40%)',
        ['Name', 'Enrollment', 'Department', 'Attendance', 'Avg Marks'],
        [[r['name'], r['enrollment_no'], r['department'], _pct(r['attendance_pct']), _pct(r['avg_marks'])] for r in raw],
        raw,
        'SELECT * FROM students WHERE attendance < 70% OR avg_marks < 40%',
    )

def top_performers(query):
    limit = extract_number(query) or 10
    pct = marks_pct_expr()
    rows = db.session.query(
        Student.id, Student.name, Student.enrollment_no, Student.department,
        pct.label('avg_marks'),
    ).join(Mark, Mark.student_id == Student.id)\
        .filter(Mark.max_marks > 0)\
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department)\
        .order_by(pct.desc(), Student.id.asc()).limit(limit).all()
    raw = _rounded(rows, 'avg_marks')
    return _table(
        f'Top {limit} Performing Students',
        f'Showing top {limit} students by average marks',
        ['Name', 'Enrollment', 'Department', 'Avg Marks %'],
        [[r['name'], r['enrollment_no'], r['department'], _pct(r['avg_marks'])] for r in raw],
        raw,
        f'SELECT name, enrollment_no, AVG(marks) FROM students ORDER BY avg_marks DESC LIMIT {limit}',
    )

def fee_defaulters(query):
    pending = func.sum(Fee.amount - Fee.paid)
    rows = db.session.query(
        Student.id, Student.name, Student.enrollment_no, Student.department,
        func.sum(Fee.amount).label('total_fee'), func.sum(Fee.paid).label('paid'), pending.label('pending'),
    ).join(Fee, Fee.student_id == Student.id)\
        .filter(Fee.status.in_(['overdue', 'partial', 'pending']))\
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department)\
        .having(pending > 0)\
        .order_by(pending.desc(), Student.id.asc()).all()
    raw = [r._asdict() for r in rows]
    return _table(
        'Fee Defaulters',
        f'Found {len(raw)} students with pending fees',
        ['Name', 'Enrollment', 'Department', 'Total Fee', 'Paid', 'Pending'],
        [[r['name'], r['enrollment_no'], r['department'], _money(r['total_fee']), _money(r['paid']), _money(r['pending'])] for r in raw],
        raw,
        "SELECT name, total_fee, paid_amount, pending_amount FROM fees WHERE status IN ('overdue','partial','pending')",
    )

def student_count(query):
    total = Student.query.filter_by(status='active').count()
    count = func.count(Student.id)
    by_dept = db.session.query(Student.department, count.label('count'))\
        .filter(Student.status == 'active')\
        .group_by(Student.department)\
        .order_by(count.desc(), Student.department.asc()).all()
    breakdown = [r._asdict() for r in by_dept]
    return {
        'type': 'stat',
        'title': 'Total Active Students',
        'value': total,
        'description': f'There are {total} active students across {len(breakdown)} departments',
        'breakdown': breakdown,
        'sql': "SELECT COUNT(*) FROM students WHERE status = 'active'",
    }

def department_stats(query):
    att = attendance_subquery()
    mk = marks_subquery()
    rows = db.session.query(
        Student.department,
        func.count(Student.id.distinct()).label('students'),
        func.avg(att.c.attendance_pct).label('avg_attendance'),
        func.avg(mk.c.avg_marks).label('avg_marks'),
    ).outerjoin(att, att.c.student_id == Student.id)\
        .outerjoin(mk, mk.c.student_id == Student.id)\
        .filter(Student.status == 'active')\
        .group_by(Student.department)\
        .order_by(Student.department.asc()).all()
    raw = _rounded(rows, 'avg_attendance', 'avg_marks')
    return _table(
        'Department-wise Statistics',
        'Performance breakdown by department',
        ['Department', 'Students', 'Avg Attendance', 'Avg Marks'],
        [[r['department'], r['students'], f"{r['avg_attendance'] or 0}%", f"{r['avg_marks'] or 0}%"] for r in raw],
        raw,
        'SELECT department, COUNT(students), AVG(attendance), AVG(marks) FROM students GROUP BY department',
    )

def pending_assignments(query):
    total_students = Student.query.filter_by(status='active').count()
    submitted = db.session.query(func.count(AssignmentSubmission.id))\
        .filter(AssignmentSubmission.assignment_id == Assignment.id)\
        .correlate(Assignment).scalar_subquery()
    rows = db.session.query(
        Assignment.id, Assignment.title, Subject.name.label('subject'), Assignment.due_date,
        submitted.label('submitted'),
    ).join(Subject, Assignment.subject_id == Subject.id)\
        .filter(Assignment.status == 'active')\
        .order_by(Assignment.due_date.asc(), Assignment.id.asc()).all()
    raw = []
    for r in rows:
        item = r._asdict()
        item['due_date'] = item['due_date'].isoformat() if item['due_date'] else None
        item['total_students'] = total_students
        item['pending'] = max(total_students - item['submitted'], 0)
        raw.append(item)
    return _table(
        'Active Assignments Status',
        f'{len(raw)} active assignments',
        ['Title', 'Subject', 'Due Date', 'Submitted', 'Pending'],
        [[r['title'], r['subject'], r['due_date'], r['submitted'], r['pending']] for r in raw],
        raw,
        "SELECT title, subject, due_date, submission_count FROM assignments WHERE status = 'active'",
    )

def faculty_directory(query):
    subject_count = db.session.query(func.count(Subject.id))\
        .filter(Subject.teacher_id == Teacher.id)\
        .correlate(Teacher).scalar_subquery()
    rows = db.session.query(
        Teacher.id, Teacher.name, Teacher.employee_id, Teacher.department,
        Teacher.specialization, Teacher.qualification, subject_count.label('subjects'),
    ).order_by(Teacher.name.asc(), Teacher.id.asc()).all()
    raw = [r._asdict() for r in rows]
    return _table(
        'Faculty Directory',
        f'{len(raw)} faculty members',
        ['Name', 'ID', 'Department', 'Specialization', 'Subjects'],
        [[r['name'], r['employee_id'], r['department'], r['specialization'], r['subjects']] for r in raw],
        raw,
        'SELECT name, department, specialization FROM teachers',
    )

def semester_students(query):
    semester = extract_number(query)
    if not semester:
        return default_response(query)
    pct = marks_pct_expr()
    rows = db.session.query(
        Student.id, Student.name, Student.enrollment_no, Student.department,
        pct.label('avg_marks'),
    ).join(Mark, Mark.student_id == Student.id)\
        .filter(Student.semester == semester, Mark.max_marks > 0)\
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department)\
        .order_by(pct.desc(), Student.id.asc()).all()
    raw = _rounded(rows, 'avg_marks')
    return _table(
        f'Semester {semester} Students',
        f'{len(raw)} students in semester {semester}',
        ['Name', 'Enrollment', 'Department', 'Avg Marks'],
        [[r['name'], r['enrollment_no'], r['department'], _pct(r['avg_marks'])] for r in raw],
        raw,
        f'SELECT * FROM students WHERE semester = {semester}',
    )

def search_students(query):
    like = f'%{query}%'
    rows = db.session.query(
        Student.id, Student.name, Student.enrollment_no, Student.department, Student.semester,
    ).filter(or_(Student.name.ilike(like), Student.enrollment_no.ilike(like)))\
        .order_by(Student.name.asc(), Student.id.asc()).limit(SEARCH_LIMIT).all()
    if not rows:
        return default_response(query)
    raw = [r._asdict() for r in rows]
    return _table(
        f'Search Results for "{query}"',
        f'Found {len(raw)} matching students',
        ['Name', 'Enrollment', 'Department', 'Semester'],
        [[r['name'], r['enrollment_no'], r['department'], r['semester']] for r in raw],
        raw,
        f"SELECT * FROM students WHERE name LIKE '%{query}%'",
    )

# Order is significant: the first pattern with a matching keyword wins.
PATTERNS = [
    (('attendance below', 'attendance less than', 'attendance under', 'low attendance'), low_attendance),
    (('fail', 'failing', 'likely to fail', 'at risk', 'risk of failure'), likely_to_fail),
    (('top performer', 'best student', 'highest marks', 'toppers', 'top student'), top_performers),
    (('fee', 'defaulter', 'pending fee', 'unpaid', 'due fee'), fee_defaulters),
    (('how many student', 'total student', 'student count', 'number of student'), student_count),
    (('department', 'dept wise', 'department wise'), department_stats),
    (('assignment', 'pending assignment', 'not submitted'), pending_assignments),
    (('teacher', 'faculty', 'professor'), faculty_directory),
    (('semester', 'performance by semester'), semester_students),
]

def match_pattern(query):
    """Return the handler for the first pattern whose keywords occur in the query, or None."""
    for keywords, handler in PATTERNS:
        if any(k in query for k in keywords):
            return handler
    return None

def process_query(text):
    if not text or len(text.strip()) < MIN_QUERY_LENGTH:
        raise QueryError('Please provide a valid query')
    query = text.lower().strip()
    handler = match_pattern(query)
    if handler is None:
        logger.info(f"No pattern matched query '{query}', falling back to student search")
        return search_students(query)
    logger.info(f"Query '{query}' routed to {handler.__name__}")
    return handler(query)
