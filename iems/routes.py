from flask import render_template, url_for, flash, redirect, request, jsonify, make_response
from iems import app, db, limiter
import logging
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)
from iems.models import Student, Teacher, Subject, User, Attendance, Mark, Fee, Assignment, AssignmentSubmission, Alert, TimetableSlot
from iems.auth import create_token, current_user, set_token_cookie, token_required, roles_required, TOKEN_COOKIE
from iems import risk, monitor, query_agent, timetable as timetable_service
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_, func, case
from werkzeug.security import check_password_hash, generate_password_hash
from datetime import datetime, timedelta, date
import calendar
import re

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ROLES = ('admin', 'teacher', 'student')
STAFF_ROLES = ('admin', 'teacher')
ATTENDANCE_STATUSES = ('present', 'absent', 'late')
EXAM_TYPES = risk.EXAM_ORDER
FEE_STATUSES = ('pending', 'partial', 'paid', 'overdue')
STUDENT_STATUSES = ('active', 'inactive', 'graduated')
STUDENT_FIELDS = ('enrollment_no', 'name', 'email', 'phone', 'department', 'semester', 'batch', 'gender',
                  'guardian_name', 'guardian_phone', 'address', 'status')
TEACHER_FIELDS = ('employee_id', 'name', 'email', 'phone', 'department', 'specialization', 'qualification',
                  'experience_years', 'status')
SUBJECT_FIELDS = ('code', 'name', 'department', 'semester', 'credits', 'type', 'teacher_id')

class ApiError(Exception):
    """Validation or lookup failure reported to the client as JSON."""

    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status

# --- Request helpers ---

def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ApiError('Request body must be a JSON object')
    return data

def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ApiError(f"Missing required field(s): {', '.join(missing)}")

def _parse_int(value, field, required=False):
    if value in (None, ''):
        if required:
            raise ApiError(f'{field} is required')
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ApiError(f'Invalid {field}')

def _parse_float(value, field, required=False):
    if value in (None, ''):
        if required:
            raise ApiError(f'{field} is required')
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ApiError(f'Invalid {field}')

def _parse_date(value, field, required=False):
    if value in (None, ''):
        if required:
            raise ApiError(f'{field} is required')
        return None
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ApiError(f'Invalid {field}, expected YYYY-MM-DD')

def _apply_fields(obj, data, fields, int_fields=()):
    for f in fields:
        if f not in data:
            continue
        value = data[f]
        if f in int_fields:
            value = _parse_int(value, f)
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(obj, f, value)

def _reject_blank(data, *fields):
    for f in fields:
        if f in data and (data[f] is None or not str(data[f]).strip()):
            raise ApiError(f'{f} cannot be empty')

def _get_or_404(model, obj_id, label):
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise ApiError(f'{label} not found', 404)
    return obj

def _commit(conflict_message):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning(f"Integrity conflict: {conflict_message}")
        raise ApiError(conflict_message, 409)

def _round(value, digits=1):
    return None if value is None else round(float(value), digits)

# --- Shared aggregates ---

def _present_sum():
    return func.sum(case((Attendance.status == 'present', 1), else_=0))

def _absent_sum():
    return func.sum(case((Attendance.status == 'absent', 1), else_=0))

def attendance_summary(student_id):
    total, present, absent = db.session.query(
        func.count(Attendance.id), _present_sum(), _absent_sum(),
    ).filter(Attendance.student_id == student_id).one()
    present = present or 0
    return {
        'total_classes': total,
        'present': present,
        'absent': absent or 0,
        'percentage': round(present / total * 100, 1) if total else None,
    }

def subject_attendance(student_id):
    rows = db.session.query(
        Subject.id.label('subject_id'), Subject.name.label('subject_name'), Subject.code.label('subject_code'),
        func.count(Attendance.id).label('total'), _present_sum().label('present'),
    ).join(Attendance, Attendance.subject_id == Subject.id)\
        .filter(Attendance.student_id == student_id)\
        .group_by(Subject.id, Subject.name, Subject.code)\
        .order_by(Subject.name.asc()).all()
    out = []
    for r in rows:
        item = r._asdict()
        item['percentage'] = round((item['present'] or 0) / item['total'] * 100, 1) if item['total'] else None
        out.append(item)
    return out

def marks_for_student(student_id):
    marks = Mark.query.join(Subject, Mark.subject_id == Subject.id)\
        .filter(Mark.student_id == student_id)\
        .order_by(Subject.name.asc(), Mark.exam_type.asc()).all()
    return [m.to_dict(subject_name=m.subject.name, subject_code=m.subject.code, percentage=round(m.percentage, 1)) for m in marks]

def subject_performance(student_id):
    rows = db.session.query(
        Subject.name.label('subject_name'), Subject.code.label('subject_code'),
        func.sum(Mark.obtained_marks).label('total_obtained'), func.sum(Mark.max_marks).label('total_max'),
    ).join(Mark, Mark.subject_id == Subject.id)\
        .filter(Mark.student_id == student_id)\
        .group_by(Subject.id, Subject.name, Subject.code)\
        .order_by(Subject.name.asc()).all()
    out = []
    for r in rows:
        item = r._asdict()
        item['percentage'] = round(item['total_obtained'] / item['total_max'] * 100, 1) if item['total_max'] else None
        out.append(item)
    return out

def fee_summary(student_id=None):
    q = db.session.query(
        func.coalesce(func.sum(Fee.amount), 0.0),
        func.coalesce(func.sum(Fee.paid), 0.0),
        func.coalesce(func.sum(case((Fee.status == 'overdue', Fee.amount - Fee.paid), else_=0.0)), 0.0),
    )
    if student_id is not None:
        q = q.filter(Fee.student_id == student_id)
    total, paid, overdue = q.one()
    return {'total_amount': total, 'total_paid': paid, 'total_pending': total - paid, 'overdue_amount': overdue}

def submissions_for_student(student_id):
    subs = AssignmentSubmission.query.filter_by(student_id=student_id)\
        .order_by(AssignmentSubmission.submitted_at.desc()).all()
    return [s.to_dict(assignment_title=s.assignment.title, subject_name=s.assignment.subject.name) for s in subs]

def alerts_for_student(student_id):
    return [a.to_dict() for a in Alert.query.filter_by(student_id=student_id).order_by(Alert.created_at.desc(), Alert.id.desc()).all()]

def student_detail(student):
    return {
        'student': student.to_dict(),
        'attendance': attendance_summary(student.id),
        'subject_attendance': subject_attendance(student.id),
        'marks': marks_for_student(student.id),
        'fees': [f.to_dict(pending=f.pending) for f in Fee.query.filter_by(student_id=student.id).order_by(Fee.due_date.desc()).all()],
        'submissions': submissions_for_student(student.id),
        'alerts': alerts_for_student(student.id),
    }

def attendance_overview(on_date=None, month=None):
    q = db.session.query(
        func.count(func.distinct(Attendance.student_id)),
        func.count(Attendance.id),
        _present_sum(),
        func.count(func.distinct(Attendance.date)),
        _absent_sum(),
    )
    if on_date:
        q = q.filter(Attendance.date == on_date)
    elif month:
        year, mon = month
        q = q.filter(Attendance.date >= date(year, mon, 1),
                     Attendance.date <= date(year, mon, calendar.monthrange(year, mon)[1]))
    students, records, present, days, absents = q.one()
    stats = {
        'total_students': students,
        'avg_attendance': round((present or 0) / records * 100, 1) if records else 0,
        'total_days': days,
        'total_absents': absents or 0,
    }
    pct = _present_sum() * 100.0 / func.count(Attendance.id)
    dept_stats = [
        {'department': r.department, 'avg_attendance': _round(r.avg_attendance), 'student_count': r.student_count}
        for r in db.session.query(
            Student.department, pct.label('avg_attendance'),
            func.count(func.distinct(Student.id)).label('student_count'),
        ).join(Attendance, Attendance.student_id == Student.id)
        .group_by(Student.department).order_by(Student.department.asc()).all()
    ]
    since = date.today() - timedelta(days=30)
    trend = [
        {'date': r.date.isoformat(), 'percentage': _round(r.percentage), 'total_records': r.total_records}
        for r in db.session.query(Attendance.date, pct.label('percentage'), func.count(Attendance.id).label('total_records'))
        .filter(Attendance.date >= since).group_by(Attendance.date).order_by(Attendance.date.asc()).all()
    ]
    threshold = float(app.config.get('ATTENDANCE_THRESHOLD', 75))
    low = [
        dict(r._asdict(), percentage=_round(r.percentage))
        for r in db.session.query(
            Student.id, Student.name, Student.enrollment_no, Student.department, pct.label('percentage'),
        ).join(Attendance, Attendance.student_id == Student.id)
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department)
        .having(pct < threshold).order_by(pct.asc(), Student.id.asc()).all()
    ]
    return {'stats': stats, 'dept_stats': dept_stats, 'trend': trend, 'low_attendance': low}

def marks_overview():
    pct = func.avg(Mark.obtained_marks * 100.0 / Mark.max_marks)
    avg_pct, students, failing = db.session.query(
        pct,
        func.count(func.distinct(Mark.student_id)),
        func.sum(case((Mark.obtained_marks < Mark.max_marks * 0.4, 1), else_=0)),
    ).filter(Mark.max_marks > 0).one()
    overall = {'avg_percentage': _round(avg_pct), 'total_students': students, 'failing_count': failing or 0}
    per_mark = Mark.obtained_marks * 100.0 / Mark.max_marks
    subjects = [
        dict(r._asdict(), avg_percentage=_round(r.avg_percentage), highest=_round(r.highest), lowest=_round(r.lowest))
        for r in db.session.query(
            Subject.id, Subject.name.label('subject_name'), Subject.code,
            pct.label('avg_percentage'), func.max(per_mark).label('highest'), func.min(per_mark).label('lowest'),
            func.count(func.distinct(Mark.student_id)).label('student_count'),
        ).join(Mark, Mark.subject_id == Subject.id).filter(Mark.max_marks > 0)
        .group_by(Subject.id, Subject.name, Subject.code).order_by(pct.desc(), Subject.id.asc()).all()
    ]
    top = query_agent.top_performers('top 10')['raw_data']
    return {'overall_stats': overall, 'subject_performance': subjects, 'top_performers': top}

def fees_overview():
    total, paid, _ = db.session.query(
        func.coalesce(func.sum(Fee.amount), 0.0), func.coalesce(func.sum(Fee.paid), 0.0), func.count(Fee.id)).one()
    counts = dict(db.session.query(Fee.status, func.count(Fee.id)).group_by(Fee.status).all())
    stats = {
        'total_amount': total,
        'total_paid': paid,
        'total_pending': total - paid,
        'total_records': sum(counts.values()),
    }
    for status in FEE_STATUSES:
        stats[f'{status}_count'] = counts.get(status, 0)
    pending = func.sum(Fee.amount - Fee.paid)
    defaulters = [
        r._asdict() for r in db.session.query(
            Student.id, Student.name, Student.enrollment_no, Student.department, pending.label('pending_amount'),
        ).join(Fee, Fee.student_id == Student.id)
        .filter(Fee.status.in_(['overdue', 'partial']))
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department)
        .order_by(pending.desc(), Student.id.asc()).limit(20).all()
    ]
    return {'stats': stats, 'defaulters': defaulters}

def assignment_list(subject_id=None):
    submission_count = db.session.query(func.count(AssignmentSubmission.id))\
        .filter(AssignmentSubmission.assignment_id == Assignment.id).correlate(Assignment).scalar_subquery()
    total_students = db.session.query(func.count(func.distinct(Attendance.student_id)))\
        .filter(Attendance.subject_id == Assignment.subject_id).correlate(Assignment).scalar_subquery()
    q = db.session.query(Assignment, submission_count.label('submission_count'), total_students.label('total_students'))
    if subject_id:
        q = q.filter(Assignment.subject_id == subject_id)
    rows = q.order_by(Assignment.due_date.desc(), Assignment.id.desc()).all()
    return [
        a.to_dict(subject_name=a.subject.name, subject_code=a.subject.code,
                  submission_count=count, total_students=students)
        for a, count, students in rows
    ]

def grade_for(pct):
    if pct >= 90:
        return 'A+'
    if pct >= 80:
        return 'A'
    if pct >= 70:
        return 'B'
    if pct >= 60:
        return 'C'
    if pct >= 50:
        return 'D'
    return 'F'

def dashboard_data():
    pct = _present_sum() * 100.0 / func.count(Attendance.id)
    avg_attendance = db.session.query(pct).scalar()
    avg_performance = db.session.query(func.avg(Mark.obtained_marks * 100.0 / Mark.max_marks)).filter(Mark.max_marks > 0).scalar()
    fees = fee_summary()
    pending = db.session.query(func.coalesce(func.sum(Fee.amount - Fee.paid), 0.0)).filter(Fee.status != 'paid').scalar()
    stats = {
        'total_students': Student.query.filter_by(status='active').count(),
        'total_teachers': Teacher.query.filter_by(status='active').count(),
        'total_subjects': Subject.query.count(),
        'avg_attendance': _round(avg_attendance) or 0,
        'avg_performance': _round(avg_performance) or 0,
        'total_fee_collected': fees['total_paid'],
        'total_fee_pending': pending,
        'active_alerts': Alert.query.filter_by(is_read=False).count(),
    }
    recent_alerts = [
        a.to_dict(student_name=a.student.name if a.student else None,
                  enrollment_no=a.student.enrollment_no if a.student else None)
        for a in Alert.query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(10).all()
    ]
    at_risk = query_agent.low_attendance('attendance below 70')['raw_data'][:15]
    departments = query_agent.department_stats('department')['raw_data']
    since = date.today() - timedelta(days=14)
    trend = [
        {'date': r.date.isoformat(), 'percentage': _round(r.percentage)}
        for r in db.session.query(Attendance.date, pct.label('percentage'))
        .filter(Attendance.date >= since).group_by(Attendance.date).order_by(Attendance.date.asc()).all()
    ]
    distribution = {}
    sub = query_agent.marks_subquery()
    for (avg_marks,) in db.session.query(sub.c.avg_marks).all():
        grade = grade_for(float(avg_marks))
        distribution[grade] = distribution.get(grade, 0) + 1
    return {
        'stats': stats,
        'recent_alerts': recent_alerts,
        'at_risk_students': at_risk,
        'department_stats': departments,
        'attendance_trend': trend,
        'performance_distribution': [{'grade': g, 'count': c} for g, c in sorted(distribution.items())],
    }

def portal_data(student):
    assignments = []
    rows = db.session.query(Assignment, AssignmentSubmission)\
        .outerjoin(AssignmentSubmission, (AssignmentSubmission.assignment_id == Assignment.id) & (AssignmentSubmission.student_id == student.id))\
        .order_by(Assignment.due_date.desc(), Assignment.id.desc()).all()
    for a, sub in rows:
        assignments.append({
            'id': a.id, 'title': a.title, 'description': a.description,
            'due_date': a.due_date.isoformat() if a.due_date else None, 'max_marks': a.max_marks,
            'assignment_status': a.status, 'subject_name': a.subject.name, 'subject_code': a.subject.code,
            'submission_id': sub.id if sub else None,
            'marks_obtained': sub.marks_obtained if sub else None,
            'feedback': sub.feedback if sub else None,
            'submission_status': sub.status if sub else None,
            'submitted_at': sub.submitted_at.isoformat() if sub else None,
        })
    detail = student_detail(student)
    detail.pop('submissions')
    detail.update({
        'subject_performance': subject_performance(student.id),
        'assignments': assignments,
        'fee_summary': fee_summary(student.id),
        'risk_analysis': risk.analyze_student(student.id),
        'timetable': [timetable_service.slot_to_dict(s)
                      for s in timetable_service.list_slots(student.department, student.semester)]
        if student.department and student.semester else [],
    })
    return detail

def _login(email, password):
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        logger.warning(f"Failed login for {email}")
        return None
    return user

def _user_payload(user):
    student_id = None
    if user.role == 'student':
        student = Student.query.filter_by(user_id=user.id).first()
        if student:
            student_id = student.id
    return {'id': user.id, 'email': user.email, 'name': user.name, 'role': user.role, 'student_id': student_id}

# --- Errors & response hooks ---

@app.errorhandler(ApiError)
def handle_api_error(error):
    return jsonify({'error': error.message}), error.status

@app.errorhandler(404)
def handle_404(error):
    if request.path.startswith('/api/'):
        return jsonify({'error': 'Not found'}), 404
    return render_template('error.html', title='Not Found', code=404, message='The page you requested does not exist.'), 404

@app.errorhandler(429)
def handle_429(error):
    response = jsonify({'error': 'Too many requests. Please try again later.'})
    response.headers['Retry-After'] = '60'
    return response, 429

@app.errorhandler(500)
def handle_500(error):
    logger.error(f"Unhandled exception on {request.path}", exc_info=getattr(error, 'original_exception', None))
    db.session.rollback()
    if request.path.startswith('/api/'):
        return jsonify({'error': 'Internal server error'}), 500
    return render_template('error.html', title='Server Error', code=500, message='Something went wrong.'), 500

@app.after_request
def security_headers(response):
    response.headers.setdefault('X-Content-Type-Options', 'nosniff')
    response.headers.setdefault('X-Frame-Options', 'DENY')
    response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
    response.headers.setdefault('Permissions-Policy', 'camera=(), microphone=(), geolocation=()')
    if app.config.get('SECURE_COOKIES'):
        response.headers.setdefault('Strict-Transport-Security', 'max-age=63072000; includeSubDomains')
    return response

@app.route("/healthz")
@limiter.exempt
def healthz():
    try:
        return jsonify({
            "status": "ok",
            "students": Student.query.count(),
            "teachers": Teacher.query.count(),
            "subjects": Subject.query.count(),
        }), 200
    except Exception as e:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "message": str(e)}), 500

# --- Auth API ---

@app.route('/api/auth/login', methods=['POST'])
@limiter.limit(lambda: app.config.get('RATE_LIMIT_AUTH', '10 per minute'))
def api_login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400
    user = _login(email, password)
    if user is None:
        return jsonify({'error': 'Invalid email or password'}), 401
    token = create_token(user)
    logger.info(f"User {email} logged in")
    response = jsonify({'token': token, 'user': _user_payload(user)})
    return set_token_cookie(response, token)

@app.route('/api/auth/register', methods=['POST'])
@limiter.limit(lambda: app.config.get('RATE_LIMIT_AUTH', '10 per minute'))
def api_register():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    name = (data.get('name') or '').strip()
    role = (data.get('role') or 'student').strip().lower()
    if not email or not password or not name:
        return jsonify({'error': 'Email, password, and name are required'}), 400
    if not EMAIL_RE.match(email):
        return jsonify({'error': 'Invalid email format'}), 400
    min_len = int(app.config.get('PASSWORD_MIN_LENGTH', 6))
    if len(password) < min_len:
        return jsonify({'error': f'Password must be at least {min_len} characters'}), 400
    if role not in ROLES:
        return jsonify({'error': f"Role must be one of: {', '.join(ROLES)}"}), 400
    caller = current_user()
    is_admin = caller is not None and caller.get('role') == 'admin'
    if not is_admin:
        if not app.config.get('ALLOW_SELF_REGISTRATION', True):
            return jsonify({'error': 'Self-registration is disabled'}), 403
        if role == 'admin':
            return jsonify({'error': 'Only administrators can create admin accounts'}), 403
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409
    user = User(email=email, password_hash=generate_password_hash(password), name=name, role=role)
    db.session.add(user)
    _commit('Email already registered')
    logger.info(f"Registered {role} account {email}")
    if is_admin:
        # Keep the admin's own session
        return jsonify({'user': _user_payload(user)}), 201
    token = create_token(user)
    response = jsonify({'token': token, 'user': _user_payload(user)})
    response.status_code = 201
    return set_token_cookie(response, token)

@app.route('/api/auth/me', methods=['GET'])
@token_required
def api_me():
    user = current_user()
    return jsonify({'user': {k: user.get(k) for k in ('id', 'email', 'name', 'role')}})

@app.route('/api/auth/logout', methods=['POST'])
def api_logout():
    response = jsonify({'message': 'Logged out'})
    response.delete_cookie(TOKEN_COOKIE, path='/')
    return response

# --- Students API ---

def _validate_student(data):
    if data.get('email') and not EMAIL_RE.match(str(data['email'])):
        raise ApiError('Invalid email format')
    if data.get('status') and data['status'] not in STUDENT_STATUSES:
        raise ApiError(f"Status must be one of: {', '.join(STUDENT_STATUSES)}")

@app.route('/api/students', methods=['GET'])
@token_required
def api_students():
    search = request.args.get('search', '').strip()
    department = request.args.get('department', '').strip()
    semester = _parse_int(request.args.get('semester'), 'semester')
    status = request.args.get('status', '').strip()
    limit = min(_parse_int(request.args.get('limit'), 'limit') or app.config.get('DEFAULT_PAGE_SIZE', 50),
                app.config.get('MAX_PAGE_SIZE', 500))
    offset = _parse_int(request.args.get('offset'), 'offset') or 0
    q = Student.query
    if search:
        like = f'%{search}%'
        q = q.filter(or_(Student.name.ilike(like), Student.enrollment_no.ilike(like), Student.email.ilike(like)))
    if department:
        q = q.filter(Student.department == department)
    if semester:
        q = q.filter(Student.semester == semester)
    if status:
        q = q.filter(Student.status == status)
    total = q.count()
    students = q.order_by(Student.name.asc(), Student.id.asc()).limit(limit).offset(offset).all()
    return jsonify({'students': [s.to_dict() for s in students], 'total': total, 'limit': limit, 'offset': offset})

@app.route('/api/students', methods=['POST'])
@token_required
def api_create_student():
    data = _json_body()
    _require(data, 'enrollment_no', 'name')
    _validate_student(data)
    student = Student(status='active')
    _apply_fields(student, data, STUDENT_FIELDS, int_fields=('semester',))
    student.status = student.status or 'active'
    logger.info(f"Adding student: {student.name} ({student.enrollment_no})")
    db.session.add(student)
    _commit('Enrollment number already exists')
    return jsonify({'id': student.id, 'message': 'Student created'}), 201

@app.route('/api/students/<int:student_id>', methods=['GET'])
@token_required
def api_student_detail(student_id):
    student = _get_or_404(Student, student_id, 'Student')
    return jsonify(student_detail(student))

@app.route('/api/students/<int:student_id>', methods=['PUT'])
@token_required
def api_update_student(student_id):
    student = _get_or_404(Student, student_id, 'Student')
    data = _json_body()
    _reject_blank(data, 'enrollment_no', 'name', 'status')
    _validate_student(data)
    _apply_fields(student, data, STUDENT_FIELDS, int_fields=('semester',))
    _commit('Enrollment number already exists')
    logger.info(f"Updated student id={student_id}")
    return jsonify({'message': 'Student updated', 'student': student.to_dict()})

@app.route('/api/students/<int:student_id>', methods=['DELETE'])
@token_required
def api_delete_student(student_id):
    student = _get_or_404(Student, student_id, 'Student')
    logger.info(f"Deleting student id={student_id}")
    db.session.delete(student)
    db.session.commit()
    return jsonify({'message': 'Student deleted'})

# --- Teachers API ---

@app.route('/api/teachers', methods=['GET'])
@token_required
def api_teachers():
    subject_count = db.session.query(func.count(Subject.id))\
        .filter(Subject.teacher_id == Teacher.id).correlate(Teacher).scalar_subquery()
    rows = db.session.query(Teacher, subject_count.label('subject_count'))\
        .order_by(Teacher.name.asc(), Teacher.id.asc()).all()
    return jsonify({'teachers': [t.to_dict(subject_count=count) for t, count in rows]})

@app.route('/api/teachers', methods=['POST'])
@token_required
def api_create_teacher():
    data = _json_body()
    _require(data, 'employee_id', 'name')
    if data.get('email') and not EMAIL_RE.match(str(data['email'])):
        raise ApiError('Invalid email format')
    teacher = Teacher()
    _apply_fields(teacher, data, TEACHER_FIELDS, int_fields=('experience_years',))
    teacher.status = teacher.status or 'active'
    logger.info(f"Adding teacher: {teacher.name} ({teacher.employee_id})")
    db.session.add(teacher)
    _commit('Employee ID or email already exists')
    return jsonify({'id': teacher.id, 'message': 'Teacher created'}), 201

@app.route('/api/teachers/<int:teacher_id>', methods=['GET'])
@token_required
def api_teacher_detail(teacher_id):
    teacher = _get_or_404(Teacher, teacher_id, 'Teacher')
    return jsonify({'teacher': teacher.to_dict(), 'subjects': [s.to_dict() for s in teacher.subjects]})

@app.route('/api/teachers/<int:teacher_id>', methods=['PUT'])
@token_required
def api_update_teacher(teacher_id):
    teacher = _get_or_404(Teacher, teacher_id, 'Teacher')
    data = _json_body()
    _reject_blank(data, 'employee_id', 'name', 'status')
    if data.get('email') and not EMAIL_RE.match(str(data['email'])):
        raise ApiError('Invalid email format')
    _apply_fields(teacher, data, TEACHER_FIELDS, int_fields=('experience_years',))
    _commit('Employee ID or email already exists')
    return jsonify({'message': 'Teacher updated', 'teacher': teacher.to_dict()})

@app.route('/api/teachers/<int:teacher_id>', methods=['DELETE'])
@token_required
def api_delete_teacher(teacher_id):
    teacher = _get_or_404(Teacher, teacher_id, 'Teacher')
    logger.info(f"Deleting teacher id={teacher_id}")
    TimetableSlot.query.filter_by(teacher_id=teacher_id).delete(synchronize_session=False)
    db.session.delete(teacher)
    db.session.commit()
    return jsonify({'message': 'Teacher deleted'})

# --- Subjects API ---

def _validate_subject(data):
    if data.get('type') and data['type'] not in ('theory', 'practical'):
        raise ApiError('Type must be theory or practical')
    if data.get('teacher_id') not in (None, ''):
        _get_or_404(Teacher, _parse_int(data['teacher_id'], 'teacher_id'), 'Teacher')

@app.route('/api/subjects', methods=['GET'])
@token_required
def api_subjects():
    q = Subject.query
    department = request.args.get('department', '').strip()
    semester = _parse_int(request.args.get('semester'), 'semester')
    if department:
        q = q.filter(Subject.department == department)
    if semester:
        q = q.filter(Subject.semester == semester)
    subjects = q.order_by(Subject.department.asc(), Subject.semester.asc(), Subject.name.asc()).all()
    return jsonify({'subjects': [s.to_dict(teacher_name=s.teacher.name if s.teacher else None) for s in subjects]})

@app.route('/api/subjects', methods=['POST'])
@token_required
def api_create_subject():
    data = _json_body()
    _require(data, 'code', 'name')
    _validate_subject(data)
    subject = Subject()
    _apply_fields(subject, data, SUBJECT_FIELDS, int_fields=('semester', 'credits', 'teacher_id'))
    subject.type = subject.type or 'theory'
    db.session.add(subject)
    _commit('Subject code already exists')
    logger.info(f"Added subject {subject.code}")
    return jsonify({'id': subject.id, 'message': 'Subject created'}), 201

@app.route('/api/subjects/<int:subject_id>', methods=['GET'])
@token_required
def api_subject_detail(subject_id):
    subject = _get_or_404(Subject, subject_id, 'Subject')
    return jsonify({'subject': subject.to_dict(teacher_name=subject.teacher.name if subject.teacher else None)})

@app.route('/api/subjects/<int:subject_id>', methods=['PUT'])
@token_required
def api_update_subject(subject_id):
    subject = _get_or_404(Subject, subject_id, 'Subject')
    data = _json_body()
    _reject_blank(data, 'code', 'name', 'type')
    _validate_subject(data)
    _apply_fields(subject, data, SUBJECT_FIELDS, int_fields=('semester', 'credits', 'teacher_id'))
    _commit('Subject code already exists')
    return jsonify({'message': 'Subject updated', 'subject': subject.to_dict()})

@app.route('/api/subjects/<int:subject_id>', methods=['DELETE'])
@token_required
def api_delete_subject(subject_id):
    subject = _get_or_404(Subject, subject_id, 'Subject')
    in_use = (Attendance.query.filter_by(subject_id=subject_id).first()
              or Mark.query.filter_by(subject_id=subject_id).first()
              or Assignment.query.filter_by(subject_id=subject_id).first())
    if in_use:
        raise ApiError('Subject has attendance, marks or assignments and cannot be deleted', 409)
    TimetableSlot.query.filter_by(subject_id=subject_id).delete(synchronize_session=False)
    db.session.delete(subject)
    db.session.commit()
    logger.info(f"Deleted subject id={subject_id}")
    return jsonify({'message': 'Subject deleted'})

# --- Attendance API ---

def _attendance_record(r):
    student_id = _parse_int(r.get('student_id'), 'student_id', required=True)
    subject_id = _parse_int(r.get('subject_id'), 'subject_id', required=True)
    day = _parse_date(r.get('date'), 'date', required=True)
    status = (r.get('status') or '').strip().lower()
    if status not in ATTENDANCE_STATUSES:
        raise ApiError(f"Status must be one of: {', '.join(ATTENDANCE_STATUSES)}")
    _get_or_404(Student, student_id, 'Student')
    _get_or_404(Subject, subject_id, 'Subject')
    return student_id, subject_id, day, status

def _upsert_attendance(student_id, subject_id, day, status):
    existing = Attendance.query.filter_by(student_id=student_id, subject_id=subject_id, date=day).first()
    if existing:
        existing.status = status
    else:
        db.session.add(Attendance(student_id=student_id, subject_id=subject_id, date=day, status=status))

@app.route('/api/attendance', methods=['GET'])
@token_required
def api_attendance():
    on_date = _parse_date(request.args.get('date'), 'date')
    month = None
    month_str = request.args.get('month', '').strip()
    if month_str:
        try:
            parsed = datetime.strptime(month_str, '%Y-%m')
        except ValueError:
            raise ApiError('Invalid month, expected YYYY-MM')
        month = (parsed.year, parsed.month)
    return jsonify(attendance_overview(on_date, month))

@app.route('/api/attendance', methods=['POST'])
@token_required
def api_mark_attendance():
    data = _json_body()
    records = data.get('records')
    if isinstance(records, list):
        if not records:
            raise ApiError('records must not be empty')
        try:
            for r in records:
                if not isinstance(r, dict):
                    raise ApiError('Each record must be an object')
                _upsert_attendance(*_attendance_record(r))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info(f"Saved {len(records)} attendance records")
        return jsonify({'message': f'{len(records)} attendance records saved'})
    _upsert_attendance(*_attendance_record(data))
    db.session.commit()
    return jsonify({'message': 'Attendance marked'}), 201

# --- Marks API ---

def _mark_record(r):
    student_id = _parse_int(r.get('student_id'), 'student_id', required=True)
    subject_id = _parse_int(r.get('subject_id'), 'subject_id', required=True)
    exam_type = (r.get('exam_type') or '').strip()
    if exam_type not in EXAM_TYPES:
        raise ApiError(f"exam_type must be one of: {', '.join(EXAM_TYPES)}")
    max_marks = _parse_float(r.get('max_marks'), 'max_marks', required=True)
    obtained = _parse_float(r.get('obtained_marks'), 'obtained_marks', required=True)
    if max_marks <= 0:
        raise ApiError('max_marks must be positive')
    if obtained < 0 or obtained > max_marks:
        raise ApiError('obtained_marks must be between 0 and max_marks')
    _get_or_404(Student, student_id, 'Student')
    _get_or_404(Subject, subject_id, 'Subject')
    return Mark(student_id=student_id, subject_id=subject_id, exam_type=exam_type, max_marks=max_marks,
                obtained_marks=obtained, semester=_parse_int(r.get('semester'), 'semester'), remarks=r.get('remarks'))

@app.route('/api/marks', methods=['GET'])
@token_required
def api_marks():
    student_id = _parse_int(request.args.get('student_id'), 'student_id')
    if student_id:
        return jsonify({'marks': marks_for_student(student_id), 'avg_performance': subject_performance(student_id)})
    return jsonify(marks_overview())

@app.route('/api/marks', methods=['POST'])
@token_required
def api_record_marks():
    data = _json_body()
    records = data.get('records')
    if isinstance(records, list):
        if not records:
            raise ApiError('records must not be empty')
        try:
            for r in records:
                if not isinstance(r, dict):
                    raise ApiError('Each record must be an object')
                db.session.add(_mark_record(r))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info(f"Saved {len(records)} marks records")
        return jsonify({'message': f'{len(records)} marks records saved'})
    db.session.add(_mark_record(data))
    db.session.commit()
    return jsonify({'message': 'Marks recorded'}), 201

# --- Fees API ---

def _fee_status(fee):
    if fee.paid >= fee.amount:
        return 'paid'
    if fee.paid > 0:
        return 'partial'
    if fee.due_date and fee.due_date < date.today():
        return 'overdue'
    return 'pending'

@app.route('/api/fees', methods=['GET'])
@token_required
def api_fees():
    student_id = _parse_int(request.args.get('student_id'), 'student_id')
    if student_id:
        fees = Fee.query.filter_by(student_id=student_id).order_by(Fee.due_date.desc()).all()
        return jsonify({'fees': [f.to_dict(pending=f.pending) for f in fees], 'summary': fee_summary(student_id)})
    return jsonify(fees_overview())

@app.route('/api/fees', methods=['POST'])
@token_required
def api_create_fee():
    data = _json_body()
    _require(data, 'student_id', 'fee_type', 'amount')
    student_id = _parse_int(data['student_id'], 'student_id')
    _get_or_404(Student, student_id, 'Student')
    amount = _parse_float(data['amount'], 'amount')
    paid = _parse_float(data.get('paid'), 'paid') or 0.0
    if amount <= 0 or paid < 0 or paid > amount:
        raise ApiError('amount must be positive and paid between 0 and amount')
    status = data.get('status') or 'pending'
    if status not in FEE_STATUSES:
        raise ApiError(f"Status must be one of: {', '.join(FEE_STATUSES)}")
    fee = Fee(student_id=student_id, fee_type=data['fee_type'], amount=amount, paid=paid,
              due_date=_parse_date(data.get('due_date'), 'due_date'), status=status,
              semester=_parse_int(data.get('semester'), 'semester'), academic_year=data.get('academic_year'))
    db.session.add(fee)
    db.session.commit()
    logger.info(f"Created {fee.fee_type} fee for student id={student_id}")
    return jsonify({'id': fee.id, 'message': 'Fee record created'}), 201

@app.route('/api/fees', methods=['PUT'])
@token_required
def api_update_fee():
    data = _json_body()
    _require(data, 'id', 'paid')
    fee = _get_or_404(Fee, _parse_int(data['id'], 'id'), 'Fee record')
    paid = _parse_float(data['paid'], 'paid')
    if paid < 0 or paid > fee.amount:
        raise ApiError('paid must be between 0 and the fee amount')
    fee.paid = paid
    fee.paid_date = _parse_date(data.get('paid_date'), 'paid_date') or date.today()
    status = data.get('status')
    if status and status not in FEE_STATUSES:
        raise ApiError(f"Status must be one of: {', '.join(FEE_STATUSES)}")
    fee.status = status or _fee_status(fee)
    db.session.commit()
    logger.info(f"Fee id={fee.id} updated: paid={paid}, status={fee.status}")
    return jsonify({'message': 'Fee updated', 'fee': fee.to_dict(pending=fee.pending)})

# --- Assignments API ---

def feedback_for(marks_obtained, max_marks=None):
    score = marks_obtained / max_marks * 100 if max_marks else marks_obtained
    if score >= 70:
        return 'Excellent work! Well-structured solution.'
    if score >= 50:
        return 'Good attempt. Some areas need improvement.'
    if score >= 30:
        return 'Average work. Significant improvement needed.'
    return 'Below expectations. Please review the material and resubmit.'

@app.route('/api/assignments', methods=['GET'])
@token_required
def api_assignments():
    subject_id = _parse_int(request.args.get('subject_id'), 'subject_id')
    return jsonify({'assignments': assignment_list(subject_id)})

@app.route('/api/assignments', methods=['POST'])
@token_required
def api_assignments_post():
    data = _json_body()
    kind = data.get('type')
    if kind == 'submission':
        assignment = _get_or_404(Assignment, _parse_int(data.get('assignment_id'), 'assignment_id', required=True), 'Assignment')
        student = _get_or_404(Student, _parse_int(data.get('student_id'), 'student_id', required=True), 'Student')
        if assignment.status == 'closed':
            raise ApiError('Assignment is closed', 409)
        sub = AssignmentSubmission.query.filter_by(assignment_id=assignment.id, student_id=student.id).first()
        if sub is None:
            sub = AssignmentSubmission(assignment_id=assignment.id, student_id=student.id)
            db.session.add(sub)
        sub.submission_text = data.get('submission_text')
        sub.submitted_at = datetime.utcnow()
        sub.status = 'submitted'
        db.session.commit()
        logger.info(f"Submission recorded for assignment id={assignment.id} by student id={student.id}")
        return jsonify({'id': sub.id, 'message': 'Submission recorded'}), 201
    if kind == 'evaluate':
        sub = _get_or_404(AssignmentSubmission, _parse_int(data.get('submission_id'), 'submission_id', required=True), 'Submission')
        marks_obtained = _parse_float(data.get('marks_obtained'), 'marks_obtained', required=True)
        max_marks = sub.assignment.max_marks
        if marks_obtained < 0 or (max_marks and marks_obtained > max_marks):
            raise ApiError('marks_obtained must be between 0 and the assignment max_marks')
        sub.marks_obtained = marks_obtained
        sub.feedback = data.get('feedback') or feedback_for(marks_obtained, max_marks)
        if data.get('plagiarism_score') is not None:
            sub.plagiarism_score = _parse_int(data['plagiarism_score'], 'plagiarism_score')
        sub.status = 'evaluated'
        db.session.commit()
        return jsonify({'message': 'Evaluation saved', 'feedback': sub.feedback, 'plagiarism_score': sub.plagiarism_score})
    _require(data, 'title', 'subject_id')
    subject = _get_or_404(Subject, _parse_int(data['subject_id'], 'subject_id'), 'Subject')
    assignment = Assignment(
        title=data['title'].strip(), description=data.get('description'), subject_id=subject.id,
        due_date=_parse_date(data.get('due_date'), 'due_date'),
        max_marks=_parse_float(data.get('max_marks'), 'max_marks'),
        status='active', created_by=current_user().get('id'),
    )
    db.session.add(assignment)
    db.session.commit()
    logger.info(f"Created assignment '{assignment.title}' for subject {subject.code}")
    return jsonify({'id': assignment.id, 'message': 'Assignment created'}), 201

# --- Alerts API ---

@app.route('/api/alerts', methods=['GET'])
@token_required
def api_alerts():
    q = Alert.query
    student_id = _parse_int(request.args.get('student_id'), 'student_id')
    if student_id:
        q = q.filter(Alert.student_id == student_id)
    if request.args.get('unread', '').lower() in ('1', 'true', 'yes'):
        q = q.filter(Alert.is_read.is_(False))
    alerts = q.order_by(Alert.created_at.desc(), Alert.id.desc()).all()
    return jsonify({'alerts': [a.to_dict() for a in alerts]})

@app.route('/api/alerts', methods=['POST'])
@token_required
def api_create_alert():
    data = _json_body()
    _require(data, 'type', 'severity', 'title')
    if data['severity'] not in monitor.SEVERITY_ORDER:
        raise ApiError(f"Severity must be one of: {', '.join(monitor.SEVERITY_ORDER)}")
    student_id = _parse_int(data.get('student_id'), 'student_id')
    if student_id:
        _get_or_404(Student, student_id, 'Student')
    alert = Alert(student_id=student_id, type=data['type'], severity=data['severity'],
                  title=data['title'], message=data.get('message'))
    db.session.add(alert)
    db.session.commit()
    return jsonify({'id': alert.id, 'message': 'Alert created'}), 201

@app.route('/api/alerts/<int:alert_id>', methods=['PUT'])
@token_required
def api_update_alert(alert_id):
    alert = _get_or_404(Alert, alert_id, 'Alert')
    data = request.get_json(silent=True) or {}
    alert.is_read = bool(data.get('is_read', True))
    db.session.commit()
    return jsonify({'message': 'Alert updated', 'alert': alert.to_dict()})

@app.route('/api/alerts/<int:alert_id>', methods=['DELETE'])
@token_required
def api_delete_alert(alert_id):
    alert = _get_or_404(Alert, alert_id, 'Alert')
    db.session.delete(alert)
    db.session.commit()
    return jsonify({'message': 'Alert deleted'})

# --- Dashboard & portal API ---

@app.route('/api/dashboard', methods=['GET'])
@token_required
def api_dashboard():
    return jsonify(dashboard_data())

@app.route('/api/student-portal', methods=['GET'])
@token_required
def api_student_portal():
    user = current_user()
    student_id = _parse_int(request.args.get('student_id'), 'student_id')
    if student_id is None and user.get('role') == 'student':
        own = Student.query.filter_by(user_id=user.get('id')).first()
        student_id = own.id if own else None
    if student_id is None:
        raise ApiError('student_id required')
    student = _get_or_404(Student, student_id, 'Student')
    if user.get('role') == 'student' and student.user_id != user.get('id'):
        raise ApiError('You can only view your own portal', 403)
    return jsonify(portal_data(student))

# --- Agents API ---

@app.route('/api/agents/risk', methods=['GET'])
@token_required
def api_agent_risk():
    student_id = _parse_int(request.args.get('student_id'), 'student_id')
    if student_id:
        _get_or_404(Student, student_id, 'Student')
        return jsonify(risk.analyze_student(student_id))
    students, summary = risk.analyze_all_students()
    return jsonify({'students': students, 'summary': summary})

@app.route('/api/agents/query', methods=['POST'])
@token_required
def api_agent_query():
    data = request.get_json(silent=True) or {}
    try:
        return jsonify(query_agent.process_query(data.get('query') or ''))
    except query_agent.QueryError as e:
        return jsonify({'error': str(e)}), 400

@app.route('/api/agents/monitor', methods=['GET', 'POST'])
@token_required
def api_agent_monitor():
    alerts, summary = monitor.scan()
    payload = {'alerts': alerts, 'summary': summary}
    if request.method == 'POST':
        payload['persisted'] = monitor.persist(alerts)
    return jsonify(payload)

# --- Timetable API ---

@app.route('/api/timetable', methods=['GET'])
@token_required
def api_timetable():
    department = request.args.get('department', '').strip() or None
    semester = _parse_int(request.args.get('semester'), 'semester')
    slots = timetable_service.list_slots(department, semester)
    return jsonify({'timetable': [timetable_service.slot_to_dict(s) for s in slots]})

@app.route('/api/timetable', methods=['POST'])
@token_required
def api_timetable_post():
    data = _json_body()
    if data.get('action') == 'generate':
        department = data.get('department') or app.config.get('TIMETABLE_DEFAULT_DEPARTMENT')
        if not isinstance(department, str) or not department.strip():
            raise ApiError('department must be a non-empty string')
        department = department.strip()
        semester = _parse_int(data.get('semester'), 'semester') or app.config.get('TIMETABLE_DEFAULT_SEMESTER', 3)
        try:
            entries = timetable_service.generate_timetable(department, semester, data.get('section') or 'A')
        except timetable_service.TimetableError as e:
            return jsonify({'error': str(e)}), 400
        return jsonify({'message': 'Timetable generated successfully', 'entries_created': len(entries),
                        'department': department, 'semester': semester, 'entries': entries})
    _require(data, 'day', 'period', 'subject_id')
    if data['day'] not in timetable_service.DAYS:
        raise ApiError(f"day must be one of: {', '.join(timetable_service.DAYS)}")
    subject = _get_or_404(Subject, _parse_int(data['subject_id'], 'subject_id'), 'Subject')
    teacher_id = _parse_int(data.get('teacher_id'), 'teacher_id') or subject.teacher_id
    period = _parse_int(data['period'], 'period')
    times = {p: (start, end) for p, start, end in timetable_service.PERIODS}
    if period not in times:
        raise ApiError(f'period must be between 1 and {len(times)}')
    slot = TimetableSlot(
        day=data['day'], period=period,
        start_time=data.get('start_time') or times[period][0], end_time=data.get('end_time') or times[period][1],
        subject_id=subject.id, teacher_id=teacher_id, room=data.get('room'),
        department=data.get('department') or subject.department,
        semester=_parse_int(data.get('semester'), 'semester') or subject.semester,
        section=data.get('section') or 'A',
    )
    db.session.add(slot)
    _commit('Teacher is already booked for this day and period')
    return jsonify({'id': slot.id}), 201

# --- Pages ---

@app.route("/")
def index():
    user = current_user()
    if user is None:
        return redirect(url_for('login'))
    if user.get('role') == 'student':
        return redirect(url_for('student_page'))
    if user.get('role') in STAFF_ROLES:
        return redirect(url_for('dashboard'))
    return redirect(url_for('login'))

@app.route("/login", methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')
        user = _login(email, password) if email and password else None
        if user:
            flash('Logged in successfully.', 'success')
            next_url = request.args.get('next')
            if not next_url or not next_url.startswith('/') or next_url[:2] in ('//', '/\\'):
                next_url = url_for('student_page') if user.role == 'student' else url_for('dashboard')
            return set_token_cookie(redirect(next_url), create_token(user))
        flash('Invalid email or password.', 'danger')
    return render_template('login.html', title='Login')

@app.route("/logout")
def logout():
    flash('You have been logged out.', 'info')
    response = make_response(redirect(url_for('login')))
    response.delete_cookie(TOKEN_COOKIE, path='/')
    return response

@app.route('/dashboard')
@roles_required(*STAFF_ROLES)
def dashboard():
    return render_template('dashboard.html', title='Dashboard', data=dashboard_data(), user=current_user())

@app.route('/dashboard/students')
@roles_required(*STAFF_ROLES)
def students_page():
    search = request.args.get('search', '').strip()
    q = Student.query
    if search:
        like = f'%{search}%'
        q = q.filter(or_(Student.name.ilike(like), Student.enrollment_no.ilike(like)))
    students = q.order_by(Student.name.asc()).limit(app.config.get('DEFAULT_PAGE_SIZE', 50)).all()
    return render_template('students.html', title='Students', students=students, search=search, user=current_user())

@app.route('/dashboard/attendance')
@roles_required(*STAFF_ROLES)
def attendance_page():
    data = attendance_overview()
    return render_template('records.html', title='Attendance', user=current_user(),
                           stats=data['stats'],
                           columns=['Name', 'Enrollment', 'Department', 'Attendance %'],
                           rows=[[r['name'], r['enrollment_no'], r['department'], r['percentage']] for r in data['low_attendance']],
                           caption='Students below the attendance threshold')

@app.route('/dashboard/marks')
@roles_required(*STAFF_ROLES)
def marks_page():
    data = marks_overview()
    return render_template('records.html', title='Marks & Performance', user=current_user(),
                           stats=data['overall_stats'],
                           columns=['Subject', 'Code', 'Average %', 'Highest', 'Lowest', 'Students'],
                           rows=[[s['subject_name'], s['code'], s['avg_percentage'], s['highest'], s['lowest'], s['student_count']]
                                 for s in data['subject_performance']],
                           caption='Subject performance')

@app.route('/dashboard/fees')
@roles_required(*STAFF_ROLES)
def fees_page():
    data = fees_overview()
    return render_template('records.html', title='Fee Management', user=current_user(),
                           stats=data['stats'],
                           columns=['Name', 'Enrollment', 'Department', 'Pending'],
                           rows=[[d['name'], d['enrollment_no'], d['department'], d['pending_amount']] for d in data['defaulters']],
                           caption='Top defaulters')

@app.route('/dashboard/assignments')
@roles_required(*STAFF_ROLES)
def assignments_page():
    items = assignment_list()
    return render_template('records.html', title='Assignments', user=current_user(), stats={},
                           columns=['Title', 'Subject', 'Due Date', 'Status', 'Submissions'],
                           rows=[[a['title'], a['subject_name'], a['due_date'], a['status'], a['submission_count']] for a in items],
                           caption='All assignments')

@app.route('/dashboard/timetable')
@roles_required(*STAFF_ROLES)
def timetable_page():
    department = request.args.get('department', '').strip() or app.config.get('TIMETABLE_DEFAULT_DEPARTMENT')
    try:
        semester = int(request.args.get('semester') or app.config.get('TIMETABLE_DEFAULT_SEMESTER', 3))
    except ValueError:
        flash('Invalid semester.', 'danger')
        semester = app.config.get('TIMETABLE_DEFAULT_SEMESTER', 3)
    slots = timetable_service.list_slots(department, semester)
    grid = {(s.day, s.period): s for s in slots}
    return render_template('timetable.html', title='Timetable', user=current_user(), grid=grid,
                           days=timetable_service.DAYS, periods=timetable_service.PERIODS,
                           department=department, semester=semester)

@app.route('/dashboard/timetable/generate', methods=['POST'])
@roles_required('admin')
def timetable_generate():
    department = request.form.get('department', '').strip() or app.config.get('TIMETABLE_DEFAULT_DEPARTMENT')
    try:
        semester = int(request.form.get('semester') or app.config.get('TIMETABLE_DEFAULT_SEMESTER', 3))
    except ValueError:
        flash('Invalid semester.', 'danger')
        return redirect(url_for('timetable_page'))
    try:
        entries = timetable_service.generate_timetable(department, semester)
        flash(f'Timetable generated: created {len(entries)} slots.', 'success')
    except timetable_service.TimetableError as e:
        flash(str(e), 'warning')
    return redirect(url_for('timetable_page', department=department, semester=semester))

@app.route('/dashboard/risk-alerts')
@roles_required(*STAFF_ROLES)
def risk_alerts_page():
    students, summary = risk.analyze_all_students()
    alerts, alert_summary = monitor.scan()
    return render_template('risk_alerts.html', title='Risk Alerts', user=current_user(),
                           students=students, summary=summary, alerts=alerts, alert_summary=alert_summary)

@app.route('/dashboard/command-center')
@roles_required(*STAFF_ROLES)
def command_center():
    q = request.args.get('q', '').strip()
    result = None
    if q:
        try:
            result = query_agent.process_query(q)
        except query_agent.QueryError as e:
            flash(str(e), 'warning')
    return render_template('command_center.html', title='Command Center', user=current_user(),
                           q=q, result=result, examples=query_agent.EXAMPLE_QUERIES)

@app.route('/student')
@roles_required('student')
def student_page():
    user = current_user()
    student = Student.query.filter_by(user_id=user.get('id')).first()
    if student is None:
        flash('No student record is linked to your account.', 'warning')
        return render_template('student_portal.html', title='My Portal', user=user, data=None)
    return render_template('student_portal.html', title='My Portal', user=user, data=portal_data(student))
