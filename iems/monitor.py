"""Institution monitor: scans active students and raises alerts."""
import logging

from sqlalchemy import func

from iems import app, db
from iems.models import Student, Fee, Assignment, AssignmentSubmission, Alert, student_display_name
from iems.query_agent import attendance_subquery, marks_subquery

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {'critical': 0, 'high': 1, 'medium': 2, 'low': 3}
ALERT_TYPES = ('attendance', 'academic', 'assignment', 'fee')

def _student_ref(row):
    return {'id': row.id, 'name': row.name, 'enrollment_no': row.enrollment_no, 'department': row.department}

def attendance_alerts():
    threshold = float(app.config.get('ATTENDANCE_THRESHOLD', 75))
    att = attendance_subquery()
    rows = db.session.query(Student.id, Student.name, Student.enrollment_no, Student.department, att.c.attendance_pct)\
        .join(att, att.c.student_id == Student.id)\
        .filter(Student.status == 'active', func.round(att.c.attendance_pct, 1) < threshold)\
        .order_by(att.c.attendance_pct.asc(), Student.id.asc()).all()
    alerts = []
    for r in rows:
        pct = round(float(r.attendance_pct), 1)
        if pct < 50:
            severity = 'critical'
            suggestion = 'Immediate counseling session required. Notify guardian and HOD.'
        elif pct < 60:
            severity = 'high'
            suggestion = 'Send formal warning notice. Schedule parent-teacher meeting.'
        else:
            severity = 'medium'
            suggestion = 'Issue verbal warning. Monitor for next 2 weeks.'
        alerts.append({
            'student': dict(_student_ref(r), attendance_pct=pct),
            'type': 'attendance',
            'severity': severity,
            'title': f'Low Attendance: {r.name}',
            'message': f'{student_display_name(r)} has {pct}% attendance, which is below the {threshold:g}% threshold.',
            'suggestion': suggestion,
        })
    return alerts

def academic_alerts():
    threshold = float(app.config.get('ACADEMIC_RISK_THRESHOLD', 45))
    mk = marks_subquery()
    rows = db.session.query(Student.id, Student.name, Student.enrollment_no, Student.department, mk.c.avg_marks)\
        .join(mk, mk.c.student_id == Student.id)\
        .filter(Student.status == 'active', func.round(mk.c.avg_marks, 1) < threshold)\
        .order_by(mk.c.avg_marks.asc(), Student.id.asc()).all()
    alerts = []
    for r in rows:
        avg = round(float(r.avg_marks), 1)
        critical = avg < 30
        alerts.append({
            'student': dict(_student_ref(r), avg_marks=avg),
            'type': 'academic',
            'severity': 'critical' if critical else 'high',
            'title': f'Academic Risk: {r.name}',
            'message': f'{student_display_name(r)} has avg marks of {avg}%, indicating high failure risk.',
            'suggestion': ('Assign dedicated mentor. Schedule remedial classes. Consider academic probation.'
                           if critical else 'Recommend extra tutorials. Assign peer study group.'),
        })
    return alerts

def missing_assignment_alerts():
    limit = int(app.config.get('MISSING_ASSIGNMENTS_THRESHOLD', 2))
    open_total = Assignment.query.filter(Assignment.status != 'closed').count()
    if not open_total:
        return []
    submitted = dict(
        db.session.query(AssignmentSubmission.student_id, func.count(AssignmentSubmission.id))
        .join(Assignment, Assignment.id == AssignmentSubmission.assignment_id)
        .filter(Assignment.status != 'closed')
        .group_by(AssignmentSubmission.student_id).all()
    )
    students = Student.query.filter_by(status='active').order_by(Student.id.asc()).all()
    alerts = []
    for r in students:
        missing = open_total - submitted.get(r.id, 0)
        if missing <= limit:
            continue
        alerts.append({
            'student': dict(_student_ref(r), missing=missing, total_assignments=open_total),
            'type': 'assignment',
            'severity': 'high' if missing > 4 else 'medium',
            'title': f'Missing Assignments: {r.name}',
            'message': f'{r.name} has {missing} pending assignments out of {open_total}.',
            'suggestion': 'Send reminder notification. Set deadline extension if needed.',
        })
    alerts.sort(key=lambda a: -a['student']['missing'])
    return alerts

def fee_alerts():
    high_amount = float(app.config.get('FEE_HIGH_PENDING_AMOUNT', 30000))
    currency = app.config.get('DEFAULT_CURRENCY', 'INR')
    pending = func.sum(Fee.amount - Fee.paid)
    rows = db.session.query(Student.id, Student.name, Student.enrollment_no, Student.department, pending.label('pending'))\
        .join(Fee, Fee.student_id == Student.id)\
        .filter(Fee.status.in_(['overdue', 'partial']))\
        .group_by(Student.id, Student.name, Student.enrollment_no, Student.department)\
        .having(pending > 0)\
        .order_by(pending.desc(), Student.id.asc()).all()
    alerts = []
    for r in rows:
        amount = float(r.pending)
        alerts.append({
            'student': dict(_student_ref(r), pending=amount),
            'type': 'fee',
            'severity': 'high' if amount > high_amount else 'medium',
            'title': f'Fee Pending: {r.name}',
            'message': f'{r.name} has {currency} {amount:,.0f} in pending fees.',
            'suggestion': 'Send payment reminder. Offer installment plan if needed.',
        })
    return alerts

def scan():
    """Run every detector and return (alerts, summary), most severe first."""
    alerts = attendance_alerts() + academic_alerts() + missing_assignment_alerts() + fee_alerts()
    alerts.sort(key=lambda a: SEVERITY_ORDER[a['severity']])
    summary = {
        'total': len(alerts),
        'critical': sum(1 for a in alerts if a['severity'] == 'critical'),
        'high': sum(1 for a in alerts if a['severity'] == 'high'),
        'medium': sum(1 for a in alerts if a['severity'] == 'medium'),
        'by_type': {t: sum(1 for a in alerts if a['type'] == t) for t in ALERT_TYPES},
    }
    return alerts, summary

def persist(alerts):
    """Store scanned alerts, skipping any that already exist unread."""
    created = 0
    for a in alerts:
        student_id = a['student']['id']
        exists = Alert.query.filter_by(student_id=student_id, type=a['type'], title=a['title'], is_read=False).first()
        if exists:
            continue
        db.session.add(Alert(student_id=student_id, type=a['type'], severity=a['severity'],
                             title=a['title'], message=a['message']))
        created += 1
    db.session.commit()
    logger.info(f"Monitor persisted {created} new alerts ({len(alerts) - created} already open)")
    return created
