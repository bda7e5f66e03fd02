"""Student risk scoring.

A student's risk score is a weighted composite of four factors, each
expressed as "distance from perfect" on a 0-100 scale:

    score = 0.5 * attendance_factor + 0.3 * marks_factor
          + 0.2 * assignment_factor + fee_penalty

rounded half-up and clamped to [0, 100]. Missing data is treated as a
neutral factor of 50 (no fee records means no penalty).
"""
import math
import logging

from sqlalchemy import func, case

from iems import db
from iems.models import Student, Attendance, Mark, Assignment, AssignmentSubmission, Fee

logger = logging.getLogger(__name__)

ATTENDANCE_WEIGHT = 0.5
MARKS_WEIGHT = 0.3
ASSIGNMENT_WEIGHT = 0.2
NEUTRAL_FACTOR = 50.0
DECLINING_TREND_PENALTY = 10.0

# Chronological order of exam types, used to detect a declining trend
EXAM_ORDER = ('internal_1', 'internal_2', 'midterm', 'final')

RISK_LEVELS = (
    (70, 'critical', '#ef4444'),
    (50, 'high', '#f97316'),
    (30, 'medium', '#eab308'),
    (0, 'low', '#22c55e'),
)

def _clamp(value, low=0.0, high=100.0):
    return max(low, min(high, value))

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def fee_penalty(fee_completion_pct) -> int:
    if fee_completion_pct is None:
        return 0
    if fee_completion_pct < 50:
        return 15
    if fee_completion_pct < 80:
        return 5
    return 0

def risk_level(score):
    """Map a score to its (level, colour) pair."""
    for floor, level, color in RISK_LEVELS:
        if score >= floor:
            return level, color
    return RISK_LEVELS[-1][1], RISK_LEVELS[-1][2]

def risk_factors(attendance_pct=None, marks_pct=None, assignment_pct=None, fee_completion_pct=None, declining=False):
    if attendance_pct is None:
        attendance_factor = NEUTRAL_FACTOR
    else:
        attendance_factor = _clamp(100 - attendance_pct)
    if marks_pct is None:
        marks_factor = NEUTRAL_FACTOR
    else:
        marks_factor = _clamp(100 - marks_pct)
        if declining:
            marks_factor = min(100.0, marks_factor + DECLINING_TREND_PENALTY)
    if assignment_pct is None:
        assignment_factor = NEUTRAL_FACTOR
    else:
        assignment_factor = _clamp(100 - assignment_pct)
    return {
        'attendance': attendance_factor,
        'marks': marks_factor,
        'assignments': assignment_factor,
        'fees': fee_penalty(fee_completion_pct),
    }

def score_from_factors(factors) -> int:
    raw = (ATTENDANCE_WEIGHT * factors['attendance']
           + MARKS_WEIGHT * factors['marks']
           + ASSIGNMENT_WEIGHT * factors['assignments']
           + factors['fees'])
    return int(_clamp(round_half_up(raw), 0, 100))

def compute_risk_score(attendance_pct=None, marks_pct=None, assignment_pct=None, fee_completion_pct=None, declining=False) -> int:
    return score_from_factors(risk_factors(attendance_pct, marks_pct, assignment_pct, fee_completion_pct, declining))

def suggest_interventions(attendance_pct, factors):
    interventions = []
    if attendance_pct < 65:
        interventions.append({'type': 'attendance', 'priority': 'urgent',
                              'message': f'Attendance critically low at {attendance_pct:.1f}%. Immediate counseling required.'})
    elif attendance_pct < 75:
        interventions.append({'type': 'attendance', 'priority': 'high',
                              'message': f'Attendance below threshold at {attendance_pct:.1f}%. Send warning notice.'})
    if factors['marks'] > 60:
        interventions.append({'type': 'academic', 'priority': 'urgent',
                              'message': 'Academic performance critically low. Assign mentor and remedial classes.'})
    elif factors['marks'] > 40:
        interventions.append({'type': 'academic', 'priority': 'high',
                              'message': 'Below-average academic performance. Schedule extra tutorials.'})
    if factors['assignments'] > 60:
        interventions.append({'type': 'assignment', 'priority': 'high',
                              'message': 'Multiple assignments not submitted. Contact student immediately.'})
    if factors['fees'] > 10:
        interventions.append({'type': 'fee', 'priority': 'medium',
                              'message': 'Significant fee balance pending. May indicate financial difficulties.'})
    return interventions

def build_analysis(attendance_pct=None, marks_pct=None, assignment_pct=None, fee_completion_pct=None, declining=False):
    factors = risk_factors(attendance_pct, marks_pct, assignment_pct, fee_completion_pct, declining)
    score = score_from_factors(factors)
    level, color = risk_level(score)
    effective_attendance = NEUTRAL_FACTOR if attendance_pct is None else attendance_pct
    return {
        'risk_score': score,
        'risk_level': level,
        'risk_color': color,
        'factors': {
            'attendance': {'value': round(effective_attendance, 1), 'factor': round(factors['attendance'], 1), 'weight': ATTENDANCE_WEIGHT},
            'marks': {'value': round(100 - factors['marks'], 1), 'factor': round(factors['marks'], 1), 'weight': MARKS_WEIGHT},
            'assignments': {'value': round(100 - factors['assignments'], 1), 'factor': round(factors['assignments'], 1), 'weight': ASSIGNMENT_WEIGHT},
            'fees': {'factor': factors['fees'], 'note': 'Fee penalty applied' if factors['fees'] > 0 else 'No fee issues'},
        },
        'interventions': suggest_interventions(effective_attendance, factors),
    }

# --- Database-backed inputs ---

def attendance_percentage(student_id):
    total, present = db.session.query(
        func.count(Attendance.id),
        func.sum(case((Attendance.status == 'present', 1), else_=0)),
    ).filter(Attendance.student_id == student_id).one()
    if not total:
        return None
    return (present or 0) / total * 100

def marks_by_exam_type(student_id):
    """Average percentage per exam type, in chronological exam order."""
    rows = db.session.query(
        Mark.exam_type,
        func.avg(Mark.obtained_marks / Mark.max_marks * 100),
    ).filter(Mark.student_id == student_id, Mark.max_marks > 0).group_by(Mark.exam_type).all()
    order = {name: idx for idx, name in enumerate(EXAM_ORDER)}
    rows = sorted(rows, key=lambda r: order.get(r[0], len(EXAM_ORDER)))
    return [(exam_type, float(avg_pct)) for exam_type, avg_pct in rows]

def assignment_completion(student_id):
    open_filter = Assignment.status != 'closed'
    total = Assignment.query.filter(open_filter).count()
    if not total:
        return None
    submitted = AssignmentSubmission.query.join(Assignment).filter(
        AssignmentSubmission.student_id == student_id, open_filter).count()
    return submitted / total * 100

def fee_completion(student_id):
    total, paid = db.session.query(func.sum(Fee.amount), func.sum(Fee.paid)).filter(Fee.student_id == student_id).one()
    if not total:
        return None
    return (paid or 0.0) / total * 100

def student_risk_inputs(student_id):
    exams = marks_by_exam_type(student_id)
    marks_pct = None
    declining = False
    if exams:
        marks_pct = sum(pct for _, pct in exams) / len(exams)
        declining = len(exams) >= 2 and exams[-1][1] < exams[0][1]
    return {
        'attendance_pct': attendance_percentage(student_id),
        'marks_pct': marks_pct,
        'assignment_pct': assignment_completion(student_id),
        'fee_completion_pct': fee_completion(student_id),
        'declining': declining,
    }

def analyze_student(student_id):
    return build_analysis(**student_risk_inputs(student_id))

def analyze_all_students():
    """Risk analysis of every active student, highest score first, with per-level counts."""
    students = Student.query.filter_by(status='active').order_by(Student.id.asc()).all()
    results = []
    for s in students:
        entry = {'id': s.id, 'name': s.name, 'enrollment_no': s.enrollment_no,
                 'department': s.department, 'semester': s.semester}
        entry.update(analyze_student(s.id))
        results.append(entry)
    results.sort(key=lambda r: r['risk_score'], reverse=True)
    summary = {level: 0 for _, level, _ in RISK_LEVELS}
    for r in results:
        summary[r['risk_level']] += 1
    logger.info(f"Risk analysis computed for {len(results)} students")
    return results, summary
