import logging

from sqlalchemy import case

from iems import app, db
from iems.models import Subject, TimetableSlot

logger = logging.getLogger(__name__)

DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
PERIODS = [
    (1, '09:00', '09:50'),
    (2, '09:50', '10:40'),
    (3, '11:00', '11:50'),
    (4, '11:50', '12:40'),
    (5, '14:00', '14:50'),
    (6, '14:50', '15:40'),
]
THEORY_ROOMS = ['R101', 'R102', 'R103', 'R201', 'R202']
LAB_ROOMS = ['Lab-1', 'Lab-2']
FALLBACK_SUBJECT_LIMIT = 2

class TimetableError(ValueError):
    pass

def pick_room(subject_type, period):
    if subject_type == 'practical':
        return LAB_ROOMS[period % len(LAB_ROOMS)]
    return THEORY_ROOMS[period % len(THEORY_ROOMS)]

def plan_timetable(subjects, busy=None, days=DAYS, periods=PERIODS):
    """Fill the week round-robin, first-fit.

    Slot (day, period) takes subjects[(day_index * len(periods) + period) % len(subjects)]
    unless that subject's teacher is already in ``busy`` for the same day and period,
    in which case the slot stays empty. ``busy`` holds (teacher_id, day, period) keys
    and is not modified.
    """
    if not subjects:
        return []
    occupied = set(busy or ())
    entries = []
    for day_index, day in enumerate(days):
        for period, start, end in periods:
            subject = subjects[(day_index * len(periods) + period) % len(subjects)]
            teacher_id = getattr(subject, 'teacher_id', None)
            if teacher_id is not None:
                key = (teacher_id, day, period)
                if key in occupied:
                    continue
                occupied.add(key)
            entries.append({
                'day': day,
                'period': period,
                'start_time': start,
                'end_time': end,
                'subject_id': subject.id,
                'subject': subject.name,
                'teacher_id': teacher_id,
                'room': pick_room(getattr(subject, 'type', 'theory'), period),
            })
    return entries

def select_subjects(department, semester):
    subjects = Subject.query.filter_by(department=department, semester=semester).order_by(Subject.id.asc()).all()
    if subjects:
        return subjects
    fallback = app.config.get('TIMETABLE_FALLBACK_DEPARTMENT', 'Mathematics')
    return Subject.query.filter(Subject.department == fallback, Subject.semester <= semester)\
        .order_by(Subject.id.asc()).limit(FALLBACK_SUBJECT_LIMIT).all()

def generate_timetable(department, semester, section='A'):
    """Replace the department/semester timetable in one transaction; returns the planned entries."""
    subjects = select_subjects(department, semester)
    if not subjects:
        raise TimetableError('No subjects found for this configuration')
    try:
        TimetableSlot.query.filter_by(department=department, semester=semester).delete(synchronize_session=False)
        # Teachers may already be booked by other departments/semesters
        busy = {(s.teacher_id, s.day, s.period)
                for s in TimetableSlot.query.filter(TimetableSlot.teacher_id.isnot(None)).all()}
        entries = plan_timetable(subjects, busy)
        for e in entries:
            db.session.add(TimetableSlot(
                day=e['day'], period=e['period'], start_time=e['start_time'], end_time=e['end_time'],
                subject_id=e['subject_id'], teacher_id=e['teacher_id'], room=e['room'],
                department=department, semester=semester, section=section,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception(f"Timetable generation failed for {department} semester {semester}")
        raise
    logger.info(f"Generated {len(entries)} timetable slots for {department} semester {semester}")
    return entries

def day_order():
    return case({day: idx for idx, day in enumerate(DAYS, start=1)}, value=TimetableSlot.day, else_=len(DAYS) + 1)

def list_slots(department=None, semester=None):
    q = TimetableSlot.query
    if department:
        q = q.filter(TimetableSlot.department == department)
    if semester:
        q = q.filter(TimetableSlot.semester == semester)
    return q.order_by(day_order(), TimetableSlot.period.asc(), TimetableSlot.id.asc()).all()

def slot_to_dict(slot):
    return slot.to_dict(
        subject_name=slot.subject.name if slot.subject else None,
        subject_code=slot.subject.code if slot.subject else None,
        teacher_name=slot.teacher.name if slot.teacher else None,
    )
