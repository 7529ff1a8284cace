"""
Weekly doctor shift scheduling.

A working week has MORNING and AFTERNOON shifts Monday to Friday and a
MORNING shift on Saturday. :func:`generate_week` fills every shift with
``doctors_per_shift`` doctors using a randomised greedy pass: doctors are
shuffled, each receives an equal quota, full days are handed out first
on the least loaded days, then single shifts.
"""
from __future__ import annotations

import logging
import random
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from care import repositories
from care.models import Doctor, DoctorSchedule
from care.services.audit import log_action

logger = logging.getLogger(__name__)

MORNING = DoctorSchedule.SHIFT_MORNING
AFTERNOON = DoctorSchedule.SHIFT_AFTERNOON
SATURDAY, SUNDAY = 5, 6
DAY_NAMES = ['MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY', 'SUNDAY']


def shifts_for_day(day: date) -> list[str]:
    if day.weekday() == SUNDAY:
        return []
    if day.weekday() == SATURDAY:
        return [MORNING]
    return [MORNING, AFTERNOON]


def week_bounds(start: date) -> tuple[date, date]:
    if start.weekday() == SUNDAY:
        start += timedelta(days=1)
    return start, start + timedelta(days=6)


def format_schedule(s: DoctorSchedule) -> dict:
    user = s.doctor.user
    return {
        'id': s.id,
        'doctorId': s.doctor_id,
        'doctorName': user.get_full_name() or user.username,
        'date': s.date.isoformat(),
        'dayOfWeek': s.day_of_week,
        'dayName': DAY_NAMES[s.day_of_week],
        'shift': s.shift,
        'isOff': s.is_off,
        'swappedWithId': s.swapped_with_id,
    }


def _slot_info(day: date, shift: str) -> dict:
    return {'date': day.isoformat(), 'shift': shift, 'dayOfWeek': DAY_NAMES[day.weekday()]}


# ---------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------
def generate_week(*, doctors_per_shift: Optional[int] = None, start_date: Optional[date] = None,
                  seed: Optional[int] = None, actor=None) -> dict:
    if doctors_per_shift is None:
        doctors_per_shift = settings.SCHEDULE_DOCTORS_PER_SHIFT
    if doctors_per_shift < 1:
        raise ValidationError('doctorsPerShift must be at least 1')
    start, end = week_bounds(start_date or timezone.localdate())

    if DoctorSchedule.objects.filter(date__range=(start, end)).exists():
        raise ValidationError('Schedule already exists for this week')
    doctors = list(Doctor.objects.filter(is_available=True).order_by('id'))
    if not doctors:
        raise ValidationError('No available doctors found')
    if doctors_per_shift > len(doctors):
        raise ValidationError(
            f'doctorsPerShift ({doctors_per_shift}) exceeds the number of available doctors ({len(doctors)})'
        )

    days = [start + timedelta(days=i) for i in range(7)]
    slots = [(day, shift) for day in days for shift in shifts_for_day(day)]
    total_required = len(slots) * doctors_per_shift
    base_quota, extra = divmod(total_required, len(doctors))

    rng = random.Random(seed)
    rng.shuffle(doctors)

    load: dict[tuple, int] = defaultdict(int)
    assignments: list[tuple[Doctor, date, str]] = []
    full_days = [day for day in days if len(shifts_for_day(day)) == 2]

    for index, doctor in enumerate(doctors):
        quota = base_quota + (1 if index < extra else 0)
        assigned = 0
        used_days: set[date] = set()

        # whole days first, least loaded days first
        candidates = sorted(full_days, key=lambda d: (load[(d, MORNING)] + load[(d, AFTERNOON)], d))
        for day in candidates:
            if assigned + 2 > quota:
                break
            if load[(day, MORNING)] < doctors_per_shift and load[(day, AFTERNOON)] < doctors_per_shift:
                for shift in (MORNING, AFTERNOON):
                    load[(day, shift)] += 1
                    assignments.append((doctor, day, shift))
                assigned += 2
                used_days.add(day)

        # then single shifts on days the doctor is not working yet
        for day, shift in sorted(slots, key=lambda s: (load[s], s[0], s[1] != MORNING)):
            if assigned >= quota:
                break
            if day in used_days or load[(day, shift)] >= doctors_per_shift:
                continue
            load[(day, shift)] += 1
            assignments.append((doctor, day, shift))
            assigned += 1
            used_days.add(day)

    with transaction.atomic():
        DoctorSchedule.objects.bulk_create([
            DoctorSchedule(doctor=doctor, date=day, day_of_week=day.weekday(), shift=shift)
            for doctor, day, shift in assignments
        ])
        log_action(user=actor, action='schedule_generate', object_type='schedule', object_id=None,
                   detail={'start': start.isoformat(), 'end': end.isoformat(), 'assigned': len(assignments)})

    missing = [dict(_slot_info(day, shift), missing=doctors_per_shift - load[(day, shift)])
               for day, shift in slots if load[(day, shift)] < doctors_per_shift]
    remaining = sum(item['missing'] for item in missing)
    logger.info('Generated schedule %s..%s: %s shifts assigned, %s unfilled', start, end, len(assignments), remaining)
    return {
        'message': f'Schedule generated for {start.isoformat()} to {end.isoformat()}',
        'startDate': start.isoformat(),
        'endDate': end.isoformat(),
        'totalAssignedShifts': len(assignments),
        'remainingShifts': remaining,
        'shiftsNeedingDoctors': missing,
    }


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
def schedules_in_range(*, doctor_id: Optional[int] = None, start: Optional[date] = None,
                       end: Optional[date] = None, time_off_only: bool = False):
    start = start or timezone.localdate()
    end = end or start + timedelta(days=settings.SCHEDULE_LOOKAHEAD_DAYS)
    if end < start:
        raise ValidationError('endDate must not be before startDate')
    qs = repositories.schedules().filter(date__range=(start, end))
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if time_off_only:
        qs = qs.filter(is_off=True)
    return qs.order_by('date', 'shift', 'doctor_id')


def doctors_on_date(day: date) -> list[dict]:
    return [format_schedule(s) for s in repositories.schedules().filter(date=day, is_off=False)
            .order_by('shift', 'doctor_id')]


# ---------------------------------------------------------------------
# Changes
# ---------------------------------------------------------------------
def request_time_off(*, doctor_id: int, day: date, shift: str, actor=None) -> DoctorSchedule:
    schedule = repositories.schedules().filter(doctor_id=doctor_id, date=day, shift=shift).first()
    if schedule is None:
        raise NotFound(f'No schedule found for doctor {doctor_id} on {day.isoformat()} ({shift})')
    if not schedule.is_off:
        schedule.is_off = True
        schedule.save(update_fields=['is_off'])
        log_action(user=actor, action='schedule_time_off', object_type='schedule', object_id=schedule.id)
    return schedule


def assign_manually(*, day: date, shift: str, doctor_ids: Iterable[int], doctors_per_shift: Optional[int] = None,
                    actor=None) -> list[DoctorSchedule]:
    if doctors_per_shift is None:
        doctors_per_shift = settings.SCHEDULE_DOCTORS_PER_SHIFT
    doctor_ids = list(dict.fromkeys(doctor_ids))
    if day < timezone.localdate():
        raise ValidationError('Cannot assign shifts in the past')
    if shift not in shifts_for_day(day):
        raise ValidationError(f'{shift} is not a working shift on {DAY_NAMES[day.weekday()]}')
    if not doctor_ids:
        raise ValidationError('doctorIds must not be empty')

    with transaction.atomic():
        current = list(DoctorSchedule.objects.select_for_update().filter(date=day, shift=shift, is_off=False))
        available = doctors_per_shift - len(current)
        if available <= 0:
            raise ValidationError(f'Shift {shift} on {day.isoformat()} is already fully staffed')
        if len(doctor_ids) > available:
            raise ValidationError(f'Only {available} slot(s) left on {day.isoformat()} ({shift})')
        found = set(Doctor.objects.filter(id__in=doctor_ids).values_list('id', flat=True))
        unknown = [i for i in doctor_ids if i not in found]
        if unknown:
            raise ValidationError(f'Doctor(s) not found: {", ".join(map(str, unknown))}')
        taken = set(DoctorSchedule.objects.filter(date=day, shift=shift, doctor_id__in=doctor_ids)
                    .values_list('doctor_id', flat=True))
        if taken:
            raise ValidationError(f'Doctor(s) already assigned to this shift: {", ".join(map(str, sorted(taken)))}')
        created = DoctorSchedule.objects.bulk_create([
            DoctorSchedule(doctor_id=i, date=day, day_of_week=day.weekday(), shift=shift) for i in doctor_ids
        ])
        log_action(user=actor, action='schedule_assign', object_type='schedule', object_id=None,
                   detail={'date': day.isoformat(), 'shift': shift, 'doctorIds': doctor_ids})
    return list(repositories.schedules().filter(date=day, shift=shift, doctor_id__in=doctor_ids))


def swap_shifts(first: dict, second: dict, *, actor=None) -> tuple[DoctorSchedule, DoctorSchedule]:
    """Exchange the doctors of two schedule rows.

    ``first`` and ``second`` hold ``doctorId``, ``date`` and ``shift``.
    """
    with transaction.atomic():
        rows = []
        for side in (first, second):
            row = (DoctorSchedule.objects.select_for_update()
                   .filter(doctor_id=side['doctorId'], date=side['date'], shift=side['shift']).first())
            if row is None:
                raise ValidationError(
                    f"Doctor {side['doctorId']} has no schedule on {side['date']} ({side['shift']})")
            if row.is_off:
                raise ValidationError(
                    f"Doctor {side['doctorId']} is off on {side['date']} ({side['shift']}) and cannot swap")
            rows.append(row)
        a, b = rows
        if a.pk == b.pk or a.doctor_id == b.doctor_id:
            raise ValidationError('Cannot swap a shift with the same doctor')
        if (a.date, a.shift) == (b.date, b.shift):
            raise ValidationError('Both doctors already work this shift')
        if DoctorSchedule.objects.filter(doctor_id=b.doctor_id, date=a.date, shift=a.shift).exists() or \
                DoctorSchedule.objects.filter(doctor_id=a.doctor_id, date=b.date, shift=b.shift).exists():
            raise ValidationError('Swap would double-book a doctor')

        a_doctor, b_doctor = a.doctor_id, b.doctor_id
        a.doctor_id, a.swapped_with = b_doctor, b
        b.doctor_id, b.swapped_with = a_doctor, a
        a.save(update_fields=['doctor', 'swapped_with'])
        b.save(update_fields=['doctor', 'swapped_with'])
        log_action(user=actor, action='schedule_swap', object_type='schedule', object_id=a.id,
                   detail={'first': a.id, 'second': b.id})
    return (repositories.schedules().get(pk=a.pk), repositories.schedules().get(pk=b.pk))
