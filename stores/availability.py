"""Doctors' published appointment slots."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .base import TableStore, require_identifier, require_positive
from .csv_table import CsvTable
from .errors import NotFoundError, SlotUnavailableError, ValidationError

LOGGER = logging.getLogger(__name__)

AVAILABILITY_HEADERS = ("Staff ID", "Date", "Times")
TIME_FORMAT = "%H:%M"
TIME_SEPARATOR = ";"

DayKey = Tuple[str, date]


@dataclass(frozen=True)
class DoctorAvailability:
    """Open slots for one doctor on one day; an empty tuple means fully booked."""

    doctor_id: str
    day: date
    times: Tuple[time, ...] = ()


def generate_slots(start: time, end: time, interval_minutes: int) -> Tuple[time, ...]:
    """Slots from ``start`` up to and including ``end``, ``interval_minutes`` apart."""

    interval_minutes = require_positive(interval_minutes, "interval_minutes")
    if end < start:
        raise ValidationError("End time must not be before start time")
    anchor = date.min
    current = datetime.combine(anchor, start)
    last = datetime.combine(anchor, end)
    slots: List[time] = []
    while current <= last:
        slots.append(current.time())
        current += timedelta(minutes=interval_minutes)
    return tuple(slots)


def _format_times(times: Sequence[time]) -> str:
    return TIME_SEPARATOR.join(item.strftime(TIME_FORMAT) for item in times)


def _parse_times(value: str) -> Tuple[time, ...]:
    parsed = {
        datetime.strptime(item.strip(), TIME_FORMAT).time()
        for item in value.split(TIME_SEPARATOR)
        if item.strip()
    }
    return tuple(sorted(parsed))


class AvailabilityStore(TableStore[DayKey, DoctorAvailability]):
    """Per-day slot lists keyed by ``(doctor_id, day)``.

    Booking takes a slot out of the day's list and releasing puts it back.
    A doctor who never published a calendar has no rows at all.
    """

    entity_name = "availability"

    @classmethod
    def at(cls, path: Path | str) -> "AvailabilityStore":
        return cls(CsvTable(path, AVAILABILITY_HEADERS))

    def set_monthly(
        self,
        doctor_id: str,
        start_date: date,
        start_time: time,
        end_time: time,
        interval_minutes: int,
        booked: Iterable[datetime] = (),
    ) -> Dict[date, Tuple[time, ...]]:
        """Publish the same slots for every day from ``start_date`` to the end of its month.

        Days already published in that range are replaced. Slots that match
        a ``booked`` date-time are left out.
        """

        doctor_id = require_identifier(doctor_id, "doctor_id")
        if not isinstance(start_date, date) or isinstance(start_date, datetime):
            raise ValidationError("start_date must be a date instance")
        slots = generate_slots(start_time, end_time, interval_minutes)
        taken: Dict[date, set] = {}
        for moment in booked:
            taken.setdefault(moment.date(), set()).add(moment.time())

        last_day = calendar.monthrange(start_date.year, start_date.month)[1]
        records = dict(self._records)
        published: Dict[date, Tuple[time, ...]] = {}
        for offset in range(last_day - start_date.day + 1):
            day = start_date + timedelta(days=offset)
            times = tuple(slot for slot in slots if slot not in taken.get(day, ()))
            records[(doctor_id, day)] = DoctorAvailability(doctor_id, day, times)
            published[day] = times
        self._commit(records)
        LOGGER.info(
            "Published %d slots a day for %s from %s to %s",
            len(slots),
            doctor_id,
            start_date.isoformat(),
            start_date.replace(day=last_day).isoformat(),
        )
        return published

    def has_schedule(self, doctor_id: str) -> bool:
        return any(key[0] == doctor_id for key in self._records)

    def slots_for(
        self, doctor_id: str, after: Optional[datetime] = None
    ) -> Dict[date, Tuple[time, ...]]:
        """Open slots by day, earliest first; days with nothing open are left out."""

        result: Dict[date, Tuple[time, ...]] = {}
        for (owner, day), entry in sorted(self._records.items(), key=lambda item: item[0][1]):
            if owner != doctor_id:
                continue
            times = entry.times
            if after is not None:
                times = tuple(slot for slot in times if datetime.combine(day, slot) > after)
            if times:
                result[day] = times
        return result

    def is_available(self, doctor_id: str, date_time: datetime) -> bool:
        entry = self._records.get((doctor_id, date_time.date()))
        return entry is not None and date_time.time() in entry.times

    def book(self, doctor_id: str, date_time: datetime) -> DoctorAvailability:
        if not self.is_available(doctor_id, date_time):
            raise SlotUnavailableError(
                f"Doctor {doctor_id} has no open slot at {date_time.strftime('%Y-%m-%d %H:%M')}"
            )
        entry = self._records[(doctor_id, date_time.date())]
        updated = replace(entry, times=tuple(slot for slot in entry.times if slot != date_time.time()))
        self._replace(updated)
        LOGGER.debug("Booked slot %s for %s", date_time.isoformat(), doctor_id)
        return updated

    def release(self, doctor_id: str, date_time: datetime) -> bool:
        """Put a booked slot back; days that were never published are left alone."""

        entry = self._records.get((doctor_id, date_time.date()))
        if entry is None or date_time.time() in entry.times:
            return False
        self._replace(replace(entry, times=tuple(sorted(entry.times + (date_time.time(),)))))
        LOGGER.debug("Released slot %s for %s", date_time.isoformat(), doctor_id)
        return True

    def reassign_doctor(self, old_doctor_id: str, new_doctor_id: str) -> int:
        new_doctor_id = require_identifier(new_doctor_id, "new_doctor_id")
        if new_doctor_id == old_doctor_id:
            raise ValidationError("New doctor id must differ from the old one")
        records: Dict[DayKey, DoctorAvailability] = {}
        changed = 0
        for (owner, day), entry in self._records.items():
            if owner == old_doctor_id:
                entry = replace(entry, doctor_id=new_doctor_id)
                changed += 1
            records[(entry.doctor_id, day)] = entry
        if not changed:
            raise NotFoundError(f"No availability found for doctor {old_doctor_id}")
        self._commit(records)
        return changed

    def _key(self, record: DoctorAvailability) -> DayKey:
        return (record.doctor_id, record.day)

    def _to_row(self, record: DoctorAvailability) -> Sequence[str]:
        return [record.doctor_id, record.day.isoformat(), _format_times(record.times)]

    def _from_row(self, row: Sequence[str]) -> DoctorAvailability:
        return DoctorAvailability(
            doctor_id=require_identifier(row[0], "doctor_id"),
            day=date.fromisoformat(row[1].strip()),
            times=_parse_times(row[2]),
        )
