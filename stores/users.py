"""Staff and patient accounts, credential lookup and id generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .base import TableStore, parse_enum, require_identifier
from .csv_table import CsvTable
from .errors import DuplicateKeyError, NotFoundError, ValidationError

LOGGER = logging.getLogger(__name__)

STAFF_HEADERS = (
    "Staff ID",
    "Name",
    "Gender",
    "Username",
    "Password",
    "DateOfBirth",
    "ContactNumber",
    "Email Address",
    "License Number",
    "PatientIds",
)
PATIENT_HEADERS = (
    "Patient ID",
    "Name",
    "Gender",
    "Username",
    "Password",
    "Date of Birth",
    "Contact Number",
    "Contact Information",
    "Blood Type",
)


class Role(Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    PHARMACIST = "PHARMACIST"
    ADMIN = "ADMIN"

    @property
    def id_prefix(self) -> str:
        return _ID_PREFIXES[self]

    @property
    def is_staff(self) -> bool:
        return self is not Role.PATIENT


_ID_PREFIXES = {
    Role.DOCTOR: "DOC",
    Role.PHARMACIST: "PHM",
    Role.ADMIN: "ADM",
    Role.PATIENT: "p",
}


def role_for_id(user_id: str) -> Role:
    """Derive the role from the first character of a stored user id."""

    if not user_id:
        raise ValidationError("user id must not be empty")
    first = user_id[0]
    if first == "D":
        return Role.DOCTOR
    if first == "P":
        return Role.PHARMACIST
    if first == "A":
        return Role.ADMIN
    if first == "p":
        return Role.PATIENT
    raise ValidationError(f"Cannot determine role for user id {user_id!r}")


@dataclass(frozen=True)
class User:
    """A login-capable person; role-specific fields are empty for other roles."""

    user_id: str
    role: Role
    name: str
    gender: str
    username: str
    password: str
    date_of_birth: Optional[date] = None
    contact_number: str = ""
    email: str = ""
    blood_type: str = ""
    license_number: str = ""
    patient_ids: Tuple[str, ...] = ()


def _parse_date(value: str) -> Optional[date]:
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date of birth {value!r}") from exc


class _UserTable(TableStore[str, User]):
    """One CSV table of users; staff and patients use different layouts."""

    entity_name = "user"

    def __init__(self, table: CsvTable, patients: bool) -> None:
        super().__init__(table)
        self._patients = patients

    def put(self, user: User, persist: bool) -> None:
        if persist:
            self._replace(user)
        else:
            self._records[user.user_id] = user

    def drop(self, user_id: str) -> None:
        records = dict(self._records)
        del records[user_id]
        self._commit(records)

    def rename(self, old_id: str, user: User) -> None:
        records: Dict[str, User] = {}
        for key, value in self._records.items():
            if key == old_id:
                records[user.user_id] = user
            else:
                records[key] = value
        self._commit(records)

    def find(self, user_id: str) -> Optional[User]:
        return self._records.get(user_id)

    def _key(self, record: User) -> str:
        return record.user_id

    def _to_row(self, record: User) -> Sequence[str]:
        common = [
            record.user_id,
            record.name,
            record.gender,
            record.username,
            record.password,
            record.date_of_birth.isoformat() if record.date_of_birth else "",
            record.contact_number,
            record.email,
        ]
        if self._patients:
            return common + [record.blood_type]
        return common + [record.license_number, ";".join(record.patient_ids)]

    def _from_row(self, row: Sequence[str]) -> User:
        user_id = require_identifier(row[0], "user id")
        role = role_for_id(user_id)
        if self._patients != (role is Role.PATIENT):
            raise ValidationError(f"User {user_id} does not belong in {self._table.path.name}")
        user = User(
            user_id=user_id,
            role=role,
            name=row[1],
            gender=row[2],
            username=require_identifier(row[3], "username"),
            password=row[4],
            date_of_birth=_parse_date(row[5]),
            contact_number=row[6],
            email=row[7],
        )
        if self._patients:
            return replace(user, blood_type=row[8])
        return replace(
            user,
            license_number=row[8] if role is Role.PHARMACIST else "",
            patient_ids=tuple(item for item in row[9].split(";") if item) if role is Role.DOCTOR else (),
        )


class UserStore:
    """Staff and patient accounts backed by two CSV tables."""

    def __init__(self, staff_table: CsvTable, patient_table: CsvTable) -> None:
        self._staff = _UserTable(staff_table, patients=False)
        self._patients = _UserTable(patient_table, patients=True)

    @classmethod
    def at(cls, staff_path: Path | str, patient_path: Path | str) -> "UserStore":
        return cls(CsvTable(staff_path, STAFF_HEADERS), CsvTable(patient_path, PATIENT_HEADERS))

    def load(self) -> int:
        return self._staff.load() + self._patients.load()

    def _table_for(self, role: Role) -> _UserTable:
        return self._staff if role.is_staff else self._patients

    def add(self, user: User, persist: bool = True) -> User:
        require_identifier(user.user_id, "user id")
        require_identifier(user.username, "username")
        if not user.password:
            raise ValidationError("password must not be empty")
        if role_for_id(user.user_id) is not user.role:
            raise ValidationError(f"User id {user.user_id} does not match role {user.role.value}")
        if persist:
            if self.find(user.user_id) is not None:
                raise DuplicateKeyError(f"User {user.user_id} already exists")
            if self.find_by_username(user.username) is not None:
                raise DuplicateKeyError(f"Username {user.username} is already taken")
        self._table_for(user.role).put(user, persist)
        if persist:
            LOGGER.info("Added %s %s", user.role.value.lower(), user.user_id)
        return user

    def get(self, user_id: str) -> User:
        user = self.find(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def find(self, user_id: str) -> Optional[User]:
        return self._staff.find(user_id) or self._patients.find(user_id)

    def find_by_username(self, username: str) -> Optional[User]:
        for table in (self._staff, self._patients):
            for user in table:
                if user.username == username:
                    return user
        return None

    def by_role(self, role: Role | str) -> List[User]:
        role = parse_enum(Role, role, "role")
        return [user for user in self._table_for(role) if user.role is role]

    def update(self, user_id: str, user: User) -> User:
        """Replace a user's details; a changed id must stay within the same role."""

        existing = self.get(user_id)
        if user.role is not existing.role or role_for_id(user.user_id) is not existing.role:
            raise ValidationError("A user's role cannot change")
        if user.user_id != user_id and self.find(user.user_id) is not None:
            raise DuplicateKeyError(f"User {user.user_id} already exists")
        clash = self.find_by_username(user.username)
        if clash is not None and clash.user_id != user_id:
            raise DuplicateKeyError(f"Username {user.username} is already taken")
        self._table_for(existing.role).rename(user_id, user)
        return user

    def remove(self, user_id: str) -> User:
        user = self.get(user_id)
        self._table_for(user.role).drop(user_id)
        LOGGER.info("Removed %s %s", user.role.value.lower(), user_id)
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Look the username up among staff, then patients, and check the password."""

        for table in (self._staff, self._patients):
            for user in table:
                if user.username == username:
                    if user.password == password:
                        return user
                    LOGGER.warning("Rejected login for %s: wrong password", username)
                    return None
        LOGGER.warning("Rejected login for unknown user %s", username)
        return None

    def generate_id(self, role: Role | str) -> str:
        """Return the first free id for ``role``.

        Ids are the role prefix, a ``0`` and a four-digit counter; a counter
        is skipped when the same number is in use with either ``0`` or ``1``
        after the prefix.
        """

        role = parse_enum(Role, role, "role")
        prefix = role.id_prefix
        for number in range(1, 10000):
            candidate = f"{prefix}0{number:04d}"
            alternate = f"{prefix}1{number:04d}"
            if self.find(candidate) is None and self.find(alternate) is None:
                return candidate
        raise ValidationError(f"No free {role.value.lower()} ids remain")
