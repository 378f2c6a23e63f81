"""Command line entry point for the hospital management system."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime, time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

if __package__ is None or __package__ == "":  # pragma: no cover - runtime safety for script execution
    sys.path.append(str(Path(__file__).resolve().parent.parent))

from connector import TranslationClient, Translator
from console.audit import AuditLogger, execute_with_audit
from controllers import controller_for, register_patient
from reports.operations import build_operations_report
from stores import (
    Appointment,
    AppointmentOutcome,
    AuthorizationError,
    Database,
    HospitalError,
    MedicalRecord,
    Medication,
    RecordList,
    ReplenishRequest,
    Role,
    Settings,
    User,
)
from stores.appointments import DATETIME_FORMAT, parse_appointment_datetime
from ui.dashboard import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Iterable[str]]


# Formatting


def format_appointment(appointment: Appointment) -> str:
    return (
        f"#{appointment.appointment_id} {appointment.date_time.strftime(DATETIME_FORMAT)} "
        f"doctor={appointment.doctor_id} patient={appointment.patient_id} "
        f"[{appointment.status.value}]"
    )


def format_outcome(outcome: AppointmentOutcome) -> str:
    medications = ", ".join(outcome.medication_ids) or "none"
    return (
        f"Outcome #{outcome.appointment_id} {outcome.service_type}: medications={medications} "
        f"prescription={outcome.prescription_status.value} "
        f"total={outcome.total_amount:.2f} [{outcome.billing_status.value}]"
    )


def format_medication(medication: Medication) -> str:
    flag = " LOW" if medication.is_low_stock else ""
    return (
        f"{medication.name}: stock={medication.current_stock}/{medication.initial_stock} "
        f"alert={medication.low_stock_level_alert} price={medication.price:.2f}{flag}"
    )


def format_request(request: ReplenishRequest) -> str:
    return (
        f"Request #{request.request_id} {request.medication_id} x{request.amount} "
        f"by {request.staff_id} on {request.request_date.isoformat()} [{request.status.value}]"
    )


def format_record(record: MedicalRecord) -> List[str]:
    lines = [f"Medical record for {record.patient_id}"]
    for kind in RecordList:
        entries = record.entries(kind)
        label = kind.value.replace("_", " ").capitalize()
        lines.append(f"  {label}: {'; '.join(entries) if entries else 'None'}")
    return lines


def format_user(user: User) -> str:
    return f"{user.user_id} {user.name} ({user.role.value.lower()}) username={user.username}"


def format_slots(slots: Mapping[date, Sequence[time]]) -> List[str]:
    return [
        f"{day.isoformat()}: {', '.join(slot.strftime('%H:%M') for slot in times)}"
        for day, times in slots.items()
    ]


# Argument types


def _datetime_arg(value: str) -> datetime:
    try:
        return parse_appointment_datetime(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _time_arg(value: str) -> time:
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid time {value!r}; use HH:MM") from exc


def _date_arg(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}; use YYYY-MM-DD") from exc


# Handlers without a logged-in user


def handle_register(database: Database, settings: Settings, args: argparse.Namespace) -> List[str]:
    patient = register_patient(
        database,
        name=args.name,
        gender=args.gender,
        username=args.new_username,
        password=args.new_password,
        date_of_birth=args.date_of_birth,
        contact_number=args.contact or "",
        email=args.email or "",
        blood_type=args.blood_type or "",
    )
    return [f"Registered patient {patient.user_id}"]


def handle_dashboard(database: Database, settings: Settings, args: argparse.Namespace) -> List[str]:
    app = create_app(database, settings.audit_log_path)
    app.run(host=args.host, port=args.port, debug=False)
    return []


# Patient


def patient_record(controller, args) -> List[str]:
    return format_record(controller.medical_record())


def patient_appointments(controller, args) -> List[str]:
    return [format_appointment(item) for item in controller.appointments()] or ["No appointments."]


def patient_slots(controller, args) -> List[str]:
    return format_slots(controller.available_slots(args.doctor)) or [f"{args.doctor} has no open slots."]


def patient_book(controller, args) -> List[str]:
    appointment_id = controller.schedule_appointment(args.doctor, args.at)
    return [f"Appointment {appointment_id} requested."]


def patient_reschedule(controller, args) -> List[str]:
    return [format_appointment(controller.reschedule_appointment(args.appointment_id, args.at))]


def patient_cancel(controller, args) -> List[str]:
    return [format_appointment(controller.cancel_appointment(args.appointment_id))]


def patient_history(controller, args) -> List[str]:
    lines = []
    for entry in controller.appointment_history():
        lines.append(format_appointment(entry.appointment))
        if entry.outcome is not None:
            lines.append(f"  {format_outcome(entry.outcome)}")
    return lines or ["No completed appointments."]


def patient_pay(controller, args) -> List[str]:
    outcome = controller.pay_bill(args.appointment_id)
    return [f"Paid {outcome.total_amount:.2f} for appointment {outcome.appointment_id}."]


# Doctor


def doctor_patients(controller, args) -> List[str]:
    lines: List[str] = []
    for record in controller.patient_records():
        lines.extend(format_record(record))
    return lines or ["No patients."]


def doctor_record(controller, args) -> List[str]:
    return format_record(controller.patient_record(args.patient_id))


def doctor_add_record(controller, args) -> List[str]:
    record = controller.update_record(
        args.patient_id,
        diagnoses=args.diagnosis,
        prescriptions=args.prescription,
        treatment_plans=args.treatment,
    )
    return format_record(record)


def doctor_delete_record(controller, args) -> List[str]:
    if args.index is not None:
        return format_record(controller.delete_record_entry(args.patient_id, args.kind, args.index))
    report = controller.delete_record_entries(args.patient_id, args.kind, args.values or "")
    if report.cleared:
        return [f"Cleared {len(report.removed)} {args.kind} entries."]
    lines = [f"Removed: {value}" for value in report.removed]
    lines.extend(f"Not found: {value}" for value in report.not_found)
    return lines


def doctor_schedule(controller, args) -> List[str]:
    return [format_appointment(item) for item in controller.schedule()] or ["No appointments."]


def doctor_upcoming(controller, args) -> List[str]:
    return [format_appointment(item) for item in controller.upcoming_appointments()] or [
        "No upcoming appointments."
    ]


def doctor_past(controller, args) -> List[str]:
    return [format_appointment(item) for item in controller.past_appointments()] or [
        "No completed appointments."
    ]


def doctor_availability(controller, args) -> List[str]:
    return format_slots(controller.availability()) or ["No open slots published."]


def doctor_set_availability(controller, args) -> List[str]:
    published = controller.set_monthly_availability(args.start_date, args.start, args.end, args.interval)
    open_slots = sum(len(times) for times in published.values())
    return [f"Published {open_slots} open slots over {len(published)} days."]


def doctor_accept(controller, args) -> List[str]:
    return [format_appointment(controller.accept(args.appointment_id))]


def doctor_decline(controller, args) -> List[str]:
    return [format_appointment(controller.decline(args.appointment_id))]


def doctor_accept_all(controller, args) -> List[str]:
    changed = controller.accept_all_pending()
    return [f"Accepted {len(changed)} appointments."]


def doctor_decline_all(controller, args) -> List[str]:
    changed = controller.decline_all_pending()
    return [f"Declined {len(changed)} appointments."]


def doctor_outcome(controller, args) -> List[str]:
    outcome = controller.record_outcome(
        args.appointment_id, args.service, args.medication or [], args.notes or ""
    )
    return [format_outcome(outcome)]


# Pharmacist


def pharmacist_prescriptions(controller, args) -> List[str]:
    return [format_outcome(item) for item in controller.pending_prescriptions()] or [
        "No pending prescriptions."
    ]


def pharmacist_dispense(controller, args) -> List[str]:
    return [format_outcome(controller.dispense(args.appointment_id))]


def pharmacist_inventory(controller, args) -> List[str]:
    return [format_medication(item) for item in controller.inventory()]


def pharmacist_low_stock(controller, args) -> List[str]:
    return [format_medication(item) for item in controller.low_stock()] or ["No medications below alert level."]


def pharmacist_search(controller, args) -> List[str]:
    matches = controller.search_medications(args.name)
    return [format_medication(item) for item in matches] or [f"No medication resembles {args.name!r}."]


def pharmacist_request(controller, args) -> List[str]:
    request_id = controller.submit_replenish_request(args.medication, args.amount)
    return [f"Replenish request {request_id} submitted."]


def pharmacist_requests(controller, args) -> List[str]:
    return [format_request(item) for item in controller.my_replenish_requests()] or ["No requests."]


# Admin


def admin_staff(controller, args) -> List[str]:
    return [format_user(user) for user in controller.staff(args.role)]


def admin_add_staff(controller, args) -> List[str]:
    member = controller.add_staff(
        args.role,
        name=args.name,
        gender=args.gender,
        username=args.new_username,
        password=args.new_password,
        date_of_birth=args.date_of_birth,
        contact_number=args.contact or "",
        email=args.email or "",
        license_number=args.license or "",
    )
    return [f"Added {format_user(member)}"]


def admin_update_staff(controller, args) -> List[str]:
    changes = {
        field: value
        for field, value in (
            ("user_id", args.new_id),
            ("name", args.name),
            ("password", args.new_password),
            ("contact_number", args.contact),
            ("email", args.email),
            ("license_number", args.license),
        )
        if value is not None
    }
    return [f"Updated {format_user(controller.update_staff(args.user_id, **changes))}"]


def admin_remove_staff(controller, args) -> List[str]:
    return [f"Removed {format_user(controller.remove_staff(args.user_id))}"]


def admin_medications(controller, args) -> List[str]:
    return [format_medication(item) for item in controller.medications()]


def admin_add_medication(controller, args) -> List[str]:
    return [format_medication(controller.add_medication(args.name, args.stock, args.alert, args.price))]


def admin_delete_medication(controller, args) -> List[str]:
    return [f"Deleted {controller.delete_medication(args.name).name}"]


def admin_stock(controller, args) -> List[str]:
    operations = {
        "increase": controller.increase_stock,
        "decrease": controller.decrease_stock,
        "set": controller.set_stock_level,
    }
    return [format_medication(operations[args.operation](args.name, args.amount))]


def admin_alert(controller, args) -> List[str]:
    return [format_medication(controller.set_low_stock_alert(args.name, args.level))]


def admin_price(controller, args) -> List[str]:
    return [format_medication(controller.set_price(args.name, args.price))]


def admin_requests(controller, args) -> List[str]:
    return [format_request(item) for item in controller.replenish_requests(not args.all)] or ["No requests."]


def admin_approve(controller, args) -> List[str]:
    return [format_request(controller.approve_request(args.request_id))]


def admin_deny(controller, args) -> List[str]:
    return [format_request(controller.deny_request(args.request_id))]


def admin_appointments(controller, args) -> List[str]:
    lines = []
    for entry in controller.appointments():
        lines.append(format_appointment(entry.appointment))
        if entry.outcome is not None:
            lines.append(f"  {format_outcome(entry.outcome)}")
    return lines or ["No appointments."]


def admin_report(controller, args, settings: Settings) -> List[str]:
    path = build_operations_report(
        controller.database,
        output_dir=settings.report_dir,
        week_ending=args.week_ending,
    )
    return [f"Operations report written to {path}"]


# Parser


def _leaf(subparsers, name: str, handler: Handler, help_text: str, *, role=None, task=None):
    parser = subparsers.add_parser(name, help=help_text)
    parser.set_defaults(handler=handler, role=role, task=task)
    return parser


def _add_person_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--gender", required=True)
    parser.add_argument("--new-username", required=True)
    parser.add_argument("--new-password", required=True)
    parser.add_argument("--date-of-birth", type=_date_arg)
    parser.add_argument("--contact")
    parser.add_argument("--email")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hms", description="Hospital management console")
    parser.add_argument("--data-dir", help="Directory holding the CSV tables (HMS_DATA_DIR)")
    parser.add_argument("--lang", help="Language code for console output (HMS_LANG)")
    parser.add_argument("--username", help="Login username")
    parser.add_argument("--password", help="Login password")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    groups = parser.add_subparsers(dest="group", required=True)

    register = _leaf(groups, "register", handle_register, "Register a new patient account", task="register")
    _add_person_arguments(register)
    register.add_argument("--blood-type")

    dashboard = _leaf(groups, "dashboard", handle_dashboard, "Serve the operations dashboard")
    dashboard.add_argument("--host", default="127.0.0.1")
    dashboard.add_argument("--port", type=int, default=5000)

    # Patient
    patient = groups.add_parser("patient", help="Patient commands").add_subparsers(dest="command", required=True)
    _leaf(patient, "record", patient_record, "Show your medical record", role=Role.PATIENT)
    _leaf(patient, "appointments", patient_appointments, "List your appointments", role=Role.PATIENT)
    slots = _leaf(patient, "slots", patient_slots, "Show a doctor's open slots", role=Role.PATIENT)
    slots.add_argument("--doctor", required=True)
    book = _leaf(patient, "book", patient_book, "Request an appointment", role=Role.PATIENT, task="patient.book")
    book.add_argument("--doctor", required=True)
    book.add_argument("--at", required=True, type=_datetime_arg)
    reschedule = _leaf(
        patient, "reschedule", patient_reschedule, "Move an appointment", role=Role.PATIENT, task="patient.reschedule"
    )
    reschedule.add_argument("appointment_id", type=int)
    reschedule.add_argument("--at", required=True, type=_datetime_arg)
    cancel = _leaf(patient, "cancel", patient_cancel, "Cancel an appointment", role=Role.PATIENT, task="patient.cancel")
    cancel.add_argument("appointment_id", type=int)
    _leaf(patient, "history", patient_history, "Show completed appointments", role=Role.PATIENT)
    pay = _leaf(patient, "pay", patient_pay, "Pay the bill for an appointment", role=Role.PATIENT, task="patient.pay")
    pay.add_argument("appointment_id", type=int)

    # Doctor
    doctor = groups.add_parser("doctor", help="Doctor commands").add_subparsers(dest="command", required=True)
    _leaf(doctor, "patients", doctor_patients, "Show records of your patients", role=Role.DOCTOR)
    record = _leaf(doctor, "record", doctor_record, "Show one patient's record", role=Role.DOCTOR)
    record.add_argument("patient_id")
    add_record = _leaf(
        doctor, "add-record", doctor_add_record, "Append record entries", role=Role.DOCTOR, task="doctor.add_record"
    )
    add_record.add_argument("patient_id")
    add_record.add_argument("--diagnosis", action="append")
    add_record.add_argument("--prescription", action="append")
    add_record.add_argument("--treatment", action="append")
    delete_record = _leaf(
        doctor,
        "delete-record",
        doctor_delete_record,
        "Delete record entries by index or value",
        role=Role.DOCTOR,
        task="doctor.delete_record",
    )
    delete_record.add_argument("patient_id")
    delete_record.add_argument("--kind", required=True, choices=[kind.value for kind in RecordList])
    selector = delete_record.add_mutually_exclusive_group(required=True)
    selector.add_argument("--index", type=int)
    selector.add_argument("--values", help="';'-joined values; an empty string clears the list")
    _leaf(doctor, "schedule", doctor_schedule, "List all your appointments", role=Role.DOCTOR)
    _leaf(doctor, "upcoming", doctor_upcoming, "List upcoming appointments", role=Role.DOCTOR)
    _leaf(doctor, "past", doctor_past, "List completed appointments", role=Role.DOCTOR)
    _leaf(doctor, "availability", doctor_availability, "Show your open slots", role=Role.DOCTOR)
    set_availability = _leaf(
        doctor,
        "set-availability",
        doctor_set_availability,
        "Publish open slots for the rest of a month",
        role=Role.DOCTOR,
        task="doctor.set_availability",
    )
    set_availability.add_argument("--start-date", required=True, type=_date_arg)
    set_availability.add_argument("--start", required=True, type=_time_arg, help="First slot, HH:MM")
    set_availability.add_argument("--end", required=True, type=_time_arg, help="Last slot, HH:MM")
    set_availability.add_argument("--interval", type=int, default=30, help="Minutes between slots")
    accept = _leaf(doctor, "accept", doctor_accept, "Confirm an appointment", role=Role.DOCTOR, task="doctor.accept")
    accept.add_argument("appointment_id", type=int)
    decline = _leaf(doctor, "decline", doctor_decline, "Decline an appointment", role=Role.DOCTOR, task="doctor.decline")
    decline.add_argument("appointment_id", type=int)
    _leaf(doctor, "accept-all", doctor_accept_all, "Confirm every pending appointment", role=Role.DOCTOR, task="doctor.accept_all")
    _leaf(doctor, "decline-all", doctor_decline_all, "Decline every pending appointment", role=Role.DOCTOR, task="doctor.decline_all")
    outcome = _leaf(
        doctor, "outcome", doctor_outcome, "Record an appointment outcome", role=Role.DOCTOR, task="doctor.outcome"
    )
    outcome.add_argument("appointment_id", type=int)
    outcome.add_argument("--service", required=True)
    outcome.add_argument("--medication", action="append")
    outcome.add_argument("--notes")

    # Pharmacist
    pharmacist = groups.add_parser("pharmacist", help="Pharmacist commands").add_subparsers(
        dest="command", required=True
    )
    _leaf(pharmacist, "prescriptions", pharmacist_prescriptions, "List pending prescriptions", role=Role.PHARMACIST)
    dispense = _leaf(
        pharmacist, "dispense", pharmacist_dispense, "Dispense a prescription", role=Role.PHARMACIST, task="pharmacist.dispense"
    )
    dispense.add_argument("appointment_id", type=int)
    _leaf(pharmacist, "inventory", pharmacist_inventory, "Show medication inventory", role=Role.PHARMACIST)
    _leaf(pharmacist, "low-stock", pharmacist_low_stock, "Show medications at or below alert level", role=Role.PHARMACIST)
    search = _leaf(pharmacist, "search", pharmacist_search, "Find medications by similar name", role=Role.PHARMACIST)
    search.add_argument("name")
    request = _leaf(
        pharmacist, "request", pharmacist_request, "Submit a replenish request", role=Role.PHARMACIST, task="pharmacist.request"
    )
    request.add_argument("medication")
    request.add_argument("amount", type=int)
    _leaf(pharmacist, "requests", pharmacist_requests, "List your replenish requests", role=Role.PHARMACIST)

    # Admin
    admin = groups.add_parser("admin", help="Administrator commands").add_subparsers(dest="command", required=True)
    staff = _leaf(admin, "staff", admin_staff, "List staff", role=Role.ADMIN)
    staff.add_argument("--role", choices=[role.value for role in Role if role.is_staff])
    add_staff = _leaf(admin, "add-staff", admin_add_staff, "Add a staff member", role=Role.ADMIN, task="admin.add_staff")
    add_staff.add_argument("role", choices=[role.value for role in Role if role.is_staff])
    _add_person_arguments(add_staff)
    add_staff.add_argument("--license")
    update_staff = _leaf(
        admin, "update-staff", admin_update_staff, "Change a staff member's details", role=Role.ADMIN, task="admin.update_staff"
    )
    update_staff.add_argument("user_id")
    update_staff.add_argument("--new-id")
    update_staff.add_argument("--name")
    update_staff.add_argument("--new-password")
    update_staff.add_argument("--contact")
    update_staff.add_argument("--email")
    update_staff.add_argument("--license")
    remove_staff = _leaf(
        admin, "remove-staff", admin_remove_staff, "Remove a staff member", role=Role.ADMIN, task="admin.remove_staff"
    )
    remove_staff.add_argument("user_id")
    _leaf(admin, "medications", admin_medications, "Show medication inventory", role=Role.ADMIN)
    add_medication = _leaf(
        admin, "add-medication", admin_add_medication, "Add a medication", role=Role.ADMIN, task="admin.add_medication"
    )
    add_medication.add_argument("name")
    add_medication.add_argument("--stock", type=int, required=True)
    add_medication.add_argument("--alert", type=int, required=True)
    add_medication.add_argument("--price", type=float, required=True)
    delete_medication = _leaf(
        admin, "delete-medication", admin_delete_medication, "Delete a medication", role=Role.ADMIN, task="admin.delete_medication"
    )
    delete_medication.add_argument("name")
    stock = _leaf(admin, "stock", admin_stock, "Change a medication's stock", role=Role.ADMIN, task="admin.stock")
    stock.add_argument("operation", choices=("increase", "decrease", "set"))
    stock.add_argument("name")
    stock.add_argument("amount", type=int)
    alert = _leaf(admin, "alert", admin_alert, "Set a low stock alert level", role=Role.ADMIN, task="admin.alert")
    alert.add_argument("name")
    alert.add_argument("level", type=int)
    price = _leaf(admin, "price", admin_price, "Set a medication price", role=Role.ADMIN, task="admin.price")
    price.add_argument("name")
    price.add_argument("price", type=float)
    requests_parser = _leaf(admin, "requests", admin_requests, "List replenish requests", role=Role.ADMIN)
    requests_parser.add_argument("--all", action="store_true", help="Include approved and denied requests")
    approve = _leaf(admin, "approve", admin_approve, "Approve a replenish request", role=Role.ADMIN, task="admin.approve")
    approve.add_argument("request_id", type=int)
    deny = _leaf(admin, "deny", admin_deny, "Deny a replenish request", role=Role.ADMIN, task="admin.deny")
    deny.add_argument("request_id", type=int)
    _leaf(admin, "appointments", admin_appointments, "List every appointment", role=Role.ADMIN)
    report = _leaf(admin, "report", admin_report, "Write the weekly operations PDF", role=Role.ADMIN, task="admin.report")
    report.add_argument("--week-ending", type=_date_arg)

    return parser


# Parser and session options that are not arguments of the command itself.
CONTROL_ARGUMENTS = frozenset(
    {"data_dir", "lang", "username", "password", "verbose", "group", "command", "handler", "role", "task"}
)


def _command_arguments(args: argparse.Namespace) -> Dict[str, object]:
    return {name: value for name, value in vars(args).items() if name not in CONTROL_ARGUMENTS}


def _authenticate(database: Database, args: argparse.Namespace) -> User:
    if not args.username or not args.password:
        raise AuthorizationError("--username and --password are required for this command")
    user = database.users.authenticate(args.username, args.password)
    if user is None:
        raise AuthorizationError("Invalid username or password")
    return user


def run_command(
    args: argparse.Namespace, database: Database, settings: Settings, audit: AuditLogger
) -> List[str]:
    """Dispatch parsed arguments to their handler; mutating commands are audited."""

    if args.role is None:
        def action() -> List[str]:
            return list(args.handler(database, settings, args))

        user_id = None
    else:
        user = _authenticate(database, args)
        if user.role is not args.role:
            raise AuthorizationError(
                f"{user.user_id} is a {user.role.value.lower()} and cannot run {args.group} commands"
            )
        controller = controller_for(user, database)

        def action() -> List[str]:
            if args.handler is admin_report:
                return admin_report(controller, args, settings)
            return list(args.handler(controller, args))

        user_id = user.user_id

    if args.task is None:
        return action()
    return execute_with_audit(
        args.task, action, audit, user=user_id, arguments=_command_arguments(args)
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT)

    settings = Settings.from_env(args.data_dir)
    if args.lang:
        settings = settings.with_language(args.lang)
    translator = Translator(settings.language, TranslationClient.from_settings(settings))
    audit = AuditLogger(settings.audit_log_path)

    try:
        database = Database.open(settings.data_dir)
        lines = run_command(args, database, settings, audit)
    except HospitalError as exc:
        LOGGER.error("Command failed: %s", exc)
        print(translator(f"Error: {exc}"), file=sys.stderr)
        return 1

    for line in lines:
        print(translator(line))
    return 0


if __name__ == "__main__":
    sys.exit(main())
