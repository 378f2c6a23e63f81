"""Read-only operations dashboard.

A small Flask application that shows inventory levels, replenish requests
awaiting approval, upcoming appointments, unpaid bills and the console audit
log. Data comes straight from the loaded stores; a missing or corrupt audit
log is shown as empty so the dashboard still renders.
"""
from __future__ import annotations

from datetime import datetime
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, MutableMapping

from flask import Flask, Response, jsonify, render_template_string, request

from stores import Database, ReplenishStatus, Settings
from stores.appointments import DATETIME_FORMAT

LOGGER = logging.getLogger(__name__)


class DashboardRepository:
    """Shapes store contents and audit entries into template-friendly rows."""

    def __init__(self, database: Database, audit_log_path: Path) -> None:
        self._database = database
        self._audit_log_path = Path(audit_log_path)

    def inventory(self) -> List[Dict[str, object]]:
        return [
            {
                "name": medication.name,
                "initial_stock": medication.initial_stock,
                "current_stock": medication.current_stock,
                "low_stock_level_alert": medication.low_stock_level_alert,
                "price": round(medication.price, 2),
                "low_stock": medication.is_low_stock,
            }
            for medication in sorted(self._database.medications.all(), key=lambda item: item.name)
        ]

    def replenish_requests(self, status: ReplenishStatus | None = None) -> List[Dict[str, object]]:
        requests_ = sorted(self._database.replenish_requests, key=lambda item: item.request_id)
        return [
            {
                "request_id": item.request_id,
                "staff_id": item.staff_id,
                "medication_id": item.medication_id,
                "amount": item.amount,
                "status": item.status.value,
                "request_date": item.request_date.isoformat(),
            }
            for item in requests_
            if status is None or item.status is status
        ]

    def upcoming_appointments(self, now: datetime | None = None) -> List[Dict[str, object]]:
        now = now or datetime.now()
        upcoming = sorted(
            (
                appointment
                for appointment in self._database.appointments
                if appointment.status.is_active and appointment.date_time > now
            ),
            key=lambda appointment: (appointment.date_time, appointment.appointment_id),
        )
        return [
            {
                "appointment_id": appointment.appointment_id,
                "doctor_id": appointment.doctor_id,
                "patient_id": appointment.patient_id,
                "date_time": appointment.date_time.strftime(DATETIME_FORMAT),
                "status": appointment.status.value,
            }
            for appointment in upcoming
        ]

    def unpaid_bills(self) -> List[Dict[str, object]]:
        return [
            {
                "appointment_id": outcome.appointment_id,
                "service_type": outcome.service_type,
                "total_amount": f"{outcome.total_amount:.2f}",
            }
            for outcome in sorted(self._database.outcomes.unpaid(), key=lambda item: item.appointment_id)
        ]

    def audit_entries(self) -> List[MutableMapping[str, object]]:
        if not self._audit_log_path.exists():
            return []
        try:
            with self._audit_log_path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (json.JSONDecodeError, OSError) as exc:
            LOGGER.warning("Audit log %s could not be read: %s", self._audit_log_path, exc)
            return []
        if isinstance(payload, list):
            return [item for item in payload if isinstance(item, MutableMapping)]
        return []


def _parse_status(value: str | None) -> ReplenishStatus | None:
    if not value:
        return None
    try:
        return ReplenishStatus[value.strip().upper()]
    except KeyError:
        return None


dashboard_template = """
<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\">
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">
    <meta http-equiv=\"refresh\" content=\"60\">
    <title>Hospital Operations Dashboard</title>
    <link
      href=\"https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css\"
      rel=\"stylesheet\"
      integrity=\"sha384-QWTKZyjpPEjISv5WaRU9OFeRpok6YctnYmDr5pNlyT2bRjXh0JMhjY6hW+ALEwIH\"
      crossorigin=\"anonymous\"
    >
  </head>
  <body class=\"bg-light\">
    <nav class=\"navbar navbar-expand-lg navbar-dark bg-primary\">
      <div class=\"container-fluid\">
        <a class=\"navbar-brand\" href=\"/dashboard\">Hospital Operations Dashboard</a>
      </div>
    </nav>
    <main class=\"container my-4\">
      <section class=\"row g-4\">
        <div class=\"col-lg-6\">
          <div class=\"card shadow-sm h-100\">
            <div class=\"card-header bg-success text-white\">Medication Inventory</div>
            <div class=\"card-body\">
              {% if inventory %}
                <table class=\"table table-sm table-striped\">
                  <thead>
                    <tr><th>Name</th><th>Stock</th><th>Alert</th><th>Price</th></tr>
                  </thead>
                  <tbody>
                    {% for item in inventory %}
                      <tr class=\"{{ 'table-danger' if item.low_stock else '' }}\">
                        <td>{{ item.name }}</td>
                        <td>{{ item.current_stock }}</td>
                        <td>{{ item.low_stock_level_alert }}</td>
                        <td>{{ '%.2f'|format(item.price) }}</td>
                      </tr>
                    {% endfor %}
                  </tbody>
                </table>
              {% else %}
                <p class=\"text-muted mb-0\">No medications in inventory.</p>
              {% endif %}
            </div>
          </div>
        </div>
        <div class=\"col-lg-6\">
          <div class=\"card shadow-sm h-100\">
            <div class=\"card-header bg-warning text-dark\">Pending Replenish Requests</div>
            <div class=\"card-body\">
              {% if pending_requests %}
                <table class=\"table table-sm table-striped\">
                  <thead>
                    <tr><th>#</th><th>Medication</th><th>Amount</th><th>Requested By</th><th>Date</th></tr>
                  </thead>
                  <tbody>
                    {% for item in pending_requests %}
                      <tr>
                        <td>{{ item.request_id }}</td>
                        <td>{{ item.medication_id }}</td>
                        <td>{{ item.amount }}</td>
                        <td>{{ item.staff_id }}</td>
                        <td>{{ item.request_date }}</td>
                      </tr>
                    {% endfor %}
                  </tbody>
                </table>
              {% else %}
                <p class=\"text-muted mb-0\">No requests awaiting approval.</p>
              {% endif %}
            </div>
          </div>
        </div>
        <div class=\"col-lg-6\">
          <div class=\"card shadow-sm h-100\">
            <div class=\"card-header bg-info text-white\">Upcoming Appointments</div>
            <div class=\"card-body\">
              {% if appointments %}
                <table class=\"table table-sm table-striped\">
                  <thead>
                    <tr><th>#</th><th>Date</th><th>Doctor</th><th>Patient</th><th>Status</th></tr>
                  </thead>
                  <tbody>
                    {% for item in appointments %}
                      <tr>
                        <td>{{ item.appointment_id }}</td>
                        <td>{{ item.date_time }}</td>
                        <td>{{ item.doctor_id }}</td>
                        <td>{{ item.patient_id }}</td>
                        <td>{{ item.status }}</td>
                      </tr>
                    {% endfor %}
                  </tbody>
                </table>
              {% else %}
                <p class=\"text-muted mb-0\">No upcoming appointments.</p>
              {% endif %}
            </div>
          </div>
        </div>
        <div class=\"col-lg-6\">
          <div class=\"card shadow-sm h-100\">
            <div class=\"card-header bg-danger text-white\">Unpaid Bills</div>
            <div class=\"card-body\">
              {% if unpaid_bills %}
                <table class=\"table table-sm table-striped\">
                  <thead>
                    <tr><th>Appointment</th><th>Service</th><th>Total</th></tr>
                  </thead>
                  <tbody>
                    {% for item in unpaid_bills %}
                      <tr>
                        <td>{{ item.appointment_id }}</td>
                        <td>{{ item.service_type }}</td>
                        <td>{{ item.total_amount }}</td>
                      </tr>
                    {% endfor %}
                  </tbody>
                </table>
              {% else %}
                <p class=\"text-muted mb-0\">All bills are settled.</p>
              {% endif %}
            </div>
          </div>
        </div>
      </section>
      <section class=\"mt-5\">
        <div class=\"card shadow-sm\">
          <div class=\"card-header bg-secondary text-white\">Audit Log</div>
          <div class=\"card-body\">
            {% if logs %}
              <table class=\"table table-sm table-striped\">
                <thead>
                  <tr><th>Completed</th><th>Task</th><th>User</th><th>Status</th><th>Message</th></tr>
                </thead>
                <tbody>
                  {% for log in logs %}
                    <tr>
                      <td>{{ log.completed_at or '-' }}</td>
                      <td>{{ log.task or '-' }}</td>
                      <td>{{ log.user or '-' }}</td>
                      <td>{{ log.status or '-' }}</td>
                      <td>{{ log.message or '-' }}</td>
                    </tr>
                  {% endfor %}
                </tbody>
              </table>
            {% else %}
              <p class=\"text-muted mb-0\">No audit log entries available.</p>
            {% endif %}
          </div>
        </div>
      </section>
    </main>
  </body>
</html>
"""


def create_app(database: Database, audit_log_path: Path) -> Flask:
    app = Flask(__name__)
    repository = DashboardRepository(database, audit_log_path)

    @app.route("/dashboard", methods=["GET"])
    def dashboard() -> str:
        return render_template_string(
            dashboard_template,
            inventory=repository.inventory(),
            pending_requests=repository.replenish_requests(ReplenishStatus.PENDING),
            appointments=repository.upcoming_appointments(),
            unpaid_bills=repository.unpaid_bills(),
            logs=list(reversed(repository.audit_entries())),
        )

    @app.route("/api/inventory", methods=["GET"])
    def inventory() -> Response:
        items = repository.inventory()
        if request.args.get("low_stock", "").lower() in {"1", "true", "yes"}:
            items = [item for item in items if item["low_stock"]]
        return jsonify(items)

    @app.route("/api/replenish-requests", methods=["GET"])
    def replenish_requests() -> Response:
        return jsonify(repository.replenish_requests(_parse_status(request.args.get("status"))))

    @app.route("/audit", methods=["GET"])
    def audit() -> Response:
        return jsonify(repository.audit_entries())

    return app


if __name__ == "__main__":
    settings = Settings.from_env()
    create_app(Database.open(settings.data_dir), settings.audit_log_path).run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "5000")),
        debug=False,
    )
