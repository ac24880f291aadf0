from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import Optional
from uuid import uuid4

from .activity import JsonlActivityLog
from .config import get_settings
from .cost import format_currency
from .csv_io import read_import_file
from .errors import ConfirmationRequired, OvertimeError
from .filters import OvertimeFilters
from .hours import format_hours, interval_for_day
from .logging import configure_logging
from .models import Actor, Attachment, OvertimeDraft, OvertimeStatus, Role
from .session import OvertimeSession
from .store import EMPLOYEES, JsonFileRecordStore
from .workflow import BatchResult, OvertimeWorkflow

DEFAULT_DATA_PATH = Path("data/overtime.json")


def store_from_args(args: argparse.Namespace) -> JsonFileRecordStore:
    return JsonFileRecordStore(DEFAULT_DATA_PATH)


def parse_date(value: str) -> date:
    return date.fromisoformat(value)


def filters_from_args(args: argparse.Namespace) -> OvertimeFilters:
    start = getattr(args, "from_date", None)
    end = getattr(args, "to_date", None)
    if start or end or getattr(args, "all_dates", False):
        filters = OvertimeFilters(start=start, end=end)
    else:
        filters = OvertimeFilters.for_month(date.today())
    statuses = getattr(args, "filter_status", None)
    if statuses:
        filters.statuses = frozenset(OvertimeStatus.normalize(s) for s in statuses)
    filters.manager = getattr(args, "filter_manager", None)
    filters.cost_center = getattr(args, "filter_cost_center", None)
    filters.employee = getattr(args, "filter_employee", None)
    return filters


def workflow_from_args(args: argparse.Namespace) -> OvertimeWorkflow:
    actor = Actor(uid=args.uid or "", email=args.email or "", role=Role.parse(args.role))
    session = OvertimeSession(store_from_args(args), actor, filters=filters_from_args(args)).refresh()
    activity = JsonlActivityLog(DEFAULT_DATA_PATH.parent / "activity_log.jsonl")
    return OvertimeWorkflow.from_settings(session, get_settings(), activity=activity)


def draft_from_args(args: argparse.Namespace, base: Optional[OvertimeDraft] = None) -> OvertimeDraft:
    day = args.date or (base.date if base else None)
    start = args.start or (f"{base.start:%H:%M}" if base else None)
    end = args.end or (f"{base.end:%H:%M}" if base else None)
    if day is None or start is None or end is None:
        raise OvertimeError("--date, --start and --end are required")
    start_at, end_at = interval_for_day(day, start, end, allow_overnight=True)

    def pick(name: str, fallback):
        value = getattr(args, name, None)
        return fallback if value is None else value

    return OvertimeDraft(
        for_uid=pick("for_uid", base.for_uid if base else ""),
        date=day,
        start=start_at,
        end=end_at,
        reason=pick("reason", base.reason if base else ""),
        break_minutes=pick("break_minutes", base.break_minutes if base else 0),
        extra100=(args.type == "100") if args.type else (base.extra100 if base else False),
        night=pick("night", base.night if base else False),
        cost_center=pick("cost_center", base.cost_center if base else ""),
        manager_uid=pick("manager_uid", base.manager_uid if base else None),
        for_email=base.for_email if base else None,
    )


def print_batch(result: BatchResult, verb: str) -> int:
    print(f"{verb} {len(result.succeeded)} of {len(result.items)} request(s)")
    for item in result.failed:
        print(f"  failed {item.id}: {item.error}")
    return 0 if result.ok else 1


def cmd_list(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    directory = workflow.session.directory
    for record in workflow.session.visible():
        print(
            f"{record.id} {record.date} {record.start:%H:%M}-{record.end:%H:%M} "
            f"{format_hours(record.hours_calc.total)} {record.status.value} {directory.display_name(record)}"
        )
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    request = workflow.create(draft_from_args(args), confirmed=args.yes)
    print(f"Created overtime request {request.id} ({format_hours(request.hours_calc.total)})")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    current = workflow.session.get(args.id)
    base = OvertimeDraft(
        for_uid=current.for_uid,
        date=current.date,
        start=current.start,
        end=current.end,
        reason=current.reason,
        break_minutes=current.break_minutes,
        extra100=current.flags.extra100,
        night=current.flags.night,
        cost_center=current.cost_center,
        manager_uid=current.manager_uid or None,
        for_email=current.for_email,
    )
    request = workflow.update(args.id, draft_from_args(args, base), confirmed=args.yes)
    print(f"Updated overtime request {request.id} ({format_hours(request.hours_calc.total)})")
    return 0


def cmd_decide(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    current = workflow.session.get(args.id)
    start = end = None
    if args.start or args.end:
        start, end = interval_for_day(
            current.date,
            args.start or f"{current.start:%H:%M}",
            args.end or f"{current.end:%H:%M}",
            allow_overnight=True,
        )
    request = workflow.decide(
        args.id,
        approve=args.decision != "reject",
        adjust_only=args.decision == "adjust",
        notes=args.notes,
        start=start,
        end=end,
        break_minutes=args.break_minutes,
    )
    print(f"Request {request.id} is now {request.status.label}")
    return 0


def parse_attachment(value: str) -> Attachment:
    name, sep, url = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError("attachments are given as NAME=URL")
    return Attachment(name=name, url=url)


def cmd_execute(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    request = workflow.execute(args.id, hours_real=args.hours, notes=args.notes or "", attachments=args.attachment)
    print(f"Request {request.id} executed ({format_hours(request.executed.hours_real)})")
    return 0


def cmd_ack(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    request = workflow.acknowledge(args.id)
    print(f"Acknowledged request {request.id}")
    return 0


def cmd_payroll(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    result = workflow.send_to_payroll(args.ids or None, args.month)
    return print_batch(result, "Sent to payroll")


def cmd_mass_approve(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    return print_batch(workflow.mass_approve(args.ids, args.notes), "Approved")


def cmd_mass_adjust(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    return print_batch(workflow.mass_adjust(args.ids, args.factor, args.reason), "Adjusted")


def cmd_export(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    path = Path(args.path)
    content = workflow.export_csv(args.ids or None)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    print(f"Exported overtime to {path}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    rows = read_import_file(Path(args.path))
    return print_batch(workflow.import_rows(rows), "Imported")


def cmd_authorization(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    path = Path(args.path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(workflow.authorization_pdf(args.id))
    print(f"Wrote authorization for {args.id} to {path}")
    return 0


def cmd_dashboard(args: argparse.Namespace) -> int:
    workflow = workflow_from_args(args)
    dashboard = workflow.dashboard()
    kpis = dashboard.kpis
    print(f"Pending: {kpis.pending}")
    print(f"Approved hours: {format_hours(kpis.hours)}")
    if kpis.cost is not None:
        print(f"Estimated cost: {format_currency(kpis.cost)}")
    print("Top employees:")
    for name, hours in dashboard.top.employees:
        print(f"  {name} {format_hours(hours)}")
    print("Top cost centers:")
    for center, hours in dashboard.top.cost_centers:
        print(f"  {center} {format_hours(hours)}")
    return 0


def cmd_employees(args: argparse.Namespace) -> int:
    store = store_from_args(args)
    session = OvertimeSession(store, Actor(uid="")).refresh()
    for employee in sorted(session.directory, key=lambda e: e.name.lower()):
        print(f"{employee.uid} {employee.name} <{employee.email}> role={employee.role.value} cc={employee.cost_center or '—'}")
    return 0


def cmd_add_employee(args: argparse.Namespace) -> int:
    store = store_from_args(args)
    uid = args.uid_value or uuid4().hex
    store.create(
        EMPLOYEES,
        {
            "uid": uid,
            "name": args.name,
            "email": args.employee_email or "",
            "managerUid": args.manager or "",
            "costCenter": args.cost_center or "",
            "role": Role.parse(args.employee_role).value,
            "salary": args.salary,
        },
    )
    print(f"Added employee {uid} ({args.name})")
    return 0


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="from_date", type=parse_date, help="First date (defaults to this month)")
    parser.add_argument("--to", dest="to_date", type=parse_date)
    parser.add_argument("--all-dates", action="store_true", help="Do not restrict to the current month")
    parser.add_argument("--status", dest="filter_status", action="append", help="Repeat to select several statuses")
    parser.add_argument("--manager", dest="filter_manager")
    parser.add_argument("--cost-center", dest="filter_cost_center")
    parser.add_argument("--employee", dest="filter_employee", help="Name or email substring")


def add_draft_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument("--for-uid", required=required)
    parser.add_argument("--date", type=parse_date, required=required)
    parser.add_argument("--start", required=required, help="HH:MM")
    parser.add_argument("--end", required=required, help="HH:MM; earlier than start means the next day")
    parser.add_argument("--break", dest="break_minutes", type=int)
    parser.add_argument("--type", choices=["50", "100"])
    parser.add_argument("--night", action="store_true", default=None)
    parser.add_argument("--cost-center")
    parser.add_argument("--manager-uid")
    parser.add_argument("--reason", required=required)
    parser.add_argument("--yes", action="store_true", help="Confirm soft warnings")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Overtime requests and payroll handoff CLI")
    parser.add_argument("--uid", default="", help="Acting user id")
    parser.add_argument("--email", default="", help="Acting user email")
    parser.add_argument("--role", default="ADM", help="ADM, RH, Gestor or Colaborador")
    sub = parser.add_subparsers(dest="command", required=True)

    listing = sub.add_parser("list", help="List visible overtime requests")
    add_filter_arguments(listing)
    listing.set_defaults(func=cmd_list)

    create = sub.add_parser("create", help="Create an overtime request")
    add_draft_arguments(create, required=True)
    create.set_defaults(func=cmd_create)

    update = sub.add_parser("update", help="Edit a pending overtime request")
    update.add_argument("id")
    add_draft_arguments(update, required=False)
    update.set_defaults(func=cmd_update)

    decide = sub.add_parser("decide", help="Approve, reject or adjust a pending request")
    decide.add_argument("id")
    decision = decide.add_mutually_exclusive_group(required=True)
    decision.add_argument("--approve", dest="decision", action="store_const", const="approve")
    decision.add_argument("--reject", dest="decision", action="store_const", const="reject")
    decision.add_argument("--adjust", dest="decision", action="store_const", const="adjust")
    decide.add_argument("--notes", required=True)
    decide.add_argument("--start", help="HH:MM")
    decide.add_argument("--end", help="HH:MM")
    decide.add_argument("--break", dest="break_minutes", type=int)
    decide.set_defaults(func=cmd_decide)

    execute = sub.add_parser("execute", help="Record the hours actually worked")
    execute.add_argument("id")
    execute.add_argument("--hours", type=float, help="Defaults to the approved hours")
    execute.add_argument("--notes")
    execute.add_argument("--attachment", type=parse_attachment, action="append", default=[], help="NAME=URL")
    execute.set_defaults(func=cmd_execute)

    ack = sub.add_parser("ack", help="Acknowledge an executed request as the employee")
    ack.add_argument("id")
    ack.set_defaults(func=cmd_ack)

    payroll = sub.add_parser("payroll", help="Send executed requests to payroll")
    payroll.add_argument("ids", nargs="*", help="Defaults to every executed request in the filtered view")
    payroll.add_argument("--month", help="YYYY-MM; defaults to the month of the filter start")
    add_filter_arguments(payroll)
    payroll.set_defaults(func=cmd_payroll)

    mass_approve = sub.add_parser("mass-approve", help="Approve several pending requests")
    mass_approve.add_argument("ids", nargs="+")
    mass_approve.add_argument("--notes", required=True)
    mass_approve.set_defaults(func=cmd_mass_approve)

    mass_adjust = sub.add_parser("mass-adjust", help="Reduce the hours of several requests")
    mass_adjust.add_argument("ids", nargs="+")
    mass_adjust.add_argument("--factor", type=float, required=True, help="0.1 reduces by 10%%")
    mass_adjust.add_argument("--reason", required=True)
    mass_adjust.set_defaults(func=cmd_mass_adjust)

    export = sub.add_parser("export", help="Export requests to a semicolon CSV")
    export.add_argument("path")
    export.add_argument("ids", nargs="*")
    add_filter_arguments(export)
    export.set_defaults(func=cmd_export)

    imp = sub.add_parser("import", help="Import requests from a semicolon CSV")
    imp.add_argument("path")
    imp.set_defaults(func=cmd_import)

    authorization = sub.add_parser("authorization", help="Render the authorization PDF of a request")
    authorization.add_argument("id")
    authorization.add_argument("path")
    authorization.set_defaults(func=cmd_authorization)

    dashboard = sub.add_parser("dashboard", help="Show KPIs and rankings")
    add_filter_arguments(dashboard)
    dashboard.set_defaults(func=cmd_dashboard)

    employees = sub.add_parser("employees", help="List employees")
    employees.set_defaults(func=cmd_employees)

    employee = sub.add_parser("add-employee", help="Add an employee")
    employee.add_argument("name")
    employee.add_argument("--id", dest="uid_value")
    employee.add_argument("--email", dest="employee_email")
    employee.add_argument("--manager")
    employee.add_argument("--cost-center")
    employee.add_argument("--role", dest="employee_role", default="Colaborador")
    employee.add_argument("--salary", type=float, default=0.0)
    employee.set_defaults(func=cmd_add_employee)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(get_settings().log_level, stream=sys.stderr, json_logs=False)
    try:
        return args.func(args)
    except ConfirmationRequired as exc:
        for warning in exc.warnings:
            print(f"Warning: {warning.message}", file=sys.stderr)
        print("Re-run with --yes to confirm", file=sys.stderr)
        return 2
    except OvertimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
