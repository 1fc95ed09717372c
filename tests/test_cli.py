"""Tests for the command line interface."""

import json

import pytest
from carebill.cli.main import cli


def invoke(cli_runner, temp_db, *args):
    return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args])


@pytest.fixture
def extracted_file(tmp_path):
    path = tmp_path / "extracted.json"
    path.write_text(
        json.dumps(
            [
                {
                    "company": "Acme Home Health",
                    "employee_name": "Jane Doe",
                    "employee_title": "PTA",
                    "patient_name": "Mary Major",
                    "clinical_record_number": "CR-1001",
                    "visits": [
                        {"date": "02/03/2025", "time_in": "9:00 AM", "time_out": "10:00 AM", "visit_code": "P"},
                        {"date": "02/10/2025", "time_in": "1:00 PM", "time_out": "1:45 PM", "visit_code": "WC"},
                    ],
                    "confidence": 0.95,
                },
                {
                    "company": "Acme Home Health",
                    "employee_name": "Jane Doe",
                    "patient_name": "Peter Minor",
                    "visits": [{"date": "02/04/2025", "time_in": "9:00", "time_out": "9:30"}],
                    "confidence": 0.4,
                },
            ]
        )
    )
    return path


def test_help_does_not_need_database(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "invoice" in result.output


def test_agency_create_with_rates(cli_runner, temp_db):
    result = invoke(
        cli_runner, temp_db, "agency", "create", "Acme Home Health", "--rate", "P=85", "--rate", "WC=$110"
    )
    assert result.exit_code == 0
    assert "Created agency 'Acme Home Health'" in result.output
    assert "ID:" in result.output

    result = invoke(cli_runner, temp_db, "agency", "list")
    assert result.exit_code == 0
    assert "P=$85.00, WC=$110.00" in result.output


def test_agency_create_duplicate(cli_runner, temp_db):
    invoke(cli_runner, temp_db, "agency", "create", "Acme Home Health")
    result = invoke(cli_runner, temp_db, "agency", "create", "ACME home health")
    assert result.exit_code == 1
    assert "already exists" in result.output.lower()


def test_agency_create_bad_rate(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "agency", "create", "Acme Home Health", "--rate", "P")
    assert result.exit_code == 1
    assert "expected CODE=AMOUNT" in result.output


def test_agency_rate_by_name(cli_runner, temp_db, sample_agency):
    result = invoke(cli_runner, temp_db, "agency", "rate", "acme home health", "EVAL", "150")
    assert result.exit_code == 0
    assert "rate for 'EVAL' to $150.00" in result.output


def test_agency_rate_unknown_agency(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "agency", "rate", "Nobody", "P", "80")
    assert result.exit_code == 1
    assert "Agency 'Nobody' not found" in result.output


def test_agency_list_empty(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "agency", "list")
    assert result.exit_code == 0
    assert "No agencies found" in result.output


def test_clinician_and_patient_commands(cli_runner, temp_db, sample_agency):
    result = invoke(
        cli_runner, temp_db, "clinician", "create", "Jane Doe", "--title", "PTA", "--pay-rate", "40",
        "--agency", "Acme Home Health",
    )
    assert result.exit_code == 0
    result = invoke(cli_runner, temp_db, "clinician", "list")
    assert "$40.00/hr" in result.output

    result = invoke(cli_runner, temp_db, "patient", "create", "Mary Major", "--record-number", "CR-1001")
    assert result.exit_code == 0
    result = invoke(cli_runner, temp_db, "patient", "create", "Other Person", "--record-number", "CR-1001")
    assert result.exit_code == 1
    assert "already assigned to patient 'Mary Major'" in result.output


def test_init_codes(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "init-codes")
    assert result.exit_code == 0
    assert "Successfully created" in result.output

    result = invoke(cli_runner, temp_db, "init-codes")
    assert "already exist" in result.output

    result = invoke(cli_runner, temp_db, "codes")
    assert "RE-EVAL" in result.output


def test_period_create_and_close(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "period", "create", "--start-date", "2025-02-01", "--end-date", "2025-02-14")
    assert result.exit_code == 0
    assert "02-01-2025 to 02-14-2025" in result.output

    result = invoke(cli_runner, temp_db, "period", "close", "1", "--open-next")
    assert result.exit_code == 0
    assert "Opened billing period '02-15-2025 to 02-28-2025'" in result.output

    result = invoke(cli_runner, temp_db, "period", "close", "1")
    assert result.exit_code == 1


def test_period_resolve(cli_runner, temp_db):
    invoke(cli_runner, temp_db, "settings", "set", "billing_cycle_start", "2024-12-22")
    result = invoke(cli_runner, temp_db, "period", "resolve", "2025-01-05")
    assert result.exit_code == 0
    assert "01-05-2025 to 01-18-2025" in result.output


def test_import_generate_and_pay(cli_runner, temp_db, extracted_file):
    invoke(cli_runner, temp_db, "agency", "create", "Acme Home Health", "--rate", "P=85", "--rate", "WC=110")
    invoke(cli_runner, temp_db, "clinician", "create", "Jane Doe", "--title", "PTA", "--pay-rate", "40")
    invoke(cli_runner, temp_db, "period", "create", "--start-date", "2025-02-01", "--end-date", "2025-02-14")

    result = invoke(cli_runner, temp_db, "timesheet", "import", str(extracted_file), "--period", "1")
    assert result.exit_code == 0
    assert "Imported 2 timesheet(s)" in result.output
    assert "Low OCR confidence: 40%" in result.output

    result = invoke(cli_runner, temp_db, "invoice", "preview", "--period", "1")
    assert result.exit_code == 0
    assert "Acme Home Health: 2 visit(s), $195.00" in result.output

    result = invoke(cli_runner, temp_db, "invoice", "generate", "--period", "1")
    assert result.exit_code == 0
    assert "Created 1 invoice(s)" in result.output
    assert "INV-" in result.output

    result = invoke(cli_runner, temp_db, "invoice", "generate", "--period", "1")
    assert "No invoices created" in result.output
    assert "already invoiced" in result.output

    result = invoke(cli_runner, temp_db, "invoice", "pay", "1")
    assert result.exit_code == 1
    assert "from 'draft' to 'paid'" in result.output

    assert invoke(cli_runner, temp_db, "invoice", "send", "1").exit_code == 0
    result = invoke(cli_runner, temp_db, "invoice", "pay", "1", "--date", "2025-03-01")
    assert result.exit_code == 0
    assert "marked paid ($195.00)" in result.output

    result = invoke(cli_runner, temp_db, "invoice", "show", "1")
    assert "Mary Major" in result.output
    assert "Total:       $    195.00" in result.output

    result = invoke(cli_runner, temp_db, "payroll", "summary", "--period", "1")
    assert result.exit_code == 0
    assert "Jane Doe" in result.output
    assert "$70.00" in result.output


def test_timesheet_import_invalid_json(cli_runner, temp_db, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    result = invoke(cli_runner, temp_db, "timesheet", "import", str(path))
    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_timesheet_import_reports_bad_record(cli_runner, temp_db, tmp_path, sample_period):
    path = tmp_path / "batch.json"
    path.write_text(json.dumps([{"employee_name": "Jane Doe", "visits": []}, {"visits": 12}]))
    result = invoke(cli_runner, temp_db, "timesheet", "import", str(path), "--period", str(sample_period.id))
    assert result.exit_code == 0
    assert "Imported 1 timesheet(s)" in result.output
    assert "Failed: 1" in result.output
    assert "Record 2: Invalid timesheet record: visits" in result.output


def test_invoice_adjust_credit(cli_runner, temp_db, sample_invoice):
    result = invoke(cli_runner, temp_db, "invoice", "adjust", str(sample_invoice.id), "(20.50)")
    assert result.exit_code == 0
    assert "total is now $174.50" in result.output


def test_invoice_delete_requires_force(cli_runner, temp_db, invoice_service, sample_invoice):
    invoice_service.mark_sent(sample_invoice.id)
    result = invoke(cli_runner, temp_db, "invoice", "delete", str(sample_invoice.id))
    assert result.exit_code == 1
    assert "requires force" in result.output

    result = invoke(cli_runner, temp_db, "invoice", "delete", str(sample_invoice.id), "--force")
    assert result.exit_code == 0
    assert "released 1 timesheet(s)" in result.output


def test_payroll_generate_adjust_and_pay(cli_runner, temp_db, sample_timesheet, sample_period):
    result = invoke(cli_runner, temp_db, "payroll", "generate", "--period", str(sample_period.id))
    assert result.exit_code == 0
    assert "Created 1 payment(s)" in result.output

    result = invoke(cli_runner, temp_db, "payroll", "adjust", "1", "50", "--type", "bonus")
    assert "total is now $120.00" in result.output

    result = invoke(cli_runner, temp_db, "payroll", "pay", "1", "--method", "zelle", "--date", "2025-02-20")
    assert result.exit_code == 0
    assert "marked paid on 2025-02-20" in result.output

    result = invoke(cli_runner, temp_db, "payroll", "delete", "1")
    assert result.exit_code == 1
    assert "cannot delete a paid record" in result.output


def test_settings_show_and_set(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "settings", "set", "default_billing_rate", "80")
    assert result.exit_code == 0
    assert "Set default_billing_rate = 80" in result.output

    result = invoke(cli_runner, temp_db, "settings", "set", "billing_cycle_length_days", "0")
    assert result.exit_code == 1

    result = invoke(cli_runner, temp_db, "settings", "show")
    assert "default_billing_rate" in result.output


def test_settings_set_unknown_key(cli_runner, temp_db):
    result = invoke(cli_runner, temp_db, "settings", "set", "favourite_colour", "blue")
    assert result.exit_code == 2


def test_cycle_check(cli_runner, temp_db, sample_timesheet, sample_period):
    invoke(cli_runner, temp_db, "settings", "set", "auto_generate_invoices", "true")
    result = invoke(cli_runner, temp_db, "cycle-check")
    assert result.exit_code == 0
    assert f"{sample_period.label}: created 1 invoice(s)" in result.output
    assert "Marked 0 invoice(s) overdue" in result.output
