#!/usr/bin/env python3
"""Migration script to remove duplicate clinical record numbers.

Databases created before record numbers became unique can hold several
patients sharing one clinical record number. For every such number this
script keeps it on the oldest patient (earliest created_at, then lowest id)
and clears it from the others, then adds the unique index so the
duplicates cannot come back.

Usage:
    python migrations/fix_duplicate_record_numbers.py [--db-path PATH] [--dry-run]
"""

import sys
from pathlib import Path

# Add src to path so we can import carebill modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlalchemy import func, inspect, text
from carebill.database.factories import create_sqlite_database
from carebill.database.models import Patient

UNIQUE_INDEX = "uq_patients_clinical_record_number"


def find_duplicates(session) -> dict[str, list[Patient]]:
    """Group patients by record numbers that appear more than once.

    Args:
        session: SQLAlchemy session

    Returns:
        Record number -> patients holding it, oldest first
    """
    numbers = (
        session.query(Patient.clinical_record_number)
        .filter(Patient.clinical_record_number.isnot(None), Patient.clinical_record_number != "")
        .group_by(Patient.clinical_record_number)
        .having(func.count(Patient.id) > 1)
        .all()
    )
    duplicates = {}
    for (number,) in numbers:
        duplicates[number] = (
            session.query(Patient)
            .filter(Patient.clinical_record_number == number)
            .order_by(Patient.created_at, Patient.id)
            .all()
        )
    return duplicates


def has_unique_constraint(engine) -> bool:
    inspector = inspect(engine)
    for constraint in inspector.get_unique_constraints("patients"):
        if constraint["column_names"] == ["clinical_record_number"]:
            return True
    for index in inspector.get_indexes("patients"):
        if index["unique"] and index["column_names"] == ["clinical_record_number"]:
            return True
    return False


def migrate_database(database_path: str | None = None, dry_run: bool = False) -> int:
    """Clear duplicate record numbers, keeping each on its oldest patient.

    Args:
        database_path: Path to database file. If None, uses default location.
        dry_run: Report what would change without writing

    Returns:
        Number of patients whose record number was cleared
    """
    db = create_sqlite_database(database_path=database_path)
    db.connect()

    try:
        session = db.session_factory()
        try:
            engine = session.bind
            if "patients" not in inspect(engine).get_table_names():
                raise Exception("Table 'patients' does not exist. Please initialize the database schema first.")

            duplicates = find_duplicates(session)
            if not duplicates:
                print("No duplicate clinical record numbers found")
            cleared = 0
            for number, patients in duplicates.items():
                keeper, others = patients[0], patients[1:]
                print(f"  Record #{number}: keeping on '{keeper.name}' (ID {keeper.id})")
                for patient in others:
                    print(f"    clearing from '{patient.name}' (ID {patient.id})")
                    if not dry_run:
                        patient.clinical_record_number = None
                    cleared += 1

            if dry_run:
                session.rollback()
                print(f"Dry run: {cleared} record number(s) would be cleared")
                return cleared
            session.commit()
        finally:
            session.close()

        if not has_unique_constraint(engine):
            with engine.begin() as conn:
                conn.execute(
                    text(f"CREATE UNIQUE INDEX IF NOT EXISTS {UNIQUE_INDEX} ON patients (clinical_record_number)")
                )
            print(f"  Added unique index: {UNIQUE_INDEX}")

        print(f"Migration completed successfully! Cleared {cleared} record number(s).")
        return cleared

    except Exception as e:
        print(f"Migration failed: {e}")
        raise
    finally:
        db.disconnect()


def main():
    """Main entry point for migration script."""
    import argparse

    parser = argparse.ArgumentParser(description="Remove duplicate clinical record numbers")
    parser.add_argument(
        "--db-path",
        type=str,
        help="Path to database file (overrides CAREBILL_DB_PATH environment variable)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Only report the duplicates")
    args = parser.parse_args()

    try:
        migrate_database(database_path=args.db_path, dry_run=args.dry_run)
        return 0
    except Exception as e:
        print(f"\nMigration failed: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
