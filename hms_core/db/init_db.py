# hms_core/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hms_core.db.base import Base
from hms_core.db.session import engine

# Import all models so metadata is complete
from hms_core.models import (  # noqa: F401
    Admission, Bed, Clinician, FollowUpTask, Invoice, InvoiceLineItem,
    Patient, Ward)

logger = logging.getLogger(__name__)

# code, name, label, rate per day, beds
WARDS = [
    ("GW", "General Ward", "General", 180, 20),
    ("ICU", "Intensive Care Unit", "Critical", 950, 8),
    ("PED", "Pediatrics", "Children", 220, 10),
    ("MAT", "Maternity", "Maternity", 310, 10),
    ("SRG", "Surgical Ward", "Post-op", 420, 12),
    ("CRD", "Cardiology", "Cardiac", 580, 8),
]

CLINICIANS = [
    ("Dr. Sarah Chen", "Cardiology"),
    ("Dr. James Okafor", "Internal Medicine"),
    ("Dr. Priya Raman", "Pediatrics"),
    ("Dr. Miguel Alvarez", "General Surgery"),
    ("Dr. Hannah Weiss", "Obstetrics"),
    ("Dr. Tomasz Nowak", "Critical Care"),
]


def print_tables(eng: Engine):
    names = sorted(inspect(eng).get_table_names())
    print("Existing tables:", names)
    return set(names)


def seed_wards(db: Session) -> int:
    """
    Seed ONLY missing wards and beds; safe to run multiple times.
    Bed codes are {ward}-{nn}.
    """
    created = 0
    for code, name, label, rate, bed_count in WARDS:
        ward = db.query(Ward).filter(Ward.code == code).first()
        if not ward:
            db.add(Ward(code=code, name=name, label=label, rate_per_day=rate))
            created += 1
        for n in range(1, bed_count + 1):
            bed_code = f"{code}-{n:02d}"
            exists = db.query(Bed.id).filter(Bed.code == bed_code).first()
            if not exists:
                db.add(Bed(code=bed_code, ward_code=code))
    return created


def seed_clinicians(db: Session) -> int:
    created = 0
    for name, specialty in CLINICIANS:
        exists = db.query(Clinician.id).filter(Clinician.name == name).first()
        if not exists:
            db.add(Clinician(name=name, specialty=specialty))
            created += 1
    return created


def run(fresh: bool = False, eng: Engine = engine) -> None:
    if fresh:
        print("WARNING: Dropping ALL tables (dev only) …")
        Base.metadata.drop_all(bind=eng)

    print("Creating all missing tables …")
    Base.metadata.create_all(bind=eng)
    print_tables(eng)

    try:
        with Session(eng) as db:
            wards = seed_wards(db)
            db.flush()
            doctors = seed_clinicians(db)
            db.commit()
            print(f"Seeded {wards} ward(s), {doctors} clinician(s).")
    except SQLAlchemyError as e:
        logger.exception("Seeding failed")
        print("Seeding failed:", e)
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, seed wards, beds, clinicians).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    run(fresh=args.fresh)
