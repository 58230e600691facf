from __future__ import annotations

from hms_core.db import init_db
from hms_core.models import Bed, Clinician, Ward


def test_seed_is_idempotent(engine, session_factory, capsys) -> None:
    init_db.run(eng=engine)
    init_db.run(eng=engine)

    with session_factory() as db:
        assert db.query(Ward).count() == len(init_db.WARDS)
        assert db.query(Bed).count() == sum(w[4] for w in init_db.WARDS)
        assert db.query(Clinician).count() == len(init_db.CLINICIANS)
        icu = db.query(Ward).filter(Ward.code == "ICU").one()
        assert int(icu.rate_per_day) == 950
        assert db.query(Bed).filter(Bed.code == "CRD-08").one().ward_code == "CRD"

    out = capsys.readouterr().out
    assert "Seeded 6 ward(s)" in out
    assert "Seeded 0 ward(s)" in out
