from bookon import seed
from bookon.models.activity import Activity
from bookon.models.booking import Booking
from bookon.models.user import User


def test_seed_is_idempotent(session_factory, db):
    seed.run(session_factory())
    seed.run(session_factory())

    assert {u.role for u in db.query(User).all()} == {"admin", "staff", "parent"}
    assert db.query(Activity).count() == 2
    assert db.query(Booking).count() == 2
    course = db.query(Activity).filter(Activity.name == "Holiday Football Course").one()
    assert course.is_course
