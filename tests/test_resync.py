import pytest
from sqlalchemy import select

from coachspace.core import errors
from coachspace.db import models
from coachspace.workers.scheduler import resync_participant_counters


def corrupt_counter(db_session, class_id, value):
    fitness_class = db_session.get(models.FitnessClass, class_id)
    db_session.refresh(fitness_class)
    fitness_class.current_participants = value
    db_session.commit()


def counter(session_factory, class_id):
    with session_factory() as db:
        return db.get(models.FitnessClass, class_id).current_participants


def test_resync_repairs_drifted_counters(manager, make_class, db_session, session_factory):
    drifted = make_class(capacity=3, name="Drifted")
    healthy = make_class(capacity=3, name="Healthy")
    manager.create_booking(drifted.id, "u1")
    manager.create_booking(drifted.id, "u2")
    manager.create_booking(healthy.id, "u1")
    corrupt_counter(db_session, drifted.id, 0)

    assert manager.resync_counters() == 1

    assert counter(session_factory, drifted.id) == 2
    assert counter(session_factory, healthy.id) == 1
    with session_factory() as db:
        repairs = db.execute(
            select(models.AuditLog).where(
                models.AuditLog.action == "participant_counter_repaired"
            )
        ).scalars().all()
    assert len(repairs) == 1
    assert repairs[0].actor_type == models.ActorType.system
    assert repairs[0].payload == {"class_id": drifted.id, "cached": 0, "confirmed": 2}


def test_resync_single_class(manager, make_class, db_session, session_factory):
    fitness_class = make_class(capacity=2)
    manager.create_booking(fitness_class.id, "u1")
    corrupt_counter(db_session, fitness_class.id, 2)

    assert manager.resync_counters(fitness_class.id) == 1
    assert counter(session_factory, fitness_class.id) == 1
    assert manager.resync_counters(fitness_class.id) == 0


def test_resync_unknown_class(manager):
    with pytest.raises(errors.ClassNotFound):
        manager.resync_counters("missing")


def test_scheduled_resync_job(manager, make_class, db_session, caplog):
    fitness_class = make_class(capacity=2)
    manager.create_booking(fitness_class.id, "u1")
    corrupt_counter(db_session, fitness_class.id, 0)

    assert resync_participant_counters(manager) == 1
    assert "Repaired participant counters" in caplog.text
    assert resync_participant_counters(manager) == 0
