from roundtable.features.newsletters.service import create_newsletter
from roundtable.features.questions.service import add_question
from roundtable.workers import weekly_assignments as worker


def test_run_assigns_and_exits_cleanly(db, make_user):
    make_user("alice")
    nid = create_newsletter(db, "alice", "Club", "d", "p")
    add_question(db, nid, "Q1", "alice")

    assert worker.run(db, nid) == 0


def test_run_reports_failure(db, monkeypatch):
    monkeypatch.setattr(worker, "assign_weekly_questions", lambda *a, **kw: None)
    assert worker.run(db) == 1


def test_main_uses_configured_database(tmp_path, monkeypatch):
    monkeypatch.setattr(worker.settings, "TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'worker.db'}")
    assert worker.main([]) == 0
    assert (tmp_path / "worker.db").exists()
