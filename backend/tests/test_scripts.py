import importlib.util
from pathlib import Path

from sqlalchemy import inspect
from sqlmodel import Session

import run_migrations
from fittrack import models
from fittrack.database import make_engine
from fittrack.repositories import UserRepository

SCRIPTS = Path(__file__).resolve().parents[1] / "scripts"


def _load_script(name):
    spec = importlib.util.spec_from_file_location(name, SCRIPTS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _file_stores(monkeypatch, tmp_path):
    relational = f"sqlite:///{tmp_path / 'rel.db'}"
    documents = f"sqlite:///{tmp_path / 'docs.db'}"
    monkeypatch.setenv('RELATIONAL_DB_URL', relational)
    monkeypatch.setenv('DOCUMENT_DB_URL', documents)
    return relational, documents


def test_run_migrations_creates_each_store(monkeypatch, tmp_path, capsys):
    relational, documents = _file_stores(monkeypatch, tmp_path)
    run_migrations.run()
    assert 'Tables ready.' in capsys.readouterr().out

    rel_tables = set(inspect(make_engine(relational)).get_table_names())
    doc_tables = set(inspect(make_engine(documents)).get_table_names())
    assert {'users', 'workouts', 'exercises', 'additional_exercises',
            'workout_plans', 'workout_plan_exercises'} <= rel_tables
    assert doc_tables == {'exercise_log', 'diet_plans'}


def test_promote_admin(monkeypatch, tmp_path):
    relational, _ = _file_stores(monkeypatch, tmp_path)
    run_migrations.run()
    engine = make_engine(relational)
    with Session(engine) as session:
        UserRepository(session).create(models.User(username='sam', email='sam@example.com', password_hash='x'))

    promote_admin = _load_script('promote_admin')
    assert promote_admin.main('sam@example.com') == 0
    with Session(engine) as session:
        assert UserRepository(session).get_by_username('sam').is_admin is True

    assert promote_admin.main('sam', revoke=True) == 0
    with Session(engine) as session:
        assert UserRepository(session).get_by_username('sam').is_admin is False

    assert promote_admin.main('ghost') == 1
    engine.dispose()
