import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, OperationalError

from fittrack import documents, models


@pytest.fixture
def failing_write():
    """Attach a mapper listener that raises `error`.

    Returns a callable that detaches it early; anything left attached is
    removed after the test.
    """
    installed = []

    def _install(model, event_name, error):
        def listener(mapper, connection, target):
            raise error
        event.listen(model, event_name, listener)
        entry = (model, event_name, listener)
        installed.append(entry)

        def detach():
            installed.remove(entry)
            event.remove(*entry)
        return detach

    yield _install
    for entry in installed:
        event.remove(*entry)


def _locked():
    return OperationalError("INSERT", {}, Exception("database is locked"))


EXERCISE = {
    'exercise_name': 'Squat', 'sets': 5, 'reps': 5,
    'workout_type': 'Strength', 'exercise_date': '2024-03-01',
}


def test_exercise_log_write_failure_is_a_json_500(client, auth_headers, failing_write):
    failing_write(documents.ExerciseEntry, "before_insert", _locked())
    r = client.post('/api/exercises', headers=auth_headers, json=EXERCISE)
    assert r.status_code == 500
    assert r.headers['content-type'].startswith('application/json')
    assert r.json() == {'error': 'Internal server error'}


def test_reset_request_failure_is_a_json_500(client, signup, failing_write):
    signup('sam')
    failing_write(models.User, "before_update", _locked())
    r = client.post('/api/auth/request-reset', json={'email': 'sam@example.com'})
    assert r.status_code == 500
    assert r.json() == {'error': 'Internal server error'}


def test_diet_plan_save_failure_is_a_json_500(client, auth_headers, failing_write):
    failing_write(documents.DietPlan, "before_insert", _locked())
    r = client.post('/api/diet-plans/save', headers=auth_headers, json={
        'date': '2024-06-01', 'meals': [{'meal_time': 'Lunch', 'items': ['Rice']}],
    })
    assert r.status_code == 500
    assert r.json() == {'error': 'Internal server error'}


def test_store_recovers_after_a_failed_write(client, auth_headers, failing_write):
    detach = failing_write(documents.ExerciseEntry, "before_insert", _locked())
    assert client.post('/api/exercises', headers=auth_headers, json=EXERCISE).status_code == 500
    detach()

    assert client.post('/api/exercises', headers=auth_headers, json=EXERCISE).status_code == 201
    assert len(client.get('/api/exercises', headers=auth_headers).json()['exercises']) == 1


def test_profile_unique_violation_is_a_conflict(client, auth_headers, failing_write):
    # the pre-check passes, then the database rejects the row
    failing_write(models.User, "before_update",
                  IntegrityError("UPDATE users", {}, Exception("UNIQUE constraint failed: users.email")))
    r = client.patch('/api/profile', headers=auth_headers,
                     json={'email': 'fresh@example.com', 'username': 'fresh'})
    assert r.status_code == 409
    assert r.json() == {'error': 'Email already in use'}
