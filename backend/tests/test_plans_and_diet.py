import json
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from fittrack.config import settings
from fittrack.main import app
from fittrack.utils.diet_ai import DietPlanGenerator
from fittrack.utils.rate_limit import InMemoryRateLimiter


MEALS = [
    {'meal_time': 'Breakfast', 'items': ['Oats', 'Banana']},
    {'meal_time': 'Lunch', 'items': ['Chicken', 'Rice']},
]


def _reply(content):
    return httpx.Response(200, json={'choices': [{'message': {'content': content}}]})


@pytest.fixture
def diet_model():
    """Route diet-model calls to queued fake replies.

    Each queued item is either an `httpx.Response` or an exception to raise.
    """
    replies = []
    calls = []
    sleeps = []

    def handler(request):
        calls.append(json.loads(request.content))
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    previous = app.state.diet_generator
    app.state.diet_generator = DietPlanGenerator(
        settings, client=httpx.Client(transport=httpx.MockTransport(handler)), sleep=sleeps.append,
    )
    yield replies, calls, sleeps
    app.state.diet_generator.close()
    app.state.diet_generator = previous


# ---- workout plans ----

def test_save_and_list_plans(client, auth_headers):
    body = {
        'workout_type': 'Push',
        'target_muscle': 'Chest',
        'plan': [
            {'exercise_name': 'Bench Press', 'sets': 4, 'reps': 8},
            {'exercise_name': 'Dips', 'sets': 3, 'reps': 12, 'notes': 'bodyweight'},
        ],
    }
    r = client.post('/api/plans', json=body, headers=auth_headers)
    assert r.status_code == 200
    meta = r.json()
    assert meta['workout_type'] == 'Push'
    assert meta['target_muscle'] == 'Chest'
    assert 'id' in meta and 'created_at' in meta

    second = dict(body, workout_type='Pull', plan=[{'exercise_name': 'Row', 'sets': 4, 'reps': 10}])
    client.post('/api/plans', json=second, headers=auth_headers)

    plans = client.get('/api/plans', headers=auth_headers).json()
    assert [p['workout_type'] for p in plans] == ['Pull', 'Push']
    push = plans[1]
    assert [e['exercise_name'] for e in push['plan']] == ['Bench Press', 'Dips']
    assert push['plan'][0]['notes'] == ''
    assert push['plan'][1]['notes'] == 'bodyweight'


def test_plan_requires_meta_and_lines(client, auth_headers):
    r = client.post('/api/plans', json={'workout_type': 'Push'}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {'error': 'Invalid plan data'}


def test_plans_are_private(client, auth_headers, signup):
    client.post('/api/plans', json={'workout_type': 'Push', 'target_muscle': 'Chest', 'plan': []},
                headers=auth_headers)
    other = {'Authorization': f"Bearer {signup('other')['token']}"}
    assert client.get('/api/plans', headers=other).json() == []


# ---- diet plans ----

def test_generate_diet_plan_cleans_model_output(client, auth_headers, diet_model):
    replies, calls, _ = diet_model
    replies.append(_reply(
        '```json\n{"date": "2024-06-01", "meals": [{"meal_time": "Breakfast", "items": ["Eggs",],},], '
        '"notes": “high protein”}\n```'
    ))
    r = client.post('/api/diet-plans', json={'prompt': 'high protein, no fish'}, headers=auth_headers)
    assert r.status_code == 200
    plan = r.json()['dietPlan']
    assert plan['date'] == '2024-06-01'
    assert plan['meals'] == [{'meal_time': 'Breakfast', 'items': ['Eggs']}]
    assert plan['notes'] == 'high protein'
    assert plan['prompt'] == 'high protein, no fish'

    sent = calls[0]
    assert sent['model'] == settings.DIET_AI_MODEL
    assert sent['messages'][-1] == {'role': 'user', 'content': 'high protein, no fish'}
    # previews are not stored
    assert client.get('/api/diet-plans/my', headers=auth_headers).json() == {'plans': []}


def test_generate_requires_prompt(client, auth_headers, diet_model):
    r = client.post('/api/diet-plans', json={'prompt': '   '}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {'error': 'Prompt is required'}


def test_unparseable_model_reply(client, auth_headers, diet_model):
    replies, _, _ = diet_model
    replies.append(_reply('Sure! Here is your plan: breakfast, lunch, dinner.'))
    r = client.post('/api/diet-plans', json={'prompt': 'vegan'}, headers=auth_headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'Failed to parse AI response'}


def test_model_timeouts_are_retried(client, auth_headers, diet_model):
    replies, calls, sleeps = diet_model
    replies.extend([
        httpx.ReadTimeout('slow'),
        httpx.ReadTimeout('slow'),
        _reply(json.dumps({'date': '2024-06-01', 'meals': MEALS, 'notes': ''})),
    ])
    r = client.post('/api/diet-plans', json={'prompt': 'bulk'}, headers=auth_headers)
    assert r.status_code == 200
    assert len(calls) == 3
    assert sleeps == [settings.DIET_AI_RETRY_DELAY_SECONDS] * 2


def test_model_gives_up_after_retries(client, auth_headers, diet_model):
    replies, calls, _ = diet_model
    replies.extend([httpx.ReadTimeout('slow')] * settings.DIET_AI_RETRIES)
    r = client.post('/api/diet-plans', json={'prompt': 'cut'}, headers=auth_headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'Failed to generate diet plan'}
    assert len(calls) == settings.DIET_AI_RETRIES


def test_model_http_errors_are_not_retried(client, auth_headers, diet_model):
    replies, calls, _ = diet_model
    replies.append(httpx.Response(503, json={'message': 'unavailable'}))
    r = client.post('/api/diet-plans', json={'prompt': 'cut'}, headers=auth_headers)
    assert r.status_code == 500
    assert len(calls) == 1


def test_generation_is_rate_limited_per_user(client, auth_headers, diet_model):
    replies, _, _ = diet_model
    replies.append(_reply(json.dumps({'date': '2024-06-01', 'meals': MEALS})))
    app.state.diet_rate_limiter = InMemoryRateLimiter(1, 900)

    assert client.post('/api/diet-plans', json={'prompt': 'a'}, headers=auth_headers).status_code == 200
    r = client.post('/api/diet-plans', json={'prompt': 'b'}, headers=auth_headers)
    assert r.status_code == 429
    assert r.json() == {'error': 'Too many requests, please try again later.'}
    assert int(r.headers['Retry-After']) >= 1


def test_save_list_and_delete_diet_plans(client, auth_headers, signup):
    r = client.post('/api/diet-plans/save', json={'date': '2024-06-01', 'meals': MEALS, 'prompt': 'bulk'},
                    headers=auth_headers)
    assert r.status_code == 201
    saved = r.json()['dietPlan']
    uuid.UUID(saved['id'])
    assert saved['meals'] == MEALS
    assert saved['notes'] == ''

    plans = client.get('/api/diet-plans/my', headers=auth_headers).json()['plans']
    assert [p['id'] for p in plans] == [saved['id']]

    r = client.delete('/api/diet-plans/123', headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {'error': 'Invalid plan ID'}

    other = {'Authorization': f"Bearer {signup('other')['token']}"}
    r = client.delete(f"/api/diet-plans/{saved['id']}", headers=other)
    assert r.status_code == 404
    assert r.json() == {'error': 'Diet plan not found or unauthorized'}

    r = client.delete(f"/api/diet-plans/{saved['id']}", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['message'] == 'Diet plan deleted successfully'
    assert body['deletedPlan']['id'] == saved['id']
    assert client.get('/api/diet-plans/my', headers=auth_headers).json() == {'plans': []}


def test_save_diet_plan_requires_date_and_meals(client, auth_headers):
    r = client.post('/api/diet-plans/save', json={'meals': MEALS}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {'error': 'Date and meals are required'}

    r = client.post('/api/diet-plans/save', json={'date': '2024-06-01', 'meals': []}, headers=auth_headers)
    assert r.status_code == 400


def test_model_content_parts_are_rejected(client, auth_headers, diet_model):
    replies, _, _ = diet_model
    replies.append(_reply([{'type': 'text', 'text': '{"meals": []}'}]))
    r = client.post('/api/diet-plans', json={'prompt': 'cut'}, headers=auth_headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'Failed to generate diet plan'}


def test_shutdown_closes_model_client_and_engines(db, diet_model):
    with TestClient(app) as c:
        assert c.get('/health').status_code == 200
        assert not app.state.diet_generator._client.is_closed
    assert app.state.diet_generator._client.is_closed
