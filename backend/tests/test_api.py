from app.config import settings


def register_and_login(client, username, role="student"):
    r = client.post('/auth/register', json={'username': username, 'password': 'pass123', 'role': role})
    assert r.status_code == 200
    user_id = r.json()['id']
    login = client.post('/auth/login', json={'username': username, 'password': 'pass123'})
    assert login.status_code == 200
    return user_id, {'Authorization': f"Bearer {login.json()['access_token']}"}


def publish(client, headers, subject='math', points_reward=50):
    r = client.post('/activities', headers=headers, json={
        'title': 'Fractions',
        'subject': subject,
        'points_reward': points_reward,
        'content': {
            'activity_type': 'multiple_choice',
            'questions': [{'prompt': '1/2 + 1/2?', 'choices': ['1', '2'], 'correct_index': 0}],
        },
    })
    assert r.status_code == 200
    return r.json()['id']


def answer(activity_id, score, max_score, **extra):
    body = {'activity_id': activity_id, 'score': score, 'max_score': max_score,
            'answers': {'activity_type': 'multiple_choice', 'selections': [0]}}
    body.update(extra)
    return body


def test_register_is_idempotent_and_login_rejects_bad_password(client):
    first = client.post('/auth/register', json={'username': 'same', 'password': 'pw'})
    second = client.post('/auth/register', json={'username': 'same', 'password': 'other'})
    assert first.json()['id'] == second.json()['id']
    assert first.json()['role'] == 'student'
    bad = client.post('/auth/login', json={'username': 'same', 'password': 'wrong'})
    assert bad.status_code == 401


def test_submit_and_read_progress_flow(client):
    _, teacher_headers = register_and_login(client, 'teacher1', role='teacher')
    student_id, headers = register_and_login(client, 'student1')
    activity_id = publish(client, teacher_headers)

    r = client.post('/quiz-results', json=answer(activity_id, 25, 50, time_taken=30), headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body['points_earned'] == 25
    assert body['duplicate'] is False
    assert body['progress']['points'] == 25
    assert body['progress']['activities_completed'] == 1
    assert body['progress']['badges'] == ['first_activity']
    assert body['progress']['current_level'] == 1
    assert [a['name'] for a in body['new_achievements']] == ['first_activity:math']

    all_progress = client.get(f'/students/{student_id}/progress', headers=headers)
    assert all_progress.status_code == 200
    assert [p['subject'] for p in all_progress.json()] == ['math']

    one = client.get(f'/students/{student_id}/progress/math', headers=headers)
    assert one.status_code == 200
    assert one.json()['points'] == 25

    missing = client.get(f'/students/{student_id}/progress/history', headers=headers)
    assert missing.status_code == 404

    achievements = client.get(f'/students/{student_id}/achievements', headers=teacher_headers)
    assert achievements.status_code == 200
    assert [a['type'] for a in achievements.json()] == ['first_activity']


def test_invalid_submissions(client):
    _, teacher_headers = register_and_login(client, 'teacher2', role='teacher')
    student_id, headers = register_and_login(client, 'student2')
    activity_id = publish(client, teacher_headers)

    r = client.post('/quiz-results', json=answer(activity_id, 6, 5), headers=headers)
    assert r.status_code == 400
    r = client.post('/quiz-results', json=answer(activity_id, 10**20, 10**20), headers=headers)
    assert r.status_code == 422
    r = client.post('/quiz-results', json=answer(999, 1, 1), headers=headers)
    assert r.status_code == 404
    r = client.post('/quiz-results', json=answer(activity_id, 1, 1, answers={'activity_type': 'matching'}),
                    headers=headers)
    assert r.status_code == 400
    # teachers cannot submit quiz results
    r = client.post('/quiz-results', json=answer(activity_id, 1, 1), headers=teacher_headers)
    assert r.status_code == 404
    # no token
    r = client.post('/quiz-results', json=answer(activity_id, 1, 1))
    assert r.status_code in (401, 403)

    progress = client.get(f'/students/{student_id}/progress', headers=headers)
    assert progress.json() == []


def test_submission_id_replay(client):
    _, teacher_headers = register_and_login(client, 'teacher3', role='teacher')
    _, headers = register_and_login(client, 'student3')
    activity_id = publish(client, teacher_headers, points_reward=10)
    first = client.post('/quiz-results', json=answer(activity_id, 1, 1, submission_id='abc'), headers=headers)
    replay = client.post('/quiz-results', json=answer(activity_id, 1, 1, submission_id='abc'), headers=headers)
    assert first.json()['duplicate'] is False
    assert replay.json()['duplicate'] is True
    assert replay.json()['progress']['activities_completed'] == 1
    assert replay.json()['new_achievements'] == []


def test_students_cannot_read_each_other(client):
    a_id, a_headers = register_and_login(client, 'alpha')
    b_id, _ = register_and_login(client, 'beta')
    r = client.get(f'/students/{b_id}/progress', headers=a_headers)
    assert r.status_code == 403
    r = client.get(f'/students/{a_id}/progress', headers=a_headers)
    assert r.status_code == 200


def test_only_teachers_publish_activities(client):
    _, headers = register_and_login(client, 'sneaky')
    r = client.post('/activities', headers=headers, json={
        'title': 'x', 'subject': 'math', 'points_reward': 1,
        'content': {'activity_type': 'short_answer', 'prompts': ['?']},
    })
    assert r.status_code == 403


def test_class_analytics_endpoint(client):
    teacher_id, teacher_headers = register_and_login(client, 'teacher4', role='teacher')
    other_teacher_id, other_headers = register_and_login(client, 'teacher5', role='teacher')
    student_id, headers = register_and_login(client, 'student4')
    activity_id = publish(client, teacher_headers, points_reward=100)
    client.post('/quiz-results', json=answer(activity_id, 1, 1), headers=headers)

    c = client.post('/classes', json={'name': 'Period 1'}, headers=teacher_headers)
    assert c.status_code == 200
    class_id = c.json()['id']
    e = client.post(f'/classes/{class_id}/students', json={'student_id': student_id}, headers=teacher_headers)
    assert e.status_code == 200
    # another teacher cannot enroll into this class
    e2 = client.post(f'/classes/{class_id}/students', json={'student_id': student_id}, headers=other_headers)
    assert e2.status_code == 403

    r = client.get(f'/teachers/{teacher_id}/analytics', headers=teacher_headers)
    assert r.status_code == 200
    data = r.json()
    assert data['partial'] is False
    assert data['classes'][0]['average_points'] == 100
    assert data['classes'][0]['average_level'] == 2

    forbidden = client.get(f'/teachers/{teacher_id}/analytics', headers=other_headers)
    assert forbidden.status_code == 403
    student_view = client.get(f'/teachers/{teacher_id}/analytics', headers=headers)
    assert student_view.status_code == 403


def test_submit_rate_limit(client, monkeypatch):
    monkeypatch.setattr(settings, 'SUBMIT_RATE_LIMIT_PER_MIN', 1)
    _, teacher_headers = register_and_login(client, 'teacher6', role='teacher')
    _, headers = register_and_login(client, 'student6')
    activity_id = publish(client, teacher_headers)
    first = client.post('/quiz-results', json=answer(activity_id, 1, 1), headers=headers)
    assert first.status_code == 200
    second = client.post('/quiz-results', json=answer(activity_id, 1, 1), headers=headers)
    assert second.status_code == 429
    assert 'Retry-After' in second.headers


def test_stats_and_health(client):
    r = client.get('/health')
    assert r.status_code == 200
    assert 'X-Request-ID' in r.headers
    echoed = client.get('/health', headers={'X-Request-ID': 'req-1'})
    assert echoed.headers['X-Request-ID'] == 'req-1'
    stats = client.get('/ledger/stats')
    assert stats.status_code == 200
    assert set(['submissions', 'retries', 'conflicts', 'failures']).issubset(stats.json())
