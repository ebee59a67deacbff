def test_register_login_and_profile(client, make_user):
    user, headers = make_user("STUDENT", first_name="Ada", last_name="Lovelace")
    assert user["role"] == "STUDENT"
    assert "password_hash" not in user
    r = client.get('/auth/profile', headers=headers)
    assert r.status_code == 200
    assert r.json()["username"] == user["username"]


def test_duplicate_username_rejected(client, make_user):
    user, _ = make_user()
    r = client.post('/auth/register', json={"username": user["username"], "password": "x"})
    assert r.status_code == 400
    assert "taken" in r.json()["detail"]


def test_admin_cannot_self_register(client):
    r = client.post('/auth/register', json={"username": "wannabe_admin", "password": "x", "role": "ADMIN"})
    assert r.status_code == 403


def test_bad_credentials_and_tokens(client, make_user):
    user, _ = make_user()
    r = client.post('/auth/login', json={"username": user["username"], "password": "wrong"})
    assert r.status_code == 401
    r2 = client.get('/auth/profile', headers={"Authorization": "Bearer invalid.token.here"})
    assert r2.status_code == 401
    r3 = client.get('/auth/profile')
    assert r3.status_code in (401, 403)


def test_request_id_header_exists(client):
    r = client.get('/health')
    assert r.status_code == 200
    assert "X-Request-ID" in r.headers
    r2 = client.get('/health', headers={"X-Request-ID": "abc123"})
    assert r2.headers["X-Request-ID"] == "abc123"


def test_users_listing_requires_staff(client, make_user):
    _, student = make_user("STUDENT")
    assert client.get('/users', headers=student).status_code == 403


def test_users_filtered_by_role_and_name(client, make_user):
    marker = "Zephyrine"
    ta, _ = make_user("TA", first_name=marker)
    _, faculty = make_user("FACULTY")
    r = client.get('/users', params={"role": "TA", "name": marker.lower()}, headers=faculty)
    assert r.status_code == 200
    assert [u["id"] for u in r.json()] == [ta["id"]]
    everyone = client.get('/users', params={"role": "ALL"}, headers=faculty).json()
    assert any(u["id"] == ta["id"] for u in everyone)


def test_users_update_themselves_but_not_others(client, make_user):
    me, headers = make_user()
    other, _ = make_user()
    r = client.put(f'/users/{me["id"]}', json={"first_name": "New"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["first_name"] == "New"
    assert client.put(f'/users/{other["id"]}', json={"first_name": "X"}, headers=headers).status_code == 403
    # role changes are admin only
    assert client.put(f'/users/{me["id"]}', json={"role": "FACULTY"}, headers=headers).status_code == 403


def test_password_change_takes_effect(client, make_user):
    me, headers = make_user()
    client.put(f'/users/{me["id"]}', json={"password": "newpass"}, headers=headers)
    r = client.post('/auth/login', json={"username": me["username"], "password": "newpass"})
    assert r.status_code == 200


def test_admin_can_promote_and_delete(client, make_user, admin_headers):
    user, headers = make_user()
    r = client.put(f'/users/{user["id"]}', json={"role": "FACULTY"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["role"] == "FACULTY"
    assert client.delete(f'/users/{user["id"]}', headers=headers).status_code == 403
    assert client.delete(f'/users/{user["id"]}', headers=admin_headers).status_code == 200
    assert client.get(f'/users/{user["id"]}', headers=admin_headers).status_code == 404
    # the deleted user's token no longer authenticates
    assert client.get('/auth/profile', headers=headers).status_code == 401


def test_null_in_partial_user_update(client, make_user, admin_headers):
    me, headers = make_user()
    assert client.put(f'/users/{me["id"]}', json={"email": None}, headers=headers).status_code == 200
    r = client.put(f'/users/{me["id"]}', json={"role": None}, headers=admin_headers)
    assert r.status_code == 400
    assert client.get('/auth/profile', headers=headers).json()["role"] == "STUDENT"


def test_course_authors_cannot_be_deleted(client, course, admin_headers):
    data, faculty = course
    author = client.get('/auth/profile', headers=faculty).json()
    assert client.delete(f'/users/{author["id"]}', headers=admin_headers).status_code == 409
    assert client.get(f'/users/{author["id"]}', headers=admin_headers).status_code == 200

    assert client.delete(f'/courses/{data["id"]}', headers=faculty).status_code == 200
    assert client.delete(f'/users/{author["id"]}', headers=admin_headers).status_code == 200
