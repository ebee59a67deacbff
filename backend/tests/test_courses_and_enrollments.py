def test_faculty_creates_course_and_is_enrolled(client, course):
    data, headers = course
    mine = client.get('/courses', headers=headers).json()
    assert data["id"] in [c["id"] for c in mine]
    assert client.get('/users/current/courses', headers=headers).json()[0]["id"] == data["id"]


def test_course_lookup_by_id_or_code(client, course):
    data, headers = course
    by_id = client.get(f'/courses/{data["id"]}', headers=headers)
    by_code = client.get(f'/courses/{data["code"]}', headers=headers)
    assert by_id.status_code == 200
    assert by_code.status_code == 200
    assert by_id.json() == by_code.json()
    assert client.get('/courses/NOPE999', headers=headers).status_code == 404


def test_students_cannot_create_courses(client, make_user):
    _, headers = make_user("STUDENT")
    r = client.post('/courses', json={"code": "X1", "name": "X"}, headers=headers)
    assert r.status_code == 403


def test_duplicate_course_code_conflicts(client, course):
    data, headers = course
    r = client.post('/courses', json={"code": data["code"], "name": "Again"}, headers=headers)
    assert r.status_code == 409


def test_update_and_delete_course(client, course):
    data, headers = course
    r = client.put(f'/courses/{data["code"]}', json={"name": "Renamed"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert client.delete(f'/courses/{data["id"]}', headers=headers).status_code == 200
    assert client.get(f'/courses/{data["id"]}', headers=headers).status_code == 404


def test_student_enrolls_self_and_unenrolls(client, course, make_user):
    data, faculty = course
    student, headers = make_user("STUDENT")
    r = client.post(f'/users/current/courses/{data["code"]}', headers=headers)
    assert r.status_code == 200
    again = client.post(f'/users/current/courses/{data["id"]}', headers=headers)
    assert again.json()["id"] == r.json()["id"]

    members = client.get(f'/courses/{data["id"]}/users', headers=faculty).json()
    assert student["id"] in [u["id"] for u in members]
    assert [c["id"] for c in client.get('/courses', headers=headers).json()] == [data["id"]]

    gone = client.delete(f'/users/{student["id"]}/courses/{data["id"]}', headers=headers)
    assert gone.json() == {"status": "ok", "removed": True}
    assert client.get('/users/current/courses', headers=headers).json() == []


def test_students_cannot_enroll_others(client, course, make_user):
    data, _ = course
    _, headers = make_user("STUDENT")
    other, _ = make_user("STUDENT")
    r = client.post(f'/users/{other["id"]}/courses/{data["id"]}', headers=headers)
    assert r.status_code == 403


def test_faculty_enrolls_students(client, course, make_user):
    data, faculty = course
    student, headers = make_user("STUDENT")
    r = client.post(f'/users/{student["id"]}/courses/{data["id"]}', headers=faculty)
    assert r.status_code == 200
    assert [c["id"] for c in client.get(f'/users/{student["id"]}/courses', headers=faculty).json()] == [data["id"]]


def test_admin_sees_every_course(client, course, admin_headers):
    data, _ = course
    ids = [c["id"] for c in client.get('/courses', headers=admin_headers).json()]
    assert data["id"] in ids


def test_modules_crud(client, course):
    data, headers = course
    r = client.post(f'/courses/{data["code"]}/modules', json={"name": "Week 1"}, headers=headers)
    assert r.status_code == 200
    module = r.json()
    assert module["course_id"] == data["id"]
    r2 = client.put(f'/modules/{module["id"]}', json={"name": "Week 1: HTML", "description": "intro"}, headers=headers)
    assert r2.json()["name"] == "Week 1: HTML"
    listed = client.get(f'/courses/{data["id"]}/modules', headers=headers).json()
    assert [m["id"] for m in listed] == [module["id"]]
    assert client.delete(f'/modules/{module["id"]}', headers=headers).status_code == 200
    assert client.get(f'/courses/{data["id"]}/modules', headers=headers).json() == []


def test_null_in_partial_course_update(client, course):
    data, headers = course
    r = client.put(f'/courses/{data["id"]}', json={"name": None}, headers=headers)
    assert r.status_code == 400
    assert client.get(f'/courses/{data["id"]}', headers=headers).json()["name"] == data["name"]
    r2 = client.put(f'/courses/{data["id"]}', json={"department": None}, headers=headers)
    assert r2.status_code == 200


def test_numeric_course_codes_rejected(client, course):
    data, headers = course
    assert client.post('/courses', json={"code": "4550", "name": "Numbers"}, headers=headers).status_code == 422
    assert client.put(f'/courses/{data["id"]}', json={"code": " 12 "}, headers=headers).status_code == 422
    r = client.post('/courses', json={"code": f'{data["code"]}4550', "name": "Mixed"}, headers=headers)
    assert r.status_code == 200
    assert client.get(f'/courses/{r.json()["code"]}', headers=headers).json()["id"] == r.json()["id"]
