from fastapi.testclient import TestClient
from tests.helpers.asserts import api_call, assert_error

EXAM_PAYLOAD = {
    "title": "JSS1 Mathematics",
    "description": "End of term assessment",
    "duration_minutes": 30,
    "passing_score": 50.0,
    "questions": [
        {"question_text": "15 + 27?", "question_type": "short_answer", "correct_answer": "42", "points": 2},
        {
            "question_text": "Capital of Nigeria?",
            "question_type": "multiple_choice",
            "options": {"A": "Lagos", "B": "Abuja"},
            "correct_answer": "B",
        },
        {"question_text": "The sun is a star.", "question_type": "true_false", "correct_answer": "True"},
    ],
}

class TestExamEndpoints:
    def test_create_exam(self, client: TestClient, instructor_headers: dict):
        response = api_call(client, "POST", "/exams/", headers=instructor_headers, json=EXAM_PAYLOAD)
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["title"] == "JSS1 Mathematics"
        assert [q["position"] for q in data["questions"]] == [0, 1, 2]
        assert data["questions"][1]["correct_answer"] == "B"

    def test_get_exam(self, client: TestClient, instructor_headers: dict):
        created = api_call(client, "POST", "/exams/", headers=instructor_headers, json=EXAM_PAYLOAD).json()["data"]
        response = api_call(client, "GET", f"/exams/{created['id']}", headers=instructor_headers)
        assert response.json()["data"]["id"] == created["id"]

    def test_create_exam_rejects_malformed_answer_key(self, client: TestClient, instructor_headers: dict):
        payload = dict(EXAM_PAYLOAD)
        payload["questions"] = [
            {"question_text": "Pick one", "question_type": "multiple_choice", "options": {"A": "x"}, "correct_answer": "C"}
        ]
        response = client.post("/exams/", headers=instructor_headers, json=payload)
        error = assert_error(response, 400, "INVALID_QUESTION", action="fix_request")
        assert error["details"] == {"question_index": 0}

    def test_students_cannot_create_exams(self, client: TestClient, student_headers: dict):
        response = client.post("/exams/", headers=student_headers, json=EXAM_PAYLOAD)
        assert_error(response, 403, "FORBIDDEN", action="none")

    def test_exams_are_private_to_their_author(self, client: TestClient, other_instructor_headers: dict, exam):
        response = client.get(f"/exams/{exam.id}", headers=other_instructor_headers)
        assert_error(response, 403, "FORBIDDEN")

    def test_missing_exam_is_not_found(self, client: TestClient, instructor_headers: dict):
        response = client.get("/exams/9999", headers=instructor_headers)
        assert_error(response, 404, "NOT_FOUND", action="none")

    def test_invalid_token_is_rejected(self, client: TestClient):
        response = client.get("/exams/1", headers={"Authorization": "Bearer not-a-token"})
        assert_error(response, 401, "UNAUTHORIZED")
