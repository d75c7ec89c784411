from typing import Optional, Dict, Any
from fastapi.testclient import TestClient

def api_call(client: TestClient, method: str, path: str, headers: Optional[Dict[str, str]] = None, json: Optional[Dict[str, Any]] = None, expected_min: int = 200, expected_max: int = 300):
    response = client.request(method, path, headers=headers, json=json)
    ok = expected_min <= response.status_code < expected_max
    try:
        body = response.json()
    except ValueError:
        body = response.text
    assert ok, f"{method} {path} => {response.status_code}, body={body}, json={json}"
    return response

def api_data(client: TestClient, method: str, path: str, headers: Optional[Dict[str, str]] = None, json: Optional[Dict[str, Any]] = None):
    return api_call(client, method, path, headers=headers, json=json).json()["data"]

def assert_error(response, status_code: int, code: str, action: Optional[str] = None) -> Dict[str, Any]:
    assert response.status_code == status_code, f"expected {status_code}, got {response.status_code}: {response.text}"
    body = response.json()
    error = body["error"]
    assert error["code"] == code, f"expected {code}, got {error}"
    if action is not None:
        assert error["action"] == action, f"expected action {action}, got {error}"
    return error
