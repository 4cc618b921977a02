import pytest
from fastapi.testclient import TestClient

from instance_orchestrator.app.main import app, get_service
from instance_orchestrator.tests.fakes import FakeEc2Backend, FakeModelBackend, make_service


@pytest.fixture
def backend():
    return FakeEc2Backend(launch_states=["pending", "running"])


@pytest.fixture
def client(backend):
    service = make_service(backend=backend, model_backend=FakeModelBackend(text='{"name": "web-1"}'))
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_returns_camel_case_body(client, backend):
    response = client.post("/api/v1/ec2", json={"name": "web-1", "instanceType": "t3.small"})

    assert response.status_code == 201
    body = response.json()
    assert body["instanceId"].startswith("i-")
    assert body["instanceType"] == "t3.small"
    assert body["state"] == "pending"
    assert backend.run_calls[0]["InstanceType"] == "t3.small"


def test_create_and_wait_returns_running_instance(client):
    response = client.post("/api/v1/ec2/wait-running?timeoutSeconds=30&pollSeconds=2", json={"name": "web-1"})

    assert response.status_code == 201
    body = response.json()
    assert body["state"] == "running"
    assert body["publicDnsName"]
    assert body["nameTag"] == "web-1"


def test_malformed_ami_is_rejected_by_validation(client, backend):
    response = client.post("/api/v1/ec2", json={"amiId": "not-an-ami"})

    assert response.status_code == 422
    assert backend.run_calls == []


def test_unsupported_instance_type_is_bad_request(client):
    response = client.post("/api/v1/ec2", json={"instanceType": "t9.gigantic"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_argument"


def test_unknown_instance_is_404(client):
    response = client.get("/api/v1/ec2/i-0missing/state")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_wait_running_timeout_is_408(client, backend):
    backend.add_instance("i-0slow", ["pending"])

    response = client.get("/api/v1/ec2/i-0slow/wait-running?timeoutSeconds=10&pollSeconds=5")

    assert response.status_code == 408
    assert response.json()["details"]["lastState"] == "pending"


def test_wait_running_rejects_small_timeout(client):
    response = client.get("/api/v1/ec2/i-0abc/wait-running?timeoutSeconds=0")

    assert response.status_code == 422


def test_terminate_without_and_with_wait(client, backend):
    backend.add_instance("i-0abc", ["running"])

    first = client.delete("/api/v1/ec2/i-0abc")
    assert first.status_code == 200
    assert first.json()["previousState"] == "running"
    assert first.json()["currentState"] == "shutting-down"
    assert first.json()["finalState"] is None

    second = client.delete("/api/v1/ec2/i-0abc?wait=true&timeoutSeconds=30&pollSeconds=1")
    assert second.status_code == 200
    assert second.json()["finalState"] == "terminated"


def test_prompt_passthrough(client):
    response = client.post("/api/v1/openai/prompt", json={"prompt": "hello", "maxTokens": 64})

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == '{"name": "web-1"}'
    assert body["totalTokens"] == 46


def test_blank_prompt_is_rejected(client):
    response = client.post("/api/v1/openai/prompt", json={"prompt": "   "})

    assert response.status_code == 422


def test_aws_controller_provisions_from_prompt(client, backend):
    response = client.post("/api/v1/openai/aws-controller", json={"prompt": "a small web box"})

    assert response.status_code == 201
    assert response.json()["state"] == "running"
    assert backend.run_calls[0]["KeyName"] == "AWS-SAA-C003-RSA"


def test_aws_controller_malformed_output_is_422(backend):
    service = make_service(backend=backend, model_backend=FakeModelBackend(text="Sure! Here is your JSON"))
    app.dependency_overrides[get_service] = lambda: service
    try:
        response = TestClient(app).post("/api/v1/openai/aws-controller", json={"prompt": "web"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
    assert response.json()["error"] == "malformed_model_output"
    assert backend.run_calls == []


def test_aws_controller_empty_output_is_502(backend):
    service = make_service(backend=backend, model_backend=FakeModelBackend(text=""))
    app.dependency_overrides[get_service] = lambda: service
    try:
        response = TestClient(app).post("/api/v1/openai/aws-controller", json={"prompt": "web"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_empty_response"


def test_aws_ping_reports_identity(client):
    response = client.get("/api/v1/aws/ping")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["account"] == "123456789012"
    assert body["region"] == "us-east-1"
