from unittest.mock import MagicMock

import pytest
from botocore.exceptions import NoCredentialsError

from instance_orchestrator.app.errors import UpstreamEmptyResponseError
from instance_orchestrator.app.schemas import PromptRequest, ProvisioningRequest
from instance_orchestrator.tests.fakes import FakeEc2Backend, FakeModelBackend, make_service


def test_service_runs_full_lifecycle():
    backend = FakeEc2Backend(launch_states=["pending", "pending", "running"])
    service = make_service(backend=backend)

    created = service.create_and_wait(ProvisioningRequest(name="web-1"), 60, 5)
    state = service.describe(created.instance_id)
    terminated = service.terminate(created.instance_id, wait=True)

    assert created.state == "running"
    assert state.state == "running"
    assert terminated.previous_state == "running"
    assert terminated.final_state == "terminated"


def test_complete_prompt_uses_configured_defaults():
    model_backend = FakeModelBackend(text="pong")
    service = make_service(model_backend=model_backend, openai_model="gpt-test", max_completion_tokens=512)

    response = service.complete_prompt(PromptRequest(prompt="ping", system="reply briefly", temperature=0.3))

    call = model_backend.calls[0]
    assert call["model"] == "gpt-test"
    assert call["max_tokens"] == 512
    assert call["temperature"] == 1.0
    assert call["system"] == "reply briefly"
    assert response.content == "pong"
    assert response.model == "gpt-test"


def test_complete_prompt_with_empty_content_raises():
    service = make_service(model_backend=FakeModelBackend(text="", error="HTTP 500"))

    with pytest.raises(UpstreamEmptyResponseError) as excinfo:
        service.complete_prompt(PromptRequest(prompt="ping"))
    assert "HTTP 500" in str(excinfo.value)


def test_ping_reports_failure_without_raising():
    sts = MagicMock()
    sts.get_caller_identity.side_effect = NoCredentialsError()
    service = make_service(sts_client=sts)

    response = service.ping()

    assert response.status == "FAIL"
    assert response.account is None
    assert "NoCredentialsError" in response.error
