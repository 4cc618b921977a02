import pytest

from instance_orchestrator.app.ami_resolver import AmiResolver
from instance_orchestrator.app.errors import UpstreamLookupError
from instance_orchestrator.tests.fakes import AL2_AMI, AL2023_AMI, FakeEc2Backend, make_settings


def test_resolves_al2023_by_default_parameter():
    backend = FakeEc2Backend()
    resolver = AmiResolver(make_settings(), backend)

    assert resolver.resolve(True) == AL2023_AMI
    assert backend.parameter_calls == [make_settings().al2023_ami_parameter]


def test_resolves_al2_when_requested():
    backend = FakeEc2Backend()
    resolver = AmiResolver(make_settings(), backend)

    assert resolver.resolve(False) == AL2_AMI


def test_override_is_returned_verbatim_without_lookup():
    backend = FakeEc2Backend()
    resolver = AmiResolver(make_settings(), backend)

    assert resolver.resolve(True, "ami-0123456789abcdef0") == "ami-0123456789abcdef0"
    assert backend.parameter_calls == []


def test_blank_override_falls_back_to_lookup():
    backend = FakeEc2Backend()
    resolver = AmiResolver(make_settings(), backend)

    assert resolver.resolve(True, "   ") == AL2023_AMI


def test_missing_parameter_surfaces_lookup_error():
    backend = FakeEc2Backend()
    backend.parameters = {}
    resolver = AmiResolver(make_settings(), backend)

    with pytest.raises(UpstreamLookupError):
        resolver.resolve(True)
