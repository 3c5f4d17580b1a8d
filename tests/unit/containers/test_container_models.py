import pytest
from pydantic import ValidationError

from stepwise.environments.docker.models import (
    ContainerConfig,
    ContainerHandle,
    RunnerConfig,
)


def test_create_kwargs_only_include_set_fields():
    """
    Verifies that `ContainerConfig.to_create_kwargs()` leaves out options the
    caller did not set, so the image's own defaults (entrypoint, workdir,
    user) stay in effect.
    """
    kwargs = ContainerConfig(image="vault:1.15").to_create_kwargs()

    assert kwargs == {"image": "vault:1.15"}


def test_create_kwargs_translate_ports_and_copy_mappings():
    cfg = ContainerConfig(
        image="vault:1.15",
        entrypoint=["docker-entrypoint.sh"],
        command="server",
        environment={"A": "1"},
        working_dir="/vault",
        user="vault",
        labels={"suite": "plugin"},
        ports=["8200/tcp", "8201", "8125/udp"],
    )

    kwargs = cfg.to_create_kwargs()

    assert kwargs["ports"] == [8200, 8201, (8125, "udp")]
    assert kwargs["entrypoint"] == ["docker-entrypoint.sh"]
    assert kwargs["working_dir"] == "/vault"
    assert kwargs["user"] == "vault"
    # Mutating the kwargs must not leak back into the model.
    kwargs["environment"]["A"] = "2"
    kwargs["labels"]["suite"] = "other"
    assert cfg.environment == {"A": "1"}
    assert cfg.labels == {"suite": "plugin"}


def test_runner_config_defaults():
    config = RunnerConfig(
        container_config=ContainerConfig(image="vault"), container_name="vault-1"
    )

    assert config.net_name == ""
    assert config.ip == ""
    assert config.copy_from_to == {}


def test_handle_reads_ports_and_addresses():
    handle = ContainerHandle(
        id="abc",
        name="vault-1",
        attrs={
            "NetworkSettings": {
                "IPAddress": "",
                "Ports": {
                    "8200/tcp": [
                        {"HostIp": "0.0.0.0", "HostPort": "32768"},
                        {"HostIp": "::", "HostPort": "32768"},
                    ],
                    "8201/tcp": None,
                },
                "Networks": {
                    "vault-net": {"IPAddress": "10.10.0.5"},
                    "bridge": {"IPAddress": ""},
                },
            }
        },
    )

    assert handle.host_port("8200/tcp") == 32768
    assert handle.host_port(8200) == 32768
    assert handle.host_port(8201) is None
    assert handle.host_port(9999) is None
    assert handle.ip_address("vault-net") == "10.10.0.5"
    assert handle.ip_address("bridge") is None
    assert handle.ip_address() == "10.10.0.5"


def test_handle_tolerates_empty_inspect_document():
    handle = ContainerHandle(id="abc", name="vault-1")

    assert handle.networks == {}
    assert handle.ip_address() is None
    assert handle.host_port(8200) is None


def test_extra_args_pass_through_to_create_kwargs():
    cfg = ContainerConfig(
        image="vault:1.15",
        extra_args={"tty": True, "stop_signal": "SIGINT", "stdin_open": True},
    )

    kwargs = cfg.to_create_kwargs()

    assert kwargs["tty"] is True
    assert kwargs["stop_signal"] == "SIGINT"
    assert kwargs["stdin_open"] is True


def test_unknown_container_options_are_rejected():
    with pytest.raises(ValidationError, match="tty"):
        ContainerConfig(image="vault", tty=True)
