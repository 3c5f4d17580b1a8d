import datetime
from pathlib import Path
from typing import Any, Callable, NamedTuple, Optional
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


# --- TLS Fixtures ---


class GeneratedPair(NamedTuple):
    cert_path: Path
    key_path: Path
    private_key: Any
    certificate: x509.Certificate


def _self_signed(common_name: str, key: Any) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False
        )
        .sign(key, hashes.SHA256())
    )


@pytest.fixture
def make_cert_pair(tmp_path: Path) -> Callable[..., GeneratedPair]:
    """
    Factory writing a self-signed certificate and its key to ``tmp_path``.

    ``encryption`` is None (plain PKCS#8), ``"pkcs8"`` (ENCRYPTED PRIVATE KEY)
    or ``"legacy"`` (traditional OpenSSL with Proc-Type/DEK-Info headers).
    Calling the factory again with the same ``stem`` overwrites the files, which
    is how tests simulate a rotated certificate.
    """

    def _make(
        common_name: str = "localhost",
        *,
        encryption: Optional[str] = None,
        passphrase: str = "hunter2",
        stem: str = "server",
    ) -> GeneratedPair:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        cert = _self_signed(common_name, key)

        if encryption is None:
            key_format = serialization.PrivateFormat.PKCS8
            algorithm = serialization.NoEncryption()
        else:
            key_format = (
                serialization.PrivateFormat.TraditionalOpenSSL
                if encryption == "legacy"
                else serialization.PrivateFormat.PKCS8
            )
            algorithm = serialization.BestAvailableEncryption(passphrase.encode())

        cert_path = tmp_path / f"{stem}.crt"
        key_path = tmp_path / f"{stem}.key"
        cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(
            key.private_bytes(serialization.Encoding.PEM, key_format, algorithm)
        )
        return GeneratedPair(cert_path, key_path, key, cert)

    return _make


# --- Docker Fixtures ---


@pytest.fixture
def mock_api() -> MagicMock:
    """
    A stand-in for ``docker.APIClient`` whose calls all succeed.

    ``create_host_config`` / ``create_endpoint_config`` echo their kwargs back
    so tests can assert on exactly what the runner asked for.
    """
    api = MagicMock()
    api.pull.return_value = iter(
        [{"status": "Pulling from library/vault"}, {"status": "Downloaded newer image"}]
    )
    api.create_host_config.side_effect = lambda **kw: dict(kw)
    api.create_endpoint_config.side_effect = lambda **kw: dict(kw)
    api.create_networking_config.side_effect = lambda endpoints: {
        "EndpointsConfig": endpoints
    }
    api.create_container.return_value = {"Id": "abc123def456789"}
    api.put_archive.return_value = True
    api.inspect_container.return_value = {
        "Id": "abc123def456789",
        "Name": "/vault-test",
        "State": {"Running": True},
        "NetworkSettings": {
            "IPAddress": "172.17.0.2",
            "Ports": {"8200/tcp": [{"HostIp": "0.0.0.0", "HostPort": "49153"}]},
            "Networks": {"bridge": {"IPAddress": "172.17.0.2"}},
        },
    }
    return api
