"""
Stepwise TLS Certificate Module

Hot-reloadable server certificate for test listeners. ``CertificateGetter``
reads a certificate/key PEM pair from disk on every ``reload()`` and publishes
the parsed result behind a reader/writer lock, so TLS handshakes running on
other threads always see either the previous or the new certificate in full.

Encrypted private keys (legacy ``Proc-Type: 4,ENCRYPTED`` blocks as well as
PKCS#8 ``ENCRYPTED PRIVATE KEY`` blocks) are decrypted with the configured
passphrase.
"""

import base64
import binascii
import logging
import os
import re
import ssl
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

logger = logging.getLogger(__name__)

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n(?P<body>.*?)-----END (?P=label)-----",
    re.DOTALL,
)


class CertificateUnavailableError(RuntimeError):
    """No certificate has been loaded successfully yet."""


@dataclass(frozen=True)
class PemBlock:
    label: str
    headers: Dict[str, str]
    data: bytes
    raw: bytes

    @property
    def encrypted(self) -> bool:
        if self.label == "ENCRYPTED PRIVATE KEY":
            return True
        return self.headers.get("Proc-Type", "").replace(" ", "") == "4,ENCRYPTED"


def decode_pem(data: bytes) -> Optional[PemBlock]:
    """
    Return the first well-formed PEM block in ``data``, or None. Blocks whose
    body is not valid base64 are skipped.
    """
    for match in _PEM_BLOCK_RE.finditer(data):
        lines = match.group("body").decode("ascii", errors="replace").splitlines()
        headers: Dict[str, str] = {}
        if lines and ":" in lines[0]:
            while lines and lines[0].strip():
                key, _, value = lines.pop(0).partition(":")
                headers[key.strip()] = value.strip()
        try:
            payload = base64.b64decode(
                "".join(line.strip() for line in lines), validate=True
            )
        except (binascii.Error, ValueError):
            logger.debug(
                "[stepwise] skipping malformed %s PEM block",
                match.group("label").decode("ascii"),
            )
            continue

        return PemBlock(
            label=match.group("label").decode("ascii"),
            headers=headers,
            data=payload,
            raw=match.group(0) + b"\n",
        )
    return None


class RWLock:
    """
    Reader/writer lock. Any number of readers may hold it at once; a writer
    holds it alone. Waiting writers block new readers so a reload is not
    starved by a steady stream of handshakes.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass(frozen=True)
class LoadedCertificate:
    """A parsed certificate/key pair and the server context serving it."""

    certificate: x509.Certificate
    chain: Tuple[x509.Certificate, ...]
    private_key: Any
    cert_pem: bytes
    key_pem: bytes
    context: ssl.SSLContext

    def public_key_matches(self, key: Any) -> bool:
        return _spki(self.certificate.public_key()) == _spki(key.public_key())


def _spki(public_key: Any) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _server_context(cert_pem: bytes, key_pem: bytes) -> ssl.SSLContext:
    # SSLContext only loads key material from files.
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    with tempfile.TemporaryDirectory(prefix="stepwise-tls-") as tmp:
        cert_path = os.path.join(tmp, "cert.pem")
        key_path = os.path.join(tmp, "key.pem")
        with open(cert_path, "wb") as f:
            f.write(cert_pem)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(key_pem)
        context.load_cert_chain(cert_path, key_path)
    return context


def load_key_pair(
    cert_pem: bytes, key_pem: bytes, passphrase: str = ""
) -> LoadedCertificate:
    """
    Parse a certificate chain and its private key.

    Raises
    ------
    ValueError
        If the key file holds no PEM block, an encrypted key cannot be
        decrypted, the certificate cannot be parsed, or the key does not
        belong to the certificate.
    ssl.SSLError
        If the pair cannot be loaded into an SSL context.
    """
    key_block = decode_pem(key_pem)
    if key_block is None:
        raise ValueError("decoded PEM is blank")

    if key_block.encrypted:
        try:
            private_key = serialization.load_pem_private_key(
                key_block.raw, password=passphrase.encode() or None
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise ValueError(f"decrypting PEM block failed {exc}") from exc
    else:
        private_key = serialization.load_pem_private_key(key_block.raw, password=None)

    key_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )

    chain = tuple(x509.load_pem_x509_certificates(cert_pem))
    leaf = chain[0]
    if _spki(leaf.public_key()) != _spki(private_key.public_key()):
        raise ValueError("private key does not match public key")

    cert_pem = b"".join(c.public_bytes(serialization.Encoding.PEM) for c in chain)
    return LoadedCertificate(
        certificate=leaf,
        chain=chain,
        private_key=private_key,
        cert_pem=cert_pem,
        key_pem=key_pem,
        context=_server_context(cert_pem, key_pem),
    )


class CertificateGetter:
    """
    Reloadable holder of a server certificate.

    ``reload`` satisfies the reload-function contract used by
    ``stepwise.tls.reload.ReloadRegistry``; ``sni_callback`` can be assigned
    to ``ssl.SSLContext.sni_callback``. The paths and passphrase are fixed at
    construction.
    """

    def __init__(self, cert_file: str, key_file: str, passphrase: str = "") -> None:
        self._lock = RWLock()
        self._cert: Optional[LoadedCertificate] = None
        self.cert_file = str(cert_file)
        self.key_file = str(key_file)
        self.passphrase = passphrase

    def reload(self) -> None:
        """
        Re-read the certificate and key files and publish the result.

        On any failure the previously loaded certificate, if any, stays in place.
        """
        with open(self.cert_file, "rb") as f:
            cert_pem = f.read()
        with open(self.key_file, "rb") as f:
            key_pem = f.read()

        loaded = load_key_pair(cert_pem, key_pem, self.passphrase)

        with self._lock.write_locked():
            self._cert = loaded
        logger.debug(
            "[stepwise] reloaded certificate %s (serial %x)",
            self.cert_file,
            loaded.certificate.serial_number,
        )

    def get_certificate(self, server_name: Optional[str] = None) -> LoadedCertificate:
        """
        Return the current certificate for a handshake.

        Raises
        ------
        CertificateUnavailableError
            If no reload has succeeded yet.
        """
        with self._lock.read_locked():
            cert = self._cert
        if cert is None:
            raise CertificateUnavailableError("nil certificate")
        return cert

    def sni_callback(
        self, ssl_object: Any, server_name: Optional[str], ssl_context: ssl.SSLContext
    ) -> Optional[int]:
        try:
            cert = self.get_certificate(server_name)
        except CertificateUnavailableError as exc:
            logger.error("[stepwise] TLS handshake for %r failed: %s", server_name, exc)
            return ssl.ALERT_DESCRIPTION_INTERNAL_ERROR
        ssl_object.context = cert.context
        return None
