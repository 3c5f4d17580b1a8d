"""
Reloadable TLS material for test listeners.
"""

from stepwise.tls.certificates import (
    CertificateGetter,
    CertificateUnavailableError,
    LoadedCertificate,
)
from stepwise.tls.reload import ReloadError, ReloadFunc, ReloadRegistry

__all__ = [
    "CertificateGetter",
    "CertificateUnavailableError",
    "LoadedCertificate",
    "ReloadError",
    "ReloadFunc",
    "ReloadRegistry",
]
