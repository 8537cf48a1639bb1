"""Constructor options and TLS configuration for the request emulator."""

from __future__ import annotations

import os
import ssl
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import voluptuous as vol
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.hazmat.primitives.serialization.pkcs12 import (
    load_key_and_certificates,
)

from .const import DEFAULT_MAX_REDIRECTS, USER_AGENT

PemMaterial = str | bytes


def _transport_like(value: Any) -> Any:
    """Accept any object exposing a callable ``request`` attribute."""

    if value is None or callable(getattr(value, "request", None)):
        return value
    raise vol.Invalid("transport must provide a request(options, on_response) method")


OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional("agent", default=None): vol.Any(None, httpx.AsyncClient),
        vol.Optional("transport", default=None): _transport_like,
        vol.Optional("pfx", default=None): vol.Any(None, bytes),
        vol.Optional("key", default=None): vol.Any(None, str, bytes),
        vol.Optional("passphrase", default=None): vol.Any(None, str),
        vol.Optional("cert", default=None): vol.Any(None, str, bytes),
        vol.Optional("ca", default=None): vol.Any(None, str, bytes),
        vol.Optional("ciphers", default=None): vol.Any(None, str),
        vol.Optional("reject_unauthorized", default=True): bool,  # type: ignore
        vol.Optional("max_redirects", default=DEFAULT_MAX_REDIRECTS): vol.Any(
            None, vol.All(int, vol.Range(min=0))
        ),
        vol.Optional("user_agent", default=USER_AGENT): str,
    }
)


@dataclass(frozen=True, slots=True)
class TLSSettings:
    """Client certificate and verification overrides for https requests."""

    pfx: bytes | None = None
    key: PemMaterial | None = None
    passphrase: str | None = None
    cert: PemMaterial | None = None
    ca: PemMaterial | None = None
    ciphers: str | None = None
    reject_unauthorized: bool = True

    @property
    def is_default(self) -> bool:
        """Return True when no override was supplied."""

        return self == TLSSettings()


@dataclass(frozen=True, slots=True)
class XHROptions:
    """Validated constructor options."""

    agent: httpx.AsyncClient | None
    transport: Any | None
    tls: TLSSettings
    max_redirects: int | None
    user_agent: str

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> XHROptions:
        """Validate ``options`` and build the immutable settings object."""

        data = OPTIONS_SCHEMA(dict(options or {}))
        return cls(
            agent=data["agent"],
            transport=data["transport"],
            tls=TLSSettings(
                pfx=data["pfx"],
                key=data["key"],
                passphrase=data["passphrase"],
                cert=data["cert"],
                ca=data["ca"],
                ciphers=data["ciphers"],
                reject_unauthorized=data["reject_unauthorized"],
            ),
            max_redirects=data["max_redirects"],
            user_agent=data["user_agent"],
        )


def _as_text(material: PemMaterial) -> str:
    if isinstance(material, bytes):
        return material.decode("utf-8")
    return material


def _decode_pfx(pfx: bytes, passphrase: str | None) -> tuple[str, str]:
    """Decode a PKCS#12 bundle into PEM certificate and private key."""

    password = passphrase.encode("utf-8") if passphrase else None
    private_key, certificate, _extra = load_key_and_certificates(pfx, password)
    if private_key is None or certificate is None:
        msg = "PKCS#12 bundle missing required certificate components"
        raise ValueError(msg)
    certificate_pem = certificate.public_bytes(Encoding.PEM).decode("utf-8").strip()
    private_key_pem = (
        private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
        .decode("utf-8")
        .strip()
    )
    return certificate_pem, private_key_pem


def _apply_cert_chain(
    context: ssl.SSLContext,
    *,
    certificate: str,
    private_key: str,
    password: str | None = None,
) -> None:
    """Load certificate material into ``context`` from in-memory values."""

    cert_file = tempfile.NamedTemporaryFile("w", delete=False)
    key_file = tempfile.NamedTemporaryFile("w", delete=False)
    try:
        cert_file.write(certificate.strip())
        cert_file.flush()
        key_file.write(private_key.strip())
        key_file.flush()
        cert_file.close()
        key_file.close()
        context.load_cert_chain(
            certfile=cert_file.name, keyfile=key_file.name, password=password
        )
    finally:
        cert_file.close()
        key_file.close()
        os.unlink(cert_file.name)
        os.unlink(key_file.name)


def build_ssl_context(tls: TLSSettings) -> ssl.SSLContext:
    """Create the client TLS context described by ``tls``."""

    # PEM text or DER bytes, both accepted by ``cadata``.
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=tls.ca)
    if not tls.reject_unauthorized:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if tls.ciphers:
        context.set_ciphers(tls.ciphers)

    if tls.pfx is not None:
        certificate, private_key = _decode_pfx(tls.pfx, tls.passphrase)
        _apply_cert_chain(context, certificate=certificate, private_key=private_key)
    elif tls.cert is not None and tls.key is not None:
        _apply_cert_chain(
            context,
            certificate=_as_text(tls.cert),
            private_key=_as_text(tls.key),
            password=tls.passphrase,
        )
    return context
