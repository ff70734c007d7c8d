"""
=============================================================================
TLS MATERIAL
=============================================================================

Certificates for the HTTPS and HTTP/2 server factories. Three ways to
supply one, in order of precedence:

    key + cert     PEM files on disk
    pfx            a PKCS#12 bundle, unpacked with cryptography
    (neither)      the built-in self-signed certificate for localhost and
                   127.0.0.1, generated on first use under ~/.lws/tls

=============================================================================
"""

import ipaddress
import logging
import os
import ssl
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

# Certificate defaults
DEFAULT_CERT_DIR = Path.home() / ".lws" / "tls"
DEFAULT_CERT_DAYS = 365
DEFAULT_KEY_SIZE = 2048

# OpenSSL method names accepted by the secure_protocol option
SECURE_PROTOCOLS = {
    "TLS_method": (None, None),
    "SSLv23_method": (None, None),
    "TLSv1_method": (ssl.TLSVersion.TLSv1, ssl.TLSVersion.TLSv1),
    "TLSv1_1_method": (ssl.TLSVersion.TLSv1_1, ssl.TLSVersion.TLSv1_1),
    "TLSv1_2_method": (ssl.TLSVersion.TLSv1_2, ssl.TLSVersion.TLSv1_2),
    "TLSv1_3_method": (ssl.TLSVersion.TLSv1_3, ssl.TLSVersion.TLSv1_3),
}


@dataclass
class TLSMaterial:
    """Certificate and key files a server context is loaded from."""

    cert_path: Path
    key_path: Path
    fingerprint: str
    builtin: bool = False

    @classmethod
    def from_paths(cls, cert_path: Path, key_path: Path, builtin: bool = False) -> "TLSMaterial":
        """
        Create material from existing PEM files.

        Raises:
            FileNotFoundError: If either file doesn't exist
        """
        cert_path, key_path = Path(cert_path), Path(key_path)
        if not cert_path.exists():
            raise FileNotFoundError(f"Certificate not found: {cert_path}")
        if not key_path.exists():
            raise FileNotFoundError(f"Key not found: {key_path}")
        return cls(cert_path, key_path, get_cert_fingerprint(cert_path), builtin)


def get_cert_fingerprint(cert_path: Path) -> str:
    """SHA256 fingerprint of a PEM certificate, as colon separated hex."""
    cert = x509.load_pem_x509_certificate(Path(cert_path).read_bytes())
    return cert.fingerprint(hashes.SHA256()).hex(":").upper()


def generate_self_signed_cert(
    cert_dir: Optional[Path] = None,
    hostnames: Sequence[str] = ("localhost", "127.0.0.1"),
    days: int = DEFAULT_CERT_DAYS,
    key_size: int = DEFAULT_KEY_SIZE,
    force: bool = False,
) -> TLSMaterial:
    """
    Create (or reuse) the built-in self-signed certificate.

    The certificate names every entry of `hostnames` as a subject
    alternative name; IP literals become IP SANs.

    Args:
        cert_dir: Where server.crt and server.key live (default ~/.lws/tls)
        force: Regenerate even when both files already exist

    Returns:
        TLSMaterial for the certificate, marked builtin
    """
    cert_dir = Path(cert_dir or DEFAULT_CERT_DIR)
    cert_path = cert_dir / "server.crt"
    key_path = cert_dir / "server.key"

    if cert_path.exists() and key_path.exists() and not force:
        logger.debug(f"Using existing built-in certificate: {cert_path}")
        return TLSMaterial.from_paths(cert_path, key_path, builtin=True)

    cert_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Generating self-signed certificate in {cert_dir}")

    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    san_list = []
    for host in hostnames:
        try:
            san_list.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            san_list.append(x509.DNSName(host))

    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, hostnames[0]),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "lws"),
    ])
    not_before = datetime.now(timezone.utc) - timedelta(minutes=5)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName(san_list), critical=False)
        .sign(key, hashes.SHA256())
    )

    key_path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    os.chmod(key_path, 0o600)
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    material = TLSMaterial.from_paths(cert_path, key_path, builtin=True)
    logger.info(f"Certificate fingerprint: {material.fingerprint}")
    return material


def load_pfx_chain(context: ssl.SSLContext, pfx_path: str, password: Optional[bytes] = None) -> str:
    """
    Load a PKCS#12 bundle into `context`.

    The ssl module only reads PEM files, so the key and chain are written to
    a private temporary directory for the duration of the load.

    Returns:
        Fingerprint of the bundle's certificate.

    Raises:
        ValueError: If the bundle lacks a key or a certificate
    """
    key, cert, chain = pkcs12.load_key_and_certificates(Path(pfx_path).read_bytes(), password)
    if key is None or cert is None:
        raise ValueError(f"{pfx_path} does not contain both a private key and a certificate")

    with tempfile.TemporaryDirectory(prefix="lws-pfx-") as tmp:
        key_file = Path(tmp) / "key.pem"
        cert_file = Path(tmp) / "cert.pem"
        key_file.write_bytes(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
        pem_chain = b"".join(c.public_bytes(serialization.Encoding.PEM) for c in [cert, *(chain or [])])
        cert_file.write_bytes(pem_chain)
        context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))

    return cert.fingerprint(hashes.SHA256()).hex(":").upper()


def apply_secure_protocol(context: ssl.SSLContext, secure_protocol: str) -> None:
    """
    Restrict `context` to the TLS versions an OpenSSL method name allows.

    Raises:
        ValueError: For an unknown method name
    """
    name = secure_protocol.replace("_server_method", "_method")
    if name not in SECURE_PROTOCOLS:
        raise ValueError(
            f"Unknown secure_protocol: {secure_protocol}. "
            f"Expected one of {', '.join(SECURE_PROTOCOLS)}"
        )
    minimum, maximum = SECURE_PROTOCOLS[name]
    if minimum is not None:
        context.minimum_version = minimum
    if maximum is not None:
        context.maximum_version = maximum


def build_ssl_context(options, alpn_protocols: Optional[Sequence[str]] = None,
                      cert_dir: Optional[Path] = None) -> ssl.SSLContext:
    """
    Build a server-side SSLContext from ServerOptions.

    Args:
        options: Resolved ServerOptions (key/cert, pfx, ciphers, secure_protocol)
        alpn_protocols: Protocols to offer in ALPN, e.g. ["h2", "http/1.1"]
        cert_dir: Location of the built-in certificate

    Returns:
        A PROTOCOL_TLS_SERVER context with the certificate loaded

    Raises:
        OSError: If a certificate file cannot be read
        ValueError: For an unknown secure_protocol
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)

    if options.key and options.cert:
        context.load_cert_chain(certfile=options.cert, keyfile=options.key)
        logger.debug(f"Loaded certificate {options.cert}")
    elif options.pfx:
        fingerprint = load_pfx_chain(context, options.pfx)
        logger.debug(f"Loaded PKCS#12 bundle {options.pfx} ({fingerprint})")
    else:
        material = generate_self_signed_cert(cert_dir)
        context.load_cert_chain(certfile=str(material.cert_path), keyfile=str(material.key_path))
        logger.debug(f"Using built-in certificate {material.fingerprint}")

    if options.secure_protocol:
        apply_secure_protocol(context, options.secure_protocol)
    if options.ciphers:
        context.set_ciphers(options.ciphers)
    if alpn_protocols:
        context.set_alpn_protocols(list(alpn_protocols))

    return context
