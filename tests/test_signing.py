import asyncio
import threading

import ecdsa.util
import pytest

from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from ledger_signer import signing
from ledger_signer.errors import ConfigError, KeyFormatError, KeyImportError, SigningError
from ledger_signer.signing import (
    KeyCell,
    PlatformSigner,
    Signer,
    SoftwareSigner,
    build_signer,
)

from conftest import TEST_DATA, TEST_DATA_SIGNATURE


P256_ORDER = int("FFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551", 16)


# --- software backend --------------------------------------------------------

def test_software_sign_abc_verifies(sec1_pem, verify_der):
    signer = SoftwareSigner(sec1_pem)
    sig = signer.sign(b"abc")
    assert sig[0] == 0x30
    assert verify_der(sig, b"abc")
    assert not verify_der(sig, b"abd")


def test_software_known_signature_vector(sec1_pem):
    assert SoftwareSigner(sec1_pem).sign(TEST_DATA) == TEST_DATA_SIGNATURE


def test_software_signatures_are_deterministic(sec1_pem):
    signer = SoftwareSigner(sec1_pem)
    assert signer.sign(b"payload") == signer.sign(b"payload")


def test_software_accepts_pkcs8(pkcs8_pem, verify_der):
    signer = SoftwareSigner(pkcs8_pem)
    assert signer.sign(TEST_DATA) == TEST_DATA_SIGNATURE
    assert verify_der(signer.sign(b"abc"), b"abc")


def test_empty_payload_signs_sha256_of_nothing(sec1_pem, verify_der):
    sig = SoftwareSigner(sec1_pem).sign(b"")
    assert verify_der(sig, b"")


def test_bytes_like_payloads(sec1_pem, verify_der):
    signer = SoftwareSigner(sec1_pem)
    assert verify_der(signer.sign(bytearray(b"abc")), b"abc")
    assert verify_der(signer.sign(memoryview(b"abc")), b"abc")
    with pytest.raises(TypeError):
        signer.sign("abc")


def test_key_is_imported_once(sec1_pem, verify_der):
    signer = SoftwareSigner(sec1_pem)
    assert signer.import_count == 0
    first = signer.sign(b"register-contract")
    second = signer.sign(b"execute-contract")
    assert verify_der(first, b"register-contract")
    assert verify_der(second, b"execute-contract")
    assert signer.import_count == 1


def test_concurrent_first_use_imports_once(sec1_pem, verify_der):
    signer = SoftwareSigner(sec1_pem)
    barrier = threading.Barrier(8)
    results = []
    errors = []

    def worker(i):
        barrier.wait()
        try:
            payload = f"req-{i}".encode()
            results.append((payload, signer.sign(payload)))
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert len(results) == 8
    assert all(verify_der(sig, payload) for payload, sig in results)
    assert signer.import_count == 1


def test_signature_components_within_curve_order(sec1_pem):
    r, s = decode_dss_signature(SoftwareSigner(sec1_pem).sign(b"abc"))
    assert 0 < r < P256_ORDER
    assert 0 < s < P256_ORDER


# --- platform backend --------------------------------------------------------

@pytest.mark.asyncio
async def test_platform_sign_abc_verifies(sec1_pem, verify_der):
    signer = PlatformSigner(sec1_pem)
    sig = await signer.sign(b"abc")
    assert verify_der(sig, b"abc")


@pytest.mark.asyncio
async def test_platform_accepts_pkcs8_and_empty_payload(pkcs8_pem, verify_der):
    signer = PlatformSigner(pkcs8_pem)
    assert verify_der(await signer.sign(b""), b"")


@pytest.mark.asyncio
async def test_platform_concurrent_first_use_imports_once(sec1_pem, verify_der):
    signer = PlatformSigner(sec1_pem)
    payloads = [f"validate-ledger-{i}".encode() for i in range(6)]
    sigs = await asyncio.gather(*(signer.sign(p) for p in payloads))
    assert all(verify_der(sig, p) for sig, p in zip(sigs, payloads))
    assert signer.import_count == 1


@pytest.mark.asyncio
async def test_backends_agree_on_key(sec1_pem, verify_der):
    software = SoftwareSigner(sec1_pem)
    platform = PlatformSigner(sec1_pem)
    assert software.public_key_pem == platform.public_key_pem
    # Both outputs are plain DER that the same verifier accepts.
    assert verify_der(software.sign(b"abc"), b"abc")
    assert verify_der(await platform.sign(b"abc"), b"abc")


def test_platform_sign_is_awaitable(sec1_pem, verify_der):
    sig = asyncio.run(PlatformSigner(sec1_pem).sign(b"abc"))
    assert verify_der(sig, b"abc")


# --- error contract ----------------------------------------------------------

def test_mismatched_labels_fail_before_signing(sec1_pem):
    bad = sec1_pem.replace("-----END EC PRIVATE KEY-----", "-----END PRIVATE KEY-----")
    signer = SoftwareSigner(bad)
    with pytest.raises(KeyFormatError):
        signer.sign(b"abc")
    assert signer.import_count == 0


@pytest.mark.asyncio
async def test_platform_mismatched_labels(sec1_pem):
    bad = sec1_pem.replace("-----END EC PRIVATE KEY-----", "-----END PRIVATE KEY-----")
    with pytest.raises(KeyFormatError):
        await PlatformSigner(bad).sign(b"abc")


def test_empty_pem_is_rejected_at_construction():
    with pytest.raises(KeyFormatError):
        SoftwareSigner("")


def test_garbage_key_is_import_error_and_retried(sec1_pem):
    bad = sec1_pem.replace("MHcCAQEEIFLw", "MHcCAQEEAAAA")
    signer = SoftwareSigner(bad)
    with pytest.raises(KeyImportError):
        signer.sign(b"abc")
    with pytest.raises(KeyImportError):
        signer.sign(b"abc")
    # A failed import does not populate the cache.
    assert signer.import_count == 2


@pytest.mark.parametrize("signer_cls", [SoftwareSigner, PlatformSigner])
def test_curve_mismatch_surfaces_as_import_error(signer_cls, secp256k1_sec1_pem):
    signer = signer_cls(secp256k1_sec1_pem)
    with pytest.raises(KeyImportError):
        signer.key_material


def test_software_engine_failure_is_signing_error(sec1_pem, monkeypatch):
    signer = SoftwareSigner(sec1_pem)
    signer.sign(b"warm-up")

    def boom(*args, **kwargs):
        raise RuntimeError("engine unavailable")

    monkeypatch.setattr(ecdsa.util, "sigencode_string", boom)
    with pytest.raises(SigningError) as ei:
        signer.sign(b"abc")
    err = ei.value
    assert not isinstance(err, KeyImportError)
    assert str(err) == "SIGNER_E_SIGNING: Failed to sign the request"
    assert err.retryable is True
    assert isinstance(err.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_platform_engine_failure_is_signing_error(sec1_pem, monkeypatch):
    def boom(*args, **kwargs):
        raise ValueError("bad signature from engine")

    monkeypatch.setattr(signing, "decode_dss_signature", boom)
    with pytest.raises(SigningError) as ei:
        await PlatformSigner(sec1_pem).sign(b"abc")
    assert ei.value.as_dict() == {
        "code": "SIGNER_E_SIGNING",
        "message": "Failed to sign the request",
        "retryable": True,
        "details": {"backend": "platform"},
    }


# --- facade ------------------------------------------------------------------

@pytest.mark.parametrize(
    "name,cls",
    [
        ("software", SoftwareSigner),
        ("inproc", SoftwareSigner),
        ("ecdsa", SoftwareSigner),
        ("platform", PlatformSigner),
        ("OpenSSL", PlatformSigner),
        (" cryptography ", PlatformSigner),
    ],
)
def test_build_signer_aliases(name, cls, sec1_pem):
    signer = build_signer(sec1_pem, backend=name)
    assert type(signer) is cls
    assert isinstance(signer, Signer)


def test_build_signer_unknown_backend(sec1_pem):
    with pytest.raises(ConfigError):
        build_signer(sec1_pem, backend="webcrypto")


def test_pem_is_dropped_after_import(sec1_pem):
    signer = SoftwareSigner(sec1_pem)
    signer.sign(b"abc")
    assert "MHcC" not in repr(signer)
    assert "key_loaded=True" in repr(signer)
    assert signer._pem is None


def test_key_cell_retries_after_failure():
    calls = []

    def factory():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first call fails")
        return "value"

    cell = KeyCell(factory)
    with pytest.raises(RuntimeError):
        cell.get()
    assert not cell.ready
    assert cell.get() == "value"
    assert cell.get() == "value"
    assert len(calls) == 2
