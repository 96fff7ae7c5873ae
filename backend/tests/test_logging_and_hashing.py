import logging

from fleetpay.utils.hashing import compute_signature, generate_hash, signature_matches
from fleetpay.utils.logger import setup_logging


def test_setup_logging_writes_rotating_file(tmp_path):
    setup_logging("debug", str(tmp_path / "logs"))
    logging.getLogger("fleetpay.test").info("QR created for TXN-1")
    for handler in logging.getLogger().handlers:
        handler.flush()

    log_file = tmp_path / "logs" / "payments.log"
    assert log_file.exists()
    assert "QR created for TXN-1" in log_file.read_text()
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING


def test_signature_matches_is_case_insensitive():
    body = b'{"merchantTranId":"TXN-1"}'
    signature = compute_signature("secret", body)
    assert len(signature) == 64
    assert signature_matches("secret", body, signature.upper())
    assert signature_matches("secret", body, f"  {signature} ")
    assert not signature_matches("secret", body + b" ", signature)
    assert not signature_matches("other", body, signature)
    assert not signature_matches("secret", body, "")


def test_generate_hash_inputs():
    assert generate_hash(b"abc") == generate_hash("abc")
    assert generate_hash({"b": 1, "a": 2}) == generate_hash({"a": 2, "b": 1})
