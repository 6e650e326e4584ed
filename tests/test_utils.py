import logging

import bcrypt
import pytest

from imagehost import keygen, utils
from imagehost.crypto import decode_key
from imagehost.logging_config import SensitiveDataFilter
from imagehost.routes.admin import verify_admin_secret


@pytest.mark.parametrize("raw,expected", [
    ("10485760", 10485760),
    ("10mb", 10 * 1024 * 1024),
    ("500KB", 500 * 1024),
    ("1.5 MB", int(1.5 * 1024 * 1024)),
    ("1gb", 1024 ** 3),
])
def test_parse_file_size(raw, expected):
    assert utils.parse_file_size(raw) == expected


@pytest.mark.parametrize("raw", ["", "ten", "10tb", "-5"])
def test_parse_file_size_invalid(raw):
    with pytest.raises(ValueError):
        utils.parse_file_size(raw)


@pytest.mark.parametrize("raw,expected", [("2", 2.0), ("0.5", 0.5), ("30s", 30.0), ("1m", 60.0), ("1H", 3600.0)])
def test_parse_time(raw, expected):
    assert utils.parse_time(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("0.0.0.0:3000", ("0.0.0.0", 3000)),
    ("127.0.0.1:8080", ("127.0.0.1", 8080)),
    ("[::1]:3000", ("::1", 3000)),
    (":3000", ("0.0.0.0", 3000)),
])
def test_parse_bind_address(raw, expected):
    assert utils.parse_bind_address(raw) == expected


@pytest.mark.parametrize("raw", ["localhost", "host:0", "host:70000", "host:port"])
def test_parse_bind_address_invalid(raw):
    with pytest.raises(ValueError):
        utils.parse_bind_address(raw)


@pytest.mark.parametrize("raw,expected", [
    ("cat.png", "cat.png"),
    ("../../etc/passwd", "passwd"),
    ("C:\\Users\\me\\cat.png", "cat.png"),
    ("", "image.bin"),
    (None, "image.bin"),
    ("..", "image.bin"),
])
def test_safe_filename(raw, expected):
    assert utils.safe_filename(raw) == expected


def test_filename_from_url():
    assert utils.filename_from_url("https://example.com/a/b/my%20cat.png?x=1") == "my cat.png"
    assert utils.filename_from_url("https://example.com/") == "image.bin"


def test_storage_filename_is_unique():
    first = utils.storage_filename("cat.png")
    second = utils.storage_filename("cat.png")

    assert first != second
    assert first.endswith("_cat.png")


@pytest.mark.parametrize("n,expected", [(0, "0 B"), (1200, "1.2 KB"), (2048, "2 KB"), (5 * 1024 * 1024, "5 MB")])
def test_format_bytes(n, expected):
    assert utils.format_bytes(n) == expected


def test_sensitive_data_filter_masks_bot_token():
    record = logging.LogRecord(
        "httpx", logging.INFO, __file__, 1,
        "HTTP Request: POST %s", ("https://api.telegram.org/bot123456:ABC-def_ghi/sendDocument",), None,
    )

    SensitiveDataFilter().filter(record)

    assert "ABC-def_ghi" not in record.getMessage()
    assert "/bot***MASKED***/sendDocument" in record.getMessage()


def test_sensitive_data_filter_masks_api_key():
    record = logging.LogRecord("imagehost", logging.INFO, __file__, 1, 'body {"api_key": "hunter2"}', None, None)

    SensitiveDataFilter().filter(record)

    assert "hunter2" not in record.getMessage()


def test_verify_admin_secret_plain():
    assert verify_admin_secret("s3cret", "s3cret")
    assert not verify_admin_secret("wrong", "s3cret")
    assert not verify_admin_secret("", "")
    assert not verify_admin_secret("anything", "")


def test_verify_admin_secret_sha256():
    secret = "sha256:2bb80d537b1da3e38bd30361aa855686bde0eacd7162fef6a25fe97bf527a25b"

    assert verify_admin_secret("secret", secret)
    assert not verify_admin_secret("Secret", secret)


def test_verify_admin_secret_bcrypt():
    hashed = bcrypt.hashpw(b"s3cret", bcrypt.gensalt(rounds=4)).decode()

    assert verify_admin_secret("s3cret", hashed)
    assert not verify_admin_secret("wrong", hashed)


def test_keygen_prints_usable_key(capsys):
    keygen.main()

    line = [l for l in capsys.readouterr().out.splitlines() if l.startswith("ENCRYPTION_KEY=")][0]
    assert len(decode_key(line.split("=", 1)[1])) == 32
