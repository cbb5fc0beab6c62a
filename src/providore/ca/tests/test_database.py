"""
测试 database.py：index.txt 解析、CN 提取与过滤。
"""

from datetime import datetime, timezone

from src.providore.ca import database
from src.providore.ca.schemas import CertificateStatus

INDEX = (
    "V\t220408110021Z\t\t1000\tunknown\t/C=AU/O=Providore/CN=abc123\n"
    "R\t220408110021Z\t210410120000Z,keyCompromise\t1001\tunknown\t/C=AU/O=Providore/CN=abc123\n"
    "E\t200101000000Z\t\t1002\tunknown\t/CN=xyz789\n"
    "\t220408110021Z\t\t1003\tunknown\t/CN=abc123\n"
    "X\t220408110021Z\t\t1004\tunknown\t/CN=abc123\n"
    "V\t20500101000000Z\t\t1005\tunknown\t/CN=abc1234\n"
)


def test_valid_line_round_trips():
    record = database.parse_line("V\t220408110021Z\t\t1000\tunknown\t/C=AU/CN=abc123")
    assert record.status == CertificateStatus.VALID
    assert record.serial == "1000"
    assert record.subject == "/C=AU/CN=abc123"
    assert record.expiration == datetime(2022, 4, 8, 11, 0, 21, tzinfo=timezone.utc)
    assert record.revocation is None
    assert record.is_valid


def test_empty_status_is_skipped():
    records = database.parse_database(INDEX)
    assert "1003" not in [r.serial for r in records]


def test_revoked_line_keeps_reason():
    record = database.parse_line(INDEX.splitlines()[1])
    assert record.status == CertificateStatus.REVOKED
    assert record.revocation == datetime(2021, 4, 10, 12, 0, tzinfo=timezone.utc)
    assert record.revocation_reason == "keyCompromise"


def test_unknown_status_is_never_valid():
    record = database.parse_line(INDEX.splitlines()[4])
    assert record.status == CertificateStatus.REVOKED
    assert not record.is_valid


def test_generalized_time():
    record = database.parse_line(INDEX.splitlines()[5])
    assert record.expiration == datetime(2050, 1, 1, tzinfo=timezone.utc)


def test_short_line_is_skipped():
    assert database.parse_line("V\t220408110021Z") is None


def test_subject_common_name_forms():
    assert database.subject_common_name("/C=AU/O=Providore/CN=abc123") == "abc123"
    assert database.subject_common_name("subject=/CN=abc123/O=Providore\n") == "abc123"
    assert database.subject_common_name("subject=C = AU, O = Providore, CN = abc123") == "abc123"
    assert database.subject_common_name("/C=AU/O=Providore") is None
    assert database.subject_common_name("/CN=") is None


def test_filter_by_common_name_is_exact():
    records = database.parse_database(INDEX)
    matched = database.filter_by_common_name(records, "abc123")
    assert [r.serial for r in matched] == ["1000", "1001", "1004"]


def test_certificates_for_refreshes_before_reading(tmp_path):
    index = tmp_path / "index.txt"
    calls = []

    def refresh():
        calls.append("refresh")
        index.write_text(INDEX, encoding="utf-8")

    records = database.certificates_for("xyz789", index, refresh)

    assert calls == ["refresh"]
    assert [r.serial for r in records] == ["1002"]
    assert records[0].status == CertificateStatus.EXPIRED


def test_missing_database_is_empty(tmp_path):
    assert database.read_database(tmp_path / "index.txt") == []
