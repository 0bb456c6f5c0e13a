import hashlib

import pytest

from modsync.download import fetch_and_store, sha256_bytes, sha256_file, write_bytes
from modsync.errors import FilesystemError, IntegrityError, TransportError
from tests.conftest import FakeResponse

URL = "https://cdn.example.com/files/sodium.jar"
BODY = b"sodium-fabric-0.5.8" * 1000


def test_fetch_creates_parents_and_writes(tmp_path, session):
    session.add(URL, FakeResponse(200, BODY))
    dest = tmp_path / "instance" / "mods" / "sodium.jar"
    assert fetch_and_store(URL, dest, session=session) == dest
    assert dest.read_bytes() == BODY


def test_fetch_overwrites_existing_file(tmp_path, session):
    session.add(URL, FakeResponse(200, BODY))
    dest = tmp_path / "sodium.jar"
    dest.write_bytes(b"old build")
    fetch_and_store(URL, dest, session=session)
    assert dest.read_bytes() == BODY


def test_non_success_status_is_transport_error(tmp_path, session):
    session.add(URL, FakeResponse(503, b"upstream unavailable"))
    dest = tmp_path / "sodium.jar"
    with pytest.raises(TransportError) as info:
        fetch_and_store(URL, dest, session=session)
    assert info.value.status == 503
    assert info.value.body == "upstream unavailable"
    assert not dest.exists()


def test_network_failure_is_transport_error(tmp_path, session, network_error):
    session.add(URL, network_error)
    with pytest.raises(TransportError) as info:
        fetch_and_store(URL, tmp_path / "sodium.jar", session=session)
    assert info.value.status is None
    assert "connection refused" in str(info.value)


def test_matching_digest_is_accepted_case_insensitively(tmp_path, session):
    session.add(URL, FakeResponse(200, BODY))
    digest = hashlib.sha256(BODY).hexdigest().upper()
    dest = fetch_and_store(URL, tmp_path / "sodium.jar", digest, session=session)
    assert sha256_file(dest) == digest.lower()


def test_digest_mismatch_never_writes(tmp_path, session):
    session.add(URL, FakeResponse(200, BODY))
    dest = tmp_path / "mods" / "sodium.jar"
    with pytest.raises(IntegrityError) as info:
        fetch_and_store(URL, dest, "0" * 64, session=session)
    assert info.value.actual == sha256_bytes(BODY)
    assert not dest.exists()


def test_progress_callback_reaches_one(tmp_path, session):
    session.add(URL, FakeResponse(200, BODY))
    seen = []
    fetch_and_store(URL, tmp_path / "sodium.jar", session=session, progress_cb=seen.append)
    assert seen and seen[-1] == 1.0


def test_write_bytes_reports_blocked_directory(tmp_path):
    blocker = tmp_path / "mods"
    blocker.write_text("not a directory")
    with pytest.raises(FilesystemError) as info:
        write_bytes(blocker / "sodium.jar", b"x")
    assert info.value.path == blocker
