import base64
import itertools
import json

import pytest

from modsync.errors import ManifestParseError, TransportError
from modsync.models import ConfigFile, ConfigFileRef, Manifest
from modsync.remote import GithubUpdateStore, parse_repo
from tests.conftest import FakeResponse, FakeSession, make_addon

API = "https://api.github.com/repos/pack-team/updates"
MANIFEST = Manifest(
    mods=[make_addon(1)],
    config_files=[ConfigFileRef("jei-client.toml", "config/jei/jei-client.toml")],
)


def git_session():
    session = FakeSession()
    counter = itertools.count(1)

    def create_blob(url, **kwargs):
        return FakeResponse(201, json_data={"sha": f"blob{next(counter)}"})

    session.add(f"{API}/git/ref/heads/main", FakeResponse(200, json_data={"object": {"sha": "head0"}}))
    session.add(f"{API}/git/commits/head0", FakeResponse(200, json_data={"tree": {"sha": "tree0"}}))
    session.add(f"{API}/git/blobs", create_blob, method="POST")
    session.add(f"{API}/git/trees", FakeResponse(201, json_data={"sha": "tree1"}), method="POST")
    session.add(f"{API}/git/commits", FakeResponse(201, json_data={"sha": "commit1"}), method="POST")
    session.add(f"{API}/git/refs/heads/main", FakeResponse(200, json_data={}), method="PATCH")
    return session


@pytest.mark.parametrize("repo", ["", "owner", "owner/", "/name", "a/b/c"])
def test_parse_repo_rejects_bad_input(repo):
    with pytest.raises(ValueError):
        parse_repo(repo)


def test_token_goes_into_authorization_header():
    store = GithubUpdateStore("pack-team/updates", token="ghp_secret", session=FakeSession())
    assert store.headers["Authorization"] == "token ghp_secret"
    assert "Authorization" not in GithubUpdateStore("pack-team/updates", session=FakeSession()).headers


def test_fetch_update_reads_manifest_and_config_files():
    session = FakeSession()
    session.add(f"{API}/contents/upd-1/manifest.json", FakeResponse(200, MANIFEST.to_json().encode()))
    session.add(f"{API}/contents/upd-1/config/jei/jei-client.toml", FakeResponse(200, b"[advanced]\n"))
    store = GithubUpdateStore("pack-team/updates", session=session)
    manifest, configs = store.fetch_update("upd-1")
    assert manifest == MANIFEST
    assert configs == [ConfigFile("config/jei/jei-client.toml", b"[advanced]\n")]
    _, _, kwargs = session.calls[0]
    assert kwargs["params"] == {"ref": "main"}
    assert kwargs["headers"]["Accept"] == "application/vnd.github.raw"


def test_missing_update_is_transport_error():
    store = GithubUpdateStore("pack-team/updates", session=FakeSession())
    with pytest.raises(TransportError) as info:
        store.fetch_manifest("nope")
    assert info.value.status == 404


def test_malformed_remote_manifest_is_parse_error():
    session = FakeSession()
    session.add(f"{API}/contents/upd-1/manifest.json", FakeResponse(200, b"[1, 2]"))
    with pytest.raises(ManifestParseError):
        GithubUpdateStore("pack-team/updates", session=session).fetch_manifest("upd-1")


def test_commit_runs_the_six_git_steps_in_order():
    session = git_session()
    store = GithubUpdateStore("pack-team/updates", token="t", session=session)
    configs = [ConfigFile("config/jei/jei-client.toml", b"[advanced]\n")]
    assert store.commit_update("upd-1", MANIFEST, configs) == "commit1"

    steps = [(method, url[len(API):]) for method, url, _ in session.calls]
    assert steps == [
        ("GET", "/git/ref/heads/main"),
        ("GET", "/git/commits/head0"),
        ("POST", "/git/blobs"),
        ("POST", "/git/blobs"),
        ("POST", "/git/trees"),
        ("POST", "/git/commits"),
        ("PATCH", "/git/refs/heads/main"),
    ]
    manifest_blob = session.calls[2][2]["json"]
    assert json.loads(base64.b64decode(manifest_blob["content"])) == MANIFEST.to_dict()
    tree = session.calls[4][2]["json"]
    assert tree["base_tree"] == "tree0"
    assert [entry["path"] for entry in tree["tree"]] == ["upd-1/manifest.json", "upd-1/config/jei/jei-client.toml"]
    assert [entry["sha"] for entry in tree["tree"]] == ["blob1", "blob2"]
    commit = session.calls[5][2]["json"]
    assert commit["parents"] == ["head0"] and commit["tree"] == "tree1"
    assert session.calls[6][2]["json"] == {"sha": "commit1", "force": False}


def test_failed_step_leaves_branch_untouched():
    session = git_session()
    session.add(f"{API}/git/trees", FakeResponse(422, b"tree invalid"), method="POST")
    store = GithubUpdateStore("pack-team/updates", session=session)
    with pytest.raises(TransportError) as info:
        store.commit_update("upd-1", MANIFEST, [])
    assert info.value.status == 422
    assert session.urls("PATCH") == []
