import io

import pytest
import responses

from saveany.alist import AlistLoginError
from saveany.enums import StorageType
from saveany.registry import create_storage
from saveany.storage_base import StorageError, StorageNameEmptyError

password = "password"


def test_create_local_storage_round_trip(tmp_path):
    base = tmp_path / "files"
    storage = create_storage("local", name="disk", base_path=base)
    assert storage.storage_type is StorageType.LOCAL
    assert storage.name == "disk"
    assert base.is_dir()
    target = storage.join_storage_path("a.txt")
    written = storage.save(io.BytesIO(b"data"), target)
    assert storage.exists(written)
    with open(written, "rb") as handle:
        assert handle.read() == b"data"


def test_type_is_case_insensitive(tmp_path):
    storage = create_storage("LOCAL", name="disk", base_path=tmp_path)
    assert storage.storage_type is StorageType.LOCAL


def test_create_webdav_storage():
    storage = create_storage(StorageType.WEBDAV, name="dav", url="http://dav.example.com", base_path="/b")
    assert storage.storage_type is StorageType.WEBDAV
    assert storage.name == "dav"
    assert storage.join_storage_path("c.txt") == "/b/c.txt"


@pytest.mark.parametrize("kind", [StorageType.MINIO, StorageType.TELEGRAM, "nosuch"])
def test_unsupported_type_raises(kind):
    with pytest.raises(StorageError, match="unsupported storage type"):
        create_storage(kind, name="x")


def test_init_failure_is_wrapped(tmp_path):
    with pytest.raises(StorageError) as info:
        create_storage("local", name="", base_path=tmp_path)
    assert isinstance(info.value.__cause__, StorageNameEmptyError)


def test_alist_login_failure_is_wrapped():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            "http://alist.example.com/api/auth/login",
            json={"code": 400, "message": "bad credentials"},
        )
        with pytest.raises(StorageError, match="failed to initialise remote storage") as info:
            create_storage(
                "alist",
                name="remote",
                url="http://alist.example.com",
                username="admin",
                password=password,
                auto_refresh=False,
            )
    assert isinstance(info.value.__cause__, AlistLoginError)