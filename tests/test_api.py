import asyncio
import json
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from vivista.config import Settings
from vivista.main import create_app, lifespan

META = json.dumps({"version": 1, "guid": "v1", "title": "Harbour walk", "description": "Docks", "length": 42.5}).encode()


def register(client, username="alice", password="pw1"):
    resp = client.post("/register", data={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.text


def upload(client, token, video_id="v1", video=b"VIDEO-BYTES", meta=META, thumb=b"THUMB"):
    files = {"video": ("main.mp4", video, "video/mp4")}
    if meta is not None:
        files["meta"] = ("meta.json", meta, "application/json")
    if thumb is not None:
        files["thumb"] = ("thumb.jpg", thumb, "image/jpeg")
    return client.post("/video", data={"id": video_id, "token": token}, files=files)


def test_end_to_end_flow(client):
    t1 = register(client)
    login = client.post("/login", data={"username": "alice", "password": "pw1"})
    assert login.status_code == 200
    t2 = login.text
    assert t1 != t2

    assert upload(client, t2).json() == {}
    listing = client.get("/").json()
    assert [v["id"] for v in listing["videos"]] == ["v1"]
    first = listing["videos"][0]
    assert first["username"] == "alice"
    assert first["title"] == "Harbour walk"
    assert first["length"] == 42

    # T1 is still valid too; re-upload without metadata keeps title/description
    resp = upload(client, t1, meta=None)
    assert resp.status_code == 200
    listing = client.get("/").json()
    assert listing["totalcount"] == 1
    second = listing["videos"][0]
    assert second["title"] == "Harbour walk"
    assert second["description"] == "Docks"
    assert datetime.fromisoformat(second["timestamp"]) > datetime.fromisoformat(first["timestamp"])


def test_register_conflict_and_bad_login(client):
    register(client, "alice")

    assert client.post("/register", data={"username": "ALICE", "password": "x"}).status_code == 409
    assert client.post("/register", data={"username": "   ", "password": "x"}).status_code == 409
    assert client.post("/login", data={"username": "alice", "password": "nope"}).status_code == 401
    assert client.post("/login", data={"username": "ghost", "password": "pw1"}).status_code == 401


def test_upload_requires_valid_token(client):
    assert upload(client, "").status_code == 401
    assert upload(client, "not-a-token").status_code == 401


def test_bearer_header_is_accepted(client):
    token = register(client)

    resp = client.post(
        "/video",
        data={"id": "v1"},
        files={"video": ("main.mp4", b"VIDEO", "video/mp4")},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert resp.status_code == 200


def test_other_user_cannot_replace_video(client):
    alice = register(client, "alice")
    bob = register(client, "bob", "pw2")
    upload(client, alice)

    resp = upload(client, bob, video=b"BOB", meta=b'{"title": "mine now"}')

    assert resp.status_code == 401
    assert client.get("/").json()["videos"][0]["title"] == "Harbour walk"
    assert client.get("/video/v1").content == b"VIDEO-BYTES"


def test_malformed_video_id_is_bad_request(client):
    token = register(client)

    assert upload(client, token, video_id="../../etc").status_code == 400


def test_file_downloads(client):
    token = register(client)
    upload(client, token)

    video = client.get("/video/v1")
    assert video.status_code == 200
    assert video.content == b"VIDEO-BYTES"
    assert video.headers["accept-ranges"] == "bytes"

    partial = client.get("/video/v1", headers={"Range": "bytes=0-4"})
    assert partial.status_code == 206
    assert partial.content == b"VIDEO"
    assert partial.headers["content-range"] == "bytes 0-4/11"

    tail = client.get("/video/v1", headers={"Range": "bytes=-3"})
    assert tail.status_code == 206
    assert tail.content == b"TES"
    assert tail.headers["content-range"] == "bytes 8-10/11"

    assert client.get("/video/v1", headers={"Range": "bytes=50-60"}).status_code == 416
    assert json.loads(client.get("/meta/v1").content)["title"] == "Harbour walk"
    assert client.get("/thumbnail/v1").content == b"THUMB"

    assert client.get("/video/missing").status_code == 404
    assert client.get("/meta/missing").status_code == 404
    assert client.get("/thumbnail/missing").status_code == 404


def test_extras_roundtrip(client):
    token = register(client)
    upload(client, token)

    resp = client.post(
        "/extras",
        data={"id": "v1", "token": token},
        files={"extra0": ("a.bin", b"zero", "application/octet-stream"), "extra2": ("b.bin", b"two", "application/octet-stream")},
    )
    assert resp.status_code == 200
    assert client.get("/extras", params={"videoid": "v1"}).json() == [0, 2]

    client.post(
        "/extras",
        data={"id": "v1", "token": token},
        files={"extra1": ("c.bin", b"one", "application/octet-stream")},
    )
    assert client.get("/extras", params={"videoid": "v1"}).json() == [1]
    assert client.get("/extra", params={"videoid": "v1", "index": 1}).content == b"one"
    assert client.get("/extra", params={"videoid": "v1", "index": 0}).status_code == 404
    assert client.get("/extras").status_code == 404


def test_extras_require_ownership(client):
    alice = register(client, "alice")
    bob = register(client, "bob", "pw2")
    upload(client, alice)
    files = {"extra0": ("a.bin", b"zero", "application/octet-stream")}

    assert client.post("/extras", data={"id": "v1", "token": bob}, files=files).status_code == 401
    assert client.post("/extras", data={"id": "v1", "token": "bogus"}, files=files).status_code == 401
    assert client.post("/extras", data={"id": "nope", "token": alice}, files=files).status_code == 404
    assert client.get("/extras", params={"videoid": "v1"}).json() == []


def test_listing_query_parameters(client):
    token = register(client)
    for i in range(3):
        upload(client, token, video_id=f"v{i}")

    page = client.get("/", params={"count": "abc", "offset": "-3"}).json()
    assert page["count"] == 10
    assert page["page"] == 1
    assert page["returned"] == 3

    page = client.get("/", params={"count": 2, "offset": 2}).json()
    assert page["page"] == 2
    assert page["returned"] == 1
    assert page["totalcount"] == 3

    assert client.get("/", params={"author": "nobody"}).json()["videos"] == []
    assert client.get("/", params={"agedays": 1}).json()["totalcount"] == 3


def test_unknown_route_and_method_are_not_found(client):
    assert client.get("/nope").status_code == 404
    assert client.put("/login").status_code == 404
    assert client.get("/register").status_code == 404


def test_plaintext_rejected_when_tls_required(settings):
    settings.require_tls = True
    with TestClient(create_app(settings)) as client:
        assert client.get("/").status_code == 426
        assert client.get("/", headers={"X-Forwarded-Proto": "https"}).status_code == 200


def test_startup_fails_without_database(tmp_path):
    settings = Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'missing-dir' / 'db.sqlite'}",
        data_dir=str(tmp_path / "data"),
    )
    app = create_app(settings)

    async def boot():
        async with lifespan(app):
            pass

    with pytest.raises(SystemExit):
        asyncio.run(boot())


def test_ping(client):
    assert client.get("/ping").json() == {"alive": True}


def test_video_info(client):
    token = register(client)
    upload(client, token)

    info = client.get("/info/v1")
    assert info.status_code == 200
    assert info.json()["username"] == "alice"
    assert info.json()["title"] == "Harbour walk"
    assert client.get("/info/missing").status_code == 404


def test_edit_and_delete(client):
    alice = register(client, "alice")
    bob = register(client, "bob", "pw2")
    upload(client, alice)

    assert client.post("/edit", data={"id": "v1", "token": bob, "title": "x"}).status_code == 401
    edited = client.post("/edit", data={"id": "v1", "token": alice, "title": "Pier", "description": "Evening"})
    assert edited.status_code == 200
    assert edited.json()["title"] == "Pier"
    assert json.loads(client.get("/meta/v1").content)["description"] == "Evening"

    assert client.post("/delete", data={"id": "v1", "token": bob}).status_code == 401
    assert client.post("/delete", data={"id": "v1", "token": alice}).json() == {}
    assert client.get("/").json()["totalcount"] == 0
    assert client.get("/video/v1").status_code == 404
    assert client.post("/delete", data={"id": "v1", "token": alice}).status_code == 404


def test_blank_author_matches_nothing(client):
    upload(client, register(client))

    assert client.get("/", params={"author": "   "}).json()["videos"] == []


def test_extra_index_out_of_range_is_rejected(client, settings):
    token = register(client)
    upload(client, token)

    resp = client.post(
        "/extras",
        data={"id": "v1", "token": token},
        files={"extra9999999999999999999999999": ("a.bin", b"big", "application/octet-stream")},
    )

    assert resp.status_code == 400
    assert sorted(p.name for p in (settings.data_path / "v1").iterdir()) == ["main.mp4", "meta.json", "thumb.jpg"]
    assert client.get("/extras", params={"videoid": "v1"}).json() == []
