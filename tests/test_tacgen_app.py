import io

import tacgen
from tacgen_app import block_to_dict, create_app
from tacgen import SAMPLE_CODE

from test_tacgen import SAMPLE_LISTING


def test_sample(client):
    resp = client.get("/sample")
    assert resp.status_code == 200
    assert resp.get_json() == {"code": SAMPLE_CODE}


def test_compile_sample(client):
    resp = client.post("/compile", json={"code": SAMPLE_CODE})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["listing"] == SAMPLE_LISTING
    assert data["tac"][0] == {"line": 1, "code": "if (a<5) goto 3"}
    assert data["errors"] == []
    assert data["skipped"] == []

    block = data["blocks"][0]
    assert block["type"] == "Conditional"
    assert block["condition"] == "a<5"
    assert [b["target"] for b in block["body"]] == ["c", "d"]
    assert [b["expr"] for b in block["else_body"]] == ["a+b", "x+y"]


def test_compile_reports_skipped_lines(client):
    data = client.post("/compile", json={"code": "x = a+b\nwhat"}).get_json()
    assert data["listing"] == ["1) T1=a+b", "2) x=T1", "3) END"]
    assert data["skipped"] == [1]


def test_compile_upload(client):
    resp = client.post(
        "/compile",
        data={"file": (io.BytesIO(b"x = a+b\n"), "prog.txt")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert resp.get_json()["listing"] == ["1) T1=a+b", "2) x=T1", "3) END"]


def test_compile_upload_wrong_extension(client):
    resp = client.post(
        "/compile",
        data={"file": (io.BytesIO(b"x = a+b"), "prog.py")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert "Unsupported file type" in resp.get_json()["errors"][0]


def test_compile_upload_strips_bom(client):
    resp = client.post(
        "/compile",
        data={"file": (io.BytesIO(b"\xef\xbb\xbfx = a+b\n"), "prog.txt")},
        content_type="multipart/form-data",
    )
    data = resp.get_json()
    assert data["blocks"][0]["text"] == "x = a+b"
    assert data["listing"] == ["1) T1=a+b", "2) x=T1", "3) END"]


def test_compile_upload_not_utf8(client):
    resp = client.post(
        "/compile",
        data={"file": (io.BytesIO(b"\xff\xfe\xfa"), "prog.txt")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400


def test_compile_rejects_blank_source(client):
    resp = client.post("/compile", json={"code": "   \n  "})
    assert resp.status_code == 400
    data = resp.get_json()
    assert data["errors"] == ["Please enter some code"]
    assert data["tac"] == []


def test_compile_rejects_non_json(client):
    resp = client.post("/compile", data="x = 1", content_type="text/plain")
    assert resp.status_code == 400


def test_compile_rejects_non_string_code(client):
    resp = client.post("/compile", json={"code": 42})
    assert resp.status_code == 400


def test_compile_rejects_long_source():
    client = create_app({"TESTING": True, "MAX_SOURCE_LENGTH": 5}).test_client()
    resp = client.post("/compile", json={"code": "x = a+b"})
    assert resp.status_code == 400
    assert "exceeds" in resp.get_json()["errors"][0]


def test_compile_unexpected_error(client, monkeypatch):
    def boom(code, verbose=False):
        raise RuntimeError("boom")

    monkeypatch.setattr(tacgen, "compile_source", boom)
    resp = client.post("/compile", json={"code": "x = 1"})
    assert resp.status_code == 500
    assert resp.get_json()["errors"] == ["Unexpected error: boom"]


def test_step_next(client):
    resp = client.post("/step", json={"code": SAMPLE_CODE, "step": 0, "action": "next"})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["step"] == 1
    assert data["instruction"] == {"line": 2, "code": "goto 8"}
    assert data["visual"]["kind"] == "goto"
    assert data["highlight"] == []
    assert data["total"] == 12


def test_step_highlights_source(client):
    data = client.post("/step", json={"code": SAMPLE_CODE, "step": 2}).get_json()
    assert data["instruction"]["code"] == "T1=b+d"
    assert data["visual"]["title"] == "Temporary Value Calculation"
    assert data["highlight"] == [2]


def test_step_is_clamped(client):
    data = client.post("/step", json={"code": SAMPLE_CODE, "step": 99}).get_json()
    assert data["step"] == 11
    assert data["at_end"]
    assert data["instruction"]["code"] == "END"
    assert data["visual"]["title"] == "Execution Complete"

    data = client.post("/step", json={"code": SAMPLE_CODE, "step": 0, "action": "previous"}).get_json()
    assert data["step"] == 0
    assert data["at_start"]


def test_step_reset(client):
    data = client.post("/step", json={"code": SAMPLE_CODE, "step": 5, "action": "reset"}).get_json()
    assert data["step"] == 0
    assert not data["playing"]


def test_step_delay_is_clamped(client):
    data = client.post("/step", json={"code": SAMPLE_CODE, "delay_ms": 5000}).get_json()
    assert data["delay_ms"] == 2000


def test_step_bad_requests(client):
    assert client.post("/step", json={"code": SAMPLE_CODE, "action": "jump"}).status_code == 400
    assert client.post("/step", json={"code": SAMPLE_CODE, "step": "3"}).status_code == 400
    assert client.post("/step", json={"code": SAMPLE_CODE, "delay_ms": "fast"}).status_code == 400
    assert client.post("/step", json={"code": ""}).status_code == 400


def test_config_defaults(client):
    assert client.get("/config").get_json() == {
        "delay_ms": 1000, "min_delay_ms": 200, "max_delay_ms": 2000, "delay_step_ms": 100,
    }


def test_config_override():
    client = create_app({"TESTING": True, "STEP_DELAY_MS": 500}).test_client()
    assert client.get("/config").get_json()["delay_ms"] == 500
    data = client.post("/step", json={"code": "x = 1"}).get_json()
    assert data["delay_ms"] == 500


def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("TACGEN_MAX_STEP_DELAY_MS", "3000")
    app = create_app({"TESTING": True})
    assert app.config["MAX_STEP_DELAY_MS"] == 3000


def test_cors_header(client):
    resp = client.get("/sample", headers={"Origin": "http://example.com"})
    # older flask-cors releases answer "*", newer ones echo the request origin
    assert resp.headers["Access-Control-Allow-Origin"] in ("*", "http://example.com")


def test_block_to_dict_without_else():
    block = tacgen.analyze(["if (a) {", "x = 1", "}"])[0]
    d = block_to_dict(block)
    assert d["type"] == "Conditional"
    assert d["else_body"] is None
    assert d["body"] == [{"type": "Assignment", "lineno": 1, "text": "x = 1", "target": "x", "expr": "1"}]
    assert block_to_dict(None) is None


def test_step_upload_reads_form_fields(client):
    resp = client.post(
        "/step",
        data={
            "file": (io.BytesIO(SAMPLE_CODE.encode("utf-8")), "prog.txt"),
            "step": "5",
            "action": "next",
            "delay_ms": "5000",
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["step"] == 6
    assert data["instruction"] == {"line": 7, "code": "goto__12_"}
    assert data["delay_ms"] == 2000


def test_step_upload_defaults_and_bad_fields(client):
    data = client.post(
        "/step",
        data={"file": (io.BytesIO(b"x = a+b"), "prog.txt")},
        content_type="multipart/form-data",
    ).get_json()
    assert data["step"] == 0
    assert data["instruction"] == {"line": 1, "code": "T1=a+b"}

    resp = client.post(
        "/step",
        data={"file": (io.BytesIO(b"x = a+b"), "prog.txt"), "step": "two"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == ["'step' must be an integer"]

    resp = client.post(
        "/step",
        data={"file": (io.BytesIO(b"x = a+b"), "prog.txt"), "action": "jump"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
