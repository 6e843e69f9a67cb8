import json

import pytest
from flask.config import Config
from prometheus_client.parser import text_string_to_metric_families

from clamav_exporter.config import as_bool, flatten, load_json


def scrape(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert resp.content_type.startswith("text/plain")
    samples = {}
    for family in text_string_to_metric_families(resp.get_data(as_text=True)):
        for sample in family.samples:
            samples[sample.name] = (sample.labels, sample.value)
    return samples


def test_metrics_nothing_enabled(client):
    assert scrape(client) == {}


def test_metrics_clamd(client, test_app, fake_clamd):
    fake_clamd.replies.update({
        "VERSION": b"ClamAV 0.102.1/25701/Mon Jan 20 12:41:43 2020\n",
        "INSTREAM": b"stream: Win.Test.EICAR_HDB-1 FOUND\n",
    })
    test_app.config.update({
        "CLAMD_ENABLE": True,
        "CLAMD_URL": fake_clamd.url,
    })

    samples = scrape(client)

    assert samples["clamav_clamd_up"] == ({"version": "0.102.1"}, 1.0)
    assert samples["clamav_clamd_db_version"][1] == 25701
    assert samples["clamav_clamd_eicar_detected"][1] == 1
    assert "clamav_icap_up" not in samples


def test_metrics_all_down(client, test_app, unreachable_url, closed_port):
    test_app.config.update({
        "CLAMD_ENABLE": "true",
        "CLAMD_URL": unreachable_url,
        "ICAP_ENABLE": 1,
        "ICAP_HOST": "127.0.0.1",
        "ICAP_PORT": closed_port,
    })

    samples = scrape(client)

    assert samples["clamav_clamd_up"] == ({"version": ""}, 0.0)
    assert samples["clamav_icap_up"] == ({"version": ""}, 0.0)


def test_health_disabled(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "OK"


def test_health(client, test_app, fake_clamd):
    fake_clamd.replies["PING"] = b"PONG\n"
    test_app.config.update({
        "CLAMD_ENABLE": True,
        "CLAMD_URL": fake_clamd.url,
    })

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "OK"


def test_health_down(client, test_app, unreachable_url):
    test_app.config.update({
        "CLAMD_ENABLE": True,
        "CLAMD_URL": unreachable_url,
    })

    resp = client.get("/health")

    assert resp.status_code == 503
    resp_d = resp.json
    assert resp_d["status"] == "KO"
    assert resp_d["error"]


def test_not_found(client):
    resp = client.get("/nope")

    assert resp.status_code == 404
    assert "error" in resp.json


def test_api_doc(client):
    resp = client.get("/api/v1/doc")

    assert resp.status_code == 200
    assert resp.json["info"]["title"] == "ClamAV exporter"
    assert "/metrics" in resp.json["paths"]


def test_load_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "listen": ":9999",
        "clamd": {"enable": True, "url": "unix:///run/clamd.sock"},
        "icap": {"enable": False, "port": 11344},
    }))

    config = Config(str(tmp_path))
    config.from_file("config.json", load=load_json)

    assert dict(config) == {
        "LISTEN": ":9999",
        "CLAMD_ENABLE": True,
        "CLAMD_URL": "unix:///run/clamd.sock",
        "ICAP_ENABLE": False,
        "ICAP_PORT": 11344,
    }


def test_flatten_nested():
    assert flatten({"a": {"b": {"c": 1}}}) == {"A_B_C": 1}


def test_as_bool():
    assert as_bool(True)
    assert as_bool(1)
    assert as_bool(" Enabled ")
    assert not as_bool("no")
    assert not as_bool(0)
    assert not as_bool(None)


def test_load_config_file_not_object(tmp_path):
    (tmp_path / "config.json").write_text("[1, 2]")

    with pytest.raises(ValueError):
        Config(str(tmp_path)).from_file("config.json", load=load_json)
