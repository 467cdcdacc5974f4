import json

from cardpull.ctl import main


def _out(capsys):
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_config_set_and_get(tmp_path, capsys):
    url = f"sqlite:///{tmp_path}/ctl.db"
    assert main(["--database-url", url, "config", "set", "p1", "--enabled",
                 "--url", " https://x/y ", "--token", "tok"]) == 0
    assert _out(capsys) == {
        "product_id": "p1", "enabled": True, "url": "https://x/y",
        "token": "tok",
    }

    # partial update keeps the rest
    assert main(["--database-url", url, "config", "set", "p1",
                 "--disabled"]) == 0
    capsys.readouterr()
    assert main(["--database-url", url, "config", "get", "p1"]) == 0
    assert _out(capsys) == {
        "product_id": "p1", "enabled": False, "url": "https://x/y",
        "token": "tok",
    }


def test_config_set_rejects_invalid_url(tmp_path, capsys):
    url = f"sqlite:///{tmp_path}/ctl.db"
    assert main(["--database-url", url, "config", "set", "p1",
                 "--url", "nope"]) == 2
    assert "invalid url" in capsys.readouterr().err


def test_pull_disabled_exits_zero(tmp_path, capsys):
    url = f"sqlite:///{tmp_path}/ctl.db"
    assert main(["--database-url", url, "pull", "p1"]) == 0
    assert _out(capsys) == {
        "ok": False, "skipped": True, "error": "api_disabled",
    }


def test_pull_missing_url_exits_one(tmp_path, capsys):
    url = f"sqlite:///{tmp_path}/ctl.db"
    main(["--database-url", url, "config", "set", "p1", "--enabled"])
    capsys.readouterr()
    assert main(["--database-url", url, "pull", "p1"]) == 1
    assert _out(capsys) == {"ok": False, "error": "api_url_missing"}
