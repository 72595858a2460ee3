from __future__ import annotations

from pathlib import Path

import pytest
import requests

from od2duck import utils
from od2duck.utils import clean_filename, load_yaml_file, retry_with_backoff


def test_clean_filename() -> None:
    assert clean_filename("DOMAIN\\some user") == "DOMAIN_some_user"
    assert clean_filename("  a//b?? ") == "a_b"


def test_retry_with_backoff_retries_listed_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps = []
    monkeypatch.setattr(utils.time, "sleep", sleeps.append)
    attempts = []

    @retry_with_backoff(max_retries=3, base_delay=1.0, exceptions=(requests.ConnectionError,))
    def probe():
        attempts.append(1)
        if len(attempts) < 3:
            raise requests.ConnectionError("reset")
        return 42

    assert probe() == 42
    assert sleeps == [1.0, 2.0]


def test_retry_with_backoff_gives_up(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(utils.time, "sleep", lambda _: None)

    @retry_with_backoff(max_retries=2, exceptions=(requests.Timeout,))
    def probe():
        raise requests.Timeout("slow")

    with pytest.raises(requests.Timeout):
        probe()


def test_retry_with_backoff_ignores_other_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(utils.time, "sleep", lambda _: pytest.fail("should not sleep"))

    @retry_with_backoff(exceptions=(requests.Timeout,))
    def probe():
        raise KeyError("x")

    with pytest.raises(KeyError):
        probe()


def test_load_yaml_file(tmp_path: Path) -> None:
    good = tmp_path / "filters.yml"
    good.write_text("id_origin: ['01059']\n")
    bad = tmp_path / "bad.yml"
    bad.write_text("id_origin: [unclosed\n")

    assert load_yaml_file(good) == {"id_origin": ["01059"]}
    with pytest.raises(ValueError):
        load_yaml_file(bad)
    with pytest.raises(FileNotFoundError):
        load_yaml_file(tmp_path / "absent.yml")
