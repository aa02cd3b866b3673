"""Tests for configuration loading."""
import pytest

from cmt.config import Config, load_config


def test_defaults_without_file():
    config = load_config()
    assert isinstance(config, Config)
    assert config.watch.interval == 15
    assert config.watch.base_unit_s == 1.0
    assert config.watch.snapshot_path == "data"
    assert config.decoder.histogram_count_label is None
    assert config.global_.log_level == "INFO"


def test_load_yaml(tmp_path):
    path = tmp_path / "cmt.yaml"
    path.write_text(
        "global:\n"
        "  log_level: DEBUG\n"
        "watch:\n"
        "  targets: [/run/ceph/osd.0.asok]\n"
        "  interval: 5\n"
        "decoder:\n"
        "  histogram_count_label: count\n"
    )
    config = load_config(str(path))
    assert config.global_.log_level == "DEBUG"
    assert config.watch.targets == ["/run/ceph/osd.0.asok"]
    assert config.watch.interval == 5
    assert config.decoder.histogram_count_label == "count"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("CMT_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("CMT_SNAPSHOT_PATH", str(tmp_path / "snap"))
    config = load_config()
    assert config.global_.log_level == "WARNING"
    assert config.watch.snapshot_path == str(tmp_path / "snap")


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_invalid_interval(tmp_path):
    path = tmp_path / "cmt.yaml"
    path.write_text("watch:\n  interval: 0\n")
    with pytest.raises(ValueError):
        load_config(str(path))
