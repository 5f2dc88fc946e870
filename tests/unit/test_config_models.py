import pytest
from pathlib import Path
from pydantic import ValidationError
from clipbatch.config.loader import load_config
from clipbatch.config.models import AppConfig, MergeConfig, QueueConfig, TranscodeConfig, WatchConfig
from clipbatch.domain.models import IdentityMode


def test_defaults():
    config = AppConfig()
    assert config.transcode.target_duration_s == 20.0
    assert config.transcode.speed_window_s == 4.0
    assert config.transcode.profile.video_codec == "libx264"
    assert config.transcode.profile.preset == "fast"
    assert config.transcode.profile.crf == 23
    assert config.transcode.profile.audio_codec == "aac"
    assert config.transcode.profile.audio_bitrate == "128k"
    assert config.queue.retry_budget == 3
    assert config.queue.recent_window_s == 1800
    assert config.queue.drain_interval_s == 2
    assert config.queue.max_in_flight == 1
    assert config.merge.outputs_per_group == 4
    assert config.merge.batch_size == 5
    assert config.merge.check_interval_s == 10
    assert config.watch.identity_mode == IdentityMode.STAT
    assert config.watch.stable_readings == 3
    assert config.watch.stability_timeout_s == 30


def test_extensions_are_normalized():
    config = WatchConfig(extensions=["MP4", ".Mov", " mkv "])
    assert config.extensions == [".mp4", ".mov", ".mkv"]


def test_empty_extensions_rejected():
    with pytest.raises(ValidationError):
        WatchConfig(extensions=["", "  "])


def test_speed_window_must_be_smaller_than_target():
    with pytest.raises(ValidationError):
        TranscodeConfig(target_duration_s=4, speed_window_s=4)


def test_merge_tags_validation():
    with pytest.raises(ValidationError):
        MergeConfig(pending_tag="S1---", consumed_tag="S1---")
    with pytest.raises(ValidationError):
        MergeConfig(pending_tag="S1", consumed_tag="S1x")
    with pytest.raises(ValidationError):
        MergeConfig(pending_tag="", consumed_tag="S2---")


def test_queue_bounds():
    with pytest.raises(ValidationError):
        QueueConfig(retry_budget=0)
    with pytest.raises(ValidationError):
        QueueConfig(max_in_flight=0)


def test_load_config_none_returns_defaults():
    assert load_config(None) == AppConfig()


def test_load_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_load_config_from_yaml(config_yaml_path):
    config = load_config(config_yaml_path)

    assert config.general.staging_dir_name == "archive"
    assert config.general.debug is True
    assert config.watch.extensions == [".mp4", ".mov"]
    assert config.watch.identity_mode == IdentityMode.PATH
    assert config.transcode.target_duration_s == 15
    # Flat profile keys end up in the profile section
    assert config.transcode.profile.crf == 28
    assert config.transcode.profile.preset == "veryfast"
    assert config.merge.batch_size == 3
    assert config.merge.outputs_per_group == 2


def test_load_config_empty_file(tmp_path):
    conf = tmp_path / "empty.yaml"
    conf.write_text("")
    assert load_config(conf) == AppConfig()


def test_shipped_example_config_loads():
    conf = Path(__file__).resolve().parents[2] / "conf" / "clipbatch.yaml"
    config = load_config(conf)
    assert config.merge.pending_tag == "S1---"
    assert config.transcode.profile.audio_bitrate == "128k"
