import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    A missing default path yields the built-in defaults; an explicitly
    requested file that does not exist is an error.
    """
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Encode profile keys may also be written flat under 'transcode'
    transcode = data.get("transcode")
    if isinstance(transcode, dict) and "profile" not in transcode:
        profile_keys = {"video_codec", "preset", "crf", "audio_codec", "audio_bitrate", "container"}
        profile = {k: transcode.pop(k) for k in list(transcode) if k in profile_keys}
        if profile:
            transcode["profile"] = profile

    return AppConfig(**data)
