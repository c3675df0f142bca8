# pylint: disable=missing-module-docstring,missing-function-docstring

from dataclasses import replace

import pytest

from adapters.tts.elevenlabs import ElevenLabsSynthesizer
from config import AppConfig
from session.factory import build_synthesizer


def make_config(**overrides: object) -> AppConfig:
    return replace(AppConfig.load_from_env(), **overrides)  # type: ignore[arg-type]


def test_missing_speechmatics_key_is_a_startup_error() -> None:
    config = make_config(tts_provider="speechmatics", speechmatics_api_key=None)

    with pytest.raises(RuntimeError, match="SPEECHMATICS_API_KEY"):
        build_synthesizer(config)


def test_missing_elevenlabs_settings_are_startup_errors() -> None:
    config = make_config(tts_provider="elevenlabs", elevenlabs_api_key=None)
    with pytest.raises(RuntimeError, match="ELEVENLABS_API_KEY"):
        build_synthesizer(config)

    config = make_config(
        tts_provider="elevenlabs", elevenlabs_api_key="el-key", elevenlabs_model_id=""
    )
    with pytest.raises(RuntimeError, match="ELEVENLABS_MODEL_ID"):
        build_synthesizer(config)


def test_configured_elevenlabs_is_built() -> None:
    config = make_config(
        tts_provider="elevenlabs",
        elevenlabs_api_key="el-key",
        elevenlabs_model_id="eleven_turbo_v2",
    )

    assert isinstance(build_synthesizer(config), ElevenLabsSynthesizer)


def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(RuntimeError, match="Unknown TTS_PROVIDER"):
        build_synthesizer(make_config(tts_provider="festival"))
