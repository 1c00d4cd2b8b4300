import numpy as np
import pytest
import soundfile as sf

from page_reel.audio import DEFAULT_PAGE_DURATION, audio_duration, resolve_total_duration


@pytest.fixture
def tone(tmp_path):
    sr = 22050
    t = np.linspace(0, 2.0, int(sr * 2.0), endpoint=False)
    path = tmp_path / "tone.wav"
    sf.write(path, 0.2 * np.sin(2 * np.pi * 440 * t), sr)
    return str(path)


def test_audio_duration(tone):
    assert audio_duration(tone) == pytest.approx(2.0, abs=1e-3)


def test_audio_sync_wins(tone):
    assert resolve_total_duration(10, duration=30.0, audio_path=tone, audio_sync=True) == pytest.approx(2.0, abs=1e-3)


def test_explicit_duration_without_sync(tone):
    assert resolve_total_duration(10, duration=30.0, audio_path=tone, audio_sync=False) == 30.0


def test_per_page_fallback():
    assert resolve_total_duration(4) == pytest.approx(4 * DEFAULT_PAGE_DURATION)
    assert resolve_total_duration(4, page_duration=2.5) == 10.0
