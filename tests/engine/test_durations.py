import random

import numpy as np
import pytest

from page_reel.config import ReelConfig
from page_reel.engine import (
    PipelineState,
    auto_fit_width,
    build_render_plan,
    fade_guard,
    plan_durations,
    scenario_durations,
)
from page_reel.errors import ConfigError
from page_reel.scenario import Scenario, Slide, full_view


class SizedSource:
    def __init__(self, count=3, size=(1000, 1414)):
        self.count = count
        self.size = size

    def page_count(self):
        return self.count

    def page_dimensions(self, index):
        return self.size

    def render_page(self, index, dpi):
        w, h = self.size
        return np.zeros((h, w, 4), dtype=np.uint8)

    def close(self):
        pass


@pytest.mark.parametrize("n", [1, 2, 5, 17])
@pytest.mark.parametrize("fade", [0.0, 0.3, 1.0])
def test_sum_matches_total(n, fade):
    for seed in range(5):
        total = 30.0
        d = plan_durations(total, fade, n, random.Random(seed))
        assert len(d) == n
        assert sum(d) - (n - 1) * fade == pytest.approx(total, abs=1e-4)


@pytest.mark.parametrize("n", [2, 5, 12, 30])
def test_clips_vary_at_most_15_percent(n):
    total, fade = 60.0, 0.5
    base = (total + (n - 1) * fade) / n
    for seed in range(200):
        d = plan_durations(total, fade, n, random.Random(seed))
        assert abs(d[0] / base - 1) <= 0.1501
        for a, b in zip(d, d[1:]):
            assert abs(b / a - 1) <= 0.1501
        assert sum(d) - (n - 1) * fade == pytest.approx(total, abs=1e-4)


def test_floor_at_fade():
    d = plan_durations(1.0, 1.0, 6, random.Random(3))
    assert sum(d) - 5 * 1.0 == pytest.approx(1.0, abs=1e-4)


def test_no_pages():
    assert plan_durations(10.0, 0.5, 0) == []


def test_fade_guard():
    assert fade_guard(0.5, [2.0, 1.0]) == (0.5, False)
    assert fade_guard(1.0, [2.0, 1.0]) == (0.5, True)
    assert fade_guard(1.0, []) == (1.0, False)


def test_auto_fit_width():
    assert auto_fit_width(1280, 720, 1000, 1414) == 510
    assert auto_fit_width(1280, 720, 1920, 1080) == 1280
    assert auto_fit_width(1080, 1350, 1000, 1414) == 1080
    assert auto_fit_width(1280, 720, 0, 0) == 1280


def _scenario(*durations):
    return Scenario(
        slides=[
            Slide(i + 1, f"slide_{i + 1}.png", d, [full_view(0.0, 100, 100)])
            for i, d in enumerate(durations)
        ]
    )


def test_scenario_durations_derive_total():
    d, total = scenario_durations(_scenario(2.0, 3.0), 3, 0.0, 0.5, 30)
    assert d == [2.0, 3.0, 2.5]
    assert total == pytest.approx(6.5)


def test_scenario_durations_scaled_and_snapped():
    d, total = scenario_durations(_scenario(2.0, 3.0, 4.0), 3, 10.0, 0.5, 25)
    assert total == 10.0
    assert sum(d) == pytest.approx(11.0, abs=3 / 25)
    for x in d:
        assert x * 25 == pytest.approx(round(x * 25))


def test_scenario_durations_empty():
    with pytest.raises(ConfigError):
        scenario_durations(Scenario(), 2, 0.0, 0.5, 30)


def test_build_plan_invariant_and_states():
    states = []
    cfg = ReelConfig(total_duration=12.0, fade_duration=0.5)
    plan = build_render_plan(cfg, SizedSource(4), rng=random.Random(1), on_state=states.append)
    assert plan.page_count == 4
    assert sum(plan.durations) - 3 * plan.fade_duration == pytest.approx(12.0, abs=1e-4)
    assert plan.total_duration == pytest.approx(12.0, abs=1e-4)
    assert plan.width == 510
    assert states == [PipelineState.DURATION_PLAN, PipelineState.FADE_GUARD]


def test_build_plan_fade_guard_replans():
    cfg = ReelConfig(total_duration=1.0, fade_duration=2.0)
    plan = build_render_plan(cfg, SizedSource(2), rng=random.Random(2))
    assert plan.fade_duration < min(plan.durations)
    assert plan.fade_duration < 2.0
    assert plan.total_duration == pytest.approx(1.0, abs=1e-4)


def test_build_plan_with_scenario():
    states = []
    cfg = ReelConfig(total_duration=0.0, fade_duration=0.5, width=640, height=480)
    plan = build_render_plan(cfg, SizedSource(2), _scenario(3.0, 3.0), on_state=states.append)
    assert plan.durations == (3.0, 3.0)
    assert plan.total_duration == pytest.approx(5.5)
    assert plan.width == 640
    assert PipelineState.SCENARIO_LOAD in states


def test_build_plan_rejects_empty_and_untimed():
    with pytest.raises(ConfigError):
        build_render_plan(ReelConfig(total_duration=5.0), SizedSource(0))
    with pytest.raises(ConfigError):
        build_render_plan(ReelConfig(total_duration=0.0), SizedSource(2))


def test_segment_params_from_plan():
    cfg = ReelConfig(total_duration=6.0, zoom_mode="top-left", debug=True)
    plan = build_render_plan(cfg, SizedSource(3, (1280, 720)), rng=random.Random(0))
    params = plan.segment_params(1)
    assert params.page_index == 1
    assert params.duration == plan.durations[1]
    assert params.zoom_mode == "top-left"
    assert params.debug is True
    assert params.filter == ""
