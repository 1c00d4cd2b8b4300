"""Page reel package."""

__all__ = ["generate_scenario_file", "render_video"]


def render_video(*args, **kwargs):
    from .engine import VideoProject

    return VideoProject(*args, **kwargs).run()


def generate_scenario_file(*args, **kwargs):
    from .engine import generate_scenario_file as _generate_scenario_file

    return _generate_scenario_file(*args, **kwargs)
