from .brain import (
    LightTarget,
    get_light_target,
    sun_altitude,
    target_brightness,
    target_color_temperature,
)
from .scenes import SceneReconciler, is_scene_active

__all__ = [
    "LightTarget",
    "get_light_target",
    "sun_altitude",
    "target_brightness",
    "target_color_temperature",
    "SceneReconciler",
    "is_scene_active",
]
