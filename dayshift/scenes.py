#!/usr/bin/env python3
"""Scene reconciliation for Dayshift.

Every cycle the managed scenes on the bridge are rewritten with the current
light target. Scenes are static snapshots, so a scene that is currently
showing on the lights has to be recalled again for the new values to
become visible. Whether a scene is showing is inferred by comparing its
stored light states with the live state of each light.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

from dayshift.brain import LightTarget
from dayshift.light_controller import BridgeError, HueBridgeClient, LightState, LightStateChange, Scene

logger = logging.getLogger(__name__)

# Scenes whose name contains this (case insensitive) are managed
SCENE_MARKER = "dayshift"

# Tolerances for "light shows its stored scene state"
BRIGHTNESS_TOLERANCE = 6   # 8-bit brightness units
MIRED_TOLERANCE = 40       # mired

DEFAULT_REQUEST_DELAY = 0.15     # seconds after each light push
DEFAULT_SCENE_TRANSITION = 1.5   # seconds


def brightness_is_close(stored: int, live: int) -> bool:
    return abs(stored - live) < BRIGHTNESS_TOLERANCE


def mired_is_close(stored: int, live: int) -> bool:
    return abs(stored - live) < MIRED_TOLERANCE


def light_matches(stored: LightStateChange, live: LightState) -> bool:
    """Whether a light shows its stored scene state. Omitted fields match."""
    if stored.bri is not None and not brightness_is_close(stored.bri, live.bri):
        return False
    if stored.ct is not None and live.ct is not None and not mired_is_close(stored.ct, live.ct):
        return False
    if stored.on is not None and stored.on != live.on:
        return False
    return True


def is_managed(scene: Scene) -> bool:
    return SCENE_MARKER in scene.name.lower() and not scene.recycle


async def is_scene_active(bridge: HueBridgeClient, scene: Scene) -> bool:
    """Check whether every light of a scene currently shows its stored state.

    Stops at the first light that does not match.

    Raises:
        BridgeError: if the live state of a light cannot be fetched
    """
    for light_id, stored in scene.light_states.items():
        live = await bridge.get_light_state(light_id)
        logger.debug(f"Light {light_id}: live {live}, scene {stored}")
        if not light_matches(stored, live):
            return False
    return True


@dataclass
class ReconcileReport:
    """What one reconciliation pass did."""
    managed: int = 0
    updated: int = 0
    skipped: int = 0
    active: int = 0
    lights_pushed: int = 0
    lights_failed: int = 0
    groups_recalled: int = 0

    def __str__(self) -> str:
        return (
            f"{self.updated}/{self.managed} scenes updated ({self.skipped} skipped, {self.active} active), "
            f"{self.lights_pushed} light states pushed ({self.lights_failed} failed), "
            f"{self.groups_recalled} groups recalled"
        )


class SceneReconciler:
    """Pushes the light target into managed scenes, one request at a time."""

    def __init__(
        self,
        bridge: HueBridgeClient,
        *,
        request_delay: float = DEFAULT_REQUEST_DELAY,
        scene_transition: float = DEFAULT_SCENE_TRANSITION,
    ) -> None:
        self.bridge = bridge
        self.request_delay = request_delay
        self.scene_transition = scene_transition

    async def update_scenes(self, scenes: Dict[str, Scene], light_target: LightTarget) -> ReconcileReport:
        """Reconcile every managed scene in a scene listing."""
        report = ReconcileReport()

        for scene_id, summary in scenes.items():
            if not is_managed(summary):
                continue
            report.managed += 1
            logger.debug(f"Updating scene {summary.name}, scene_id: {scene_id}")

            try:
                scene = await self.bridge.get_scene(scene_id)
            except BridgeError as e:
                logger.error(f"Could not find scene with id {scene_id!r}: {e}")
                report.skipped += 1
                continue

            # Must read the lights before this pass overwrites the scene
            try:
                scene_active = await is_scene_active(self.bridge, scene)
            except BridgeError as e:
                logger.error(f"Could not read light states for scene {summary.name!r}: {e}")
                report.skipped += 1
                continue

            await self.update_scene(scene, light_target, report)
            report.updated += 1

            logger.info(f"Scene {summary.name} is {'active' if scene_active else 'inactive'}!")
            if scene_active:
                report.active += 1
                await self.recall_scene(scene, report)

        return report

    async def update_scene(self, scene: Scene, light_target: LightTarget, report: Optional[ReconcileReport] = None) -> None:
        """Store a rotated light target for every light in the scene."""
        report = report if report is not None else ReconcileReport()
        member_count = len(scene.lights)

        for light_id, stored in scene.light_states.items():
            try:
                idx = scene.lights.index(light_id)
            except ValueError:
                logger.error(f"Could not find light {light_id!r} in members {scene.lights} of scene {scene.scene_id!r}")
                continue

            rotation = (idx / member_count) * 2 * math.pi
            this_light_target = light_target.rotate(rotation)
            logger.debug(f"Light target for {light_id}: {this_light_target}")

            change = LightStateChange(
                on=this_light_target.is_on(),
                bri=this_light_target.brightness(),
                ct=this_light_target.color_temp(),
                transition=self.scene_transition,
            )
            logger.debug(f"Light state for {light_id}: {change} (was {stored})")

            try:
                await self.bridge.set_light_state_in_scene(scene.scene_id, light_id, change)
                report.lights_pushed += 1
            except BridgeError as e:
                logger.error(f"Could not set light state {change} in scene id {scene.scene_id!r}: {e}")
                report.lights_failed += 1

            # The bridge drops requests when they arrive in bursts
            await asyncio.sleep(self.request_delay)

    async def recall_scene(self, scene: Scene, report: Optional[ReconcileReport] = None) -> None:
        """Recall a scene on every group made up of exactly its lights."""
        report = report if report is not None else ReconcileReport()
        try:
            groups = await self.bridge.list_groups()
        except BridgeError as e:
            logger.error(f"Could not list groups to recall scene {scene.scene_id!r}: {e}")
            return

        members = set(scene.lights)
        for group_id, group in groups.items():
            if group.recycle or set(group.lights) != members:
                continue
            logger.debug(f"Recall scene {scene.scene_id} in group {group_id}")
            try:
                await self.bridge.recall_scene_in_group(group_id, scene.scene_id)
                report.groups_recalled += 1
            except BridgeError as e:
                logger.error(f"Could not recall scene {scene.scene_id!r} in group {group_id!r}: {e}")
