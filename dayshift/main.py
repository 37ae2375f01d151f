#!/usr/bin/env python3
"""Dayshift control loop - keeps Hue scenes following the sun."""

import asyncio
import logging
import os
import sys
from typing import Optional

from dayshift.brain import get_light_target
from dayshift.config import Config, ConfigError, load_config
from dayshift.light_controller import BridgeError, HueBridgeClient
from dayshift.scenes import ReconcileReport, SceneReconciler

logger = logging.getLogger(__name__)


class ControlLoop:
    """Runs one reconciliation pass per cycle interval.

    The next deadline is taken at the start of a cycle, so a slow cycle
    shortens the following sleep instead of shifting the cadence.
    """

    def __init__(self, config: Config, bridge: HueBridgeClient):
        self.config = config
        self.bridge = bridge
        self.reconciler = SceneReconciler(
            bridge,
            request_delay=config.control.request_delay,
            scene_transition=config.control.scene_transition,
        )

    async def run_once(self) -> Optional[ReconcileReport]:
        """Run a single cycle. Returns None when the scene list is unavailable."""
        light_target = get_light_target(self.config)

        try:
            scenes = await self.bridge.list_scenes()
        except BridgeError as e:
            logger.error(f"Error: {e}")
            return None

        report = await self.reconciler.update_scenes(scenes, light_target)
        logger.info(
            f"Cycle done: bri={light_target.brightness()}, ct={light_target.color_temp()} | {report}"
        )
        return report

    async def run(self) -> None:
        """Run cycles until cancelled."""
        loop = asyncio.get_running_loop()
        interval = self.config.control.cycle_interval
        logger.info(f"Started control loop (runs every {interval:g} seconds)")

        while True:
            next_step = loop.time() + interval
            try:
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("Control loop cancelled")
                raise
            except Exception as e:
                logger.exception(f"Unexpected error in control loop: {e}")

            await asyncio.sleep(max(0.0, next_step - loop.time()))


async def run(config: Config) -> None:
    """Open the bridge client and run the control loop on it."""
    async with HueBridgeClient(config.hue.bridge_address, config.hue.username) as bridge:
        await ControlLoop(config, bridge).run()


def main():
    """Main entry point."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"Error while retrieving config: {e}")
        sys.exit(1)

    logger.info(
        f"Using bridge {config.hue.bridge_address}, location "
        f"lat={config.location.lat}, long={config.location.long}, tz={config.timezone or 'local'}"
    )

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
