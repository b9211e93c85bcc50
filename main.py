#!/usr/bin/env python3
"""
BounceBack Trainer - Engine Driver

Runs the tracking engine over a frame source and reports impacts and
session statistics.

Usage:
    python main.py --demo                  # Synthetic goal scene
    python main.py --demo --mode fast      # Start in fast mode
    python main.py --demo --frames 200     # Longer run
    python main.py --config config.json    # Load engine configuration

The host application supplies real frames through the bounceback package;
this driver only ships the synthetic source.
"""

import sys
import json
import signal
import logging
import argparse
from typing import Optional

from bounceback import EngineConfig, InvalidMode, TrackingEngine, load_config
from bounceback.demo import DemoScene
from bounceback.logger import setup_logger

logger = logging.getLogger("bounceback.main")


class TrainingMonitor:
    """
    Feeds frames to the engine and collects impacts.

    Pipeline per frame:
    1. Targets inside the goal region
    2. Unified ball detection
    3. Impact evaluation with cooldown
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        scene: Optional[DemoScene] = None,
        calibrate: bool = True
    ):
        self.engine = TrackingEngine(config)
        self.scene = scene or DemoScene()
        self.calibrate = calibrate
        self.impacts = []
        self._running = False

    def run(self, frames: int) -> dict:
        """Process `frames` synthetic frames and return the statistics."""
        self._running = True
        goal = self.scene.goal

        if self.calibrate:
            profile = self.engine.calibrate(self.scene.render(0))
            logger.info("[Main] Calibrated: %s lighting, mode %s recommended",
                        profile.lighting, profile.recommended_mode.value)

        for index in range(frames):
            if not self._running:
                break
            result = self.engine.process_frame(self.scene.render(index), goal)
            if result.impact:
                self.impacts.append(result.impact_event)
                print(f"[Main] Impact #{len(self.impacts)} on target "
                      f"{result.impact_event.target_number} ({result.impact_event.target_label}) "
                      f"at frame {index}")

        return self.engine.get_statistics().to_dict()

    def stop(self):
        self._running = False

    def close(self):
        self.engine.close()


def _load_config(path: Optional[str]) -> EngineConfig:
    try:
        return load_config(path)
    except ValueError as e:
        print(f"[Main] {e}, using defaults")
        return EngineConfig()


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="BounceBack Trainer - ball and target tracking engine"
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.json",
        help="Path to engine config file"
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run on the synthetic goal scene"
    )
    parser.add_argument(
        "--frames",
        type=int,
        default=120,
        help="Number of frames to process (default: 120)"
    )
    parser.add_argument(
        "--mode",
        type=str,
        default=None,
        help="Processing mode: fast, balanced or accurate"
    )
    parser.add_argument(
        "--no-calibrate",
        action="store_true",
        help="Skip lighting calibration on the first frame"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write logs to this file"
    )

    args = parser.parse_args(argv)

    setup_logger("bounceback", getattr(logging, args.log_level.upper(), logging.INFO), args.log_file)

    if not args.demo:
        parser.error("no frame source given (use --demo)")

    config = _load_config(args.config)
    monitor = TrainingMonitor(config, calibrate=not args.no_calibrate)

    if args.mode:
        try:
            monitor.engine.set_mode(args.mode)
        except InvalidMode as e:
            monitor.close()
            parser.error(str(e))

    # Handle SIGINT gracefully
    def signal_handler(sig, frame):
        print("\n[Main] Received interrupt signal")
        monitor.stop()

    previous_handler = signal.signal(signal.SIGINT, signal_handler)

    try:
        stats = monitor.run(args.frames)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        monitor.close()

    print("[Main] Session statistics:")
    print(json.dumps(stats, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
