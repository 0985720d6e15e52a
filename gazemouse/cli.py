"""Command line entry point"""

import argparse
import sys

from .config import Config, PRESETS


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Webcam gaze cursor with gesture click")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=None,
                        help="start from a tuning preset instead of the saved config")
    parser.add_argument("--config", type=str, default="mouse_config.json",
                        help="JSON config file (ignored when --preset is given)")
    parser.add_argument("--camera", type=int, default=None, help="camera index")
    parser.add_argument("--drive-mouse", action="store_true",
                        help="move and click the system mouse")
    parser.add_argument("--no-mirror", action="store_true",
                        help="do not mirror the cursor horizontally")
    parser.add_argument("--gaze-port", type=int, default=None,
                        help="listen for external gaze points (JSON lines) on this TCP port")
    parser.add_argument("--async-inference", action="store_true",
                        help="run the landmark model on a worker thread")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """Resolve the config from a preset or file, then apply CLI flags"""
    config = Config.from_preset(args.preset) if args.preset else Config.load(args.config)

    if args.camera is not None:
        config.camera_index = args.camera
    if args.drive_mouse:
        config.drive_system_mouse = True
    if args.no_mirror:
        config.mirror = False
    if args.gaze_port is not None:
        config.use_external_gaze = True
        config.gaze_feed_port = args.gaze_port
    if args.async_inference:
        config.async_inference = True
    return config.validate()


def main(argv=None):
    """Entry point"""
    print("\n" + "="*70)
    print("GAZE MOUSE")
    print("="*70)
    print("Initializing detection systems...")

    try:
        config = build_config(parse_args(argv))
    except ValueError as e:
        print(f"\n❌ Invalid configuration: {e}")
        sys.exit(2)

    # Camera and GUI libraries load only once the config is known to be good
    from .app import GazeMouse

    try:
        mouse = GazeMouse(config)
        mouse.run()
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
