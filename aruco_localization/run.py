import argparse
import signal
import sys

from .config import LocalizerConfig, load_config
from .marker_map import MarkerMapError
from .worker import LocalizerWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Localize a camera against an ArUco marker map")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--name")
    ap.add_argument("--markermap", help="Marker map YAML file")
    ap.add_argument("--marker-size", type=float)
    ap.add_argument("--calib", help="camera_info YAML or OpenCV calibration file")
    ap.add_argument("--images", help="Replay images from this folder")
    ap.add_argument("--device")
    ap.add_argument("--out")
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--show", action="store_true")
    ap.add_argument("--save-annotated", action="store_true")
    ap.add_argument("--dry-run", action="store_true")

    return ap


def _apply_args(cfg: LocalizerConfig, args: argparse.Namespace) -> LocalizerConfig:
    device = args.device
    if isinstance(device, str) and device.isdigit():
        device = int(device)

    cfg.apply_overrides(
        name=args.name,
        markermap_config=args.markermap,
        marker_size=args.marker_size,
        calibration_path=args.calib,
        image_dir=args.images,
        device=device,
        session_root=args.out,
        max_frames=args.max_frames,
        show_output_video=True if args.show else None,
        save_annotated=True if args.save_annotated else None,
        dry_run=True if args.dry_run else None,
    )
    return cfg


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else LocalizerConfig()
    cfg = _apply_args(cfg, args)
    if not cfg.markermap_config:
        ap.error("a marker map is required (--markermap or markermap_config)")

    try:
        worker = LocalizerWorker(cfg)
    except (FileNotFoundError, MarkerMapError) as exc:
        print(f"cannot load marker map: {exc}", file=sys.stderr)
        return 2

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    summary = worker.run()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
