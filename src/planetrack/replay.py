import argparse
import csv
import logging
from itertools import groupby
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from planetrack.config import load_config
from planetrack.engine.engine import TrackingEngine, build_repository
from planetrack.pv.observation import Detections
from planetrack.vision.calibration import CalibrationRecord, CalibrationStorageError

def read_rows(path: Path) -> Iterator[Tuple[float, str, float, float]]:
    """Rows of a ``t,track_id,x,y`` CSV (header required)."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            yield float(row["t"]), str(row["track_id"]), float(row["x"]), float(row["y"])

def parse_corners(text: str) -> Tuple[Tuple[float, float], ...]:
    """'x0,y0;x1,y1;x2,y2;x3,y3' -> four points."""
    pts = []
    for chunk in text.split(";"):
        x, y = chunk.split(",")
        pts.append((float(x), float(y)))
    if len(pts) != 4:
        raise argparse.ArgumentTypeError(f"expected 4 corners, got {len(pts)}")
    return tuple(pts)

def fmt(v) -> str:
    return "(" + ", ".join(f"{c:+.4f}" for c in v) + ")"

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Replay recorded detections through calibration and smoothing.")
    ap.add_argument("csv", type=Path, help="CSV with columns t,track_id,x,y")
    ap.add_argument("--config", type=Path, default=None, help="config.json (default: config/config.json)")
    ap.add_argument("--corners", type=parse_corners, default=None,
                    help="calibration corners 'x0,y0;x1,y1;x2,y2;x3,y3' instead of the stored calibration")
    ap.add_argument("--pixels", action="store_true", help="points are image pixels, not normalized")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    cfg = load_config(args.config)
    engine = TrackingEngine(cfg, repository=build_repository(cfg))
    if args.corners is not None:
        result = engine.calibration.apply_record(
            CalibrationRecord(image_corners=args.corners, width=cfg.table.width, height=cfg.table.height))
    else:
        try:
            result = engine.load_calibration()
        except CalibrationStorageError as e:
            print(f"[error] {e}")
            return 1
    if result is None or not engine.is_ready():
        print("[error] No usable calibration.")
        print("Tip: pass --corners or save a calibration through the API first.")
        return 1

    prev_t = None
    for t, rows in groupby(read_rows(args.csv), key=lambda r: r[0]):
        dt = 0.0 if prev_t is None else t - prev_t
        prev_t = t
        engine.publish(Detections(points={tid: (x, y) for _, tid, x, y in rows},
                                  normalized=not args.pixels, timestamp=t))
        for tid, snap in engine.tick(dt).items():
            print(f"t={t:8.3f} id={tid:>4} pos={fmt(snap.position)} vel={fmt(snap.velocity)} acc={fmt(snap.acceleration)}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
