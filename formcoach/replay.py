"""
Replay a recorded landmark stream through the analysis pipeline.

Input: a JSONL file, one frame per line in the WebSocket wire format
    {"landmarks": [{"x": .., "y": .., "visibility": ..}, ...], "ts": 1234, "tags": []}

The replay runs a full workout (FrameWorker + WorkoutCoordinator over an
in-memory store), optionally writes one CSV row per rep, and prints the
workout report as JSON.

This is an offline analysis tool; it does not touch the configured store.
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .config import load_config
from .exercises import ExerciseKind
from .kinematics import FrameLandmarks
from .pipeline import FrameWorker, WorkoutCoordinator
from .stores.memory import MemoryStore

logger = logging.getLogger(__name__)

REP_CSV_FIELDS = [
    "rep_number",
    "limb",
    "timestamp_ms",
    "duration_ms",
    "angle",
    "form_rating",
    "speed_rating",
    "issues",
]


def iter_frames(path: Path, frame_ms: float = 33.0) -> Iterator[FrameLandmarks]:
    """Yield frames from a JSONL recording; frames without ``ts`` get a synthetic clock."""
    with path.open() as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Skipping malformed line %d: %s", lineno, e)
                continue
            if not isinstance(payload, dict):
                logger.warning("Skipping line %d: not a frame object", lineno)
                continue
            yield FrameLandmarks.from_payload(payload, timestamp_ms=(lineno - 1) * frame_ms)


async def replay(
    frames: List[FrameLandmarks],
    exercise: ExerciseKind,
    coordinator: Optional[WorkoutCoordinator] = None,
) -> Dict[str, Any]:
    """Run one workout over ``frames`` and return the report plus every rep result."""
    coordinator = coordinator or WorkoutCoordinator(MemoryStore())
    reps: List[Dict[str, Any]] = []
    worker = FrameWorker(coordinator, exercise=exercise, on_rep=reps.append)
    coordinator.start_workout(exercise)
    worker.start()
    for frame in frames:
        worker.submit(frame)
    await worker.stop()
    await coordinator.drain()
    report = await coordinator.stop_workout()
    return {
        "report": report,
        "reps": reps,
        "frames_processed": worker.frames_processed,
        "frames_skipped": worker.frames_skipped,
        "difficulty": coordinator.difficulty,
    }


def write_rep_csv(path: Path, reps: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=REP_CSV_FIELDS)
        writer.writeheader()
        for result in reps:
            event = result["event"]
            feedback = result["feedback"]
            writer.writerow({
                "rep_number": event["rep_number"],
                "limb": event["limb"],
                "timestamp_ms": event["timestamp_ms"],
                "duration_ms": event["duration_ms"],
                "angle": round(event["angle"], 2),
                "form_rating": feedback["form_rating"],
                "speed_rating": feedback["speed_rating"],
                "issues": ";".join(feedback["issues"]),
            })


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay recorded landmarks through formcoach.")
    parser.add_argument("input", type=Path, help="JSONL file with one frame per line.")
    parser.add_argument(
        "--exercise",
        default=ExerciseKind.BICEP_CURL.value,
        choices=[kind.value for kind in ExerciseKind],
        help="Exercise performed in the recording.",
    )
    parser.add_argument(
        "--frame-ms",
        type=float,
        default=33.0,
        help="Frame spacing used for frames that carry no timestamp.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Optional JSON config override file.")
    parser.add_argument("--reps-csv", type=Path, default=None, help="Write one row per rep to this CSV.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.input.exists():
        print(f"Input file {args.input} not found.", file=sys.stderr)
        return 1

    frames = list(iter_frames(args.input, frame_ms=args.frame_ms))
    coordinator = WorkoutCoordinator(MemoryStore(), load_config(args.config) if args.config else None)
    result = asyncio.run(replay(frames, ExerciseKind.parse(args.exercise), coordinator))

    if args.reps_csv is not None:
        write_rep_csv(args.reps_csv, result["reps"])
        print(f"[INFO] Rep details written to {args.reps_csv}", file=sys.stderr)

    print(json.dumps(result["report"], indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
