import argparse
import json
import logging
import time
from typing import Any, Dict, List, Optional

import uvicorn
import uvloop
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .coaches.feedback_generator import generate_workout_report
from .config import DATA_DIR, LOG_LEVEL, STORE_NAME, load_config
from .errors import UnknownExerciseError
from .exercises import ExerciseKind
from .kinematics import FrameLandmarks
from .pipeline import FrameWorker, WorkoutCoordinator
from .stores import build_store, get_available_stores

# Install and use uvloop as the default event loop
uvloop.install()

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI()

coordinator = WorkoutCoordinator(build_store(STORE_NAME, DATA_DIR), load_config())
# Open WebSocket clients sharing the coordinator
active_connections = 0


class StartWorkoutRequest(BaseModel):
    exercise: str
    target_reps: int = 0

    class Config:
        extra = "ignore"


class RatingRequest(BaseModel):
    workout_id: str
    rating: int


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _parse_exercise(value: Any) -> ExerciseKind:
    try:
        return ExerciseKind.parse(value)
    except UnknownExerciseError as e:
        raise HTTPException(status_code=400, detail=str(e.args[0]))


@app.get("/")
def read_root():
    return {
        "message": "Welcome to formcoach - rep counting and form feedback API",
        "store": coordinator.store.name,
        "available_stores": get_available_stores(),
        "exercises": [kind.value for kind in ExerciseKind],
        "config": coordinator.config.to_dict(),
    }


@app.post("/workouts/start")
def start_workout(request: StartWorkoutRequest):
    exercise = _parse_exercise(request.exercise)
    session = coordinator.start_workout(exercise, target_reps=request.target_reps)
    return {"status": "started", "progress": session.get_progress()}


@app.post("/workouts/stop")
async def stop_workout():
    report = await coordinator.stop_workout()
    if report is None:
        raise HTTPException(status_code=409, detail="No active workout")
    return report


@app.get("/workouts/current")
def current_workout():
    session = coordinator.session
    if session is None:
        return {"is_active": False}
    return session.get_progress()


@app.get("/workouts")
def list_workouts():
    return [record.to_dict() for record in coordinator.store.list_workouts()]


@app.get("/workouts/{workout_id}")
def get_workout(workout_id: str):
    record = coordinator.store.get_workout(workout_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Workout {workout_id} not found")
    data = record.to_dict()
    data["rep_details"] = record.rep_details
    data["report"] = generate_workout_report(record.summary, record.feedbacks)
    return data


@app.delete("/workouts/{workout_id}")
def delete_workout(workout_id: str):
    if not coordinator.store.delete_workout(workout_id):
        raise HTTPException(status_code=404, detail=f"Workout {workout_id} not found")
    logger.info("Deleted workout %s", workout_id)
    return {"status": "deleted", "id": workout_id}


@app.get("/stats")
def get_stats():
    return coordinator.store.workout_stats().to_dict()


@app.post("/ratings")
async def submit_rating(request: RatingRequest):
    try:
        await coordinator.submit_rating(request.workout_id, request.rating)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok", "recommendations": list(coordinator.recommendations)}


@app.get("/recommendations")
async def get_recommendations():
    recs = await coordinator.update_recommendations()
    return {"recommendations": recs}


@app.get("/difficulty")
def get_difficulty():
    return {"difficulty": coordinator.difficulty}


async def handle_command(command_data: Dict[str, Any], worker: FrameWorker) -> Optional[Dict[str, Any]]:
    command = command_data.get("command")

    if command == "select_exercise":
        exercise = ExerciseKind.parse(command_data.get("exercise"))
        worker.select_exercise(exercise)
        return {"type": "exercise_selected", "exercise": exercise.value}

    if command == "reset":
        worker.reset()
        return {"type": "reset"}

    if command == "start_workout":
        exercise = ExerciseKind.parse(command_data.get("exercise") or worker.exercise)
        worker.select_exercise(exercise)
        session = coordinator.start_workout(exercise, int(command_data.get("target_reps") or 0))
        return {"type": "workout_started", "progress": session.get_progress()}

    if command == "stop_workout":
        # Let queued frames count before closing the session
        await worker.queue.join()
        report = await coordinator.stop_workout()
        if report is None:
            return {"type": "error", "message": "No active workout"}
        # The summary itself reaches the client through the workout observer
        return None

    if command == "status":
        await worker.queue.join()
        session = coordinator.session
        return {
            "type": "status",
            "exercise": worker.exercise.value,
            "counts": worker.bank.counts(),
            "angles": dict(worker.last_angles),
            "frames_processed": worker.frames_processed,
            "frames_skipped": worker.frames_skipped,
            "difficulty": coordinator.difficulty,
            "progress": session.get_progress() if session is not None else None,
        }

    return {"type": "error", "message": f"Unknown command '{command}'"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    global active_connections
    logger.info("WebSocket connection attempt received (store=%s).", coordinator.store.name)
    await websocket.accept()
    logger.info("WebSocket connection accepted.")

    async def send_rep(result: Dict[str, Any]):
        await websocket.send_json({"type": "rep", **result})

    async def send_difficulty(difficulty: int):
        await websocket.send_json({"type": "difficulty", "difficulty": difficulty})

    async def send_recommendations(items):
        await websocket.send_json({"type": "recommendations", "recommendations": items})

    async def send_workout(report: Dict[str, Any]):
        await websocket.send_json({"type": "workout_summary", "report": report})

    worker = FrameWorker(coordinator, on_rep=send_rep)
    coordinator.subscribe_difficulty(send_difficulty)
    coordinator.subscribe_recommendations(send_recommendations)
    coordinator.subscribe_workouts(send_workout)
    worker.start()
    active_connections += 1

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Received malformed data packet")
                continue
            if not isinstance(message, dict):
                logger.warning("Received malformed data packet")
                continue

            if "command" in message:
                try:
                    response = await handle_command(message, worker)
                except (UnknownExerciseError, TypeError, ValueError) as e:
                    response = {"type": "error", "message": str(e)}
                if response:
                    await websocket.send_json(response)
                continue

            try:
                frame = FrameLandmarks.from_payload(message, time.time() * 1000.0)
            except (KeyError, TypeError, ValueError) as decode_error:
                logger.warning("Failed to decode frame: %s", decode_error)
                continue
            worker.submit(frame)

    except WebSocketDisconnect:
        logger.info("Client disconnected")
    except Exception as websocket_error:
        logger.error("WebSocket connection error: %s", websocket_error)
    finally:
        for callback in (send_difficulty, send_recommendations, send_workout):
            coordinator.unsubscribe(callback)
        await worker.stop()
        active_connections -= 1
        if active_connections == 0:
            await coordinator.cancel_pending()
        logger.info("Client connection closed")


def serve(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the formcoach API server.")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    parser.add_argument("--log-level", default=LOG_LEVEL.lower(), help="uvicorn log level.")
    args = parser.parse_args(argv)

    logger.info("Serving formcoach on %s:%d (store=%s)", args.host, args.port, coordinator.store.name)
    uvicorn.run(app, host=args.host, port=args.port, loop="uvloop", log_level=args.log_level)
