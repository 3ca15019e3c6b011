"""
Pocket Challenge Web Server — Layer 3 (FastAPI + WebSocket)

Runs the frame loop, feeds pointer gestures into the controller and
broadcasts the rendering snapshot to browser clients over WebSocket.
Drawing happens in the client; this process only owns the game.
"""

import asyncio
import json
import os
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from controller import PocketController
from highscore import HighScoreStore
from physics import DEFAULT_CONFIG, GameConfig
from shot_presets import ShotPreset

# ── Controller ──────────────────────────────────────────────────────────────

_config_path = os.environ.get("POCKET_CONFIG")
config = GameConfig.from_file(_config_path) if _config_path else DEFAULT_CONFIG
store = HighScoreStore(os.environ.get("POCKET_HIGHSCORE_FILE", "highscore.json"))
ctrl = PocketController(config, store=store)


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

clients: list[WebSocket] = []

# Scenario map (keys 1-4)
SCENARIOS = {
    "1": (ShotPreset.scenario_1_straight,  "1: Straight"),
    "2": (ShotPreset.scenario_2_bank,      "2: Bank"),
    "3": (ShotPreset.scenario_3_pass_over, "3: Pass-over"),
    "4": (ShotPreset.scenario_4_short,     "4: Short"),
}

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Main game loop running at ~60 fps, one physics tick per frame."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now

        # Clamp dt so a stalled frame doesn't skip the score/miss delay
        if dt > 0.05:
            dt = 0.05

        ctrl.step(dt)

        if clients:
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)
        else:
            # Nobody to deliver to; don't replay old events on the next connect
            ctrl.pending_events.clear()
            ctrl.physics_events.clear()

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _build_frame_message() -> str:
    """Serialize the current snapshot plus drained event queues."""
    frame = {"type": "frame", **ctrl.get_frame()}

    frame["events"] = list(ctrl.pending_events)
    ctrl.pending_events.clear()

    frame["sounds"] = [
        {"type": ev.get("type", ""), "speed": round(float(ev.get("speed", 0.0)), 3)}
        for ev in ctrl.physics_events
    ]
    ctrl.physics_events.clear()

    return json.dumps(frame, separators=(',', ':'))


def _point(msg: dict) -> tuple[float, float]:
    return float(msg.get("x", 0.0)), float(msg.get("y", 0.0))


def _handle_command(msg: dict):
    """Apply one client command. Returns a reply dict or None."""
    cmd = msg.get("cmd", "")
    if cmd == "pointer_down":
        ctrl.begin_drag(_point(msg))
    elif cmd == "pointer_move":
        ctrl.update_drag(_point(msg))
    elif cmd == "pointer_up":
        ctrl.end_drag(_point(msg) if "x" in msg else None)
    elif cmd == "restart":
        ctrl.restart()
    elif cmd == "scenario":
        entry = SCENARIOS.get(str(msg.get("key", "")))
        if entry is not None:
            fn, label = entry
            ctrl.load_scenario(fn, label)
    elif cmd == "preview":
        start = (float(msg.get("x1", 0.0)), float(msg.get("y1", 0.0)))
        end = (float(msg.get("x2", 0.0)), float(msg.get("y2", 0.0)))
        return {"type": "preview", "data": ctrl.simulate_shot(start, end)}
    elif cmd == "get_state":
        return {"type": "state", "data": ctrl.get_frame()}
    return None


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    print(f"[SERVER] client connected ({len(clients)} total)")

    await ws.send_text(json.dumps({"type": "init", "config": asdict(ctrl.config)}))

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue
            try:
                reply = _handle_command(msg)
            except (TypeError, ValueError) as e:
                print(f"[SERVER] bad command {msg.get('cmd')!r}: {e}")
                continue
            if reply is not None:
                await ws.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        print(f"[SERVER] client disconnected ({len(clients)} left)")


# ── HTTP routes ─────────────────────────────────────────────────────────────

@app.get("/api/state")
async def api_state():
    return ctrl.get_frame()


@app.get("/api/config")
async def api_config():
    return asdict(ctrl.config)


if Path("static").is_dir():
    app.mount("/static", StaticFiles(directory="static"), name="static")


@app.get("/")
async def root():
    index = Path("static/index.html")
    if index.is_file():
        return FileResponse(index)
    return JSONResponse({"status": "ok", "ws": "/ws"})


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
