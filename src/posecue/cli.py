"""posecue CLI.

Usage:
    posecue serve       Start the WebSocket streaming server
    posecue watch       Run the pipeline on the camera and print state changes
    posecue record      Record keypoints and states from the camera
    posecue replay      Replay a recording through the classifier
    posecue benchmark   Time the pipeline on synthetic frames
    posecue config      Write the default configuration as YAML
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from posecue.config import PipelineConfig
from posecue.errors import ConfigError

app = typer.Typer(
    name="posecue",
    help="Heuristic body keypoints and gesture state from a live camera.",
    add_completion=False,
)


def _setup(config_path: Optional[str], log_level: str) -> PipelineConfig:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not config_path:
        return PipelineConfig()
    try:
        return PipelineConfig.from_yaml(config_path)
    except (OSError, ConfigError) as e:
        typer.echo(f"Could not load config {config_path}: {e}", err=True)
        raise typer.Exit(1)


def _camera(config: PipelineConfig, camera: Optional[int]):
    from posecue.sources import CameraSource

    cfg = config.server
    try:
        return CameraSource(
            cfg.camera_index if camera is None else camera,
            cfg.camera_width,
            cfg.camera_height,
        )
    except (ImportError, RuntimeError) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, help="Port (default from config)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    no_capture: bool = typer.Option(False, "--no-capture", help="Don't open the camera on startup"),
    log_level: str = typer.Option("info", help="Log level"),
):
    """Start the WebSocket streaming server."""
    import uvicorn
    from posecue.server import app as fastapi_app, state

    cfg = _setup(config, log_level)
    state.configure(cfg)
    state.autostart = not no_capture

    host = host or cfg.server.host
    port = port or cfg.server.port
    typer.echo(f"Starting posecue server on {host}:{port}")
    uvicorn.run(fastapi_app, host=host, port=port, log_level=log_level)


@app.command()
def watch(
    camera: Optional[int] = typer.Option(None, help="Camera device index"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    ticks: int = typer.Option(0, help="Stop after this many ticks (0 = until Ctrl+C)"),
    log_level: str = typer.Option("warning", help="Log level"),
):
    """Print gesture state whenever it changes."""
    from posecue.pipeline import PosePipeline

    cfg = _setup(config, log_level)
    source = _camera(cfg, camera)
    pipeline = PosePipeline(config=cfg)
    last: dict = {}

    def on_state(gesture_state):
        nonlocal last
        current = gesture_state.to_dict()
        current.pop("mouth_movement")
        current.pop("movement_level")
        if current != last:
            typer.echo(
                f"hand={current['hand_position']:<7} waving={current['is_waving']!s:<5} "
                f"speaking={current['is_speaking']!s:<5} eyes_closed={current['eyes_closed']!s:<5} "
                f"posture={current['posture']}"
            )
            last = current

    pipeline.on_state(on_state)
    try:
        asyncio.run(pipeline.run(source, max_ticks=ticks or None))
    except KeyboardInterrupt:
        pass
    finally:
        pipeline.stop()
        source.close()

    stats = pipeline.stats
    typer.echo(f"\n{stats.total_ticks} ticks, {stats.fps:.0f} FPS pipeline throughput")


@app.command()
def record(
    output: str = typer.Option("recording.json", "-o", help="Output file path"),
    duration: float = typer.Option(0, help="Recording duration in seconds (0 = until Ctrl+C)"),
    compact: bool = typer.Option(False, help="Save in compact .npz format"),
    camera: Optional[int] = typer.Option(None, help="Camera device index"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: str = typer.Option("warning", help="Log level"),
):
    """Record per-tick keypoints and states from the camera."""
    from posecue.pipeline import PosePipeline
    from posecue.recorder import PoseRecorder

    cfg = _setup(config, log_level)
    source = _camera(cfg, camera)
    pipeline = PosePipeline(config=cfg)
    recorder = PoseRecorder()

    start = time.monotonic()

    def on_tick(result):
        recorder.add_frame(result.keypoints, result.timestamp, result.state)
        if recorder.frame_count % 30 == 0:
            typer.echo(f"\r   Frames: {recorder.frame_count} | "
                       f"Duration: {time.monotonic() - start:.1f}s", nl=False)
        if duration > 0 and time.monotonic() - start >= duration:
            pipeline.stop()

    pipeline.on_tick(on_tick)

    typer.echo("Recording... press Ctrl+C to stop")
    recorder.start()
    try:
        asyncio.run(pipeline.run(source))
    except KeyboardInterrupt:
        pass
    finally:
        recorder.stop()
        pipeline.stop()
        source.close()

    typer.echo(f"\n\nRecorded {recorder.frame_count} frames")
    if compact:
        path = recorder.save_compact(output)
    else:
        path = Path(output)
        recorder.save(path)
    typer.echo(f"Saved to: {path}")


@app.command()
def replay(
    recording: str = typer.Argument(..., help="Path to recording file"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    realtime: bool = typer.Option(False, help="Play at recorded timing"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
    log_level: str = typer.Option("warning", help="Log level"),
):
    """Replay a recording through the classifier and report the states."""
    from posecue.pipeline import PosePipeline
    from posecue.recorder import PosePlayer

    path = Path(recording)
    if not path.exists():
        typer.echo(f"Recording not found: {recording}", err=True)
        raise typer.Exit(1)

    cfg = _setup(config, log_level)
    player = PosePlayer.load(path)
    typer.echo(f"Replaying {path.name} ({player.frame_count} frames, {player.duration:.1f}s)")

    pipeline = PosePipeline(config=cfg)
    pipeline.start()
    changed = 0

    frames = player.play_realtime(speed=speed) if realtime else player.play()
    for frame in frames:
        result = pipeline.process_pose(frame.to_pose())
        recorded = frame.to_state()
        if recorded is not None and result.state != recorded:
            changed += 1
        typer.echo(f"   {result.tick:5d} {result.state.to_dict()}")

    pipeline.stop()
    typer.echo(f"\nReplay complete. {changed} ticks differ from the recorded states.")


@app.command()
def benchmark(
    iterations: int = typer.Option(500, help="Number of ticks"),
    width: int = typer.Option(640, help="Frame width"),
    height: int = typer.Option(480, help="Frame height"),
):
    """Time the full pipeline on synthetic frames with a skin-colored figure."""
    from posecue.frames import RawFrame
    from posecue.pipeline import PosePipeline

    rng = np.random.default_rng(42)
    image = rng.integers(0, 60, size=(height, width, 4), dtype=np.uint8)
    image[..., 3] = 255
    image[height // 8: height * 7 // 8, width // 3: width * 2 // 3, :3] = (200, 120, 90)
    frame = RawFrame(width, height, image.tobytes())

    pipeline = PosePipeline()
    pipeline.start()

    typer.echo(f"Running benchmark: {iterations} ticks at {width}x{height}")
    t0 = time.perf_counter()
    for i in range(iterations):
        pipeline.process_frame(frame, timestamp=i * 33.3)
    elapsed = time.perf_counter() - t0

    typer.echo(f"\nAverage tick: {elapsed / iterations * 1000:.3f} ms "
               f"({iterations / elapsed:.0f} ticks/s)")
    typer.echo("\nStage breakdown:")
    for name, stats in pipeline.profiler.summary().items():
        typer.echo(f"   {name:20s} avg={stats['avg_ms']:.3f}ms  p95={stats['p95_ms']:.3f}ms")


@app.command("config")
def write_config(
    output: str = typer.Argument("posecue.yml", help="Where to write the YAML"),
):
    """Write the default configuration to a YAML file."""
    PipelineConfig().to_yaml(output)
    typer.echo(f"Wrote default config to {output}")


def main():
    app()


if __name__ == "__main__":
    main()
