"""Simple demo of a study group sharing one board, without any external backend."""

import argparse
import asyncio
import time
from random import choice, random

from loguru import logger
from rich.console import Console

from studyflow.config import Settings
from studyflow.taskboard import StudyFlowApp
from studyflow.taskboard.server import start_server
from studyflow.taskboard.view import render_board
from studyflow.utils.logging import setup_logger

STUDY_TASKS = [
    ("Ch.5 Quiz", "pages 120-150"),
    ("Lab report", "titration results"),
    ("Essay outline", "three sources minimum"),
    ("Flashcards", "unit 4 vocabulary"),
    ("Past paper", "2019, section B"),
]


async def simulate_member(app: StudyFlowApp, rounds: int) -> None:
    """Randomly add tasks or advance existing ones."""
    for _ in range(rounds):
        await asyncio.sleep(random() * 0.3)
        tasks = app.tasks
        if not tasks or random() < 0.3:
            title, description = choice(STUDY_TASKS)
            await app.add_task(title, description)
        else:
            await app.advance(choice(tasks).id)


async def run_demo(settings: Settings, members: int, rounds: int) -> None:
    apps = [StudyFlowApp.from_settings(settings) for _ in range(members)]
    for app in apps:
        await app.start()
        logger.info(f"Member joined: {app.session_id}")

    await asyncio.gather(*(simulate_member(app, rounds) for app in apps))
    # Let the last notifications reach every member
    await asyncio.sleep(0.5)

    viewer = apps[0]
    render_board(viewer.tasks, viewer.session_id, console=Console())
    logger.success(viewer.message)

    for app in apps:
        await app.stop()


def main():
    """Run a demo with simulated study group members."""
    parser = argparse.ArgumentParser(description="StudyFlow demo")
    parser.add_argument("--members", type=int, default=3)
    parser.add_argument("--rounds", type=int, default=8)
    parser.add_argument("--serve", action="store_true", help="Keep serving the board afterwards")
    args = parser.parse_args()

    setup_logger(level="INFO", use_rich=True)
    settings = Settings(
        app_id="demo",
        backend_config={"provider": "memory", "project_id": "demo", "latency": 0.05},
    )
    asyncio.run(run_demo(settings, args.members, args.rounds))

    if not args.serve:
        return

    server = start_server(settings)
    logger.success(f"Task board is now available at http://localhost:{server.port}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        server.stop()


if __name__ == "__main__":
    main()
