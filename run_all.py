# run_all.py
"""
Local dev runner: starts Redis and the ARQ worker when the settings need
them, plus the FastAPI app, and streams every process's output with a prefix.
"""

import asyncio
import sys

from storebot.core.config import settings


async def run_process(name: str, cmd: list):
    """
    Runs a subprocess and streams logs to console.
    """
    print(f"▶ Starting {name}: {' '.join(cmd)}")

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    async def _pipe_reader(stream, prefix):
        while True:
            line = await stream.readline()
            if not line:
                break
            print(f"[{prefix}] {line.decode().rstrip()}")

    await asyncio.gather(
        _pipe_reader(process.stdout, name),
        _pipe_reader(process.stderr, name),
    )
    return await process.wait()


async def main():
    tasks = []

    if settings.USE_REDIS or settings.OUTBOUND_VIA_QUEUE:
        tasks.append(run_process("REDIS", ["redis-server"]))

    if settings.OUTBOUND_VIA_QUEUE:
        # Module path of the settings class, not the module itself
        tasks.append(
            run_process(
                "ARQ",
                [sys.executable, "-m", "arq", "storebot.infrastructure.queue.arq_settings.WorkerSettings"],
            )
        )

    tasks.append(
        run_process(
            "APP",
            [
                sys.executable, "-m", "uvicorn", "storebot.main:app",
                "--reload", "--host", "0.0.0.0", "--port", "8000",
            ],
        )
    )

    await asyncio.gather(*tasks)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Shutting down...")
