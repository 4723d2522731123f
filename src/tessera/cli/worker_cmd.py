"""CLI command for running the provisioning worker.

Usage:
    tessera worker
    tessera worker --queue provisioning --batch-size 4
"""

from __future__ import annotations

import asyncio

import typer

from tessera.cli.common import load_config, open_runtime
from tessera.jobs.queue import JobQueue
from tessera.jobs.tasks import register_provisioning_handlers
from tessera.jobs.worker import JobWorker, WorkerConfig

app = typer.Typer(help="Run the provisioning job worker")


@app.callback(invoke_without_command=True)
def worker(
    queue: str | None = typer.Option(
        None, "--queue", "-q", help="Queue to consume (defaults to provisioning.queue_name)"
    ),
    batch_size: int = typer.Option(1, "--batch-size", "-b", help="Jobs claimed per poll"),
    name: str = typer.Option("default", "--name", "-n", help="Worker name for logs"),
    once: bool = typer.Option(False, "--once", help="Process one batch and exit"),
) -> None:
    """Process queued provisioning steps until interrupted."""
    asyncio.run(_run(queue, batch_size, name, once))


async def _run(queue_name: str | None, batch_size: int, name: str, once: bool) -> None:
    config = load_config()
    job_queue = JobQueue(max_retries=config.provisioning.max_retries)

    async with open_runtime(config, queue=job_queue) as runtime:
        job_worker = JobWorker(
            queue=job_queue,
            config=WorkerConfig(
                name=name,
                queue=queue_name or config.provisioning.queue_name,
                batch_size=batch_size,
            ),
        )
        register_provisioning_handlers(job_worker, runtime.machine)
        if once:
            count = await job_worker.run_once()
            typer.echo(f"Processed {count} job(s)")
        else:
            await job_worker.run()
