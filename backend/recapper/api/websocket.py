"""
WebSocket handler for real-time stage updates.

Provides live streaming of recap run stages.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from recapper.services.job_manager import get_job_manager

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

HEARTBEAT_SECONDS = 30.0


@router.websocket("/ws/{job_id}")
async def job_stage_websocket(websocket: WebSocket, job_id: str) -> None:
    """
    WebSocket endpoint for real-time job stage updates.

    Messages are JSON objects with the stage (kind, progress_percent,
    message, error_category), overall progress and, once completed,
    the script. The connection closes after the message marked final.

    Example client (Python):
        async with websockets.connect(f"ws://localhost:8802/ws/{job_id}") as ws:
            async for message in ws:
                data = json.loads(message)
                stage = data["stage"]
                print(f"{stage['kind']}: {stage['progress_percent']}% - {stage['message']}")

    Args:
        websocket: WebSocket connection
        job_id: Job identifier to subscribe to
    """
    job_manager = get_job_manager()

    job = job_manager.get_job(job_id)
    if not job:
        await websocket.close(code=4004, reason=f"Job not found: {job_id}")
        return

    await websocket.accept()
    logger.info(f"WebSocket connected for job {job_id}")

    # Subscribe before sending the snapshot so no update is missed
    queue = job_manager.subscribe(job_id)

    try:
        await websocket.send_json({
            "job_id": job.job_id,
            "final": job.finished,
            "stage": job.stage.model_dump(mode="json"),
            "overall_progress": job.overall_progress,
            "script": job.script,
            "timestamp": job.created_at.isoformat(),
        })

        if job.finished:
            await websocket.close()
            return

        while True:
            try:
                message = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                await websocket.send_json(message)

                if message.get("final"):
                    break

            except asyncio.TimeoutError:
                # Send heartbeat to keep connection alive
                try:
                    await websocket.send_json({"type": "heartbeat"})
                except Exception:
                    break

        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for job {job_id}")
    except Exception as e:
        logger.error(f"WebSocket error for job {job_id}: {e}")
    finally:
        job_manager.unsubscribe(job_id, queue)
        logger.info(f"WebSocket closed for job {job_id}")
